from enum import Enum
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


ASSETS_DIR = Path(__file__).parent / "assets"


class Env(Enum):
    local = "local"
    dev = "dev"
    prod = "prod"


class Config(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="BITENOTE_")

    env: Env = Env.local
    db_url: str = "sqlite+aiosqlite:///bitenote.db"
    seed_dir: Path = ASSETS_DIR / "seed"
    load_examples: bool = False
    log_level: str = "INFO"
