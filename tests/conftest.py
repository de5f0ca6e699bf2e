from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator

import pytest
import pytest_asyncio
from databases import Database

import config
import db
from domain.models import Recipe


SEED_DIR = config.ASSETS_DIR / "seed"


def db_url(tmp_path: Path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'bitenote.db'}"


def make_recipe(
    name: str = "Test recipe",
    *,
    budget: int = 10,
    diners: int = 2,
    ingredients: dict[int, float] | None = None,
    utensils: set[int] | None = None,
    created: str = "2024-01-01T12:00:00",
    body: str = "Mix and cook.",
) -> Recipe:
    recipe = Recipe(
        name=name,
        body=body,
        budget=budget,
        diners=diners,
        creation_date=datetime.fromisoformat(created).replace(tzinfo=timezone.utc),
    )
    for id, amount in (ingredients or {}).items():
        recipe.put_ingredient(id, amount)
    for id in utensils or set():
        recipe.add_utensil(id)
    return recipe


@pytest.fixture
def cfg(tmp_path: Path) -> config.Config:
    return config.Config(db_url=db_url(tmp_path), seed_dir=SEED_DIR)


@pytest_asyncio.fixture
async def database(tmp_path: Path) -> AsyncIterator[Database]:
    database = Database(db_url(tmp_path))
    await database.connect()
    yield database
    await database.disconnect()


@pytest_asyncio.fixture
async def stores(database: Database) -> db.Stores:
    await db.create_db(database, seed_dir=SEED_DIR)
    return db.Stores(database)
