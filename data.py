"""Packaged seed data: the catalog and the example recipes."""

from datetime import date, datetime, time, timezone
import logging
from pathlib import Path
from typing import Iterator, Self

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from domain.errors import MalformedSeedData
from domain.models import NAME_DELIMITER, Recipe


logger = logging.getLogger(__name__)


CATALOG_FILE = "catalog.json"
EXAMPLE_RECIPES_FILE = "example_recipes.json"


class IngredientSeed(BaseModel):
    name: str = Field(min_length=1)
    measurement: str
    can_be_measured_in_units: bool = False


class IngredientTypeSeed(BaseModel):
    name: str = Field(min_length=1)
    subtypes: list["IngredientTypeSeed"] = []
    ingredients: list[IngredientSeed] = []

    def walk(self, prefix: tuple[str, ...] = ()) -> Iterator[tuple[str, IngredientSeed]]:
        path = prefix + (self.name,)
        for ingredient in self.ingredients:
            yield NAME_DELIMITER.join(path + (ingredient.name,)), ingredient
        for subtype in self.subtypes:
            yield from subtype.walk(path)


class CatalogSeed(BaseModel):
    measurement_types: list[str] = Field(min_length=1)
    utensils: list[str] = Field(min_length=1)
    ingredients: list[IngredientTypeSeed] = Field(min_length=1)

    @field_validator("measurement_types", "utensils")
    @classmethod
    def unique_names(cls, names: list[str]) -> list[str]:
        if any(not n for n in names):
            raise ValueError("Empty name.")
        if len(set(names)) != len(names):
            raise ValueError("Duplicate names.")
        return names

    @model_validator(mode="after")
    def known_measurements(self) -> Self:
        full_names: set[str] = set()
        for full_name, ingredient in self.flat_ingredients():
            if ingredient.measurement not in self.measurement_types:
                raise ValueError(
                    f"Ingredient {full_name} has unknown measurement "
                    f"{ingredient.measurement!r}."
                )
            if full_name in full_names:
                raise ValueError(f"Duplicate ingredient {full_name}.")
            full_names.add(full_name)
        return self

    def flat_ingredients(self) -> list[tuple[str, IngredientSeed]]:
        return [pair for t in self.ingredients for pair in t.walk()]


class RecipeIngredientSeed(BaseModel):
    id: int
    amount: float = Field(gt=0)
    is_measured_in_units: bool = False


class ExampleRecipeSeed(BaseModel):
    name: str = Field(min_length=1)
    body: str = ""
    budget: int = Field(ge=0)
    diners: int = Field(ge=1)
    creation_date: date
    ingredients: list[RecipeIngredientSeed] = []
    utensils: list[int] = []

    def to_recipe(self) -> Recipe:
        recipe = Recipe(
            name=self.name.strip(),
            # Source files are hand-wrapped; collapse to single spaces.
            body=" ".join(self.body.split()),
            budget=self.budget,
            diners=self.diners,
            creation_date=datetime.combine(self.creation_date, time(), timezone.utc),
        )
        for i in self.ingredients:
            recipe.put_ingredient(
                i.id, i.amount, is_measured_in_units=i.is_measured_in_units
            )
        for u in self.utensils:
            recipe.add_utensil(u)
        return recipe


class ExampleRecipesSeed(BaseModel):
    recipes: list[ExampleRecipeSeed]


def _read(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise MalformedSeedData(f"Could not read {path}: {e}") from e


def load_catalog(seed_dir: Path) -> CatalogSeed:
    path = seed_dir / CATALOG_FILE
    logger.info("Loading catalog from %s", path)
    try:
        return CatalogSeed.model_validate_json(_read(path))
    except ValidationError as e:
        raise MalformedSeedData(f"Invalid catalog {path}: {e}") from e


def load_example_recipes(seed_dir: Path) -> list[Recipe]:
    path = seed_dir / EXAMPLE_RECIPES_FILE
    logger.info("Loading example recipes from %s", path)
    try:
        seed = ExampleRecipesSeed.model_validate_json(_read(path))
    except ValidationError as e:
        raise MalformedSeedData(f"Invalid example recipes {path}: {e}") from e
    return [r.to_recipe() for r in seed.recipes]
