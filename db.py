from collections import defaultdict
import contextlib
from datetime import datetime, timezone
import functools
import logging
from pathlib import Path
import sqlite3
from typing import Any, AsyncIterator, Awaitable, Callable, Iterable, ParamSpec, TypeVar

from databases import Database
from databases.interfaces import Record

import config
import data
from domain.compiler import compile_query
from domain.errors import ConstraintViolation, InvalidRecipe, NotFound, StorageError
from domain.models import (
    Ingredient,
    MeasurementType,
    Recipe,
    RecipeIngredientProperties,
    Utensil,
)
from domain.query import Disposition, RecipeQuery


logger = logging.getLogger(__name__)


CREATE_TABLES = (
    """
    CREATE TABLE IF NOT EXISTS measurement_types (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name VARCHAR(64) NOT NULL UNIQUE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS utensils (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name VARCHAR(64) NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS ingredients (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name VARCHAR(128) NOT NULL,
        measurement_id INTEGER NOT NULL REFERENCES measurement_types(id),
        can_be_measured_in_units BOOLEAN NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS recipes (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name VARCHAR(64) NOT NULL,
        body TEXT NOT NULL DEFAULT '',
        budget INTEGER NOT NULL,
        diners INTEGER NOT NULL,
        creation_date TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS recipe_ingredients (
        recipe_id INTEGER NOT NULL REFERENCES recipes(id) ON DELETE CASCADE,
        ingredient_id INTEGER NOT NULL REFERENCES ingredients(id),
        amount REAL NOT NULL,
        is_measured_in_units BOOLEAN NOT NULL DEFAULT 0,
        PRIMARY KEY (recipe_id, ingredient_id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS recipe_utensils (
        recipe_id INTEGER NOT NULL REFERENCES recipes(id) ON DELETE CASCADE,
        utensil_id INTEGER NOT NULL REFERENCES utensils(id),
        PRIMARY KEY (recipe_id, utensil_id)
    )
    """,
)


COUNT_INGREDIENTS = "SELECT count(*) FROM ingredients"


CREATE_MEASUREMENT_TYPE = "INSERT INTO measurement_types(name) VALUES (:name)"


CREATE_UTENSIL = "INSERT INTO utensils(name) VALUES (:name)"


CREATE_INGREDIENT = """
INSERT INTO ingredients(name, measurement_id, can_be_measured_in_units)
VALUES (:name, :measurement_id, :can_be_measured_in_units)
"""


LIST_MEASUREMENT_TYPES = "SELECT * FROM measurement_types ORDER BY id ASC"


LIST_UTENSILS = "SELECT * FROM utensils ORDER BY id ASC"


LIST_INGREDIENTS = "SELECT * FROM ingredients ORDER BY id ASC"


CREATE_RECIPE = """
INSERT INTO recipes(name, body, budget, diners, creation_date)
VALUES (:name, :body, :budget, :diners, :creation_date)
"""


CREATE_RECIPE_INGREDIENT = """
INSERT INTO recipe_ingredients(recipe_id, ingredient_id, amount, is_measured_in_units)
VALUES (:recipe_id, :ingredient_id, :amount, :is_measured_in_units)
"""


CREATE_RECIPE_UTENSIL = """
INSERT INTO recipe_utensils(recipe_id, utensil_id) VALUES (:recipe_id, :utensil_id)
"""


UPDATE_RECIPE = """
UPDATE recipes SET name = :name, body = :body, budget = :budget, diners = :diners
WHERE id = :id
"""


DELETE_RECIPE = "DELETE FROM recipes WHERE id = :id"


DELETE_RECIPE_INGREDIENTS = "DELETE FROM recipe_ingredients WHERE recipe_id = :recipe_id"


DELETE_RECIPE_UTENSILS = "DELETE FROM recipe_utensils WHERE recipe_id = :recipe_id"


RECIPE_EXISTS = "SELECT 1 FROM recipes WHERE id = :id"


COUNT_RECIPES = "SELECT count(*) FROM recipes"


LIST_RECIPE_IDS = "SELECT id FROM recipes ORDER BY creation_date DESC, id DESC"


P = ParamSpec("P")
T = TypeVar("T")


def storage_errors(method: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
    """Re-raise driver errors as `StorageError`."""

    @functools.wraps(method)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
        try:
            return await method(*args, **kwargs)
        except sqlite3.Error as e:
            raise StorageError(f"{method.__qualname__} failed: {e}") from e

    return wrapper


def bind_ids(prefix: str, ids: Iterable[int]) -> tuple[str, dict[str, int]]:
    values = {f"{prefix}_{n}": id for n, id in enumerate(ids)}
    return ", ".join(f":{k}" for k in values), values


async def seed_catalog(db: Database, seed: data.CatalogSeed) -> None:
    async with db.transaction():
        measurement_ids: dict[str, int] = {}
        for name in seed.measurement_types:
            measurement_ids[name] = await db.execute(  # pyright: ignore[reportUnknownMemberType]
                CREATE_MEASUREMENT_TYPE, values={"name": name}
            )
        for name in seed.utensils:
            await db.execute(  # pyright: ignore[reportUnknownMemberType]
                CREATE_UTENSIL, values={"name": name}
            )
        for full_name, ingredient in seed.flat_ingredients():
            await db.execute(  # pyright: ignore[reportUnknownMemberType]
                CREATE_INGREDIENT,
                values={
                    "name": full_name,
                    "measurement_id": measurement_ids[ingredient.measurement],
                    "can_be_measured_in_units": ingredient.can_be_measured_in_units,
                },
            )


@storage_errors
async def create_db(db: Database, *, seed_dir: Path) -> None:
    """Create the schema and seed the catalog the first time round.

    The seed is parsed and validated in full before anything is written, so a
    bad seed leaves the catalog tables empty rather than half populated.
    """
    for statement in CREATE_TABLES:
        await db.execute(query=statement)  # pyright: ignore[reportUnknownMemberType]

    seeded = await db.fetch_val(COUNT_INGREDIENTS)  # pyright: ignore[reportUnknownMemberType]
    if seeded:
        logger.debug("Catalog already seeded.")
        return

    seed = data.load_catalog(seed_dir)
    await seed_catalog(db, seed)
    logger.info(
        "Seeded %s measurement types, %s utensils and %s ingredients.",
        len(seed.measurement_types),
        len(seed.utensils),
        len(seed.flat_ingredients()),
    )


class CatalogRepository:
    """Read-only access to the seeded catalog. Rows are cached on first read."""

    def __init__(self, db: Database) -> None:
        self.db = db
        self._measurement_types: dict[int, MeasurementType] | None = None
        self._utensils: dict[int, Utensil] | None = None
        self._ingredients: dict[int, Ingredient] | None = None

    async def _fetch(self, query: str) -> list[Record]:
        return await self.db.fetch_all(query)  # pyright: ignore[reportUnknownMemberType]

    @storage_errors
    async def measurement_types(self) -> dict[int, MeasurementType]:
        if self._measurement_types is None:
            rows = await self._fetch(LIST_MEASUREMENT_TYPES)
            self._measurement_types = {
                r["id"]: MeasurementType(name=r["name"]) for r in rows
            }
        return self._measurement_types

    @storage_errors
    async def utensils(self) -> dict[int, Utensil]:
        if self._utensils is None:
            rows = await self._fetch(LIST_UTENSILS)
            self._utensils = {r["id"]: Utensil(name=r["name"]) for r in rows}
        return self._utensils

    @storage_errors
    async def ingredients(self) -> dict[int, Ingredient]:
        if self._ingredients is None:
            rows = await self._fetch(LIST_INGREDIENTS)
            self._ingredients = {
                r["id"]: Ingredient(
                    full_name=r["name"],
                    measurement_type_id=r["measurement_id"],
                    can_be_measured_in_units=bool(r["can_be_measured_in_units"]),
                )
                for r in rows
            }
        return self._ingredients

    async def get_all_measurement_types(self) -> list[tuple[int, MeasurementType]]:
        return list((await self.measurement_types()).items())

    async def get_all_utensils(self) -> list[tuple[int, Utensil]]:
        return list((await self.utensils()).items())

    async def get_all_ingredients(self) -> list[tuple[int, Ingredient]]:
        return list((await self.ingredients()).items())

    async def get_ingredients_except(
        self, excluded: Iterable[int]
    ) -> list[tuple[int, Ingredient]]:
        excluded = set(excluded)
        return [p for p in await self.get_all_ingredients() if p[0] not in excluded]

    async def get_utensils_except(
        self, excluded: Iterable[int]
    ) -> list[tuple[int, Utensil]]:
        excluded = set(excluded)
        return [p for p in await self.get_all_utensils() if p[0] not in excluded]

    async def get_measurement_type(self, id: int) -> MeasurementType | None:
        return (await self.measurement_types()).get(id)

    async def get_utensil(self, id: int) -> Utensil | None:
        return (await self.utensils()).get(id)

    async def get_ingredient(self, id: int) -> Ingredient | None:
        return (await self.ingredients()).get(id)

    async def measurement_type_count(self) -> int:
        return len(await self.measurement_types())

    async def utensil_count(self) -> int:
        return len(await self.utensils())

    async def ingredient_count(self) -> int:
        return len(await self.ingredients())

    async def get_recipe_ingredients(
        self, recipe: Recipe
    ) -> list[tuple[int, Ingredient, RecipeIngredientProperties]]:
        ingredients = await self.ingredients()
        resolved: list[tuple[int, Ingredient, RecipeIngredientProperties]] = []
        for id, properties in sorted(recipe.ingredients.items()):
            if id not in ingredients:
                raise NotFound(f"Ingredient {id}")
            resolved.append((id, ingredients[id], properties))
        return resolved

    async def get_recipe_utensils(self, recipe: Recipe) -> list[tuple[int, Utensil]]:
        return await self._resolve(await self.utensils(), recipe.utensils, "Utensil")

    async def get_query_ingredients(
        self, query: RecipeQuery, disposition: Disposition
    ) -> list[tuple[int, Ingredient]]:
        ids = (
            query.get_present_ingredients()
            if disposition is Disposition.INCLUDED
            else query.get_banned_ingredients()
        )
        return await self._resolve(await self.ingredients(), ids, "Ingredient")

    async def get_query_utensils(
        self, query: RecipeQuery, disposition: Disposition
    ) -> list[tuple[int, Utensil]]:
        ids = (
            query.get_present_utensils()
            if disposition is Disposition.INCLUDED
            else query.get_banned_utensils()
        )
        return await self._resolve(await self.utensils(), ids, "Utensil")

    async def _resolve(
        self, items: dict[int, Any], ids: Iterable[int], kind: str
    ) -> list[tuple[int, Any]]:
        missing = set(ids) - items.keys()
        if missing:
            raise NotFound(f"{kind} {sorted(missing)}")
        return [(id, items[id]) for id in sorted(ids)]


def validate_recipe(recipe: Recipe) -> None:
    if not recipe.name.strip():
        raise InvalidRecipe("Recipe name must not be empty.")
    if recipe.budget < 0:
        raise InvalidRecipe(f"Budget must not be negative, got {recipe.budget}.")
    if recipe.diners < 1:
        raise InvalidRecipe(f"Diners must be positive, got {recipe.diners}.")
    for id, properties in recipe.ingredients.items():
        if properties.amount <= 0:
            raise InvalidRecipe(
                f"Amount of ingredient {id} must be positive, got {properties.amount}."
            )


def recipe_from_rows(
    row: Record,
    ingredient_rows: Iterable[Record],
    utensil_rows: Iterable[Record],
) -> Recipe:
    return Recipe(
        name=row["name"],
        body=row["body"],
        budget=row["budget"],
        diners=row["diners"],
        creation_date=datetime.fromisoformat(row["creation_date"]),
        ingredients={
            r["ingredient_id"]: RecipeIngredientProperties(
                amount=r["amount"],
                is_measured_in_units=bool(r["is_measured_in_units"]),
            )
            for r in ingredient_rows
        },
        utensils={r["utensil_id"] for r in utensil_rows},
    )


class RecipesRepository:
    """Recipes repository.

    Every write runs inside a single transaction covering the recipe row and
    both association tables.
    """

    def __init__(self, db: Database, catalog: CatalogRepository) -> None:
        self.db = db
        self.catalog = catalog

    async def _association_rows(
        self, recipe_id: int, recipe: Recipe
    ) -> tuple[list[dict[str, Any]], list[dict[str, Any]]]:
        ingredients = await self.catalog.ingredients()
        utensils = await self.catalog.utensils()

        missing_ingredients = recipe.ingredients.keys() - ingredients.keys()
        if missing_ingredients:
            raise ConstraintViolation(
                f"Unknown ingredients {sorted(missing_ingredients)}"
            )
        missing_utensils = recipe.utensils - utensils.keys()
        if missing_utensils:
            raise ConstraintViolation(f"Unknown utensils {sorted(missing_utensils)}")

        ingredient_rows = [
            {
                "recipe_id": recipe_id,
                "ingredient_id": id,
                "amount": properties.amount,
                # Unit counts only apply where the catalog allows them.
                "is_measured_in_units": (
                    properties.is_measured_in_units
                    and ingredients[id].can_be_measured_in_units
                ),
            }
            for id, properties in sorted(recipe.ingredients.items())
        ]
        utensil_rows = [
            {"recipe_id": recipe_id, "utensil_id": id} for id in sorted(recipe.utensils)
        ]
        return ingredient_rows, utensil_rows

    async def _write_associations(self, recipe_id: int, recipe: Recipe) -> None:
        ingredient_rows, utensil_rows = await self._association_rows(recipe_id, recipe)
        if ingredient_rows:
            await self.db.execute_many(  # pyright: ignore[reportUnknownMemberType]
                CREATE_RECIPE_INGREDIENT, values=ingredient_rows
            )
        if utensil_rows:
            await self.db.execute_many(  # pyright: ignore[reportUnknownMemberType]
                CREATE_RECIPE_UTENSIL, values=utensil_rows
            )

    async def _delete_associations(self, recipe_id: int) -> None:
        values = {"recipe_id": recipe_id}
        await self.db.execute(  # pyright: ignore[reportUnknownMemberType]
            DELETE_RECIPE_INGREDIENTS, values=values
        )
        await self.db.execute(  # pyright: ignore[reportUnknownMemberType]
            DELETE_RECIPE_UTENSILS, values=values
        )

    async def _ensure_exists(self, id: int) -> None:
        row = await self.db.fetch_one(  # pyright: ignore[reportUnknownMemberType]
            RECIPE_EXISTS, values={"id": id}
        )
        if row is None:
            raise NotFound(f"Recipe {id}")

    async def _insert(self, recipe: Recipe) -> int:
        validate_recipe(recipe)
        created = recipe.creation_date
        if created.tzinfo is None or created.utcoffset() is None:
            raise InvalidRecipe(f"Creation date {created} has no timezone.")
        id = await self.db.execute(  # pyright: ignore[reportUnknownMemberType]
            CREATE_RECIPE,
            values={
                "name": recipe.name,
                "body": recipe.body,
                "budget": recipe.budget,
                "diners": recipe.diners,
                # Stored as UTC text so that text order is time order.
                "creation_date": created.astimezone(timezone.utc).isoformat(
                    timespec="microseconds"
                ),
            },
        )
        await self._write_associations(id, recipe)
        return id

    async def _delete(self, id: int) -> None:
        await self._ensure_exists(id)
        await self._delete_associations(id)
        await self.db.execute(  # pyright: ignore[reportUnknownMemberType]
            DELETE_RECIPE, values={"id": id}
        )

    @storage_errors
    async def insert(self, recipe: Recipe) -> int:
        async with self.db.transaction():
            id = await self._insert(recipe)
        logger.info("Inserted recipe %s (%s).", id, recipe.name)
        return id

    @storage_errors
    async def insert_many(self, recipes: Iterable[Recipe]) -> list[int]:
        async with self.db.transaction():
            ids = [await self._insert(recipe) for recipe in recipes]
        logger.info("Inserted %s recipes.", len(ids))
        return ids

    async def insert_example_recipes(self, seed_dir: Path) -> list[int]:
        """Insert the packaged example recipes. Returns their ids, newest first."""
        recipes = data.load_example_recipes(seed_dir)
        ids = await self.insert_many(recipes)
        pairs = sorted(
            zip(ids, recipes),
            key=lambda p: (p[1].creation_date, p[0]),
            reverse=True,
        )
        return [id for id, _ in pairs]

    @storage_errors
    async def update(self, id: int, recipe: Recipe) -> None:
        """Replace a recipe's fields and associations. The creation date is kept."""
        async with self.db.transaction():
            await self._ensure_exists(id)
            validate_recipe(recipe)
            await self.db.execute(  # pyright: ignore[reportUnknownMemberType]
                UPDATE_RECIPE,
                values={
                    "id": id,
                    "name": recipe.name,
                    "body": recipe.body,
                    "budget": recipe.budget,
                    "diners": recipe.diners,
                },
            )
            await self._delete_associations(id)
            await self._write_associations(id, recipe)
        logger.info("Updated recipe %s.", id)

    @storage_errors
    async def delete(self, id: int) -> None:
        async with self.db.transaction():
            await self._delete(id)
        logger.info("Deleted recipe %s.", id)

    @storage_errors
    async def delete_many(self, ids: Iterable[int]) -> None:
        ids = list(dict.fromkeys(ids))
        async with self.db.transaction():
            for id in ids:
                await self._delete(id)
        logger.info("Deleted recipes %s.", ids)

    @storage_errors
    async def count(self) -> int:
        return await self.db.fetch_val(COUNT_RECIPES)  # pyright: ignore[reportUnknownMemberType]

    @storage_errors
    async def get_by_ids(self, ids: Iterable[int]) -> list[Recipe]:
        """Resolve ids to recipes, keeping the order they were given in."""
        ids = list(ids)
        if not ids:
            return []

        unique = list(dict.fromkeys(ids))
        placeholders, values = bind_ids("id", unique)
        rows = await self.db.fetch_all(  # pyright: ignore[reportUnknownMemberType]
            f"SELECT * FROM recipes WHERE id IN ({placeholders})", values=values
        )
        placeholders, values = bind_ids("recipe_id", unique)
        ingredient_rows = await self.db.fetch_all(  # pyright: ignore[reportUnknownMemberType]
            f"SELECT * FROM recipe_ingredients WHERE recipe_id IN ({placeholders})",
            values=values,
        )
        utensil_rows = await self.db.fetch_all(  # pyright: ignore[reportUnknownMemberType]
            f"SELECT * FROM recipe_utensils WHERE recipe_id IN ({placeholders})",
            values=values,
        )

        ingredients_by_recipe: defaultdict[int, list[Record]] = defaultdict(list)
        for i in ingredient_rows:
            ingredients_by_recipe[i["recipe_id"]].append(i)
        utensils_by_recipe: defaultdict[int, list[Record]] = defaultdict(list)
        for u in utensil_rows:
            utensils_by_recipe[u["recipe_id"]].append(u)

        recipes = {
            r["id"]: recipe_from_rows(
                r, ingredients_by_recipe[r["id"]], utensils_by_recipe[r["id"]]
            )
            for r in rows
        }
        missing = set(unique) - recipes.keys()
        if missing:
            raise NotFound(f"Recipes {sorted(missing)}")
        return [recipes[id] for id in ids]

    async def get_by_id(self, id: int) -> Recipe | None:
        try:
            (recipe,) = await self.get_by_ids([id])
        except NotFound:
            return None
        return recipe

    async def _pairs(self, ids: list[int]) -> list[tuple[int, Recipe]]:
        return list(zip(ids, await self.get_by_ids(ids)))

    @storage_errors
    async def get_all(self) -> list[tuple[int, Recipe]]:
        """All recipes, newest first."""
        rows = await self.db.fetch_all(LIST_RECIPE_IDS)  # pyright: ignore[reportUnknownMemberType]
        return await self._pairs([r["id"] for r in rows])

    @storage_errors
    async def query_ids(self, query: RecipeQuery) -> list[int]:
        compiled = compile_query(query)
        rows = await self.db.fetch_all(  # pyright: ignore[reportUnknownMemberType]
            compiled.sql, values=compiled.values
        )
        return [r["id"] for r in rows]

    async def query(self, query: RecipeQuery) -> list[tuple[int, Recipe]]:
        return await self._pairs(await self.query_ids(query))


class Stores:
    def __init__(self, db: Database) -> None:
        self.db = db
        self.catalog = CatalogRepository(db)
        self.recipes = RecipesRepository(db, self.catalog)


@contextlib.asynccontextmanager
async def open_stores(cfg: config.Config | None = None) -> AsyncIterator[Stores]:
    """Connect, create and seed the database, and hand out the repositories."""
    cfg = config.Config() if cfg is None else cfg
    db = Database(cfg.db_url)
    await db.connect()
    try:
        await create_db(db, seed_dir=cfg.seed_dir)
        stores = Stores(db)
        if cfg.load_examples and not await stores.recipes.count():
            await stores.recipes.insert_example_recipes(cfg.seed_dir)
        yield stores
    finally:
        await db.disconnect()
