from pathlib import Path

import pytest
from databases import Database

import db
from domain.errors import MalformedSeedData, NotFound
from domain.models import Ingredient, MeasurementType, Utensil
from domain.query import Disposition, RecipeQuery
from tests.conftest import SEED_DIR, make_recipe


@pytest.mark.asyncio
async def test_seeded_counts(stores: db.Stores) -> None:
    assert await stores.catalog.measurement_type_count() == 2
    assert await stores.catalog.utensil_count() == 8
    assert await stores.catalog.ingredient_count() == 21


@pytest.mark.asyncio
async def test_hierarchical_names(stores: db.Stores) -> None:
    salmon = await stores.catalog.get_ingredient(11)
    assert salmon is not None
    assert salmon.full_name == "seafood.fish.salmon"
    assert salmon.name == "salmon"
    weight = await stores.catalog.get_measurement_type(salmon.measurement_type_id)
    assert weight == MeasurementType(name="weight")

    milk = await stores.catalog.get_ingredient(1)
    assert milk == Ingredient(
        full_name="dairy.milk", measurement_type_id=2, can_be_measured_in_units=False
    )


@pytest.mark.asyncio
async def test_lookups_miss(stores: db.Stores) -> None:
    assert await stores.catalog.get_ingredient(999) is None
    assert await stores.catalog.get_utensil(999) is None
    assert await stores.catalog.get_measurement_type(999) is None


@pytest.mark.asyncio
async def test_all_lists_are_ordered_by_id(stores: db.Stores) -> None:
    utensils = await stores.catalog.get_all_utensils()
    assert [id for id, _ in utensils] == list(range(1, 9))
    assert utensils[0] == (1, Utensil(name="oven"))
    types = await stores.catalog.get_all_measurement_types()
    assert [t.name for _, t in types] == ["weight", "volume"]


@pytest.mark.asyncio
async def test_except(stores: db.Stores) -> None:
    ingredients = await stores.catalog.get_ingredients_except({1, 2, 3})
    assert len(ingredients) == 18
    assert {1, 2, 3}.isdisjoint(id for id, _ in ingredients)

    utensils = await stores.catalog.get_utensils_except([8])
    assert [id for id, _ in utensils] == list(range(1, 8))


@pytest.mark.asyncio
async def test_resolve_recipe_associations(stores: db.Stores) -> None:
    recipe = make_recipe(ingredients={11: 300, 5: 1}, utensils={1, 8})
    got = await stores.catalog.get_recipe_ingredients(recipe)
    assert [(id, i.name, p.amount) for id, i, p in got] == [
        (5, "lemon", 1),
        (11, "salmon", 300),
    ]
    utensils = await stores.catalog.get_recipe_utensils(recipe)
    assert [u.name for _, u in utensils] == ["oven", "baking tray"]

    recipe.put_ingredient(999, 1)
    with pytest.raises(NotFound):
        await stores.catalog.get_recipe_ingredients(recipe)


@pytest.mark.asyncio
async def test_resolve_query_dispositions(stores: db.Stores) -> None:
    query = RecipeQuery()
    query.include_ingredient(4)
    query.ban_ingredient(11)
    query.ban_utensil(6)

    included = await stores.catalog.get_query_ingredients(query, Disposition.INCLUDED)
    banned = await stores.catalog.get_query_ingredients(query, Disposition.BANNED)
    utensils = await stores.catalog.get_query_utensils(query, Disposition.BANNED)
    assert [i.name for _, i in included] == ["banana"]
    assert [i.name for _, i in banned] == ["salmon"]
    assert utensils == [(6, Utensil(name="blender"))]
    assert await stores.catalog.get_query_utensils(query, Disposition.INCLUDED) == []


@pytest.mark.asyncio
async def test_seeding_happens_once(database: Database) -> None:
    await db.create_db(database, seed_dir=SEED_DIR)
    await db.create_db(database, seed_dir=SEED_DIR)
    got = await database.fetch_val("SELECT count(*) FROM ingredients")
    assert got == 21


@pytest.mark.parametrize(
    "content",
    (
        "not json",
        '{"measurement_types": ["weight"], "utensils": ["oven"]}',
        (
            '{"measurement_types": ["weight"], "utensils": ["oven"], '
            '"ingredients": [{"name": "fruit", "ingredients": '
            '[{"name": "apple", "measurement": "volume"}]}]}'
        ),
        (
            '{"measurement_types": ["weight", "weight"], "utensils": ["oven"], '
            '"ingredients": [{"name": "fruit", "ingredients": '
            '[{"name": "apple", "measurement": "weight"}]}]}'
        ),
    ),
)
@pytest.mark.asyncio
async def test_malformed_seed_aborts(
    database: Database, tmp_path: Path, content: str
) -> None:
    seed_dir = tmp_path / "seed"
    seed_dir.mkdir()
    (seed_dir / "catalog.json").write_text(content)

    with pytest.raises(MalformedSeedData):
        await db.create_db(database, seed_dir=seed_dir)

    for table in ("measurement_types", "utensils", "ingredients"):
        assert await database.fetch_val(f"SELECT count(*) FROM {table}") == 0


@pytest.mark.asyncio
async def test_undecodable_seed_aborts(database: Database, tmp_path: Path) -> None:
    seed_dir = tmp_path / "seed"
    seed_dir.mkdir()
    (seed_dir / "catalog.json").write_bytes(b'{"measurement_types": ["\xff"]}')

    with pytest.raises(MalformedSeedData):
        await db.create_db(database, seed_dir=seed_dir)

    assert await database.fetch_val("SELECT count(*) FROM ingredients") == 0


@pytest.mark.asyncio
async def test_missing_seed_aborts(database: Database, tmp_path: Path) -> None:
    with pytest.raises(MalformedSeedData):
        await db.create_db(database, seed_dir=tmp_path / "nowhere")
