import pytest

import db
from domain.errors import NotFound
from domain.models import Recipe
from domain.session import EditSession
from tests.conftest import make_recipe


@pytest.mark.asyncio
async def test_new_draft_is_inserted(stores: db.Stores) -> None:
    events: list[tuple[int, Recipe]] = []
    session = await EditSession.begin(
        stores.recipes, on_commit=lambda id, r: events.append((id, r))
    )
    assert session.is_new

    session.draft.name = "Toast"
    session.draft.put_ingredient(2, 10)
    session.draft.add_utensil(2)
    id = await session.commit(stores.recipes)

    assert not session.is_new
    assert events == [(id, session.draft)]
    got = await stores.recipes.get_by_id(id)
    assert got is not None
    assert got.name == "Toast"


@pytest.mark.asyncio
async def test_edit_existing_until_commit(stores: db.Stores) -> None:
    id = await stores.recipes.insert(make_recipe("Soup", ingredients={7: 1}))
    session = await EditSession.begin(stores.recipes, id)

    session.draft.name = "Onion soup"
    session.draft.put_ingredient(8, 2)
    stored = await stores.recipes.get_by_id(id)
    assert stored is not None and stored.name == "Soup"

    assert await session.commit(stores.recipes) == id
    stored = await stores.recipes.get_by_id(id)
    assert stored is not None
    assert stored.name == "Onion soup"
    assert set(stored.ingredients) == {7, 8}
    assert await stores.recipes.count() == 1


@pytest.mark.asyncio
async def test_begin_missing(stores: db.Stores) -> None:
    with pytest.raises(NotFound):
        await EditSession.begin(stores.recipes, 404)
