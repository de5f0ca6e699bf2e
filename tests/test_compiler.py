from domain.compiler import compile_query
from domain.query import RecipeQuery


def test_empty_query_has_no_where() -> None:
    got = compile_query(RecipeQuery())
    assert got.sql == "SELECT id FROM recipes ORDER BY creation_date DESC, id DESC"
    assert got.values == {}


def test_scalars_are_bound() -> None:
    got = compile_query(RecipeQuery(name="pie", max_budget=25, min_diners=2))
    assert "instr(name, :name) > 0" in got.sql
    assert "budget <= :max_budget" in got.sql
    assert "diners >= :min_diners" in got.sql
    assert got.values == {"name": "pie", "max_budget": 25, "min_diners": 2}


def test_zero_bounds_are_still_applied() -> None:
    got = compile_query(RecipeQuery(max_budget=0, min_diners=0))
    assert got.values == {"max_budget": 0, "min_diners": 0}


def test_user_text_never_reaches_sql() -> None:
    name = "'; DROP TABLE recipes; --"
    got = compile_query(RecipeQuery(name=name))
    assert name not in got.sql
    assert got.values["name"] == name


def test_included_ids_each_get_a_clause() -> None:
    query = RecipeQuery()
    query.include_ingredient(3)
    query.include_ingredient(1)
    got = compile_query(query)
    assert got.sql.count("ingredient_id = :included_ingredient_") == 2
    assert got.values == {"included_ingredient_0": 1, "included_ingredient_1": 3}


def test_banned_ids_share_one_clause() -> None:
    query = RecipeQuery()
    query.ban_utensil(5)
    query.ban_utensil(2)
    got = compile_query(query)
    assert (
        "id NOT IN (SELECT recipe_id FROM recipe_utensils "
        "WHERE utensil_id IN (:banned_utensil_0, :banned_utensil_1))"
    ) in got.sql
    assert got.values == {"banned_utensil_0": 2, "banned_utensil_1": 5}


def test_empty_sets_are_omitted() -> None:
    query = RecipeQuery(max_budget=10)
    query.include_ingredient(1)
    got = compile_query(query)
    assert "NOT IN" not in got.sql
    assert "recipe_utensils" not in got.sql
    assert "IN ()" not in got.sql


def test_output_is_deterministic() -> None:
    a = RecipeQuery()
    b = RecipeQuery()
    for id in (9, 4, 7):
        a.ban_ingredient(id)
    for id in (7, 9, 4):
        b.ban_ingredient(id)
    assert compile_query(a).sql == compile_query(b).sql
    assert compile_query(a).values == compile_query(b).values


def test_every_placeholder_has_a_value() -> None:
    query = RecipeQuery(name="x", max_budget=1, min_diners=1)
    query.include_ingredient(1)
    query.ban_ingredient(2)
    query.include_utensil(3)
    query.ban_utensil(4)
    got = compile_query(query)
    for key in got.values:
        assert f":{key}" in got.sql
    assert got.sql.endswith("ORDER BY creation_date DESC, id DESC")
