"""Turns a `RecipeQuery` into SQL with bound parameters.

Every value that comes from the query travels in `CompiledQuery.values`; the
SQL text only ever holds `:placeholder` names. Clauses for empty id sets are
left out entirely.
"""

import logging
from typing import Iterable

from domain.query import RecipeQuery


logger = logging.getLogger(__name__)


SELECT_RECIPE_IDS = "SELECT id FROM recipes"


ORDER_NEWEST_FIRST = "ORDER BY creation_date DESC, id DESC"


class CompiledQuery:
    def __init__(self, sql: str, values: dict[str, object]) -> None:
        self.sql = sql
        self.values = values

    def __repr__(self) -> str:
        return f"<CompiledQuery(sql={self.sql!r}, values={self.values!r})>"


class _Builder:
    def __init__(self) -> None:
        self.clauses: list[str] = []
        self.values: dict[str, object] = {}

    def bind(self, key: str, value: object) -> str:
        self.values[key] = value
        return f":{key}"

    def bind_ids(self, prefix: str, ids: Iterable[int]) -> list[str]:
        return [self.bind(f"{prefix}_{n}", id) for n, id in enumerate(sorted(ids))]

    def where(self, clause: str) -> None:
        self.clauses.append(clause)

    def required(self, table: str, column: str, prefix: str, ids: set[int]) -> None:
        # One clause per id: a recipe must hold every included id.
        for placeholder in self.bind_ids(prefix, ids):
            self.where(
                f"id IN (SELECT recipe_id FROM {table} WHERE {column} = {placeholder})"
            )

    def banned(self, table: str, column: str, prefix: str, ids: set[int]) -> None:
        if not ids:
            return
        placeholders = ", ".join(self.bind_ids(prefix, ids))
        self.where(
            f"id NOT IN (SELECT recipe_id FROM {table} WHERE {column} IN ({placeholders}))"
        )

    def build(self) -> CompiledQuery:
        parts = [SELECT_RECIPE_IDS]
        if self.clauses:
            parts.append("WHERE " + " AND ".join(self.clauses))
        parts.append(ORDER_NEWEST_FIRST)
        return CompiledQuery(" ".join(parts), self.values)


def compile_query(query: RecipeQuery) -> CompiledQuery:
    builder = _Builder()

    if query.name:
        builder.where(f"instr(name, {builder.bind('name', query.name)}) > 0")
    if query.max_budget is not None:
        builder.where(f"budget <= {builder.bind('max_budget', query.max_budget)}")
    if query.min_diners is not None:
        builder.where(f"diners >= {builder.bind('min_diners', query.min_diners)}")

    builder.required(
        "recipe_ingredients",
        "ingredient_id",
        "included_ingredient",
        query.get_present_ingredients(),
    )
    builder.banned(
        "recipe_ingredients",
        "ingredient_id",
        "banned_ingredient",
        query.get_banned_ingredients(),
    )
    builder.required(
        "recipe_utensils",
        "utensil_id",
        "included_utensil",
        query.get_present_utensils(),
    )
    builder.banned(
        "recipe_utensils",
        "utensil_id",
        "banned_utensil",
        query.get_banned_utensils(),
    )

    compiled = builder.build()
    logger.debug("Compiled %r", compiled)
    return compiled
