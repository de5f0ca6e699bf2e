import argparse
import asyncio
import logging
from typing import Sequence

from rich import print
from rich.console import Console
from rich.logging import RichHandler
from rich.markdown import Markdown
from rich.table import Table

import config
import db
from domain.errors import BiteNoteError
from domain.models import Recipe
from domain.query import RecipeQuery


CONFIG = config.Config()


logger = logging.getLogger(__name__)


console = Console()


def recipes_table(pairs: list[tuple[int, Recipe]], title: str = "Recipes") -> Table:
    table = Table(title=title)
    table.add_column("id", justify="right")
    table.add_column("name")
    table.add_column("budget", justify="right")
    table.add_column("diners", justify="right")
    table.add_column("created")
    for id, recipe in pairs:
        table.add_row(
            str(id),
            recipe.name,
            str(recipe.budget),
            str(recipe.diners),
            recipe.creation_date.strftime("%Y-%m-%d %H:%M"),
        )
    return table


def build_query(args: argparse.Namespace) -> RecipeQuery:
    query = RecipeQuery(
        name=args.name,
        max_budget=args.max_budget,
        min_diners=args.min_diners,
    )
    for id in args.include_ingredient:
        query.include_ingredient(id)
    for id in args.ban_ingredient:
        if not query.ban_ingredient(id):
            logger.warning("Ingredient %s is already included, not banning.", id)
    for id in args.include_utensil:
        query.include_utensil(id)
    for id in args.ban_utensil:
        if not query.ban_utensil(id):
            logger.warning("Utensil %s is already included, not banning.", id)
    return query


async def show(stores: db.Stores, id: int) -> None:
    recipe = await stores.recipes.get_by_id(id)
    if recipe is None:
        print(f"[red]Recipe {id} not found.[/red]")
        return

    console.rule(f"{recipe.name} ({recipe.diners} diners, budget {recipe.budget})")
    ingredients = Table("ingredient", "amount")
    for _, ingredient, properties in await stores.catalog.get_recipe_ingredients(recipe):
        measurement = await stores.catalog.get_measurement_type(
            ingredient.measurement_type_id
        )
        unit = "units" if properties.is_measured_in_units else (
            measurement.name if measurement else ""
        )
        ingredients.add_row(ingredient.name, f"{properties.amount:g} {unit}")
    console.print(ingredients)
    utensils = [u.name for _, u in await stores.catalog.get_recipe_utensils(recipe)]
    console.print(f"Utensils: {', '.join(utensils) or '-'}")
    console.print(Markdown(recipe.body))


async def run(args: argparse.Namespace) -> None:
    async with db.open_stores(CONFIG) as stores:
        match args.command:
            case "init":
                print(f"Database ready at {CONFIG.db_url}")
            case "examples":
                ids = await stores.recipes.insert_example_recipes(CONFIG.seed_dir)
                print(f"Inserted example recipes {ids}")
            case "list":
                console.print(recipes_table(await stores.recipes.get_all()))
            case "show":
                await show(stores, args.id)
            case "delete":
                await stores.recipes.delete(args.id)
                print(f"Deleted recipe {args.id}")
            case "query":
                pairs = await stores.recipes.query(build_query(args))
                console.print(recipes_table(pairs, title=f"{len(pairs)} matches"))
            case "ingredients":
                table = Table("id", "ingredient", "full name", "units")
                for id, i in await stores.catalog.get_all_ingredients():
                    table.add_row(
                        str(id),
                        i.name,
                        i.full_name,
                        "yes" if i.can_be_measured_in_units else "no",
                    )
                console.print(table)
            case "utensils":
                table = Table("id", "utensil")
                for id, u in await stores.catalog.get_all_utensils():
                    table.add_row(str(id), u.name)
                console.print(table)
            case _:
                raise ValueError(f"Unsupported command {args.command}.")


def parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="bitenote", description="Recipe notes.")
    sub = p.add_subparsers(dest="command", required=True)
    sub.add_parser("init", help="Create and seed the database.")
    sub.add_parser("examples", help="Insert the example recipes.")
    sub.add_parser("list", help="List recipes, newest first.")
    sub.add_parser("ingredients", help="List catalog ingredients.")
    sub.add_parser("utensils", help="List catalog utensils.")
    for name in ("show", "delete"):
        cmd = sub.add_parser(name)
        cmd.add_argument("id", type=int)

    q = sub.add_parser("query", help="Filter recipes.")
    q.add_argument("--name", default="")
    q.add_argument("--max-budget", type=int)
    q.add_argument("--min-diners", type=int)
    for flag in (
        "--include-ingredient",
        "--ban-ingredient",
        "--include-utensil",
        "--ban-utensil",
    ):
        q.add_argument(flag, type=int, action="append", default=[], metavar="ID")
    return p


def main(argv: Sequence[str] | None = None) -> int:
    logging.basicConfig(
        level=CONFIG.log_level,
        format="%(message)s",
        handlers=[RichHandler(console=console)],
    )
    args = parser().parse_args(argv)
    try:
        asyncio.run(run(args))
    except BiteNoteError as e:
        print(f"[red]{type(e).__name__}: {e}[/red]")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
