from dataclasses import dataclass
from datetime import datetime, timezone
import logging

import markdown2  # pyright: ignore[reportMissingTypeStubs]


logger = logging.getLogger(__name__)


NAME_DELIMITER = "."


@dataclass(frozen=True)
class MeasurementType:
    name: str


@dataclass(frozen=True)
class Utensil:
    name: str


@dataclass(frozen=True)
class Ingredient:
    full_name: str
    measurement_type_id: int
    can_be_measured_in_units: bool = False

    @property
    def name(self) -> str:
        """Leaf segment of the full name, e.g. `salmon` for `seafood.fish.salmon`."""
        return self.full_name.rsplit(NAME_DELIMITER, 1)[-1]


@dataclass(frozen=True)
class RecipeIngredientProperties:
    amount: float
    is_measured_in_units: bool = False


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Recipe:
    def __init__(
        self,
        *,
        name: str = "",
        body: str = "",
        budget: int = 0,
        diners: int = 1,
        creation_date: datetime | None = None,
        ingredients: dict[int, RecipeIngredientProperties] | None = None,
        utensils: set[int] | None = None,
    ) -> None:
        self.name = name
        self.body = body
        self.budget = budget
        self.diners = diners
        self._creation_date = utc_now() if creation_date is None else creation_date
        self._ingredients: dict[int, RecipeIngredientProperties] = (
            {} if ingredients is None else dict(ingredients)
        )
        self._utensils: set[int] = set() if utensils is None else set(utensils)

    def __repr__(self) -> str:
        return f"<Recipe(name={self.name}, budget={self.budget}, diners={self.diners})>"

    def __str__(self) -> str:
        return self.body

    @property
    def creation_date(self) -> datetime:
        return self._creation_date

    @property
    def html(self) -> str:
        return markdown2.markdown(  # pyright: ignore[reportUnknownVariableType, reportUnknownMemberType]
            self.body
        )

    @property
    def ingredients(self) -> dict[int, RecipeIngredientProperties]:
        return dict(self._ingredients)

    @property
    def utensils(self) -> frozenset[int]:
        return frozenset(self._utensils)

    def put_ingredient(
        self,
        ingredient_id: int,
        amount: float,
        *,
        is_measured_in_units: bool = False,
    ) -> None:
        if amount <= 0:
            raise ValueError(f"Ingredient amount must be positive, got {amount}.")
        self._ingredients[ingredient_id] = RecipeIngredientProperties(
            amount=amount, is_measured_in_units=is_measured_in_units
        )

    def remove_ingredient(self, ingredient_id: int) -> None:
        if self._ingredients.pop(ingredient_id, None) is None:
            logger.warning("Ingredient %s was not in the recipe.", ingredient_id)

    def clear_ingredients(self) -> None:
        self._ingredients.clear()

    def contains_ingredient(self, ingredient_id: int) -> bool:
        return ingredient_id in self._ingredients

    def add_utensil(self, utensil_id: int) -> None:
        if utensil_id in self._utensils:
            logger.warning("Utensil %s was already in the recipe.", utensil_id)
            return
        self._utensils.add(utensil_id)

    def remove_utensil(self, utensil_id: int) -> None:
        if utensil_id not in self._utensils:
            logger.warning("Utensil %s was not in the recipe.", utensil_id)
            return
        self._utensils.remove(utensil_id)

    def clear_utensils(self) -> None:
        self._utensils.clear()

    def contains_utensil(self, utensil_id: int) -> bool:
        return utensil_id in self._utensils

    def copy(self) -> "Recipe":
        return Recipe(
            name=self.name,
            body=self.body,
            budget=self.budget,
            diners=self.diners,
            creation_date=self._creation_date,
            ingredients=self._ingredients,
            utensils=self._utensils,
        )
