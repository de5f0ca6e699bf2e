"""The recipe query model.

A `RecipeQuery` records, for each catalog id it mentions, one disposition:
the id must be present in a matching recipe, or it is banned from it. An id is
never both. Conflicting instructions are settled by the override flags rather
than by raising.
"""

from enum import Enum


class Disposition(Enum):
    INCLUDED = "included"
    BANNED = "banned"


def _set_disposition(
    dispositions: dict[int, Disposition],
    id: int,
    disposition: Disposition,
    override: bool,
) -> bool:
    previous = dispositions.setdefault(id, disposition)
    if previous is disposition:
        return True
    if override:
        dispositions[id] = disposition
        return True
    return False


def _with_disposition(
    dispositions: dict[int, Disposition], disposition: Disposition
) -> set[int]:
    return {id for id, d in dispositions.items() if d is disposition}


def _clear_disposition(
    dispositions: dict[int, Disposition], disposition: Disposition
) -> None:
    for id in _with_disposition(dispositions, disposition):
        del dispositions[id]


class RecipeQuery:
    def __init__(
        self,
        *,
        name: str = "",
        max_budget: int | None = None,
        min_diners: int | None = None,
        ingredients: dict[int, Disposition] | None = None,
        utensils: dict[int, Disposition] | None = None,
    ) -> None:
        self.name = name
        self.max_budget = max_budget
        self.min_diners = min_diners
        self._ingredients: dict[int, Disposition] = (
            {} if ingredients is None else dict(ingredients)
        )
        self._utensils: dict[int, Disposition] = (
            {} if utensils is None else dict(utensils)
        )

    def __repr__(self) -> str:
        return (
            f"<RecipeQuery(name={self.name!r}, max_budget={self.max_budget}, "
            f"min_diners={self.min_diners}, ingredients={len(self._ingredients)}, "
            f"utensils={len(self._utensils)})>"
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RecipeQuery):
            return NotImplemented
        return (
            self.name == other.name
            and self.max_budget == other.max_budget
            and self.min_diners == other.min_diners
            and self._ingredients == other._ingredients
            and self._utensils == other._utensils
        )

    __hash__ = None  # type: ignore[assignment]

    def copy(self) -> "RecipeQuery":
        return RecipeQuery(
            name=self.name,
            max_budget=self.max_budget,
            min_diners=self.min_diners,
            ingredients=self._ingredients,
            utensils=self._utensils,
        )

    def is_empty(self) -> bool:
        return (
            not self.name
            and self.max_budget is None
            and self.min_diners is None
            and not self._ingredients
            and not self._utensils
        )

    # Ingredients

    def include_ingredient(self, ingredient_id: int, override_ban: bool = False) -> bool:
        """Mark an ingredient as required.

        Returns `False` when the ingredient is banned and `override_ban` is not
        set, leaving the ban in place.
        """
        return _set_disposition(
            self._ingredients, ingredient_id, Disposition.INCLUDED, override_ban
        )

    def ban_ingredient(self, ingredient_id: int, override_include: bool = False) -> bool:
        """Mark an ingredient as banned.

        Returns `False` when the ingredient is included and `override_include`
        is not set, leaving the inclusion in place.
        """
        return _set_disposition(
            self._ingredients, ingredient_id, Disposition.BANNED, override_include
        )

    def forget_ingredient(self, ingredient_id: int) -> bool:
        return self._ingredients.pop(ingredient_id, None) is not None

    def ingredient_disposition(self, ingredient_id: int) -> Disposition | None:
        return self._ingredients.get(ingredient_id)

    def is_ingredient_present(self, ingredient_id: int) -> bool:
        return self._ingredients.get(ingredient_id) is Disposition.INCLUDED

    def is_ingredient_banned(self, ingredient_id: int) -> bool:
        return self._ingredients.get(ingredient_id) is Disposition.BANNED

    def get_present_ingredients(self) -> set[int]:
        return _with_disposition(self._ingredients, Disposition.INCLUDED)

    def get_banned_ingredients(self) -> set[int]:
        return _with_disposition(self._ingredients, Disposition.BANNED)

    def get_queried_ingredients(self) -> set[int]:
        return set(self._ingredients)

    def clear_present_ingredients(self) -> None:
        _clear_disposition(self._ingredients, Disposition.INCLUDED)

    def clear_banned_ingredients(self) -> None:
        _clear_disposition(self._ingredients, Disposition.BANNED)

    def clear_all_ingredients(self) -> None:
        self._ingredients.clear()

    # Utensils

    def include_utensil(self, utensil_id: int, override_ban: bool = False) -> bool:
        return _set_disposition(
            self._utensils, utensil_id, Disposition.INCLUDED, override_ban
        )

    def ban_utensil(self, utensil_id: int, override_include: bool = False) -> bool:
        return _set_disposition(
            self._utensils, utensil_id, Disposition.BANNED, override_include
        )

    def forget_utensil(self, utensil_id: int) -> bool:
        return self._utensils.pop(utensil_id, None) is not None

    def utensil_disposition(self, utensil_id: int) -> Disposition | None:
        return self._utensils.get(utensil_id)

    def is_utensil_present(self, utensil_id: int) -> bool:
        return self._utensils.get(utensil_id) is Disposition.INCLUDED

    def is_utensil_banned(self, utensil_id: int) -> bool:
        return self._utensils.get(utensil_id) is Disposition.BANNED

    def get_present_utensils(self) -> set[int]:
        return _with_disposition(self._utensils, Disposition.INCLUDED)

    def get_banned_utensils(self) -> set[int]:
        return _with_disposition(self._utensils, Disposition.BANNED)

    def get_queried_utensils(self) -> set[int]:
        return set(self._utensils)

    def clear_present_utensils(self) -> None:
        _clear_disposition(self._utensils, Disposition.INCLUDED)

    def clear_banned_utensils(self) -> None:
        _clear_disposition(self._utensils, Disposition.BANNED)

    def clear_all_utensils(self) -> None:
        self._utensils.clear()
