"""Editing a recipe across several steps.

An `EditSession` owns the draft being edited. It is created when editing
starts and handed to each step, then committed to the store once.
"""

from typing import Protocol, TypeVar, TYPE_CHECKING

from domain.errors import NotFound
from domain.models import Recipe

if TYPE_CHECKING:
    from db import RecipesRepository


E_contra = TypeVar("E_contra", contravariant=True)


class RecipeListener(Protocol[E_contra]):
    """Consumer of `(id, entity)` events, e.g. a card or list row being picked."""

    def __call__(self, id: int, entity: E_contra) -> None:
        ...


class EditSession:
    def __init__(
        self,
        draft: Recipe | None = None,
        *,
        id: int | None = None,
        on_commit: RecipeListener[Recipe] | None = None,
    ) -> None:
        self.id = id
        self.draft = Recipe() if draft is None else draft
        self.on_commit = on_commit

    def __repr__(self) -> str:
        return f"<EditSession(id={self.id}, draft={self.draft!r})>"

    @classmethod
    async def begin(
        cls,
        recipes: "RecipesRepository",
        id: int | None = None,
        *,
        on_commit: RecipeListener[Recipe] | None = None,
    ) -> "EditSession":
        """Start editing a stored recipe, or a new one when `id` is None.

        The draft is a copy, so the stored recipe is untouched until `commit`.
        """
        if id is None:
            return cls(on_commit=on_commit)
        recipe = await recipes.get_by_id(id)
        if recipe is None:
            raise NotFound(f"Recipe {id}")
        return cls(recipe.copy(), id=id, on_commit=on_commit)

    @property
    def is_new(self) -> bool:
        return self.id is None

    async def commit(self, recipes: "RecipesRepository") -> int:
        if self.id is None:
            self.id = await recipes.insert(self.draft)
        else:
            await recipes.update(self.id, self.draft)
        if self.on_commit is not None:
            self.on_commit(self.id, self.draft)
        return self.id
