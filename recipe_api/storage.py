from __future__ import annotations

from typing import Any, Dict, Iterable, List, Protocol, Sequence

from .models import Recipe


class RecipeStorageError(RuntimeError):
    """Raised when the underlying document store rejects or fails a call."""


class RecipeRepository(Protocol):
    """Protocol describing the behaviour required by the web layer."""

    def list_recipes(self) -> Iterable[Recipe]:
        """Return every stored recipe."""

    def get_recipe(self, recipe_id: str) -> Recipe:
        """Return a single recipe or raise :class:`KeyError` if missing."""

    def add_recipe(self, document: Dict[str, Any]) -> Recipe:
        """Persist a new recipe and return it with its assigned identifier."""

    def update_recipe(self, recipe_id: str, document: Dict[str, Any]) -> Recipe:
        """Merge ``document`` into an existing recipe and return the new state.

        Raises :class:`KeyError` if the recipe does not exist.
        """

    def delete_recipe(self, recipe_id: str) -> None:
        """Remove a recipe or raise :class:`KeyError` if missing."""

    def import_recipes(self, documents: Sequence[Dict[str, Any]]) -> List[Recipe]:
        """Insert a batch of new recipes and return them."""

    def delete_all_recipes(self) -> int:
        """Remove every recipe and return how many were deleted."""

    def close(self) -> None:
        """Release the connection to the store."""


__all__ = ["RecipeRepository", "RecipeStorageError"]
