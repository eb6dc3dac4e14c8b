from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, model_validator

RECIPE_FIELDS = ("title", "ingredients", "instructions")
MAX_RECIPE_ID_BYTES = 1500


@dataclass
class Recipe:
    """Domain object representing a stored recipe."""

    id: str
    title: Optional[str] = None
    ingredients: Optional[List[str]] = None
    instructions: Union[str, List[str], None] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_document(cls, doc_id: str, data: Dict[str, Any]) -> "Recipe":
        """Build a recipe from the raw document stored under ``doc_id``."""

        extra = {key: value for key, value in data.items() if key not in RECIPE_FIELDS}
        extra.pop("id", None)
        return cls(
            id=doc_id,
            title=data.get("title"),
            ingredients=data.get("ingredients"),
            instructions=data.get("instructions"),
            extra=extra,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id}
        for name in RECIPE_FIELDS:
            value = getattr(self, name)
            if value is not None:
                data[name] = value
        data.update(self.extra)
        return data


class RecipePayload(BaseModel):
    """Recipe fields accepted from clients on create, update and import.

    Known fields are type checked, anything else is kept as-is. Only the
    fields the client actually sent end up in :meth:`to_document`, which
    makes a PUT with a subset of fields a partial update. Known fields sent
    as ``null`` are treated as not sent.
    """

    model_config = ConfigDict(extra="allow")

    title: Optional[str] = None
    ingredients: Optional[List[str]] = None
    instructions: Union[str, List[str], None] = None

    @model_validator(mode="after")
    def check_field_names(self) -> "RecipePayload":
        if any(not name for name in self.model_extra or {}):
            raise ValueError("Field names must not be empty.")
        return self

    def to_document(self) -> Dict[str, Any]:
        document = {
            name: value
            for name, value in self.model_dump(exclude_unset=True).items()
            if not (name in RECIPE_FIELDS and value is None)
        }
        document.update(self.model_extra or {})
        # Identifiers are assigned by the store.
        document.pop("id", None)
        return document


def is_valid_recipe_id(recipe_id: str) -> bool:
    """Return whether ``recipe_id`` can be used as a document key."""

    if not recipe_id or "/" in recipe_id or recipe_id in {".", ".."}:
        return False
    if recipe_id.startswith("__") and recipe_id.endswith("__"):
        return False
    return len(recipe_id.encode("utf-8")) <= MAX_RECIPE_ID_BYTES


__all__ = ["Recipe", "RecipePayload", "is_valid_recipe_id"]
