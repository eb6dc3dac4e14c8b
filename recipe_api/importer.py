"""Sources of recipes for the bulk import endpoint."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Union

from .models import RecipePayload

logger = logging.getLogger(__name__)

DEFAULT_IMPORT_FILE = Path(__file__).resolve().parent / "data" / "recipes.json"


def recipe_documents(items: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Validate raw recipe objects and return the documents to store.

    Raises :class:`pydantic.ValidationError` for the first invalid item.
    """

    return [RecipePayload.model_validate(item).to_document() for item in items]


def load_import_documents(path: Union[str, Path]) -> List[Dict[str, Any]]:
    """Read the JSON array of recipes stored in ``path``."""

    with open(path, encoding="utf-8") as handle:
        items = json.load(handle)

    if not isinstance(items, list) or not all(isinstance(item, dict) for item in items):
        raise ValueError(f"{path} must contain a JSON array of recipe objects.")

    logger.debug("Loaded %d recipes from %s", len(items), path)
    return recipe_documents(items)


__all__ = ["DEFAULT_IMPORT_FILE", "load_import_documents", "recipe_documents"]
