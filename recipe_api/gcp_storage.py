from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence, TypeVar

from google.api_core import exceptions as gcloud_exceptions
from google.auth import exceptions as auth_exceptions
from google.cloud import firestore
from google.cloud.firestore_v1.field_path import FieldPath

from .models import Recipe
from .storage import RecipeRepository, RecipeStorageError

logger = logging.getLogger(__name__)

# Firestore rejects batched writes with more operations than this.
MAX_BATCH_WRITES = 500

T = TypeVar("T")


def _chunks(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


def _field_updates(document: Dict[str, Any]) -> Dict[str, Any]:
    # update() reads keys as field paths, so each top-level key is quoted.
    return {FieldPath(key).to_api_repr(): value for key, value in document.items()}


@contextmanager
def _store_call(action: str) -> Iterator[None]:
    try:
        yield
    except (gcloud_exceptions.GoogleAPIError, auth_exceptions.GoogleAuthError) as exc:
        logger.error("Firestore call failed while trying to %s: %s", action, exc)
        raise RecipeStorageError(f"Failed to {action}: {exc}") from exc


class FirestoreRecipeStorage(RecipeRepository):
    """Recipe storage backed by a single Firestore collection."""

    def __init__(
        self,
        *,
        project: Optional[str] = None,
        database: Optional[str] = None,
        collection_name: str = "recipes",
        client: Optional[firestore.Client] = None,
    ) -> None:
        self._project = project
        self._collection_name = collection_name

        if client is None:
            client = firestore.Client(project=project, database=database)
        self._firestore_client = client
        self._collection = self._firestore_client.collection(collection_name)

    @classmethod
    def from_env(cls) -> "FirestoreRecipeStorage":
        """Build a storage instance from environment variables."""

        project = os.environ.get("GCP_PROJECT")
        database = os.environ.get("FIRESTORE_DATABASE")
        collection_name = os.environ.get("RECIPES_COLLECTION", "recipes")
        logger.info(
            "Connecting to Firestore collection '%s' (project=%s, database=%s)",
            collection_name,
            project or "<default>",
            database or "(default)",
        )
        return cls(project=project, database=database, collection_name=collection_name)

    def list_recipes(self) -> List[Recipe]:
        with _store_call("list recipes"):
            snapshots = list(self._collection.stream())
        return [self._snapshot_to_recipe(snapshot) for snapshot in snapshots]

    def get_recipe(self, recipe_id: str) -> Recipe:
        with _store_call(f"load recipe '{recipe_id}'"):
            snapshot = self._collection.document(recipe_id).get()

        if not snapshot.exists:
            raise KeyError(f"Recipe '{recipe_id}' does not exist.")

        return self._snapshot_to_recipe(snapshot)

    def add_recipe(self, document: Dict[str, Any]) -> Recipe:
        doc_ref = self._collection.document()
        with _store_call("create recipe"):
            doc_ref.set(document)
            snapshot = doc_ref.get()
        return self._snapshot_to_recipe(snapshot)

    def update_recipe(self, recipe_id: str, document: Dict[str, Any]) -> Recipe:
        doc_ref = self._collection.document(recipe_id)

        with _store_call(f"update recipe '{recipe_id}'"):
            try:
                if document:
                    doc_ref.update(_field_updates(document))
                snapshot = doc_ref.get()
            except gcloud_exceptions.NotFound:
                raise KeyError(f"Recipe '{recipe_id}' does not exist.") from None

        if not snapshot.exists:
            raise KeyError(f"Recipe '{recipe_id}' does not exist.")

        return self._snapshot_to_recipe(snapshot)

    def delete_recipe(self, recipe_id: str) -> None:
        doc_ref = self._collection.document(recipe_id)

        with _store_call(f"delete recipe '{recipe_id}'"):
            snapshot = doc_ref.get()
            if not snapshot.exists:
                raise KeyError(f"Recipe '{recipe_id}' does not exist.")
            doc_ref.delete()

    def import_recipes(self, documents: Sequence[Dict[str, Any]]) -> List[Recipe]:
        imported: List[Recipe] = []

        with _store_call("import recipes"):
            for chunk in _chunks(documents, MAX_BATCH_WRITES):
                batch = self._firestore_client.batch()
                pending: List[Recipe] = []
                for document in chunk:
                    doc_ref = self._collection.document()
                    batch.set(doc_ref, document)
                    pending.append(Recipe.from_document(doc_ref.id, document))
                batch.commit()
                imported.extend(pending)

        logger.info("Imported %d recipes into '%s'", len(imported), self._collection_name)
        return imported

    def delete_all_recipes(self) -> int:
        deleted = 0

        with _store_call("delete all recipes"):
            doc_refs = list(self._collection.list_documents())
            for chunk in _chunks(doc_refs, MAX_BATCH_WRITES):
                batch = self._firestore_client.batch()
                for doc_ref in chunk:
                    batch.delete(doc_ref)
                batch.commit()
                deleted += len(chunk)

        logger.info("Deleted %d recipes from '%s'", deleted, self._collection_name)
        return deleted

    def close(self) -> None:
        self._firestore_client.close()

    def _snapshot_to_recipe(self, snapshot: firestore.DocumentSnapshot) -> Recipe:
        data = snapshot.to_dict() or {}
        return Recipe.from_document(snapshot.id, data)


__all__ = ["FirestoreRecipeStorage", "MAX_BATCH_WRITES"]
