from __future__ import annotations

from pathlib import Path
import sys
from unittest.mock import MagicMock, patch

import pytest
from google.api_core import exceptions as gcloud_exceptions

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from recipe_api.gcp_storage import MAX_BATCH_WRITES, FirestoreRecipeStorage
from recipe_api.storage import RecipeStorageError


def make_snapshot(doc_id: str, data: dict | None):
    snapshot = MagicMock()
    snapshot.id = doc_id
    snapshot.exists = data is not None
    snapshot.to_dict.return_value = data
    return snapshot


def make_storage():
    client = MagicMock()
    storage = FirestoreRecipeStorage(collection_name="recipes", client=client)
    collection = client.collection.return_value
    return storage, client, collection


def test_uses_configured_collection():
    _, client, _ = make_storage()

    client.collection.assert_called_once_with("recipes")


def test_from_env_reads_connection_settings(monkeypatch):
    monkeypatch.setenv("GCP_PROJECT", "kitchen")
    monkeypatch.setenv("FIRESTORE_DATABASE", "cookbook")
    monkeypatch.setenv("RECIPES_COLLECTION", "dishes")

    with patch("recipe_api.gcp_storage.firestore.Client") as client_cls:
        FirestoreRecipeStorage.from_env()

    client_cls.assert_called_once_with(project="kitchen", database="cookbook")
    client_cls.return_value.collection.assert_called_once_with("dishes")


def test_list_recipes_maps_documents():
    storage, _, collection = make_storage()
    collection.stream.return_value = iter(
        [
            make_snapshot("a", {"title": "Soup", "ingredients": ["water"], "servings": 2}),
            make_snapshot("b", {"title": "Toast"}),
        ]
    )

    recipes = storage.list_recipes()

    assert [recipe.to_dict() for recipe in recipes] == [
        {"id": "a", "title": "Soup", "ingredients": ["water"], "servings": 2},
        {"id": "b", "title": "Toast"},
    ]


def test_get_recipe_missing_raises_key_error():
    storage, _, collection = make_storage()
    collection.document.return_value.get.return_value = make_snapshot("x", None)

    with pytest.raises(KeyError):
        storage.get_recipe("x")

    collection.document.assert_called_once_with("x")


def test_add_recipe_uses_store_assigned_id():
    storage, _, collection = make_storage()
    doc_ref = collection.document.return_value
    doc_ref.id = "generated-id"
    doc_ref.get.return_value = make_snapshot(
        "generated-id", {"title": "Soup", "ingredients": ["water", "salt"]}
    )

    recipe = storage.add_recipe({"title": "Soup", "ingredients": ["water", "salt"]})

    collection.document.assert_called_once_with()
    doc_ref.set.assert_called_once_with({"title": "Soup", "ingredients": ["water", "salt"]})
    doc_ref.get.assert_called_once_with()
    assert recipe.to_dict() == {
        "id": "generated-id",
        "title": "Soup",
        "ingredients": ["water", "salt"],
    }


def test_update_recipe_merges_and_rereads():
    storage, _, collection = make_storage()
    doc_ref = collection.document.return_value
    doc_ref.get.return_value = make_snapshot("abc", {"title": "New", "ingredients": ["x"]})

    recipe = storage.update_recipe("abc", {"title": "New"})

    doc_ref.update.assert_called_once_with({"title": "New"})
    assert recipe.title == "New"
    assert recipe.ingredients == ["x"]


def test_update_quotes_dotted_field_names():
    storage, _, collection = make_storage()
    doc_ref = collection.document.return_value
    doc_ref.get.return_value = make_snapshot("abc", {"title": "Soup", "prep.time": 5})

    recipe = storage.update_recipe("abc", {"title": "Soup", "prep.time": 5})

    doc_ref.update.assert_called_once_with({"title": "Soup", "`prep.time`": 5})
    assert recipe.to_dict() == {"id": "abc", "title": "Soup", "prep.time": 5}


@pytest.mark.parametrize("name", ["a~b", "x*y", "a/b", "[step]"])
def test_update_quotes_field_names_with_special_characters(name):
    storage, _, collection = make_storage()
    doc_ref = collection.document.return_value
    doc_ref.get.return_value = make_snapshot("abc", {name: 1})

    storage.update_recipe("abc", {name: 1})

    doc_ref.update.assert_called_once_with({f"`{name}`": 1})


def test_update_missing_recipe_raises_key_error():
    storage, _, collection = make_storage()
    collection.document.return_value.update.side_effect = gcloud_exceptions.NotFound("gone")

    with pytest.raises(KeyError):
        storage.update_recipe("abc", {"title": "New"})


def test_delete_recipe_checks_existence():
    storage, _, collection = make_storage()
    doc_ref = collection.document.return_value
    doc_ref.get.return_value = make_snapshot("abc", None)

    with pytest.raises(KeyError):
        storage.delete_recipe("abc")

    doc_ref.delete.assert_not_called()


def test_delete_recipe_removes_document():
    storage, _, collection = make_storage()
    doc_ref = collection.document.return_value
    doc_ref.get.return_value = make_snapshot("abc", {"title": "Soup"})

    storage.delete_recipe("abc")

    doc_ref.delete.assert_called_once_with()


def test_import_recipes_commits_in_batches():
    storage, client, collection = make_storage()
    documents = [{"title": f"Recipe {n}"} for n in range(MAX_BATCH_WRITES + 1)]

    imported = storage.import_recipes(documents)

    assert len(imported) == MAX_BATCH_WRITES + 1
    assert client.batch.call_count == 2
    assert client.batch.return_value.set.call_count == MAX_BATCH_WRITES + 1
    assert client.batch.return_value.commit.call_count == 2


def test_delete_all_recipes_returns_count():
    storage, client, collection = make_storage()
    collection.list_documents.return_value = iter([MagicMock() for _ in range(3)])

    deleted = storage.delete_all_recipes()

    assert deleted == 3
    assert client.batch.return_value.delete.call_count == 3
    client.batch.return_value.commit.assert_called_once_with()


def test_delete_all_recipes_on_empty_collection_skips_commit():
    storage, client, collection = make_storage()
    collection.list_documents.return_value = iter([])

    assert storage.delete_all_recipes() == 0
    client.batch.assert_not_called()


def test_store_failures_are_wrapped():
    storage, _, collection = make_storage()
    collection.stream.side_effect = gcloud_exceptions.ServiceUnavailable("unreachable")

    with pytest.raises(RecipeStorageError) as excinfo:
        storage.list_recipes()

    assert isinstance(excinfo.value.__cause__, gcloud_exceptions.ServiceUnavailable)


def test_close_releases_client():
    storage, client, _ = make_storage()

    storage.close()

    client.close.assert_called_once_with()
