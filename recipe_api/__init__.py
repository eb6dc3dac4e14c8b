import logging
import os
from typing import Any, Dict, Optional, Tuple

from flask import Flask, Response, jsonify, request
from pydantic import ValidationError
from werkzeug.exceptions import BadRequest, HTTPException

from .gcp_storage import FirestoreRecipeStorage
from .importer import DEFAULT_IMPORT_FILE, load_import_documents, recipe_documents
from .models import Recipe, RecipePayload, is_valid_recipe_id
from .storage import RecipeRepository, RecipeStorageError

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Origin, X-Requested-With, Content-Type, Accept",
    "Access-Control-Allow-Methods": "PUT, POST, GET, DELETE, OPTIONS",
}


def create_app(storage: Optional[RecipeRepository] = None) -> Flask:
    """Create and configure the Flask application.

    Parameters
    ----------
    storage:
        Optional recipe repository. When ``None`` the application will use
        :class:`FirestoreRecipeStorage` configured through environment variables.
        The caller owns the repository and is responsible for closing it.
    """

    app = Flask(__name__)
    app.config.setdefault("MAX_CONTENT_LENGTH", 16 * 1024 * 1024)
    app.config.setdefault(
        "RECIPES_IMPORT_FILE",
        os.environ.get("RECIPES_IMPORT_FILE", str(DEFAULT_IMPORT_FILE)),
    )

    if storage is None:
        storage = FirestoreRecipeStorage.from_env()
    app.config["RECIPE_STORAGE"] = storage

    @app.after_request
    def add_cors_headers(response: Response) -> Response:
        for name, value in CORS_HEADERS.items():
            response.headers[name] = value
        return response

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        error = exc.name.lower().replace(" ", "_")
        response, status = _error_response(exc.code or 500, error, exc.description)
        valid_methods = getattr(exc, "valid_methods", None)
        if valid_methods:
            response.headers["Allow"] = ", ".join(valid_methods)
        return response, status

    @app.errorhandler(ValidationError)
    def handle_validation_error(exc: ValidationError):
        details = [
            {"loc": list(err["loc"]), "msg": err["msg"], "type": err["type"]}
            for err in exc.errors()
        ]
        logger.debug("Rejected recipe payload: %s", details)
        return _error_response(400, "bad_request", "Recipe payload is invalid.", details)

    @app.errorhandler(RecipeStorageError)
    def handle_storage_error(exc: RecipeStorageError):
        logger.error("%s %s failed: %s", request.method, request.path, exc, exc_info=exc)
        return _error_response(500, "storage_error", str(exc))

    @app.get("/")
    def index() -> Response:
        return Response("Ahoy there", mimetype="text/plain")

    @app.get("/api/recipes")
    def list_recipes():
        storage_backend: RecipeRepository = app.config["RECIPE_STORAGE"]
        recipes = storage_backend.list_recipes()
        return jsonify([recipe.to_dict() for recipe in recipes])

    @app.get("/api/recipes/<recipe_id>")
    def get_recipe(recipe_id: str):
        storage_backend: RecipeRepository = app.config["RECIPE_STORAGE"]
        _check_recipe_id(recipe_id)

        try:
            recipe = storage_backend.get_recipe(recipe_id)
        except KeyError:
            return _recipe_not_found(recipe_id)

        return jsonify(recipe.to_dict())

    @app.post("/api/recipes")
    def create_recipe():
        storage_backend: RecipeRepository = app.config["RECIPE_STORAGE"]
        payload = _recipe_payload()

        new_recipe = storage_backend.add_recipe(payload.to_document())
        logger.info("Created recipe %s", new_recipe.id)
        return jsonify(new_recipe.to_dict()), 201

    @app.put("/api/recipes/<recipe_id>")
    def update_recipe(recipe_id: str):
        storage_backend: RecipeRepository = app.config["RECIPE_STORAGE"]
        _check_recipe_id(recipe_id)
        payload = _recipe_payload()

        try:
            updated_recipe = storage_backend.update_recipe(recipe_id, payload.to_document())
        except KeyError:
            return _recipe_not_found(recipe_id)

        logger.info("Updated recipe %s", recipe_id)
        return jsonify(updated_recipe.to_dict())

    @app.delete("/api/recipes/<recipe_id>")
    def delete_recipe(recipe_id: str):
        storage_backend: RecipeRepository = app.config["RECIPE_STORAGE"]
        _check_recipe_id(recipe_id)

        try:
            storage_backend.delete_recipe(recipe_id)
        except KeyError:
            return _recipe_not_found(recipe_id)

        logger.info("Deleted recipe %s", recipe_id)
        return jsonify({"id": recipe_id, "deleted": True})

    @app.get("/api/import")
    def import_fixture_recipes():
        storage_backend: RecipeRepository = app.config["RECIPE_STORAGE"]
        source = app.config["RECIPES_IMPORT_FILE"]

        try:
            documents = load_import_documents(source)
        except (OSError, ValueError) as exc:
            logger.error("Could not read import source %s: %s", source, exc)
            return _error_response(
                500, "import_source_error", f"Could not read import source: {exc}"
            )

        return _import(storage_backend, documents)

    @app.post("/api/import")
    def import_posted_recipes():
        storage_backend: RecipeRepository = app.config["RECIPE_STORAGE"]
        items = _json_body()

        if not isinstance(items, list) or not all(isinstance(item, dict) for item in items):
            raise BadRequest("Request body must be a JSON array of recipe objects.")

        return _import(storage_backend, recipe_documents(items))

    @app.get("/api/killall")
    def delete_all_recipes():
        storage_backend: RecipeRepository = app.config["RECIPE_STORAGE"]
        deleted = storage_backend.delete_all_recipes()
        return jsonify({"deleted": deleted})

    return app


def _import(storage_backend: RecipeRepository, documents) -> Tuple[Response, int]:
    imported = storage_backend.import_recipes(documents)
    return jsonify({"imported": len(imported), "recipes": [r.to_dict() for r in imported]}), 201


def _json_body() -> Any:
    data = request.get_json(force=True, silent=True)
    if data is None:
        raise BadRequest("Request body must be valid JSON.")
    return data


def _recipe_payload() -> RecipePayload:
    data = _json_body()
    if not isinstance(data, dict):
        raise BadRequest("Request body must be a JSON object.")
    return RecipePayload.model_validate(data)


def _check_recipe_id(recipe_id: str) -> None:
    if not is_valid_recipe_id(recipe_id):
        raise BadRequest(f"'{recipe_id}' is not a valid recipe identifier.")


def _recipe_not_found(recipe_id: str) -> Tuple[Response, int]:
    logger.warning("Recipe %s not found", recipe_id)
    return _error_response(404, "not_found", f"Recipe '{recipe_id}' does not exist.")


def _error_response(
    status: int, error: str, message: str, details: Optional[Any] = None
) -> Tuple[Response, int]:
    body: Dict[str, Any] = {"error": error, "message": message}
    if details is not None:
        body["details"] = details
    return jsonify(body), status


__all__ = ["create_app", "Recipe", "RecipePayload", "RecipeStorageError"]
