"""
Helpers shared by the API blueprints.
"""

from typing import Type, TypeVar

import pydantic
from flask import current_app, request

from core.errors import ValidationError
from data.repository import ProjectRepository
from data.store import ProjectStore

M = TypeVar("M", bound=pydantic.BaseModel)


def get_store() -> ProjectStore:
    return current_app.config["STUDIO_STORE"]


def get_repository(game: str) -> ProjectRepository:
    config = current_app.config["STUDIO_CONFIG"]
    return ProjectRepository(
        get_store(),
        game,
        strict_tile_indices=config.strict_tile_indices,
        default_frame_duration=config.default_frame_duration,
    )


def parse_body(model: Type[M]) -> M:
    """Validate the JSON body against a request model."""
    payload = request.get_json(silent=True)
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    try:
        return model.model_validate(payload)
    except pydantic.ValidationError as e:
        first = e.errors()[0]
        where = ".".join(str(p) for p in first.get("loc", ())) or "body"
        raise ValidationError(f"{where}: {first.get('msg', 'invalid value')}") from e


def flag(name: str) -> bool:
    return request.args.get(name, "").lower() in ("1", "true", "yes")
