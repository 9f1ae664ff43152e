"""
Game (project) endpoints and static asset serving.
"""

import io
import mimetypes

from flask import Blueprint, jsonify, request, send_file

from api.common import get_repository, get_store, parse_body
from api.schemas import CreateGameRequest
from core.errors import ValidationError
from data import repository
from data.document import revision

games_bp = Blueprint("games", __name__)


def _if_match():
    value = request.headers.get("If-Match")
    if not value or value.strip() == "*":
        return None
    value = value.strip()
    if value.startswith("W/"):
        value = value[2:]
    return value.strip('"')


@games_bp.route("/api/games", methods=["GET"])
def list_games():
    return jsonify(repository.list_projects(get_store()))


@games_bp.route("/api/games", methods=["POST"])
def create_game():
    body = parse_body(CreateGameRequest)
    doc = repository.create_project(get_store(), body.name)
    return jsonify({"success": True, "name": doc["name"]})


@games_bp.route("/api/games/<game>", methods=["GET"])
def get_game(game):
    doc = get_repository(game).document()
    response = jsonify(doc)
    response.set_etag(revision(doc))
    return response


@games_bp.route("/api/games/<game>", methods=["PUT"])
def save_game(game):
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    doc = get_repository(game).replace_document(payload, _if_match())
    response = jsonify({"success": True})
    response.set_etag(revision(doc))
    return response


@games_bp.route("/assets/<game>/<folder>/<filename>", methods=["GET"])
def get_asset(game, folder, filename):
    data = get_repository(game).read_asset(folder, filename)
    mimetype = mimetypes.guess_type(filename)[0] or "application/octet-stream"
    return send_file(io.BytesIO(data), mimetype=mimetype, download_name=filename)
