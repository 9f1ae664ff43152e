"""
Flask application factory for the studio API.
"""

import logging
from typing import Optional

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from config import CONFIG, StudioConfig
from core.errors import StudioError
from data.store import FileProjectStore, ProjectStore

logger = logging.getLogger(__name__)


def create_app(config: Optional[StudioConfig] = None, store: Optional[ProjectStore] = None) -> Flask:
    config = config or CONFIG
    app = Flask(__name__)
    app.config["STUDIO_CONFIG"] = config
    app.config["STUDIO_STORE"] = store or FileProjectStore(config.games_dir)
    app.config["MAX_CONTENT_LENGTH"] = config.max_upload_mb * 1024 * 1024
    app.json.sort_keys = False

    from api.games import games_bp
    from api.media import media_bp
    from api.objects import objects_bp
    from api.tilemaps import tilemaps_bp

    app.register_blueprint(games_bp)
    app.register_blueprint(media_bp)
    app.register_blueprint(objects_bp)
    app.register_blueprint(tilemaps_bp)

    @app.after_request
    def add_cors_headers(response):
        response.headers["Access-Control-Allow-Origin"] = config.cors_origin
        response.headers["Access-Control-Allow-Headers"] = "Content-Type, If-Match"
        response.headers["Access-Control-Allow-Methods"] = "GET, POST, PUT, PATCH, DELETE, OPTIONS"
        response.headers["Access-Control-Expose-Headers"] = "ETag"
        return response

    @app.errorhandler(StudioError)
    def handle_studio_error(e: StudioError):
        if e.status_code >= 500:
            logger.error("%s: %s", e.__class__.__name__, e.message)
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(e: HTTPException):
        return jsonify({"error": e.description, "type": e.name}), e.code

    @app.errorhandler(Exception)
    def handle_unexpected(e: Exception):
        logger.exception("Unhandled error")
        return jsonify({"error": str(e), "type": "IOFailure"}), 500

    return app
