"""
Tileset, background, layer and paint endpoints.
"""

import io

from flask import Blueprint, jsonify, send_file

from api.common import flag, get_repository, parse_body
from api.schemas import (
    BackgroundRequest,
    BackgroundUpdateRequest,
    LayerCreateRequest,
    LayerUpdateRequest,
    PaintRequest,
    TilesetRequest,
)

tilemaps_bp = Blueprint("tilemaps", __name__, url_prefix="/api/games/<game>")


# ============ TILESETS ============


@tilemaps_bp.route("/tilesets", methods=["POST"])
def create_tileset(game):
    body = parse_body(TilesetRequest)
    tile_height = body.tile_height if body.tile_height is not None else body.tile_width
    tileset = get_repository(game).create_tileset(
        body.name, body.image_id, body.tile_width, tile_height
    )
    return jsonify(tileset.to_dict())


@tilemaps_bp.route("/tilesets/<tileset_id>/tiles/<int:index>", methods=["GET"])
def get_tile_rect(game, tileset_id, index):
    rect = get_repository(game).tile_rect(tileset_id, index)
    return jsonify({"index": index, "rect": rect.to_dict() if rect else None})


@tilemaps_bp.route("/tilesets/<tileset_id>", methods=["DELETE"])
def delete_tileset(game, tileset_id):
    removed = get_repository(game).delete_tileset(tileset_id, cascade=flag("cascade"))
    return jsonify({"success": True, "deletedBackgrounds": removed})


# ============ BACKGROUNDS ============


@tilemaps_bp.route("/backgrounds", methods=["POST"])
def create_background(game):
    body = parse_body(BackgroundRequest)
    bg = get_repository(game).create_background(
        body.name, body.width, body.height, body.tileset_id
    )
    return jsonify(bg.to_dict())


@tilemaps_bp.route("/backgrounds/<background_id>", methods=["PUT"])
def update_background(game, background_id):
    body = parse_body(BackgroundUpdateRequest)
    changes = body.model_dump(by_alias=True, exclude_unset=True)
    bg = get_repository(game).update_background(background_id, changes)
    return jsonify(bg.to_dict())


@tilemaps_bp.route("/backgrounds/<background_id>", methods=["DELETE"])
def delete_background(game, background_id):
    get_repository(game).delete_background(background_id)
    return jsonify({"success": True})


@tilemaps_bp.route("/backgrounds/<background_id>/render.png", methods=["GET"])
def render_background(game, background_id):
    image = get_repository(game).render_background(background_id)
    buf = io.BytesIO()
    image.save(buf, format="PNG")
    buf.seek(0)
    return send_file(buf, mimetype="image/png")


# ============ LAYERS ============


@tilemaps_bp.route("/backgrounds/<background_id>/layers", methods=["POST"])
def add_layer(game, background_id):
    body = parse_body(LayerCreateRequest)
    bg, layer = get_repository(game).add_layer(background_id, body.name)
    return jsonify({"layer": layer.to_dict(), "background": bg.to_dict()})


@tilemaps_bp.route("/backgrounds/<background_id>/layers/<layer_id>", methods=["PATCH"])
def update_layer(game, background_id, layer_id):
    body = parse_body(LayerUpdateRequest)
    repo = get_repository(game)
    if body.toggle:
        bg = repo.toggle_layer(background_id, layer_id)
    else:
        bg = repo.update_layer(
            background_id,
            layer_id,
            visible=body.visible,
            name=body.name,
            position=body.position,
        )
    return jsonify(bg.to_dict())


@tilemaps_bp.route("/backgrounds/<background_id>/layers/<layer_id>", methods=["DELETE"])
def delete_layer(game, background_id, layer_id):
    bg = get_repository(game).delete_layer(background_id, layer_id)
    return jsonify(bg.to_dict())


@tilemaps_bp.route("/backgrounds/<background_id>/layers/<layer_id>/paint", methods=["POST"])
def paint(game, background_id, layer_id):
    body = parse_body(PaintRequest)
    repo = get_repository(game)
    if body.cells is not None:
        bg, changed = repo.paint_cells(background_id, layer_id, body.cells, body.tile)
    else:
        bg, changed = repo.paint(background_id, layer_id, body.x, body.y, body.tile)
    return jsonify({"changed": changed, "background": bg.to_dict()})
