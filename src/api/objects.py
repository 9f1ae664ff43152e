"""
Object and object-state endpoints.
"""

from flask import Blueprint, jsonify

from api.common import get_repository, parse_body
from api.schemas import ObjectRequest, StateRequest
from entities.objects import visual_from_wire

objects_bp = Blueprint("objects", __name__, url_prefix="/api/games/<game>/objects")


@objects_bp.route("", methods=["GET"])
def list_objects(game):
    return jsonify([obj.to_dict() for obj in get_repository(game).list_objects()])


@objects_bp.route("", methods=["POST"])
def create_object(game):
    body = parse_body(ObjectRequest)
    return jsonify(get_repository(game).create_object(body.name).to_dict())


@objects_bp.route("/<object_id>", methods=["PUT"])
def rename_object(game, object_id):
    body = parse_body(ObjectRequest)
    return jsonify(get_repository(game).rename_object(object_id, body.name).to_dict())


@objects_bp.route("/<object_id>", methods=["DELETE"])
def delete_object(game, object_id):
    get_repository(game).delete_object(object_id)
    return jsonify({"success": True})


@objects_bp.route("/<object_id>/states", methods=["POST"])
def add_state(game, object_id):
    body = parse_body(ObjectRequest)
    return jsonify(get_repository(game).add_state(object_id, body.name).to_dict())


@objects_bp.route("/<object_id>/states/<state_id>", methods=["PUT"])
def update_state(game, object_id, state_id):
    body = parse_body(StateRequest)
    sent = body.model_fields_set
    changes = {}
    if "name" in sent:
        changes["name"] = body.name
    if "visual_type" in sent or "visual_id" in sent:
        changes["visual"] = visual_from_wire(body.visual_type, body.visual_id)
    if "sound_id" in sent:
        changes["soundId"] = body.sound_id
    state = get_repository(game).update_state(object_id, state_id, changes)
    return jsonify(state.to_dict())


@objects_bp.route("/<object_id>/states/<state_id>", methods=["DELETE"])
def delete_state(game, object_id, state_id):
    get_repository(game).delete_state(object_id, state_id)
    return jsonify({"success": True})
