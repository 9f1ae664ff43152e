"""
Image, sound and animation endpoints.
"""

import base64
import binascii
import logging
import os
import re
from typing import Tuple
from urllib.parse import urlparse

import requests
from flask import Blueprint, jsonify, request

from api.common import get_repository, parse_body
from api.schemas import AnimationRequest, AnimationUpdateRequest, FromUrlRequest
from core.clock import utc_timestamp
from core.errors import IOFailure, ValidationError

logger = logging.getLogger(__name__)

media_bp = Blueprint("media", __name__, url_prefix="/api/games/<game>")

DATA_URL = re.compile(r"^data:([^;,]+);base64,(.+)$", re.DOTALL)
FETCH_TIMEOUT = 30


def fetch_url(url: str) -> Tuple[bytes, str]:
    """Return (payload, mime type) for a data: URL or an http(s) URL."""
    if url.startswith("data:"):
        match = DATA_URL.match(url)
        if not match:
            raise ValidationError("Invalid data URL")
        try:
            return base64.b64decode(match.group(2), validate=False), match.group(1)
        except (binascii.Error, ValueError) as e:
            raise ValidationError(f"Invalid base64 payload: {e}") from e

    if urlparse(url).scheme not in ("http", "https"):
        raise ValidationError("Only data:, http: and https: URLs are supported")
    try:
        resp = requests.get(url, timeout=FETCH_TIMEOUT)
        resp.raise_for_status()
    except requests.RequestException as e:
        raise IOFailure(f"Could not fetch {url}: {e}") from e
    mime = resp.headers.get("Content-Type", "").split(";")[0].strip()
    return resp.content, mime


def sound_extension(mime: str, url: str) -> str:
    if "wav" in mime:
        return ".wav"
    if "ogg" in mime:
        return ".ogg"
    if mime.startswith("audio/") or url.startswith("data:"):
        return ".mp3"
    ext = os.path.splitext(urlparse(url).path)[1].lower()
    return ext if ext in (".wav", ".ogg", ".mp3") else ".mp3"


def _uploaded_file(field: str):
    upload = request.files.get(field)
    if upload is None or not upload.filename:
        raise ValidationError(f"No {field} file uploaded")
    return upload


# ============ IMAGES ============


@media_bp.route("/images", methods=["POST"])
def upload_image(game):
    upload = _uploaded_file("image")
    image = get_repository(game).add_image(
        upload.read(), upload.filename, name=request.form.get("name") or None
    )
    return jsonify(image.to_dict())


@media_bp.route("/images/from-url", methods=["POST"])
def upload_image_from_url(game):
    body = parse_body(FromUrlRequest)
    data, _ = fetch_url(body.url)
    image = get_repository(game).add_image(
        data,
        "generated.png",
        name=body.name or f"generated-{utc_timestamp()}",
        as_png=True,
    )
    return jsonify(image.to_dict())


@media_bp.route("/images/<image_id>", methods=["DELETE"])
def delete_image(game, image_id):
    get_repository(game).delete_image(image_id)
    return jsonify({"success": True})


# ============ SOUNDS ============


@media_bp.route("/sounds", methods=["POST"])
def upload_sound(game):
    upload = _uploaded_file("sound")
    sound = get_repository(game).add_sound(
        upload.read(), upload.filename, name=request.form.get("name") or None
    )
    return jsonify(sound.to_dict())


@media_bp.route("/sounds/from-url", methods=["POST"])
def upload_sound_from_url(game):
    body = parse_body(FromUrlRequest)
    data, mime = fetch_url(body.url)
    sound = get_repository(game).add_sound(
        data,
        "",
        name=body.name or f"generated-{utc_timestamp()}",
        extension=sound_extension(mime, body.url),
    )
    return jsonify(sound.to_dict())


@media_bp.route("/sounds/<sound_id>", methods=["DELETE"])
def delete_sound(game, sound_id):
    get_repository(game).delete_sound(sound_id)
    return jsonify({"success": True})


# ============ ANIMATIONS ============


@media_bp.route("/animations", methods=["POST"])
def create_animation(game):
    body = parse_body(AnimationRequest)
    anim = get_repository(game).create_animation(
        body.name, body.image_ids, body.frame_duration, body.loop
    )
    return jsonify(anim.to_dict())


@media_bp.route("/animations/<animation_id>", methods=["PUT"])
def update_animation(game, animation_id):
    body = parse_body(AnimationUpdateRequest)
    anim = get_repository(game).update_animation(
        animation_id,
        name=body.name,
        image_ids=body.image_ids,
        frame_duration=body.frame_duration,
        loop=body.loop,
    )
    return jsonify(anim.to_dict())


@media_bp.route("/animations/<animation_id>", methods=["DELETE"])
def delete_animation(game, animation_id):
    get_repository(game).delete_animation(animation_id)
    return jsonify({"success": True})
