"""
The per-project JSON document and its revision token.
"""

import copy
import hashlib
import json
from typing import Any, Dict

from core.errors import ValidationError

COLLECTIONS = (
    "images",
    "sounds",
    "animations",
    "objects",
    "tilesets",
    "backgrounds",
)


def empty_document(name: str) -> Dict[str, Any]:
    doc: Dict[str, Any] = {"name": name, "description": ""}
    for key in COLLECTIONS:
        doc[key] = []
    return doc


def normalize_document(data: Any, project: str) -> Dict[str, Any]:
    """Fill in the studio fields a hand-written game.json may lack.
    Unknown top-level keys are kept."""
    if not isinstance(data, dict):
        raise ValidationError("Project document must be a JSON object")
    doc = copy.deepcopy(data)
    doc["name"] = doc.get("name") or project
    doc["description"] = doc.get("description") or ""
    for key in COLLECTIONS:
        value = doc.get(key)
        if value is None:
            doc[key] = []
        elif not isinstance(value, list):
            raise ValidationError(f"'{key}' must be a list")
    return doc


def encode_document(doc: Dict[str, Any]) -> str:
    return json.dumps(doc, indent=2)


def revision(doc: Dict[str, Any]) -> str:
    """Content hash of a document, used as its ETag."""
    canonical = json.dumps(doc, sort_keys=True, separators=(",", ":"))
    return hashlib.sha1(canonical.encode("utf-8")).hexdigest()


def find_by_id(doc: Dict[str, Any], collection: str, item_id: str):
    for item in doc.get(collection, []):
        if item.get("id") == item_id:
            return item
    return None
