"""
Media records stored in the project document: images, sounds and animations.
Each owns a binary file in the matching project folder.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from core.clock import new_id, utc_timestamp
from core.errors import ValidationError

IMAGES_FOLDER = "images"
SOUNDS_FOLDER = "sounds"
ANIMATIONS_FOLDER = "animations"

BLOB_FOLDERS = (IMAGES_FOLDER, SOUNDS_FOLDER, ANIMATIONS_FOLDER)


def _require(data: Dict[str, Any], key: str, kind: str):
    if key not in data:
        raise ValidationError(f"{kind} record is missing '{key}'")
    return data[key]


@dataclass
class ImageAsset:
    id: str
    name: str
    filename: str
    width: int
    height: int
    created_at: str = field(default_factory=utc_timestamp)

    @classmethod
    def new(cls, name: str, extension: str, width: int, height: int) -> "ImageAsset":
        asset_id = new_id()
        return cls(asset_id, name, f"{asset_id}{extension}", width, height)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ImageAsset":
        return cls(
            id=_require(data, "id", "Image"),
            name=data.get("name", ""),
            filename=_require(data, "filename", "Image"),
            width=int(_require(data, "width", "Image")),
            height=int(_require(data, "height", "Image")),
            created_at=data.get("createdAt", ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "filename": self.filename,
            "width": self.width,
            "height": self.height,
            "createdAt": self.created_at,
        }


@dataclass
class SoundAsset:
    id: str
    name: str
    filename: str
    format: str
    created_at: str = field(default_factory=utc_timestamp)

    @classmethod
    def new(cls, name: str, extension: str) -> "SoundAsset":
        asset_id = new_id()
        return cls(asset_id, name, f"{asset_id}{extension}", extension.lstrip("."))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SoundAsset":
        return cls(
            id=_require(data, "id", "Sound"),
            name=data.get("name", ""),
            filename=_require(data, "filename", "Sound"),
            format=data.get("format", ""),
            created_at=data.get("createdAt", ""),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "filename": self.filename,
            "format": self.format,
            "createdAt": self.created_at,
        }


@dataclass
class Animation:
    id: str
    name: str
    filename: str
    frame_width: int
    frame_height: int
    frame_count: int
    frame_duration: float = 0.1
    loop: bool = True
    source_images: List[str] = field(default_factory=list)
    created_at: str = field(default_factory=utc_timestamp)
    updated_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Animation":
        return cls(
            id=_require(data, "id", "Animation"),
            name=data.get("name", ""),
            filename=_require(data, "filename", "Animation"),
            frame_width=int(data.get("frameWidth", 0)),
            frame_height=int(data.get("frameHeight", 0)),
            frame_count=int(data.get("frameCount", 0)),
            frame_duration=float(data.get("frameDuration", 0.1)),
            loop=bool(data.get("loop", True)),
            source_images=list(data.get("sourceImages", [])),
            created_at=data.get("createdAt", ""),
            updated_at=data.get("updatedAt"),
        )

    def to_dict(self) -> Dict[str, Any]:
        out = {
            "id": self.id,
            "name": self.name,
            "filename": self.filename,
            "frameWidth": self.frame_width,
            "frameHeight": self.frame_height,
            "frameCount": self.frame_count,
            "frameDuration": self.frame_duration,
            "loop": self.loop,
            "sourceImages": list(self.source_images),
            "createdAt": self.created_at,
        }
        if self.updated_at:
            out["updatedAt"] = self.updated_at
        return out
