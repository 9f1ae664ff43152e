"""
Tileset partitioning.

A tileset cuts one source image into a grid of tile_width x tile_height cells,
numbered row-major starting at 1. Index 0 is reserved for "no tile".
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, NamedTuple, Optional

from core.clock import new_id, utc_timestamp
from core.errors import InvalidTileIndex, ValidationError
from entities.media import ImageAsset

logger = logging.getLogger(__name__)

EMPTY_TILE = 0


class Rect(NamedTuple):
    x: int
    y: int
    w: int
    h: int

    def box(self):
        """(left, upper, right, lower) as Pillow expects."""
        return (self.x, self.y, self.x + self.w, self.y + self.h)

    def to_dict(self) -> Dict[str, int]:
        return {"x": self.x, "y": self.y, "w": self.w, "h": self.h}


@dataclass
class Tileset:
    id: str
    name: str
    image_id: str
    tile_width: int
    tile_height: int
    columns: int
    rows: int
    tile_count: int
    created_at: str = field(default_factory=utc_timestamp)

    @property
    def pixel_width(self) -> int:
        return self.columns * self.tile_width

    @property
    def pixel_height(self) -> int:
        return self.rows * self.tile_height

    def contains(self, index: int) -> bool:
        return 1 <= index <= self.tile_count

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Tileset":
        try:
            return cls(
                id=data["id"],
                name=data.get("name", ""),
                image_id=data["imageId"],
                tile_width=int(data["tileWidth"]),
                tile_height=int(data["tileHeight"]),
                columns=int(data["columns"]),
                rows=int(data["rows"]),
                tile_count=int(data["tileCount"]),
                created_at=data.get("createdAt", ""),
            )
        except KeyError as e:
            raise ValidationError(f"Tileset record is missing {e}") from e
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Tileset {data.get('id')!r} has an invalid field: {e}") from e

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "imageId": self.image_id,
            "tileWidth": self.tile_width,
            "tileHeight": self.tile_height,
            "columns": self.columns,
            "rows": self.rows,
            "tileCount": self.tile_count,
            "createdAt": self.created_at,
        }


def create_tileset(
    image: Optional[ImageAsset],
    tile_width: int,
    tile_height: int,
    name: Optional[str] = None,
) -> Tileset:
    """Partition an image into a tileset. Leftover pixels on the right and
    bottom edges are ignored."""
    if image is None:
        raise ValidationError("A source image is required")
    if tile_width <= 0 or tile_height <= 0:
        raise ValidationError(
            f"Tile size must be positive, got {tile_width}x{tile_height}"
        )

    columns = image.width // tile_width
    rows = image.height // tile_height
    if columns == 0 or rows == 0:
        raise ValidationError(
            f"Tile size {tile_width}x{tile_height} is larger than the "
            f"{image.width}x{image.height} image"
        )

    if image.width % tile_width or image.height % tile_height:
        logger.warning(
            "Image %s (%dx%d) does not divide into %dx%d tiles; "
            "%d px right and %d px bottom are unused",
            image.id,
            image.width,
            image.height,
            tile_width,
            tile_height,
            image.width % tile_width,
            image.height % tile_height,
        )

    return Tileset(
        id=new_id(),
        name=name if name is not None else image.name,
        image_id=image.id,
        tile_width=tile_width,
        tile_height=tile_height,
        columns=columns,
        rows=rows,
        tile_count=columns * rows,
    )


def tile_index_to_rect(tileset: Tileset, index: int) -> Optional[Rect]:
    """Source-image rectangle of a tile, or None for the empty tile."""
    if index <= EMPTY_TILE:
        return None
    if index > tileset.tile_count:
        raise InvalidTileIndex(
            f"Tile {index} is outside tileset {tileset.id} ({tileset.tile_count} tiles)"
        )
    col = (index - 1) % tileset.columns
    row = (index - 1) // tileset.columns
    return Rect(
        col * tileset.tile_width,
        row * tileset.tile_height,
        tileset.tile_width,
        tileset.tile_height,
    )


def pixel_to_tile_index(tileset: Tileset, px: int, py: int) -> int:
    # Callers clamp px/py to the tileset image first.
    col = px // tileset.tile_width
    row = py // tileset.tile_height
    return row * tileset.columns + col + 1
