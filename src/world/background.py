"""
Tile-based backgrounds.

A background is a fixed-size grid of tile-index layers over one tileset.
Layers paint in list order, so later layers cover earlier ones.
Supports cell painting and layer management; the grid is never resized.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from core.clock import new_id, utc_timestamp
from core.errors import InvalidTileIndex, LastLayerError, NotFound, ValidationError
from core.grid import CELL_MAX, Grid
from world.tileset import EMPTY_TILE, Tileset


@dataclass
class Layer:
    id: str
    name: str
    grid: Grid
    visible: bool = True

    @classmethod
    def empty(cls, name: str, width: int, height: int) -> "Layer":
        return cls(new_id(), name, Grid(width, height))

    @classmethod
    def from_dict(cls, data: Dict[str, Any], width: int, height: int) -> "Layer":
        if "data" not in data:
            raise ValidationError(f"Layer {data.get('id')!r} has no data")
        return cls(
            id=data.get("id") or new_id(),
            name=data.get("name", ""),
            grid=Grid(width, height, data["data"]),
            visible=bool(data.get("visible", True)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "visible": self.visible,
            "data": self.grid.to_list(),
        }


@dataclass
class Background:
    id: str
    name: str
    width: int
    height: int
    tileset_id: str
    layers: List[Layer] = field(default_factory=list)
    created_at: str = field(default_factory=utc_timestamp)
    updated_at: Optional[str] = None

    def layer(self, layer_id: str) -> Layer:
        for lyr in self.layers:
            if lyr.id == layer_id:
                return lyr
        raise NotFound(f"Layer {layer_id} not found in background {self.id}")

    def layer_position(self, layer_id: str) -> int:
        for i, lyr in enumerate(self.layers):
            if lyr.id == layer_id:
                return i
        raise NotFound(f"Layer {layer_id} not found in background {self.id}")

    def visible_layers(self) -> List[Layer]:
        return [lyr for lyr in self.layers if lyr.visible]

    def touch(self):
        self.updated_at = utc_timestamp()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Background":
        try:
            width = int(data["width"])
            height = int(data["height"])
            bg = cls(
                id=data["id"],
                name=data.get("name", ""),
                width=width,
                height=height,
                tileset_id=data["tilesetId"],
                created_at=data.get("createdAt", ""),
                updated_at=data.get("updatedAt"),
            )
        except KeyError as e:
            raise ValidationError(f"Background record is missing {e}") from e
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Background {data.get('id')!r} has an invalid size: {e}") from e
        bg.layers = [Layer.from_dict(d, width, height) for d in data.get("layers", [])]
        return bg

    def to_dict(self) -> Dict[str, Any]:
        out = {
            "id": self.id,
            "name": self.name,
            "width": self.width,
            "height": self.height,
            "tilesetId": self.tileset_id,
            "layers": [lyr.to_dict() for lyr in self.layers],
            "createdAt": self.created_at,
        }
        if self.updated_at:
            out["updatedAt"] = self.updated_at
        return out


def create_background(name: str, width: int, height: int, tileset: Tileset) -> Background:
    """New background with a single empty layer."""
    if width <= 0 or height <= 0:
        raise ValidationError(f"Background size must be positive, got {width}x{height}")
    bg = Background(new_id(), name, width, height, tileset.id)
    bg.layers.append(Layer.empty("Layer 1", width, height))
    return bg


def check_tile_index(tile_index: int, max_index: Optional[int] = None):
    """Reject negative indices, indices a layer cannot store, and, when
    max_index is given, indices past the tileset."""
    if tile_index < EMPTY_TILE:
        raise InvalidTileIndex(f"Tile index {tile_index} is negative")
    if tile_index > CELL_MAX:
        raise InvalidTileIndex(f"Tile index {tile_index} is larger than {CELL_MAX}")
    if max_index is not None and tile_index > max_index:
        raise InvalidTileIndex(
            f"Tile index {tile_index} exceeds the tileset's {max_index} tiles"
        )


def check_layer_indices(background: Background, max_index: Optional[int] = None):
    """Apply check_tile_index to every painted cell of every layer."""
    for layer in background.layers:
        for _, _, index in layer.grid.nonzero():
            check_tile_index(index, max_index)


def paint_tile(
    background: Background,
    layer_id: str,
    x: int,
    y: int,
    tile_index: int,
    max_index: Optional[int] = None,
) -> bool:
    """Write one cell of one layer. Returns True if the layer changed.

    Out-of-bounds cells are ignored so a drag may leave the canvas mid-stroke.
    tile_index 0 erases. max_index, when given, is the tileset's tile count.
    """
    layer = background.layer(layer_id)
    if not layer.grid.in_bounds(x, y):
        return False
    check_tile_index(tile_index, max_index)
    if layer.grid.get(x, y) == tile_index:
        return False
    layer.grid.set(x, y, tile_index)
    background.touch()
    return True


def paint_stroke(
    background: Background,
    layer_id: str,
    cells: Iterable[Tuple[int, int]],
    tile_index: int,
    max_index: Optional[int] = None,
) -> int:
    """Apply paint_tile to each cell in turn. Returns how many cells changed."""
    changed = 0
    for x, y in cells:
        if paint_tile(background, layer_id, x, y, tile_index, max_index):
            changed += 1
    return changed


def add_layer(background: Background, name: Optional[str] = None) -> Layer:
    layer = Layer.empty(
        name or f"Layer {len(background.layers) + 1}",
        background.width,
        background.height,
    )
    background.layers.append(layer)
    background.touch()
    return layer


def set_layer_visibility(background: Background, layer_id: str, visible: bool) -> Layer:
    layer = background.layer(layer_id)
    if layer.visible != visible:
        layer.visible = visible
        background.touch()
    return layer


def toggle_layer_visibility(background: Background, layer_id: str) -> Layer:
    layer = background.layer(layer_id)
    return set_layer_visibility(background, layer_id, not layer.visible)


def rename_layer(background: Background, layer_id: str, name: str) -> Layer:
    if not name or not name.strip():
        raise ValidationError("Layer name is required")
    layer = background.layer(layer_id)
    layer.name = name.strip()
    background.touch()
    return layer


def move_layer(background: Background, layer_id: str, position: int) -> Layer:
    """Move a layer to a new paint-order position (clamped to the list)."""
    current = background.layer_position(layer_id)
    position = max(0, min(position, len(background.layers) - 1))
    layer = background.layers.pop(current)
    background.layers.insert(position, layer)
    if position != current:
        background.touch()
    return layer


def delete_layer(background: Background, layer_id: str) -> Layer:
    position = background.layer_position(layer_id)
    if len(background.layers) <= 1:
        raise LastLayerError(f"Cannot delete the only layer of background {background.id}")
    layer = background.layers.pop(position)
    background.touch()
    return layer


def replace_layers(background: Background, layers: List[Dict[str, Any]]):
    """Swap in a full layer list from the wire, keeping the grid size fixed."""
    if not layers:
        raise ValidationError("A background needs at least one layer")
    background.layers = [
        Layer.from_dict(d, background.width, background.height) for d in layers
    ]
    background.touch()
