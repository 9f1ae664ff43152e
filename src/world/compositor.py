"""
Layer composition.

Flattens a background's visible layers into one RGBA raster. Layers are drawn
bottom to top with source-over blending (Image.alpha_composite), which is plain
overwrite for opaque tiles. The whole raster is rebuilt on every call.
"""

import logging
from typing import Dict

import numpy as np
from PIL import Image

from core.errors import ValidationError
from world.background import Background
from world.tileset import EMPTY_TILE, Tileset, tile_index_to_rect

logger = logging.getLogger(__name__)


def composite(background: Background, tileset: Tileset, source_image: Image.Image) -> Image.Image:
    if background.tileset_id != tileset.id:
        raise ValidationError(
            f"Background {background.id} uses tileset {background.tileset_id}, "
            f"not {tileset.id}"
        )
    tw, th = tileset.tile_width, tileset.tile_height
    source = source_image.convert("RGBA")
    canvas = Image.new("RGBA", (background.width * tw, background.height * th), (0, 0, 0, 0))

    tiles: Dict[int, Image.Image] = {}
    skipped = 0
    for layer in background.visible_layers():
        for x, y, index in layer.grid.nonzero():
            if not tileset.contains(index):
                skipped += 1
                continue
            tile = tiles.get(index)
            if tile is None:
                tile = source.crop(tile_index_to_rect(tileset, index).box())
                tiles[index] = tile
            canvas.alpha_composite(tile, (x * tw, y * th))

    if skipped:
        logger.warning(
            "Skipped %d cells of background %s with indices outside tileset %s",
            skipped,
            background.id,
            tileset.id,
        )
    return canvas


def top_tiles(background: Background) -> np.ndarray:
    """Topmost visible nonzero tile index per cell, shape (height, width)."""
    result = np.full((background.height, background.width), EMPTY_TILE, dtype=np.int32)
    for layer in background.visible_layers():
        cells = layer.grid.as_array()
        mask = cells != EMPTY_TILE
        result[mask] = cells[mask]
    return result
