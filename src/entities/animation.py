"""
Sprite-sheet building for animations.
"""

from typing import Sequence, Tuple

from PIL import Image

from core.errors import ValidationError


def build_sprite_sheet(frames: Sequence[Image.Image]) -> Tuple[Image.Image, int, int]:
    """Lay frames out left to right on a transparent sheet.

    The frame size comes from the first frame; later frames are pasted at
    i * frame_width and clipped to that cell.
    Returns (sheet, frame_width, frame_height).
    """
    if not frames:
        raise ValidationError("An animation needs at least one frame")
    frame_w, frame_h = frames[0].size
    sheet = Image.new("RGBA", (frame_w * len(frames), frame_h), (0, 0, 0, 0))
    for i, frame in enumerate(frames):
        rgba = frame.convert("RGBA")
        cell = rgba.crop((0, 0, min(rgba.width, frame_w), min(rgba.height, frame_h)))
        sheet.alpha_composite(cell, (i * frame_w, 0))
    return sheet, frame_w, frame_h
