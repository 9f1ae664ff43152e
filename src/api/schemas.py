"""
Request bodies accepted by the studio API. Field aliases match the camelCase
wire format used by the editor.
"""

from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator


class WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class CreateGameRequest(WireModel):
    name: str


class FromUrlRequest(WireModel):
    url: str
    name: Optional[str] = None


class AnimationRequest(WireModel):
    name: str
    image_ids: List[str] = Field(alias="imageIds")
    frame_duration: Optional[float] = Field(default=None, alias="frameDuration", gt=0)
    loop: bool = True


class AnimationUpdateRequest(WireModel):
    name: Optional[str] = None
    image_ids: Optional[List[str]] = Field(default=None, alias="imageIds")
    frame_duration: Optional[float] = Field(default=None, alias="frameDuration", gt=0)
    loop: Optional[bool] = None


class ObjectRequest(WireModel):
    name: str


class StateRequest(WireModel):
    name: Optional[str] = None
    visual_type: Optional[str] = Field(default=None, alias="visualType")
    visual_id: Optional[str] = Field(default=None, alias="visualId")
    sound_id: Optional[str] = Field(default=None, alias="soundId")


class TilesetRequest(WireModel):
    name: str
    image_id: str = Field(alias="imageId")
    tile_width: int = Field(alias="tileWidth")
    tile_height: Optional[int] = Field(default=None, alias="tileHeight")


class BackgroundRequest(WireModel):
    name: str
    width: int
    height: int
    tileset_id: str = Field(alias="tilesetId")


class LayerPayload(WireModel):
    id: Optional[str] = None
    name: str = ""
    visible: bool = True
    data: List[int]


class BackgroundUpdateRequest(WireModel):
    name: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    tileset_id: Optional[str] = Field(default=None, alias="tilesetId")
    layers: Optional[List[LayerPayload]] = None


class LayerCreateRequest(WireModel):
    name: Optional[str] = None


class LayerUpdateRequest(WireModel):
    visible: Optional[bool] = None
    name: Optional[str] = None
    position: Optional[int] = None
    toggle: bool = False


class PaintRequest(WireModel):
    tile: int = Field(alias="tileIndex")
    x: Optional[int] = None
    y: Optional[int] = None
    cells: Optional[List[Tuple[int, int]]] = None

    @model_validator(mode="after")
    def one_target(self):
        single = self.x is not None and self.y is not None
        if single == (self.cells is not None):
            raise ValueError("give either x and y or cells")
        return self
