"""
Per-project repository over a ProjectStore.

Every mutation runs inside transaction(): the project's lock is held while the
document is read, changed and written back whole, so concurrent requests
against one project are applied one after another instead of overwriting each
other. Whole-document replacement can also be guarded by a revision token.
"""

import io
import logging
import os
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from PIL import Image, UnidentifiedImageError

from core.clock import new_id, utc_timestamp
from core.errors import ConflictError, IOFailure, NotFound, TilesetInUseError, ValidationError
from data.document import empty_document, find_by_id, normalize_document, revision
from data.store import ProjectStore, validate_name
from entities import objects as objmodel
from entities.animation import build_sprite_sheet
from entities.media import (
    ANIMATIONS_FOLDER,
    IMAGES_FOLDER,
    SOUNDS_FOLDER,
    Animation,
    ImageAsset,
    SoundAsset,
)
from world import background as bgmodel
from world.background import Background
from world.compositor import composite
from world.tileset import Rect, Tileset, create_tileset, tile_index_to_rect

logger = logging.getLogger(__name__)

_registry_lock = threading.Lock()
# One lock per (store, project) opened by this process. Entries are never
# evicted.
_project_locks: Dict[Tuple[str, str], threading.RLock] = {}


def project_lock(store: ProjectStore, project: str) -> threading.RLock:
    key = (store.key, project)
    with _registry_lock:
        lock = _project_locks.get(key)
        if lock is None:
            lock = _project_locks[key] = threading.RLock()
        return lock


def list_projects(store: ProjectStore) -> List[str]:
    return store.list_projects()


def create_project(store: ProjectStore, name: str) -> Dict[str, Any]:
    name = validate_name(name, "Game")
    with project_lock(store, name):
        doc = empty_document(name)
        store.create_project(name, doc)
    logger.info("Created game %s", name)
    return doc


class ProjectRepository:
    """Typed access to one project's assets."""

    def __init__(
        self,
        store: ProjectStore,
        project: str,
        strict_tile_indices: bool = True,
        default_frame_duration: float = 0.1,
    ):
        self.store = store
        self.project = validate_name(project, "Game")
        self.strict_tile_indices = strict_tile_indices
        self.default_frame_duration = default_frame_duration
        self._lock = project_lock(store, self.project)

    # ------------------------------------------------------------------
    # Document access
    # ------------------------------------------------------------------

    def document(self) -> Dict[str, Any]:
        with self._lock:
            raw = self.store.read_document(self.project)
        return normalize_document(raw if raw is not None else {}, self.project)

    def revision(self) -> str:
        return revision(self.document())

    @contextmanager
    def transaction(self, expected_revision: Optional[str] = None) -> Iterator[Dict[str, Any]]:
        """Yield the current document; write it back if the block succeeds."""
        with self._lock:
            doc = self.document()
            if expected_revision is not None and revision(doc) != expected_revision:
                raise ConflictError(
                    f"Game {self.project!r} changed since revision {expected_revision}"
                )
            yield doc
            self.store.write_document(self.project, doc)

    def replace_document(self, new_doc: Dict[str, Any], expected_revision: Optional[str] = None) -> Dict[str, Any]:
        new_doc = normalize_document(new_doc, self.project)
        self._check_document(new_doc)
        with self.transaction(expected_revision) as doc:
            doc.clear()
            doc.update(new_doc)
        logger.info("Replaced document of %s", self.project)
        return new_doc

    def _check_document(self, doc: Dict[str, Any]):
        """Reject a whole document whose tilesets, backgrounds or objects
        could not be loaded back, or whose painted cells break the index rules."""
        for collection in ("tilesets", "backgrounds", "objects"):
            for record in doc[collection]:
                if not isinstance(record, dict):
                    raise ValidationError(f"Every entry of '{collection}' must be an object")

        tilesets = {}
        for record in doc["tilesets"]:
            tileset = Tileset.from_dict(record)
            tilesets[tileset.id] = tileset

        for record in doc["backgrounds"]:
            bg = Background.from_dict(record)
            if not bg.layers:
                raise ValidationError(f"Background {bg.id} needs at least one layer")
            # A missing tileset only fails when the background is rendered
            tileset = tilesets.get(bg.tileset_id)
            max_index = tileset.tile_count if tileset and self.strict_tile_indices else None
            bgmodel.check_layer_indices(bg, max_index)

        for record in doc["objects"]:
            objmodel.GameObject.from_dict(record)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @staticmethod
    def _find(doc: Dict[str, Any], collection: str, item_id: str, what: str) -> Dict[str, Any]:
        item = find_by_id(doc, collection, item_id)
        if item is None:
            raise NotFound(f"{what} {item_id} not found")
        return item

    @staticmethod
    def _put(doc: Dict[str, Any], collection: str, record: Dict[str, Any]):
        items = doc[collection]
        for i, item in enumerate(items):
            if item.get("id") == record["id"]:
                items[i] = record
                return
        items.append(record)

    @staticmethod
    def _remove(doc: Dict[str, Any], collection: str, item_id: str):
        doc[collection] = [i for i in doc[collection] if i.get("id") != item_id]

    def image(self, image_id: str, doc: Optional[Dict[str, Any]] = None) -> ImageAsset:
        doc = doc if doc is not None else self.document()
        return ImageAsset.from_dict(self._find(doc, "images", image_id, "Image"))

    def tileset(self, tileset_id: str, doc: Optional[Dict[str, Any]] = None) -> Tileset:
        doc = doc if doc is not None else self.document()
        return Tileset.from_dict(self._find(doc, "tilesets", tileset_id, "Tileset"))

    def background(self, background_id: str, doc: Optional[Dict[str, Any]] = None) -> Background:
        doc = doc if doc is not None else self.document()
        return Background.from_dict(self._find(doc, "backgrounds", background_id, "Background"))

    def animation(self, animation_id: str, doc: Optional[Dict[str, Any]] = None) -> Animation:
        doc = doc if doc is not None else self.document()
        return Animation.from_dict(self._find(doc, "animations", animation_id, "Animation"))

    def game_object(self, object_id: str, doc: Optional[Dict[str, Any]] = None) -> objmodel.GameObject:
        doc = doc if doc is not None else self.document()
        return objmodel.GameObject.from_dict(self._find(doc, "objects", object_id, "Object"))

    def read_asset(self, folder: str, filename: str) -> bytes:
        return self.store.read_blob(self.project, folder, filename)

    def open_image(self, image: ImageAsset) -> Image.Image:
        data = self.store.read_blob(self.project, IMAGES_FOLDER, image.filename)
        try:
            img = Image.open(io.BytesIO(data))
            img.load()
            return img
        except (UnidentifiedImageError, OSError) as e:
            raise IOFailure(f"Could not decode image {image.id}: {e}") from e

    # ------------------------------------------------------------------
    # Images and sounds
    # ------------------------------------------------------------------

    def add_image(self, data: bytes, original_name: str, name: Optional[str] = None, as_png: bool = False) -> ImageAsset:
        try:
            img = Image.open(io.BytesIO(data))
            img.load()
        except (UnidentifiedImageError, OSError) as e:
            raise ValidationError(f"Upload is not a readable image: {e}") from e

        stem, ext = os.path.splitext(os.path.basename(original_name or ""))
        if as_png or not ext:
            buf = io.BytesIO()
            img.save(buf, format="PNG")
            data, ext = buf.getvalue(), ".png"

        asset = ImageAsset.new(name or stem or f"image-{new_id()[:8]}", ext.lower(), img.width, img.height)
        with self.transaction() as doc:
            self.store.write_blob(self.project, IMAGES_FOLDER, asset.filename, data)
            doc["images"].append(asset.to_dict())
        logger.info("Added image %s (%dx%d) to %s", asset.id, asset.width, asset.height, self.project)
        return asset

    def delete_image(self, image_id: str):
        with self.transaction() as doc:
            image = ImageAsset.from_dict(self._find(doc, "images", image_id, "Image"))
            self._remove(doc, "images", image_id)
        self.store.delete_blob(self.project, IMAGES_FOLDER, image.filename)
        logger.info("Deleted image %s from %s", image_id, self.project)

    def add_sound(self, data: bytes, original_name: str, name: Optional[str] = None, extension: Optional[str] = None) -> SoundAsset:
        if not data:
            raise ValidationError("Sound upload is empty")
        stem, ext = os.path.splitext(os.path.basename(original_name or ""))
        ext = (extension or ext or ".mp3").lower()
        if not ext.startswith("."):
            ext = "." + ext
        asset = SoundAsset.new(name or stem or f"sound-{new_id()[:8]}", ext)
        with self.transaction() as doc:
            self.store.write_blob(self.project, SOUNDS_FOLDER, asset.filename, data)
            doc["sounds"].append(asset.to_dict())
        logger.info("Added sound %s to %s", asset.id, self.project)
        return asset

    def delete_sound(self, sound_id: str):
        with self.transaction() as doc:
            sound = SoundAsset.from_dict(self._find(doc, "sounds", sound_id, "Sound"))
            self._remove(doc, "sounds", sound_id)
        self.store.delete_blob(self.project, SOUNDS_FOLDER, sound.filename)
        logger.info("Deleted sound %s from %s", sound_id, self.project)

    # ------------------------------------------------------------------
    # Animations
    # ------------------------------------------------------------------

    def _render_sheet(self, doc: Dict[str, Any], image_ids: Sequence[str]):
        images = [find_by_id(doc, "images", i) for i in image_ids]
        images = [ImageAsset.from_dict(i) for i in images if i is not None]
        if not images:
            raise ValidationError("No valid images provided")
        frames = [self.open_image(img) for img in images]
        return build_sprite_sheet(frames), [img.id for img in images]

    def _write_sheet(self, sheet: Image.Image, filename: str):
        buf = io.BytesIO()
        sheet.save(buf, format="PNG")
        self.store.write_blob(self.project, ANIMATIONS_FOLDER, filename, buf.getvalue())

    def create_animation(
        self,
        name: str,
        image_ids: Sequence[str],
        frame_duration: Optional[float] = None,
        loop: bool = True,
    ) -> Animation:
        if not name or not name.strip():
            raise ValidationError("Animation name is required")
        with self.transaction() as doc:
            (sheet, frame_w, frame_h), used = self._render_sheet(doc, image_ids)
            anim_id = new_id()
            anim = Animation(
                id=anim_id,
                name=name.strip(),
                filename=f"{anim_id}.png",
                frame_width=frame_w,
                frame_height=frame_h,
                frame_count=len(used),
                frame_duration=frame_duration or self.default_frame_duration,
                loop=loop,
                source_images=list(image_ids),
            )
            self._write_sheet(sheet, anim.filename)
            doc["animations"].append(anim.to_dict())
        logger.info("Created animation %s with %d frames in %s", anim.id, anim.frame_count, self.project)
        return anim

    def update_animation(
        self,
        animation_id: str,
        name: Optional[str] = None,
        image_ids: Optional[Sequence[str]] = None,
        frame_duration: Optional[float] = None,
        loop: Optional[bool] = None,
    ) -> Animation:
        with self.transaction() as doc:
            anim = Animation.from_dict(self._find(doc, "animations", animation_id, "Animation"))
            if image_ids is not None and list(image_ids) != anim.source_images:
                (sheet, frame_w, frame_h), used = self._render_sheet(doc, image_ids)
                self._write_sheet(sheet, anim.filename)
                anim.frame_width = frame_w
                anim.frame_height = frame_h
                anim.frame_count = len(used)
                anim.source_images = list(image_ids)
            if name is not None:
                anim.name = name
            if frame_duration is not None:
                anim.frame_duration = frame_duration
            if loop is not None:
                anim.loop = loop
            anim.updated_at = utc_timestamp()
            self._put(doc, "animations", anim.to_dict())
        return anim

    def delete_animation(self, animation_id: str):
        with self.transaction() as doc:
            anim = Animation.from_dict(self._find(doc, "animations", animation_id, "Animation"))
            self._remove(doc, "animations", animation_id)
        self.store.delete_blob(self.project, ANIMATIONS_FOLDER, anim.filename)
        logger.info("Deleted animation %s from %s", animation_id, self.project)

    # ------------------------------------------------------------------
    # Objects
    # ------------------------------------------------------------------

    def list_objects(self) -> List[objmodel.GameObject]:
        return [objmodel.GameObject.from_dict(o) for o in self.document()["objects"]]

    def create_object(self, name: str) -> objmodel.GameObject:
        obj = objmodel.create_object(name)
        with self.transaction() as doc:
            doc["objects"].append(obj.to_dict())
        return obj

    def rename_object(self, object_id: str, name: str) -> objmodel.GameObject:
        with self.transaction() as doc:
            obj = self.game_object(object_id, doc)
            objmodel.rename_object(obj, name)
            self._put(doc, "objects", obj.to_dict())
        return obj

    def delete_object(self, object_id: str):
        with self.transaction() as doc:
            self._find(doc, "objects", object_id, "Object")
            self._remove(doc, "objects", object_id)

    def add_state(self, object_id: str, name: str) -> objmodel.ObjectState:
        with self.transaction() as doc:
            obj = self.game_object(object_id, doc)
            state = objmodel.add_state(obj, name)
            self._put(doc, "objects", obj.to_dict())
        return state

    def update_state(self, object_id: str, state_id: str, changes: Dict[str, Any]) -> objmodel.ObjectState:
        """Apply name / visual / soundId changes to one state.

        changes may hold 'name', 'visual' (a Visual or None) and 'soundId'.
        Referenced images, animations and sounds must exist.
        """
        with self.transaction() as doc:
            obj = self.game_object(object_id, doc)
            state = obj.state(state_id)
            if "name" in changes:
                objmodel.rename_state(obj, state_id, changes["name"])
            if "visual" in changes:
                visual = changes["visual"]
                if isinstance(visual, objmodel.ImageVisual):
                    self._find(doc, "images", visual.image_id, "Image")
                elif isinstance(visual, objmodel.AnimationVisual):
                    self._find(doc, "animations", visual.animation_id, "Animation")
                objmodel.set_state_visual(obj, state_id, visual)
            if "soundId" in changes:
                if changes["soundId"]:
                    self._find(doc, "sounds", changes["soundId"], "Sound")
                objmodel.set_state_sound(obj, state_id, changes["soundId"])
            self._put(doc, "objects", obj.to_dict())
        return state

    def delete_state(self, object_id: str, state_id: str):
        with self.transaction() as doc:
            obj = self.game_object(object_id, doc)
            objmodel.delete_state(obj, state_id)
            self._put(doc, "objects", obj.to_dict())

    # ------------------------------------------------------------------
    # Tilesets
    # ------------------------------------------------------------------

    def create_tileset(self, name: str, image_id: str, tile_width: int, tile_height: int) -> Tileset:
        with self.transaction() as doc:
            image = self.image(image_id, doc)
            tileset = create_tileset(image, tile_width, tile_height, name=name)
            doc["tilesets"].append(tileset.to_dict())
        logger.info(
            "Created tileset %s (%dx%d tiles of %dx%d) in %s",
            tileset.id,
            tileset.columns,
            tileset.rows,
            tileset.tile_width,
            tileset.tile_height,
            self.project,
        )
        return tileset

    def tile_rect(self, tileset_id: str, index: int) -> Optional[Rect]:
        return tile_index_to_rect(self.tileset(tileset_id), index)

    def delete_tileset(self, tileset_id: str, cascade: bool = False) -> List[str]:
        """Delete a tileset. Returns ids of backgrounds removed along with it."""
        with self.transaction() as doc:
            self._find(doc, "tilesets", tileset_id, "Tileset")
            users = [b["id"] for b in doc["backgrounds"] if b.get("tilesetId") == tileset_id]
            if users and not cascade:
                raise TilesetInUseError(
                    f"Tileset {tileset_id} is used by {len(users)} background(s)"
                )
            self._remove(doc, "tilesets", tileset_id)
            doc["backgrounds"] = [b for b in doc["backgrounds"] if b.get("id") not in users]
        logger.info("Deleted tileset %s from %s (cascade: %s)", tileset_id, self.project, users)
        return users

    # ------------------------------------------------------------------
    # Backgrounds
    # ------------------------------------------------------------------

    def _max_index(self, doc: Dict[str, Any], bg: Background) -> Optional[int]:
        if not self.strict_tile_indices:
            return None
        return self.tileset(bg.tileset_id, doc).tile_count

    @contextmanager
    def _editing(self, background_id: str) -> Iterator[Tuple[Dict[str, Any], Background]]:
        with self.transaction() as doc:
            bg = self.background(background_id, doc)
            yield doc, bg
            self._put(doc, "backgrounds", bg.to_dict())

    def create_background(self, name: str, width: int, height: int, tileset_id: str) -> Background:
        if not name or not name.strip():
            raise ValidationError("Background name is required")
        with self.transaction() as doc:
            tileset = self.tileset(tileset_id, doc)
            bg = bgmodel.create_background(name.strip(), width, height, tileset)
            doc["backgrounds"].append(bg.to_dict())
        logger.info("Created background %s (%dx%d) in %s", bg.id, width, height, self.project)
        return bg

    def update_background(self, background_id: str, changes: Dict[str, Any]) -> Background:
        """Merge name / tilesetId / layers into a background. The grid size is fixed."""
        with self._editing(background_id) as (doc, bg):
            for dim in ("width", "height"):
                if changes.get(dim) is not None and int(changes[dim]) != getattr(bg, dim):
                    raise ValidationError("Backgrounds cannot be resized")
            if "tilesetId" in changes:
                bg.tileset_id = self.tileset(changes["tilesetId"], doc).id
            if "name" in changes:
                if not changes["name"]:
                    raise ValidationError("Background name is required")
                bg.name = changes["name"]
            if "layers" in changes:
                bgmodel.replace_layers(bg, changes["layers"])
            if "tilesetId" in changes or "layers" in changes:
                bgmodel.check_layer_indices(bg, self._max_index(doc, bg))
            bg.touch()
        return bg

    def delete_background(self, background_id: str):
        with self.transaction() as doc:
            self._find(doc, "backgrounds", background_id, "Background")
            self._remove(doc, "backgrounds", background_id)
        logger.info("Deleted background %s from %s", background_id, self.project)

    def add_layer(self, background_id: str, name: Optional[str] = None) -> Tuple[Background, bgmodel.Layer]:
        with self._editing(background_id) as (_, bg):
            layer = bgmodel.add_layer(bg, name)
        return bg, layer

    def update_layer(
        self,
        background_id: str,
        layer_id: str,
        visible: Optional[bool] = None,
        name: Optional[str] = None,
        position: Optional[int] = None,
    ) -> Background:
        with self._editing(background_id) as (_, bg):
            if visible is not None:
                bgmodel.set_layer_visibility(bg, layer_id, visible)
            if name is not None:
                bgmodel.rename_layer(bg, layer_id, name)
            if position is not None:
                bgmodel.move_layer(bg, layer_id, position)
            bg.layer(layer_id)
        return bg

    def toggle_layer(self, background_id: str, layer_id: str) -> Background:
        with self._editing(background_id) as (_, bg):
            bgmodel.toggle_layer_visibility(bg, layer_id)
        return bg

    def delete_layer(self, background_id: str, layer_id: str) -> Background:
        with self._editing(background_id) as (_, bg):
            bgmodel.delete_layer(bg, layer_id)
        return bg

    def paint(self, background_id: str, layer_id: str, x: int, y: int, tile_index: int) -> Tuple[Background, bool]:
        with self._editing(background_id) as (doc, bg):
            changed = bgmodel.paint_tile(bg, layer_id, x, y, tile_index, self._max_index(doc, bg))
        return bg, changed

    def paint_cells(
        self, background_id: str, layer_id: str, cells: Sequence[Tuple[int, int]], tile_index: int
    ) -> Tuple[Background, int]:
        with self._editing(background_id) as (doc, bg):
            changed = bgmodel.paint_stroke(bg, layer_id, cells, tile_index, self._max_index(doc, bg))
        return bg, changed

    def render_background(self, background_id: str) -> Image.Image:
        doc = self.document()
        bg = self.background(background_id, doc)
        tileset = self.tileset(bg.tileset_id, doc)
        source = self.open_image(self.image(tileset.image_id, doc))
        return composite(bg, tileset, source)
