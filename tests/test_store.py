"""
Tests for the project store and repository.
"""

import json
import threading

import pytest

from conftest import TILE, make_tileset_image, png_bytes, tile_color
from core.errors import (
    ConflictError,
    InvalidTileIndex,
    IOFailure,
    LastLayerError,
    NotFound,
    ProjectExistsError,
    TilesetInUseError,
    ValidationError,
)
from data.document import COLLECTIONS, revision
from data.repository import ProjectRepository, create_project, list_projects
from data.store import MemoryProjectStore
from entities.objects import AnimationVisual, ImageVisual


class FailingWriteStore(MemoryProjectStore):
    """Memory store whose document writes can be made to fail."""

    fail_writes = False

    def write_document(self, project, doc):
        if self.fail_writes:
            raise IOFailure("disk full")
        super().write_document(project, doc)


class TestFileStore:
    """On-disk layout and project discovery."""

    def test_create_project_writes_document(self, store):
        """Test a new project gets an empty game.json."""
        create_project(store, "demo")
        path = store.games_dir / "demo" / "game.json"
        doc = json.loads(path.read_text())
        assert doc["name"] == "demo"
        for key in COLLECTIONS:
            assert doc[key] == []

    def test_duplicate_project_rejected(self, store):
        """Test a project name can only be used once."""
        create_project(store, "demo")
        with pytest.raises(ProjectExistsError):
            create_project(store, "demo")

    @pytest.mark.parametrize("name", ["", "  ", "../evil", "a/b", ".hidden"])
    def test_unsafe_names_rejected(self, store, name):
        """Test names that could leave the games folder are refused."""
        with pytest.raises(ValidationError):
            create_project(store, name)

    def test_discovery_needs_main_lua_or_game_json(self, store):
        """Test only folders with main.lua or game.json are games."""
        create_project(store, "beta")
        (store.games_dir / "alpha").mkdir()
        (store.games_dir / "alpha" / "main.lua").write_text("-- game")
        (store.games_dir / "scratch").mkdir()
        assert list_projects(store) == ["alpha", "beta"]

    def test_lua_only_project_gets_default_document(self, store):
        """Test a game without game.json reads as an empty document."""
        (store.games_dir / "alpha").mkdir(parents=True)
        (store.games_dir / "alpha" / "main.lua").write_text("-- game")
        doc = ProjectRepository(store, "alpha").document()
        assert doc["name"] == "alpha"
        assert doc["description"] == ""
        assert doc["tilesets"] == [] and doc["backgrounds"] == []

    def test_partial_document_is_normalized(self, store):
        """Test missing fields are filled and unknown keys kept."""
        create_project(store, "demo")
        path = store.games_dir / "demo" / "game.json"
        path.write_text(json.dumps({"name": "", "images": [], "custom": 1}))
        doc = ProjectRepository(store, "demo").document()
        assert doc["name"] == "demo"
        assert doc["backgrounds"] == []
        assert doc["custom"] == 1

    def test_missing_project(self, store):
        """Test reading a missing project raises NotFound."""
        with pytest.raises(NotFound):
            ProjectRepository(store, "nope").document()

    def test_blob_delete_is_best_effort(self, store):
        """Test deleting a missing blob returns False."""
        create_project(store, "demo")
        store.write_blob("demo", "images", "a.png", b"x")
        assert store.read_blob("demo", "images", "a.png") == b"x"
        assert store.delete_blob("demo", "images", "a.png")
        assert not store.delete_blob("demo", "images", "a.png")

    def test_blob_paths_are_confined(self, store):
        """Test blob paths cannot escape their folder."""
        create_project(store, "demo")
        with pytest.raises(NotFound):
            store.read_blob("demo", "images", "../game.json")
        with pytest.raises(NotFound):
            store.read_blob("demo", "scripts", "main.lua")


class TestMemoryStore:
    """Test the in-memory store."""

    def test_repository_over_memory_store(self, memory_store, tileset_png):
        """Test the repository works over the memory store."""
        create_project(memory_store, "demo")
        repo = ProjectRepository(memory_store, "demo")
        image = repo.add_image(tileset_png, "tiles.png")
        assert repo.read_asset("images", image.filename) == tileset_png
        assert list_projects(memory_store) == ["demo"]

    def test_documents_do_not_alias(self, memory_store):
        """Test stored documents are copies."""
        create_project(memory_store, "demo")
        doc = memory_store.read_document("demo")
        doc["images"].append({"id": "x"})
        assert memory_store.read_document("demo")["images"] == []


class TestTransactions:
    """Test per-project transactions."""

    def test_failed_block_writes_nothing(self, repo):
        """Test an exception inside a transaction discards its changes."""
        before = repo.document()
        with pytest.raises(RuntimeError):
            with repo.transaction() as doc:
                doc["description"] = "changed"
                raise RuntimeError("boom")
        assert repo.document() == before

    def test_revision_guard(self, repo):
        """Test a stale revision is a conflict."""
        rev = repo.revision()
        doc = repo.document()
        doc["description"] = "first"
        repo.replace_document(doc, rev)
        doc["description"] = "second"
        with pytest.raises(ConflictError):
            repo.replace_document(doc, rev)
        assert repo.document()["description"] == "first"
        assert repo.revision() == revision(repo.document())

    def test_concurrent_paints_all_survive(self, tileset_repo, store):
        """Test concurrent paints on one project all persist."""
        repo, _, tileset = tileset_repo
        bg = repo.create_background("level", 8, 8, tileset.id)
        layer_id = bg.layers[0].id
        cells = [(x, y) for y in range(8) for x in range(8)]

        def worker(chunk):
            # A fresh repository per "request", like the API does
            r = ProjectRepository(store, "demo")
            for x, y in chunk:
                r.paint(bg.id, layer_id, x, y, 1 + (x + y) % tileset.tile_count)

        threads = [threading.Thread(target=worker, args=(cells[i::4],)) for i in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        grid = repo.background(bg.id).layers[0].grid
        for x, y in cells:
            assert grid.get(x, y) == 1 + (x + y) % tileset.tile_count


class TestTilemapRepository:
    """Test tilesets and backgrounds through the repository."""

    def test_create_tileset_from_uploaded_image(self, tileset_repo):
        """Test a tileset built from an uploaded image."""
        repo, image, tileset = tileset_repo
        assert (image.width, image.height) == (4 * TILE, 2 * TILE)
        assert (tileset.columns, tileset.rows, tileset.tile_count) == (4, 2, 8)
        assert repo.tileset(tileset.id).to_dict() == tileset.to_dict()

    def test_tileset_needs_existing_image(self, repo):
        """Test a tileset needs a known image."""
        with pytest.raises(NotFound):
            repo.create_tileset("t", "missing", 8, 8)

    def test_background_needs_existing_tileset(self, repo):
        """Test a background needs a known tileset."""
        with pytest.raises(NotFound):
            repo.create_background("level", 4, 4, "missing")

    def test_strict_paint_rejects_out_of_range(self, tileset_repo):
        """Test strict mode refuses indices past the tileset."""
        repo, _, tileset = tileset_repo
        bg = repo.create_background("level", 2, 2, tileset.id)
        with pytest.raises(InvalidTileIndex):
            repo.paint(bg.id, bg.layers[0].id, 0, 0, 9)
        assert repo.background(bg.id).layers[0].grid.to_list() == [0, 0, 0, 0]

    def test_lenient_paint_accepts_out_of_range(self, tileset_repo, store):
        """Test lenient mode writes indices past the tileset."""
        repo, _, tileset = tileset_repo
        bg = repo.create_background("level", 2, 2, tileset.id)
        lenient = ProjectRepository(store, "demo", strict_tile_indices=False)
        _, changed = lenient.paint(bg.id, bg.layers[0].id, 0, 0, 9)
        assert changed
        assert repo.background(bg.id).layers[0].grid.get(0, 0) == 9

    def test_paint_persists_each_cell(self, tileset_repo):
        """Test each paint is saved to the document."""
        repo, _, tileset = tileset_repo
        bg = repo.create_background("level", 3, 2, tileset.id)
        layer_id = bg.layers[0].id
        repo.paint(bg.id, layer_id, 2, 1, 7)
        stored = repo.document()["backgrounds"][0]
        assert stored["layers"][0]["data"] == [0, 0, 0, 0, 0, 7]
        assert stored["updatedAt"]

    def test_update_background_cannot_resize(self, tileset_repo):
        """Test a background size cannot change."""
        repo, _, tileset = tileset_repo
        bg = repo.create_background("level", 3, 2, tileset.id)
        with pytest.raises(ValidationError):
            repo.update_background(bg.id, {"width": 4})
        updated = repo.update_background(bg.id, {"name": "renamed", "width": 3})
        assert updated.name == "renamed"

    def test_update_background_checks_layer_indices(self, tileset_repo):
        """Test replaced layers are checked against the tileset."""
        repo, _, tileset = tileset_repo
        bg = repo.create_background("level", 2, 1, tileset.id)
        with pytest.raises(InvalidTileIndex):
            repo.update_background(bg.id, {"layers": [{"name": "x", "data": [1, 50]}]})

    def test_tileset_swap_checks_painted_cells(self, tileset_repo):
        """Test switching to a smaller tileset refuses cells it cannot draw."""
        repo, _, tileset = tileset_repo
        small_image = repo.add_image(png_bytes(make_tileset_image(columns=2, rows=1)), "small.png")
        small = repo.create_tileset("small", small_image.id, TILE, TILE)
        bg = repo.create_background("level", 3, 2, tileset.id)
        repo.paint(bg.id, bg.layers[0].id, 0, 0, 8)

        with pytest.raises(InvalidTileIndex):
            repo.update_background(bg.id, {"tilesetId": small.id})
        assert repo.background(bg.id).tileset_id == tileset.id

        repo.paint(bg.id, bg.layers[0].id, 0, 0, 2)
        assert repo.update_background(bg.id, {"tilesetId": small.id}).tileset_id == small.id

    def test_lenient_paint_rejects_unstorable_index(self, tileset_repo, store):
        """Test lenient mode still refuses an index a layer cannot hold."""
        repo, _, tileset = tileset_repo
        bg = repo.create_background("level", 2, 2, tileset.id)
        lenient = ProjectRepository(store, "demo", strict_tile_indices=False)
        with pytest.raises(InvalidTileIndex):
            lenient.paint(bg.id, bg.layers[0].id, 0, 0, 2**31)
        assert repo.background(bg.id).layers[0].grid.to_list() == [0, 0, 0, 0]

    def test_replace_document_checks_layer_length(self, tileset_repo):
        """Test a whole-document save with a short layer is refused unchanged."""
        repo, _, tileset = tileset_repo
        bg = repo.create_background("level", 3, 2, tileset.id)
        before = repo.document()
        doc = repo.document()
        doc["backgrounds"][0]["layers"][0]["data"] = [0, 0]
        with pytest.raises(ValidationError):
            repo.replace_document(doc)
        assert repo.document() == before
        _, changed = repo.paint(bg.id, bg.layers[0].id, 2, 1, 7)
        assert changed

    def test_replace_document_checks_tile_indices(self, tileset_repo, store):
        """Test whole-document saves apply the tile index rules."""
        repo, _, tileset = tileset_repo
        repo.create_background("level", 2, 1, tileset.id)
        doc = repo.document()
        doc["backgrounds"][0]["layers"][0]["data"] = [1, 9]
        with pytest.raises(InvalidTileIndex):
            repo.replace_document(doc)

        lenient = ProjectRepository(store, "demo", strict_tile_indices=False)
        lenient.replace_document(doc)
        assert repo.document()["backgrounds"][0]["layers"][0]["data"] == [1, 9]

        doc["backgrounds"][0]["layers"][0]["data"] = [1, -3]
        with pytest.raises(InvalidTileIndex):
            lenient.replace_document(doc)

    @pytest.mark.parametrize(
        "collection, record",
        [
            ("tilesets", {"id": "t", "name": "x"}),
            ("backgrounds", {"id": "b", "width": 2, "height": 1, "tilesetId": "t", "layers": []}),
            ("backgrounds", {"id": "b", "width": "wide", "height": 1, "tilesetId": "t"}),
            ("objects", {"id": "o", "states": [{"visualType": "model", "visualId": "x"}]}),
            ("backgrounds", "not a record"),
        ],
    )
    def test_replace_document_rejects_unloadable_records(self, repo, collection, record):
        """Test whole-document saves refuse records that could not be loaded back."""
        doc = repo.document()
        doc[collection] = [record]
        with pytest.raises(ValidationError):
            repo.replace_document(doc)
        assert repo.document()[collection] == []

    def test_last_layer_cannot_be_deleted(self, tileset_repo):
        """Test the only layer cannot be deleted."""
        repo, _, tileset = tileset_repo
        bg = repo.create_background("level", 2, 2, tileset.id)
        with pytest.raises(LastLayerError):
            repo.delete_layer(bg.id, bg.layers[0].id)
        assert len(repo.background(bg.id).layers) == 1

    def test_tileset_in_use_cannot_be_deleted(self, tileset_repo):
        """Test deleting a used tileset needs cascade."""
        repo, _, tileset = tileset_repo
        bg = repo.create_background("level", 2, 2, tileset.id)
        with pytest.raises(TilesetInUseError):
            repo.delete_tileset(tileset.id)
        assert repo.delete_tileset(tileset.id, cascade=True) == [bg.id]
        doc = repo.document()
        assert doc["tilesets"] == [] and doc["backgrounds"] == []

    def test_render_fails_lazily_on_dangling_tileset(self, tileset_repo):
        """Test rendering with a missing tileset raises NotFound."""
        repo, _, tileset = tileset_repo
        bg = repo.create_background("level", 2, 2, tileset.id)
        doc = repo.document()
        doc["tilesets"] = []
        repo.replace_document(doc)
        with pytest.raises(NotFound):
            repo.render_background(bg.id)

    def test_render_background(self, tileset_repo):
        """Test rendering a painted background."""
        repo, _, tileset = tileset_repo
        bg = repo.create_background("level", 2, 1, tileset.id)
        repo.paint_cells(bg.id, bg.layers[0].id, [(0, 0), (1, 0)], 3)
        out = repo.render_background(bg.id)
        assert out.size == (2 * TILE, TILE)
        assert out.getpixel((TILE + 1, 1)) == tile_color(3)


class TestMediaRepository:
    """Test images, sounds and animations through the repository."""

    def test_image_upload_records_dimensions(self, repo):
        """Test an uploaded image records its size."""
        data = png_bytes(make_tileset_image(columns=3, rows=1))
        image = repo.add_image(data, "hero.png", name="hero")
        assert (image.name, image.width, image.height) == ("hero", 3 * TILE, TILE)
        assert image.filename == f"{image.id}.png"
        assert repo.read_asset("images", image.filename) == data

    def test_non_image_upload_rejected(self, repo):
        """Test undecodable uploads are refused."""
        with pytest.raises(ValidationError):
            repo.add_image(b"not an image", "x.png")
        assert repo.document()["images"] == []

    def test_delete_image_removes_file(self, repo, store, tileset_png):
        """Test deleting an image removes its file."""
        image = repo.add_image(tileset_png, "tiles.png")
        repo.delete_image(image.id)
        assert repo.document()["images"] == []
        assert not (store.games_dir / "demo" / "images" / image.filename).exists()

    def test_failed_delete_keeps_files(self, tileset_png):
        """Test files stay on disk when the document write of a delete fails."""
        store = FailingWriteStore()
        create_project(store, "demo")
        repo = ProjectRepository(store, "demo")
        image = repo.add_image(tileset_png, "tiles.png")
        anim = repo.create_animation("idle", [image.id])
        sound = repo.add_sound(b"RIFF....", "jump.wav")

        store.fail_writes = True
        with pytest.raises(IOFailure):
            repo.delete_image(image.id)
        with pytest.raises(IOFailure):
            repo.delete_animation(anim.id)
        with pytest.raises(IOFailure):
            repo.delete_sound(sound.id)
        assert repo.read_asset("images", image.filename) == tileset_png
        assert repo.read_asset("animations", anim.filename)
        assert repo.read_asset("sounds", sound.filename) == b"RIFF...."

        store.fail_writes = False
        repo.delete_image(image.id)
        with pytest.raises(NotFound):
            repo.read_asset("images", image.filename)

    def test_sound_upload(self, repo):
        """Test a sound upload and delete."""
        sound = repo.add_sound(b"RIFF....", "jump.wav")
        assert (sound.name, sound.format) == ("jump", "wav")
        repo.delete_sound(sound.id)
        assert repo.document()["sounds"] == []

    def test_animation_lifecycle(self, repo):
        """Test creating, updating and deleting an animation."""
        ids = [
            repo.add_image(png_bytes(make_tileset_image(columns=1, rows=1)), f"f{i}.png").id
            for i in range(3)
        ]
        anim = repo.create_animation("walk", ids + ["missing"])
        assert (anim.frame_count, anim.frame_width, anim.frame_height) == (3, TILE, TILE)
        assert anim.frame_duration == 0.1 and anim.loop

        updated = repo.update_animation(anim.id, image_ids=ids[:2], loop=False)
        assert updated.frame_count == 2 and not updated.loop
        assert repo.animation(anim.id).updated_at

        repo.delete_animation(anim.id)
        assert repo.document()["animations"] == []

    def test_animation_needs_valid_images(self, repo):
        """Test an animation needs a known image."""
        with pytest.raises(ValidationError):
            repo.create_animation("walk", ["missing"])


class TestObjectRepository:
    """Test objects through the repository."""

    def test_state_visual_must_exist(self, repo, tileset_png):
        """Test a state visual must reference a known asset."""
        obj = repo.create_object("player")
        state_id = obj.states[0].id
        with pytest.raises(NotFound):
            repo.update_state(obj.id, state_id, {"visual": ImageVisual("missing")})
        with pytest.raises(NotFound):
            repo.update_state(obj.id, state_id, {"visual": AnimationVisual("missing")})

        image = repo.add_image(tileset_png, "idle.png")
        state = repo.update_state(obj.id, state_id, {"visual": ImageVisual(image.id)})
        assert state.visual == ImageVisual(image.id)
        stored = repo.document()["objects"][0]["states"][0]
        assert (stored["visualType"], stored["visualId"]) == ("image", image.id)

    def test_object_crud(self, repo):
        """Test creating, renaming and deleting an object."""
        obj = repo.create_object("door")
        repo.add_state(obj.id, "open")
        repo.rename_object(obj.id, "gate")
        assert [o.name for o in repo.list_objects()] == ["gate"]
        repo.delete_object(obj.id)
        assert repo.list_objects() == []


def test_memory_store_locks_are_per_instance():
    """Test separate memory stores get separate locks."""
    a, b = MemoryProjectStore(), MemoryProjectStore()
    assert a.key != b.key
