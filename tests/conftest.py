"""
Pytest configuration and shared fixtures for the tile studio tests.
"""

import io
import pytest
import sys
import os

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from PIL import Image

from api.app import create_app
from config import StudioConfig
from data.repository import ProjectRepository, create_project
from data.store import FileProjectStore, MemoryProjectStore
from entities.media import ImageAsset

TILE = 8


def tile_color(index: int):
    """Distinct opaque colour for each 1-based tile index."""
    return ((index * 40) % 256, (255 - index * 30) % 256, (index * 70 + 20) % 256, 255)


def make_tileset_image(columns: int = 4, rows: int = 2, tile: int = TILE, extra: int = 0) -> Image.Image:
    """A tileset image whose tiles are solid blocks of tile_color(index).
    extra adds unused pixels on the right and bottom edges."""
    img = Image.new("RGBA", (columns * tile + extra, rows * tile + extra), (0, 0, 0, 0))
    for row in range(rows):
        for col in range(columns):
            index = row * columns + col + 1
            block = Image.new("RGBA", (tile, tile), tile_color(index))
            img.paste(block, (col * tile, row * tile))
    return img


def png_bytes(img: Image.Image) -> bytes:
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def tileset_png():
    """PNG bytes of a 4x2 tileset of 8px tiles."""
    return png_bytes(make_tileset_image())


@pytest.fixture
def image_asset():
    """Image record for a 128x96 picture."""
    return ImageAsset(id="img-1", name="tiles", filename="img-1.png", width=128, height=96)


@pytest.fixture
def store(tmp_path):
    """File store rooted in a temporary games folder."""
    return FileProjectStore(tmp_path / "games")


@pytest.fixture
def memory_store():
    return MemoryProjectStore()


@pytest.fixture
def repo(store):
    """Repository for a fresh 'demo' game."""
    create_project(store, "demo")
    return ProjectRepository(store, "demo")


@pytest.fixture
def tileset_repo(repo, tileset_png):
    """Repository with an uploaded 4x2 tileset image and its tileset."""
    image = repo.add_image(tileset_png, "tiles.png")
    tileset = repo.create_tileset("terrain", image.id, TILE, TILE)
    return repo, image, tileset


@pytest.fixture
def config(tmp_path):
    return StudioConfig(games_dir=str(tmp_path / "games"))


@pytest.fixture
def app(config, store):
    app = create_app(config, store)
    app.testing = True
    return app


@pytest.fixture
def client(app):
    """Flask test client with a 'demo' game already created."""
    c = app.test_client()
    resp = c.post("/api/games", json={"name": "demo"})
    assert resp.status_code == 200
    return c
