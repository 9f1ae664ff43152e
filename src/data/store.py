"""
Persistence port for project documents and their binary assets.

FileProjectStore keeps each project in its own folder:

    <games_dir>/<project>/game.json
    <games_dir>/<project>/images/<id>.<ext>
    <games_dir>/<project>/sounds/<id>.<ext>
    <games_dir>/<project>/animations/<id>.png

MemoryProjectStore keeps the same structure in dicts.
"""

import json
import logging
import os
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from core.errors import IOFailure, NotFound, ProjectExistsError, ValidationError
from data.document import encode_document
from entities.media import BLOB_FOLDERS

logger = logging.getLogger(__name__)

DOCUMENT_FILE = "game.json"
ENTRY_FILE = "main.lua"

_SAFE_NAME = re.compile(r"^[A-Za-z0-9][A-Za-z0-9 _.\-]*$")


def validate_name(name: Optional[str], what: str = "Project") -> str:
    """Reject names that could escape the games folder."""
    if not name or not name.strip():
        raise ValidationError(f"{what} name is required")
    name = name.strip()
    if ".." in name or not _SAFE_NAME.match(name):
        raise ValidationError(f"Invalid {what.lower()} name {name!r}")
    return name


def validate_folder(folder: str) -> str:
    if folder not in BLOB_FOLDERS:
        raise NotFound(f"Unknown asset type {folder!r}")
    return folder


class ProjectStore(ABC):
    """Where project documents and blobs live."""

    @property
    @abstractmethod
    def key(self) -> str:
        """Identity used to share locks between stores over the same data."""

    @abstractmethod
    def list_projects(self) -> List[str]: ...

    @abstractmethod
    def exists(self, project: str) -> bool: ...

    @abstractmethod
    def create_project(self, project: str, doc: Dict[str, Any]): ...

    @abstractmethod
    def read_document(self, project: str) -> Optional[Dict[str, Any]]:
        """Raw document, or None when the project has no document yet."""

    @abstractmethod
    def write_document(self, project: str, doc: Dict[str, Any]): ...

    @abstractmethod
    def write_blob(self, project: str, folder: str, filename: str, data: bytes): ...

    @abstractmethod
    def read_blob(self, project: str, folder: str, filename: str) -> bytes: ...

    @abstractmethod
    def delete_blob(self, project: str, folder: str, filename: str) -> bool:
        """Best-effort removal; returns False instead of raising."""


class FileProjectStore(ProjectStore):
    def __init__(self, games_dir):
        self.games_dir = Path(games_dir)

    @property
    def key(self) -> str:
        return str(self.games_dir.resolve())

    def project_dir(self, project: str) -> Path:
        return self.games_dir / validate_name(project)

    def _blob_path(self, project: str, folder: str, filename: str) -> Path:
        validate_folder(folder)
        if not filename or os.path.basename(filename) != filename or filename.startswith("."):
            raise NotFound(f"Invalid asset filename {filename!r}")
        return self.project_dir(project) / folder / filename

    def list_projects(self) -> List[str]:
        if not self.games_dir.exists():
            return []
        found = []
        for entry in self.games_dir.iterdir():
            if not entry.is_dir():
                continue
            if (entry / ENTRY_FILE).exists() or (entry / DOCUMENT_FILE).exists():
                found.append(entry.name)
        return sorted(found)

    def exists(self, project: str) -> bool:
        return self.project_dir(project).is_dir()

    def create_project(self, project: str, doc: Dict[str, Any]):
        path = self.project_dir(project)
        if path.exists():
            raise ProjectExistsError(f"Game {project!r} already exists")
        try:
            path.mkdir(parents=True)
        except OSError as e:
            raise IOFailure(f"Could not create {path}: {e}") from e
        self.write_document(project, doc)

    def read_document(self, project: str) -> Optional[Dict[str, Any]]:
        path = self.project_dir(project)
        if not path.is_dir():
            raise NotFound(f"Game {project!r} not found")
        doc_file = path / DOCUMENT_FILE
        if not doc_file.exists():
            return None
        try:
            with open(doc_file, "r", encoding="utf-8") as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise IOFailure(f"Corrupt {doc_file}: {e}") from e
        except OSError as e:
            raise IOFailure(f"Could not read {doc_file}: {e}") from e

    def write_document(self, project: str, doc: Dict[str, Any]):
        doc_file = self.project_dir(project) / DOCUMENT_FILE
        tmp_file = doc_file.with_suffix(".json.tmp")
        try:
            with open(tmp_file, "w", encoding="utf-8") as f:
                f.write(encode_document(doc))
            os.replace(tmp_file, doc_file)
        except OSError as e:
            raise IOFailure(f"Could not write {doc_file}: {e}") from e

    def write_blob(self, project: str, folder: str, filename: str, data: bytes):
        path = self._blob_path(project, folder, filename)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "wb") as f:
                f.write(data)
        except OSError as e:
            raise IOFailure(f"Could not write {path}: {e}") from e

    def read_blob(self, project: str, folder: str, filename: str) -> bytes:
        path = self._blob_path(project, folder, filename)
        if not path.is_file():
            raise NotFound(f"Asset {folder}/{filename} not found")
        try:
            with open(path, "rb") as f:
                return f.read()
        except OSError as e:
            raise IOFailure(f"Could not read {path}: {e}") from e

    def delete_blob(self, project: str, folder: str, filename: str) -> bool:
        try:
            self._blob_path(project, folder, filename).unlink()
            return True
        except (OSError, NotFound) as e:
            logger.warning("Could not delete %s/%s in %s: %s", folder, filename, project, e)
            return False


class MemoryProjectStore(ProjectStore):
    def __init__(self):
        self.documents: Dict[str, Optional[Dict[str, Any]]] = {}
        self.blobs: Dict[Tuple[str, str, str], bytes] = {}

    @property
    def key(self) -> str:
        return f"memory:{id(self)}"

    def list_projects(self) -> List[str]:
        return sorted(self.documents)

    def exists(self, project: str) -> bool:
        return validate_name(project) in self.documents

    def create_project(self, project: str, doc: Dict[str, Any]):
        if self.exists(project):
            raise ProjectExistsError(f"Game {project!r} already exists")
        self.write_document(project, doc)

    def read_document(self, project: str) -> Optional[Dict[str, Any]]:
        if not self.exists(project):
            raise NotFound(f"Game {project!r} not found")
        doc = self.documents[project]
        return json.loads(encode_document(doc)) if doc is not None else None

    def write_document(self, project: str, doc: Dict[str, Any]):
        # Stored documents are private copies.
        self.documents[validate_name(project)] = json.loads(encode_document(doc))

    def write_blob(self, project: str, folder: str, filename: str, data: bytes):
        self.blobs[(validate_name(project), validate_folder(folder), filename)] = bytes(data)

    def read_blob(self, project: str, folder: str, filename: str) -> bytes:
        try:
            return self.blobs[(project, validate_folder(folder), filename)]
        except KeyError:
            raise NotFound(f"Asset {folder}/{filename} not found") from None

    def delete_blob(self, project: str, folder: str, filename: str) -> bool:
        return self.blobs.pop((project, folder, filename), None) is not None
