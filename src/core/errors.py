"""
Error taxonomy for the studio.

Every failure raised by the model, the store or the API derives from StudioError
and carries the HTTP status it is reported with at the request boundary.
"""


class StudioError(Exception):
    """Base class for all studio failures."""

    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.__class__.__name__

    def to_dict(self) -> dict:
        return {"error": self.message, "type": self.__class__.__name__}


class NotFound(StudioError):
    """A referenced project, image, tileset, background, layer or object is absent."""

    status_code = 404


class ValidationError(StudioError):
    """Missing or malformed input."""

    status_code = 400


class InvalidTileIndex(ValidationError):
    """A tile index outside 0..tileCount."""


class ConflictError(StudioError):
    """The document changed since the caller read it."""

    status_code = 412


class LastLayerError(StudioError):
    status_code = 409


class LastStateError(StudioError):
    status_code = 409


class TilesetInUseError(StudioError):
    status_code = 409


class ProjectExistsError(StudioError):
    status_code = 409


class IOFailure(StudioError):
    """Filesystem or image-library failure."""

    status_code = 500
