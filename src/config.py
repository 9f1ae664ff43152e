"""
Configuration settings for the studio server.
"""

from pydantic import BaseModel, ConfigDict
from dotenv import load_dotenv
from typing import Optional
import logging
import toml
import os

logger = logging.getLogger(__name__)


class StudioConfig(BaseModel):
    """Configuration settings for the studio."""

    # Server
    host: str = "127.0.0.1"
    port: int = 3001
    production: bool = False
    cors_origin: str = "*"

    # Storage
    games_dir: str = "games"
    max_upload_mb: int = 32

    # Editing
    strict_tile_indices: bool = True
    default_frame_duration: float = 0.1

    # Logging
    log_level: str = "INFO"

    model_config = ConfigDict(extra="allow")

    @classmethod
    def load_from_toml(cls, path: str = "config.toml") -> "StudioConfig":
        """Load configuration from a TOML file, then apply environment overrides."""
        settings = {}
        if os.path.exists(path):
            try:
                with open(path, "r") as f:
                    data = toml.load(f)
                settings = data.get("studio", {})
            except toml.TomlDecodeError as e:
                logger.error("Error parsing config file %s: %s", path, e)
        else:
            logger.debug("Config file %s not found, using defaults", path)

        settings.update(cls._env_overrides())
        return cls(**settings)

    @staticmethod
    def _env_overrides() -> dict:
        load_dotenv()
        overrides = {}
        env_map = {
            "STUDIO_HOST": "host",
            "PORT": "port",
            "STUDIO_PORT": "port",
            "STUDIO_GAMES_DIR": "games_dir",
            "STUDIO_LOG_LEVEL": "log_level",
        }
        for var, key in env_map.items():
            value: Optional[str] = os.environ.get(var)
            if value:
                overrides[key] = value
        if os.environ.get("STUDIO_ENV") == "production":
            overrides["production"] = True
        return overrides


# Global config instance
CONFIG = StudioConfig.load_from_toml()
