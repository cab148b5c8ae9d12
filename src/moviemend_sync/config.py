"""Configuration management using Pydantic models."""

import logging
import os
import shutil
from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from .constants import (
    CACHE_SCHEMA_VERSION,
    DEFAULT_CACHE_MAX_BYTES,
    DEFAULT_FRESH_SECONDS,
    DEFAULT_KEEP_SECONDS,
    DEFAULT_TIMEOUT_SECONDS,
)

logger = logging.getLogger(__name__)


# Placeholder values that indicate an unconfigured backend
INVALID_PLACEHOLDERS = {
    "YOUR_BACKEND_URL_HERE",
    "YOUR_ANON_KEY_HERE",
    "",
}


class BackendConfig(BaseModel):
    """Managed backend configuration."""
    url: Optional[str] = None
    anon_key: Optional[str] = None
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    watchlist_table: str = "watchlist"
    details_function: str = "tmdb-details"


class CacheConfig(BaseModel):
    """Local cache settings."""
    path: str = "data/cache"
    max_bytes: Optional[int] = DEFAULT_CACHE_MAX_BYTES
    max_movie_details: Optional[int] = Field(default=None, ge=1)
    schema_version: int = CACHE_SCHEMA_VERSION


class FreshnessConfig(BaseModel):
    """Movie detail freshness windows, in seconds."""
    fresh_seconds: int = Field(default=DEFAULT_FRESH_SECONDS, ge=0)
    keep_seconds: int = Field(default=DEFAULT_KEEP_SECONDS, ge=0)

    @field_validator("keep_seconds")
    @classmethod
    def keep_covers_fresh(cls, v, info):
        """Keep window can't be shorter than the fresh window."""
        fresh = info.data.get("fresh_seconds", DEFAULT_FRESH_SECONDS)
        return max(v, fresh)


class Config(BaseModel):
    """Root configuration model."""
    backend: BackendConfig = Field(default_factory=BackendConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    freshness: FreshnessConfig = Field(default_factory=FreshnessConfig)
    session_file: str = "data/session.json"
    log_level: str = "INFO"


class Settings:
    """Application settings loaded from config.yaml."""

    def __init__(self, config_path: Optional[Path] = None):
        """Load and validate configuration."""
        self.config_path = Path(config_path) if config_path else self._get_config_path()

        if not self.config_path.exists():
            self._create_config_template()

        self._load_config()

    def _get_config_path(self) -> Path:
        """Get config file path, honoring MOVIEMEND_CONFIG."""
        override = os.environ.get("MOVIEMEND_CONFIG")
        if override:
            return Path(override)
        return Path("data/config.yaml")

    def _create_config_template(self) -> None:
        """Create config template from example."""
        example_path = Path("config.example.yaml")
        if example_path.exists():
            self.config_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy(example_path, self.config_path)
            logger.info(f"Created config template: {self.config_path}")
            logger.info("Please edit the config file with your backend details")

    def _load_config(self) -> None:
        """Load configuration from YAML using Pydantic."""
        raw_config = {}
        try:
            if self.config_path.exists():
                with open(self.config_path, "r", encoding="utf-8") as f:
                    raw_config = yaml.safe_load(f) or {}
                logger.debug(f"Loaded configuration from {self.config_path}")

            config = Config(**raw_config)
        except Exception as e:
            logger.error(f"Failed to load config: {e}")
            raise

        self.config = config

        self.backend_url = os.environ.get("MOVIEMEND_BACKEND_URL") or config.backend.url
        self.anon_key = os.environ.get("MOVIEMEND_ANON_KEY") or config.backend.anon_key
        self.timeout_seconds = config.backend.timeout_seconds
        self.watchlist_table = config.backend.watchlist_table
        self.details_function = config.backend.details_function

        self.cache_path = Path(config.cache.path)
        self.cache_max_bytes = config.cache.max_bytes
        self.max_movie_details = config.cache.max_movie_details
        self.cache_schema_version = config.cache.schema_version

        self.fresh_seconds = config.freshness.fresh_seconds
        self.keep_seconds = config.freshness.keep_seconds

        self.session_file = Path(config.session_file)
        self.log_level = config.log_level.upper()


def validate_backend(settings: Settings) -> tuple[bool, list[str]]:
    """
    Validate that backend settings are not placeholder values.
    Returns (is_valid, list_of_invalid_fields).
    """
    missing_or_invalid = []
    for name, value in (("backend.url", settings.backend_url), ("backend.anon_key", settings.anon_key)):
        if not value or value in INVALID_PLACEHOLDERS:
            missing_or_invalid.append(name)

    return len(missing_or_invalid) == 0, missing_or_invalid


# Singleton cache for settings
_SETTINGS_SINGLETON = None

def get_settings() -> Settings:
    """Get (cached) application settings singleton."""
    global _SETTINGS_SINGLETON
    if _SETTINGS_SINGLETON is None:
        _SETTINGS_SINGLETON = Settings()
    return _SETTINGS_SINGLETON

def reload_settings() -> Settings:
    """Force reload of application settings singleton."""
    global _SETTINGS_SINGLETON
    _SETTINGS_SINGLETON = Settings()
    return _SETTINGS_SINGLETON
