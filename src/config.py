"""Unified configuration loaded from .pagevault.toml, env vars, and overrides.

Loading order: defaults → TOML file → env vars → explicit overrides.
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field, ValidationError

if TYPE_CHECKING:
    from pagevault.backup.store import SnapshotStore
    from pagevault.media.cache import AssetCache

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".pagevault.toml"
CONFIG_SEARCH_PATHS = [
    Path("."),
]
GLOBAL_CONFIG = Path.home() / ".config" / "pagevault" / "config.toml"


class PageVaultError(Exception):
    """Base error for pagevault."""


class ConfigError(PageVaultError):
    """Configuration could not be turned into a usable PageVaultConfig."""


class MediaSectionConfig(BaseModel):
    """[media] section."""

    directory: str = "public/images"
    public_prefix: str = "/images"
    max_dimension: int = Field(default=2560, gt=0)
    quality: int = Field(default=80, ge=1, le=100)
    attempts: int = Field(default=3, ge=1)
    retry_delay: float = Field(default=1.0, ge=0)
    timeout: float = Field(default=30.0, gt=0)
    workers: int = Field(default=1, ge=1)
    block_types: list[str] = Field(
        default_factory=lambda: ["image", "audio", "video", "file", "pdf"]
    )


class BackupSectionConfig(BaseModel):
    """[backup] section."""

    directory: str = "data/backup"
    version: str = "1.0"
    source: str = "content source"


class PageVaultConfig(BaseModel):
    """Top-level configuration for the media cache and backup pipeline."""

    media: MediaSectionConfig = Field(default_factory=MediaSectionConfig)
    backup: BackupSectionConfig = Field(default_factory=BackupSectionConfig)

    def to_asset_cache(self) -> AssetCache:
        """Build an AssetCache backed by the configured media directory."""
        from pagevault.media import AssetCache, Fetcher, ImageOptimizer, LocalMediaStore

        return AssetCache(
            LocalMediaStore(Path(self.media.directory)),
            fetcher=Fetcher(
                attempts=self.media.attempts,
                retry_delay=self.media.retry_delay,
                timeout=self.media.timeout,
            ),
            optimizer=ImageOptimizer(
                max_dimension=self.media.max_dimension,
                quality=self.media.quality,
            ),
            public_prefix=self.media.public_prefix,
        )

    def to_snapshot_store(self) -> SnapshotStore:
        """Build a SnapshotStore rooted at the configured backup directory."""
        from pagevault.backup import SnapshotStore

        return SnapshotStore(
            Path(self.backup.directory),
            version=self.backup.version,
            source=self.backup.source,
        )


def load_config(path: str | Path | None = None) -> PageVaultConfig:
    """Load configuration from a TOML file.

    Search order:
    1. Explicit path (if provided)
    2. .pagevault.toml in CWD
    3. ~/.config/pagevault/config.toml

    Then overlay environment variables.

    Args:
        path: Explicit path to a TOML file.

    Returns:
        Merged PageVaultConfig.

    Raises:
        ConfigError: If the merged values fail validation.
    """
    data: dict[str, Any] = {}

    if path is not None:
        toml_path = Path(path)
        if toml_path.exists():
            data = _load_toml(toml_path)
        else:
            logger.warning("Config file not found: %s", toml_path)
    else:
        for search_dir in CONFIG_SEARCH_PATHS:
            candidate = search_dir / CONFIG_FILENAME
            if candidate.exists():
                data = _load_toml(candidate)
                logger.info("Loaded config from %s", candidate)
                break
        if not data and GLOBAL_CONFIG.exists():
            data = _load_toml(GLOBAL_CONFIG)
            logger.info("Loaded config from %s", GLOBAL_CONFIG)

    config = _validate(data)
    return _apply_env_vars(config)


def merge_overrides(config: PageVaultConfig, **overrides: object) -> PageVaultConfig:
    """Overlay explicitly-set values onto the config.

    Only overrides values that were provided (i.e., not None).  Keys are
    ``<section>_<field>``, e.g. ``media_directory`` or ``backup_source``.
    """
    data = config.model_dump()

    for key, value in overrides.items():
        if value is None:
            continue
        section, _, field = key.partition("_")
        if section not in data or field not in data[section]:
            logger.warning("Ignoring unknown config override: %s", key)
            continue
        data[section][field] = value

    return _validate(data)


def _load_toml(path: Path) -> dict[str, Any]:
    """Load a TOML file and return the data dict."""
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except (tomllib.TOMLDecodeError, OSError) as exc:
        logger.warning("Failed to parse %s: %s", path, exc)
        return {}


def _validate(data: dict[str, Any]) -> PageVaultConfig:
    try:
        return PageVaultConfig.model_validate(data) if data else PageVaultConfig()
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc


def _apply_env_vars(config: PageVaultConfig) -> PageVaultConfig:
    """Apply environment variable overrides to config."""
    data = config.model_dump()

    env_mapping: dict[str, tuple[str, str]] = {
        "PAGEVAULT_MEDIA_DIR": ("media", "directory"),
        "PAGEVAULT_PUBLIC_PREFIX": ("media", "public_prefix"),
        "PAGEVAULT_MAX_DIMENSION": ("media", "max_dimension"),
        "PAGEVAULT_IMAGE_QUALITY": ("media", "quality"),
        "PAGEVAULT_FETCH_ATTEMPTS": ("media", "attempts"),
        "PAGEVAULT_RETRY_DELAY": ("media", "retry_delay"),
        "PAGEVAULT_WORKERS": ("media", "workers"),
        "PAGEVAULT_BACKUP_DIR": ("backup", "directory"),
        "PAGEVAULT_BACKUP_SOURCE": ("backup", "source"),
    }

    for env_var, (section, field) in env_mapping.items():
        value = os.environ.get(env_var)
        if value is not None:
            data[section][field] = value

    block_types_raw = os.environ.get("PAGEVAULT_BLOCK_TYPES")
    if block_types_raw is not None:
        data["media"]["block_types"] = [
            t.strip() for t in block_types_raw.split(",") if t.strip()
        ]

    return _validate(data)
