"""Media domain models: asset kinds, I/O results, and cache entries.

Every I/O step in the media pipeline reports through one of the result
models below instead of raising.  A result is always safe to inspect:
``success`` is False and ``error`` carries a reason on any failure.
"""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel


class MediaKind(StrEnum):
    """Kind of media an asset is expected to hold."""

    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"
    FILE = "file"


class CachedAsset(BaseModel):
    """A materialized local copy of a remote asset."""

    local_path: str
    width: int | None = None
    height: int | None = None


class FetchResult(BaseModel):
    """Result of downloading a URL."""

    url: str = ""
    data: bytes = b""
    status: int | None = None
    content_type: str = ""
    attempts: int = 0
    success: bool = False
    error: str = ""


class OptimizeResult(BaseModel):
    """Result of re-encoding an image payload."""

    data: bytes = b""
    width: int = 0
    height: int = 0
    format: str = ""
    resized: bool = False
    success: bool = False
    error: str = ""


class CacheResult(BaseModel):
    """Result of resolving a remote asset through the cache."""

    source_url: str = ""
    asset: CachedAsset | None = None
    downloaded: bool = False
    success: bool = False
    error: str = ""

    @property
    def local_path(self) -> str | None:
        return self.asset.local_path if self.asset else None


class CacheStats(BaseModel):
    """Per-run counters for an AssetCache."""

    downloaded: int = 0
    reused: int = 0
    failed: int = 0
    memoized: int = 0
