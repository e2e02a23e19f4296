"""Deterministic local names for remote assets."""

from __future__ import annotations

import hashlib
import re
from pathlib import PurePosixPath
from urllib.parse import urlparse

from pagevault.media.models import MediaKind

MEDIA_EXTENSIONS = frozenset(
    {
        ".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg", ".avif", ".bmp",
        ".tif", ".tiff",
        ".mp3", ".m4a", ".wav", ".ogg",
        ".mp4", ".mov", ".webm",
        ".pdf",
    }
)

DEFAULT_IMAGE_EXTENSION = ".jpg"
DEFAULT_FILE_EXTENSION = ".bin"
OPTIMIZED_EXTENSION = ".webp"

_UNSAFE_ID = re.compile(r"[^A-Za-z0-9_-]+")
_HASH_LENGTH = 32


def asset_basename(source_url: str, stable_id: str | None = None) -> str:
    """Return the extension-less local name for an asset.

    A stable identifier wins over the URL so that a rotated signed URL
    for the same logical asset lands on the same file.
    """
    if stable_id:
        cleaned = _UNSAFE_ID.sub("-", stable_id.strip()).strip("-")
        if cleaned:
            return cleaned
    return hashlib.sha256(source_url.encode("utf-8")).hexdigest()[:_HASH_LENGTH]


def url_extension(source_url: str) -> str | None:
    """Return the allow-listed media extension of a URL path, if any."""
    try:
        path = urlparse(source_url).path
    except ValueError:
        return None
    suffix = PurePosixPath(path).suffix.lower()
    return suffix if suffix in MEDIA_EXTENSIONS else None


def resolve_filename(
    source_url: str,
    stable_id: str | None = None,
    kind: MediaKind = MediaKind.IMAGE,
    detected: str | None = None,
) -> str:
    """Build ``<base><ext>`` for an asset stored byte-for-byte.

    ``detected`` is an extension found by content inspection and is used
    only when the URL carries no recognised suffix.
    """
    ext = url_extension(source_url)
    if ext is None and detected:
        ext = detected if detected.startswith(".") else f".{detected}"
    if ext is None:
        ext = DEFAULT_IMAGE_EXTENSION if kind == MediaKind.IMAGE else DEFAULT_FILE_EXTENSION
    return f"{asset_basename(source_url, stable_id)}{ext}"


def optimized_filename(base: str) -> str:
    """Name for an image whose stored bytes came out of the optimizer."""
    return f"{base}{OPTIMIZED_EXTENSION}"
