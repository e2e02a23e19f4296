"""Durable tier of the asset cache: where materialized media lives."""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path

from pagevault.media.identity import OPTIMIZED_EXTENSION
from pagevault.shared.storage import atomic_write_bytes

logger = logging.getLogger(__name__)


class MediaStore(ABC):
    """Flat, name-addressed collection of media files."""

    @abstractmethod
    def find(self, stem: str) -> str | None:
        """Return the stored name whose base is ``stem``, if one exists.

        An optimized (``.webp``) copy is preferred when several exist.
        """

    @abstractmethod
    def read(self, name: str) -> bytes:
        """Return the bytes stored under ``name``."""

    @abstractmethod
    def write(self, name: str, data: bytes) -> None:
        """Store ``data`` under ``name`` as a whole-file write."""

    @abstractmethod
    def names(self) -> list[str]:
        """List every stored name."""


def _pick(candidates: list[str]) -> str | None:
    if not candidates:
        return None
    for name in candidates:
        if name.endswith(OPTIMIZED_EXTENSION):
            return name
    return sorted(candidates)[0]


class LocalMediaStore(MediaStore):
    """Media files in a single directory on disk."""

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def find(self, stem: str) -> str | None:
        if not self.directory.is_dir():
            return None
        return _pick([p.name for p in self.directory.glob(f"{stem}.*") if p.is_file()])

    def read(self, name: str) -> bytes:
        return (self.directory / name).read_bytes()

    def write(self, name: str, data: bytes) -> None:
        atomic_write_bytes(self.directory / name, data)
        logger.debug("Wrote %s (%d bytes)", self.directory / name, len(data))

    def names(self) -> list[str]:
        if not self.directory.is_dir():
            return []
        return sorted(p.name for p in self.directory.iterdir() if p.is_file() and not p.name.startswith("."))


class InMemoryMediaStore(MediaStore):
    """Dict-backed store, used to observe cache hits without a filesystem."""

    def __init__(self, files: dict[str, bytes] | None = None) -> None:
        self.files: dict[str, bytes] = dict(files or {})
        self._lock = threading.Lock()

    def find(self, stem: str) -> str | None:
        with self._lock:
            return _pick([n for n in self.files if n.rsplit(".", 1)[0] == stem])

    def read(self, name: str) -> bytes:
        with self._lock:
            return self.files[name]

    def write(self, name: str, data: bytes) -> None:
        with self._lock:
            self.files[name] = data

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self.files)
