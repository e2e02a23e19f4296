"""Atomic file writes."""

from __future__ import annotations

import os
import uuid
from contextlib import suppress
from pathlib import Path


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """Write ``data`` to ``path`` through a temp file and ``os.replace``.

    Readers never observe a partially written file; on error the temp
    file is removed and the exception propagates.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex}.part")
    try:
        with temp_path.open("wb") as handle:
            handle.write(data)
            handle.flush()
            with suppress(OSError):
                os.fsync(handle.fileno())
        os.replace(temp_path, path)
    finally:
        with suppress(FileNotFoundError):
            temp_path.unlink()
