"""Backup domain: dated, change-aware JSON snapshots of the corpus."""

from pagevault.backup.models import (
    BackupResult,
    ItemEnvelope,
    SnapshotEnvelope,
    SnapshotMetadata,
)
from pagevault.backup.store import (
    AGGREGATE_FILENAME,
    METADATA_FILENAME,
    SnapshotStore,
)

__all__ = [
    "AGGREGATE_FILENAME",
    "METADATA_FILENAME",
    "BackupResult",
    "ItemEnvelope",
    "SnapshotEnvelope",
    "SnapshotMetadata",
    "SnapshotStore",
]
