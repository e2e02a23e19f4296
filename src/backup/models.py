"""Snapshot file formats.

All three files written for a snapshot day are described here so the
read side (restore, indexing) validates exactly what the write side
produced.
"""

from __future__ import annotations

from datetime import datetime

from pagevault.content.models import ContentItem
from pydantic import BaseModel, Field


class SnapshotEnvelope(BaseModel):
    """``all-items.json``: the full corpus for one day."""

    version: str
    backup_date: datetime
    count: int
    data: list[ContentItem] = Field(default_factory=list)


class ItemEnvelope(BaseModel):
    """``<type>s/<slug>.json``: a single item."""

    version: str
    backup_date: datetime
    data: ContentItem


class DateRange(BaseModel):
    earliest: str = ""
    latest: str = ""


class ContentIndexEntry(BaseModel):
    slug: str
    title: str
    type: str
    date: str


class EnrichmentCoverage(BaseModel):
    """How many items carry each optional enrichment field."""

    with_embeddings: int = 0
    with_dialogue: int = 0
    with_philosophical_insight: int = 0
    total_blocks: int = 0


class SnapshotMetadata(BaseModel):
    """``metadata.json``: aggregate statistics over the corpus."""

    schema_version: str
    backup_date: datetime
    backup_source: str
    total_count: int
    content_types: dict[str, int] = Field(default_factory=dict)
    categories: list[str] = Field(default_factory=list)
    projects: list[str] = Field(default_factory=list)
    all_concepts: list[str] = Field(default_factory=list)
    date_range: DateRange = Field(default_factory=DateRange)
    content_index: list[ContentIndexEntry] = Field(default_factory=list)
    enrichment: EnrichmentCoverage = Field(default_factory=EnrichmentCoverage)


class BackupResult(BaseModel):
    """Outcome of one ``perform_backup`` call."""

    written: bool = False
    directory: str = ""
    files: list[str] = Field(default_factory=list)
    reason: str = ""
