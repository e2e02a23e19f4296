"""Dated, change-aware JSON snapshots of the content corpus.

Layout under the backup root::

    <YYYY-MM-DD>/all-items.json
    <YYYY-MM-DD>/<type>s/<slug>[-N].json
    <YYYY-MM-DD>/metadata.json

A run writes a new day directory only when the corpus differs from the
most recent snapshot (slug set changed, or some item was updated after
the newest timestamp in that snapshot).  Re-running on the same day
replaces that day's files; earlier days are kept as history.
"""

from __future__ import annotations

import json
import logging
import re
import shutil
import uuid
from collections.abc import Callable, Iterable
from datetime import UTC, date, datetime
from pathlib import Path
from typing import Any

from pagevault.backup.models import (
    BackupResult,
    ContentIndexEntry,
    DateRange,
    EnrichmentCoverage,
    ItemEnvelope,
    SnapshotEnvelope,
    SnapshotMetadata,
)
from pagevault.content.models import ContentItem, ContentType

logger = logging.getLogger(__name__)

AGGREGATE_FILENAME = "all-items.json"
METADATA_FILENAME = "metadata.json"
DEFAULT_VERSION = "1.0"
DEFAULT_SOURCE = "content source"

_DAY_DIR = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_UNSAFE_NAME = re.compile(r"[^A-Za-z0-9._-]+")


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


def _parse_timestamp(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _max_timestamp(values: Iterable[Any]) -> datetime | None:
    parsed = [ts for ts in (_parse_timestamp(v) for v in values) if ts is not None]
    return max(parsed) if parsed else None


def _distinct(values: Iterable[str]) -> list[str]:
    """First-seen-order unique, non-empty values."""
    return list(dict.fromkeys(v for v in values if v))


def _safe_name(item: ContentItem) -> str:
    name = _UNSAFE_NAME.sub("-", item.slug).strip(".-")
    if not name:
        name = _UNSAFE_NAME.sub("-", item.id).strip(".-")
    return name or "item"


def type_directory(content_type: ContentType) -> str:
    return f"{content_type.value}s"


class SnapshotStore:
    """Persist the transformed corpus as dated JSON snapshots.

    Assumes a single writer per backup root; the change check and the
    write that follows are not guarded against concurrent writers.
    """

    def __init__(
        self,
        base_dir: Path,
        *,
        version: str = DEFAULT_VERSION,
        source: str = DEFAULT_SOURCE,
        today: date | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.base_dir = Path(base_dir)
        self.version = version
        self.source = source
        self._today = today
        self._clock = clock

    @property
    def today(self) -> date:
        return self._today or self._clock().date()

    @property
    def backup_dir(self) -> Path:
        """Directory for today's snapshot."""
        return self.base_dir / self.today.isoformat()

    # ── Read side ────────────────────────────────────────────────

    def list_snapshots(self) -> list[date]:
        """Return snapshot days present under the backup root, oldest first."""
        if not self.base_dir.is_dir():
            return []
        days: list[date] = []
        for entry in self.base_dir.iterdir():
            if not entry.is_dir() or not _DAY_DIR.match(entry.name):
                continue
            try:
                days.append(date.fromisoformat(entry.name))
            except ValueError:
                continue
        return sorted(days)

    def latest_snapshot(self) -> Path | None:
        """Directory of the most recent snapshot, or None if there is none."""
        days = self.list_snapshots()
        if not days:
            return None
        return self.base_dir / days[-1].isoformat()

    def load_snapshot(self, day: date | str | None = None) -> list[ContentItem]:
        """Load the corpus stored for ``day`` (default: most recent).

        Raises FileNotFoundError if no such snapshot exists.
        """
        if day is None:
            directory = self.latest_snapshot()
            if directory is None:
                raise FileNotFoundError(f"No snapshots under {self.base_dir}")
        else:
            label = day.isoformat() if isinstance(day, date) else day
            directory = self.base_dir / label
        path = directory / AGGREGATE_FILENAME
        envelope = SnapshotEnvelope.model_validate_json(path.read_text(encoding="utf-8"))
        return list(envelope.data)

    # ── Change detection ─────────────────────────────────────────

    def has_changed(self, corpus: list[ContentItem]) -> bool:
        """Decide whether ``corpus`` differs materially from the last snapshot.

        Anything unreadable about the previous snapshot counts as a
        change, so a damaged history is replaced rather than trusted.
        """
        latest = self.latest_snapshot()
        if latest is None:
            logger.info("No previous snapshot under %s", self.base_dir)
            return True

        path = latest / AGGREGATE_FILENAME
        if not path.exists():
            logger.info("Previous snapshot %s is incomplete", latest.name)
            return True

        try:
            previous = json.loads(path.read_text(encoding="utf-8"))
            previous_items = previous.get("data") or []
            previous_slugs = {entry.get("slug") for entry in previous_items}
            previous_latest = _max_timestamp(entry.get("last_updated") for entry in previous_items)
        except (OSError, ValueError, AttributeError, TypeError) as exc:
            logger.warning("Unreadable snapshot %s, treating as changed: %s", path, exc)
            return True

        current_slugs = {item.slug for item in corpus}
        if len(current_slugs) != len(previous_slugs):
            logger.info(
                "Item count changed: %d -> %d", len(previous_slugs), len(current_slugs)
            )
            return True
        if current_slugs - previous_slugs or previous_slugs - current_slugs:
            logger.info("Slug set changed since %s", latest.name)
            return True

        current_latest = _max_timestamp(item.last_updated for item in corpus)
        if current_latest is not None and (
            previous_latest is None or current_latest > previous_latest
        ):
            logger.info("Content updated since %s", latest.name)
            return True

        return False

    # ── Writers ──────────────────────────────────────────────────

    def save_all(
        self,
        corpus: list[ContentItem],
        directory: Path | None = None,
        generated_at: datetime | None = None,
    ) -> Path:
        """Write the aggregate ``all-items.json`` file."""
        directory = directory or self.backup_dir
        envelope = SnapshotEnvelope(
            version=self.version,
            backup_date=generated_at or self._clock(),
            count=len(corpus),
            data=corpus,
        )
        path = directory / AGGREGATE_FILENAME
        _write_model(path, envelope)
        return path

    def save_individual(
        self,
        corpus: list[ContentItem],
        directory: Path | None = None,
        generated_at: datetime | None = None,
    ) -> list[Path]:
        """Write one file per item under ``<type>s/``.

        Duplicate slugs within a type get ``-2``, ``-3``, ... appended in
        first-seen order; no file is ever overwritten within one call.
        """
        directory = directory or self.backup_dir
        generated_at = generated_at or self._clock()
        used: dict[str, set[str]] = {}
        paths: list[Path] = []

        for item in corpus:
            type_dir = type_directory(item.content_type)
            taken = used.setdefault(type_dir, set())
            base = _safe_name(item)
            filename = f"{base}.json"
            counter = 1
            while filename in taken:
                counter += 1
                filename = f"{base}-{counter}.json"
            taken.add(filename)

            path = directory / type_dir / filename
            _write_model(
                path,
                ItemEnvelope(version=self.version, backup_date=generated_at, data=item),
            )
            paths.append(path)

        return paths

    def build_metadata(
        self,
        corpus: list[ContentItem],
        generated_at: datetime | None = None,
    ) -> SnapshotMetadata:
        """Compute the aggregate statistics stored in ``metadata.json``."""
        dates = sorted(item.date for item in corpus if item.date)
        return SnapshotMetadata(
            schema_version=self.version,
            backup_date=generated_at or self._clock(),
            backup_source=self.source,
            total_count=len(corpus),
            content_types={
                t.value: sum(1 for item in corpus if item.content_type == t)
                for t in ContentType
            },
            categories=_distinct(item.web_category for item in corpus),
            projects=_distinct(p for item in corpus for p in item.project),
            all_concepts=_distinct(c for item in corpus for c in item.concepts),
            date_range=DateRange(
                earliest=dates[0] if dates else "",
                latest=dates[-1] if dates else "",
            ),
            content_index=[
                ContentIndexEntry(
                    slug=item.slug,
                    title=item.title,
                    type=item.content_type.value,
                    date=item.date,
                )
                for item in corpus
            ],
            enrichment=EnrichmentCoverage(
                with_embeddings=sum(1 for item in corpus if item.embedding is not None),
                with_dialogue=sum(1 for item in corpus if item.dialogue),
                with_philosophical_insight=sum(
                    1 for item in corpus if item.philosophical_insight
                ),
                total_blocks=sum(len(item.blocks) for item in corpus),
            ),
        )

    def save_metadata(
        self,
        corpus: list[ContentItem],
        directory: Path | None = None,
        generated_at: datetime | None = None,
    ) -> Path:
        """Write ``metadata.json``."""
        directory = directory or self.backup_dir
        path = directory / METADATA_FILENAME
        _write_model(path, self.build_metadata(corpus, generated_at))
        return path

    def perform_backup(self, corpus: list[ContentItem]) -> BackupResult:
        """Snapshot ``corpus`` into today's directory if it changed.

        The three artifacts are built in a staging directory next to the
        target and swapped in with renames, so the aggregate file and the
        per-item files always describe the same corpus.
        """
        target = self.backup_dir
        if not self.has_changed(corpus):
            logger.info("Content unchanged, skipping backup")
            latest = self.latest_snapshot()
            return BackupResult(
                written=False,
                directory=str(latest) if latest else "",
                reason="unchanged",
            )

        generated_at = self._clock()
        staging = self.base_dir / f".{target.name}.staging-{uuid.uuid4().hex}"
        try:
            written = [
                self.save_all(corpus, staging, generated_at),
                *self.save_individual(corpus, staging, generated_at),
                self.save_metadata(corpus, staging, generated_at),
            ]
            _swap_in(staging, target)
        finally:
            if staging.exists():
                shutil.rmtree(staging, ignore_errors=True)

        files = [str(target / path.relative_to(staging)) for path in written]
        logger.info("Backed up %d items to %s", len(corpus), target)
        return BackupResult(written=True, directory=str(target), files=files, reason="changed")


def _write_model(path: Path, model: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(model.model_dump_json(indent=2), encoding="utf-8")


def _swap_in(staging: Path, target: Path) -> None:
    """Replace ``target`` with ``staging`` using directory renames."""
    retired: Path | None = None
    if target.exists():
        retired = target.with_name(f".{target.name}.retired-{uuid.uuid4().hex}")
        target.rename(retired)
    try:
        staging.rename(target)
    except OSError:
        if retired is not None:
            retired.rename(target)
        raise
    if retired is not None:
        shutil.rmtree(retired, ignore_errors=True)
