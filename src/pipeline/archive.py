"""Archive pipeline: upstream items to local media plus a dated snapshot."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pagevault.backup.models import BackupResult
from pagevault.content import BlockRewriter, ContentItem
from pagevault.media.models import CacheStats
from pydantic import BaseModel, Field, ValidationError

if TYPE_CHECKING:
    from pagevault.backup.store import SnapshotStore
    from pagevault.config import PageVaultConfig
    from pagevault.media.cache import AssetCache

logger = logging.getLogger(__name__)


class ArchiveReport(BaseModel):
    """Summary of one archive run."""

    items: int = 0
    skipped: list[str] = Field(default_factory=list)
    cache: CacheStats = Field(default_factory=CacheStats)
    backup: BackupResult = Field(default_factory=BackupResult)


def parse_items(raw_items: list[ContentItem | dict[str, Any]]) -> tuple[list[ContentItem], list[str]]:
    """Validate upstream records, skipping the ones that are malformed.

    Returns:
        (items, skipped) where skipped holds a short label per dropped record.
    """
    items: list[ContentItem] = []
    skipped: list[str] = []
    for index, raw in enumerate(raw_items):
        if isinstance(raw, ContentItem):
            items.append(raw)
            continue
        try:
            items.append(ContentItem.from_raw(raw))
        except (ValidationError, TypeError) as exc:
            label = raw.get("slug") if isinstance(raw, dict) else None
            label = str(label or f"#{index}")
            logger.warning("Skipping malformed item %s: %s", label, exc)
            skipped.append(label)
    return items, skipped


def archive_content(
    raw_items: list[ContentItem | dict[str, Any]],
    config: PageVaultConfig,
    *,
    cache: AssetCache | None = None,
    store: SnapshotStore | None = None,
) -> ArchiveReport:
    """Cache every item's media, then snapshot the rewritten corpus.

    Args:
        raw_items: Items from the content source, as models or raw dicts.
        config: Loaded configuration.
        cache: Asset cache for this run. Built from config when omitted.
        store: Snapshot store. Built from config when omitted.

    Returns:
        An ArchiveReport with cache counters and the backup outcome.
    """
    cache = cache or config.to_asset_cache()
    store = store or config.to_snapshot_store()

    items, skipped = parse_items(raw_items)
    rewriter = BlockRewriter(cache, media_types=config.media.block_types)
    rewritten = rewriter.rewrite_items(items, max_workers=config.media.workers)

    stats = cache.stats()
    logger.info(
        "Media: %d downloaded, %d reused, %d failed",
        stats.downloaded,
        stats.reused,
        stats.failed,
    )

    backup = store.perform_backup(rewritten)
    return ArchiveReport(items=len(rewritten), skipped=skipped, cache=stats, backup=backup)
