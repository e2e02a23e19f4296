"""Block tree rewriting: swap expiring media URLs for local cached paths."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from pagevault.content.models import ContentBlock, ContentItem, MediaRef
from pagevault.media.cache import AssetCache
from pagevault.media.models import MediaKind

logger = logging.getLogger(__name__)

MEDIA_BLOCK_KINDS: dict[str, MediaKind] = {
    "image": MediaKind.IMAGE,
    "audio": MediaKind.AUDIO,
    "video": MediaKind.VIDEO,
    "file": MediaKind.FILE,
    "pdf": MediaKind.FILE,
}

HERO_SUFFIX = "-hero"


class BlockRewriter:
    """Rebuild block trees so every media field is a local path or empty.

    The rewriter never edits blocks in place: each call returns a new
    tree.  A failed download clears the media URL instead of keeping the
    remote one, since an expiring URL that looks valid is worse than a
    visibly missing asset.
    """

    def __init__(self, cache: AssetCache, media_types: Iterable[str] | None = None) -> None:
        self.cache = cache
        self.media_types = frozenset(media_types if media_types is not None else MEDIA_BLOCK_KINDS)

    def rewrite(self, blocks: list[ContentBlock]) -> list[ContentBlock]:
        """Return a rewritten copy of a block forest, depth-first."""
        return [self.rewrite_block(block) for block in blocks]

    def rewrite_block(self, block: ContentBlock) -> ContentBlock:
        children = self.rewrite(block.children) if block.children else []
        payload = block.payload
        if block.type in self.media_types:
            ref = block.media_ref
            if ref is not None:
                payload = self._rewrite_media(block, ref)
        return block.model_copy(update={"payload": payload, "children": children})

    def rewrite_item(self, item: ContentItem) -> ContentItem:
        """Rewrite an item's blocks and cache its hero image."""
        update: dict[str, Any] = {"blocks": self.rewrite(item.blocks)}
        if item.hero_image is not None:
            stable_id = f"{item.id}{HERO_SUFFIX}" if item.id else None
            hero = self.cache.cache_asset(item.hero_image, stable_id=stable_id)
            if not hero.success:
                logger.warning("Dropping hero image for '%s': %s", item.slug, hero.error)
            update["hero_image"] = hero.local_path if hero.success else None
        return item.model_copy(update=update)

    def rewrite_items(self, items: list[ContentItem], max_workers: int = 1) -> list[ContentItem]:
        """Rewrite a batch of items, optionally across a thread pool.

        Output order always matches input order.
        """
        if max_workers <= 1 or len(items) < 2:
            return [self.rewrite_item(item) for item in items]
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            return list(executor.map(self.rewrite_item, items))

    def _rewrite_media(self, block: ContentBlock, ref: MediaRef) -> dict[str, Any]:
        kind = MEDIA_BLOCK_KINDS.get(block.type, MediaKind.FILE)
        result = self.cache.cache_asset(ref.source_url, stable_id=ref.stable_id, kind=kind)
        if result.local_path == ref.source_url:
            # Already rewritten on an earlier pass.
            return block.payload

        payload = {k: v for k, v in block.payload.items() if k not in ("file", "external")}
        payload["type"] = "file"
        if result.success and result.asset is not None:
            local: dict[str, Any] = {"url": result.asset.local_path}
            if result.asset.width is not None and result.asset.height is not None:
                local["width"] = result.asset.width
                local["height"] = result.asset.height
            payload["file"] = local
        else:
            logger.warning(
                "Clearing %s URL on block %s: %s", block.type, block.id or "?", result.error
            )
            payload["file"] = {"url": ""}
        return payload
