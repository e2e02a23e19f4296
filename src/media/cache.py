"""Content-addressed asset cache.

Two tiers sit in front of the network:

1. an in-process memo table keyed by the original remote URL, so each
   distinct URL costs at most one resolution per run;
2. a durable :class:`MediaStore`, checked by derived name, so assets
   materialized by an earlier run are reused without any network work.

Only when both miss is the asset fetched, optimized (images), and
written.  Every outcome is returned as a :class:`CacheResult`; one bad
asset never raises into the caller.
"""

from __future__ import annotations

import logging
import threading

from filetype import guess
from pagevault.media.fetcher import Fetcher
from pagevault.media.identity import (
    asset_basename,
    optimized_filename,
    resolve_filename,
)
from pagevault.media.models import CachedAsset, CacheResult, CacheStats, MediaKind
from pagevault.media.optimizer import (
    ImageOptimizer,
    detect_image_format,
    is_svg,
    read_dimensions,
)
from pagevault.media.store import MediaStore

logger = logging.getLogger(__name__)

DEFAULT_PUBLIC_PREFIX = "/images"


class AssetCache:
    """Resolve remote media URLs to stable local paths.

    One instance is meant to live for one pipeline run and be shared by
    everything that rewrites media references during that run.  It is
    safe to call from several threads; concurrent requests for the same
    URL wait on a per-URL lock and share a single resolution.
    """

    def __init__(
        self,
        store: MediaStore,
        *,
        fetcher: Fetcher | None = None,
        optimizer: ImageOptimizer | None = None,
        public_prefix: str = DEFAULT_PUBLIC_PREFIX,
    ) -> None:
        self.store = store
        self.fetcher = fetcher or Fetcher()
        self.optimizer = optimizer or ImageOptimizer()
        self.public_prefix = "/" + public_prefix.strip("/")
        self._memo: dict[str, CacheResult] = {}
        self._table_lock = threading.Lock()
        self._key_locks: dict[str, threading.Lock] = {}
        self._stats = CacheStats()

    # ── Public API ───────────────────────────────────────────────

    def is_local(self, url: str) -> bool:
        """Whether ``url`` already points into this cache's namespace."""
        return url.startswith(self.public_prefix + "/")

    def public_path(self, name: str) -> str:
        return f"{self.public_prefix}/{name}"

    def cache_asset(
        self,
        source_url: str | None,
        stable_id: str | None = None,
        kind: MediaKind = MediaKind.IMAGE,
    ) -> CacheResult:
        """Return a local copy of ``source_url``, downloading it if needed.

        Args:
            source_url: Remote (possibly expiring) URL of the asset.
            stable_id: Identifier of the logical asset; preferred over a
                URL hash for naming so rotated URLs converge on one file.
            kind: Expected media kind; only images are optimized.

        Returns:
            A CacheResult.  Blank URLs and failures come back with
            ``success=False``; already-local paths come back unchanged.
        """
        if not source_url or not source_url.strip():
            return CacheResult(source_url=source_url or "", error="Empty URL")

        if self.is_local(source_url):
            return CacheResult(
                source_url=source_url,
                asset=CachedAsset(local_path=source_url),
                success=True,
            )

        with self._key_lock(source_url):
            with self._table_lock:
                memoized = self._memo.get(source_url)
                if memoized is not None:
                    self._stats.memoized += 1
            if memoized is not None:
                return memoized

            result = self._resolve(source_url, stable_id, kind)

            with self._table_lock:
                self._memo[source_url] = result
                if not result.success:
                    self._stats.failed += 1
                elif result.downloaded:
                    self._stats.downloaded += 1
                else:
                    self._stats.reused += 1
        return result

    def stats(self) -> CacheStats:
        """Snapshot of this run's counters."""
        with self._table_lock:
            return self._stats.model_copy()

    # ── Resolution ───────────────────────────────────────────────

    def _key_lock(self, url: str) -> threading.Lock:
        with self._table_lock:
            lock = self._key_locks.get(url)
            if lock is None:
                lock = self._key_locks[url] = threading.Lock()
            return lock

    def _resolve(self, url: str, stable_id: str | None, kind: MediaKind) -> CacheResult:
        base = asset_basename(url, stable_id)

        try:
            existing = self.store.find(base)
        except OSError as exc:
            logger.warning("Failed to look up %s: %s", base, exc)
            return CacheResult(source_url=url, error=f"Lookup failed: {exc}")
        if existing is not None:
            return self._reuse(url, existing, kind)

        logger.info("Downloading %s", url[:80])
        fetched = self.fetcher.fetch(url)
        if not fetched.success:
            return CacheResult(source_url=url, error=fetched.error)

        data = fetched.data
        detected = detect_image_format(data)

        if kind == MediaKind.IMAGE and detected is not None:
            optimized = self.optimizer.optimize(data)
            if not optimized.success:
                logger.warning("Not caching %s: %s", url[:80], optimized.error)
                return CacheResult(source_url=url, error=optimized.error)
            name = optimized_filename(base)
            payload = optimized.data
            width: int | None = optimized.width
            height: int | None = optimized.height
        elif kind == MediaKind.IMAGE and not is_svg(data):
            logger.warning("Not caching %s: payload is not an image", url[:80])
            return CacheResult(source_url=url, error="Unprocessable image payload")
        else:
            name = resolve_filename(url, stable_id, kind, detected=_guess_extension(data))
            payload = data
            width = height = None

        try:
            self.store.write(name, payload)
        except OSError as exc:
            logger.warning("Failed to store %s: %s", name, exc)
            return CacheResult(source_url=url, error=f"Write failed: {exc}")

        logger.info("Saved %s", name)
        return CacheResult(
            source_url=url,
            asset=CachedAsset(local_path=self.public_path(name), width=width, height=height),
            downloaded=True,
            success=True,
        )

    def _reuse(self, url: str, name: str, kind: MediaKind) -> CacheResult:
        width = height = None
        if kind == MediaKind.IMAGE:
            try:
                dims = read_dimensions(self.store.read(name))
            except OSError as exc:
                logger.debug("Could not read cached %s: %s", name, exc)
                dims = None
            if dims is not None:
                width, height = dims
        logger.debug("Reusing cached %s", name)
        return CacheResult(
            source_url=url,
            asset=CachedAsset(local_path=self.public_path(name), width=width, height=height),
            success=True,
        )


def _guess_extension(data: bytes) -> str | None:
    if is_svg(data):
        return "svg"
    kind = guess(data)
    return kind.extension if kind else None
