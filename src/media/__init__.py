"""Media domain: identity, download, optimization, and the asset cache.

Remote media URLs from the content source expire.  This package turns
them into permanent local files named by stable identity, so rewritten
content can reference ``/images/<id>.webp`` instead of a signed URL.
"""

from pagevault.media.cache import AssetCache
from pagevault.media.fetcher import Fetcher
from pagevault.media.identity import (
    asset_basename,
    optimized_filename,
    resolve_filename,
    url_extension,
)
from pagevault.media.models import (
    CachedAsset,
    CacheResult,
    CacheStats,
    FetchResult,
    MediaKind,
    OptimizeResult,
)
from pagevault.media.optimizer import ImageOptimizer, detect_image_format, read_dimensions
from pagevault.media.store import InMemoryMediaStore, LocalMediaStore, MediaStore

__all__ = [
    "AssetCache",
    "CacheResult",
    "CacheStats",
    "CachedAsset",
    "FetchResult",
    "Fetcher",
    "ImageOptimizer",
    "InMemoryMediaStore",
    "LocalMediaStore",
    "MediaKind",
    "MediaStore",
    "OptimizeResult",
    "asset_basename",
    "detect_image_format",
    "optimized_filename",
    "read_dimensions",
    "resolve_filename",
    "url_extension",
]
