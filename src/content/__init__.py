"""Content domain: content item / block models and the block rewriter."""

from pagevault.content.models import (
    ContentBlock,
    ContentItem,
    ContentType,
    MediaRef,
)
from pagevault.content.rewriter import MEDIA_BLOCK_KINDS, BlockRewriter

__all__ = [
    "MEDIA_BLOCK_KINDS",
    "BlockRewriter",
    "ContentBlock",
    "ContentItem",
    "ContentType",
    "MediaRef",
]
