"""Tests for media URL rewriting over block trees."""

from __future__ import annotations

import threading
from io import BytesIO
from unittest.mock import MagicMock

from pagevault.content.models import ContentBlock, ContentItem
from pagevault.content.rewriter import BlockRewriter
from pagevault.media.cache import AssetCache
from pagevault.media.models import CachedAsset, CacheResult, FetchResult, MediaKind
from pagevault.media.store import InMemoryMediaStore
from PIL import Image


def _png(width: int = 40, height: int = 30) -> bytes:
    buf = BytesIO()
    Image.new("RGB", (width, height), (0, 90, 10)).save(buf, format="PNG")
    return buf.getvalue()


class StubFetcher:
    def __init__(self, payloads: dict[str, bytes]) -> None:
        self.payloads = payloads
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def fetch(self, url: str) -> FetchResult:
        with self._lock:
            self.calls.append(url)
        if url in self.payloads:
            return FetchResult(url=url, data=self.payloads[url], status=200, attempts=1, success=True)
        return FetchResult(url=url, status=403, attempts=3, error="HTTP 403")


def _image(block_id: str, url: str, **extra) -> dict:
    body = {"type": "file", "file": {"url": url, "expiry_time": "2024-01-01T00:00:00Z"}}
    body.update(extra)
    return {"id": block_id, "type": "image", "image": body}


def _rewriter(payloads: dict[str, bytes]) -> tuple[BlockRewriter, StubFetcher, InMemoryMediaStore]:
    fetcher = StubFetcher(payloads)
    store = InMemoryMediaStore()
    return BlockRewriter(AssetCache(store, fetcher=fetcher)), fetcher, store


def _remote_urls(block: ContentBlock) -> list[str]:
    urls = []
    for b in block.walk():
        for key in ("file", "external"):
            url = b.payload.get(key, {}).get("url", "")
            if url.startswith("http"):
                urls.append(url)
    return urls


class TestRewriteBlocks:
    def test_image_block_rewritten_to_local_file(self):
        url = "https://cdn.example/abc?sig=1"
        rewriter, _, _ = _rewriter({url: _png(1200, 800)})

        [block] = rewriter.rewrite([ContentBlock.from_raw(_image("blockXYZ", url))])

        assert block.payload["type"] == "file"
        assert block.payload["file"] == {"url": "/images/blockXYZ.webp", "width": 1200, "height": 800}

    def test_other_payload_keys_preserved(self):
        url = "https://cdn.example/abc?sig=1"
        rewriter, _, _ = _rewriter({url: _png()})
        raw = _image("b1", url, caption=[{"plain_text": "Sunset"}])

        [block] = rewriter.rewrite([ContentBlock.from_raw(raw)])

        assert block.payload["caption"] == [{"plain_text": "Sunset"}]
        assert "expiry_time" not in block.payload["file"]

    def test_external_source_replaced(self):
        url = "https://elsewhere.example/pic.png"
        rewriter, _, _ = _rewriter({url: _png()})
        raw = {"id": "ext1", "type": "image", "image": {"type": "external", "external": {"url": url}}}

        [block] = rewriter.rewrite([ContentBlock.from_raw(raw)])

        assert "external" not in block.payload
        assert block.payload["file"]["url"] == "/images/ext1.webp"

    def test_nested_media_rewritten(self):
        url = "https://cdn.example/deep.png?sig=1"
        rewriter, _, _ = _rewriter({url: _png()})
        raw = {
            "id": "col-list",
            "type": "column_list",
            "column_list": {},
            "children": [
                {
                    "id": "col",
                    "type": "column",
                    "column": {},
                    "children": [{"id": "t", "type": "toggle", "toggle": {}, "children": [_image("deep", url)]}],
                }
            ],
        }

        [block] = rewriter.rewrite([ContentBlock.from_raw(raw)])

        assert _remote_urls(block) == []
        deep = block.children[0].children[0].children[0]
        assert deep.payload["file"]["url"] == "/images/deep.webp"

    def test_failed_download_clears_url(self):
        url = "https://cdn.example/expired.png?sig=1"
        rewriter, _, store = _rewriter({})

        [block] = rewriter.rewrite([ContentBlock.from_raw(_image("gone", url))])

        assert block.payload["file"] == {"url": ""}
        assert store.names() == []

    def test_non_media_blocks_untouched(self):
        rewriter, fetcher, _ = _rewriter({})
        raw = {"id": "p", "type": "paragraph", "paragraph": {"rich_text": [{"plain_text": "hi"}]}}
        block = ContentBlock.from_raw(raw)

        [result] = rewriter.rewrite([block])

        assert result.to_raw() == block.to_raw()
        assert fetcher.calls == []

    def test_input_not_mutated(self):
        url = "https://cdn.example/abc?sig=1"
        rewriter, _, _ = _rewriter({url: _png()})
        block = ContentBlock.from_raw(_image("b1", url))

        rewriter.rewrite([block])

        assert block.payload["file"]["url"] == url

    def test_audio_block_uses_audio_kind(self):
        cache = MagicMock()
        cache.cache_asset.return_value = CacheResult(
            source_url="https://cdn.example/ep.mp3",
            asset=CachedAsset(local_path="/images/ep.mp3"),
            success=True,
        )
        raw = {"id": "ep", "type": "audio", "audio": {"type": "file", "file": {"url": "https://cdn.example/ep.mp3"}}}

        [block] = BlockRewriter(cache).rewrite([ContentBlock.from_raw(raw)])

        cache.cache_asset.assert_called_once_with(
            "https://cdn.example/ep.mp3", stable_id="ep", kind=MediaKind.AUDIO
        )
        assert block.payload["file"] == {"url": "/images/ep.mp3"}

    def test_second_pass_keeps_dimensions(self):
        url = "https://cdn.example/a.png?sig=1"
        rewriter, fetcher, _ = _rewriter({url: _png(1200, 800)})
        blocks = [ContentBlock.from_raw(_image("blk", url, caption=[{"plain_text": "Cap"}]))]

        once = rewriter.rewrite(blocks)
        twice = rewriter.rewrite(once)

        assert [b.to_raw() for b in twice] == [b.to_raw() for b in once]
        assert twice[0].payload["file"] == {"url": "/images/blk.webp", "width": 1200, "height": 800}
        assert fetcher.calls == [url]

    def test_reloaded_snapshot_blocks_unchanged(self):
        rewriter, fetcher, _ = _rewriter({})
        raw = {
            "id": "blk",
            "type": "image",
            "image": {"type": "file", "file": {"url": "/images/blk.webp", "width": 640, "height": 480}},
        }
        block = ContentBlock.from_raw(raw)

        [result] = rewriter.rewrite([block])

        assert result.to_raw() == block.to_raw()
        assert fetcher.calls == []

    def test_media_types_restrict_rewriting(self):
        url = "https://cdn.example/abc?sig=1"
        fetcher = StubFetcher({url: _png()})
        rewriter = BlockRewriter(AssetCache(InMemoryMediaStore(), fetcher=fetcher), media_types=["video"])

        [block] = rewriter.rewrite([ContentBlock.from_raw(_image("b1", url))])

        assert block.payload["file"]["url"] == url
        assert fetcher.calls == []


class TestRewriteItems:
    def test_hero_image_cached_under_item_id(self):
        hero = "https://cdn.example/cover.png?sig=9"
        rewriter, _, store = _rewriter({hero: _png()})
        item = ContentItem(id="page1", slug="hello", hero_image=hero)

        result = rewriter.rewrite_item(item)

        assert result.hero_image == "/images/page1-hero.webp"
        assert store.names() == ["page1-hero.webp"]

    def test_failed_hero_image_becomes_none(self):
        rewriter, _, _ = _rewriter({})
        item = ContentItem(id="page1", slug="hello", hero_image="https://cdn.example/x.png")

        assert rewriter.rewrite_item(item).hero_image is None

    def test_local_hero_image_kept(self):
        rewriter, fetcher, _ = _rewriter({})
        item = ContentItem(id="page1", slug="hello", hero_image="/images/page1-hero.webp")

        assert rewriter.rewrite_item(item).hero_image == "/images/page1-hero.webp"
        assert fetcher.calls == []

    def test_shared_url_fetched_once_across_items(self):
        url = "https://cdn.example/shared.png?sig=1"
        rewriter, fetcher, _ = _rewriter({url: _png()})
        items = [
            ContentItem.from_raw({"id": f"p{i}", "slug": f"s{i}", "blocks": [_image("same", url)]})
            for i in range(4)
        ]

        rewriter.rewrite_items(items)

        assert fetcher.calls == [url]

    def test_parallel_rewrite_preserves_order(self):
        payloads = {f"https://cdn.example/{i}.png": _png() for i in range(6)}
        rewriter, fetcher, _ = _rewriter(payloads)
        items = [
            ContentItem.from_raw(
                {"id": f"p{i}", "slug": f"s{i}", "blocks": [_image(f"b{i}", f"https://cdn.example/{i}.png")]}
            )
            for i in range(6)
        ]

        result = rewriter.rewrite_items(items, max_workers=3)

        assert [item.slug for item in result] == [f"s{i}" for i in range(6)]
        assert [item.blocks[0].payload["file"]["url"] for item in result] == [
            f"/images/b{i}.webp" for i in range(6)
        ]
        assert sorted(fetcher.calls) == sorted(payloads)

    def test_lookup_error_does_not_abort_batch(self):
        class FlakyStore(InMemoryMediaStore):
            def find(self, stem: str) -> str | None:
                if stem == "bad":
                    raise PermissionError("permission denied")
                return super().find(stem)

        url_ok = "https://cdn.example/ok.png"
        url_bad = "https://cdn.example/bad.png"
        fetcher = StubFetcher({url_ok: _png(), url_bad: _png()})
        rewriter = BlockRewriter(AssetCache(FlakyStore(), fetcher=fetcher))
        items = [
            ContentItem.from_raw({"id": "p1", "slug": "s1", "blocks": [_image("bad", url_bad)]}),
            ContentItem.from_raw({"id": "p2", "slug": "s2", "blocks": [_image("ok", url_ok)]}),
        ]

        result = rewriter.rewrite_items(items, max_workers=2)

        assert result[0].blocks[0].payload["file"] == {"url": ""}
        assert result[1].blocks[0].payload["file"]["url"] == "/images/ok.webp"
