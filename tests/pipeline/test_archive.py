"""Tests for the archive pipeline."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from io import BytesIO
from pathlib import Path

from pagevault.backup.store import AGGREGATE_FILENAME, SnapshotStore
from pagevault.config import PageVaultConfig, merge_overrides
from pagevault.content.models import ContentItem
from pagevault.media.cache import AssetCache
from pagevault.media.models import FetchResult
from pagevault.media.store import LocalMediaStore
from pagevault.pipeline.archive import archive_content, parse_items
from PIL import Image

NOW = datetime(2024, 6, 1, 8, 30, tzinfo=UTC)


def _png() -> bytes:
    buf = BytesIO()
    Image.new("RGB", (640, 480), (255, 200, 0)).save(buf, format="PNG")
    return buf.getvalue()


class RecordingFetcher:
    def __init__(self, payloads: dict[str, bytes]) -> None:
        self.payloads = payloads
        self.calls: list[str] = []

    def fetch(self, url: str) -> FetchResult:
        self.calls.append(url)
        if url in self.payloads:
            return FetchResult(url=url, data=self.payloads[url], status=200, attempts=1, success=True)
        return FetchResult(url=url, status=404, attempts=3, error="HTTP 404")


def _raw_items(sig: str = "1") -> list[dict]:
    return [
        {
            "id": "page-a",
            "slug": "hello-world",
            "title": "Hello",
            "contentType": "article",
            "date": "2024-05-30",
            "last_updated": "2024-05-30T09:00:00Z",
            "heroImage": f"https://cdn.example/hero.png?sig={sig}",
            "blocks": [
                {"id": "p1", "type": "paragraph", "paragraph": {"rich_text": []}},
                {
                    "id": "img1",
                    "type": "image",
                    "image": {"type": "file", "file": {"url": f"https://cdn.example/one.png?sig={sig}"}},
                },
            ],
        },
        {
            "id": "page-b",
            "slug": "strip-7",
            "contentType": "comic",
            "date": "2024-05-31",
            "last_updated": "2024-05-31T09:00:00Z",
            "blocks": [
                {
                    "id": "img2",
                    "type": "image",
                    "image": {"type": "file", "file": {"url": f"https://cdn.example/gone.png?sig={sig}"}},
                }
            ],
        },
    ]


def _setup(tmp_path: Path, sig: str = "1") -> tuple[PageVaultConfig, AssetCache, SnapshotStore, RecordingFetcher]:
    config = merge_overrides(
        PageVaultConfig(),
        media_directory=str(tmp_path / "public" / "images"),
        backup_directory=str(tmp_path / "backup"),
    )
    fetcher = RecordingFetcher(
        {
            f"https://cdn.example/hero.png?sig={sig}": _png(),
            f"https://cdn.example/one.png?sig={sig}": _png(),
        }
    )
    cache = AssetCache(LocalMediaStore(Path(config.media.directory)), fetcher=fetcher)
    store = SnapshotStore(Path(config.backup.directory), clock=lambda: NOW)
    return config, cache, store, fetcher


class TestParseItems:
    def test_malformed_records_skipped(self):
        items, skipped = parse_items([{"slug": "ok"}, {"title": "no slug"}, "junk", {"slug": "fine"}])

        assert [item.slug for item in items] == ["ok", "fine"]
        assert skipped == ["#1", "#2"]

    def test_models_pass_through(self):
        item = ContentItem(slug="ready")

        items, skipped = parse_items([item])

        assert items == [item]
        assert skipped == []


class TestArchiveContent:
    def test_end_to_end(self, tmp_path: Path):
        config, cache, store, _ = _setup(tmp_path)

        report = archive_content(_raw_items(), config, cache=cache, store=store)

        assert report.items == 2
        assert report.cache.downloaded == 2
        assert report.cache.failed == 1
        assert report.backup.written is True

        snapshot = json.loads((tmp_path / "backup" / "2024-06-01" / AGGREGATE_FILENAME).read_text())
        first, second = snapshot["data"]
        assert first["hero_image"] == "/images/page-a-hero.webp"
        assert first["blocks"][1]["image"]["file"] == {"url": "/images/img1.webp", "width": 640, "height": 480}
        assert second["blocks"][0]["image"]["file"] == {"url": ""}
        assert "cdn.example" not in json.dumps(snapshot)

        media = sorted(p.name for p in (tmp_path / "public" / "images").iterdir())
        assert media == ["img1.webp", "page-a-hero.webp"]

    def test_second_run_reuses_media_and_skips_backup(self, tmp_path: Path):
        config, cache, store, _ = _setup(tmp_path)
        archive_content(_raw_items(), config, cache=cache, store=store)

        _, cache2, store2, fetcher2 = _setup(tmp_path, sig="2")
        report = archive_content(_raw_items(sig="2"), config, cache=cache2, store=store2)

        assert fetcher2.calls == ["https://cdn.example/gone.png?sig=2"]
        assert report.cache.downloaded == 0
        assert report.cache.reused == 2
        assert report.backup.written is False
        assert report.backup.reason == "unchanged"

    def test_skipped_items_reported(self, tmp_path: Path):
        config, cache, store, _ = _setup(tmp_path)

        report = archive_content([*_raw_items(), {"title": "broken"}], config, cache=cache, store=store)

        assert report.items == 2
        assert report.skipped == ["#2"]

    def test_builds_cache_and_store_from_config(self, tmp_path: Path):
        config = merge_overrides(
            PageVaultConfig(),
            media_directory=str(tmp_path / "img"),
            backup_directory=str(tmp_path / "backup"),
        )

        report = archive_content([{"slug": "text-only", "blocks": []}], config)

        assert report.backup.written is True
        assert Path(report.backup.directory).parent == tmp_path / "backup"
