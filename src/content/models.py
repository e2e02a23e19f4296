"""Content domain models: pure Pydantic v2 data types.

A ContentItem is one published unit (article, comic episode, podcast
episode) carrying scalar metadata and an ordered forest of
ContentBlocks.  Blocks keep the upstream wire shape when serialized::

    {"id": "...", "type": "image", "image": {...}, "has_children": false,
     "children": [...]}

so snapshots and rendering consumers see the same structure the content
source produced, only with media URLs rewritten.
"""

from __future__ import annotations

from collections.abc import Iterator
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_serializer,
    model_validator,
)

_MEDIA_SOURCE_KEYS = ("file", "external")


class ContentType(StrEnum):
    """Category of published content."""

    ARTICLE = "article"
    COMIC = "comic"
    PODCAST = "podcast"


class MediaRef(BaseModel):
    """Remote media reference carried by a media-bearing block."""

    source_url: str
    stable_id: str | None = None


class ContentBlock(BaseModel):
    """One structural unit of content, possibly with nested children.

    ``payload`` holds the type-specific body (the value stored under the
    block's ``type`` key upstream).  Unknown top-level keys are kept as
    extras and written back out unchanged.
    """

    model_config = ConfigDict(extra="allow")

    id: str = ""
    type: str
    payload: dict[str, Any] = Field(default_factory=dict)
    has_children: bool = False
    children: list[ContentBlock] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _from_upstream(cls, data: Any) -> Any:
        """Lift the ``<type>`` key of an upstream block into ``payload``."""
        if not isinstance(data, dict) or "payload" in data:
            return data
        data = dict(data)
        block_type = data.get("type") or ""
        body = data.pop(block_type, None) if block_type else None
        data["payload"] = dict(body) if isinstance(body, dict) else {}
        children = data.get("children")
        if not isinstance(children, list):
            children = []
        data["children"] = [c for c in children if isinstance(c, (dict, ContentBlock))]
        data["has_children"] = bool(data.get("has_children") or data["children"])
        return data

    @model_serializer
    def _serialize(self) -> dict[str, Any]:
        return self.to_raw()

    @classmethod
    def from_raw(cls, raw: dict[str, Any]) -> ContentBlock:
        """Build a block tree from the upstream dict shape."""
        return cls.model_validate(raw)

    def to_raw(self) -> dict[str, Any]:
        """Return the upstream dict shape, children included."""
        raw: dict[str, Any] = dict(self.model_extra or {})
        raw.update(
            {
                "id": self.id,
                "type": self.type,
                self.type: self.payload,
                "has_children": self.has_children,
            }
        )
        if self.children:
            raw["children"] = [child.to_raw() for child in self.children]
        return raw

    @property
    def media_ref(self) -> MediaRef | None:
        """The block's media reference, or None when it carries no URL."""
        for key in _MEDIA_SOURCE_KEYS:
            source = self.payload.get(key)
            if isinstance(source, dict):
                url = source.get("url")
                if isinstance(url, str) and url.strip():
                    return MediaRef(source_url=url, stable_id=self.id or None)
        return None

    def walk(self) -> Iterator[ContentBlock]:
        """Yield this block and every descendant, depth-first."""
        yield self
        for child in self.children:
            yield from child.walk()


class ContentItem(BaseModel):
    """Canonical content record handed from the rewriter to the backup store.

    Accepts both snake_case and the upstream camelCase keys
    (``contentType``, ``webCategory``, ``heroImage``).  Fields this model
    does not name are preserved as extras.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str = ""
    slug: str
    title: str = ""
    content_type: ContentType = Field(
        default=ContentType.ARTICLE,
        validation_alias=AliasChoices("content_type", "contentType"),
    )
    date: str = ""  # YYYY-MM-DD
    last_updated: datetime | None = None
    web_category: str = Field(
        default="",
        validation_alias=AliasChoices("web_category", "webCategory"),
    )
    project: list[str] = Field(default_factory=list)
    concepts: list[str] = Field(default_factory=list)
    hero_image: str | None = Field(
        default=None,
        validation_alias=AliasChoices("hero_image", "heroImage"),
    )
    blocks: list[ContentBlock] = Field(default_factory=list)
    dialogue: list[dict[str, Any]] = Field(default_factory=list)
    philosophical_insight: dict[str, Any] = Field(default_factory=dict)
    embedding: list[float] | None = None
    schema_version: str = "1.0"

    @field_validator("content_type", mode="before")
    @classmethod
    def _default_unknown_type(cls, value: Any) -> Any:
        if isinstance(value, str) and value not in {t.value for t in ContentType}:
            return ContentType.ARTICLE
        return value

    @field_validator("last_updated")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    @classmethod
    def from_raw(cls, raw: dict[str, Any]) -> ContentItem:
        """Validate an upstream record into a ContentItem."""
        return cls.model_validate(raw)

    def iter_blocks(self) -> Iterator[ContentBlock]:
        """Yield every block in the item, nested children included."""
        for block in self.blocks:
            yield from block.walk()
