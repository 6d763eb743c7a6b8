"""
FeedRelay Data Models
=====================

Pydantic models for stored items and their normalized form, the item
lifecycle status, and dataclasses for per-phase results.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class ItemStatus(str, Enum):
    """Lifecycle status of an ingested item.

    ``pending`` items wait for a publication decision. A decision moves them
    to ``published`` or ``skipped``; only a reconciliation reset can bring a
    decided item back to ``pending``.
    """

    PENDING = "pending"
    PUBLISHED = "published"
    SKIPPED = "skipped"

    def allowed_targets(self) -> FrozenSet["ItemStatus"]:
        return _TRANSITIONS[self]

    def can_transition_to(self, target: "ItemStatus") -> bool:
        return ItemStatus(target) in _TRANSITIONS[self]

    @property
    def is_decided(self) -> bool:
        return self is not ItemStatus.PENDING


_TRANSITIONS: Mapping[ItemStatus, FrozenSet[ItemStatus]] = {
    ItemStatus.PENDING: frozenset({ItemStatus.PUBLISHED, ItemStatus.SKIPPED}),
    ItemStatus.PUBLISHED: frozenset({ItemStatus.PENDING}),
    ItemStatus.SKIPPED: frozenset({ItemStatus.PENDING}),
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_db_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Fixed-width ISO form so stored timestamps sort lexicographically."""
    value = ensure_utc(value)
    if value is None:
        return None
    return value.isoformat(timespec="microseconds")


class Slide(BaseModel):
    """One image-anchored slide of a slideshow."""
    url: str = Field(..., min_length=1, description="Resolved image URL")
    title: str = Field(default="", description="Heading text following the image")
    text: str = Field(default="", description="Markup between the heading and the next slide")
    description: str = Field(default="", description="Image alt text or a placeholder")
    attribution: str = Field(default="", description="Caption / credit text")


class NormalizedPost(BaseModel):
    """Publication-ready form of an item, stored as ``processed_data``."""
    title: str = Field(default="", description="Post title")
    short_title: str = Field(default="", description="Short title")
    description: str = Field(default="", description="Excerpt")
    content: str = Field(default="", description="Article body, or slideshow intro text")
    link: Optional[str] = Field(default=None, description="Canonical link")
    guid: Optional[str] = Field(default=None, description="Upstream GUID")
    pub_date: Optional[datetime] = Field(default=None, description="Upstream publish time (UTC)")
    author: Optional[str] = Field(default=None, description="Author display name")
    categories: List[str] = Field(default_factory=list, description="Category labels")
    is_slideshow: bool = Field(default=False, description="Whether slides were segmented")
    thumbnail: Optional[str] = Field(default=None, description="Thumbnail image URL")
    featured_image: Optional[str] = Field(default=None, description="Featured image URL")
    images: List[Slide] = Field(default_factory=list, description="Ordered slides")

    @field_validator('pub_date')
    @classmethod
    def normalize_pub_date(cls, v):
        return ensure_utc(v)

    def to_processed_data(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")

    def __str__(self) -> str:
        return f"NormalizedPost({self.title[:50]})"


class ContentItem(BaseModel):
    """Ingested item row, keyed by (content_hash, source)."""
    id: Optional[int] = Field(default=None, description="Database primary key")
    content_hash: str = Field(..., min_length=1, description="Identity hash of adapter name and upstream id")
    source: str = Field(..., min_length=1, description="Logical source key")
    platform: str = Field(..., min_length=1, description="Source platform tag")
    feed_type: str = Field(..., min_length=1, description="Feed type tag")
    guid: str = Field(..., description="Upstream identifier")
    status: ItemStatus = Field(default=ItemStatus.PENDING)
    ingested_at: datetime = Field(default_factory=utc_now)
    published_at: Optional[datetime] = None
    skipped_at: Optional[datetime] = None
    skip_reason: Optional[str] = None
    item_published_at: Optional[datetime] = None
    item_modified_at: Optional[datetime] = None
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Display summary")
    full_content: Dict[str, Any] = Field(default_factory=dict, description="Upstream payload captured at ingestion")
    processed_data: Optional[Dict[str, Any]] = Field(default=None, description="Normalized form once decided")

    @field_validator('ingested_at', 'published_at', 'skipped_at', 'item_published_at', 'item_modified_at')
    @classmethod
    def normalize_timestamps(cls, v):
        return ensure_utc(v)

    @model_validator(mode='after')
    def check_status_invariants(self):
        if self.status is ItemStatus.PUBLISHED:
            if self.published_at is None or self.processed_data is None:
                raise ValueError("published items need published_at and processed_data")
            if self.skipped_at is not None or self.skip_reason is not None:
                raise ValueError("published items cannot carry skip fields")
        elif self.status is ItemStatus.SKIPPED:
            if self.skipped_at is None or not self.skip_reason:
                raise ValueError("skipped items need skipped_at and skip_reason")
            if self.published_at is not None:
                raise ValueError("skipped items cannot carry published_at")
        else:
            if any(v is not None for v in (
                self.published_at, self.skipped_at, self.skip_reason, self.processed_data
            )):
                raise ValueError("pending items cannot carry decision fields")
        return self

    @property
    def title(self) -> str:
        return str(self.metadata.get("title") or self.guid)

    @classmethod
    def from_db_row(cls, row: Mapping[str, Any]) -> "ContentItem":
        """Create ContentItem from a database row with JSON parsing."""
        data = dict(row)

        for key in ("metadata", "full_content", "processed_data"):
            if isinstance(data.get(key), str):
                data[key] = json.loads(data[key])
        if data.get("metadata") is None:
            data["metadata"] = {}

        return cls(**data)

    def __str__(self) -> str:
        return f"ContentItem({self.source}:{self.content_hash[:12]} {self.status.value})"


@dataclass
class SourceRecord:
    """One upstream record, parsed and ready for reconciliation."""
    upstream_id: str
    published_at: Optional[datetime]
    modified_at: Optional[datetime]
    payload: Dict[str, Any]
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class IngestResult:
    """Counts from one ingestion pass."""
    total_seen: int = 0
    total_new: int = 0
    total_updated: int = 0
    total_failed: int = 0
    pages_processed: int = 0
    is_new_source: bool = False


@dataclass
class PublicationResult:
    """Outcome of one drain of pending items."""
    processed: int = 0
    skipped: int = 0
    feed_items: List[NormalizedPost] = field(default_factory=list)
    published_hashes: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
