"""
PyTest Configuration and Fixtures
=================================

Shared fixtures and configuration for FeedRelay tests.

Every test that touches SQLite gets its own database file under tmp_path, so
tests never share rows.
"""

import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent.parent))

# Keep log output out of the working tree during tests
os.environ["FEEDRELAY_LOGGING__FILE_PATH"] = ""

from feedrelay.config.settings import FeedSettings, SourceSettings
from feedrelay.database.connection import DatabaseConnection
from feedrelay.database.models import ContentItem, SourceRecord
from feedrelay.database.schema import DatabaseSchema
from feedrelay.ingestion.sources.base import ContentSource, SourcePage
from feedrelay.storage.content_store import ContentStore
from feedrelay.utils.exceptions import ContentValidationError, SourceFetchError


BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
def test_database(tmp_path):
    """Temporary database file with the schema created."""
    db_path = tmp_path / "feedrelay_test.db"
    DatabaseSchema(str(db_path)).create_tables()
    return str(db_path)


@pytest.fixture
def db_connection(test_database):
    """Pooled connection manager for the temporary database."""
    db = DatabaseConnection(test_database, pool_size=2)
    yield db
    db.close_all_connections()


@pytest.fixture
def store(db_connection):
    return ContentStore(db_connection)


# ============================================================================
# Settings Fixtures
# ============================================================================


@pytest.fixture
def source_settings():
    return SourceSettings(
        url="https://example.com",
        platform="wordpress",
        feed_type="article",
        name="example",
    )


@pytest.fixture
def slideshow_settings():
    return SourceSettings(
        url="https://example.com",
        platform="wordpress",
        feed_type="slideshow",
        name="example",
    )


@pytest.fixture
def feed_settings():
    return FeedSettings(
        file_name="feed.json",
        items_per_run=5,
        max_total_items=20,
        onboarding_limit=20,
    )


# ============================================================================
# Item Builders
# ============================================================================


def build_payload(upstream_id: str, title: Optional[str] = None, **extra) -> Dict[str, Any]:
    payload = {
        "id": upstream_id,
        "title": title or f"Post {upstream_id}",
        "excerpt": f"Excerpt for {upstream_id}",
        "content": f"<p>Body of post {upstream_id}</p>",
        "link": f"https://example.com/post-{upstream_id}",
        "guid": f"https://example.com/?p={upstream_id}",
        "author": "Jane Writer",
        "categories": ["News"],
        "thumbnail": f"https://example.com/img/{upstream_id}.jpg",
    }
    payload.update(extra)
    return payload


@pytest.fixture
def make_record():
    """Factory for parsed upstream records."""

    def _make(
        upstream_id: str,
        published_offset_hours: int = 0,
        modified_at: Optional[datetime] = None,
        title: Optional[str] = None,
        **payload_extra,
    ) -> SourceRecord:
        published_at = BASE_TIME + timedelta(hours=published_offset_hours)
        payload = build_payload(upstream_id, title=title, **payload_extra)
        return SourceRecord(
            upstream_id=upstream_id,
            published_at=published_at,
            modified_at=modified_at,
            payload=payload,
            metadata={"id": upstream_id, "title": payload["title"]},
        )

    return _make


@pytest.fixture
def make_item():
    """Factory for pending content items ready to insert."""

    def _make(
        content_hash: str,
        source: str = "example",
        feed_type: str = "article",
        published_offset_hours: Optional[int] = 0,
        modified_at: Optional[datetime] = None,
        ingested_at: Optional[datetime] = None,
        **payload_extra,
    ) -> ContentItem:
        published_at = None
        if published_offset_hours is not None:
            published_at = BASE_TIME + timedelta(hours=published_offset_hours)
        payload = build_payload(content_hash, **payload_extra)
        item = ContentItem(
            content_hash=content_hash,
            source=source,
            platform="wordpress",
            feed_type=feed_type,
            guid=content_hash,
            item_published_at=published_at,
            item_modified_at=modified_at,
            metadata={"title": payload["title"]},
            full_content=payload,
        )
        if ingested_at is not None:
            item = item.model_copy(update={"ingested_at": ingested_at})
        return item

    return _make


# ============================================================================
# Content Source Doubles
# ============================================================================


class FakeSource(ContentSource):
    """In-memory content source serving prebuilt pages of raw records."""

    name = "FakeSource"

    def __init__(self, pages: List[List[Dict[str, Any]]], fail_on_page: Optional[int] = None):
        self.pages = pages
        self.fail_on_page = fail_on_page
        self.requested_pages: List[int] = []
        self.entered = False

    async def __aenter__(self):
        self.entered = True
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.entered = False

    async def fetch_page(self, page: int) -> SourcePage:
        self.requested_pages.append(page)
        if page == self.fail_on_page:
            raise SourceFetchError(f"page {page} unavailable", source_url="fake://")
        return SourcePage(entries=self.pages[page - 1], total_pages=len(self.pages))

    def parse_record(self, raw: Dict[str, Any]) -> SourceRecord:
        if "id" not in raw:
            raise ContentValidationError("record has no id")
        return SourceRecord(
            upstream_id=str(raw["id"]),
            published_at=raw.get("published_at"),
            modified_at=raw.get("modified_at"),
            payload=build_payload(
                str(raw["id"]),
                title=raw.get("title"),
                content=raw.get("content", f"<p>Body {raw['id']}</p>"),
            ),
            metadata={"id": raw["id"], "title": raw.get("title") or f"Post {raw['id']}"},
        )


def raw_records(start: int, count: int, **fields) -> List[Dict[str, Any]]:
    """Raw FakeSource records with increasing publish times."""
    return [
        {
            "id": str(n),
            "published_at": BASE_TIME + timedelta(hours=n),
            **fields,
        }
        for n in range(start, start + count)
    ]


@pytest.fixture
def fake_source_factory():
    return FakeSource


@pytest.fixture
def raw_record_factory():
    return raw_records


# ============================================================================
# Sample Upstream Data
# ============================================================================


@pytest.fixture
def sample_wordpress_post():
    """One post as returned by /wp-json/wp/v2/posts."""
    return {
        "id": 4211,
        "date": "2024-05-01T08:00:00",
        "date_gmt": "2024-05-01T12:00:00",
        "modified": "2024-05-02T09:30:00",
        "modified_gmt": "2024-05-02T13:30:00",
        "guid": {"rendered": "https://example.com/?p=4211"},
        "slug": "ten-trails",
        "link": "https://example.com/ten-trails/",
        "title": {"rendered": "Ten Trails &amp; Where to Find Them"},
        "content": {
            "rendered": (
                "<p>Lace up.</p>"
                "<script>trackVisit();</script>"
                '<div class="ad-dog__slot">ad</div>'
                "<p>Keep walking.</p>"
            )
        },
        "excerpt": {"rendered": "<p>Our favourite trails.</p>"},
        "yoast_head_json": {
            "author": "Jane Writer",
            "schema": {
                "@graph": [
                    {
                        "articleSection": ["Outdoors", "Travel"],
                        "thumbnailUrl": "https://example.com/img/trails.jpg",
                    }
                ]
            },
        },
    }


@pytest.fixture
def slideshow_html():
    """Block markup with an intro and three image-anchored slides."""
    return """
<div class="entry__content">
  <p>Spring is here.</p>
  <p>These are the  places   to visit.</p>
  <aside class="entry__sidebar"><p>Related links</p></aside>
  <figure class="wp-block-image size-large">
    <img src="https://example.com/a.jpg" alt="Lake at dawn"/>
    <figcaption class="wp-element-caption">Photo: A. Shooter</figcaption>
  </figure>
  <h2 class="wp-block-heading">The Lake</h2>
  <p>Calm water.</p>
  <p>Good for swimming.</p>
  <figure class="wp-block-image">
    <img data-src="https://example.com/b.jpg" alt=""/>
  </figure>
  <h2 class="wp-block-heading">The Ridge</h2>
  <p>Steep climb.</p>
  <figure class="wp-block-image">
    <img src="https://example.com/c.jpg" alt="Forest path"/>
    <figcaption class="wp-element-caption">Credit: Parks Dept.</figcaption>
  </figure>
  <p>No heading for this one.</p>
</div>
"""
