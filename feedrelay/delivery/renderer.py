"""
Feed document rendering.

A renderer turns the assembled feed window and the site metadata into one
output document. The bundled ``JsonFeedRenderer`` writes a JSON document that
keeps the window's item order.
"""

from datetime import datetime
from typing import List, Optional, Protocol

from pydantic import BaseModel, Field

from ..config.settings import FeedSettings
from ..database.models import NormalizedPost, utc_now


class SiteMetadata(BaseModel):
    """Channel-level description of a feed."""
    link: str = Field(..., description="Base URL of the source site")
    name: str = Field(default="Content Feed")
    description: str = Field(default="")
    language: str = Field(default="en-us")
    copyright: Optional[str] = None

    @classmethod
    def from_settings(cls, link: str, feed: FeedSettings) -> "SiteMetadata":
        return cls(
            link=link,
            name=feed.site_name,
            description=feed.site_description,
            language=feed.language,
            copyright=feed.copyright or None,
        )


class FeedDocument(BaseModel):
    """Serialized shape of a JSON feed."""
    site: SiteMetadata
    generated_at: datetime = Field(default_factory=utc_now)
    item_count: int = 0
    items: List[NormalizedPost] = Field(default_factory=list)


class Renderer(Protocol):
    """Builds an output document from feed items."""

    content_type: str
    file_extension: str

    def render(self, feed_items: List[NormalizedPost], site: SiteMetadata) -> str:
        ...


class JsonFeedRenderer:
    content_type = "application/json"
    file_extension = ".json"

    def __init__(self, indent: Optional[int] = 2):
        self.indent = indent

    def render(self, feed_items: List[NormalizedPost], site: SiteMetadata) -> str:
        document = FeedDocument(site=site, item_count=len(feed_items), items=list(feed_items))
        return document.model_dump_json(indent=self.indent)
