"""
FeedRelay Ingestion Module
==========================

Upstream content sources and reconciliation into the content store.
"""

from .engine import IngestionEngine
from .sources import ContentSource, SourcePage, WordPressSource, get_content_source

__all__ = [
    "IngestionEngine",
    "ContentSource",
    "SourcePage",
    "WordPressSource",
    "get_content_source",
]
