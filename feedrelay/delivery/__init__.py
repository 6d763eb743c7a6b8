"""
FeedRelay Delivery Module
=========================

Rendering and storage of assembled feeds.
"""

from .renderer import FeedDocument, JsonFeedRenderer, Renderer, SiteMetadata
from .sinks import (
    CacheInvalidator,
    CloudFrontInvalidator,
    FileSink,
    ObjectSink,
    S3Sink,
    build_invalidator,
    build_sink,
)

__all__ = [
    "FeedDocument",
    "JsonFeedRenderer",
    "Renderer",
    "SiteMetadata",
    "CacheInvalidator",
    "CloudFrontInvalidator",
    "FileSink",
    "ObjectSink",
    "S3Sink",
    "build_invalidator",
    "build_sink",
]
