"""Database package: connection pool, schema and row models."""

from .connection import DatabaseConnection
from .models import ContentItem, ItemStatus, NormalizedPost, Slide
from .schema import DatabaseSchema

__all__ = [
    "DatabaseConnection",
    "DatabaseSchema",
    "ContentItem",
    "ItemStatus",
    "NormalizedPost",
    "Slide",
]
