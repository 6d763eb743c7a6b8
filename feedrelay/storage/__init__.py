"""Persistence of ingested items."""

from .content_store import ContentStore

__all__ = ["ContentStore"]
