"""
Content Source Interface
========================

A content source yields raw upstream records page by page and knows how to
turn one raw record into a ``SourceRecord``. Parsing is separate from
fetching so one malformed record can be reported without losing its page.

Parsed payloads share one post shape so that normalization does not depend
on the platform: ``title``, ``excerpt``, ``content``, ``link``, ``guid``,
``author``, ``categories``, ``thumbnail`` (plus any platform extras).
"""

import hashlib
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List

from ...database.models import SourceRecord


@dataclass
class SourcePage:
    """One page of raw upstream records."""
    entries: List[Dict[str, Any]] = field(default_factory=list)
    total_pages: int = 1


class ContentSource(ABC):
    """Paginated upstream platform adapter.

    Subclasses set ``name``; it seeds the identity hash, so renaming an
    adapter changes the identity of every item it produced.
    """

    name: str = ""

    async def __aenter__(self) -> "ContentSource":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        return None

    @abstractmethod
    async def fetch_page(self, page: int) -> SourcePage:
        """Fetch one 1-based page of raw records."""

    @abstractmethod
    def parse_record(self, raw: Dict[str, Any]) -> SourceRecord:
        """Parse one raw record.

        Raises:
            ContentValidationError: If the record is malformed
        """

    def content_hash(self, upstream_id: str) -> str:
        """Deterministic identity of an upstream item under this adapter."""
        return hashlib.sha256(f"{self.name}:{upstream_id}".encode("utf-8")).hexdigest()
