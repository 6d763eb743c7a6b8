"""
Ingestion Engine
================

Pages through a content source and reconciles every record against the
content store:

- unknown (content_hash, source): insert as pending
- known, upstream modification time changed: replace upstream data
  (the store decides whether the status resets)
- known, unchanged: nothing

Pages are fetched strictly in order until the source's own total-page count
is reached. A malformed record is logged and counted as seen; a page that
cannot be fetched fails the ingestion.
"""

from ..config.settings import SourceSettings
from ..database.models import ContentItem, IngestResult, SourceRecord, ensure_utc
from ..storage.content_store import ContentStore
from ..utils.exceptions import ContentValidationError, DatabaseError
from ..utils.logging import get_logger_for_component
from .sources.base import ContentSource


class IngestionEngine:
    """Reconciles upstream records with stored items for one source."""

    def __init__(self, store: ContentStore, source: ContentSource, settings: SourceSettings):
        """Initialize ingestion engine.

        Args:
            store: Content store owning the rows
            source: Adapter for the upstream platform
            settings: Source section of the run settings
        """
        self.store = store
        self.source = source
        self.settings = settings
        self.logger = get_logger_for_component("ingestion", source=settings.name)

    def is_new_source(self) -> bool:
        """True when nothing is stored yet for this (source, platform, feed_type)."""
        return self.store.count_by_source_triple(
            self.settings.name, self.settings.platform, self.settings.feed_type
        ) == 0

    async def ingest(self) -> IngestResult:
        """Run one full ingestion pass.

        Returns:
            IngestResult with seen/new counts and the new-source flag

        Raises:
            SourceFetchError: If a page cannot be fetched
            DatabaseError: If the store fails
        """
        result = IngestResult(is_new_source=self.is_new_source())
        self.logger.info(
            f"Ingesting {self.settings.feed_type} items from {self.settings.url} "
            f"(source status: {'NEW' if result.is_new_source else 'EXISTING'})"
        )

        page = 1
        total_pages = 1

        async with self.source:
            while page <= total_pages:
                source_page = await self.source.fetch_page(page)
                total_pages = source_page.total_pages

                for raw in source_page.entries:
                    result.total_seen += 1
                    try:
                        record = self.source.parse_record(raw)
                        outcome = self.reconcile(record)
                    except DatabaseError as e:
                        if e.is_connectivity_failure:
                            raise
                        result.total_failed += 1
                        self.logger.warning(f"Could not store record on page {page}: {e}", extra={"page": page})
                        continue
                    except (ContentValidationError, ValueError) as e:
                        result.total_failed += 1
                        self.logger.warning(f"Skipping malformed record on page {page}: {e}", extra={"page": page})
                        continue

                    if outcome == "inserted":
                        result.total_new += 1
                    elif outcome == "updated":
                        result.total_updated += 1

                result.pages_processed += 1
                self.logger.info(
                    f"Page {page}/{total_pages}: {len(source_page.entries)} records, "
                    f"{result.total_new} new so far"
                )
                page += 1

        self.logger.info(
            f"Ingestion complete: {result.total_seen} seen, {result.total_new} new, "
            f"{result.total_updated} updated, {result.total_failed} malformed"
        )
        return result

    def reconcile(self, record: SourceRecord) -> str:
        """Apply one record to the store.

        Returns:
            "inserted", "updated" or "unchanged"
        """
        content_hash = self.source.content_hash(record.upstream_id)
        existing = self.store.find_by_key(content_hash, self.settings.name)

        if existing is None:
            item = ContentItem(
                content_hash=content_hash,
                source=self.settings.name,
                platform=self.settings.platform,
                feed_type=self.settings.feed_type,
                guid=record.upstream_id,
                item_published_at=record.published_at,
                item_modified_at=record.modified_at,
                metadata=record.metadata,
                full_content=record.payload,
            )
            self.store.insert(item)
            return "inserted"

        if ensure_utc(record.modified_at) != existing.item_modified_at:
            self.store.update_keeping_status(content_hash, self.settings.name, record)
            return "updated"

        return "unchanged"
