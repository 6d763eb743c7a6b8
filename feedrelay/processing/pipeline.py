"""
Publication Pipeline
====================

Drains pending items for one (source, feed_type) in ingestion order. Each
item is normalized, checked against the cleanliness oracle and moved to
``published`` or ``skipped``. A failure on one item skips that item with an
``error: ...`` reason and the drain continues; a store that cannot be reached
ends the run.
"""

import asyncio
from typing import Any, Dict

from ..config.settings import FeedSettings, SourceSettings
from ..database.models import ContentItem, ItemStatus, NormalizedPost, PublicationResult
from ..filtering.oracle import CleanlinessOracle, build_candidate_text
from ..storage.content_store import ContentStore
from ..utils.exceptions import DatabaseError, ErrorCode, ProcessingError
from ..utils.logging import get_logger_for_component
from .segmenter import StructuralSegmenter


PROFANITY_SKIP_REASON = "profanity"


def resolve_processing_limit(is_new_source: bool, feed_settings: FeedSettings) -> int:
    """Items to publish this run.

    A source with no stored items yet gets the onboarding ceiling so its
    first feed fills faster without publishing its whole backlog at once.
    """
    if is_new_source:
        return feed_settings.onboarding_limit
    return feed_settings.items_per_run


class PublicationPipeline:
    """Moves pending items to a publication decision."""

    def __init__(
        self,
        store: ContentStore,
        segmenter: StructuralSegmenter,
        oracle: CleanlinessOracle,
        source_settings: SourceSettings,
    ):
        """Initialize publication pipeline.

        Args:
            store: Content store owning the rows
            segmenter: Body normalizer
            oracle: Cleanliness decision
            source_settings: Source section of the run settings
        """
        self.store = store
        self.segmenter = segmenter
        self.oracle = oracle
        self.source = source_settings.name
        self.feed_type = source_settings.feed_type
        self.logger = get_logger_for_component("pipeline", source=self.source)

    def normalize(self, item: ContentItem) -> NormalizedPost:
        """Build the publication form of a stored item.

        Raises:
            ProcessingError: If the item has no stored payload
        """
        payload: Dict[str, Any] = item.full_content
        if not payload:
            raise ProcessingError(
                f"No full content stored for {item.content_hash}",
                content_hash=item.content_hash,
                error_code=ErrorCode.CONTENT_MISSING,
            )

        segmented = self.segmenter.normalize(payload.get("content"), self.feed_type)
        title = payload.get("title") or ""
        thumbnail = payload.get("thumbnail")
        categories = payload.get("categories") or []
        if isinstance(categories, str):
            categories = [categories]

        return NormalizedPost(
            title=title,
            short_title=title,
            description=payload.get("excerpt") or "",
            content=segmented.body,
            link=payload.get("link"),
            guid=payload.get("guid") or item.guid,
            pub_date=item.item_published_at,
            author=payload.get("author"),
            categories=[str(c) for c in categories],
            is_slideshow=segmented.is_slideshow,
            thumbnail=thumbnail,
            featured_image=thumbnail,
            images=segmented.slides,
        )

    async def run(self, limit: int) -> PublicationResult:
        """Decide up to ``limit`` pending items.

        Returns:
            PublicationResult with counts and the newly published posts in
            selection order

        Raises:
            DatabaseError: If the store becomes unavailable
        """
        result = PublicationResult()

        pending = self.store.select_pending(self.source, self.feed_type, limit)
        self.logger.info(f"Found {len(pending)} pending items (limit {limit})")

        for item in pending:
            await self._process_item(item, result)
            # Cancellation point between items, never inside one
            await asyncio.sleep(0)

        self.logger.info(
            f"Publication summary: {result.processed} published, {result.skipped} skipped, "
            f"{len(result.feed_items)} new feed items"
        )
        return result

    async def _process_item(self, item: ContentItem, result: PublicationResult) -> None:
        try:
            post = self.normalize(item)

            if self.oracle.is_clean(build_candidate_text(post)):
                self.store.transition_status(
                    item.content_hash,
                    item.source,
                    ItemStatus.PUBLISHED,
                    processed_data=post.to_processed_data(),
                )
                result.processed += 1
                result.feed_items.append(post)
                result.published_hashes.append(item.content_hash)
                self.logger.info(f"Published: {post.title}", extra={"content_hash": item.content_hash})
            else:
                self.store.transition_status(
                    item.content_hash,
                    item.source,
                    ItemStatus.SKIPPED,
                    skip_reason=PROFANITY_SKIP_REASON,
                )
                result.skipped += 1
                self.logger.info(f"Skipped (profanity): {post.title}", extra={"content_hash": item.content_hash})

        except DatabaseError as e:
            if e.is_connectivity_failure:
                raise
            self._skip_on_error(item, e, result)
        except Exception as e:
            self._skip_on_error(item, e, result)

    def _skip_on_error(self, item: ContentItem, error: Exception, result: PublicationResult) -> None:
        message = str(error)
        self.logger.error(
            f"Error processing item {item.guid} ({item.title}): {message}",
            extra={"content_hash": item.content_hash},
        )
        self.store.transition_status(
            item.content_hash,
            item.source,
            ItemStatus.SKIPPED,
            skip_reason=f"error: {message}",
        )
        result.skipped += 1
        result.errors.append(f"{item.guid}: {message}")
