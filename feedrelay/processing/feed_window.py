"""
Feed window assembly.

The published feed is this run's newly published posts followed by already
published posts for the same (source, feed_type), capped at the configured
maximum. When the cap cuts in, the combined list is ordered by upstream
publish time, freshest first, and the oldest entries fall off.
"""

from datetime import datetime, timezone
from typing import Iterable, List, Optional

from ..database.models import ContentItem, NormalizedPost
from ..storage.content_store import ContentStore
from ..utils.logging import get_logger_for_component


_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def _sort_key(post: NormalizedPost):
    # Posts without a publish time sort after every dated post
    return (post.pub_date is not None, post.pub_date or _OLDEST)


class FeedWindowAssembler:
    """Builds the bounded list of posts that makes up one feed document."""

    def __init__(self, store: ContentStore, source: str, feed_type: str):
        self.store = store
        self.source = source
        self.feed_type = feed_type
        self.logger = get_logger_for_component("feed_window", source=source)

    def load_existing(self, limit: int, exclude_hashes: Iterable[str] = ()) -> List[NormalizedPost]:
        """Previously published posts, freshest first."""
        items = self.store.select_published(self.source, self.feed_type, limit, exclude_hashes)
        posts = []
        for item in items:
            post = self._post_from_item(item)
            if post is not None:
                posts.append(post)
        return posts

    def assemble(
        self,
        newly_published: List[NormalizedPost],
        published_hashes: Iterable[str],
        max_total: int,
    ) -> List[NormalizedPost]:
        """Combine new and existing posts into the feed window.

        Args:
            newly_published: Posts published this run, in selection order
            published_hashes: Hashes of those posts, excluded from the lookup
            max_total: Upper bound on the window size

        Returns:
            At most ``max_total`` posts
        """
        if max_total <= 0:
            return []

        existing = self.load_existing(max_total, published_hashes)
        combined = list(newly_published) + existing

        if len(combined) > max_total:
            combined = sorted(combined, key=_sort_key, reverse=True)[:max_total]

        self.logger.info(
            f"Feed window: {len(newly_published)} new + {len(existing)} existing -> {len(combined)} items"
        )
        return combined

    def _post_from_item(self, item: ContentItem) -> Optional[NormalizedPost]:
        if not item.processed_data:
            self.logger.warning(f"Published item {item.content_hash[:12]} has no processed data")
            return None
        post = NormalizedPost.model_validate(item.processed_data)
        if post.pub_date is None and item.item_published_at is not None:
            post = post.model_copy(update={"pub_date": item.item_published_at})
        return post
