"""
Feed Window Test Suite
======================

Tests for combining newly and previously published posts into the bounded
feed window.
"""

from datetime import datetime, timedelta, timezone

import pytest

from feedrelay.database.models import ItemStatus, NormalizedPost
from feedrelay.processing.feed_window import FeedWindowAssembler


BASE = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _post(name, hours):
    pub_date = None if hours is None else BASE + timedelta(hours=hours)
    return NormalizedPost(title=name, guid=name, pub_date=pub_date)


def _publish_existing(store, make_item, name, hours):
    store.insert(make_item(name, published_offset_hours=hours))
    store.transition_status(
        name, "example", ItemStatus.PUBLISHED,
        processed_data=_post(name, hours).to_processed_data(),
    )


@pytest.fixture
def assembler(store):
    return FeedWindowAssembler(store, "example", "article")


class TestFeedWindowAssembler:
    def test_new_items_come_first_when_under_the_cap(self, store, make_item, assembler):
        _publish_existing(store, make_item, "old-a", 1)
        _publish_existing(store, make_item, "old-b", 2)
        new = [_post("new-a", 0)]

        window = assembler.assemble(new, ["new-a"], max_total=10)

        # Concatenation order is kept: new first, then existing freshest first
        assert [p.title for p in window] == ["new-a", "old-b", "old-a"]

    def test_over_the_cap_sorts_by_publish_date(self, store, make_item, assembler):
        for n in range(4):
            _publish_existing(store, make_item, f"old-{n}", n)
        new = [_post("new-late", 10), _post("new-early", -5)]

        window = assembler.assemble(new, ["new-late", "new-early"], max_total=3)

        assert [p.title for p in window] == ["new-late", "old-3", "old-2"]

    def test_just_published_items_are_not_duplicated(self, store, make_item, assembler):
        _publish_existing(store, make_item, "fresh", 5)
        fresh = _post("fresh", 5)

        window = assembler.assemble([fresh], ["fresh"], max_total=10)

        assert [p.title for p in window] == ["fresh"]

    def test_existing_lookup_is_bounded_by_max_total(self, store, make_item, assembler):
        for n in range(6):
            _publish_existing(store, make_item, f"old-{n}", n)

        window = assembler.assemble([], [], max_total=4)

        assert [p.title for p in window] == ["old-5", "old-4", "old-3", "old-2"]

    def test_undated_posts_sort_last(self, store, make_item, assembler):
        _publish_existing(store, make_item, "dated", 1)
        new = [_post("undated", None), _post("newer", 2)]

        window = assembler.assemble(new, ["undated", "newer"], max_total=2)

        assert [p.title for p in window] == ["newer", "dated"]

    def test_zero_max_total(self, store, make_item, assembler):
        _publish_existing(store, make_item, "old", 1)
        assert assembler.assemble([_post("new", 2)], ["new"], max_total=0) == []

    def test_other_feed_types_are_ignored(self, store, make_item, assembler):
        store.insert(make_item("slides", feed_type="slideshow"))
        store.transition_status(
            "slides", "example", ItemStatus.PUBLISHED, processed_data=_post("slides", 0).to_processed_data()
        )
        assert assembler.assemble([], [], max_total=5) == []
