"""
Content Store Test Suite
========================

Tests for row lookup, ordering of the pending and published selections,
reconciliation updates and guarded status transitions.
"""

import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from feedrelay.database.models import ItemStatus
from feedrelay.database.schema import TABLE_NAME, DatabaseSchema
from feedrelay.utils.exceptions import (
    DatabaseError,
    ErrorCode,
    StateTransitionError,
    ValidationError,
)


BASE = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _publish(store, content_hash, source="example"):
    return store.transition_status(
        content_hash, source, ItemStatus.PUBLISHED, processed_data={"title": content_hash}
    )


class TestSchema:
    def test_verify_schema(self, test_database):
        assert DatabaseSchema(test_database).verify_schema()

    def test_unopenable_database_raises_schema_error(self, tmp_path):
        # A directory cannot be opened as a database file
        with pytest.raises(DatabaseError) as exc_info:
            DatabaseSchema(str(tmp_path)).create_tables()

        assert exc_info.value.error_code == ErrorCode.DATABASE_SCHEMA
        assert not exc_info.value.is_connectivity_failure
        assert exc_info.value.recoverable is False

    def test_migration_adds_upstream_timestamp_columns(self, tmp_path):
        db_path = tmp_path / "old.db"
        conn = sqlite3.connect(db_path)
        conn.execute(
            f"""
            CREATE TABLE {TABLE_NAME} (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                content_hash TEXT NOT NULL,
                source TEXT NOT NULL,
                platform TEXT NOT NULL,
                feed_type TEXT NOT NULL,
                guid TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'pending',
                ingested_at TIMESTAMP NOT NULL,
                published_at TIMESTAMP,
                skipped_at TIMESTAMP,
                skip_reason TEXT,
                metadata TEXT NOT NULL DEFAULT '{{}}',
                full_content TEXT NOT NULL,
                processed_data TEXT,
                UNIQUE(content_hash, source)
            )
            """
        )
        conn.commit()
        conn.close()

        schema = DatabaseSchema(str(db_path))
        assert not schema.verify_schema()
        schema.create_tables()
        assert schema.verify_schema()

    def test_check_constraint_rejects_inconsistent_rows(self, store, make_item, db_connection):
        store.insert(make_item("h1"))
        with pytest.raises(sqlite3.IntegrityError):
            with db_connection.transaction() as conn:
                conn.execute(
                    f"UPDATE {TABLE_NAME} SET status = 'published' WHERE content_hash = 'h1'"
                )


class TestInsertAndFind:
    def test_insert_then_find(self, store, make_item):
        inserted = store.insert(make_item("h1"))
        assert inserted.id is not None

        found = store.find_by_key("h1", "example")
        assert found.status is ItemStatus.PENDING
        assert found.full_content["title"] == "Post h1"
        assert found.item_published_at == BASE

    def test_find_is_scoped_by_source(self, store, make_item):
        store.insert(make_item("h1", source="one"))
        assert store.find_by_key("h1", "two") is None

    def test_same_hash_allowed_for_different_sources(self, store, make_item):
        store.insert(make_item("h1", source="one"))
        store.insert(make_item("h1", source="two"))
        assert store.count_by_source_triple("one", "wordpress", "article") == 1
        assert store.count_by_source_triple("two", "wordpress", "article") == 1

    def test_duplicate_key_is_a_constraint_error(self, store, make_item):
        store.insert(make_item("h1"))
        with pytest.raises(DatabaseError) as exc_info:
            store.insert(make_item("h1"))
        assert exc_info.value.error_code == ErrorCode.DATABASE_CONSTRAINT
        assert not exc_info.value.is_connectivity_failure

    def test_count_by_triple_respects_feed_type(self, store, make_item):
        store.insert(make_item("h1", feed_type="article"))
        assert store.count_by_source_triple("example", "wordpress", "slideshow") == 0


class TestSelections:
    def test_pending_oldest_ingested_first(self, store, make_item):
        store.insert(make_item("late", ingested_at=BASE + timedelta(minutes=5)))
        store.insert(make_item("early", ingested_at=BASE))
        store.insert(make_item("middle", ingested_at=BASE + timedelta(minutes=1)))

        pending = store.select_pending("example", "article", 10)
        assert [i.content_hash for i in pending] == ["early", "middle", "late"]

    def test_pending_ties_fall_back_to_insertion_order(self, store, make_item):
        for name in ("a", "b", "c"):
            store.insert(make_item(name, ingested_at=BASE))
        pending = store.select_pending("example", "article", 2)
        assert [i.content_hash for i in pending] == ["a", "b"]

    def test_pending_excludes_decided_and_other_feed_types(self, store, make_item):
        store.insert(make_item("p1"))
        store.insert(make_item("p2"))
        store.insert(make_item("s1", feed_type="slideshow"))
        _publish(store, "p1")

        pending = store.select_pending("example", "article", 10)
        assert [i.content_hash for i in pending] == ["p2"]

    def test_zero_limit_selects_nothing(self, store, make_item):
        store.insert(make_item("p1"))
        assert store.select_pending("example", "article", 0) == []
        assert store.select_published("example", "article", 0) == []

    def test_published_freshest_first_with_undated_last(self, store, make_item):
        store.insert(make_item("old", published_offset_hours=0))
        store.insert(make_item("new", published_offset_hours=10))
        store.insert(make_item("undated", published_offset_hours=None))
        for name in ("old", "new", "undated"):
            _publish(store, name)

        published = store.select_published("example", "article", 10)
        assert [i.content_hash for i in published] == ["new", "old", "undated"]

    def test_published_exclusion(self, store, make_item):
        for n in range(3):
            store.insert(make_item(f"h{n}", published_offset_hours=n))
            _publish(store, f"h{n}")

        published = store.select_published("example", "article", 10, exclude_hashes=["h2"])
        assert [i.content_hash for i in published] == ["h1", "h0"]

    def test_status_counts_and_listing(self, store, make_item):
        for name in ("a", "b", "c"):
            store.insert(make_item(name))
        _publish(store, "a")
        store.transition_status("b", "example", ItemStatus.SKIPPED, skip_reason="profanity")

        assert store.status_counts("example") == {"pending": 1, "published": 1, "skipped": 1}
        skipped = store.list_items("example", status=ItemStatus.SKIPPED)
        assert [i.content_hash for i in skipped] == ["b"]
        assert skipped[0].skip_reason == "profanity"


class TestTransitions:
    def test_publish_stamps_timestamp_and_data(self, store, make_item):
        store.insert(make_item("h1"))
        updated = _publish(store, "h1")

        assert updated.status is ItemStatus.PUBLISHED
        assert updated.published_at is not None
        assert updated.processed_data == {"title": "h1"}
        assert updated.skipped_at is None

    def test_skip_requires_reason(self, store, make_item):
        store.insert(make_item("h1"))
        with pytest.raises(ValidationError):
            store.transition_status("h1", "example", ItemStatus.SKIPPED)

    def test_publish_requires_processed_data(self, store, make_item):
        store.insert(make_item("h1"))
        with pytest.raises(ValidationError):
            store.transition_status("h1", "example", ItemStatus.PUBLISHED)

    def test_decided_item_cannot_be_decided_again(self, store, make_item):
        store.insert(make_item("h1"))
        _publish(store, "h1")

        with pytest.raises(StateTransitionError) as exc_info:
            store.transition_status("h1", "example", ItemStatus.SKIPPED, skip_reason="late")
        assert exc_info.value.error_code == ErrorCode.INVALID_STATUS_TRANSITION
        assert store.find_by_key("h1", "example").status is ItemStatus.PUBLISHED

    def test_transition_of_unknown_item(self, store):
        with pytest.raises(DatabaseError):
            store.transition_status("missing", "example", ItemStatus.SKIPPED, skip_reason="x")

    def test_insert_rejects_decided_items(self, store, make_item):
        item = make_item("h1").model_copy(update={"status": ItemStatus.SKIPPED})
        with pytest.raises(ValidationError):
            store.insert(item)


class TestUpdateKeepingStatus:
    def test_first_modification_resets_decided_item(self, store, make_item, make_record):
        store.insert(make_item("h1"))
        _publish(store, "h1")

        modified = BASE + timedelta(days=1)
        updated = store.update_keeping_status(
            "h1", "example", make_record("h1", modified_at=modified, title="Edited")
        )

        assert updated.status is ItemStatus.PENDING
        assert updated.published_at is None
        assert updated.processed_data is None
        assert updated.item_modified_at == modified
        assert updated.full_content["title"] == "Edited"

    def test_later_modification_keeps_status(self, store, make_item, make_record):
        first_edit = BASE + timedelta(days=1)
        store.insert(make_item("h1", modified_at=first_edit))
        _publish(store, "h1")

        second_edit = BASE + timedelta(days=2)
        updated = store.update_keeping_status(
            "h1", "example", make_record("h1", modified_at=second_edit, title="Edited again")
        )

        assert updated.status is ItemStatus.PUBLISHED
        assert updated.processed_data == {"title": "h1"}
        assert updated.item_modified_at == second_edit
        assert updated.metadata["title"] == "Edited again"

    def test_update_of_unknown_item(self, store, make_record):
        with pytest.raises(DatabaseError):
            store.update_keeping_status("missing", "example", make_record("missing"))


class TestStoreUnavailable:
    def test_missing_table_is_reported_as_connectivity_failure(self, tmp_path):
        from feedrelay.database.connection import DatabaseConnection
        from feedrelay.storage.content_store import ContentStore

        db = DatabaseConnection(str(tmp_path / "empty.db"), pool_size=1)
        try:
            with pytest.raises(DatabaseError) as exc_info:
                ContentStore(db).select_pending("example", "article", 5)
        finally:
            db.close_all_connections()

        assert exc_info.value.error_code == ErrorCode.DATABASE_CONNECTION
        assert exc_info.value.is_connectivity_failure
