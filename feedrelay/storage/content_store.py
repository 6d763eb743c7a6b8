"""
Content Store
=============

Repository for the ingested content table. It is the only component that
writes rows: ingestion and publication request inserts, reconciliation
updates and status transitions through the methods here, each scoped to a
single row by (content_hash, source).

sqlite3.OperationalError (locked, unreadable or missing database) is
reported as a ``DatabaseError`` with ``DATABASE_CONNECTION``, the code
callers treat as the store being unavailable.
"""

import json
import sqlite3
from contextlib import contextmanager
from typing import Any, Dict, Iterable, List, Optional

from ..database.connection import DatabaseConnection
from ..database.models import (
    ContentItem,
    ItemStatus,
    SourceRecord,
    to_db_timestamp,
    utc_now,
)
from ..database.schema import TABLE_NAME
from ..utils.logging import get_logger_for_component
from ..utils.exceptions import DatabaseError, ErrorCode, StateTransitionError, ValidationError


_COLUMNS = (
    "id, content_hash, source, platform, feed_type, guid, status, ingested_at, "
    "published_at, skipped_at, skip_reason, item_published_at, item_modified_at, "
    "metadata, full_content, processed_data"
)


def _dump(value: Optional[Dict[str, Any]]) -> Optional[str]:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False, default=str)


class ContentStore:
    """Durable table of ingested items and owner of their lifecycle."""

    def __init__(self, db_connection: DatabaseConnection):
        """Initialize content store.

        Args:
            db_connection: Database connection manager
        """
        self.db = db_connection
        self.logger = get_logger_for_component("content_store")

    @contextmanager
    def _translate_errors(self, operation: str):
        """Map sqlite3 failures onto the store's error codes."""
        try:
            yield
        except sqlite3.OperationalError as e:
            raise DatabaseError(
                f"Store unavailable during {operation}: {e}",
                error_code=ErrorCode.DATABASE_CONNECTION,
            ) from e
        except sqlite3.IntegrityError as e:
            raise DatabaseError(
                f"Constraint violated during {operation}: {e}",
                error_code=ErrorCode.DATABASE_CONSTRAINT,
                recoverable=False,
            ) from e
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Failed to {operation}: {e}",
                error_code=ErrorCode.DATABASE_ERROR,
            ) from e

    def _select_one(self, conn: sqlite3.Connection, content_hash: str, source: str) -> Optional[ContentItem]:
        row = conn.execute(
            f"SELECT {_COLUMNS} FROM {TABLE_NAME} WHERE content_hash = ? AND source = ?",
            (content_hash, source),
        ).fetchone()
        return ContentItem.from_db_row(row) if row else None

    # ------------------------------------------------------------------ reads

    def find_by_key(self, content_hash: str, source: str) -> Optional[ContentItem]:
        """Get the row for (content_hash, source), or None."""
        with self._translate_errors("find item"):
            with self.db.get_connection() as conn:
                return self._select_one(conn, content_hash, source)

    def count_by_source_triple(self, source: str, platform: str, feed_type: str) -> int:
        """Number of rows stored for (source, platform, feed_type)."""
        with self._translate_errors("count items"):
            row = self.db.execute_one(
                f"SELECT COUNT(*) FROM {TABLE_NAME} WHERE source = ? AND platform = ? AND feed_type = ?",
                (source, platform, feed_type),
            )
        return int(row[0]) if row else 0

    def select_pending(self, source: str, feed_type: str, limit: int) -> List[ContentItem]:
        """Pending rows, oldest ingested first.

        Ties on ``ingested_at`` fall back to insertion order so the selection
        is reproducible across retries.
        """
        if limit <= 0:
            return []
        with self._translate_errors("select pending items"):
            rows = self.db.execute_query(
                f"""
                SELECT {_COLUMNS} FROM {TABLE_NAME}
                WHERE source = ? AND feed_type = ? AND status = ?
                ORDER BY ingested_at ASC, id ASC
                LIMIT ?
                """,
                (source, feed_type, ItemStatus.PENDING.value, limit),
            )
        return [ContentItem.from_db_row(row) for row in rows]

    def select_published(
        self,
        source: str,
        feed_type: str,
        limit: int,
        exclude_hashes: Iterable[str] = (),
    ) -> List[ContentItem]:
        """Published rows, freshest upstream publish time first."""
        if limit <= 0:
            return []
        exclude = list(dict.fromkeys(exclude_hashes))

        query = f"""
            SELECT {_COLUMNS} FROM {TABLE_NAME}
            WHERE source = ? AND feed_type = ? AND status = ?
        """
        params: List[Any] = [source, feed_type, ItemStatus.PUBLISHED.value]
        if exclude:
            query += f" AND content_hash NOT IN ({', '.join('?' for _ in exclude)})"
            params.extend(exclude)
        query += " ORDER BY item_published_at IS NULL, item_published_at DESC, id DESC LIMIT ?"
        params.append(limit)

        with self._translate_errors("select published items"):
            rows = self.db.execute_query(query, tuple(params))
        return [ContentItem.from_db_row(row) for row in rows]

    def status_counts(self, source: str, feed_type: Optional[str] = None) -> Dict[str, int]:
        """Row counts per status for one source."""
        query = f"SELECT status, COUNT(*) AS n FROM {TABLE_NAME} WHERE source = ?"
        params: List[Any] = [source]
        if feed_type:
            query += " AND feed_type = ?"
            params.append(feed_type)
        query += " GROUP BY status"

        counts = {status.value: 0 for status in ItemStatus}
        with self._translate_errors("count statuses"):
            for row in self.db.execute_query(query, tuple(params)):
                counts[row["status"]] = row["n"]
        return counts

    def list_items(
        self,
        source: str,
        status: Optional[ItemStatus] = None,
        limit: int = 50,
    ) -> List[ContentItem]:
        """Most recently ingested rows for one source, for inspection."""
        query = f"SELECT {_COLUMNS} FROM {TABLE_NAME} WHERE source = ?"
        params: List[Any] = [source]
        if status is not None:
            query += " AND status = ?"
            params.append(ItemStatus(status).value)
        query += " ORDER BY ingested_at DESC, id DESC LIMIT ?"
        params.append(limit)

        with self._translate_errors("list items"):
            rows = self.db.execute_query(query, tuple(params))
        return [ContentItem.from_db_row(row) for row in rows]

    # ----------------------------------------------------------------- writes

    def insert(self, item: ContentItem) -> ContentItem:
        """Insert a new pending row.

        Raises:
            ValidationError: If the item is not pending
            DatabaseError: If a row with the same key exists
        """
        if item.status is not ItemStatus.PENDING:
            raise ValidationError("New items must be pending", field_name="status")

        with self._translate_errors("insert item"):
            with self.db.transaction() as conn:
                cursor = conn.execute(
                    f"""
                    INSERT INTO {TABLE_NAME}
                        (content_hash, source, platform, feed_type, guid, status, ingested_at,
                         item_published_at, item_modified_at, metadata, full_content)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        item.content_hash, item.source, item.platform, item.feed_type,
                        item.guid, item.status.value, to_db_timestamp(item.ingested_at),
                        to_db_timestamp(item.item_published_at),
                        to_db_timestamp(item.item_modified_at),
                        _dump(item.metadata), _dump(item.full_content),
                    ),
                )
                item_id = cursor.lastrowid

        self.logger.debug(f"Inserted item {item.content_hash[:12]} for {item.source}")
        return item.model_copy(update={"id": item_id})

    def update_keeping_status(self, content_hash: str, source: str, record: SourceRecord) -> ContentItem:
        """Replace an existing row's upstream data after an upstream edit.

        A row whose stored modification time is null has never seen an edit,
        so the first edit sends it back to ``pending`` for a fresh decision.
        A row that already carries a modification time keeps its status;
        its decision fields stay as they are.

        Raises:
            DatabaseError: If the row does not exist or the write fails
        """
        with self._translate_errors("update item"):
            with self.db.transaction() as conn:
                current = self._select_one(conn, content_hash, source)
                if current is None:
                    raise DatabaseError(
                        f"No item {content_hash} for source {source}",
                        error_code=ErrorCode.DATABASE_ERROR,
                        recoverable=False,
                    )

                reset = current.item_modified_at is None
                if reset and current.status.is_decided and not current.status.can_transition_to(ItemStatus.PENDING):
                    raise StateTransitionError(current.status.value, ItemStatus.PENDING.value)

                assignments = [
                    "metadata = ?",
                    "full_content = ?",
                    "item_published_at = ?",
                    "item_modified_at = ?",
                ]
                params: List[Any] = [
                    _dump(record.metadata),
                    _dump(record.payload),
                    to_db_timestamp(record.published_at),
                    to_db_timestamp(record.modified_at),
                ]
                if reset:
                    assignments += [
                        "status = ?",
                        "published_at = NULL",
                        "skipped_at = NULL",
                        "skip_reason = NULL",
                        "processed_data = NULL",
                    ]
                    params.append(ItemStatus.PENDING.value)

                params += [content_hash, source]
                conn.execute(
                    f"UPDATE {TABLE_NAME} SET {', '.join(assignments)} WHERE content_hash = ? AND source = ?",
                    tuple(params),
                )
                updated = self._select_one(conn, content_hash, source)

        if reset and current.status.is_decided:
            self.logger.info(
                f"Item {content_hash[:12]} modified upstream, reset {current.status.value} -> pending",
                extra={"source": source},
            )
        return updated

    def transition_status(
        self,
        content_hash: str,
        source: str,
        target: ItemStatus,
        skip_reason: Optional[str] = None,
        processed_data: Optional[Dict[str, Any]] = None,
    ) -> ContentItem:
        """Move one row to ``target`` and stamp the matching timestamp.

        Raises:
            StateTransitionError: If the lifecycle does not allow the move
            ValidationError: If the target's required data is missing
            DatabaseError: If the row does not exist or the write fails
        """
        target = ItemStatus(target)

        if target is ItemStatus.PUBLISHED and processed_data is None:
            raise ValidationError("Publishing requires processed_data", field_name="processed_data")
        if target is ItemStatus.SKIPPED and not skip_reason:
            raise ValidationError("Skipping requires a skip_reason", field_name="skip_reason")

        now = to_db_timestamp(utc_now())
        if target is ItemStatus.PUBLISHED:
            fields = (now, None, None, _dump(processed_data))
        elif target is ItemStatus.SKIPPED:
            fields = (None, now, skip_reason, None)
        else:
            fields = (None, None, None, None)

        with self._translate_errors("transition item status"):
            with self.db.transaction() as conn:
                current = self._select_one(conn, content_hash, source)
                if current is None:
                    raise DatabaseError(
                        f"No item {content_hash} for source {source}",
                        error_code=ErrorCode.DATABASE_ERROR,
                        recoverable=False,
                    )
                if not current.status.can_transition_to(target):
                    raise StateTransitionError(current.status.value, target.value)

                conn.execute(
                    f"""
                    UPDATE {TABLE_NAME}
                    SET status = ?, published_at = ?, skipped_at = ?, skip_reason = ?, processed_data = ?
                    WHERE content_hash = ? AND source = ?
                    """,
                    (target.value, *fields, content_hash, source),
                )
                updated = self._select_one(conn, content_hash, source)

        self.logger.debug(
            f"Item {content_hash[:12]} {current.status.value} -> {target.value}",
            extra={"source": source},
        )
        return updated
