"""
FeedRelay Database Schema
=========================

SQLite schema for the ingested content table. One row per
(content_hash, source); CHECK constraints restate the status invariants so
that a write which would break them fails at the database as well.
"""

import sqlite3
import logging
from contextlib import closing
from pathlib import Path

from ..utils.exceptions import DatabaseError, ErrorCode

logger = logging.getLogger(__name__)


TABLE_NAME = "ingested_content"

EXPECTED_COLUMNS = {
    "id",
    "content_hash",
    "source",
    "platform",
    "feed_type",
    "guid",
    "status",
    "ingested_at",
    "published_at",
    "skipped_at",
    "skip_reason",
    "item_published_at",
    "item_modified_at",
    "metadata",
    "full_content",
    "processed_data",
}

# Columns added after the first schema revision, with their DDL type
MIGRATED_COLUMNS = [
    ("item_published_at", "TIMESTAMP"),
    ("item_modified_at", "TIMESTAMP"),
]


class DatabaseSchema:
    """Database schema manager for the FeedRelay SQLite database."""

    def __init__(self, db_path: str = "data/feedrelay.db"):
        """Initialize database schema manager.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def create_tables(self) -> None:
        """Create tables, apply migrations and build indexes. Idempotent.

        Raises:
            DatabaseError: If the schema cannot be created or migrated
        """
        try:
            with closing(sqlite3.connect(self.db_path)) as conn:
                self._create_ingested_content_table(conn)

                # Older databases predate some columns
                self._run_migrations(conn)

                self._create_indexes(conn)

                conn.commit()
                logger.info("Database schema created successfully")
        except sqlite3.Error as e:
            raise DatabaseError(
                f"Could not create schema in {self.db_path}: {e}",
                error_code=ErrorCode.DATABASE_SCHEMA,
                user_message="Database schema could not be prepared",
                recoverable=False,
            ) from e

    def _create_ingested_content_table(self, conn: sqlite3.Connection) -> None:
        conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {TABLE_NAME} (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                content_hash TEXT NOT NULL,
                source TEXT NOT NULL,
                platform TEXT NOT NULL,
                feed_type TEXT NOT NULL,
                guid TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'pending'
                    CHECK (status IN ('pending', 'published', 'skipped')),
                ingested_at TIMESTAMP NOT NULL,
                published_at TIMESTAMP,
                skipped_at TIMESTAMP,
                skip_reason TEXT,
                item_published_at TIMESTAMP,
                item_modified_at TIMESTAMP,
                metadata TEXT NOT NULL DEFAULT '{{}}',  -- JSON object
                full_content TEXT NOT NULL,  -- JSON object
                processed_data TEXT,  -- JSON object
                UNIQUE(content_hash, source),
                CHECK (status != 'pending' OR (
                    published_at IS NULL AND skipped_at IS NULL
                    AND skip_reason IS NULL AND processed_data IS NULL)),
                CHECK (status != 'published' OR (
                    published_at IS NOT NULL AND processed_data IS NOT NULL
                    AND skipped_at IS NULL AND skip_reason IS NULL)),
                CHECK (status != 'skipped' OR (
                    skipped_at IS NOT NULL AND skip_reason IS NOT NULL
                    AND published_at IS NULL))
            )
        """
        )

    def _create_indexes(self, conn: sqlite3.Connection) -> None:
        indexes = [
            # Pending drain, oldest ingested first
            f"CREATE INDEX IF NOT EXISTS idx_content_pending ON {TABLE_NAME}(source, status, feed_type, ingested_at)",
            # Published window, freshest first
            f"CREATE INDEX IF NOT EXISTS idx_content_published ON {TABLE_NAME}(source, status, feed_type, item_published_at)",
            # New-source check
            f"CREATE INDEX IF NOT EXISTS idx_content_triple ON {TABLE_NAME}(source, platform, feed_type)",
        ]

        for index_sql in indexes:
            conn.execute(index_sql)

    def _run_migrations(self, conn: sqlite3.Connection) -> None:
        cursor = conn.execute(f"PRAGMA table_info({TABLE_NAME})")
        columns = {column[1] for column in cursor.fetchall()}

        for name, ddl_type in MIGRATED_COLUMNS:
            if name not in columns:
                logger.info(f"Adding {name} column to {TABLE_NAME} table")
                conn.execute(f"ALTER TABLE {TABLE_NAME} ADD COLUMN {name} {ddl_type}")

    def get_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def verify_schema(self) -> bool:
        """Verify the table and all expected columns exist."""
        conn = self.get_connection()
        try:
            row = conn.execute(
                "SELECT name FROM sqlite_master WHERE type='table' AND name = ?",
                (TABLE_NAME,),
            ).fetchone()
            if row is None:
                logger.error(f"Missing table: {TABLE_NAME}")
                return False

            columns = {c[1] for c in conn.execute(f"PRAGMA table_info({TABLE_NAME})")}
            missing = EXPECTED_COLUMNS - columns
            if missing:
                logger.error(f"Missing columns in {TABLE_NAME}: {sorted(missing)}")
                return False

            logger.info("Database schema verification passed")
            return True

        except sqlite3.Error as e:
            logger.error(f"Schema verification failed: {e}")
            return False
        finally:
            conn.close()
