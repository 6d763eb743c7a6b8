"""
FeedRelay Run Orchestration
===========================

One run turns the current state of one upstream source into one published
feed document:

1. Ingest every upstream page into the content store
2. Load the cleanliness filter
3. Decide pending items (onboarding limit for a new source)
4. Assemble the bounded feed window
5. Render, store and invalidate the cached copy

Runs of the same source are serialized with a file lock so two processes
never select the same pending items.
"""

from contextlib import nullcontext
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .config.settings import FeedRelaySettings
from .database.connection import DatabaseConnection
from .database.models import IngestResult, PublicationResult
from .database.schema import DatabaseSchema
from .delivery.renderer import JsonFeedRenderer, Renderer, SiteMetadata
from .delivery.sinks import CacheInvalidator, ObjectSink, build_invalidator, build_sink
from .filtering.oracle import AllowAllOracle, CleanlinessOracle, TermListOracle
from .filtering.term_list import fetch_term_list
from .ingestion.engine import IngestionEngine
from .ingestion.sources import get_content_source
from .ingestion.sources.base import ContentSource
from .processing.feed_window import FeedWindowAssembler
from .processing.pipeline import PublicationPipeline, resolve_processing_limit
from .processing.segmenter import StructuralSegmenter
from .storage.content_store import ContentStore
from .utils.logging import PerformanceLogger, get_logger_for_component
from .utils.process_lock import source_run_lock


TermFetcher = Callable[..., Awaitable[List[str]]]


@dataclass
class RunResult:
    """Summary of one completed run."""
    source: str
    platform: str
    feed_type: str
    is_new_source: bool = False
    ingested: int = 0
    updated: int = 0
    malformed: int = 0
    processed: int = 0
    skipped: int = 0
    feed_items: int = 0
    storage_location: Optional[str] = None
    storage_type: Optional[str] = None
    cloudfront_invalidated: bool = False
    invalidation_id: Optional[str] = None
    duration_seconds: float = 0.0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "platform": self.platform,
            "feed_type": self.feed_type,
            "is_new_source": self.is_new_source,
            "ingested": self.ingested,
            "updated": self.updated,
            "malformed": self.malformed,
            "processed": self.processed,
            "skipped": self.skipped,
            "feed_items": self.feed_items,
            "storage_location": self.storage_location,
            "storage_type": self.storage_type,
            "cloudfront_invalidated": self.cloudfront_invalidated,
            "invalidation_id": self.invalidation_id,
            "duration_seconds": round(self.duration_seconds, 3),
            "errors": list(self.errors),
        }


class FeedRunner:
    """Runs the full ingest, publish and deliver cycle for one source."""

    def __init__(
        self,
        settings: FeedRelaySettings,
        db_connection: Optional[DatabaseConnection] = None,
        source: Optional[ContentSource] = None,
        oracle: Optional[CleanlinessOracle] = None,
        renderer: Optional[Renderer] = None,
        sink: Optional[ObjectSink] = None,
        invalidator: Optional[CacheInvalidator] = None,
        term_fetcher: TermFetcher = fetch_term_list,
    ):
        """Initialize the runner.

        Collaborators left as None are built from ``settings`` when the run
        starts.

        Args:
            settings: Validated settings for this run
            db_connection: Connection manager for the content store
            source: Upstream content source
            oracle: Cleanliness decision, overriding the configured filter
            renderer: Feed document renderer
            sink: Destination for the rendered document
            invalidator: CDN invalidator, used after a successful store
            term_fetcher: Coroutine that downloads the forbidden term list
        """
        self.settings = settings
        self.db = db_connection
        self.source = source
        self.oracle = oracle
        self.renderer = renderer or JsonFeedRenderer()
        self.sink = sink
        self.invalidator = invalidator
        self.term_fetcher = term_fetcher
        self.logger = get_logger_for_component("runner", source=settings.source.name)

    def _lock(self):
        run = self.settings.run
        if not run.lock_enabled:
            return nullcontext()
        return source_run_lock(self.settings.source.name, run.lock_dir)

    def invalidation_path(self) -> str:
        folder = (self.settings.storage.s3_folder or "").strip("/")
        file_name = self.settings.feed.file_name
        return f"/{folder}/{file_name}" if folder else f"/{file_name}"

    async def run(self) -> RunResult:
        """Execute one run.

        Raises:
            RunLockError: If another run of the same source holds the lock
            SourceFetchError: If an upstream page cannot be fetched
            ProcessingError: If the term list cannot be loaded
            DatabaseError: If the content store is unavailable
            DeliveryError: If the document cannot be stored or invalidated
        """
        source_settings = self.settings.source
        result = RunResult(
            source=source_settings.name,
            platform=source_settings.platform,
            feed_type=source_settings.feed_type,
        )
        started = datetime.now(timezone.utc)

        self.logger.info(
            f"Starting feed run for {source_settings.name} "
            f"({source_settings.platform}/{source_settings.feed_type})"
        )

        with self._lock():
            owns_db = self.db is None
            if owns_db:
                self.db = DatabaseConnection(
                    self.settings.database.path, self.settings.database.pool_size
                )
            try:
                await self._run_locked(result)
            finally:
                if owns_db:
                    self.db.close_all_connections()
                    self.db = None

        result.duration_seconds = (datetime.now(timezone.utc) - started).total_seconds()
        self.logger.info(
            f"Feed processed successfully in {result.duration_seconds:.1f}s: "
            f"{result.ingested} ingested, {result.processed} published, "
            f"{result.skipped} skipped, {result.feed_items} items in feed"
        )
        return result

    async def _run_locked(self, result: RunResult) -> None:
        settings = self.settings
        DatabaseSchema(str(self.db.db_path)).create_tables()
        store = ContentStore(self.db)

        # Phase 1: ingestion
        source = self.source or get_content_source(settings.source)
        engine = IngestionEngine(store, source, settings.source)
        with PerformanceLogger(self.logger, "ingestion"):
            ingest: IngestResult = await engine.ingest()
        result.is_new_source = ingest.is_new_source
        result.ingested = ingest.total_new
        result.updated = ingest.total_updated
        result.malformed = ingest.total_failed

        oracle = await self._load_oracle()

        # Phase 2: publication decisions
        limit = resolve_processing_limit(ingest.is_new_source, settings.feed)
        pipeline = PublicationPipeline(store, StructuralSegmenter(), oracle, settings.source)
        with PerformanceLogger(self.logger, "publication", limit=limit):
            publication: PublicationResult = await pipeline.run(limit)
        result.processed = publication.processed
        result.skipped = publication.skipped
        result.errors.extend(publication.errors)

        assembler = FeedWindowAssembler(store, settings.source.name, settings.source.feed_type)
        window = assembler.assemble(
            publication.feed_items,
            publication.published_hashes,
            settings.feed.max_total_items,
        )
        result.feed_items = len(window)

        # Delivery
        site = SiteMetadata.from_settings(settings.source.url, settings.feed)
        document = self.renderer.render(window, site)

        sink = self.sink or build_sink(settings.storage)
        with PerformanceLogger(self.logger, "delivery", backend=sink.backend):
            result.storage_location = sink.store(
                settings.feed.file_name, document, self.renderer.content_type
            )
        result.storage_type = sink.backend

        invalidator = self.invalidator or build_invalidator(settings.storage)
        if invalidator is not None:
            result.invalidation_id = invalidator.invalidate(self.invalidation_path())
            result.cloudfront_invalidated = True
            self.logger.info(f"CloudFront invalidation: {result.invalidation_id}")

    async def _load_oracle(self) -> CleanlinessOracle:
        if self.oracle is not None:
            return self.oracle

        filtering = self.settings.filtering
        if not filtering.enabled:
            self.logger.info("Content filtering disabled")
            return AllowAllOracle()

        terms = await self.term_fetcher(filtering.term_list_url, timeout=filtering.timeout)
        self.logger.info(f"Loaded {len(terms)} filter terms")
        return TermListOracle(terms)
