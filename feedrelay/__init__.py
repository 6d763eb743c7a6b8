"""
FeedRelay - Content Feed Relay
==============================

Ingests posts from an upstream publishing platform, tracks each item's
publication lifecycle in SQLite, filters what may be published and delivers
a bounded, freshness-ordered feed document.

Main Components:
- Database: SQLite with connection pooling, schema and the content store
- Configuration: JSON file + environment variables with Pydantic validation
- Ingestion: paginated WordPress REST source with deduplication
- Processing: slideshow segmentation, publication decisions, feed window
- Delivery: JSON rendering, local file or S3 output, CloudFront invalidation
"""

__version__ = "1.0.0"
__author__ = "FeedRelay Development Team"
__description__ = "Content feed relay with lifecycle tracking"

from .config.settings import FeedRelaySettings, load_settings
from .database.connection import DatabaseConnection
from .database.schema import DatabaseSchema
from .runner import FeedRunner, RunResult
from .utils.logging import configure_application_logging, get_logger_for_component
from .utils.exceptions import FeedRelayError

__all__ = [
    "FeedRelaySettings",
    "load_settings",
    "DatabaseConnection",
    "DatabaseSchema",
    "FeedRunner",
    "RunResult",
    "configure_application_logging",
    "get_logger_for_component",
    "FeedRelayError",
]
