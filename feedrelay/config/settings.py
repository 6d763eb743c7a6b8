"""
FeedRelay Configuration System
==============================

Configuration management with pydantic-settings. One run handles one source,
so a settings value describes exactly one source, its output feed and where
that feed is stored.

Precedence, highest first:
1. JSON config file passed to ``load_settings`` (top-level object, or its
   ``overrides`` object when present)
2. Environment variables (``FEEDRELAY_SECTION__FIELD``)
3. ``.env`` file values
4. Field defaults

The loaded value is passed to components explicitly; nothing reads it from a
module-level global.
"""

import json
from pathlib import Path
from typing import ClassVar, List, Optional, Any, Dict, Tuple
from enum import Enum

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings

from ..utils.exceptions import ConfigurationError, ErrorCode


SUPPORTED_PLATFORMS = ("wordpress",)


class LogLevel(str, Enum):
    """Available log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class StorageBackend(str, Enum):
    """Where the rendered feed document is written."""
    FILE = "file"
    S3 = "s3"


class SourceSettings(BaseModel):
    """Upstream content source for this run."""
    url: Optional[str] = Field(default=None, description="Base URL of the upstream site")
    platform: Optional[str] = Field(default="wordpress", description="Content source platform")
    feed_type: Optional[str] = Field(default="article", description="Feed type: article or slideshow")
    name: Optional[str] = Field(default=None, description="Logical source key used to scope stored items")
    api_token: Optional[str] = Field(default=None, description="Bearer token for the upstream API")
    posts_filter: Optional[str] = Field(default=None, description="Extra query parameter name for post listing")
    posts_filter_value: Optional[str] = Field(default=None, description="Value for posts_filter")
    per_page: int = Field(default=20, ge=1, le=100, description="Records requested per page")
    request_timeout: int = Field(default=30, ge=5, le=300, description="Request timeout in seconds")

    @field_validator('url')
    @classmethod
    def strip_trailing_slash(cls, v):
        if v:
            v = v.strip().rstrip('/')
        return v or None

    @field_validator('platform', 'feed_type')
    @classmethod
    def normalize_tag(cls, v):
        if v:
            v = v.strip().lower()
        return v or None


class FeedSettings(BaseModel):
    """Output feed window and site metadata."""
    file_name: Optional[str] = Field(default=None, description="Output document name")
    items_per_run: int = Field(default=5, ge=1, le=500, description="Pending items published per run")
    max_total_items: int = Field(default=20, ge=1, le=1000, description="Maximum items in the feed window")
    onboarding_limit: int = Field(default=20, ge=1, le=1000, description="Items published on the first run of a new source")
    site_name: str = Field(default="Content Feed", description="Feed title")
    site_description: str = Field(default="Content relayed by FeedRelay", description="Feed description")
    language: str = Field(default="en-us", description="Feed language")
    copyright: str = Field(default="", description="Feed copyright line")


class FilteringSettings(BaseModel):
    """Content cleanliness filter."""
    enabled: bool = Field(default=False, description="Enable the forbidden-term filter")
    term_list_url: Optional[str] = Field(default=None, description="URL of a JSON array of forbidden terms")
    timeout: int = Field(default=30, ge=1, le=300, description="Term list download timeout in seconds")


class StorageSettings(BaseModel):
    """Rendered feed destination."""
    backend: StorageBackend = Field(default=StorageBackend.FILE, description="file or s3")
    output_dir: str = Field(default="output", description="Directory for the file backend")
    s3_bucket: Optional[str] = Field(default=None, description="Bucket for the s3 backend")
    s3_folder: str = Field(default="feeds", description="Key prefix inside the bucket")
    aws_region: str = Field(default="us-east-1", description="AWS region for S3 and CloudFront clients")
    cloudfront_distribution_id: Optional[str] = Field(default=None, description="Distribution to invalidate after upload")
    cache_control: str = Field(default="max-age=3600", description="Cache-Control header on uploaded objects")


class DatabaseSettings(BaseModel):
    """Database configuration."""
    path: str = Field(default="data/feedrelay.db", description="SQLite database file path")
    pool_size: int = Field(default=5, ge=1, le=20, description="Connection pool size")


class LoggingSettings(BaseModel):
    """Logging configuration."""
    level: LogLevel = Field(default=LogLevel.INFO, description="Global log level")
    file_path: Optional[str] = Field(default="logs/feedrelay.log", description="Log file path")
    max_file_size_mb: int = Field(default=10, ge=1, le=100, description="Max log file size in MB")
    backup_count: int = Field(default=5, ge=1, le=20, description="Number of log backup files")
    structured_logging: bool = Field(default=False, description="Use structured JSON logging on the console")
    console_logging: bool = Field(default=True, description="Enable console logging")
    mask_sensitive: bool = Field(default=True, description="Mask credentials in log records")


class RunSettings(BaseModel):
    """Run coordination."""
    lock_enabled: bool = Field(default=True, description="Serialize runs of the same source with a file lock")
    lock_dir: Optional[str] = Field(default=None, description="Directory for lock files (system temp when unset)")


class FeedRelaySettings(BaseSettings):
    """Main application settings."""

    source: SourceSettings = Field(default_factory=SourceSettings)
    feed: FeedSettings = Field(default_factory=FeedSettings)
    filtering: FilteringSettings = Field(default_factory=FilteringSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    run: RunSettings = Field(default_factory=RunSettings)

    app_name: str = Field(default="FeedRelay", description="Application name")
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "env_nested_delimiter": "__",
        "env_prefix": "FEEDRELAY_",
    }

    REQUIRED_KEYS: ClassVar[Tuple[Tuple[str, str], ...]] = (
        ("source", "url"),
        ("source", "platform"),
        ("source", "feed_type"),
        ("source", "name"),
        ("feed", "file_name"),
    )

    def missing_required(self) -> List[str]:
        """Dotted names of required keys that are unset."""
        missing = []
        for section, key in self.REQUIRED_KEYS:
            if not getattr(getattr(self, section), key):
                missing.append(f"{section}.{key}")
        return missing

    def validate_configuration(self) -> None:
        """Validate complete configuration before any work starts."""
        errors = []

        missing = self.missing_required()
        if missing:
            raise ConfigurationError(
                f"Missing required configuration: {', '.join(missing)}",
                config_key=missing[0],
                error_code=ErrorCode.CONFIG_MISSING,
            )

        if self.source.platform not in SUPPORTED_PLATFORMS:
            raise ConfigurationError(
                f"Unsupported source platform: {self.source.platform}",
                config_key="source.platform",
                error_code=ErrorCode.CONFIG_UNSUPPORTED_PLATFORM,
            )

        if self.storage.backend == StorageBackend.S3 and not self.storage.s3_bucket:
            errors.append("storage.s3_bucket is required for the s3 backend")

        if self.filtering.enabled and not self.filtering.term_list_url:
            errors.append("filtering.term_list_url is required when filtering is enabled")

        try:
            Path(self.database.path).parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            errors.append(f"Invalid database path: {e}")

        if self.logging.file_path:
            try:
                Path(self.logging.file_path).parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                errors.append(f"Invalid log file path: {e}")

        if errors:
            raise ConfigurationError(
                f"Configuration validation failed: {'; '.join(errors)}",
                error_code=ErrorCode.CONFIG_INVALID,
            )

    def get_effective_log_level(self) -> str:
        """Get effective log level considering debug mode."""
        if self.debug:
            return "DEBUG"
        return self.logging.level.value


def read_config_file(config_path: str) -> Dict[str, Any]:
    """Read a JSON config file into settings keyword arguments.

    Raises:
        ConfigurationError: If the file is missing or not a JSON object
    """
    path = Path(config_path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ConfigurationError(
            f"Config file not found: {config_path}",
            config_key="config_path",
            error_code=ErrorCode.CONFIG_MISSING,
        ) from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(
            f"Config file is not valid JSON: {config_path}: {e}",
            config_key="config_path",
            error_code=ErrorCode.CONFIG_PARSE_ERROR,
        ) from e

    if isinstance(data, dict) and isinstance(data.get("overrides"), dict):
        data = data["overrides"]

    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Config file must contain a JSON object: {config_path}",
            config_key="config_path",
            error_code=ErrorCode.CONFIG_PARSE_ERROR,
        )
    return data


def load_settings(config_path: Optional[str] = None, validate: bool = True) -> FeedRelaySettings:
    """Load settings from a config file, the environment and defaults.

    Args:
        config_path: Optional JSON config file whose values win over the environment
        validate: Run ``validate_configuration`` on the result

    Returns:
        Loaded settings

    Raises:
        ConfigurationError: If configuration is invalid
    """
    load_dotenv()

    file_values = read_config_file(config_path) if config_path else {}

    try:
        settings = FeedRelaySettings(**file_values)
    except PydanticValidationError as e:
        raise ConfigurationError(
            f"Failed to initialize settings: {e}",
            error_code=ErrorCode.CONFIG_INVALID,
        ) from e

    if validate:
        settings.validate_configuration()

    return settings
