"""
FeedRelay Custom Exceptions
===========================

Exception hierarchy for FeedRelay with error codes, context information and
operator-facing messages. Item-level failures are recorded on the row they
belong to; everything raised from here up to the run boundary fails the
invocation.
"""

from typing import Optional, Dict, Any
from enum import Enum


class ErrorCode(str, Enum):
    """Error codes for categorizing exceptions."""

    # Configuration errors (C001-C099)
    CONFIG_INVALID = "C001"
    CONFIG_MISSING = "C002"
    CONFIG_PARSE_ERROR = "C003"
    CONFIG_UNSUPPORTED_PLATFORM = "C004"

    # Database errors (D001-D099)
    DATABASE_CONNECTION = "D001"
    DATABASE_SCHEMA = "D002"
    DATABASE_CONSTRAINT = "D003"
    DATABASE_ERROR = "D006"

    # Source fetch errors (F001-F099)
    SOURCE_INVALID_URL = "F001"
    SOURCE_FETCH_TIMEOUT = "F002"
    SOURCE_PARSE_ERROR = "F003"
    SOURCE_NETWORK_ERROR = "F004"
    SOURCE_ACCESS_DENIED = "F005"
    SOURCE_HTTP_ERROR = "F006"

    # Content processing errors (P001-P099)
    CONTENT_INVALID = "P001"
    CONTENT_MISSING = "P002"
    TERM_LIST_UNAVAILABLE = "P004"

    # Validation errors (V001-V099)
    VALIDATION_INVALID_FORMAT = "V002"
    INVALID_STATUS_TRANSITION = "V005"

    # Output delivery errors (O001-O099)
    OUTPUT_WRITE_FAILED = "O001"
    CACHE_INVALIDATION_FAILED = "O002"

    # System errors (S001-S099)
    SYSTEM_PERMISSION_DENIED = "S002"
    SYSTEM_MEMORY_ERROR = "S004"
    RUN_IN_PROGRESS = "S005"


class FeedRelayError(Exception):
    """Base exception for all FeedRelay errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[ErrorCode] = None,
        context: Optional[Dict[str, Any]] = None,
        user_message: Optional[str] = None,
        recoverable: bool = False,
    ):
        """Initialize FeedRelay error.

        Args:
            message: Technical error message for logging
            error_code: Categorized error code
            context: Additional context information
            user_message: Operator-facing error message
            recoverable: Whether a later re-run is expected to succeed
        """
        super().__init__(message)
        self.error_code = error_code
        self.context = context or {}
        self.user_message = user_message or message
        self.recoverable = recoverable

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code.value if self.error_code else None,
            "error_message": str(self),
            "user_message": self.user_message,
            "context": self.context,
            "recoverable": self.recoverable,
        }

    def __str__(self) -> str:
        """String representation with error code."""
        if self.error_code:
            return f"[{self.error_code.value}] {super().__str__()}"
        return super().__str__()


def _passthrough(kwargs: Dict[str, Any], *consumed: str) -> Dict[str, Any]:
    return {k: v for k, v in kwargs.items() if k not in consumed}


class ConfigurationError(FeedRelayError):
    """Configuration-related errors."""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        """Initialize configuration error.

        Args:
            message: Error message
            config_key: Configuration key that caused the error
            **kwargs: Additional arguments for FeedRelayError
        """
        context = kwargs.get("context", {})
        if config_key:
            context["config_key"] = config_key

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.CONFIG_INVALID),
            context=context,
            user_message=kwargs.get("user_message", f"Configuration error: {message}"),
            **_passthrough(kwargs, "context", "error_code", "user_message"),
        )


class DatabaseError(FeedRelayError):
    """Database-related errors."""

    def __init__(self, message: str, query: Optional[str] = None, **kwargs):
        """Initialize database error.

        Args:
            message: Error message
            query: SQL query that caused the error
            **kwargs: Additional arguments for FeedRelayError
        """
        context = kwargs.get("context", {})
        if query:
            context["query"] = query

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.DATABASE_CONNECTION),
            context=context,
            user_message=kwargs.get("user_message", "Database operation failed"),
            recoverable=kwargs.get("recoverable", True),
            **_passthrough(kwargs, "context", "error_code", "user_message", "recoverable"),
        )

    @property
    def is_connectivity_failure(self) -> bool:
        """True when the store itself is unreachable rather than one row being bad."""
        return self.error_code == ErrorCode.DATABASE_CONNECTION


class SourceError(FeedRelayError):
    """Upstream content source errors."""

    def __init__(self, message: str, source_url: Optional[str] = None, **kwargs):
        """Initialize source error.

        Args:
            message: Error message
            source_url: Upstream URL that caused the error
            **kwargs: Additional arguments for FeedRelayError
        """
        context = kwargs.get("context", {})
        if source_url:
            context["source_url"] = source_url

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.SOURCE_NETWORK_ERROR),
            context=context,
            user_message=kwargs.get("user_message", f"Content source failed: {message}"),
            recoverable=kwargs.get("recoverable", True),
            **_passthrough(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class SourceFetchError(SourceError):
    """A page could not be fetched from the content source."""

    pass


class ProcessingError(FeedRelayError):
    """Content processing errors."""

    def __init__(self, message: str, content_hash: Optional[str] = None, **kwargs):
        """Initialize processing error.

        Args:
            message: Error message
            content_hash: Content hash of the item being processed
            **kwargs: Additional arguments for FeedRelayError
        """
        context = kwargs.get("context", {})
        if content_hash:
            context["content_hash"] = content_hash

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.CONTENT_INVALID),
            context=context,
            user_message=kwargs.get("user_message", "Content processing failed"),
            recoverable=kwargs.get("recoverable", True),
            **_passthrough(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class ContentValidationError(ProcessingError):
    """An upstream record or stored payload is malformed."""

    def __init__(self, message: str, upstream_id: Optional[str] = None, **kwargs):
        context = kwargs.get("context", {})
        if upstream_id:
            context["upstream_id"] = upstream_id

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.CONTENT_INVALID),
            context=context,
            user_message=kwargs.get(
                "user_message", f"Content validation failed: {message}"
            ),
            **_passthrough(kwargs, "context", "error_code", "user_message"),
        )


class ValidationError(FeedRelayError):
    """Data validation errors."""

    def __init__(self, message: str, field_name: Optional[str] = None, **kwargs):
        """Initialize validation error.

        Args:
            message: Error message
            field_name: Field name that failed validation
            **kwargs: Additional arguments for FeedRelayError
        """
        context = kwargs.get("context", {})
        if field_name:
            context["field_name"] = field_name

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.VALIDATION_INVALID_FORMAT),
            context=context,
            user_message=kwargs.get(
                "user_message", f"Invalid {field_name or 'input'}: {message}"
            ),
            recoverable=kwargs.get("recoverable", False),
            **_passthrough(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class StateTransitionError(ValidationError):
    """A status change the item lifecycle does not allow."""

    def __init__(self, current: str, target: str, **kwargs):
        super().__init__(
            f"Illegal status transition {current} -> {target}",
            field_name="status",
            error_code=ErrorCode.INVALID_STATUS_TRANSITION,
            context={"current_status": current, "target_status": target},
            **kwargs,
        )


class DeliveryError(FeedRelayError):
    """Output document storage or cache invalidation errors."""

    def __init__(self, message: str, location: Optional[str] = None, **kwargs):
        """Initialize delivery error.

        Args:
            message: Error message
            location: Target location (path, bucket key or CDN path)
            **kwargs: Additional arguments for FeedRelayError
        """
        context = kwargs.get("context", {})
        if location:
            context["location"] = location

        super().__init__(
            message=message,
            error_code=kwargs.get("error_code", ErrorCode.OUTPUT_WRITE_FAILED),
            context=context,
            user_message=kwargs.get("user_message", "Feed delivery failed"),
            recoverable=kwargs.get("recoverable", True),
            **_passthrough(kwargs, "context", "error_code", "user_message", "recoverable"),
        )


class RunLockError(FeedRelayError):
    """Another run for the same source holds the lock."""

    def __init__(self, message: str, holder_pid: Optional[int] = None, **kwargs):
        context = kwargs.get("context", {})
        if holder_pid:
            context["holder_pid"] = holder_pid

        super().__init__(
            message=message,
            error_code=ErrorCode.RUN_IN_PROGRESS,
            context=context,
            user_message=kwargs.get("user_message", "A run for this source is already in progress"),
            recoverable=True,
        )


# Exception handling utilities


def handle_exception(
    exception: Exception,
    logger,
    operation: str,
    context: Optional[Dict[str, Any]] = None,
) -> FeedRelayError:
    """Convert generic exceptions to FeedRelay exceptions with proper logging.

    Args:
        exception: Original exception
        logger: Logger instance for error logging
        operation: Operation that was being performed
        context: Additional context information

    Returns:
        FeedRelay exception with proper categorization
    """
    context = context or {}
    context["operation"] = operation
    context["original_exception_type"] = type(exception).__name__

    if isinstance(exception, FeedRelayError):
        logger.error(f"Operation '{operation}' failed", extra=exception.to_dict())
        return exception

    elif isinstance(exception, (ConnectionError, TimeoutError)):
        error = FeedRelayError(
            message=f"Network error during {operation}: {str(exception)}",
            error_code=ErrorCode.SOURCE_NETWORK_ERROR,
            context=context,
            user_message="Network connection failed",
            recoverable=True,
        )

    elif isinstance(exception, PermissionError):
        error = FeedRelayError(
            message=f"Permission denied during {operation}: {str(exception)}",
            error_code=ErrorCode.SYSTEM_PERMISSION_DENIED,
            context=context,
            user_message="Access denied",
            recoverable=False,
        )

    elif isinstance(exception, FileNotFoundError):
        error = ConfigurationError(
            message=f"Required file not found during {operation}: {str(exception)}",
            error_code=ErrorCode.CONFIG_MISSING,
            context=context,
            user_message="Configuration file missing",
        )

    elif isinstance(exception, MemoryError):
        error = FeedRelayError(
            message=f"Memory exhausted during {operation}: {str(exception)}",
            error_code=ErrorCode.SYSTEM_MEMORY_ERROR,
            context=context,
            user_message="System resources exhausted",
            recoverable=True,
        )

    else:
        error = FeedRelayError(
            message=f"Unexpected error during {operation}: {str(exception)}",
            context=context,
            user_message="An unexpected error occurred",
            recoverable=True,
        )

    logger.error(f"Operation '{operation}' failed", extra=error.to_dict())
    return error
