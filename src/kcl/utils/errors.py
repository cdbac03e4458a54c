"""
Error handling framework for kcl.

This module provides:
- Hierarchical exception classes
- Error context preservation
- Structured error responses
- An error context manager that logs through structlog
"""

from typing import Optional, Dict, Any, List
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from contextlib import contextmanager

from .logging import get_logger


logger = get_logger("kcl.errors")


class ErrorSeverity(Enum):
    """Error severity levels."""
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"
    FATAL = "fatal"


class ErrorCategory(Enum):
    """Error categories for classification."""
    CONFIGURATION = "configuration"
    USER_INPUT = "user_input"
    IO = "io"
    EXTERNAL_SERVICE = "external_service"
    INTERNAL = "internal"
    UNKNOWN = "unknown"


@dataclass
class ErrorContext:
    """Context information for an error."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    component: Optional[str] = None
    operation: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


class KclError(Exception):
    """Base exception for all kcl errors."""

    code: str = "KCL_ERROR"
    default_message: str = "An error occurred in kcl"
    severity: ErrorSeverity = ErrorSeverity.FATAL
    category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(
        self,
        message: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        cause: Optional[BaseException] = None,
        **kwargs
    ):
        """Initialize kcl error."""
        self.message = message or self.default_message
        self.context = context or ErrorContext()
        self.cause = cause
        self.kwargs = kwargs
        super().__init__(self.message)

    def get_suggestions(self) -> List[str]:
        """Get error resolution suggestions."""
        return []

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "severity": self.severity.value,
                "category": self.category.value,
                "cause": repr(self.cause) if self.cause is not None else None,
                "suggestions": self.get_suggestions(),
                "context": {
                    "timestamp": self.context.timestamp.isoformat(),
                    "component": self.context.component,
                    "operation": self.context.operation,
                    "metadata": self.context.metadata
                }
            }
        }


# Configuration Errors

class ConfigurationError(KclError):
    """Configuration errors, detected before any record is read."""
    code = "CONFIG_ERROR"
    default_message = "Configuration error"
    category = ErrorCategory.CONFIGURATION

    def get_suggestions(self) -> List[str]:
        return [
            "Check your configuration file syntax",
            "Check KCL_* environment variables and command line flags"
        ]


class DelimiterError(ConfigurationError):
    """The delimiter specification cannot be compiled."""
    code = "DELIMITER_ERROR"
    default_message = "Invalid delimiter"

    def __init__(self, message: Optional[str] = None, spec: Optional[str] = None, **kwargs):
        self.spec = spec
        super().__init__(message, **kwargs)

    def get_suggestions(self) -> List[str]:
        return [r"Supported escapes are \t, \n, \r and \xHH (two hex digits)"]


class InvalidEscapeError(DelimiterError):
    """Incomplete or unknown escape sequence in a delimiter."""
    code = "INVALID_ESCAPE"
    default_message = "Invalid escape sequence in delimiter"


class EmptyDelimiterError(DelimiterError):
    """The delimiter compiled to zero bytes."""
    code = "EMPTY_DELIMITER"
    default_message = "Delimiter must not be empty"


# Stream Errors

class StreamError(KclError):
    """Errors while reading and splitting the input stream."""
    code = "STREAM_ERROR"
    default_message = "Input stream error"
    category = ErrorCategory.IO


class TokenTooLargeError(StreamError):
    """A field reached the maximum buffer size without a delimiter."""
    code = "TOKEN_TOO_LARGE"
    default_message = "Token too large"
    category = ErrorCategory.USER_INPUT

    def __init__(self, size: int, limit: int, **kwargs):
        self.size = size
        self.limit = limit
        message = (
            f"token of at least {size} bytes reached the maximum read buffer "
            f"of {limit} bytes before a delimiter"
        )
        super().__init__(message, **kwargs)

    def get_suggestions(self) -> List[str]:
        return ["Raise the limit with --max-read-buf", "Check the delimiter matches the input"]


class SourceReadError(StreamError):
    """Reading from the byte source failed."""
    code = "SOURCE_READ_ERROR"
    default_message = "Unable to read input"


class ReportError(StreamError):
    """Writing a delivery report to the output stream failed."""
    code = "REPORT_ERROR"
    default_message = "Unable to write delivery report"


# Pairing Errors

class TruncatedPairError(KclError):
    """Input ended after a key with no value following it."""
    code = "TRUNCATED_PAIR"
    default_message = "missing final value delim"
    category = ErrorCategory.USER_INPUT

    def __init__(self, key: bytes, **kwargs):
        self.key = key
        preview = key[:32]
        suffix = "..." if len(key) > 32 else ""
        message = f"missing final value delim after key {preview!r}{suffix}"
        super().__init__(message, **kwargs)


# Delivery Errors

class DeliveryError(KclError):
    """The delivery client rejected or failed a record."""
    code = "DELIVERY_ERROR"
    default_message = "unable to produce record"
    category = ErrorCategory.EXTERNAL_SERVICE

    def __init__(self, cause: BaseException, topic: Optional[str] = None, **kwargs):
        self.topic = topic
        message = f"unable to produce record: {cause}"
        if topic:
            message = f"unable to produce record to topic {topic}: {cause}"
        super().__init__(message, cause=cause, **kwargs)


# Error Context Manager

@contextmanager
def error_context(
    component: str,
    operation: str,
    **metadata
):
    """
    Attach component and operation details to kcl errors raised inside.

    Args:
        component: Component name
        operation: Operation name
        **metadata: Additional context metadata
    """
    try:
        yield
    except KclError as e:
        e.context.component = e.context.component or component
        e.context.operation = e.context.operation or operation
        e.context.metadata.update(metadata)
        logger.warning(
            "kcl_error_in_context",
            code=e.code,
            component=e.context.component,
            operation=e.context.operation,
            error=e.message
        )
        raise


__all__ = [
    'KclError',
    'ErrorContext',
    'ErrorSeverity',
    'ErrorCategory',
    'ConfigurationError',
    'DelimiterError',
    'InvalidEscapeError',
    'EmptyDelimiterError',
    'StreamError',
    'TokenTooLargeError',
    'SourceReadError',
    'ReportError',
    'TruncatedPairError',
    'DeliveryError',
    'error_context',
]
