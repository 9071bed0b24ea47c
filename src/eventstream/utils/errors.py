"""
Error handling framework for the event stream client.

This module provides:
- Hierarchical exception classes
- Error context preservation
- Structured error payloads for listeners
"""

from typing import Optional, Dict, Any, List
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
import traceback


class ErrorSeverity(Enum):
    """Error severity levels."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Error categories for classification."""
    NETWORK = "network"
    HTTP = "http"
    PROTOCOL = "protocol"
    LISTENER = "listener"
    CONFIGURATION = "configuration"
    UNKNOWN = "unknown"


@dataclass
class ErrorContext:
    """Context information for an error."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    component: Optional[str] = None
    operation: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    stack_trace: Optional[str] = None


class EventStreamError(Exception):
    """Base exception for all event stream errors."""

    code: str = "EVENTSTREAM_ERROR"
    default_message: str = "An error occurred in the event stream"
    severity: ErrorSeverity = ErrorSeverity.ERROR
    category: ErrorCategory = ErrorCategory.UNKNOWN
    is_retryable: bool = False

    def __init__(
        self,
        message: Optional[str] = None,
        context: Optional[ErrorContext] = None,
        cause: Optional[BaseException] = None,
    ):
        self.message = message or self.default_message
        self.context = context or ErrorContext()
        self.cause = cause

        if not self.context.stack_trace and cause is not None:
            self.context.stack_trace = "".join(
                traceback.format_exception(type(cause), cause, cause.__traceback__)
            )

        super().__init__(self.message)

    @property
    def error_description(self) -> str:
        """Human-readable description, as delivered to listeners."""
        return self.message

    def get_suggestions(self) -> List[str]:
        """Get error resolution suggestions."""
        return []

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "code": self.code,
            "error_description": self.error_description,
            "severity": self.severity.value,
            "category": self.category.value,
            "is_retryable": self.is_retryable,
            "suggestions": self.get_suggestions(),
            "context": {
                "timestamp": self.context.timestamp.isoformat(),
                "component": self.context.component,
                "operation": self.context.operation,
                "metadata": self.context.metadata,
            },
        }


class ConfigurationError(EventStreamError):
    """Configuration errors."""
    code = "CONFIG_ERROR"
    default_message = "Configuration error"
    category = ErrorCategory.CONFIGURATION

    def get_suggestions(self) -> List[str]:
        return [
            "Check your configuration file syntax",
            "Ensure the stream uri and token are set",
        ]


class NetworkError(EventStreamError):
    """The transport could not establish the connection (DNS, TCP, TLS)."""
    code = "NETWORK_ERROR"
    default_message = "Network error occurred"
    category = ErrorCategory.NETWORK
    is_retryable = True

    def __init__(self, uri: str, cause: Optional[BaseException] = None, **kwargs):
        self.uri = uri
        super().__init__(f"Network error from {uri}", cause=cause, **kwargs)

    def get_suggestions(self) -> List[str]:
        return [
            "Check your network connection",
            "Verify the stream host is reachable",
        ]

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["error"] = repr(self.cause) if self.cause is not None else None
        return result


class HttpError(EventStreamError):
    """The server answered with a status other than 200."""
    code = "HTTP_ERROR"
    default_message = "Unexpected HTTP status"
    category = ErrorCategory.HTTP
    is_retryable = True

    def __init__(self, uri: str, status_code: int, body: Any = None, **kwargs):
        self.uri = uri
        self.status_code = status_code
        self.body = body

        message = f"HTTP error {status_code} from {uri}"
        if isinstance(body, dict) and body.get("error_description"):
            message += f" - {body['error_description']}"
        super().__init__(message, **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result["status_code"] = self.status_code
        result["body"] = self.body
        return result


class AbortedError(EventStreamError):
    """The session was aborted while a connect attempt was outstanding."""
    code = "ABORTED"
    default_message = "Connection aborted"
    severity = ErrorSeverity.INFO
    category = ErrorCategory.NETWORK


class StreamError(EventStreamError):
    """The inbound stream could not be processed."""
    code = "STREAM_ERROR"
    default_message = "Stream processing error"
    category = ErrorCategory.PROTOCOL
    is_retryable = True


class DecodeError(EventStreamError):
    """A record's data could not be decoded. Never surfaced to listeners."""
    code = "DECODE_ERROR"
    default_message = "Record data is not a JSON object"
    severity = ErrorSeverity.DEBUG
    category = ErrorCategory.PROTOCOL


class ListenerError(EventStreamError):
    """A registered listener raised while handling a notification."""
    code = "LISTENER_ERROR"
    default_message = "Listener failed"
    severity = ErrorSeverity.WARNING
    category = ErrorCategory.LISTENER

    def __init__(self, event: str, cause: BaseException, **kwargs):
        self.event = event
        super().__init__(f"Listener for '{event}' failed: {cause!r}", cause=cause, **kwargs)


# Export public API
__all__ = [
    'EventStreamError',
    'ErrorContext',
    'ErrorSeverity',
    'ErrorCategory',
    'ConfigurationError',
    'NetworkError',
    'HttpError',
    'AbortedError',
    'StreamError',
    'DecodeError',
    'ListenerError',
]
