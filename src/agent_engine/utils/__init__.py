"""Utility modules for the agent engine."""

from .id import (
    generate_call_id,
    generate_execution_id,
    generate_request_id,
    generate_session_id,
    generate_uuid,
    is_valid_uuid,
)
from .listeners import ALL_EVENTS, ListenerRegistry
from .logging import ColoredFormatter, LogEntry, LoggerContext, LogLevel, StructuredFormatter, get_logger, setup_logging
from .retry import async_retry_with_exponential_backoff, compute_backoff_delay, is_retryable_error
from .timeout import wait_with_timeout

__all__ = [
    # ID generation
    "generate_uuid",
    "generate_execution_id",
    "generate_request_id",
    "generate_call_id",
    "generate_session_id",
    "is_valid_uuid",
    # Listeners
    "ListenerRegistry",
    "ALL_EVENTS",
    # Retry
    "compute_backoff_delay",
    "async_retry_with_exponential_backoff",
    "is_retryable_error",
    # Timeout
    "wait_with_timeout",
    # Logging
    "setup_logging",
    "get_logger",
    "LogLevel",
    "LogEntry",
    "StructuredFormatter",
    "ColoredFormatter",
    "LoggerContext",
]
