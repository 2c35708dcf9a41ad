"""Logging configuration for the agent engine.

Structured (JSON) and colored console output for the ``agent_engine`` logger
hierarchy. Nothing is configured at import time; applications call
``setup_logging`` once.
"""

import json
import logging
import sys
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

ROOT_LOGGER_NAME = "agent_engine"


class LogLevel(str, Enum):
    """Log level enumeration."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogEntry(BaseModel):
    """Structured log entry.

    Attributes:
        timestamp: Log timestamp
        level: Log level
        message: Log message
        logger: Logger name
        context: Additional context
    """

    timestamp: str
    level: str
    message: str
    logger: str
    context: dict[str, Any] = Field(default_factory=dict)


class StructuredFormatter(logging.Formatter):
    """Formatter emitting one JSON object (or a plain text line) per record."""

    def __init__(self, format_type: str = "json") -> None:
        super().__init__()
        self.format_type = format_type

    def format(self, record: logging.LogRecord) -> str:
        entry = LogEntry(
            timestamp=datetime.fromtimestamp(record.created).isoformat(),
            level=record.levelname,
            message=record.getMessage(),
            logger=record.name,
            context={
                "function": record.funcName,
                "line": record.lineno,
                "module": record.module,
            },
        )

        # Context attached by LoggerContext
        extra_context = getattr(record, "context", None)
        if isinstance(extra_context, dict):
            entry.context.update(extra_context)

        if record.exc_info:
            entry.context["exception"] = self.formatException(record.exc_info)

        if self.format_type == "json":
            return json.dumps(entry.model_dump(), default=str)
        return f"{entry.timestamp} [{entry.level}] {entry.logger}: {entry.message}"


class ColoredFormatter(logging.Formatter):
    """Colored console formatter using ANSI escape codes."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
        "RESET": "\033[0m",
    }

    def format(self, record: logging.LogRecord) -> str:
        level_color = self.COLORS.get(record.levelname, "")
        reset_color = self.COLORS["RESET"]
        line = f"[{level_color}{record.levelname}{reset_color}] {record.name}: {record.getMessage()}"
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def setup_logging(
    level: str | LogLevel = "INFO",
    format_type: str = "text",
    use_colors: bool = True,
    log_file: str | None = None,
) -> logging.Logger:
    """Configure the ``agent_engine`` logger hierarchy.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_type: Output format ("json" or "text")
        use_colors: Whether to use colors in console output
        log_file: Optional file to also write logs to

    Returns:
        The configured package root logger
    """
    level_name = level.upper() if isinstance(level, str) else level.value
    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(getattr(logging, level_name))
    root_logger.handlers.clear()
    root_logger.propagate = False

    console_handler = logging.StreamHandler(sys.stdout)
    if use_colors and format_type == "text":
        console_handler.setFormatter(ColoredFormatter())
    else:
        console_handler.setFormatter(StructuredFormatter(format_type=format_type))
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(StructuredFormatter(format_type=format_type))
        root_logger.addHandler(file_handler)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance.

    Args:
        name: Logger name (usually ``__name__`` of the module)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


class LoggerContext:
    """Context manager attaching contextual fields to every record of a logger.

    Example:
        with LoggerContext(logger, {"execution_id": "exec_123"}):
            logger.info("Running step")
    """

    def __init__(self, logger: logging.Logger, context: dict[str, Any]) -> None:
        self.logger = logger
        self.context = context
        self.old_factory: Any = None

    def __enter__(self) -> "LoggerContext":
        self.old_factory = self.logger.makeRecord

        def make_record_with_context(
            name: str,
            level: int,
            fn: str,
            lno: int,
            msg: str,
            args: Any,
            exc_info: Any,
            func: str | None = None,
            extra: dict[str, Any] | None = None,
            sinfo: str | None = None,
        ) -> logging.LogRecord:
            record = self.old_factory(name, level, fn, lno, msg, args, exc_info, func, extra, sinfo)
            if not hasattr(record, "context"):
                record.context = {}
            record.context.update(self.context)
            return record

        self.logger.makeRecord = make_record_with_context  # type: ignore[method-assign]
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self.old_factory:
            self.logger.makeRecord = self.old_factory  # type: ignore[method-assign]
