"""
Structured logging for the chat logs console.
Emits JSON records tagged with the device tier and a per-action correlation ID.
"""

import json
import logging
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator

# One ID per console action (load, delete, bulk delete, export)
correlation_id_ctx: ContextVar[str | None] = ContextVar("correlation_id", default=None)
tier_ctx: ContextVar[str | None] = ContextVar("device_tier", default=None)


class StructuredFormatter(logging.Formatter):
    """
    Formats records as single-line JSON.
    Adds correlation ID and device tier when they are set for the current context.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
        }

        correlation_id = correlation_id_ctx.get()
        if correlation_id:
            log_data["correlation_id"] = correlation_id

        tier = tier_ctx.get()
        if tier:
            log_data["tier"] = tier

        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class StructuredLogger:
    """
    Thin wrapper over a stdlib logger.
    Messages are event names; context goes in keyword fields.
    """

    def __init__(self, name: str, bound_fields: dict[str, Any] | None = None):
        """
        Args:
            name: Logger name (typically __name__)
            bound_fields: Fields attached to every record from this logger
        """
        self.logger = logging.getLogger(name)
        self.bound_fields = dict(bound_fields or {})

    def bind(self, **fields: Any) -> "StructuredLogger":
        """Return a logger that always adds ``fields`` to its records."""
        return StructuredLogger(self.logger.name, {**self.bound_fields, **fields})

    def _log(
        self, level: int, event: str, exc_info: bool = False, **extra_fields: Any
    ) -> None:
        fields = {**self.bound_fields, **extra_fields}
        self.logger.log(level, event, extra={"extra_fields": fields}, exc_info=exc_info)

    def debug(self, event: str, **extra_fields: Any) -> None:
        self._log(logging.DEBUG, event, **extra_fields)

    def info(self, event: str, **extra_fields: Any) -> None:
        self._log(logging.INFO, event, **extra_fields)

    def warning(self, event: str, exc_info: bool = False, **extra_fields: Any) -> None:
        self._log(logging.WARNING, event, exc_info=exc_info, **extra_fields)

    def error(self, event: str, exc_info: bool = False, **extra_fields: Any) -> None:
        """
        Log an error event.

        Args:
            event: Event name
            exc_info: If True, include exception traceback
            **extra_fields: Additional context fields
        """
        self._log(logging.ERROR, event, exc_info=exc_info, **extra_fields)


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger for ``name``."""
    return StructuredLogger(name)


def set_correlation_id(correlation_id: str | None) -> None:
    """Set correlation ID for the current context."""
    correlation_id_ctx.set(correlation_id)


def get_correlation_id() -> str | None:
    """Get the current correlation ID, if any."""
    return correlation_id_ctx.get()


def set_device_tier(tier: str | None) -> None:
    """Tag subsequent records in this context with a device tier."""
    tier_ctx.set(tier)


@contextmanager
def action_context(action: str) -> Iterator[str]:
    """
    Run a console action under a fresh correlation ID.

    The previous ID is restored on exit, so nested actions (a reload
    triggered by a delete) keep their own IDs.

    Args:
        action: Action name, used as the ID prefix

    Yields:
        The correlation ID in effect for the block
    """
    correlation_id = f"{action}-{uuid.uuid4().hex[:12]}"
    token = correlation_id_ctx.set(correlation_id)
    try:
        yield correlation_id
    finally:
        correlation_id_ctx.reset(token)


def configure_logging(level: str = "INFO", use_structured: bool = True) -> None:
    """
    Configure application-wide logging.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        use_structured: If True, use structured JSON logging
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)

    if use_structured:
        formatter = StructuredFormatter(datefmt="%Y-%m-%d %H:%M:%S")
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)
