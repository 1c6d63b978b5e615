"""Context management for structured logging.

Background jobs bind ``job`` and ``cycle_id`` once per cycle, and the
dispatcher binds ``notification_id``; every record logged underneath
carries those fields without passing them around.

Context lives in a ContextVar, so each asyncio task sees its own copy.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

_log_context: ContextVar[dict[str, Any]] = ContextVar("log_context", default={})


def set_log_context(**kwargs: Any) -> None:
    """Add fields to the logging context of the current task.

    Example:
        ```python
        set_log_context(job="retry", cycle_id="c-123")
        logger.info("Retry cycle started")  # Includes job and cycle_id
        ```
    """
    current = _log_context.get().copy()
    current.update(kwargs)
    _log_context.set(current)


def get_log_context() -> dict[str, Any]:
    """Return a copy of the current logging context."""
    return _log_context.get().copy()


def clear_log_context() -> None:
    """Clear all logging context for the current task."""
    _log_context.set({})


@contextmanager
def log_context(**kwargs: Any) -> Iterator[None]:
    """Temporarily bind fields to the logging context.

    The previous context is restored on exit, even if the body raises.

    Example:
        ```python
        with log_context(notification_id=str(notification.id)):
            await dispatcher.dispatch(session, notification)
        ```
    """
    current = _log_context.get().copy()
    current.update(kwargs)
    token = _log_context.set(current)
    try:
        yield
    finally:
        _log_context.reset(token)


class ContextInjectingFilter(logging.Filter):
    """Logging filter that copies the contextvar context onto each LogRecord.

    Attached to the root QueueHandler by configure_logging(), so records
    from every logger pass through it. Existing record attributes are
    never overwritten.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        """Inject context into log record.

        Returns:
            True (always allow the record to be logged).
        """
        for key, value in _log_context.get().items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


class ContextBoundLogger(logging.LoggerAdapter):
    """Logger adapter with permanently bound fields.

    Example:
        ```python
        logger = ContextBoundLogger(logging.getLogger(__name__), provider="sendgrid")
        logger.info("Provider initialized")  # Always includes provider
        ```
    """

    def __init__(self, logger: logging.Logger, **context: Any) -> None:
        """Initialize bound logger with context."""
        super().__init__(logger, context)

    def bind(self, **context: Any) -> ContextBoundLogger:
        """Create new logger with additional bound context."""
        return ContextBoundLogger(self.logger, **{**self.extra, **context})

    def process(self, msg: str, kwargs: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        """Merge bound context with any extra fields passed to the log call."""
        extra = kwargs.get("extra", {})
        kwargs["extra"] = {**self.extra, **extra}
        return msg, kwargs


def get_logger(name: str, **context: Any) -> ContextBoundLogger:
    """Get logger with bound context.

    Example:
        ```python
        logger = get_logger(__name__, component="dispatcher")
        logger.info("Channel delivered", extra={"channel": "email"})
        ```
    """
    return ContextBoundLogger(logging.getLogger(name), **context)
