"""Structured logging for QuerySense.

This module wraps structlog with correlation ids and scoped context. Context
lives in ``structlog.contextvars`` so it follows a request across ``await``
boundaries and concurrent tasks never see each other's fields.

Classes:
    StructuredLogger: Main structured logging interface

Example:
    >>> logger = StructuredLogger("querysense.engine")
    >>> with logger.context(connection_id="primary", database="metrics"):
    ...     logger.info("Optimization started", query_length=128)
"""

import logging
import time
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Generator, Optional

import structlog
from structlog.contextvars import bind_contextvars, bound_contextvars, get_contextvars

from ..core.exceptions import ValidationError

CORRELATION_KEY = "correlation_id"

_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


def current_correlation_id() -> Optional[str]:
    """Return the correlation id bound to the current context, if any."""
    return get_contextvars().get(CORRELATION_KEY)


def new_correlation_id() -> str:
    """Bind a fresh correlation id to the current context and return it."""
    correlation_id = str(uuid.uuid4())
    bind_contextvars(**{CORRELATION_KEY: correlation_id})
    return correlation_id


class StructuredLogger:
    """Structured logger with scoped context and correlation ids.

    Attributes:
        name: Logger name

    Example:
        >>> logger = StructuredLogger("querysense.router")
        >>> router_logger = logger.bind(component="router")
        >>> router_logger.warning("Endpoint unhealthy", connection_id="replica-2")
    """

    def __init__(
        self,
        name: str,
        *,
        level: str = "INFO",
        enable_correlation: bool = True,
        bound: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Initialize structured logger.

        Args:
            name: Logger name (typically module name)
            level: Initial log level
            enable_correlation: Whether to attach correlation ids
            bound: Fields attached to every event of this logger
        """
        self.name = name
        self._enable_correlation = enable_correlation
        self._bound: Dict[str, Any] = dict(bound or {})
        self._logger = structlog.get_logger(name)
        self._stdlib_logger = logging.getLogger(name)
        self.set_level(level)

    def _prepare_event_dict(self, **kwargs: Any) -> Dict[str, Any]:
        """Merge scoped context, bound fields and event data."""
        event_dict: Dict[str, Any] = {"logger": self.name}
        event_dict.update(get_contextvars())
        event_dict.update(self._bound)

        if self._enable_correlation:
            event_dict.setdefault(CORRELATION_KEY, "unknown")
        else:
            event_dict.pop(CORRELATION_KEY, None)

        event_dict.update(kwargs)
        return event_dict

    @contextmanager
    def context(self, **context_data: Any) -> Generator[None, None, None]:
        """Bind context data for the duration of the block.

        Example:
            >>> with logger.context(entry_id="opt_1", operation="update"):
            ...     logger.info("Performance recorded")
        """
        with bound_contextvars(**context_data):
            yield

    def bind(self, **context_data: Any) -> "StructuredLogger":
        """Return a new logger whose events always carry ``context_data``."""
        bound = dict(self._bound)
        bound.update(context_data)
        return StructuredLogger(
            self.name,
            level=self.get_level(),
            enable_correlation=self._enable_correlation,
            bound=bound,
        )

    def set_level(self, level: str) -> None:
        """Set logging level.

        Raises:
            ValidationError: If ``level`` is not a known level name
        """
        if not isinstance(level, str) or level.upper() not in _LEVELS:
            raise ValidationError(
                f"Invalid log level: {level}",
                code="INVALID_LOG_LEVEL",
            )
        self._stdlib_logger.setLevel(getattr(logging, level.upper()))

    def get_level(self) -> str:
        return logging.getLevelName(self._stdlib_logger.getEffectiveLevel())

    def debug(self, message: str, **kwargs: Any) -> None:
        self._logger.debug(message, **self._prepare_event_dict(**kwargs))

    def info(self, message: str, **kwargs: Any) -> None:
        self._logger.info(message, **self._prepare_event_dict(**kwargs))

    def warning(self, message: str, **kwargs: Any) -> None:
        self._logger.warning(message, **self._prepare_event_dict(**kwargs))

    def error(self, message: str, **kwargs: Any) -> None:
        self._logger.error(message, **self._prepare_event_dict(**kwargs))

    def critical(self, message: str, **kwargs: Any) -> None:
        self._logger.critical(message, **self._prepare_event_dict(**kwargs))

    def exception(self, message: str, exc_info: bool = True, **kwargs: Any) -> None:
        """Log an error together with the active exception's traceback."""
        self._logger.error(message, exc_info=exc_info, **self._prepare_event_dict(**kwargs))

    def log_operation_start(self, operation: str, **context: Any) -> Dict[str, Any]:
        """Log operation start and return the context for completion logging."""
        operation_context = {
            "operation_id": str(uuid.uuid4()),
            "operation": operation,
            "start_time": time.time(),
            **context,
        }
        self.debug("Operation started", **operation_context)
        return operation_context

    def log_operation_success(self, operation_context: Dict[str, Any], **results: Any) -> None:
        duration_ms = (time.time() - operation_context["start_time"]) * 1000
        self.info(
            "Operation completed successfully",
            duration_ms=duration_ms,
            **operation_context,
            **results,
        )

    def log_operation_failure(
        self,
        operation_context: Dict[str, Any],
        error: Exception,
        **error_context: Any,
    ) -> None:
        duration_ms = (time.time() - operation_context["start_time"]) * 1000
        self.error(
            "Operation failed",
            duration_ms=duration_ms,
            error=str(error),
            error_type=type(error).__name__,
            **operation_context,
            **error_context,
        )

    def get_context(self) -> Dict[str, Any]:
        """Return the scoped context merged with this logger's bound fields."""
        context = get_contextvars()
        context.update(self._bound)
        return context

    def __repr__(self) -> str:
        return (
            f"StructuredLogger("
            f"name={self.name!r}, "
            f"level={self.get_level()!r}, "
            f"correlation={self._enable_correlation})"
        )
