"""Log formatters for QuerySense.

Structured events and plain stdlib records are rendered by the same
``structlog.stdlib.ProcessorFormatter`` so that handlers emit one consistent
format (JSON lines or human-readable console text).

Example:
    >>> handler = logging.StreamHandler()
    >>> handler.setFormatter(get_formatter("json"))
"""

import logging
from typing import Any, List

import structlog
from structlog.types import Processor

FORMATS = ("json", "text")


def shared_processors() -> List[Processor]:
    """Processors applied to both structlog events and stdlib records."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def get_renderer(format_type: str) -> Processor:
    """Final rendering processor for ``format_type``.

    Raises:
        ValueError: If format_type is not supported
    """
    format_type = format_type.lower()
    if format_type == "json":
        return structlog.processors.JSONRenderer(default=str)
    if format_type == "text":
        return structlog.dev.ConsoleRenderer(colors=False)
    raise ValueError(f"Unsupported formatter type: {format_type}")


def get_formatter(format_type: str, **kwargs: Any) -> logging.Formatter:
    """Get a stdlib formatter rendering structured events as ``format_type``.

    Args:
        format_type: Formatter type ('json' or 'text')
        **kwargs: Additional ``ProcessorFormatter`` arguments

    Returns:
        Logging formatter instance
    """
    renderer = get_renderer(format_type)
    pre_render: List[Processor] = [structlog.stdlib.ProcessorFormatter.remove_processors_meta]
    if format_type.lower() == "json":
        pre_render.insert(0, structlog.processors.format_exc_info)
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors(),
        processors=[*pre_render, renderer],
        **kwargs,
    )
