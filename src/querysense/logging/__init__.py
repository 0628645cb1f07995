"""QuerySense structured logging.

This package provides structured logging with correlation ids, stage timing
for the optimization pipeline and the stdlib/structlog wiring behind them.

Classes:
    StructuredLogger: Main structured logging interface
    PerformanceLogger: Performance monitoring and timing
    LoggerFactory: Logger creation and configuration

Example:
    >>> from querysense.logging import get_logger, PerformanceLogger
    >>> logger = get_logger(__name__)
    >>> logger.info("Routing decided", connection_id="replica-1")
    >>>
    >>> perf_logger = PerformanceLogger("engine")
    >>> with perf_logger.measure("analyze"):
    ...     analysis = analyzer.analyze(query)
"""

from .factory import (
    LoggerConfig,
    LoggerFactory,
    configure_logging,
    get_factory,
    get_logger,
    get_performance_logger,
    shutdown_logging,
)
from .formatters import get_formatter, get_renderer, shared_processors
from .performance import PerformanceLogger, PerformanceMetrics, TimingContext, TimingMetrics
from .structured import (
    CORRELATION_KEY,
    StructuredLogger,
    current_correlation_id,
    new_correlation_id,
)

__all__ = [
    # Factory and configuration
    "LoggerConfig",
    "LoggerFactory",
    "configure_logging",
    "get_factory",
    "get_logger",
    "get_performance_logger",
    "shutdown_logging",

    # Formatters
    "get_formatter",
    "get_renderer",
    "shared_processors",

    # Performance logging
    "PerformanceLogger",
    "PerformanceMetrics",
    "TimingContext",
    "TimingMetrics",

    # Structured logging
    "CORRELATION_KEY",
    "StructuredLogger",
    "current_correlation_id",
    "new_correlation_id",
]
