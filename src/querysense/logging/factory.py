"""Logger factory and configuration for QuerySense.

This module provides centralized logger creation and configuration of the
stdlib handlers and the structlog processor chain.

Classes:
    LoggerFactory: Main logger factory and configuration manager
    LoggerConfig: Configuration for logger instances

Functions:
    get_logger: Convenience function for getting loggers
    get_performance_logger: Convenience function for performance loggers
    configure_logging: Configure logging system globally

Example:
    >>> from querysense.logging import get_logger, configure_logging
    >>> configure_logging(level="INFO", format="json")
    >>> logger = get_logger("querysense.engine")
    >>> logger.info("Engine started", version="1.0.0")
"""

import logging
import logging.handlers
import sys
from dataclasses import dataclass, fields
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, Optional

import structlog

from ..core.exceptions import ValidationError
from .formatters import FORMATS, get_formatter, shared_processors
from .performance import PerformanceLogger
from .structured import StructuredLogger

if TYPE_CHECKING:
    from ..config.models import LoggingConfig

_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class LoggerConfig:
    """Configuration for logger instances.

    Attributes:
        level: Log level
        format: Log format (json, text)
        console_output: Enable console output
        file_path: Log file path (file output is enabled when set)
        max_file_size: Maximum file size before rotation
        backup_count: Number of backup files to keep
        correlation_ids: Enable correlation ID tracking
    """
    level: str = "INFO"
    format: str = "json"
    console_output: bool = True
    file_path: Optional[str] = None
    max_file_size: int = 10485760  # 10MB
    backup_count: int = 5
    correlation_ids: bool = True

    def validate(self) -> None:
        """Raise ValidationError for unknown levels or formats."""
        if self.level.upper() not in _LEVELS:
            raise ValidationError(f"Invalid log level: {self.level}")
        if self.format.lower() not in FORMATS:
            raise ValidationError(f"Invalid log format: {self.format}")


class LoggerFactory:
    """Factory for creating and configuring QuerySense loggers.

    Attributes:
        config: Default logger configuration
        initialized: Whether the logging system has been configured

    Example:
        >>> factory = LoggerFactory()
        >>> factory.configure_from_config(LoggingConfig(level="DEBUG"))
        >>> logger = factory.get_logger("querysense.router")
    """

    def __init__(self, config: Optional[LoggerConfig] = None) -> None:
        self.config = config or LoggerConfig()
        self.initialized = False
        self._loggers: Dict[str, StructuredLogger] = {}
        self._performance_loggers: Dict[str, PerformanceLogger] = {}
        self._handlers: list = []

    def configure_from_config(self, logging_config: "LoggingConfig") -> None:
        """Configure factory from a LoggingConfig instance."""
        self.config = LoggerConfig(
            level=logging_config.level,
            format=logging_config.format,
            console_output=logging_config.console_output,
            file_path=str(logging_config.file_path) if logging_config.file_path else None,
            max_file_size=logging_config.max_file_size,
            backup_count=logging_config.backup_count,
            correlation_ids=logging_config.correlation_ids,
        )
        self._reconfigure()

    def configure_from_dict(self, config_dict: Dict[str, Any]) -> None:
        """Configure factory from a dictionary; unknown keys are ignored."""
        valid_keys = {f.name for f in fields(LoggerConfig)}
        for key, value in config_dict.items():
            if key in valid_keys:
                setattr(self.config, key, value)
        self._reconfigure()

    def _reconfigure(self) -> None:
        self.config.validate()
        self.initialized = False
        self._loggers.clear()
        self._performance_loggers.clear()
        self._configure_logging_system()

    def _configure_logging_system(self) -> None:
        if self.initialized:
            return
        self._configure_stdlib_logging()
        self._configure_structlog()
        self.initialized = True

    def _configure_stdlib_logging(self) -> None:
        """Install console and rotating file handlers on the root logger."""
        root_logger = logging.getLogger()
        level = getattr(logging, self.config.level.upper(), logging.INFO)
        root_logger.setLevel(level)

        for handler in self._handlers:
            root_logger.removeHandler(handler)
            handler.close()
        self._handlers = []

        if self.config.console_output:
            console_handler = logging.StreamHandler(sys.stderr)
            self._handlers.append(console_handler)

        if self.config.file_path:
            file_path = Path(self.config.file_path)
            file_path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                filename=str(file_path),
                maxBytes=self.config.max_file_size,
                backupCount=self.config.backup_count,
            )
            self._handlers.append(file_handler)

        for handler in self._handlers:
            handler.setLevel(level)
            handler.setFormatter(get_formatter(self.config.format))
            root_logger.addHandler(handler)

    def _configure_structlog(self) -> None:
        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                *shared_processors(),
                structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
            ],
            wrapper_class=structlog.stdlib.BoundLogger,
            logger_factory=structlog.stdlib.LoggerFactory(),
            context_class=dict,
            cache_logger_on_first_use=True,
        )

    def get_logger(
        self,
        name: str,
        *,
        level: Optional[str] = None,
        enable_correlation: Optional[bool] = None,
    ) -> StructuredLogger:
        """Get or create a structured logger.

        Args:
            name: Logger name (typically module name)
            level: Override default log level
            enable_correlation: Override correlation ID setting
        """
        cache_key = f"{name}_{level}_{enable_correlation}"
        logger = self._loggers.get(cache_key)
        if logger is None:
            logger = StructuredLogger(
                name=name,
                level=level or self.config.level,
                enable_correlation=(
                    enable_correlation
                    if enable_correlation is not None
                    else self.config.correlation_ids
                ),
            )
            self._loggers[cache_key] = logger
        return logger

    def get_performance_logger(
        self,
        name: str,
        *,
        auto_log: Optional[bool] = None,
        track_metrics: bool = True,
    ) -> PerformanceLogger:
        """Get or create a performance logger."""
        cache_key = f"{name}_{auto_log}_{track_metrics}"
        perf_logger = self._performance_loggers.get(cache_key)
        if perf_logger is None:
            perf_logger = PerformanceLogger(
                name=name,
                auto_log=auto_log if auto_log is not None else True,
                track_metrics=track_metrics,
                logger=self.get_logger(f"perf.{name}"),
            )
            self._performance_loggers[cache_key] = perf_logger
        return perf_logger

    def set_level(self, level: str) -> None:
        """Set the level of every cached logger and the root logger."""
        if level.upper() not in _LEVELS:
            raise ValidationError(f"Invalid log level: {level}")
        self.config.level = level
        for logger in self._loggers.values():
            logger.set_level(level)
        logging.getLogger().setLevel(getattr(logging, level.upper()))
        for handler in self._handlers:
            handler.setLevel(getattr(logging, level.upper()))

    def get_logger_info(self) -> Dict[str, Any]:
        return {
            "config": {
                "level": self.config.level,
                "format": self.config.format,
                "console_output": self.config.console_output,
                "file_path": self.config.file_path,
            },
            "initialized": self.initialized,
            "loggers": {
                "structured": list(self._loggers.keys()),
                "performance": list(self._performance_loggers.keys()),
            },
            "handlers": [type(handler).__name__ for handler in self._handlers],
        }

    def shutdown(self) -> None:
        """Detach and close installed handlers and clear logger caches."""
        root_logger = logging.getLogger()
        for handler in self._handlers:
            root_logger.removeHandler(handler)
            handler.close()
        self._handlers = []
        self._loggers.clear()
        self._performance_loggers.clear()
        self.initialized = False

    def __repr__(self) -> str:
        return (
            f"LoggerFactory("
            f"level={self.config.level!r}, "
            f"format={self.config.format!r}, "
            f"initialized={self.initialized})"
        )


# Global logger factory instance
_global_factory = LoggerFactory()


def configure_logging(
    *,
    level: str = "INFO",
    format: str = "json",
    console_output: bool = True,
    file_path: Optional[str] = None,
    **kwargs: Any,
) -> None:
    """Configure QuerySense logging globally.

    Example:
        >>> configure_logging(level="DEBUG", format="text", file_path="/var/log/qs.log")
    """
    _global_factory.configure_from_dict({
        "level": level,
        "format": format,
        "console_output": console_output,
        "file_path": file_path,
        **kwargs,
    })


def get_logger(
    name: str,
    *,
    level: Optional[str] = None,
    enable_correlation: Optional[bool] = None,
) -> StructuredLogger:
    """Get or create a structured logger using the global factory."""
    return _global_factory.get_logger(
        name=name,
        level=level,
        enable_correlation=enable_correlation,
    )


def get_performance_logger(
    name: str,
    *,
    auto_log: Optional[bool] = None,
    track_metrics: bool = True,
) -> PerformanceLogger:
    """Get or create a performance logger using the global factory."""
    return _global_factory.get_performance_logger(
        name=name,
        auto_log=auto_log,
        track_metrics=track_metrics,
    )


def get_factory() -> LoggerFactory:
    return _global_factory


def shutdown_logging() -> None:
    _global_factory.shutdown()
