"""Logging-specific test configuration and fixtures."""

import logging

import pytest
import structlog
from structlog.contextvars import clear_contextvars

from querysense.config.models import LoggingConfig
from querysense.logging.factory import LoggerFactory


@pytest.fixture
def sample_logging_config(tmp_path):
    """Create sample logging configuration writing below ``tmp_path``."""
    return LoggingConfig(
        level="info",
        format="json",
        file_path=tmp_path / "logs" / "querysense.log",
        console_output=False,
        max_file_size=1048576,  # 1MB
        backup_count=3,
    )


@pytest.fixture
def logger_factory():
    """Create clean logger factory for testing."""
    factory = LoggerFactory()
    yield factory
    factory.shutdown()


@pytest.fixture(autouse=True)
def isolate_logging_state():
    """Restore structlog, root logger and scoped context after each test."""
    saved_config = structlog.get_config()
    root_logger = logging.getLogger()
    saved_level = root_logger.level
    clear_contextvars()

    yield

    from querysense.logging.factory import LoggerConfig, _global_factory
    _global_factory.shutdown()
    _global_factory.config = LoggerConfig()

    clear_contextvars()
    root_logger.setLevel(saved_level)
    structlog.configure(**saved_config)
