"""Simple import test to verify logging module can be imported."""

import pytest


def test_import_logging_module():
    """Test that logging module can be imported without errors."""
    try:
        from querysense.logging import (
            PerformanceLogger,
            StructuredLogger,
            configure_logging,
            get_logger,
        )
    except ImportError as e:
        pytest.fail(f"Failed to import logging module: {e}")

    assert callable(get_logger)
    assert callable(configure_logging)
    assert StructuredLogger is not None
    assert PerformanceLogger is not None


def test_create_simple_logger():
    """Test creating a simple logger."""
    from querysense.logging import get_logger

    logger = get_logger("test.simple")

    assert logger.name == "test.simple"
    assert logger is get_logger("test.simple")


def test_basic_logging():
    """Test basic logging functionality."""
    from querysense.logging import get_logger

    logger = get_logger("test.basic")

    # These should not raise any exceptions
    logger.info("Test info message")
    logger.debug("Test debug message")
    logger.warning("Test warning message")
    logger.error("Test error message")
