"""Tests for structured logging module."""

import asyncio
import uuid
from unittest.mock import Mock

import pytest
from structlog.testing import capture_logs

from querysense.core.exceptions import ValidationError
from querysense.logging.structured import (
    CORRELATION_KEY,
    StructuredLogger,
    current_correlation_id,
    new_correlation_id,
)


class TestCorrelationIds:
    """Test correlation ids held in the scoped context."""

    def test_no_correlation_id_by_default(self):
        assert current_correlation_id() is None

    def test_new_correlation_id_is_bound(self):
        correlation_id = new_correlation_id()

        uuid.UUID(correlation_id)  # Raises if not a valid UUID
        assert current_correlation_id() == correlation_id

    @pytest.mark.asyncio
    async def test_tasks_do_not_share_correlation_ids(self):
        async def handle_request():
            correlation_id = new_correlation_id()
            await asyncio.sleep(0)
            return correlation_id, current_correlation_id()

        results = await asyncio.gather(handle_request(), handle_request())

        assert all(bound == created for created, bound in results)
        assert results[0][0] != results[1][0]
        assert current_correlation_id() is None


class TestStructuredLogger:
    """Test cases for StructuredLogger class."""

    def test_logger_initialization(self):
        """Test StructuredLogger initializes correctly."""
        logger = StructuredLogger("test.logger")

        assert logger.name == "test.logger"
        assert logger.get_level() == "INFO"
        assert logger._enable_correlation is True
        assert logger.get_context() == {}

    def test_set_and_get_level(self):
        """Test setting and getting log levels."""
        logger = StructuredLogger("test.levels", level="debug")
        assert logger.get_level() == "DEBUG"

        logger.set_level("ERROR")
        assert logger.get_level() == "ERROR"

    @pytest.mark.parametrize("level", ["INVALID_LEVEL", "", None])
    def test_invalid_log_level_raises_exception(self, level):
        logger = StructuredLogger("test.logger")

        with pytest.raises(ValidationError) as exc_info:
            logger.set_level(level)

        assert exc_info.value.code == "INVALID_LOG_LEVEL"

    def test_events_carry_logger_name_and_fields(self):
        with capture_logs() as logs:
            logger = StructuredLogger("test.events")
            logger.info("Routing decided", connection_id="replica-1")

        assert logs == [{
            "event": "Routing decided",
            "log_level": "info",
            "logger": "test.events",
            CORRELATION_KEY: "unknown",
            "connection_id": "replica-1",
        }]

    def test_logging_methods_map_to_levels(self):
        with capture_logs() as logs:
            logger = StructuredLogger("test.levels", level="DEBUG")
            logger.debug("Debug message")
            logger.info("Info message")
            logger.warning("Warning message")
            logger.error("Error message")
            logger.critical("Critical message")

        assert [log["log_level"] for log in logs] == ["debug", "info", "warning", "error", "critical"]

    def test_bound_correlation_id_is_attached(self):
        correlation_id = new_correlation_id()

        with capture_logs() as logs:
            StructuredLogger("test.logger").info("Cache hit")

        assert logs[0][CORRELATION_KEY] == correlation_id

    def test_correlation_disabled(self):
        new_correlation_id()

        with capture_logs() as logs:
            StructuredLogger("test.logger", enable_correlation=False).info("Cache hit")

        assert CORRELATION_KEY not in logs[0]

    def test_context_manager(self):
        """Test logger context manager functionality."""
        logger = StructuredLogger("test.logger")

        with capture_logs() as logs:
            with logger.context(entry_id="opt_1", operation="update"):
                assert logger.get_context() == {"entry_id": "opt_1", "operation": "update"}
                logger.info("Performance recorded")
            logger.info("Done")

        assert logs[0]["entry_id"] == "opt_1"
        assert "entry_id" not in logs[1]
        assert logger.get_context() == {}

    def test_bind_creates_new_logger_with_context(self):
        """Test that bind creates new logger with bound context."""
        logger = StructuredLogger("test.logger", level="WARNING")

        router_logger = logger.bind(component="router")
        endpoint_logger = router_logger.bind(connection_id="replica-2")

        assert logger.get_context() == {}
        assert endpoint_logger.get_context() == {"component": "router", "connection_id": "replica-2"}
        assert endpoint_logger is not logger
        assert endpoint_logger.name == logger.name
        assert endpoint_logger.get_level() == "WARNING"

    def test_event_fields_override_bound_fields(self):
        with capture_logs() as logs:
            logger = StructuredLogger("test.logger").bind(component="router")
            logger.info("Override", component="cache")

        assert logs[0]["component"] == "cache"

    def test_operation_logging_success(self):
        """Test operation logging for successful operations."""
        logger = StructuredLogger("test.logger")
        logger._logger = Mock()

        operation_context = logger.log_operation_start("optimize", connection_id="primary")
        logger.log_operation_success(operation_context, techniques=3)

        assert operation_context["operation"] == "optimize"
        assert operation_context["connection_id"] == "primary"
        uuid.UUID(operation_context["operation_id"])
        logger._logger.debug.assert_called_once()

        kwargs = logger._logger.info.call_args.kwargs
        assert logger._logger.info.call_args.args == ("Operation completed successfully",)
        assert kwargs["techniques"] == 3
        assert kwargs["duration_ms"] >= 0

    def test_operation_logging_failure(self):
        """Test operation logging for failed operations."""
        logger = StructuredLogger("test.logger")
        logger._logger = Mock()

        operation_context = logger.log_operation_start("persist")
        logger.log_operation_failure(operation_context, ConnectionError("store unavailable"), key="history")

        kwargs = logger._logger.error.call_args.kwargs
        assert kwargs["error"] == "store unavailable"
        assert kwargs["error_type"] == "ConnectionError"
        assert kwargs["key"] == "history"
        assert kwargs["operation"] == "persist"

    def test_exception_logging(self):
        """Test exception logging with traceback."""
        with capture_logs() as logs:
            logger = StructuredLogger("test.logger")
            try:
                raise ValueError("Test exception")
            except ValueError:
                logger.exception("An error occurred", operation="test")

        assert logs[0]["log_level"] == "error"
        assert logs[0]["exc_info"] is True
        assert logs[0]["operation"] == "test"

    def test_logger_repr(self):
        """Test logger string representation."""
        logger = StructuredLogger("test.logger", level="DEBUG", enable_correlation=True)

        assert repr(logger) == "StructuredLogger(name='test.logger', level='DEBUG', correlation=True)"
