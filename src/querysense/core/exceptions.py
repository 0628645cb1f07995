"""QuerySense exception hierarchy.

This module defines the exception hierarchy used across the query engine.
Every exception carries an error code, a context dictionary and an optional
cause so that component boundaries can log and degrade consistently.

Classes:
    QuerySenseException: Base exception for all QuerySense operations
    ConfigurationError: Configuration related errors
    ValidationError: Input and configuration validation errors
    AnalysisError: Query analysis errors
    PredictionError: Performance prediction errors
    ModelError: ML model invocation and training errors
    OptimizationError: Query optimization errors
    RoutingError: Query routing errors
    HistoryError: Optimization history errors
    CollaboratorError: External collaborator (cache, probe, store) failures

Example:
    >>> try:
    ...     await store.load("history")
    ... except CollaboratorError as e:
    ...     logger.warning("Store unavailable", error_code=e.code, context=e.context)
"""

from typing import Any, Dict, Optional


class QuerySenseException(Exception):
    """Base exception for all QuerySense operations.

    Attributes:
        code: Unique error code for categorization
        context: Additional context information about the error
        cause: Original exception that caused this error (if any)

    Example:
        >>> raise QuerySenseException(
        ...     "Routing failed",
        ...     code="ROUTING_FAILED",
        ...     context={"connection_id": "primary"}
        ... )
    """

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        """Initialize QuerySense exception.

        Args:
            message: Human-readable error description
            code: Unique error code for categorization (defaults to class name)
            context: Additional context information
            cause: Original exception that caused this error
        """
        super().__init__(message)
        self.code: str = code or self.__class__.__name__
        self.context: Dict[str, Any] = context or {}
        self.cause: Optional[Exception] = cause

    @property
    def message(self) -> str:
        """Return the bare message without the error code."""
        return super().__str__()

    def __str__(self) -> str:
        """Return formatted error message with code."""
        return f"{self.code}: {self.message}"

    def __repr__(self) -> str:
        """Return detailed representation of the exception."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"code={self.code!r}, "
            f"context={self.context!r}, "
            f"cause={self.cause!r})"
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for serialization.

        Returns:
            Dictionary representation of the exception
        """
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "code": self.code,
            "context": self.context,
            "cause": str(self.cause) if self.cause else None,
        }


class ConfigurationError(QuerySenseException):
    """Configuration related errors.

    Raised when an engine or component configuration is invalid or
    cannot be applied.
    """
    pass


class ValidationError(ConfigurationError):
    """Data validation errors.

    Raised when configuration values or caller-supplied arguments fail
    validation rules.
    """
    pass


class AnalysisError(QuerySenseException):
    """Query analysis errors."""
    pass


class PredictionError(QuerySenseException):
    """Performance prediction errors.

    Raised inside the predictor and converted to a conservative fallback
    prediction at the component boundary.
    """
    pass


class ModelError(QuerySenseException):
    """ML model invocation or training errors."""
    pass


class OptimizationError(QuerySenseException):
    """Query optimization errors."""
    pass


class RoutingError(QuerySenseException):
    """Query routing errors.

    Never escapes ``QueryRouter.determine_routing``; routing always falls
    back to the caller-supplied default connection.
    """
    pass


class HistoryError(QuerySenseException):
    """Optimization history errors."""
    pass


class ImportFormatError(HistoryError):
    """Unsupported or unreadable history import/export payload."""
    pass


class CollaboratorError(QuerySenseException):
    """External collaborator failures.

    Base class for failures of the result cache, health probe, persistence
    store or execution backend.
    """
    pass


class CollaboratorTimeoutError(CollaboratorError):
    """A collaborator call exceeded its time budget."""
    pass


class PersistenceError(CollaboratorError):
    """Persistence store load or save failures."""
    pass


class HealthProbeError(CollaboratorError):
    """Health probe failures."""
    pass


class ErrorCodes:
    """Standard error codes for QuerySense exceptions."""

    # Configuration errors
    CONFIG_INVALID = "CONFIG_INVALID"
    CONFIG_VALIDATION_FAILED = "CONFIG_VALIDATION_FAILED"
    INIT_FAILED = "INIT_FAILED"

    # Analysis and prediction errors
    QUERY_ANALYSIS_FAILED = "QUERY_ANALYSIS_FAILED"
    PREDICTION_FAILED = "PREDICTION_FAILED"
    FEATURE_EXTRACTION_FAILED = "FEATURE_EXTRACTION_FAILED"

    # Model errors
    MODEL_NOT_FOUND = "MODEL_NOT_FOUND"
    MODEL_UNSUPPORTED_TYPE = "MODEL_UNSUPPORTED_TYPE"
    MODEL_INVOCATION_FAILED = "MODEL_INVOCATION_FAILED"
    ENSEMBLE_EMPTY = "ENSEMBLE_EMPTY"

    # Optimization and routing errors
    OPTIMIZATION_FAILED = "OPTIMIZATION_FAILED"
    ROUTING_FAILED = "ROUTING_FAILED"
    ROUTING_RULE_EXISTS = "ROUTING_RULE_EXISTS"

    # History errors
    HISTORY_ENTRY_NOT_FOUND = "HISTORY_ENTRY_NOT_FOUND"
    UNSUPPORTED_FORMAT = "UNSUPPORTED_FORMAT"
    MALFORMED_PAYLOAD = "MALFORMED_PAYLOAD"

    # Collaborator errors
    COLLABORATOR_TIMEOUT = "COLLABORATOR_TIMEOUT"
    COLLABORATOR_FAILED = "COLLABORATOR_FAILED"
    PERSISTENCE_LOAD_FAILED = "PERSISTENCE_LOAD_FAILED"
    PERSISTENCE_SAVE_FAILED = "PERSISTENCE_SAVE_FAILED"
    HEALTH_PROBE_FAILED = "HEALTH_PROBE_FAILED"
    MAX_RETRIES_EXCEEDED = "MAX_RETRIES_EXCEEDED"


def create_error_from_exception(
    exc: Exception,
    message: Optional[str] = None,
    code: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None,
) -> QuerySenseException:
    """Create QuerySense exception from generic exception.

    Args:
        exc: Original exception to convert
        message: Override message (uses original if not provided)
        code: Error code to assign
        context: Additional context information

    Returns:
        Appropriate QuerySense exception type

    Example:
        >>> try:
        ...     await probe.check_health("replica-1")
        ... except OSError as e:
        ...     raise create_error_from_exception(
        ...         e,
        ...         code=ErrorCodes.HEALTH_PROBE_FAILED,
        ...         context={"connection_id": "replica-1"}
        ...     )
    """
    if isinstance(exc, QuerySenseException):
        return exc

    exception_mapping = {
        TimeoutError: CollaboratorTimeoutError,
        ConnectionError: CollaboratorError,
        OSError: CollaboratorError,
        ValueError: ValidationError,
        TypeError: ValidationError,
        KeyError: ValidationError,
    }

    exception_class = QuerySenseException
    for source_type, target_type in exception_mapping.items():
        if isinstance(exc, source_type):
            exception_class = target_type
            break

    return exception_class(
        message or str(exc),
        code=code,
        context=context or {},
        cause=exc,
    )
