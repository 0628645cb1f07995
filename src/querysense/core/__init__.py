"""QuerySense core infrastructure.

This package provides the foundations shared by every engine component:
the exception hierarchy, component base classes, collaborator protocols,
bounded collections and small utilities.

Modules:
    base: Component base classes
    buffers: Bounded FIFO and LRU collections
    exceptions: Exception hierarchy
    protocols: Collaborator protocols
    utils: Utility functions

Example:
    >>> from querysense.core import BoundedBuffer, QuerySenseException
    >>> from querysense.core.utils import measure_time
"""

from .base import AsyncComponent, BaseComponent
from .buffers import BoundedBuffer, LRUCache
from .exceptions import (
    AnalysisError,
    CollaboratorError,
    CollaboratorTimeoutError,
    ConfigurationError,
    ErrorCodes,
    HealthProbeError,
    HistoryError,
    ImportFormatError,
    ModelError,
    OptimizationError,
    PersistenceError,
    PredictionError,
    QuerySenseException,
    RoutingError,
    ValidationError,
    create_error_from_exception,
)
from .protocols import (
    ExecutionBackend,
    HealthProbe,
    PersistenceStore,
    ResultCache,
)
from .utils import (
    QueryText,
    call_with_timeout,
    clamp,
    generate_id,
    measure_time,
    retry_with_backoff,
)

__all__ = [
    # Base classes
    "AsyncComponent",
    "BaseComponent",

    # Collections
    "BoundedBuffer",
    "LRUCache",

    # Exceptions
    "AnalysisError",
    "CollaboratorError",
    "CollaboratorTimeoutError",
    "ConfigurationError",
    "ErrorCodes",
    "HealthProbeError",
    "HistoryError",
    "ImportFormatError",
    "ModelError",
    "OptimizationError",
    "PersistenceError",
    "PredictionError",
    "QuerySenseException",
    "RoutingError",
    "ValidationError",
    "create_error_from_exception",

    # Protocols
    "ExecutionBackend",
    "HealthProbe",
    "PersistenceStore",
    "ResultCache",

    # Utilities
    "QueryText",
    "call_with_timeout",
    "clamp",
    "generate_id",
    "measure_time",
    "retry_with_backoff",
]
