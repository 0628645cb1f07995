"""Protocol definitions for QuerySense collaborators.

The engine never executes queries, stores results or persists state on its
own. These protocols are the contracts the embedding application fulfils;
every async method is an awaited boundary that may be slow or fail, and the
engine bounds each call with a timeout.

Protocols:
    ExecutionBackend: Runs an optimized query and reports measured performance
    ResultCache: Stores optimization results by key
    HealthProbe: Reports live resource usage for an execution endpoint
    PersistenceStore: Loads and saves serialized engine state

Example:
    >>> class StaticProbe:
    ...     async def check_health(self, connection_id: str) -> HealthDetails:
    ...         return HealthDetails(cpu_usage=10.0, queue_length=100)
    >>> isinstance(StaticProbe(), HealthProbe)
    True
"""

from typing import TYPE_CHECKING, List, Optional, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ..analyzer.models import QueryAnalysis
    from ..models import (
        CacheOptions,
        HealthDetails,
        QueryExecutionResult,
        QueryOptimizationResult,
        Recommendation,
    )


@runtime_checkable
class ExecutionBackend(Protocol):
    """Protocol for the query execution backend.

    The backend runs queries against a connection and returns the measured
    execution result, which the engine feeds back through ``learn_from_query``.
    """

    async def execute(self, connection_id: str, query: str) -> "QueryExecutionResult":
        """Execute ``query`` on ``connection_id`` and measure it."""
        ...


@runtime_checkable
class ResultCache(Protocol):
    """Protocol for the optimization result cache."""

    async def get(self, key: str) -> Optional["QueryOptimizationResult"]:
        """Get a cached result, or None on a miss."""
        ...

    async def set(
        self,
        key: str,
        result: "QueryOptimizationResult",
        options: "CacheOptions",
    ) -> None:
        """Store a result with a TTL and tags."""
        ...

    async def clear(self, pattern: Optional[str] = None) -> None:
        """Remove every entry, or entries whose key matches ``pattern``."""
        ...

    async def update_strategy(self, query: str, result: "QueryExecutionResult") -> None:
        """Adapt caching behaviour from an observed execution."""
        ...

    def is_valid(self, result: "QueryOptimizationResult") -> bool:
        """Whether a cached result may still be served."""
        ...

    def generate_cache_key(self, query: str, connection_id: str, database: str) -> str:
        """Derive the cache key for a (query, connection, database) triple."""
        ...

    def calculate_ttl(self, analysis: "QueryAnalysis") -> int:
        """TTL in milliseconds for a result derived from ``analysis``."""
        ...

    def recommend_caching(self, query: str, analysis: "QueryAnalysis") -> List["Recommendation"]:
        """Caching recommendations for a query."""
        ...


@runtime_checkable
class HealthProbe(Protocol):
    """Protocol for endpoint health probes."""

    async def check_health(self, connection_id: str) -> "HealthDetails":
        """Return a resource usage snapshot for ``connection_id``."""
        ...


@runtime_checkable
class PersistenceStore(Protocol):
    """Protocol for persisting serialized engine state.

    Payloads are JSON strings; a missing key loads as None.
    """

    async def load(self, key: str) -> Optional[str]:
        """Load the payload stored under ``key``."""
        ...

    async def save(self, key: str, payload: str) -> None:
        """Persist ``payload`` under ``key``."""
        ...


__all__ = [
    "ExecutionBackend",
    "ResultCache",
    "HealthProbe",
    "PersistenceStore",
]
