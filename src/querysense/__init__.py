"""QuerySense - Intelligent query engine for time-series databases.

QuerySense takes a raw query and its runtime context and produces an
optimized query, a predicted execution plan, a routing decision and ranked
recommendations, learning continuously from observed executions.

Modules:
    core: Exceptions, component base classes, protocols and bounded collections
    config: Configuration models
    logging: Structured logging framework
    analyzer: Heuristic query analysis
    predictor: Performance prediction
    ml: Learned optimization models
    optimizer: Rule, ML and time-series rewriting and execution planning
    router: Health-aware query routing
    history: Optimization history ledger
    cache: In-memory result cache
    engine: Pipeline orchestrator

Example:
    >>> from querysense import EngineConfig, IntelligentQueryEngine, QueryOptimizationRequest
    >>> from querysense.logging import configure_logging
    >>>
    >>> configure_logging(level="INFO", format="json")
    >>> async with IntelligentQueryEngine(EngineConfig(), probe=probe, store=store) as engine:
    ...     result = await engine.optimize_query(QueryOptimizationRequest(
    ...         query="SELECT mean(value) FROM cpu WHERE time > now() - 1h GROUP BY host",
    ...         connection_id="primary",
    ...         database="metrics",
    ...     ))
"""

__version__ = "1.0.0"
__title__ = "QuerySense"
__description__ = "Intelligent query engine for time-series databases"
__license__ = "MIT"

from . import core, config, logging
from .config.models import EngineConfig
from .engine import IntelligentQueryEngine
from .models import (
    QueryContext,
    QueryExecutionResult,
    QueryOptimizationRequest,
    QueryOptimizationResult,
)

__all__ = [
    "core",
    "config",
    "logging",
    "EngineConfig",
    "IntelligentQueryEngine",
    "QueryContext",
    "QueryExecutionResult",
    "QueryOptimizationRequest",
    "QueryOptimizationResult",
    "__version__",
    "__title__",
    "__description__",
    "__license__",
]
