"""Data model of the query analyzer."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Literal, Optional

from ..models import QueryExecutionResult, QueryKind

ComplexityLevel = Literal["simple", "medium", "complex", "very_complex"]

# Upper bounds (exclusive) of each complexity level, in ascending order
COMPLEXITY_THRESHOLDS = (
    (20.0, "simple"),
    (50.0, "medium"),
    (100.0, "complex"),
)


def complexity_level(score: float) -> ComplexityLevel:
    """Map a complexity score to its discrete level."""
    for upper_bound, level in COMPLEXITY_THRESHOLDS:
        if score < upper_bound:
            return level
    return "very_complex"


@dataclass(frozen=True)
class Condition:
    column: str
    operator: str
    value: Any
    type: Literal["WHERE", "HAVING"] = "WHERE"


@dataclass(frozen=True)
class Join:
    type: Literal["INNER", "LEFT", "RIGHT", "FULL", "CROSS"]
    left_table: str
    right_table: str
    condition: str = ""


@dataclass(frozen=True)
class Aggregation:
    function: str
    column: str
    alias: Optional[str] = None


@dataclass(frozen=True)
class OrderBy:
    column: str
    direction: Literal["ASC", "DESC"] = "ASC"


@dataclass(frozen=True)
class TimeWindow:
    """Time filter of a query, as literal bounds or a ``now() - d`` expression."""
    start: str
    end: str
    window: Optional[str] = None


@dataclass(frozen=True)
class QueryPattern:
    """Structured, heuristic view of a query's clauses."""
    type: QueryKind = "SELECT"
    tables: List[str] = field(default_factory=list)
    columns: List[str] = field(default_factory=list)
    conditions: List[Condition] = field(default_factory=list)
    joins: List[Join] = field(default_factory=list)
    aggregations: List[Aggregation] = field(default_factory=list)
    order_by: List[OrderBy] = field(default_factory=list)
    group_by: List[str] = field(default_factory=list)
    limit: Optional[int] = None
    offset: Optional[int] = None
    time_range: Optional[TimeWindow] = None


@dataclass
class ComplexityFactor:
    name: str
    weight: float
    description: str


@dataclass
class QueryComplexity:
    score: float
    level: ComplexityLevel
    factors: List[ComplexityFactor] = field(default_factory=list)


@dataclass
class ResourceUsage:
    """Estimated memory (MB), CPU, IO operations and network usage."""
    estimated_memory: float
    estimated_cpu: float
    estimated_io: float
    estimated_network: float


@dataclass
class QueryAnalysis:
    patterns: List[QueryPattern]
    complexity: QueryComplexity
    resource_usage: ResourceUsage
    warnings: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)

    @property
    def pattern(self) -> QueryPattern:
        """The primary pattern, or an empty one for unparseable input."""
        return self.patterns[0] if self.patterns else QueryPattern()


@dataclass
class QueryDependency:
    source_index: int
    dependent_index: int
    type: Literal["data", "schema", "temporal"] = "data"
    strength: Literal["weak", "medium", "strong"] = "medium"


@dataclass
class ExecutionRecord:
    """One recorded execution of a query."""
    query: str
    result: QueryExecutionResult
    timestamp: datetime
    connection_id: Optional[str] = None


@dataclass
class SlowQuery:
    query: str
    execution_time: float
    frequency: int
    last_executed: datetime


@dataclass
class FrequentQuery:
    query: str
    frequency: int
    avg_execution_time: float
    last_executed: datetime


@dataclass
class ResourceUtilization:
    avg_memory_usage: float = 0.0
    avg_cpu_usage: float = 0.0
    avg_io_usage: float = 0.0
    avg_network_usage: float = 0.0


@dataclass
class QueryStatistics:
    total_queries: int
    avg_execution_time: float
    slow_queries: List[SlowQuery]
    frequent_queries: List[FrequentQuery]
    error_rate: float
    cache_hit_rate: float
    optimization_success_rate: float
    resource_utilization: ResourceUtilization
