"""Shared data model for the QuerySense engine.

These records cross component boundaries: the request context, the
techniques and recommendations every stage produces, the execution plan,
the routing decision and the final optimization result. They are plain
dataclasses; ``pydantic.TypeAdapter`` (de)serializes them at the cache and
persistence boundaries.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Literal, Optional

QueryKind = Literal["SELECT", "INSERT", "UPDATE", "DELETE", "CREATE", "DROP", "SHOW"]
ImpactLevel = Literal["high", "medium", "low"]
RecommendationType = Literal[
    "index", "query_rewrite", "caching", "partitioning", "configuration"
]
StepOperation = Literal["TABLE_SCAN", "FILTER", "JOIN", "AGGREGATE", "SORT", "LIMIT"]

_IMPACT_RANK = {"high": 3, "medium": 2, "low": 1}


def impact_rank(impact: str) -> int:
    """Numeric rank of an impact or priority tier (high=3, medium=2, low=1)."""
    return _IMPACT_RANK.get(impact, 0)


@dataclass
class UserPreferences:
    """Caller preferences that steer caching and routing."""
    preferred_performance: Literal["speed", "accuracy", "balanced"] = "balanced"
    max_query_time: float = 30000.0  # ms
    cache_preference: Literal["aggressive", "conservative", "disabled"] = "conservative"


@dataclass
class SystemLoad:
    """Live load snapshot; usages are percentages, latency is in ms."""
    cpu_usage: float = 50.0
    memory_usage: float = 30.0
    disk_io: float = 30.0
    network_latency: float = 50.0


@dataclass
class DataSize:
    """Size estimate of the data a query touches."""
    total_rows: int = 0
    total_size: int = 0  # bytes
    average_row_size: float = 0.0
    compression_ratio: float = 1.0


@dataclass
class IndexInfo:
    """Existing index metadata."""
    name: str
    columns: List[str]
    type: Literal["btree", "hash", "gin", "gist"] = "btree"
    size: int = 0
    usage: float = 0.0
    last_used: Optional[datetime] = None


@dataclass
class QueryContext:
    """Runtime context supplied with a request.

    Every field has an explicit default, so ``QueryContext()`` describes a
    moderately loaded system with no size estimate, history or index data.
    """
    historical_queries: List[str] = field(default_factory=list)
    user_preferences: UserPreferences = field(default_factory=UserPreferences)
    system_load: SystemLoad = field(default_factory=SystemLoad)
    data_size: DataSize = field(default_factory=DataSize)
    index_info: List[IndexInfo] = field(default_factory=list)


@dataclass
class QueryExecutionResult:
    """Measured performance of one executed query."""
    execution_time: float  # ms
    rows_affected: int = 0
    memory_used: float = 0.0  # bytes
    disk_reads: int = 0
    disk_writes: int = 0
    network_bytes: int = 0
    success: bool = True
    error: Optional[str] = None


@dataclass
class HealthDetails:
    """Resource snapshot reported by a health probe."""
    cpu_usage: float = 0.0
    memory_usage: float = 0.0
    disk_usage: float = 0.0
    network_latency: float = 0.0
    active_connections: int = 0
    queue_length: int = 100
    last_error: Optional[str] = None


@dataclass
class OptimizationTechnique:
    """A named, impact-tiered transformation with an estimated gain (%)."""
    name: str
    description: str
    impact: ImpactLevel
    applied_to: List[str] = field(default_factory=list)
    estimated_gain: float = 0.0


@dataclass
class Recommendation:
    """Advisory output of the optimizer, cache and predictor."""
    type: RecommendationType
    priority: ImpactLevel
    title: str
    description: str
    implementation: str
    estimated_benefit: float


@dataclass
class OptimizedQuery:
    """Output of the query optimizer."""
    query: str
    techniques: List[OptimizationTechnique]
    confidence: float
    estimated_improvement: float


@dataclass
class ExecutionStep:
    """One node of the execution-step DAG."""
    id: str
    operation: StepOperation
    description: str
    estimated_cost: float
    dependencies: List[str] = field(default_factory=list)
    can_parallelize: bool = False


@dataclass
class ParallelizationInfo:
    max_degree_of_parallelism: int
    parallel_steps: List[List[str]]
    bottlenecks: List[str]


@dataclass
class ResourceRequirements:
    """Memory bounds (MB) and the resource classes a plan stresses."""
    min_memory: float
    max_memory: float
    cpu_intensive: bool = False
    io_intensive: bool = False
    network_intensive: bool = False


@dataclass
class ExecutionPlan:
    steps: List[ExecutionStep]
    parallelization: ParallelizationInfo
    resource_requirements: ResourceRequirements
    estimated_duration: float


@dataclass
class RoutingStrategy:
    """Routing decision for one query."""
    target_connection: str
    load_balancing: Literal["round_robin", "least_connections", "weighted", "hash", "adaptive"]
    priority: int
    reason: str


@dataclass
class QueryOptimizationRequest:
    query: str
    connection_id: str
    database: str
    user_id: Optional[str] = None
    context: Optional[QueryContext] = None


@dataclass
class QueryOptimizationResult:
    """Complete output of one ``optimize_query`` call."""
    original_query: str
    optimized_query: str
    optimization_techniques: List[OptimizationTechnique]
    estimated_performance_gain: float
    routing_strategy: RoutingStrategy
    execution_plan: ExecutionPlan
    warnings: List[str] = field(default_factory=list)
    recommendations: List[Recommendation] = field(default_factory=list)
    cache_key: Optional[str] = None
    history_entry_id: Optional[str] = None


@dataclass
class CacheOptions:
    """Options for a cache write; ``ttl`` is in milliseconds."""
    ttl: int
    tags: List[str] = field(default_factory=list)


@dataclass
class TimeRange:
    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end
