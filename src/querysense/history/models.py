"""Data model of the optimization history ledger."""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, Literal, Optional

from ..models import QueryContext, QueryOptimizationResult

ENGINE_VERSION = "1.0.0"

ExportFormat = Literal["json", "csv"]


@dataclass
class ExecutionPerformance:
    """Observed performance of an optimized query; times in ms, gain in %."""
    original_execution_time: float = 0.0
    optimized_execution_time: float = 0.0
    performance_gain: float = 0.0
    memory_usage: float = 0.0
    cpu_usage: float = 0.0
    io_operations: int = 0
    network_traffic: int = 0
    rows_affected: int = 0
    success: bool = False
    error: Optional[str] = None


@dataclass
class HistoryFeedback:
    """User verdict on one recorded optimization; ``rating`` is 1-5."""
    rating: int
    helpful: bool
    comments: Optional[str] = None
    reported_issues: List[str] = field(default_factory=list)
    suggested_improvements: List[str] = field(default_factory=list)
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class HistoryMetadata:
    query_type: str
    complexity: float
    optimization_techniques: List[str] = field(default_factory=list)
    estimated_benefit: float = 0.0
    actual_benefit: float = 0.0
    confidence_score: float = 0.0
    engine_version: str = ENGINE_VERSION
    model_version: Optional[str] = None


@dataclass
class OptimizationHistoryEntry:
    """One ledger record.

    ``optimization_result`` is None for entries imported from an export,
    which carries only the flattened fields.
    """
    id: str
    timestamp: datetime
    connection_id: str
    database: str
    original_query: str
    optimized_query: str
    metadata: HistoryMetadata
    optimization_result: Optional[QueryOptimizationResult] = None
    context: QueryContext = field(default_factory=QueryContext)
    performance: ExecutionPerformance = field(default_factory=ExecutionPerformance)
    performance_recorded: bool = False
    user_feedback: Optional[HistoryFeedback] = None
    tags: List[str] = field(default_factory=list)


@dataclass
class HistoryFilter:
    """Entry filter; unset fields match everything and set fields are ANDed.

    ``tags`` matches entries carrying any of the given tags.
    """
    connection_id: Optional[str] = None
    database: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    query_type: Optional[str] = None
    min_performance_gain: Optional[float] = None
    max_performance_gain: Optional[float] = None
    success_only: bool = False
    with_feedback: bool = False
    tags: List[str] = field(default_factory=list)
    search: Optional[str] = None


@dataclass
class TechniqueStats:
    technique: str
    count: int
    average_gain: float
    success_rate: float
    user_rating: float


@dataclass
class PerformanceDistribution:
    """Entry counts per realized gain bucket."""
    excellent: int = 0  # > 50%
    good: int = 0  # 20-50%
    moderate: int = 0  # 5-20%
    minimal: int = 0  # 0-5%
    negative: int = 0


@dataclass
class SatisfactionStats:
    average_rating: float = 0.0
    total_ratings: int = 0
    rating_distribution: Dict[int, int] = field(default_factory=dict)
    helpful_percentage: float = 0.0
    common_issues: List[str] = field(default_factory=list)


@dataclass
class HistoryTrend:
    date: date
    optimization_count: int
    average_gain: float
    success_rate: float
    user_satisfaction: float


@dataclass
class HistoryStatistics:
    total_optimizations: int = 0
    successful_optimizations: int = 0
    average_performance_gain: float = 0.0
    top_optimization_techniques: List[TechniqueStats] = field(default_factory=list)
    query_type_distribution: Dict[str, int] = field(default_factory=dict)
    performance_distribution: PerformanceDistribution = field(default_factory=PerformanceDistribution)
    user_satisfaction: SatisfactionStats = field(default_factory=SatisfactionStats)
    trends: List[HistoryTrend] = field(default_factory=list)


@dataclass
class ExportOptions:
    format: ExportFormat = "json"
    include_context: bool = False
    include_performance: bool = True
    include_feedback: bool = True
    filter: Optional[HistoryFilter] = None
