"""Feature extraction shared by the performance predictor and ML optimizer.

A ``FeatureVector`` is a fixed-shape numeric encoding of a query, its
analysis and the runtime context. Extraction is a pure function of those
inputs plus two injected sources: a clock for the time-of-day features and
a lookup of the query's recorded executions for the historical features.
"""

import re
import statistics
from dataclasses import astuple, dataclass, fields
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence

from .analyzer.models import ExecutionRecord, QueryAnalysis
from .core.utils import QueryText
from .models import QueryContext

_SUBQUERY = re.compile(r"\(\s*select\b", re.IGNORECASE)

_USER_PREFERENCE = {"speed": 1.0, "balanced": 0.5, "accuracy": 0.0}

PerformanceLookup = Callable[[str], Sequence[ExecutionRecord]]


@dataclass(frozen=True)
class FeatureVector:
    """Numeric features of one (query, analysis, context) triple.

    Context features are on the context's own scales: usages and
    availability in percent, latency in milliseconds.
    """
    # Structural
    query_length: float = 0.0
    table_count: float = 0.0
    column_count: float = 0.0
    join_count: float = 0.0
    aggregation_count: float = 0.0
    condition_count: float = 0.0
    subquery_count: float = 0.0

    # Semantic
    selectivity: float = 1.0
    complexity_score: float = 0.0
    data_volume_score: float = 0.0
    computational_complexity: float = 0.0

    # Context
    system_load: float = 50.0
    memory_available: float = 70.0
    disk_utilization: float = 30.0
    network_latency: float = 50.0
    time_of_day: float = 0.0
    day_of_week: float = 0.0

    # Historical
    query_frequency: float = 0.0
    avg_performance: float = 0.0
    last_optimization: float = 0.0
    user_preference: float = 0.5

    @classmethod
    def names(cls) -> List[str]:
        return [f.name for f in fields(cls)]

    def to_list(self) -> List[float]:
        return [float(value) for value in astuple(self)]

    def to_dict(self) -> Dict[str, float]:
        return dict(zip(self.names(), self.to_list()))

    def complexity_estimate(self) -> float:
        """Structural complexity in [0, 1] used to size model ensembles."""
        estimate = (
            (self.complexity_score / 100) * 0.3
            + (self.table_count / 10) * 0.2
            + (self.join_count / 5) * 0.25
            + (self.aggregation_count / 5) * 0.25
        )
        return min(estimate, 1.0)


def estimate_selectivity(query: str) -> float:
    """Fraction of rows a query is expected to return."""
    text = query.lower()
    if "limit" in text:
        return 0.1
    if "where" in text:
        return 0.5
    return 1.0


class FeatureExtractor:
    """Builds feature vectors from a query, its analysis and the context."""

    def __init__(
        self,
        *,
        clock: Callable[[], datetime] = datetime.now,
        performance_lookup: Optional[PerformanceLookup] = None,
    ) -> None:
        self._clock = clock
        self._performance_lookup = performance_lookup

    def extract(
        self,
        query: str,
        analysis: QueryAnalysis,
        context: Optional[QueryContext] = None,
    ) -> FeatureVector:
        context = context or QueryContext()
        pattern = analysis.pattern
        now = self._clock()
        load = context.system_load

        avg_performance = 0.0
        last_optimization = 0.0
        if self._performance_lookup is not None:
            records = self._performance_lookup(query)
            if records:
                avg_performance = statistics.fmean(r.result.execution_time for r in records)
                latest = max(r.timestamp for r in records)
                last_optimization = max((now - latest).total_seconds(), 0.0)

        normalized = QueryText.normalize(query)
        frequency = sum(
            1 for past in context.historical_queries
            if QueryText.normalize(past) == normalized
        )

        return FeatureVector(
            query_length=len(query),
            table_count=len(pattern.tables),
            column_count=len(pattern.columns),
            join_count=len(pattern.joins),
            aggregation_count=len(pattern.aggregations),
            condition_count=len(pattern.conditions),
            subquery_count=len(_SUBQUERY.findall(query)),
            selectivity=estimate_selectivity(query),
            complexity_score=analysis.complexity.score,
            data_volume_score=context.data_size.total_rows,
            computational_complexity=analysis.resource_usage.estimated_cpu,
            system_load=load.cpu_usage,
            memory_available=100.0 - load.memory_usage,
            disk_utilization=load.disk_io,
            network_latency=load.network_latency,
            time_of_day=now.hour,
            day_of_week=now.weekday(),
            query_frequency=frequency,
            avg_performance=avg_performance,
            last_optimization=last_optimization,
            user_preference=_USER_PREFERENCE.get(
                context.user_preferences.preferred_performance, 0.5
            ),
        )
