"""Query analyzer.

Turns a raw query into a ``QueryAnalysis``: the parsed pattern, an additive
complexity score, a resource estimate, advisory warnings and tags. It also
keeps a bounded per-query record of observed executions from which query
statistics are derived.
"""

import statistics
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from ..config.models import AnalyzerConfig
from ..core.base import BaseComponent
from ..core.buffers import BoundedBuffer, LRUCache
from ..core.utils import QueryText
from ..models import QueryContext, QueryExecutionResult, TimeRange
from .models import (
    ComplexityFactor,
    ExecutionRecord,
    FrequentQuery,
    QueryAnalysis,
    QueryComplexity,
    QueryDependency,
    QueryPattern,
    QueryStatistics,
    ResourceUsage,
    ResourceUtilization,
    SlowQuery,
    complexity_level,
)
from .parser import QueryParser

GIB = 1024 * 1024 * 1024

WARN_NO_LIMIT = "Query without LIMIT may return large result sets"
WARN_NO_WHERE = "Query without WHERE clause may scan entire table"
WARN_MANY_JOINS = "Complex query with multiple joins may be slow"
WARN_NO_TIME_INDEX = "Time range query without time index may be inefficient"
WARN_UNGROUPED_AGGREGATION = "Aggregation without GROUP BY may produce unexpected results"
WARN_EMPTY_QUERY = "Query is empty; analysis uses default values"


class QueryAnalyzer(BaseComponent[AnalyzerConfig]):
    """Heuristic query analyzer with a bounded execution history.

    Example:
        >>> analyzer = QueryAnalyzer(AnalyzerConfig())
        >>> analysis = analyzer.analyze("SELECT mean(value) FROM cpu GROUP BY host")
        >>> analysis.complexity.level
        'medium'
    """

    component_name = "analyzer"

    def __init__(self, config: Optional[AnalyzerConfig] = None) -> None:
        super().__init__(config or AnalyzerConfig())
        self._parser = QueryParser()
        self._history: LRUCache[str, BoundedBuffer[ExecutionRecord]] = LRUCache(
            self.config.max_tracked_queries
        )
        self._initialized = True

    def analyze(self, query: str, context: Optional[QueryContext] = None) -> QueryAnalysis:
        """Analyze a query.

        Analysis never fails for query-content reasons: an empty query yields
        a default pattern together with a warning.
        """
        if not query or not query.strip():
            self.logger.warning("Empty query submitted for analysis")
            pattern = QueryPattern()
            complexity = self.evaluate_complexity(pattern)
            return QueryAnalysis(
                patterns=[pattern],
                complexity=complexity,
                resource_usage=self.estimate_resource_usage(pattern, context),
                warnings=[WARN_EMPTY_QUERY],
                tags=self.generate_tags(pattern, complexity),
            )

        pattern = self._parser.parse(query)
        complexity = self.evaluate_complexity(pattern)
        analysis = QueryAnalysis(
            patterns=[pattern],
            complexity=complexity,
            resource_usage=self.estimate_resource_usage(pattern, context),
            warnings=self.check_warnings(pattern, context),
            tags=self.generate_tags(pattern, complexity),
        )
        self.logger.debug(
            "Query analyzed",
            query_type=pattern.type,
            complexity_score=complexity.score,
            complexity_level=complexity.level,
            warnings=len(analysis.warnings),
        )
        return analysis

    def parse(self, query: str) -> QueryPattern:
        return self._parser.parse(query)

    def evaluate_complexity(self, pattern: QueryPattern) -> QueryComplexity:
        """Score a pattern as the sum of weighted structural factors."""
        factors: List[ComplexityFactor] = []

        def add(name: str, count: int, weight: float, description: str) -> None:
            if count > 0:
                factors.append(ComplexityFactor(name, count * weight, description))

        add("table_count", len(pattern.tables), 10, f"{len(pattern.tables)} tables involved")
        add("join_complexity", len(pattern.joins), 20, f"{len(pattern.joins)} joins")
        add(
            "condition_complexity",
            len(pattern.conditions),
            5,
            f"{len(pattern.conditions)} conditions",
        )
        add(
            "aggregation_complexity",
            len(pattern.aggregations),
            15,
            f"{len(pattern.aggregations)} aggregations",
        )
        add("sort_complexity", len(pattern.order_by), 10, f"{len(pattern.order_by)} sort columns")
        if pattern.time_range is not None:
            factors.append(ComplexityFactor("time_range", 5, "Time range query"))

        score = float(sum(factor.weight for factor in factors))
        return QueryComplexity(score=score, level=complexity_level(score), factors=factors)

    def estimate_resource_usage(
        self,
        pattern: QueryPattern,
        context: Optional[QueryContext] = None,
    ) -> ResourceUsage:
        memory = 64.0 + len(pattern.tables) * 32
        cpu = 10.0
        io = 50.0 + len(pattern.tables) * 100
        network = 10.0

        memory += len(pattern.joins) * 128
        cpu += len(pattern.joins) * 50
        memory += len(pattern.aggregations) * 64
        cpu += len(pattern.aggregations) * 30
        memory += len(pattern.order_by) * 96
        cpu += len(pattern.order_by) * 40

        if context is not None:
            scale = min(context.data_size.total_size / GIB, self.config.data_scale_cap)
            memory *= 1 + scale
            cpu *= 1 + scale * 0.5
            io *= 1 + scale * 0.3

        return ResourceUsage(
            estimated_memory=memory,
            estimated_cpu=cpu,
            estimated_io=io,
            estimated_network=network,
        )

    def check_warnings(
        self,
        pattern: QueryPattern,
        context: Optional[QueryContext] = None,
    ) -> List[str]:
        warnings: List[str] = []
        if pattern.type == "SELECT" and pattern.limit is None:
            warnings.append(WARN_NO_LIMIT)
        if pattern.type == "SELECT" and not pattern.conditions:
            warnings.append(WARN_NO_WHERE)
        if len(pattern.joins) > self.config.max_joins_before_warning:
            warnings.append(WARN_MANY_JOINS)
        if pattern.time_range is not None and not self._has_time_index(context):
            warnings.append(WARN_NO_TIME_INDEX)
        if pattern.aggregations and not pattern.group_by:
            warnings.append(WARN_UNGROUPED_AGGREGATION)
        return warnings

    @staticmethod
    def _has_time_index(context: Optional[QueryContext]) -> bool:
        # Without index metadata a time-series store is assumed to index time
        if context is None or not context.index_info:
            return True
        return any(
            "time" in (column.lower() for column in index.columns)
            for index in context.index_info
        )

    @staticmethod
    def generate_tags(pattern: QueryPattern, complexity: QueryComplexity) -> List[str]:
        tags = [pattern.type.lower(), f"complexity:{complexity.level}"]
        if pattern.joins:
            tags.append("has_joins")
        if pattern.aggregations:
            tags.append("has_aggregations")
        if pattern.order_by:
            tags.append("has_sorting")
        if pattern.time_range is not None:
            tags.append("time_series")
        if pattern.group_by:
            tags.append("has_grouping")
        return tags

    def analyze_dependencies(self, queries: Sequence[str]) -> List[QueryDependency]:
        """Detect pairwise data dependencies by table overlap.

        A dependency links query ``i`` to every later query ``j`` sharing at
        least one table with it.
        """
        patterns = [self._parser.parse(query) for query in queries]
        dependencies: List[QueryDependency] = []
        for i, source in enumerate(patterns):
            for j in range(i + 1, len(patterns)):
                if set(source.tables) & set(patterns[j].tables):
                    dependencies.append(QueryDependency(source_index=i, dependent_index=j))
        return dependencies

    def record_performance(
        self,
        query: str,
        result: QueryExecutionResult,
        *,
        connection_id: Optional[str] = None,
        timestamp: Optional[datetime] = None,
    ) -> None:
        """Append an execution to the query's rolling history."""
        key = QueryText.fingerprint(query)
        records = self._history.get(key)
        if records is None:
            records = BoundedBuffer(self.config.performance_history_size)
            evicted = self._history.set(key, records)
            if evicted is not None:
                self.logger.debug("Query history evicted", fingerprint=evicted[0])
        records.append(ExecutionRecord(
            query=query,
            result=result,
            timestamp=timestamp or datetime.now(),
            connection_id=connection_id,
        ))

    def performance_history(self, query: str) -> List[ExecutionRecord]:
        """Recorded executions of ``query``, oldest first."""
        records = self._history.peek(QueryText.fingerprint(query))
        return records.snapshot() if records is not None else []

    def get_statistics(
        self,
        connection_id: Optional[str] = None,
        time_range: Optional[TimeRange] = None,
    ) -> QueryStatistics:
        """Aggregate recorded executions.

        Records without a connection id count for every connection.
        """
        grouped: Dict[str, List[ExecutionRecord]] = {}
        for key, buffer in self._history.items():
            selected = [
                record for record in buffer
                if (connection_id is None
                    or record.connection_id is None
                    or record.connection_id == connection_id)
                and (time_range is None or time_range.contains(record.timestamp))
            ]
            if selected:
                grouped[key] = selected

        records = [record for group in grouped.values() for record in group]
        total = len(records)
        if total == 0:
            return QueryStatistics(
                total_queries=0,
                avg_execution_time=0.0,
                slow_queries=[],
                frequent_queries=[],
                error_rate=0.0,
                cache_hit_rate=0.0,
                optimization_success_rate=0.0,
                resource_utilization=ResourceUtilization(),
            )

        return QueryStatistics(
            total_queries=total,
            avg_execution_time=statistics.fmean(r.result.execution_time for r in records),
            slow_queries=self._slow_queries(grouped),
            frequent_queries=self._frequent_queries(grouped),
            error_rate=sum(1 for r in records if not r.result.success) / total,
            cache_hit_rate=0.0,
            optimization_success_rate=0.0,
            resource_utilization=ResourceUtilization(
                avg_memory_usage=statistics.fmean(r.result.memory_used for r in records),
                avg_cpu_usage=statistics.fmean(r.result.execution_time / 1000 for r in records),
                avg_io_usage=statistics.fmean(
                    r.result.disk_reads + r.result.disk_writes for r in records
                ),
                avg_network_usage=statistics.fmean(r.result.network_bytes for r in records),
            ),
        )

    def _slow_queries(self, grouped: Dict[str, List[ExecutionRecord]]) -> List[SlowQuery]:
        threshold = self.config.slow_query_threshold_ms
        slow = []
        for records in grouped.values():
            slow_records = [r for r in records if r.result.execution_time > threshold]
            if not slow_records:
                continue
            slow.append(SlowQuery(
                query=slow_records[-1].query,
                execution_time=max(r.result.execution_time for r in slow_records),
                frequency=len(slow_records),
                last_executed=max(r.timestamp for r in slow_records),
            ))
        slow.sort(key=lambda item: item.execution_time, reverse=True)
        return slow

    def _frequent_queries(self, grouped: Dict[str, List[ExecutionRecord]]) -> List[FrequentQuery]:
        frequent = [
            FrequentQuery(
                query=records[-1].query,
                frequency=len(records),
                avg_execution_time=statistics.fmean(r.result.execution_time for r in records),
                last_executed=max(r.timestamp for r in records),
            )
            for records in grouped.values()
            if len(records) > self.config.frequent_query_threshold
        ]
        frequent.sort(key=lambda item: item.frequency, reverse=True)
        return frequent

    def clear_history(self) -> None:
        self._history.clear()

    def get_metrics(self) -> Dict[str, object]:
        metrics = super().get_metrics()
        metrics["tracked_queries"] = len(self._history)
        return metrics
