"""Optimization history ledger.

Every optimization the engine performs is recorded here, newest first, in
a bounded buffer. Observed performance and user feedback are attached to
an entry later, once each. The ledger is persisted through a
``PersistenceStore`` when one is supplied; a failing or slow store is
logged and never fails the caller.
"""

import asyncio
import re
from collections import Counter, defaultdict
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from ..config.models import HistoryConfig
from ..core.base import BaseComponent
from ..core.buffers import BoundedBuffer
from ..core.exceptions import (
    CollaboratorError,
    ErrorCodes,
    HistoryError,
    PersistenceError,
)
from ..core.protocols import PersistenceStore
from ..core.utils import QueryText, call_with_timeout, generate_id
from ..models import QueryContext, QueryOptimizationResult, impact_rank
from .export import columns_for, parse_rows, serialize_entry, to_csv, to_json, validate_rows
from .models import (
    ExecutionPerformance,
    ExportOptions,
    HistoryFeedback,
    HistoryFilter,
    HistoryMetadata,
    HistoryStatistics,
    HistoryTrend,
    OptimizationHistoryEntry,
    PerformanceDistribution,
    SatisfactionStats,
    TechniqueStats,
)

_LEDGER_ADAPTER = TypeAdapter(List[OptimizationHistoryEntry])

LARGE_DATASET_ROWS = 1_000_000
HIGH_SYSTEM_LOAD = 80.0

_QUERY_TYPES = ("SELECT", "INSERT", "UPDATE", "DELETE", "CREATE", "DROP", "SHOW")
_JOIN = re.compile(r"join")
_SUBQUERY = re.compile(r"\(\s*select")
_AGGREGATE_CALL = re.compile(r"\b(count|sum|avg|mean|min|max|group_concat)\(")


def query_type(query: str) -> str:
    head = query.strip().upper()
    return next((kind for kind in _QUERY_TYPES if head.startswith(kind)), "OTHER")


def heuristic_complexity(query: str) -> float:
    """Text-only complexity estimate in [0, 100]."""
    text = query.lower()
    score = len(query) / 100
    score += len(_JOIN.findall(text)) * 10
    score += len(_SUBQUERY.findall(text)) * 15
    score += len(_AGGREGATE_CALL.findall(text)) * 5
    return min(score, 100.0)


def query_similarity(first: str, second: str) -> float:
    """Jaccard overlap of the normalized token sets of two queries."""
    left = QueryText.normalize_for_similarity(first)
    right = QueryText.normalize_for_similarity(second)
    if left == right:
        return 1.0
    left_tokens, right_tokens = set(left.split(" ")), set(right.split(" "))
    union = left_tokens | right_tokens
    return len(left_tokens & right_tokens) / len(union) if union else 0.0


def generate_tags(result: QueryOptimizationResult, context: QueryContext) -> List[str]:
    tags = []
    for technique in result.optimization_techniques:
        tags.append(f"technique:{technique.name}")
        if technique.impact == "high" and "high-impact" not in tags:
            tags.append("high-impact")

    gain = result.estimated_performance_gain
    if gain > 50:
        tags.append("major-optimization")
    elif gain > 20:
        tags.append("moderate-optimization")
    else:
        tags.append("minor-optimization")

    if context.data_size.total_rows > LARGE_DATASET_ROWS:
        tags.append("large-dataset")
    if context.system_load.cpu_usage > HIGH_SYSTEM_LOAD:
        tags.append("high-system-load")
    return tags


def confidence_score(result: QueryOptimizationResult) -> float:
    techniques = result.optimization_techniques
    if not techniques:
        return 0.0
    high = sum(1 for t in techniques if impact_rank(t.impact) == 3)
    return min((high / len(techniques) * 100 + result.estimated_performance_gain) / 2, 100.0)


def build_metadata(result: QueryOptimizationResult) -> HistoryMetadata:
    return HistoryMetadata(
        query_type=query_type(result.original_query),
        complexity=heuristic_complexity(result.original_query),
        optimization_techniques=[t.name for t in result.optimization_techniques],
        estimated_benefit=result.estimated_performance_gain,
        confidence_score=confidence_score(result),
    )


def matches(entry: OptimizationHistoryEntry, criteria: HistoryFilter) -> bool:
    if criteria.connection_id and entry.connection_id != criteria.connection_id:
        return False
    if criteria.database and entry.database != criteria.database:
        return False
    if criteria.start is not None and entry.timestamp < criteria.start:
        return False
    if criteria.end is not None and entry.timestamp > criteria.end:
        return False
    if criteria.query_type and entry.metadata.query_type != criteria.query_type:
        return False
    gain = entry.performance.performance_gain
    if criteria.min_performance_gain is not None and gain < criteria.min_performance_gain:
        return False
    if criteria.max_performance_gain is not None and gain > criteria.max_performance_gain:
        return False
    if criteria.success_only and not entry.performance.success:
        return False
    if criteria.with_feedback and entry.user_feedback is None:
        return False
    if criteria.tags and not any(tag in entry.tags for tag in criteria.tags):
        return False
    if criteria.search:
        needle = criteria.search.lower()
        haystack = [entry.original_query, entry.optimized_query, entry.database, *entry.tags]
        if not any(needle in text.lower() for text in haystack):
            return False
    return True


class OptimizationHistory(BaseComponent[HistoryConfig]):
    """Bounded, newest-first ledger of optimization decisions.

    Mutations are serialized by an ``asyncio.Lock`` and, when ``autosave``
    is on and a store is configured, followed by a best-effort save.

    Example:
        >>> history = OptimizationHistory(HistoryConfig(max_entries=100), store=store)
        >>> await history.load()
        >>> entry_id = await history.record_optimization("conn", "metrics", query, result)
        >>> await history.update_performance(entry_id, ExecutionPerformance(performance_gain=30, success=True))
        True
    """

    component_name = "history"

    def __init__(
        self,
        config: Optional[HistoryConfig] = None,
        *,
        store: Optional[PersistenceStore] = None,
    ) -> None:
        super().__init__(config or HistoryConfig())
        self._store = store
        self._entries: BoundedBuffer[OptimizationHistoryEntry] = BoundedBuffer(self.config.max_entries)
        self._lock = asyncio.Lock()
        self._initialized = True

    def __len__(self) -> int:
        return len(self._entries)

    def _find(self, entry_id: str) -> Optional[OptimizationHistoryEntry]:
        return next((e for e in self._entries if e.id == entry_id), None)

    def _select(self, criteria: Optional[HistoryFilter]) -> List[OptimizationHistoryEntry]:
        entries = self._entries.snapshot()
        if criteria is None:
            return entries
        return [e for e in entries if matches(e, criteria)]

    async def record_optimization(
        self,
        connection_id: str,
        database: str,
        original_query: str,
        result: QueryOptimizationResult,
        context: Optional[QueryContext] = None,
        performance: Optional[ExecutionPerformance] = None,
    ) -> str:
        """Record an optimization and return the new entry id."""
        context = context or QueryContext()
        entry = OptimizationHistoryEntry(
            id=generate_id("opt"),
            timestamp=datetime.now(),
            connection_id=connection_id,
            database=database,
            original_query=original_query,
            optimized_query=result.optimized_query,
            metadata=build_metadata(result),
            optimization_result=result,
            context=context,
            performance=performance or ExecutionPerformance(),
            performance_recorded=performance is not None,
            tags=generate_tags(result, context),
        )
        async with self._lock:
            evicted = self._entries.prepend(entry)
        if evicted is not None:
            self.logger.debug("History entry evicted", entry_id=evicted.id, max_entries=self._entries.capacity)
        await self._autosave()
        return entry.id

    async def update_performance(self, entry_id: str, performance: ExecutionPerformance) -> bool:
        """Attach observed performance to an entry.

        Returns:
            False if the entry is unknown or already has performance recorded
        """
        async with self._lock:
            entry = self._find(entry_id)
            if entry is None or entry.performance_recorded:
                return False
            entry.performance = performance
            entry.performance_recorded = True
            entry.metadata.actual_benefit = performance.performance_gain
        await self._autosave()
        return True

    async def add_user_feedback(self, entry_id: str, feedback: HistoryFeedback) -> bool:
        """Attach user feedback to an entry; an entry takes feedback once."""
        async with self._lock:
            entry = self._find(entry_id)
            if entry is None or entry.user_feedback is not None:
                return False
            entry.user_feedback = feedback
        await self._autosave()
        return True

    def query_history(
        self,
        criteria: Optional[HistoryFilter] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[OptimizationHistoryEntry]:
        """Matching entries, newest first, paginated."""
        return self._select(criteria)[offset:offset + limit]

    def get_history_entry(self, entry_id: str) -> Optional[OptimizationHistoryEntry]:
        return self._find(entry_id)

    async def delete_history(self, entry_id: str) -> bool:
        async with self._lock:
            removed = self._entries.remove_where(lambda e: e.id == entry_id)
        if removed:
            await self._autosave()
        return removed > 0

    async def delete_history_batch(self, criteria: HistoryFilter) -> int:
        """Delete every entry matching ``criteria``; returns the number deleted."""
        async with self._lock:
            removed = self._entries.remove_where(lambda e: matches(e, criteria))
        self.logger.info("History entries deleted", count=removed)
        await self._autosave()
        return removed

    async def clear_history(self) -> None:
        async with self._lock:
            self._entries.clear()
        self.logger.info("History cleared")
        await self._autosave()

    def find_similar_queries(
        self,
        query: str,
        limit: int = 10,
        threshold: float = 0.7,
    ) -> List[OptimizationHistoryEntry]:
        """Entries whose original query overlaps ``query`` by at least ``threshold``."""
        scored = [(query_similarity(query, e.original_query), e) for e in self._entries]
        scored = [item for item in scored if item[0] >= threshold]
        scored.sort(key=lambda item: item[0], reverse=True)
        return [entry for _, entry in scored[:limit]]

    def get_best_optimizations(self, limit: int = 10) -> List[OptimizationHistoryEntry]:
        best = [
            e for e in self._entries
            if e.performance.success and e.performance.performance_gain > 0
        ]
        best.sort(key=lambda e: e.performance.performance_gain, reverse=True)
        return best[:limit]

    def get_worst_optimizations(self, limit: int = 10) -> List[OptimizationHistoryEntry]:
        worst = [
            e for e in self._entries
            if e.performance_recorded and (not e.performance.success or e.performance.performance_gain < 0)
        ]
        worst.sort(key=lambda e: e.performance.performance_gain)
        return worst[:limit]

    def generate_statistics(self, criteria: Optional[HistoryFilter] = None) -> HistoryStatistics:
        entries = self._select(criteria)
        if not entries:
            return HistoryStatistics()

        gains = [e.performance.performance_gain for e in entries]
        return HistoryStatistics(
            total_optimizations=len(entries),
            successful_optimizations=sum(1 for e in entries if e.performance.success),
            average_performance_gain=sum(gains) / len(gains),
            top_optimization_techniques=self._technique_stats(entries),
            query_type_distribution=dict(Counter(e.metadata.query_type for e in entries)),
            performance_distribution=self._performance_distribution(gains),
            user_satisfaction=self._satisfaction(entries),
            trends=self._trends(entries),
        )

    @staticmethod
    def _technique_stats(entries: List[OptimizationHistoryEntry]) -> List[TechniqueStats]:
        grouped: Dict[str, List[OptimizationHistoryEntry]] = defaultdict(list)
        for entry in entries:
            for name in entry.metadata.optimization_techniques:
                grouped[name].append(entry)

        stats = []
        for name, group in grouped.items():
            ratings = [e.user_feedback.rating for e in group if e.user_feedback is not None]
            stats.append(TechniqueStats(
                technique=name,
                count=len(group),
                average_gain=sum(e.performance.performance_gain for e in group) / len(group),
                success_rate=sum(1 for e in group if e.performance.success) / len(group),
                user_rating=sum(ratings) / len(ratings) if ratings else 0.0,
            ))
        return sorted(stats, key=lambda s: s.count, reverse=True)

    @staticmethod
    def _performance_distribution(gains: List[float]) -> PerformanceDistribution:
        distribution = PerformanceDistribution()
        for gain in gains:
            if gain > 50:
                distribution.excellent += 1
            elif gain > 20:
                distribution.good += 1
            elif gain > 5:
                distribution.moderate += 1
            elif gain > 0:
                distribution.minimal += 1
            else:
                distribution.negative += 1
        return distribution

    @staticmethod
    def _satisfaction(entries: List[OptimizationHistoryEntry]) -> SatisfactionStats:
        feedback = [e.user_feedback for e in entries if e.user_feedback is not None]
        if not feedback:
            return SatisfactionStats()

        issues = Counter(issue for f in feedback for issue in f.reported_issues)
        return SatisfactionStats(
            average_rating=sum(f.rating for f in feedback) / len(feedback),
            total_ratings=len(feedback),
            rating_distribution=dict(Counter(f.rating for f in feedback)),
            helpful_percentage=sum(1 for f in feedback if f.helpful) / len(feedback),
            common_issues=[issue for issue, _ in issues.most_common(10)],
        )

    @staticmethod
    def _trends(entries: List[OptimizationHistoryEntry]) -> List[HistoryTrend]:
        by_day: Dict[date, List[OptimizationHistoryEntry]] = defaultdict(list)
        for entry in entries:
            by_day[entry.timestamp.date()].append(entry)

        trends = []
        for day in sorted(by_day):
            group = by_day[day]
            ratings = [e.user_feedback.rating for e in group if e.user_feedback is not None]
            trends.append(HistoryTrend(
                date=day,
                optimization_count=len(group),
                average_gain=sum(e.performance.performance_gain for e in group) / len(group),
                success_rate=sum(1 for e in group if e.performance.success) / len(group),
                user_satisfaction=sum(ratings) / len(ratings) if ratings else 0.0,
            ))
        return trends

    def export_history(self, options: Optional[ExportOptions] = None) -> str:
        """Serialize matching entries as JSON or CSV.

        Raises:
            HistoryError: If the export format is not supported
        """
        options = options or ExportOptions()
        rows = [serialize_entry(e, options) for e in self._select(options.filter)]
        if options.format == "json":
            return to_json(rows)
        if options.format == "csv":
            return to_csv(rows, columns_for(options))
        raise HistoryError(
            f"Unsupported export format: {options.format}",
            code=ErrorCodes.UNSUPPORTED_FORMAT,
            context={"format": options.format},
        )

    async def import_history(self, data: str, format: str = "json") -> int:
        """Merge exported entries in front of the ledger.

        Rows missing an identifying field are dropped.

        Returns:
            Number of imported entries

        Raises:
            ImportFormatError: If the format is unknown or the payload is
                not decodable
        """
        entries, rejected = validate_rows(parse_rows(data, format))
        if rejected:
            self.logger.warning("Dropped invalid history rows on import", rejected=rejected, format=format)
        if entries:
            async with self._lock:
                self._entries.replace(entries + self._entries.snapshot())
            await self._autosave()
        self.logger.info("History imported", imported=len(entries), format=format)
        return len(entries)

    async def load(self) -> int:
        """Replace the ledger with the persisted one.

        A missing payload, a store failure or a corrupt payload leaves the
        ledger empty.

        Returns:
            Number of loaded entries
        """
        if self._store is None:
            return 0
        key = self.config.persistence_key
        try:
            payload = await call_with_timeout(
                self._store.load(key), self.config.persistence_timeout, operation="history_load",
            )
        except CollaboratorError as e:
            self.logger.warning("History load timed out, starting empty", key=key, error=str(e))
            return 0
        except Exception as e:
            error = PersistenceError(
                "Failed to load optimization history",
                code=ErrorCodes.PERSISTENCE_LOAD_FAILED,
                context={"key": key},
                cause=e,
            )
            self.logger.warning("History load failed, starting empty", error=error.to_dict())
            return 0

        if not payload:
            return 0
        try:
            entries = _LEDGER_ADAPTER.validate_json(payload)
        except PydanticValidationError as e:
            self.logger.warning(
                "Persisted history is corrupt, starting empty", key=key, errors=e.error_count(),
            )
            return 0

        async with self._lock:
            self._entries.replace(entries)
        self.logger.info("History loaded", key=key, entries=len(self._entries))
        return len(self._entries)

    async def save(self) -> bool:
        """Persist the ledger; failures are logged and reported as False."""
        if self._store is None:
            return False
        key = self.config.persistence_key
        payload = _LEDGER_ADAPTER.dump_json(self._entries.snapshot()).decode("utf-8")
        try:
            await call_with_timeout(
                self._store.save(key, payload), self.config.persistence_timeout, operation="history_save",
            )
        except CollaboratorError as e:
            self.logger.warning("History save timed out", key=key, error=str(e))
            return False
        except Exception as e:
            error = PersistenceError(
                "Failed to save optimization history",
                code=ErrorCodes.PERSISTENCE_SAVE_FAILED,
                context={"key": key},
                cause=e,
            )
            self.logger.warning("History save failed", error=error.to_dict())
            return False
        return True

    async def _autosave(self) -> None:
        if self.config.autosave:
            await self.save()

    def get_metrics(self) -> Dict[str, Any]:
        metrics = super().get_metrics()
        metrics.update({
            "entries": len(self._entries),
            "max_entries": self._entries.capacity,
            "persistent": self._store is not None,
        })
        return metrics
