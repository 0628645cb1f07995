"""Optimization history ledger with statistics, export and persistence."""

from .ledger import OptimizationHistory, query_similarity
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

__all__ = [
    "ExecutionPerformance",
    "ExportOptions",
    "HistoryFeedback",
    "HistoryFilter",
    "HistoryMetadata",
    "HistoryStatistics",
    "HistoryTrend",
    "OptimizationHistory",
    "OptimizationHistoryEntry",
    "PerformanceDistribution",
    "SatisfactionStats",
    "TechniqueStats",
    "query_similarity",
]
