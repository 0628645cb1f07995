"""Query analysis: parsing, complexity scoring and execution statistics."""

from .analyzer import QueryAnalyzer
from .models import (
    Aggregation,
    ComplexityFactor,
    Condition,
    ExecutionRecord,
    FrequentQuery,
    Join,
    OrderBy,
    QueryAnalysis,
    QueryComplexity,
    QueryDependency,
    QueryPattern,
    QueryStatistics,
    ResourceUsage,
    ResourceUtilization,
    SlowQuery,
    TimeWindow,
    complexity_level,
)
from .parser import QueryParser

__all__ = [
    "Aggregation",
    "ComplexityFactor",
    "Condition",
    "ExecutionRecord",
    "FrequentQuery",
    "Join",
    "OrderBy",
    "QueryAnalysis",
    "QueryAnalyzer",
    "QueryComplexity",
    "QueryDependency",
    "QueryParser",
    "QueryPattern",
    "QueryStatistics",
    "ResourceUsage",
    "ResourceUtilization",
    "SlowQuery",
    "TimeWindow",
    "complexity_level",
]
