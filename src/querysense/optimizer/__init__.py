"""Query optimization: rewrites, execution planning and recommendations."""

from .advisor import recommend_configuration, recommend_indexes, recommend_rewrites
from .optimizer import QueryOptimizer, calculate_confidence
from .planner import StepPlanner
from .rules import DEFAULT_RULES, OptimizationRule, RuleResult
from .timeseries import normalize_time_buckets, normalize_time_range

__all__ = [
    "DEFAULT_RULES",
    "OptimizationRule",
    "QueryOptimizer",
    "RuleResult",
    "StepPlanner",
    "calculate_confidence",
    "normalize_time_buckets",
    "normalize_time_range",
    "recommend_configuration",
    "recommend_indexes",
    "recommend_rewrites",
]
