"""Health-aware query routing."""

from .models import (
    ConnectionHealth,
    RouteCandidate,
    RouteMetadata,
    RoutingDecision,
    RoutingRule,
    RoutingRuleStats,
    RoutingStatistics,
)
from .router import QueryRouter, performance_score
from .rules import default_rules
from .strategies import LoadBalancer, composite_score, is_healthy

__all__ = [
    "ConnectionHealth",
    "LoadBalancer",
    "QueryRouter",
    "RouteCandidate",
    "RouteMetadata",
    "RoutingDecision",
    "RoutingRule",
    "RoutingRuleStats",
    "RoutingStatistics",
    "composite_score",
    "default_rules",
    "is_healthy",
    "performance_score",
]
