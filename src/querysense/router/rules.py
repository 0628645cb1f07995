"""Default routing rules."""

from typing import List, Optional

from ..models import QueryContext
from .models import RouteCandidate, RoutingRule

LARGE_QUERY_ROWS = 1_000_000
HIGH_NETWORK_LATENCY_MS = 100


def _is_read(query: str, context: Optional[QueryContext] = None) -> bool:
    return query.strip().lower().startswith(("select", "show"))


def _route_to_replica(candidates: List[RouteCandidate]) -> Optional[RouteCandidate]:
    replicas = [c for c in candidates if c.metadata.node_type in ("secondary", "analytics")]
    if replicas:
        return replicas[0]
    return candidates[0] if candidates else None


def _is_large(query: str, context: Optional[QueryContext] = None) -> bool:
    rows = context.data_size.total_rows if context is not None else 0
    text = query.lower()
    return rows > LARGE_QUERY_ROWS or "group by" in text or "order by" in text


def _route_to_analytics(candidates: List[RouteCandidate]) -> Optional[RouteCandidate]:
    return next((c for c in candidates if c.metadata.node_type == "analytics"), None)


def _is_remote(query: str, context: Optional[QueryContext] = None) -> bool:
    return context is not None and context.system_load.network_latency > HIGH_NETWORK_LATENCY_MS


def _route_to_nearest(candidates: List[RouteCandidate]) -> Optional[RouteCandidate]:
    return min(candidates, key=lambda c: c.latency, default=None)


def default_rules() -> List[RoutingRule]:
    return [
        RoutingRule(
            name="read_write_separation",
            priority=100,
            condition=_is_read,
            route=_route_to_replica,
            description="Route read queries to secondary or analytics nodes",
        ),
        RoutingRule(
            name="large_query_routing",
            priority=90,
            condition=_is_large,
            route=_route_to_analytics,
            description="Route large or complex queries to analytics nodes",
        ),
        RoutingRule(
            name="geographic_routing",
            priority=80,
            condition=_is_remote,
            route=_route_to_nearest,
            description="Route queries to geographically closest nodes",
        ),
    ]
