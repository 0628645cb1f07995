"""Data model of the query router."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Literal, Optional

from ..models import HealthDetails, QueryContext, RoutingStrategy

NodeType = Literal["primary", "secondary", "cache", "analytics"]


@dataclass
class RouteMetadata:
    """Static description and rolling statistics of an endpoint."""
    node_type: NodeType = "primary"
    region: str = "default"
    version: str = "1.0.0"
    capabilities: List[str] = field(default_factory=list)
    max_connections: int = 100
    last_health_check: Optional[datetime] = None
    avg_response_time: float = 0.0  # ms
    error_rate: float = 0.0
    connection_count: int = 0


@dataclass
class RouteCandidate:
    connection_id: str
    score: float = 0.0
    latency: float = 0.0
    load: float = 0.0  # fraction of CPU in use
    capacity: int = 100
    health: float = 1.0
    priority: int = 1
    tags: List[str] = field(default_factory=list)
    metadata: RouteMetadata = field(default_factory=RouteMetadata)


@dataclass
class ConnectionHealth:
    """Latest health state of an endpoint.

    ``consecutive_failures`` grows with each failed check and resets only
    when a check passes.
    """
    connection_id: str
    healthy: bool
    latency: float = 0.0
    load: float = 0.0
    error_rate: float = 0.0
    last_check: datetime = field(default_factory=datetime.now)
    consecutive_failures: int = 0
    details: HealthDetails = field(default_factory=HealthDetails)


RuleCondition = Callable[[str, Optional[QueryContext]], bool]
RuleRoute = Callable[[List[RouteCandidate]], Optional[RouteCandidate]]


@dataclass
class RoutingRule:
    """Routes matching queries with ``route`` before load balancing applies."""
    name: str
    priority: int
    condition: RuleCondition
    route: RuleRoute
    description: str = ""


@dataclass
class RoutingRuleStats:
    name: str
    hit_count: int = 0
    last_used: Optional[datetime] = None


@dataclass
class RoutingStatistics:
    total_requests: int = 0
    successful_routes: int = 0
    failed_routes: int = 0
    avg_routing_time: float = 0.0  # ms
    route_distribution: Dict[str, int] = field(default_factory=dict)
    healthy_nodes: int = 0
    unhealthy_nodes: int = 0
    failover_count: int = 0
    routing_rules: List[RoutingRuleStats] = field(default_factory=list)


@dataclass
class RoutingDecision:
    """A routing decision kept for later feedback matching."""
    query_hash: str
    strategy: RoutingStrategy
    connection_id: Optional[str]
    score: float
    routing_time: float  # ms
    timestamp: float  # monotonic seconds
