"""Query router.

Keeps a registry of execution endpoints with their latest health, applies
ordered routing rules and falls back to a load-balancing strategy. A
background task re-checks endpoint health on a fixed interval; request-path
reads and health updates share the registry under one lock.
"""

import asyncio
import random
import time
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from ..config.models import RouterConfig
from ..core.base import AsyncComponent
from ..core.exceptions import (
    CollaboratorError,
    ErrorCodes,
    HealthProbeError,
    QuerySenseException,
    RoutingError,
)
from ..core.buffers import BoundedBuffer
from ..core.protocols import HealthProbe
from ..core.utils import QueryText, call_with_timeout, measure_time, retry_with_backoff
from ..models import HealthDetails, QueryContext, QueryExecutionResult, RoutingStrategy
from .models import (
    ConnectionHealth,
    RouteCandidate,
    RouteMetadata,
    RoutingDecision,
    RoutingRule,
    RoutingRuleStats,
    RoutingStatistics,
)
from .rules import default_rules
from .strategies import LoadBalancer, composite_score, is_healthy

GIB = 1024 * 1024 * 1024

REASON_NO_CANDIDATE = "No healthy candidate available, fallback to default connection"
REASON_ROUTING_ERROR = "Fallback to default connection due to routing error"


def performance_score(result: QueryExecutionResult) -> float:
    """Score an observed execution in [0, 1]."""
    score = 1.0
    if result.execution_time > 10000:
        score *= 0.5
    elif result.execution_time > 5000:
        score *= 0.7
    elif result.execution_time > 1000:
        score *= 0.9
    score *= 1.1 if result.success else 0.3
    if result.memory_used > GIB:
        score *= 0.8
    return max(0.0, min(1.0, score))


class QueryRouter(AsyncComponent[RouterConfig]):
    """Health-aware query router.

    The router is usable without ``initialize()``; initializing only starts
    the periodic health checks.

    Example:
        >>> router = QueryRouter(RouterConfig(), probe=probe)
        >>> await router.register_connection("replica-1", RouteMetadata(node_type="secondary"))
        >>> strategy = await router.determine_routing("SELECT * FROM cpu", "primary")
        >>> strategy.target_connection
        'replica-1'
    """

    component_name = "router"

    def __init__(
        self,
        config: Optional[RouterConfig] = None,
        *,
        probe: Optional[HealthProbe] = None,
        rules: Optional[List[RoutingRule]] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        super().__init__(config or RouterConfig())
        self._probe = probe
        self._candidates: Dict[str, RouteCandidate] = {}
        self._health: Dict[str, ConnectionHealth] = {}
        self._rules: List[RoutingRule] = []
        self._weights: Dict[str, float] = dict(self.config.weights)
        self._balancer = LoadBalancer(rng=rng)
        self._history: BoundedBuffer[RoutingDecision] = BoundedBuffer(self.config.history_size)
        self._stats = RoutingStatistics()
        self._lock = asyncio.Lock()
        self._health_check_task: Optional[asyncio.Task] = None

        for rule in default_rules() if rules is None else rules:
            self.add_routing_rule(rule)

    async def _async_initialize(self) -> None:
        self._health_check_task = asyncio.create_task(self._health_check_loop())

    async def _async_cleanup(self) -> None:
        if self._health_check_task is not None:
            self._health_check_task.cancel()
            try:
                await self._health_check_task
            except asyncio.CancelledError:
                pass
            self._health_check_task = None

    async def _health_check_loop(self) -> None:
        while True:
            try:
                await asyncio.sleep(self.config.health_check_interval)
                await self.trigger_health_check()
            except asyncio.CancelledError:
                break
            except Exception as e:
                self.logger.error("Error in health check loop", error=str(e))

    async def determine_routing(
        self,
        query: str,
        default_connection_id: str,
        context: Optional[QueryContext] = None,
    ) -> RoutingStrategy:
        """Choose the endpoint for ``query``; never raises.

        Falls back to ``default_connection_id`` when no healthy endpoint is
        registered or routing itself fails.
        """
        self._stats.total_requests += 1
        with measure_time() as timer:
            try:
                strategy, candidate = await self._route(query, default_connection_id, context)
            except Exception as e:
                self._stats.failed_routes += 1
                self.logger.error("Failed to determine routing", error=str(e), error_type=type(e).__name__)
                strategy = RoutingStrategy(
                    target_connection=default_connection_id,
                    load_balancing="round_robin",
                    priority=0,
                    reason=REASON_ROUTING_ERROR,
                )
                candidate = None
            else:
                self._stats.successful_routes += 1

        self._record(query, strategy, candidate, timer.duration_ms)
        return strategy

    async def _route(
        self,
        query: str,
        default_connection_id: str,
        context: Optional[QueryContext],
    ) -> Tuple[RoutingStrategy, Optional[RouteCandidate]]:
        async with self._lock:
            candidates = self._available_candidates(query, context)
            registered = bool(self._candidates)

        selected: Optional[RouteCandidate] = None
        reason = ""

        if self.config.sticky_session:
            selected = self._sticky_candidate(query, candidates)
            if selected is not None:
                reason = "Routed by sticky session"

        if selected is None:
            for rule in self._rules:
                if not rule.condition(query, context):
                    continue
                selected = rule.route(list(candidates))
                if selected is not None:
                    self._hit_rule(rule.name)
                    reason = f"Routed by routing rule {rule.name}"
                    break

        if selected is None:
            selected = self._balancer.select(
                self.config.strategy, candidates, query=query, weights=self._weights,
            )
            if selected is not None:
                reason = f"Routed by {self.config.strategy} load balancing (score: {selected.score:.2f})"

        if selected is None:
            if registered:
                self._stats.failover_count += 1
            self.logger.warning(
                "No healthy route candidate, using default connection",
                default_connection=default_connection_id,
                registered=len(self._candidates),
            )
            return RoutingStrategy(
                target_connection=default_connection_id,
                load_balancing=self.config.strategy,
                priority=0,
                reason=f"{REASON_NO_CANDIDATE} {default_connection_id}",
            ), None

        return RoutingStrategy(
            target_connection=selected.connection_id,
            load_balancing=self.config.strategy,
            priority=selected.priority,
            reason=reason,
        ), selected

    def _available_candidates(
        self,
        query: str,
        context: Optional[QueryContext],
    ) -> List[RouteCandidate]:
        candidates = []
        for connection_id, candidate in self._candidates.items():
            health = self._health.get(connection_id)
            if health is None or not health.healthy:
                continue
            candidate.score = composite_score(candidate, health, query, context)
            candidates.append(candidate)
        return sorted(candidates, key=lambda c: c.score, reverse=True)

    def _sticky_candidate(
        self,
        query: str,
        candidates: List[RouteCandidate],
    ) -> Optional[RouteCandidate]:
        decision = self._latest_decision(QueryText.fingerprint(query), window=None)
        if decision is None or decision.connection_id is None:
            return None
        return next((c for c in candidates if c.connection_id == decision.connection_id), None)

    def _latest_decision(self, query_hash: str, *, window: Optional[float]) -> Optional[RoutingDecision]:
        now = time.monotonic()
        for decision in reversed(self._history.snapshot()):
            if decision.query_hash != query_hash:
                continue
            if window is not None and now - decision.timestamp > window:
                return None
            return decision
        return None

    def _record(
        self,
        query: str,
        strategy: RoutingStrategy,
        candidate: Optional[RouteCandidate],
        routing_time: float,
    ) -> None:
        self._history.append(RoutingDecision(
            query_hash=QueryText.fingerprint(query),
            strategy=strategy,
            connection_id=candidate.connection_id if candidate else None,
            score=candidate.score if candidate else 0.0,
            routing_time=routing_time,
            timestamp=time.monotonic(),
        ))
        distribution = self._stats.route_distribution
        distribution[strategy.target_connection] = distribution.get(strategy.target_connection, 0) + 1
        total = self._stats.total_requests
        self._stats.avg_routing_time = (
            self._stats.avg_routing_time * (total - 1) + routing_time
        ) / total

    def _hit_rule(self, name: str) -> None:
        stats = next((s for s in self._stats.routing_rules if s.name == name), None)
        if stats is None:
            stats = RoutingRuleStats(name=name)
            self._stats.routing_rules.append(stats)
        stats.hit_count += 1
        stats.last_used = datetime.now()

    async def register_connection(
        self,
        connection_id: str,
        metadata: Optional[RouteMetadata] = None,
        *,
        priority: int = 1,
        tags: Optional[List[str]] = None,
    ) -> ConnectionHealth:
        """Register an endpoint and run its first health check."""
        metadata = metadata or RouteMetadata()
        async with self._lock:
            self._candidates[connection_id] = RouteCandidate(
                connection_id=connection_id,
                capacity=metadata.max_connections,
                priority=priority,
                tags=list(tags or []),
                metadata=metadata,
            )
        self.logger.info(
            "Connection registered",
            connection_id=connection_id,
            node_type=metadata.node_type,
            region=metadata.region,
        )
        return await self.check_health(connection_id)

    async def unregister_connection(self, connection_id: str) -> bool:
        async with self._lock:
            removed = self._candidates.pop(connection_id, None) is not None
            self._health.pop(connection_id, None)
        if removed:
            self.logger.info("Connection unregistered", connection_id=connection_id)
        return removed

    async def _probe_once(self, connection_id: str) -> HealthDetails:
        assert self._probe is not None
        try:
            return await call_with_timeout(
                self._probe.check_health(connection_id),
                self.config.failover_timeout,
                operation="health_probe",
            )
        except CollaboratorError:
            raise
        except Exception as e:
            raise HealthProbeError(
                str(e),
                code=ErrorCodes.HEALTH_PROBE_FAILED,
                context={"connection_id": connection_id},
                cause=e,
            ) from e

    async def check_health(self, connection_id: str) -> ConnectionHealth:
        """Probe one endpoint and update its health state.

        Probe errors and timeouts, after retries, mark the endpoint unhealthy.
        Without a probe every endpoint is reported healthy.
        """
        error: Optional[str] = None
        if self._probe is None:
            details: Optional[HealthDetails] = HealthDetails()
        else:
            try:
                details = await retry_with_backoff(
                    self._probe_once,
                    connection_id,
                    max_retries=self.config.max_retries,
                    base_delay=self.config.retry_interval,
                )
            except QuerySenseException as e:
                probe_error = e.cause if isinstance(e.cause, QuerySenseException) else e
                self.logger.warning("Health probe failed", error=probe_error.to_dict())
                details = None
                error = probe_error.message

        async with self._lock:
            return self._apply_health(connection_id, details, error)

    def _apply_health(
        self,
        connection_id: str,
        details: Optional[HealthDetails],
        error: Optional[str],
    ) -> ConnectionHealth:
        previous = self._health.get(connection_id)
        was_healthy = previous.healthy if previous is not None else None
        failures = previous.consecutive_failures if previous is not None else 0
        candidate = self._candidates.get(connection_id)

        if details is None:
            if previous is not None:
                health = replace(previous, healthy=False, last_check=datetime.now())
            else:
                health = ConnectionHealth(connection_id=connection_id, healthy=False)
            health.consecutive_failures = failures + 1
            health.details = replace(health.details, last_error=error)
        else:
            healthy = is_healthy(details)
            health = ConnectionHealth(
                connection_id=connection_id,
                healthy=healthy,
                latency=details.network_latency,
                load=details.cpu_usage / 100,
                error_rate=candidate.metadata.error_rate if candidate else 0.0,
                consecutive_failures=0 if healthy else failures + 1,
                details=details,
            )

        if candidate is None:
            return health

        self._health[connection_id] = health
        candidate.health = 1.0 if health.healthy else 0.0
        candidate.latency = health.latency
        candidate.load = health.load
        candidate.metadata.last_health_check = health.last_check
        candidate.metadata.connection_count = health.details.active_connections

        if was_healthy is not health.healthy:
            log = self.logger.info if health.healthy else self.logger.warning
            log(
                "Connection health changed",
                connection_id=connection_id,
                healthy=health.healthy,
                consecutive_failures=health.consecutive_failures,
                error=error,
            )
        return health

    async def trigger_health_check(self) -> List[ConnectionHealth]:
        """Check every registered endpoint concurrently."""
        async with self._lock:
            connection_ids = list(self._candidates)
        return list(await asyncio.gather(*(self.check_health(c) for c in connection_ids)))

    async def update_weights(self, query: str, result: QueryExecutionResult) -> bool:
        """Fold an observed execution into the routed endpoint's learned weight.

        Returns:
            True if a recent routing decision for ``query`` was found
        """
        decision = self._latest_decision(
            QueryText.fingerprint(query), window=self.config.feedback_window,
        )
        if decision is None:
            return False

        async with self._lock:
            candidate = self._candidates.get(decision.strategy.target_connection)
            if candidate is None:
                return False
            connection_id = candidate.connection_id
            new_score = performance_score(result)
            self._weights[connection_id] = self._weights.get(connection_id, 1.0) * 0.8 + new_score * 0.2

            metadata = candidate.metadata
            metadata.error_rate = metadata.error_rate * 0.8 + (0.0 if result.success else 1.0) * 0.2
            metadata.avg_response_time = metadata.avg_response_time * 0.8 + result.execution_time * 0.2
            health = self._health.get(connection_id)
            if health is not None:
                health.error_rate = metadata.error_rate

        self.logger.debug(
            "Routing weight updated",
            connection_id=connection_id,
            weight=self._weights[connection_id],
            error_rate=metadata.error_rate,
        )
        return True

    def add_routing_rule(self, rule: RoutingRule) -> None:
        """Add a rule, keeping rules ordered by descending priority.

        Raises:
            RoutingError: If a rule with the same name exists
        """
        if any(r.name == rule.name for r in self._rules):
            raise RoutingError(
                f"Routing rule already exists: {rule.name}",
                code=ErrorCodes.ROUTING_RULE_EXISTS,
                context={"rule": rule.name},
            )
        self._rules.append(rule)
        self._rules.sort(key=lambda r: r.priority, reverse=True)

    def remove_routing_rule(self, name: str) -> bool:
        before = len(self._rules)
        self._rules = [r for r in self._rules if r.name != name]
        return len(self._rules) < before

    @property
    def rules(self) -> List[RoutingRule]:
        return list(self._rules)

    @property
    def weights(self) -> Dict[str, float]:
        return dict(self._weights)

    def get_connection_health(self, connection_id: str) -> Optional[ConnectionHealth]:
        return self._health.get(connection_id)

    def get_candidates(self) -> List[RouteCandidate]:
        return list(self._candidates.values())

    def get_statistics(self) -> RoutingStatistics:
        healthy = sum(1 for h in self._health.values() if h.healthy)
        stats = self._stats
        return replace(
            stats,
            healthy_nodes=healthy,
            unhealthy_nodes=len(self._health) - healthy,
            route_distribution=dict(stats.route_distribution),
            routing_rules=[replace(r) for r in stats.routing_rules],
        )

    def get_metrics(self) -> Dict[str, Any]:
        metrics = super().get_metrics()
        stats = self.get_statistics()
        metrics.update({
            "registered_connections": len(self._candidates),
            "healthy_nodes": stats.healthy_nodes,
            "total_requests": stats.total_requests,
            "failover_count": stats.failover_count,
            "health_checks_running": self._health_check_task is not None,
        })
        return metrics
