"""Candidate scoring and load-balancing strategies."""

import hashlib
import random
from typing import Callable, Dict, List, Mapping, Optional, Sequence

from ..core.utils import QueryText, clamp
from ..models import HealthDetails, QueryContext
from .models import ConnectionHealth, RouteCandidate

ROLE_MATCH_BONUS = 20.0

_WRITE_PREFIXES = ("insert", "update", "delete")


def is_healthy(details: HealthDetails) -> bool:
    """Whether a probe snapshot passes every health threshold."""
    return (
        details.cpu_usage < 90
        and details.memory_usage < 90
        and details.disk_usage < 95
        and details.network_latency < 1000
        and details.active_connections < details.queue_length * 0.8
    )


def matches_role(candidate: RouteCandidate, query: str, context: QueryContext) -> bool:
    text = query.strip().lower()
    node_type = candidate.metadata.node_type
    if text.startswith("select") and node_type == "analytics":
        return True
    if text.startswith(_WRITE_PREFIXES) and node_type == "primary":
        return True
    return node_type == "cache" and context.user_preferences.cache_preference != "disabled"


def composite_score(
    candidate: RouteCandidate,
    health: ConnectionHealth,
    query: str,
    context: Optional[QueryContext] = None,
) -> float:
    """Score a candidate on a 0-100 scale.

    Health weighs 40%, inverse load 30%, inverse latency 20% and free
    capacity 10%. The rolling error rate is subtracted and a role match
    adds a fixed bonus.
    """
    capacity = max(candidate.capacity, 1)
    utilization = clamp(health.details.active_connections / capacity, 0.0, 1.0)
    score = (
        candidate.health * 0.4
        + (1 - clamp(candidate.load, 0.0, 1.0)) * 0.3
        + (1 - min(candidate.latency / 1000, 1.0)) * 0.2
        + (1 - utilization) * 0.1
    ) * 100
    score -= candidate.metadata.error_rate * 30
    if context is not None and matches_role(candidate, query, context):
        score += ROLE_MATCH_BONUS
    return clamp(score, 0.0, 100.0)


def _stable_hash(text: str) -> int:
    return int(hashlib.sha256(text.encode("utf-8")).hexdigest()[:12], 16)


class LoadBalancer:
    """Selects a candidate when no routing rule decides.

    Candidates arrive sorted by score, best first. Round-robin and hash
    selection order candidates by id so the mapping is stable between
    calls.
    """

    def __init__(self, *, rng: Optional[random.Random] = None) -> None:
        self._rng = rng or random.Random()
        self._cursor = 0
        self._strategies: Dict[str, Callable[..., RouteCandidate]] = {
            "round_robin": self.round_robin,
            "least_connections": self.least_connections,
            "weighted": self.weighted,
            "hash": self.hash,
            "adaptive": self.adaptive,
        }

    @property
    def strategies(self) -> List[str]:
        return list(self._strategies)

    def select(
        self,
        strategy: str,
        candidates: Sequence[RouteCandidate],
        *,
        query: str,
        weights: Mapping[str, float],
    ) -> Optional[RouteCandidate]:
        if not candidates:
            return None
        selector = self._strategies.get(strategy, self.adaptive)
        return selector(candidates, query=query, weights=weights)

    def round_robin(self, candidates: Sequence[RouteCandidate], **_: object) -> RouteCandidate:
        ordered = sorted(candidates, key=lambda c: c.connection_id)
        candidate = ordered[self._cursor % len(ordered)]
        self._cursor += 1
        return candidate

    @staticmethod
    def least_connections(candidates: Sequence[RouteCandidate], **_: object) -> RouteCandidate:
        return min(candidates, key=lambda c: (c.metadata.connection_count, c.load))

    def weighted(
        self,
        candidates: Sequence[RouteCandidate],
        *,
        weights: Mapping[str, float],
        **_: object,
    ) -> RouteCandidate:
        candidate_weights = [weights.get(c.connection_id, 1.0) for c in candidates]
        if sum(candidate_weights) <= 0:
            return candidates[0]
        return self._rng.choices(list(candidates), weights=candidate_weights, k=1)[0]

    @staticmethod
    def hash(candidates: Sequence[RouteCandidate], *, query: str, **_: object) -> RouteCandidate:
        ordered = sorted(candidates, key=lambda c: c.connection_id)
        return ordered[_stable_hash(QueryText.normalize(query)) % len(ordered)]

    @staticmethod
    def adaptive(candidates: Sequence[RouteCandidate], **_: object) -> RouteCandidate:
        return max(candidates, key=lambda c: c.score)
