"""In-memory result cache.

Reference implementation of the ``ResultCache`` contract: an LRU-bounded
map of optimization results with per-entry TTL, tag and glob-pattern
invalidation, hit-rate statistics and caching advice derived from query
analysis.
"""

import fnmatch
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..analyzer.models import QueryAnalysis
from ..config.models import CacheConfig
from ..core.base import BaseComponent
from ..core.buffers import LRUCache
from ..core.utils import QueryText
from ..models import CacheOptions, QueryExecutionResult, QueryOptimizationResult, Recommendation

REAL_TIME_TTL_MS = 300_000
FREQUENT_ACCESS_COUNT = 10
LOW_HIT_RATE = 0.3


@dataclass
class CacheEntry:
    key: str
    value: QueryOptimizationResult
    created: float  # clock seconds
    ttl: int  # ms
    tags: List[str] = field(default_factory=list)
    hit_count: int = 0
    last_hit: Optional[float] = None

    def expired(self, now: float) -> bool:
        return (now - self.created) * 1000 > self.ttl


@dataclass
class QueryCachePattern:
    """Observed access pattern of one query across connections."""
    access_count: int = 0
    ttl: int = 0  # ms; 0 until the query is frequent


@dataclass
class CacheStatistics:
    hits: int = 0
    misses: int = 0
    hit_rate: float = 0.0
    miss_rate: float = 0.0
    entries: int = 0
    evictions: int = 0
    top_hit_keys: List[str] = field(default_factory=list)


def is_real_time(analysis: QueryAnalysis) -> bool:
    """Whether the query reads a window relative to ``now()``."""
    window = analysis.pattern.time_range if analysis.patterns else None
    return window is not None and window.end.strip().lower().startswith("now()")


def is_historical(analysis: QueryAnalysis) -> bool:
    window = analysis.pattern.time_range if analysis.patterns else None
    return window is not None and not is_real_time(analysis)


def _query_hash(key: str) -> str:
    return key.rsplit(":", 1)[-1]


class InMemoryResultCache(BaseComponent[CacheConfig]):
    """LRU and TTL bounded result cache.

    Example:
        >>> cache = InMemoryResultCache(CacheConfig(max_entries=100))
        >>> key = cache.generate_cache_key("SELECT * FROM cpu", "primary", "metrics")
        >>> await cache.set(key, result, CacheOptions(ttl=cache.calculate_ttl(analysis)))
        >>> (await cache.get(key)) is result
        True
    """

    component_name = "cache"

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(config or CacheConfig())
        self._clock = clock
        self._entries: LRUCache[str, CacheEntry] = LRUCache(self.config.max_entries)
        self._patterns: LRUCache[str, QueryCachePattern] = LRUCache(self.config.max_entries)
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._initialized = True

    def generate_cache_key(self, query: str, connection_id: str, database: str) -> str:
        """``<connection>:<database>:<hash of the normalized query>``."""
        return f"{connection_id}:{database}:{QueryText.fingerprint(query)}"

    async def get(self, key: str) -> Optional[QueryOptimizationResult]:
        entry = self._entries.get(key)
        now = self._clock()
        if entry is None or entry.expired(now):
            if entry is not None:
                self._entries.pop(key)
            self._misses += 1
            return None
        entry.hit_count += 1
        entry.last_hit = now
        self._hits += 1
        return entry.value

    async def set(self, key: str, result: QueryOptimizationResult, options: CacheOptions) -> None:
        pattern = self._patterns.peek(_query_hash(key))
        ttl = max(options.ttl, pattern.ttl) if pattern is not None else options.ttl
        evicted = self._entries.set(key, CacheEntry(
            key=key,
            value=result,
            created=self._clock(),
            ttl=ttl or self.config.default_ttl_ms,
            tags=list(options.tags),
        ))
        if evicted is not None:
            self._evictions += 1
            self.logger.debug("Cache entry evicted", key=evicted[0])

    def is_valid(self, result: QueryOptimizationResult) -> bool:
        """Whether ``result`` is still cached under its key and unexpired."""
        if result.cache_key is None:
            return False
        entry = self._entries.peek(result.cache_key)
        return entry is not None and not entry.expired(self._clock())

    async def remove(self, key: str) -> bool:
        return self._entries.pop(key) is not None

    async def clear(self, pattern: Optional[str] = None) -> None:
        """Remove every entry, or the keys matching the glob ``pattern``."""
        if pattern is None:
            self._entries.clear()
            self._hits = self._misses = self._evictions = 0
            self.logger.info("Cache cleared")
            return
        removed = [key for key in self._entries.keys() if fnmatch.fnmatchcase(key, pattern)]
        for key in removed:
            self._entries.pop(key)
        self.logger.info("Cache entries invalidated", pattern=pattern, removed=len(removed))

    async def invalidate_tag(self, tag: str) -> int:
        removed = [key for key, entry in self._entries.items() if tag in entry.tags]
        for key in removed:
            self._entries.pop(key)
        return len(removed)

    def calculate_ttl(self, analysis: QueryAnalysis) -> int:
        """TTL in ms scaled by complexity, data recency and memory cost."""
        ttl = float(self.config.default_ttl_ms)
        score = analysis.complexity.score
        if score > 80:
            ttl *= 2
        elif score < 20:
            ttl *= 0.5
        if is_real_time(analysis):
            ttl = min(ttl, REAL_TIME_TTL_MS)
        if is_historical(analysis):
            ttl *= 3
        if analysis.resource_usage.estimated_memory > 1024:
            ttl *= 1.5
        return int(ttl)

    def caching_score(self, analysis: QueryAnalysis) -> float:
        score = 0.0
        if analysis.complexity.score > 50:
            score += 0.3
        if analysis.resource_usage.estimated_memory > 512:
            score += 0.2
        if analysis.patterns and analysis.pattern.type == "SELECT":
            score += 0.3
        if not is_real_time(analysis):
            score += 0.2
        return min(score, 1.0)

    def recommend_caching(self, query: str, analysis: QueryAnalysis) -> List[Recommendation]:
        recommendations = []
        score = self.caching_score(analysis)
        ttl = self.calculate_ttl(analysis)

        if score > 0.7:
            recommendations.append(Recommendation(
                type="caching",
                priority="high",
                title="Enable aggressive caching",
                description="This query is ideal for caching with high TTL",
                implementation=f"Set cache TTL to {ttl}ms",
                estimated_benefit=float(int(score * 100)),
            ))
        elif score > 0.4:
            recommendations.append(Recommendation(
                type="caching",
                priority="medium",
                title="Enable conservative caching",
                description="This query could benefit from short-term caching",
                implementation=f"Set cache TTL to {ttl // 2}ms",
                estimated_benefit=float(int(score * 60)),
            ))

        stats = self.get_statistics()
        if stats.hits + stats.misses > 0 and stats.hit_rate < LOW_HIT_RATE:
            recommendations.append(Recommendation(
                type="caching",
                priority="medium",
                title="Optimize cache strategy",
                description="Current cache hit rate is low, consider adjusting strategy",
                implementation="Switch to adaptive caching strategy",
                estimated_benefit=40.0,
            ))
        return recommendations

    async def update_strategy(self, query: str, result: QueryExecutionResult) -> None:
        """Lengthen the TTL of frequently executed, successful queries."""
        query_hash = QueryText.fingerprint(query)
        pattern = self._patterns.get(query_hash) or QueryCachePattern()
        pattern.access_count += 1
        if result.success and pattern.access_count > FREQUENT_ACCESS_COUNT:
            default = self.config.default_ttl_ms
            pattern.ttl = min(int(max(pattern.ttl, default) * 1.2), default * 3)
        self._patterns.set(query_hash, pattern)

    def get_statistics(self) -> CacheStatistics:
        total = self._hits + self._misses
        entries = sorted(self._entries.items(), key=lambda item: item[1].hit_count, reverse=True)
        return CacheStatistics(
            hits=self._hits,
            misses=self._misses,
            hit_rate=self._hits / total if total else 0.0,
            miss_rate=self._misses / total if total else 0.0,
            entries=len(self._entries),
            evictions=self._evictions,
            top_hit_keys=[key for key, entry in entries[:10] if entry.hit_count > 0],
        )

    def get_metrics(self) -> Dict[str, Any]:
        metrics = super().get_metrics()
        stats = self.get_statistics()
        metrics.update({
            "entries": stats.entries,
            "hit_rate": stats.hit_rate,
            "evictions": stats.evictions,
        })
        return metrics
