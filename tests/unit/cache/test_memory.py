"""Unit tests for the in-memory result cache."""

import pytest

from querysense.analyzer import QueryAnalysis, QueryComplexity, QueryPattern, ResourceUsage, TimeWindow
from querysense.analyzer.models import complexity_level
from querysense.cache import InMemoryResultCache
from querysense.config.models import CacheConfig
from querysense.core.utils import QueryText
from querysense.models import CacheOptions, QueryExecutionResult

REAL_TIME = TimeWindow(start="now() - 1h", end="now()", window="1h")
HISTORICAL = TimeWindow(start="'2023-01-01'", end="'2023-01-02'")


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def make_analysis(
    score: float = 30.0,
    *,
    memory: float = 100.0,
    time_range=None,
    kind: str = "SELECT",
) -> QueryAnalysis:
    return QueryAnalysis(
        patterns=[QueryPattern(type=kind, tables=["cpu"], time_range=time_range)],
        complexity=QueryComplexity(score=score, level=complexity_level(score)),
        resource_usage=ResourceUsage(
            estimated_memory=memory, estimated_cpu=10.0, estimated_io=1.0, estimated_network=0.0,
        ),
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock) -> InMemoryResultCache:
    return InMemoryResultCache(CacheConfig(max_entries=2), clock=clock)


def test_cache_key_uses_normalized_query():
    cache = InMemoryResultCache()

    key = cache.generate_cache_key("SELECT  *\n FROM cpu", "primary", "metrics")

    assert key == f"primary:metrics:{QueryText.fingerprint('select * from cpu')}"
    assert key == cache.generate_cache_key("select * from CPU", "primary", "metrics")
    assert key != cache.generate_cache_key("select * from cpu", "replica", "metrics")


class TestGetSet:
    """Test lookups, expiry and eviction."""

    @pytest.mark.asyncio
    async def test_hit_and_miss(self, cache, result_factory):
        result = result_factory()

        assert await cache.get("primary:metrics:abc") is None
        await cache.set("primary:metrics:abc", result, CacheOptions(ttl=1000))

        assert await cache.get("primary:metrics:abc") is result
        stats = cache.get_statistics()
        assert (stats.hits, stats.misses) == (1, 1)
        assert stats.hit_rate == 0.5
        assert stats.top_hit_keys == ["primary:metrics:abc"]

    @pytest.mark.asyncio
    async def test_entries_expire(self, cache, clock, result_factory):
        await cache.set("k", result_factory(), CacheOptions(ttl=1000))

        clock.now = 0.5
        assert await cache.get("k") is not None

        clock.now = 1.1
        assert await cache.get("k") is None
        assert cache.get_statistics().entries == 0

    @pytest.mark.asyncio
    async def test_zero_ttl_uses_default(self, clock, result_factory):
        cache = InMemoryResultCache(CacheConfig(default_ttl_ms=5000), clock=clock)
        await cache.set("k", result_factory(), CacheOptions(ttl=0))

        clock.now = 4.0
        assert await cache.get("k") is not None

    @pytest.mark.asyncio
    async def test_least_recently_used_is_evicted(self, cache, result_factory):
        for key in ("a", "b"):
            await cache.set(key, result_factory(), CacheOptions(ttl=1000))
        await cache.get("a")

        await cache.set("c", result_factory(), CacheOptions(ttl=1000))

        assert await cache.get("b") is None
        assert await cache.get("a") is not None
        assert cache.get_statistics().evictions == 1

    @pytest.mark.asyncio
    async def test_is_valid(self, cache, clock, result_factory):
        result = result_factory()
        assert not cache.is_valid(result)

        result.cache_key = "k"
        await cache.set("k", result, CacheOptions(ttl=1000))
        assert cache.is_valid(result)

        clock.now = 2.0
        assert not cache.is_valid(result)


class TestInvalidation:
    """Test removal by key, pattern and tag."""

    @pytest.mark.asyncio
    async def test_clear_by_pattern(self, clock, result_factory):
        cache = InMemoryResultCache(clock=clock)
        await cache.set("primary:metrics:a", result_factory(), CacheOptions(ttl=1000))
        await cache.set("replica:metrics:b", result_factory(), CacheOptions(ttl=1000))

        await cache.clear("primary:*")

        assert await cache.get("primary:metrics:a") is None
        assert await cache.get("replica:metrics:b") is not None

    @pytest.mark.asyncio
    async def test_clear_resets_statistics(self, cache, result_factory):
        await cache.set("k", result_factory(), CacheOptions(ttl=1000))
        await cache.get("k")

        await cache.clear()

        stats = cache.get_statistics()
        assert (stats.entries, stats.hits, stats.misses) == (0, 0, 0)

    @pytest.mark.asyncio
    async def test_invalidate_tag(self, cache, result_factory):
        await cache.set("a", result_factory(), CacheOptions(ttl=1000, tags=["cpu", "hourly"]))
        await cache.set("b", result_factory(), CacheOptions(ttl=1000, tags=["mem"]))

        assert await cache.invalidate_tag("cpu") == 1
        assert await cache.invalidate_tag("cpu") == 0
        assert await cache.remove("b") is True
        assert await cache.remove("b") is False


class TestTTL:
    """Test TTL derivation from query analysis."""

    @pytest.mark.parametrize("analysis,expected", [
        (make_analysis(30.0), 3_600_000),
        (make_analysis(90.0), 7_200_000),
        (make_analysis(10.0), 1_800_000),
        (make_analysis(30.0, time_range=REAL_TIME), 300_000),
        (make_analysis(30.0, time_range=HISTORICAL), 10_800_000),
        (make_analysis(30.0, memory=2048.0), 5_400_000),
        (make_analysis(90.0, memory=2048.0, time_range=REAL_TIME), 450_000),
    ])
    def test_calculate_ttl(self, analysis, expected):
        assert InMemoryResultCache().calculate_ttl(analysis) == expected

    @pytest.mark.asyncio
    async def test_frequent_queries_get_longer_ttl(self, clock, result_factory):
        cache = InMemoryResultCache(clock=clock)
        query = "SELECT * FROM cpu"
        for _ in range(11):
            await cache.update_strategy(query, QueryExecutionResult(execution_time=50.0))

        result = result_factory(query)
        result.cache_key = cache.generate_cache_key(query, "primary", "metrics")
        await cache.set(result.cache_key, result, CacheOptions(ttl=1000))

        # 1.2 x the default TTL of one hour
        clock.now = 4000.0
        assert cache.is_valid(result)
        clock.now = 4400.0
        assert not cache.is_valid(result)

    @pytest.mark.asyncio
    async def test_failed_executions_do_not_extend_ttl(self, clock, result_factory):
        cache = InMemoryResultCache(clock=clock)
        query = "SELECT * FROM cpu"
        for _ in range(20):
            await cache.update_strategy(query, QueryExecutionResult(execution_time=50.0, success=False))

        result = result_factory(query)
        result.cache_key = cache.generate_cache_key(query, "primary", "metrics")
        await cache.set(result.cache_key, result, CacheOptions(ttl=1000))

        clock.now = 2.0
        assert not cache.is_valid(result)


class TestRecommendations:
    """Test caching advice."""

    def test_aggressive_caching(self):
        recommendations = InMemoryResultCache().recommend_caching("q", make_analysis(60.0, memory=600.0))

        assert len(recommendations) == 1
        assert recommendations[0].title == "Enable aggressive caching"
        assert recommendations[0].priority == "high"
        assert recommendations[0].implementation == "Set cache TTL to 3600000ms"
        assert recommendations[0].estimated_benefit == 100.0

    def test_conservative_caching(self):
        recommendations = InMemoryResultCache().recommend_caching("q", make_analysis(10.0))

        assert [r.title for r in recommendations] == ["Enable conservative caching"]
        assert recommendations[0].implementation == "Set cache TTL to 900000ms"
        assert recommendations[0].estimated_benefit == 30.0

    def test_real_time_simple_query_is_not_cached(self):
        analysis = make_analysis(10.0, time_range=REAL_TIME)

        assert InMemoryResultCache().recommend_caching("q", analysis) == []

    @pytest.mark.asyncio
    async def test_low_hit_rate(self):
        cache = InMemoryResultCache()
        await cache.get("missing")

        titles = [r.title for r in cache.recommend_caching("q", make_analysis(10.0, time_range=REAL_TIME))]

        assert titles == ["Optimize cache strategy"]
