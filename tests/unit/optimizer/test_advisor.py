"""Unit tests for recommendation generators and time-series rewrites."""

import pytest

from querysense.analyzer import QueryAnalyzer
from querysense.models import IndexInfo, QueryContext, SystemLoad
from querysense.optimizer.advisor import (
    recommend_configuration,
    recommend_indexes,
    recommend_rewrites,
)
from querysense.optimizer.timeseries import (
    has_time_grouping,
    normalize_time_buckets,
    normalize_time_range,
)


@pytest.fixture
def analyzer() -> QueryAnalyzer:
    return QueryAnalyzer()


class TestIndexRecommendations:
    """Test index advice."""

    def test_where_and_order_columns(self, analyzer):
        query = "SELECT * FROM cpu WHERE host = 'a' AND region = 'eu' ORDER BY time"

        recommendations = recommend_indexes(query, analyzer.analyze(query))

        titles = [r.title for r in recommendations]
        assert titles == [
            "Create index on host",
            "Create index on region",
            "Create composite index on (host, region)",
            "Create index for ORDER BY",
        ]
        assert recommendations[0].implementation == "CREATE INDEX idx_host ON cpu (host)"
        assert recommendations[2].implementation == "CREATE INDEX idx_composite_cpu ON cpu (host, region)"

    def test_existing_indexes_are_skipped(self, analyzer):
        query = "SELECT * FROM cpu WHERE host = 'a' ORDER BY time"
        context = QueryContext(index_info=[
            IndexInfo(name="cpu_host", columns=["host"]),
            IndexInfo(name="cpu_time", columns=["time"]),
        ])

        assert recommend_indexes(query, analyzer.analyze(query, context), context) == []

    def test_join_key_of_the_right_table(self, analyzer):
        query = "SELECT * FROM cpu JOIN hosts ON cpu.host = hosts.name"

        recommendations = recommend_indexes(query, analyzer.analyze(query))

        assert [r.title for r in recommendations] == ["Create index on join key hosts.name"]
        assert recommendations[0].implementation == "CREATE INDEX idx_hosts_name ON hosts (name)"

    def test_no_tables(self, analyzer):
        assert recommend_indexes("SHOW MEASUREMENTS", analyzer.analyze("SHOW MEASUREMENTS")) == []


def test_rewrite_recommendations(analyzer):
    query = "SELECT DISTINCT host FROM cpu WHERE EXISTS (SELECT 1 FROM mem) ORDER BY host LIMIT 5"

    recommendations = recommend_rewrites(query, analyzer.analyze(query))

    assert [r.title for r in recommendations] == [
        "Convert EXISTS to JOIN",
        "Optimize DISTINCT usage",
        "Optimize ORDER BY with LIMIT",
    ]
    assert all(r.type == "query_rewrite" for r in recommendations)


def test_configuration_recommendations(analyzer):
    query = (
        "SELECT * FROM readings r JOIN sensors s ON r.sensor_id = s.id "
        "JOIN sites t ON s.site_id = t.id JOIN regions g ON t.region_id = g.id "
        "ORDER BY r.time"
    )
    context = QueryContext(system_load=SystemLoad(memory_usage=90.0))
    analysis = analyzer.analyze(query, context)

    titles = [r.title for r in recommend_configuration(query, analysis, context)]

    assert "Enable parallel processing" in titles
    assert "Schedule memory-heavy query off-peak" in titles
    assert recommend_configuration("SELECT 1", analyzer.analyze("SELECT 1")) == []


class TestTimeSeriesRewrites:
    """Test time-range and time-bucket normalization."""

    @pytest.mark.parametrize("query,expected", [
        ("WHERE time > now()-1h", "WHERE time > now() - 1h"),
        ("WHERE time > NOW() -  30M", "WHERE time > now() - 30m"),
        (
            "WHERE time BETWEEN '2023-01-01' AND '2023-01-02'",
            "WHERE time >= '2023-01-01' AND time <= '2023-01-02'",
        ),
        ("WHERE host = 'a'", "WHERE host = 'a'"),
    ])
    def test_normalize_time_range(self, query, expected):
        assert normalize_time_range(query) == expected

    @pytest.mark.parametrize("bucket,expected", [
        ("time(60s)", "time(1m)"),
        ("time(7200s)", "time(2h)"),
        ("time(90s)", "time(90s)"),
        ("time(48h)", "time(2d)"),
        ("time(5m)", "time(5m)"),
    ])
    def test_normalize_time_buckets(self, bucket, expected):
        assert normalize_time_buckets(f"GROUP BY {bucket}") == f"GROUP BY {expected}"

    def test_has_time_grouping(self):
        assert has_time_grouping("SELECT 1 GROUP BY time(1m)")
        assert not has_time_grouping("SELECT 1 GROUP BY host")
