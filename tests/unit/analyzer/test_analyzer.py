"""Unit tests for the query analyzer."""

from datetime import datetime, timedelta

import pytest

from querysense.analyzer import QueryAnalyzer
from querysense.analyzer.analyzer import (
    WARN_EMPTY_QUERY,
    WARN_MANY_JOINS,
    WARN_NO_LIMIT,
    WARN_NO_TIME_INDEX,
    WARN_NO_WHERE,
    WARN_UNGROUPED_AGGREGATION,
)
from querysense.analyzer.models import complexity_level
from querysense.config.models import AnalyzerConfig
from querysense.models import DataSize, IndexInfo, QueryContext, QueryExecutionResult, TimeRange

FOUR_JOIN_QUERY = (
    "SELECT * FROM readings r "
    "JOIN sensors s ON r.sensor_id = s.id "
    "JOIN sites t ON s.site_id = t.id "
    "LEFT JOIN regions g ON t.region_id = g.id "
    "JOIN owners o ON g.owner_id = o.id "
    "WHERE r.value > 10 LIMIT 100"
)


@pytest.fixture
def analyzer() -> QueryAnalyzer:
    return QueryAnalyzer(AnalyzerConfig(performance_history_size=5, frequent_query_threshold=2))


class TestAnalyze:
    """Test query analysis."""

    def test_unbounded_select_warns_about_limit(self, analyzer):
        analysis = analyzer.analyze("SELECT time, value FROM measurements WHERE time > '2023-01-01'")

        assert WARN_NO_LIMIT in analysis.warnings
        assert analysis.complexity.level in ("simple", "medium")
        assert analysis.pattern.tables == ["measurements"]

    def test_four_joins(self, analyzer):
        analysis = analyzer.analyze(FOUR_JOIN_QUERY)

        assert WARN_MANY_JOINS in analysis.warnings
        factors = {factor.name: factor.weight for factor in analysis.complexity.factors}
        assert factors["join_complexity"] == 80
        assert analysis.complexity.score >= 80
        assert "has_joins" in analysis.tags

    def test_complexity_is_sum_of_factors(self, analyzer):
        analysis = analyzer.analyze(
            "SELECT host, mean(value) FROM cpu WHERE region = 'eu' "
            "GROUP BY host ORDER BY host DESC LIMIT 10"
        )

        # 1 table, 1 condition, 1 aggregation, 1 sort column
        assert analysis.complexity.score == 10 + 5 + 15 + 10
        assert analysis.complexity.level == "medium"
        assert analysis.warnings == []

    def test_empty_query_yields_default_analysis(self, analyzer):
        analysis = analyzer.analyze("   ")

        assert analysis.warnings == [WARN_EMPTY_QUERY]
        assert analysis.complexity.score == 0
        assert analysis.complexity.level == "simple"
        assert analysis.pattern.tables == []

    def test_table_scan_and_ungrouped_aggregation_warnings(self, analyzer):
        analysis = analyzer.analyze("SELECT count(*) FROM cpu")

        assert WARN_NO_WHERE in analysis.warnings
        assert WARN_UNGROUPED_AGGREGATION in analysis.warnings

    def test_time_index_warning_depends_on_index_metadata(self, analyzer):
        query = "SELECT mean(value) FROM cpu WHERE time > now() - 1h GROUP BY time(5m) LIMIT 10"
        indexed = QueryContext(index_info=[IndexInfo(name="cpu_time", columns=["time"])])
        unindexed = QueryContext(index_info=[IndexInfo(name="cpu_host", columns=["host"])])

        assert WARN_NO_TIME_INDEX not in analyzer.analyze(query).warnings
        assert WARN_NO_TIME_INDEX not in analyzer.analyze(query, indexed).warnings
        assert WARN_NO_TIME_INDEX in analyzer.analyze(query, unindexed).warnings

    def test_tags(self, analyzer):
        analysis = analyzer.analyze(
            "SELECT mean(value) FROM cpu WHERE time > now() - 1h GROUP BY time(5m) ORDER BY time"
        )

        assert analysis.tags[0] == "select"
        assert f"complexity:{analysis.complexity.level}" in analysis.tags
        for tag in ("has_aggregations", "has_sorting", "time_series", "has_grouping"):
            assert tag in analysis.tags

    def test_resource_usage_scales_with_data_size(self, analyzer):
        query = "SELECT * FROM cpu WHERE host = 'a'"
        small = analyzer.analyze(query).resource_usage
        large = analyzer.analyze(
            query, QueryContext(data_size=DataSize(total_size=100 * 1024 ** 3))
        ).resource_usage

        assert small.estimated_memory == 64 + 32
        # Scale factor is capped at data_scale_cap (5.0)
        assert large.estimated_memory == pytest.approx(small.estimated_memory * 6)
        assert large.estimated_cpu == pytest.approx(small.estimated_cpu * 3.5)


@pytest.mark.parametrize("score,level", [
    (0, "simple"),
    (19, "simple"),
    (20, "medium"),
    (49, "medium"),
    (50, "complex"),
    (99, "complex"),
    (100, "very_complex"),
])
def test_complexity_level_thresholds(score, level):
    assert complexity_level(score) == level


class TestDependencies:
    """Test table-overlap dependency detection."""

    def test_shared_tables_create_dependencies(self, analyzer):
        dependencies = analyzer.analyze_dependencies([
            "CREATE TABLE rollups",
            "SELECT * FROM cpu",
            "INSERT INTO rollups SELECT mean(value) FROM cpu",
        ])

        pairs = {(d.source_index, d.dependent_index) for d in dependencies}
        assert pairs == {(0, 2), (1, 2)}

    def test_disjoint_queries_are_independent(self, analyzer):
        assert analyzer.analyze_dependencies(["SELECT * FROM cpu", "SELECT * FROM mem"]) == []


class TestPerformanceHistory:
    """Test recorded executions and statistics."""

    def test_history_is_bounded_per_query(self, analyzer):
        for i in range(8):
            analyzer.record_performance("SELECT * FROM cpu", QueryExecutionResult(execution_time=float(i)))

        history = analyzer.performance_history("select *  from CPU")

        assert [record.result.execution_time for record in history] == [3.0, 4.0, 5.0, 6.0, 7.0]

    def test_statistics(self, analyzer):
        analyzer.record_performance("SELECT * FROM cpu", QueryExecutionResult(execution_time=1500.0))
        analyzer.record_performance("SELECT * FROM cpu", QueryExecutionResult(execution_time=100.0))
        analyzer.record_performance(
            "SELECT * FROM cpu",
            QueryExecutionResult(execution_time=200.0, success=False, error="timeout"),
        )
        analyzer.record_performance(
            "SELECT * FROM mem", QueryExecutionResult(execution_time=200.0), connection_id="replica"
        )

        stats = analyzer.get_statistics()

        assert stats.total_queries == 4
        assert stats.avg_execution_time == pytest.approx(500.0)
        assert stats.error_rate == pytest.approx(0.25)
        assert [slow.execution_time for slow in stats.slow_queries] == [1500.0]
        assert [frequent.frequency for frequent in stats.frequent_queries] == [3]

    def test_statistics_filters(self, analyzer):
        now = datetime.now()
        analyzer.record_performance(
            "SELECT * FROM cpu", QueryExecutionResult(execution_time=10.0),
            connection_id="primary", timestamp=now - timedelta(days=2),
        )
        analyzer.record_performance(
            "SELECT * FROM mem", QueryExecutionResult(execution_time=20.0),
            connection_id="replica", timestamp=now,
        )

        by_connection = analyzer.get_statistics(connection_id="replica")
        by_time = analyzer.get_statistics(
            time_range=TimeRange(start=now - timedelta(hours=1), end=now + timedelta(hours=1))
        )

        assert by_connection.total_queries == 1
        assert by_time.total_queries == 1
        assert by_time.avg_execution_time == 20.0

    def test_empty_statistics(self, analyzer):
        stats = analyzer.get_statistics()

        assert stats.total_queries == 0
        assert stats.slow_queries == []
