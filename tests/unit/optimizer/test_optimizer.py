"""Unit tests for the query optimizer."""

import pytest

from querysense.analyzer import QueryAnalyzer
from querysense.config.models import OptimizerConfig
from querysense.models import DataSize, QueryContext
from querysense.optimizer import QueryOptimizer, calculate_confidence
from querysense.optimizer.rules import OptimizationRule, RuleResult
from querysense.models import OptimizationTechnique

JOIN_QUERY = (
    "SELECT host, mean(value) FROM cpu JOIN hosts ON cpu.host = hosts.name "
    "WHERE cpu.value > 1 GROUP BY host ORDER BY host LIMIT 10"
)
TIME_QUERY = "SELECT mean(value) FROM cpu WHERE time > now()-1h GROUP BY time(60s)"
FOUR_JOIN_QUERY = (
    "SELECT mean(value) FROM readings r "
    "JOIN sensors s ON r.sensor_id = s.id "
    "JOIN sites t ON s.site_id = t.id "
    "JOIN regions g ON t.region_id = g.id "
    "JOIN owners o ON g.owner_id = o.id "
    "WHERE time > now()-1h GROUP BY time(60s) LIMIT 100"
)


@pytest.fixture
def analyzer() -> QueryAnalyzer:
    return QueryAnalyzer()


@pytest.fixture
def rule_optimizer() -> QueryOptimizer:
    return QueryOptimizer(OptimizerConfig(enable_ml=False, enable_time_series_rewrites=False))


class TestOptimize:
    """Test rewrite layering."""

    def test_rule_rewrites(self, rule_optimizer, analyzer):
        result = rule_optimizer.optimize(JOIN_QUERY, analyzer.analyze(JOIN_QUERY))

        assert [t.name for t in result.techniques] == [
            "predicate_pushdown", "aggregation_optimization", "limit_pushdown",
        ]
        assert [t.impact for t in result.techniques] == ["high", "medium", "low"]
        assert result.estimated_improvement == 65
        assert result.confidence == pytest.approx(200 / 3)
        assert result.query == JOIN_QUERY

    def test_time_series_rewrites(self, analyzer):
        optimizer = QueryOptimizer(OptimizerConfig(enable_ml=False))

        result = optimizer.optimize(TIME_QUERY, analyzer.analyze(TIME_QUERY))

        assert result.query == "SELECT mean(value) FROM cpu WHERE time > now() - 1h GROUP BY time(1m)"
        names = [t.name for t in result.techniques]
        assert "time_range_optimization" in names
        assert "time_aggregation_optimization" in names

    def test_improvement_is_capped(self, analyzer):
        optimizer = QueryOptimizer()

        result = optimizer.optimize(FOUR_JOIN_QUERY, analyzer.analyze(FOUR_JOIN_QUERY))

        assert result.estimated_improvement == 95
        assert any(t.name.startswith("ML_") for t in result.techniques)

    def test_no_techniques(self, rule_optimizer, analyzer):
        result = rule_optimizer.optimize("SHOW MEASUREMENTS", analyzer.analyze("SHOW MEASUREMENTS"))

        assert result.techniques == []
        assert result.confidence == 0.0
        assert result.estimated_improvement == 0.0

    def test_custom_rules(self, analyzer):
        rule = OptimizationRule(
            name="drop_star",
            description="Project explicit columns",
            estimated_gain=40,
            predicate=lambda analysis: "*" in analysis.pattern.columns,
            apply=lambda query: RuleResult(query=query.replace("*", "value"), applied_to=["SELECT list"]),
        )
        optimizer = QueryOptimizer(
            OptimizerConfig(enable_ml=False, enable_time_series_rewrites=False), rules=[rule]
        )

        result = optimizer.optimize("SELECT * FROM cpu", analyzer.analyze("SELECT * FROM cpu"))

        assert result.query == "SELECT value FROM cpu"
        assert result.techniques[0].impact == "high"
        assert optimizer.rules == [rule]

    def test_failed_rule_is_skipped(self, analyzer):
        rule = OptimizationRule(
            name="noop",
            description="Never applies",
            estimated_gain=10,
            predicate=lambda analysis: True,
            apply=lambda query: RuleResult(query="broken", success=False),
        )
        optimizer = QueryOptimizer(
            OptimizerConfig(enable_ml=False, enable_time_series_rewrites=False), rules=[rule]
        )

        result = optimizer.optimize("SELECT * FROM cpu", analyzer.analyze("SELECT * FROM cpu"))

        assert result.query == "SELECT * FROM cpu"
        assert result.techniques == []


def test_calculate_confidence():
    def make(impact):
        return OptimizationTechnique(name=impact, description="", impact=impact)

    assert calculate_confidence([make("high"), make("high")]) == 100.0
    assert calculate_confidence([make("low")]) == pytest.approx(100 / 3)


class TestPlanning:
    """Test execution-step planning."""

    def test_steps_follow_clause_order(self, rule_optimizer, analyzer):
        steps = rule_optimizer.generate_steps(JOIN_QUERY, analyzer.analyze(JOIN_QUERY))

        assert [s.id for s in steps] == [
            "scan_0", "scan_1", "filter_2", "join_3", "aggregate_4", "sort_5", "limit_6",
        ]
        by_id = {s.id: s for s in steps}
        assert by_id["filter_2"].dependencies == ["scan_0", "scan_1"]
        assert by_id["join_3"].dependencies == ["filter_2"]
        assert by_id["limit_6"].dependencies == ["sort_5"]

    @pytest.mark.parametrize("query", [
        JOIN_QUERY,
        FOUR_JOIN_QUERY,
        "SELECT * FROM cpu LEFT JOIN hosts ON cpu.host = hosts.name ORDER BY time DESC",
        "SELECT count(*) FROM cpu",
        "",
    ])
    def test_dependencies_reference_earlier_steps(self, rule_optimizer, analyzer, query):
        steps = rule_optimizer.generate_steps(query, analyzer.analyze(query))

        seen = set()
        for step in steps:
            assert set(step.dependencies) <= seen
            seen.add(step.id)
        assert len(seen) == len(steps)

    def test_aggregate_follows_every_join(self, rule_optimizer, analyzer):
        steps = rule_optimizer.generate_steps(FOUR_JOIN_QUERY, analyzer.analyze(FOUR_JOIN_QUERY))

        ancestors = {}
        for step in steps:
            found = set(step.dependencies)
            for dependency in step.dependencies:
                found |= ancestors[dependency]
            ancestors[step.id] = found

        joins = {s.id for s in steps if s.operation == "JOIN"}
        aggregate = next(s for s in steps if s.operation == "AGGREGATE")
        limit = next(s for s in steps if s.operation == "LIMIT")
        assert len(joins) == 4
        assert sorted(aggregate.dependencies) == sorted(joins)
        assert joins <= ancestors[limit.id]

        info = rule_optimizer.analyze_parallelization(steps)
        for group in info.parallel_steps:
            assert aggregate.id not in group or not joins & set(group)

    def test_join_without_filter_depends_on_its_scans(self, rule_optimizer, analyzer):
        query = "SELECT * FROM cpu LEFT JOIN hosts ON cpu.host = hosts.name"
        steps = rule_optimizer.generate_steps(query, analyzer.analyze(query))

        join = next(s for s in steps if s.operation == "JOIN")
        assert join.dependencies == ["scan_0", "scan_1"]
        assert not join.can_parallelize

    def test_parallelization(self, rule_optimizer, analyzer):
        query = "SELECT * FROM cpu LEFT JOIN hosts ON cpu.host = hosts.name"
        steps = rule_optimizer.generate_steps(query, analyzer.analyze(query))

        info = rule_optimizer.analyze_parallelization(steps)

        assert info.parallel_steps == [["scan_0", "scan_1"]]
        assert info.max_degree_of_parallelism == 2
        assert info.bottlenecks == ["join_2"]

    def test_resource_requirements(self, rule_optimizer, analyzer):
        steps = rule_optimizer.generate_steps(JOIN_QUERY, analyzer.analyze(JOIN_QUERY))
        context = QueryContext(data_size=DataSize(total_size=2 * 1024 ** 3))

        bare = rule_optimizer.calculate_resource_requirements(steps)
        scaled = rule_optimizer.calculate_resource_requirements(steps, context)

        assert (bare.min_memory, bare.max_memory) == (512, 4096)
        assert bare.cpu_intensive and bare.io_intensive and bare.network_intensive
        assert (scaled.min_memory, scaled.max_memory) == (1536, 12288)

    def test_simple_scan_requirements(self, rule_optimizer, analyzer):
        steps = rule_optimizer.generate_steps("SELECT * FROM cpu", analyzer.analyze("SELECT * FROM cpu"))

        requirements = rule_optimizer.calculate_resource_requirements(steps)

        assert (requirements.min_memory, requirements.max_memory) == (64, 512)
        assert not requirements.cpu_intensive
        assert requirements.io_intensive
