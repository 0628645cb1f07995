"""Unit tests for the performance predictor."""

from unittest.mock import MagicMock

import pytest

from querysense.config.models import PredictorConfig
from querysense.features import FeatureVector
from querysense.models import (
    ExecutionStep,
    QueryContext,
    QueryExecutionResult,
    ResourceRequirements,
    SystemLoad,
)
from querysense.predictor import PerformancePredictor
from querysense.predictor.estimators import (
    DecisionTreeEstimator,
    LinearEstimator,
    combine,
    create_estimator,
)
from querysense.predictor.models import EstimatorOutput
from querysense.core.exceptions import ModelError

SIMPLE_QUERY = "SELECT * FROM cpu WHERE host = 'a' LIMIT 10"
JOIN_QUERY = (
    "SELECT * FROM readings r "
    "JOIN sensors s ON r.sensor_id = s.id "
    "JOIN sites t ON s.site_id = t.id "
    "JOIN regions g ON t.region_id = g.id "
    "JOIN owners o ON g.owner_id = o.id "
    "WHERE r.value > 10 LIMIT 100"
)


@pytest.fixture
def predictor() -> PerformancePredictor:
    return PerformancePredictor(PredictorConfig(training_buffer_size=3, min_training_samples=2))


def _steps(costs, parallel=False):
    return [
        ExecutionStep(
            id=f"step_{i}",
            operation="TABLE_SCAN",
            description="scan",
            estimated_cost=cost,
            can_parallelize=parallel,
        )
        for i, cost in enumerate(costs)
    ]


class TestPredict:
    """Test prediction and estimator selection."""

    def test_simple_query_uses_linear_estimator(self, predictor):
        prediction = predictor.predict(SIMPLE_QUERY)

        assert prediction.models_used == ["linear_regression"]
        assert prediction.confidence == pytest.approx(0.7)
        assert prediction.estimated_duration >= 10.0
        assert not prediction.is_fallback

    def test_complex_query_uses_every_estimator(self, predictor):
        prediction = predictor.predict(JOIN_QUERY)

        assert prediction.models_used == ["linear_regression", "decision_tree", "neural_network"]

    def test_confident_predictions_are_cached(self, predictor):
        first = predictor.predict(JOIN_QUERY)

        assert first.confidence > 0.7
        assert predictor.predict(JOIN_QUERY) is first
        predictor.clear_cache()
        assert predictor.predict(JOIN_QUERY) is not first

    def test_loaded_system_reports_bottlenecks_and_risks(self, predictor, loaded_context):
        prediction = predictor.predict(SIMPLE_QUERY, loaded_context)

        assert {b.type for b in prediction.bottlenecks} == {"cpu", "memory", "disk", "network"}
        assert {r.factor for r in prediction.risk_factors} == {"System Load", "Memory Availability"}
        titles = {r.title for r in prediction.recommendations}
        assert "Increase memory allocation" in titles

    def test_internal_failure_returns_conservative_estimate(self):
        extractor = MagicMock()
        extractor.extract.side_effect = RuntimeError("feature failure")
        predictor = PerformancePredictor(extractor=extractor)

        prediction = predictor.predict(SIMPLE_QUERY)

        assert prediction.is_fallback
        assert prediction.estimated_duration == 1000.0
        assert prediction.confidence == 0.5
        assert [r.factor for r in prediction.risk_factors] == ["Unknown Performance"]


class TestEstimateDuration:
    """Test plan duration estimates."""

    def test_duration_increases_with_load(self):
        steps = _steps([400.0, 600.0])
        requirements = ResourceRequirements(
            min_memory=512, max_memory=2048, cpu_intensive=True, io_intensive=True
        )
        idle = QueryContext(system_load=SystemLoad(cpu_usage=10, memory_usage=10, disk_io=10))
        busy = QueryContext(system_load=SystemLoad(cpu_usage=95, memory_usage=95, disk_io=95))

        idle_duration = PerformancePredictor.estimate_duration(steps, requirements, idle)
        busy_duration = PerformancePredictor.estimate_duration(steps, requirements, busy)

        assert idle_duration == pytest.approx(1000.0)
        assert busy_duration == pytest.approx(1000.0 * 1.5 * 1.3 * 1.4)

    def test_parallel_steps_are_cheaper(self):
        requirements = ResourceRequirements(min_memory=64, max_memory=128)

        sequential = PerformancePredictor.estimate_duration(_steps([100.0] * 4), requirements)
        parallel = PerformancePredictor.estimate_duration(_steps([100.0] * 4, parallel=True), requirements)

        assert parallel < sequential
        assert parallel == pytest.approx(400.0 * 0.4)

    def test_minimum_duration(self):
        requirements = ResourceRequirements(min_memory=0, max_memory=0)

        assert PerformancePredictor.estimate_duration([], requirements) == 10.0


class TestLearning:
    """Test training buffer and accuracy tracking."""

    @pytest.mark.asyncio
    async def test_training_buffer_is_bounded(self, predictor):
        for i in range(5):
            await predictor.update_model(SIMPLE_QUERY, QueryExecutionResult(execution_time=100.0 + i))

        exported = predictor.export_training_data()
        assert predictor.training_sample_count == 3
        assert [sample["actual"]["execution_time"] for sample in exported] == [102.0, 103.0, 104.0]

    @pytest.mark.asyncio
    async def test_retraining_nudges_accuracy(self, predictor):
        for _ in range(3):
            await predictor.update_model(SIMPLE_QUERY, QueryExecutionResult(execution_time=100.0))

        linear = next(info for info in predictor.get_model_info() if info.name == "linear_regression")
        # Retraining runs once the buffer holds min_training_samples (second and third update)
        assert linear.accuracy == pytest.approx(0.72)
        assert linear.training_samples == 3

    @pytest.mark.asyncio
    async def test_accuracy_metrics_follow_cached_prediction(self, predictor, query_context):
        prediction = predictor.predict(SIMPLE_QUERY, query_context)

        await predictor.update_model(
            SIMPLE_QUERY,
            QueryExecutionResult(execution_time=prediction.estimated_duration),
            query_context,
        )

        metrics = predictor.get_prediction_metrics()
        assert metrics.evaluated_count == 1
        assert metrics.prediction_count == 1
        assert metrics.accuracy == pytest.approx(0.1)
        assert metrics.mean_absolute_error == pytest.approx(0.0)

    @pytest.mark.asyncio
    async def test_import_skips_malformed_samples(self, predictor):
        for i in range(2):
            await predictor.update_model(SIMPLE_QUERY, QueryExecutionResult(execution_time=50.0 * (i + 1)))
        records = predictor.export_training_data() + [{"features": "garbage"}]

        restored = PerformancePredictor(PredictorConfig(training_buffer_size=3, min_training_samples=2))
        accepted = restored.import_training_data(records)

        assert accepted == 2
        assert restored.training_sample_count == 2


class TestEstimators:
    """Test estimator variants and ensemble combination."""

    def test_registry(self):
        assert isinstance(create_estimator("decision_tree"), DecisionTreeEstimator)
        with pytest.raises(ModelError) as exc_info:
            create_estimator("gradient_boosting")
        assert exc_info.value.code == "MODEL_NOT_FOUND"

    def test_linear_estimator_uses_row_estimate(self):
        estimator = LinearEstimator()

        small = estimator.predict(FeatureVector(table_count=1, data_volume_score=1000))
        large = estimator.predict(FeatureVector(table_count=1, data_volume_score=10_000_000))

        assert large.duration > small.duration

    def test_combine_weights_by_confidence(self):
        combined = combine([
            EstimatorOutput(100.0, 10.0, 1.0, 1.0, 1.0, confidence=0.75),
            EstimatorOutput(200.0, 20.0, 2.0, 2.0, 2.0, confidence=0.25),
        ])

        assert combined.duration == pytest.approx(125.0)
        assert combined.memory_usage == pytest.approx(12.5)

    def test_combine_requires_outputs(self):
        with pytest.raises(ModelError):
            combine([])
