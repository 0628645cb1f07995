"""Unit tests for model variants, ensemble combination and evaluation."""

import pytest

from querysense.core.exceptions import ModelError
from querysense.features import FeatureVector
from querysense.ml.ensemble import combine, merge_techniques
from querysense.ml.evaluator import ModelEvaluator
from querysense.ml.models import MLPrediction, MLTrainingData, PerformanceMetrics, UserFeedback
from querysense.ml.variants import (
    ClassificationVariant,
    ReinforcementVariant,
    create_variant,
    seed_models,
)
from querysense.models import OptimizationTechnique


def technique(name: str, gain: float, target: str) -> OptimizationTechnique:
    return OptimizationTechnique(
        name=name, description=name, impact="medium", applied_to=[target], estimated_gain=gain
    )


@pytest.fixture
def models():
    return {model.id: model for model in seed_models()}


class TestVariants:
    """Test variant dispatch and scoring."""

    def test_seed_models(self, models):
        assert set(models) == {
            "linear_regression", "random_forest", "neural_network", "reinforcement_learning",
        }
        assert not models["reinforcement_learning"].is_active
        assert models["neural_network"].features == FeatureVector.names()

    def test_variant_dispatch_by_type(self, models):
        assert isinstance(create_variant(models["random_forest"]), ClassificationVariant)
        assert isinstance(create_variant(models["reinforcement_learning"]), ReinforcementVariant)

    @pytest.mark.parametrize("features,strategy", [
        (FeatureVector(join_count=1, aggregation_count=2), "join_reordering"),
        (FeatureVector(aggregation_count=2), "aggregation_pushdown"),
        (FeatureVector(), "index_optimization"),
    ])
    def test_classification(self, features, strategy):
        assert ClassificationVariant.classify(features) == strategy

    @pytest.mark.parametrize("features,action", [
        (FeatureVector(system_load=95, table_count=3), "resource_allocation"),
        (FeatureVector(table_count=2), "parallel_execution"),
        (FeatureVector(table_count=1), "cache_optimization"),
    ])
    def test_reinforcement_actions(self, features, action):
        assert ReinforcementVariant.choose_action(features) == action

    def test_regression_confidence_is_model_accuracy(self, models):
        scored = create_variant(models["linear_regression"]).predict(FeatureVector(join_count=3))

        assert scored.confidence == 0.7
        assert {t.name for t in scored.techniques} == {"ML_index_recommendation", "ML_join_optimization"}


class TestEnsemble:
    """Test merging of per-model predictions."""

    def test_merge_techniques_keeps_max_gain_and_targets(self):
        merged = merge_techniques([
            technique("a", 10, "WHERE"),
            technique("b", 20, "JOIN"),
            technique("a", 30, "GROUP BY"),
        ])

        assert [t.name for t in merged] == ["a", "b"]
        assert merged[0].estimated_gain == 30
        assert merged[0].applied_to == ["WHERE", "GROUP BY"]

    def test_merge_does_not_mutate_inputs(self):
        original = technique("a", 10, "WHERE")

        merge_techniques([original, technique("a", 30, "JOIN")])

        assert original.applied_to == ["WHERE"]
        assert original.estimated_gain == 10

    def test_combine(self):
        combined = combine([
            MLPrediction("q1", confidence=0.8, techniques=[technique("a", 10, "x")], reasoning=["r1"]),
            MLPrediction("q2", confidence=0.2, techniques=[technique("b", 5, "y")], reasoning=["r1", "r2"]),
        ])

        assert combined.optimized_query == "q1"
        assert combined.confidence == pytest.approx((0.64 + 0.04) / 1.0)
        assert combined.reasoning == ["r1", "r2"]
        assert [t.name for t in combined.techniques] == ["a", "b"]

    def test_combine_requires_predictions(self):
        with pytest.raises(ModelError) as exc_info:
            combine([])
        assert exc_info.value.code == "ENSEMBLE_EMPTY"


class TestEvaluator:
    """Test held-out evaluation."""

    def test_metrics(self, models):
        variant = create_variant(models["random_forest"])

        def sample(accepted: bool, rating: int):
            record = MLTrainingData(
                original_query="SELECT 1",
                optimized_query="SELECT 1",
                performance=PerformanceMetrics(execution_time=10.0),
                feedback=UserFeedback(rating=rating, accepted=accepted),
            )
            return FeatureVector(), record

        evaluator = ModelEvaluator()
        metrics = evaluator.evaluate(variant, [sample(True, 5), sample(False, 1)])

        # The classifier always proposes a technique
        assert metrics.precision == 0.5
        assert metrics.recall == 1.0
        assert metrics.accuracy == 0.5
        assert metrics.samples == 2
        assert evaluator.get_metrics("random_forest") is metrics

    def test_no_samples(self, models):
        with pytest.raises(ModelError):
            ModelEvaluator().evaluate(create_variant(models["linear_regression"]), [])
