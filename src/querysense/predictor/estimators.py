"""Duration and resource estimators.

The predictor chooses from a closed set of estimator variants. Each one
implements ``predict(features) -> EstimatorOutput``; they differ only in
how they score the features.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Type

from ..core.exceptions import ErrorCodes, ModelError
from ..features import FeatureVector
from .models import EstimatorInfo, EstimatorOutput

# Rows assumed per table when the context carries no size estimate
ROWS_PER_TABLE = 1_000_000


def _load_fraction(features: FeatureVector) -> float:
    return features.system_load / 100


def _memory_available_fraction(features: FeatureVector) -> float:
    return features.memory_available / 100


class Estimator(ABC):
    """Base class of the estimator variants."""

    name: str = "estimator"
    version: str = "1.0.0"
    seed_accuracy: float = 0.5
    feature_names: List[str] = []

    def __init__(self) -> None:
        self.accuracy = self.seed_accuracy
        self.training_samples = 0
        self.last_updated = datetime.now()

    @abstractmethod
    def predict(self, features: FeatureVector) -> EstimatorOutput:
        """Estimate duration and resource usage."""

    def retrain(self, sample_count: int, *, step: float, ceiling: float) -> None:
        """Record a training pass and nudge accuracy toward ``ceiling``."""
        self.training_samples = sample_count
        self.last_updated = datetime.now()
        self.accuracy = min(self.accuracy + step, ceiling)

    def info(self) -> EstimatorInfo:
        return EstimatorInfo(
            name=self.name,
            version=self.version,
            accuracy=self.accuracy,
            training_samples=self.training_samples,
            last_updated=self.last_updated,
            features=list(self.feature_names),
        )


class LinearEstimator(Estimator):
    """Weighted sum of structural features and system load."""

    name = "linear_regression"
    seed_accuracy = 0.7
    feature_names = ["table_count", "join_count", "complexity_score", "data_volume_score", "system_load"]

    intercept = 100.0
    weights = {
        "table_count": 0.2,
        "join_count": 0.3,
        "complexity_score": 0.4,
        "rows": 0.1,
        "system_load": 0.2,
    }

    def predict(self, features: FeatureVector) -> EstimatorOutput:
        rows = features.data_volume_score or features.table_count * ROWS_PER_TABLE
        w = self.weights
        duration = (
            self.intercept
            + w["table_count"] * features.table_count
            + w["join_count"] * features.join_count
            + w["complexity_score"] * features.complexity_score
            + w["rows"] * rows * 0.001
            + w["system_load"] * _load_fraction(features) * 1000
        )
        return EstimatorOutput(
            duration=max(duration, 10.0),
            memory_usage=features.table_count * 64 + features.join_count * 128,
            cpu_usage=features.complexity_score * 0.1,
            io_operations=features.table_count * 100,
            network_traffic=features.column_count * 1024,
            confidence=self.accuracy,
        )


class DecisionTreeEstimator(Estimator):
    """Fixed threshold rules multiplying a base duration."""

    name = "decision_tree"
    seed_accuracy = 0.75
    feature_names = ["table_count", "join_count", "complexity_score", "system_load"]

    thresholds = {"table_count": 3, "join_count": 2, "complexity_score": 50, "system_load": 0.8}

    def predict(self, features: FeatureVector) -> EstimatorOutput:
        t = self.thresholds
        duration = 100.0
        if features.table_count > t["table_count"]:
            duration *= 2
        if features.join_count > t["join_count"]:
            duration *= 3
        if features.complexity_score > t["complexity_score"]:
            duration *= 1.5
        if _load_fraction(features) > t["system_load"]:
            duration *= 1.3
        return EstimatorOutput(
            duration=duration,
            memory_usage=duration * 0.5,
            cpu_usage=features.complexity_score * 0.2,
            io_operations=features.table_count * 150,
            network_traffic=features.column_count * 2048,
            confidence=self.accuracy,
        )


class NeuralNetworkEstimator(Estimator):
    """Single hidden ReLU layer over five inputs."""

    name = "neural_network"
    seed_accuracy = 0.85
    feature_names = ["table_count", "join_count", "complexity_score", "system_load", "memory_available"]

    input_hidden = 0.5
    hidden_bias = 0.1
    hidden_output = 0.3
    output_bias = 0.0

    def predict(self, features: FeatureVector) -> EstimatorOutput:
        inputs = [
            features.table_count,
            features.join_count,
            features.complexity_score,
            _load_fraction(features),
            _memory_available_fraction(features),
        ]
        hidden = [max(0.0, x * self.input_hidden + self.hidden_bias) for x in inputs]
        output = sum(h * self.hidden_output for h in hidden) + self.output_bias
        return EstimatorOutput(
            duration=max(output, 10.0),
            memory_usage=output * 0.3,
            cpu_usage=features.complexity_score * 0.15,
            io_operations=features.table_count * 120,
            network_traffic=features.column_count * 1536,
            confidence=self.accuracy,
        )


ESTIMATORS: Dict[str, Type[Estimator]] = {
    LinearEstimator.name: LinearEstimator,
    DecisionTreeEstimator.name: DecisionTreeEstimator,
    NeuralNetworkEstimator.name: NeuralNetworkEstimator,
}


def create_estimator(name: str) -> Estimator:
    """Instantiate a registered estimator.

    Raises:
        ModelError: If ``name`` is not a registered estimator
    """
    estimator_class = ESTIMATORS.get(name)
    if estimator_class is None:
        raise ModelError(
            f"Unknown estimator: {name}",
            code=ErrorCodes.MODEL_NOT_FOUND,
            context={"estimator": name, "available": sorted(ESTIMATORS)},
        )
    return estimator_class()


def combine(outputs: List[EstimatorOutput]) -> EstimatorOutput:
    """Accuracy-weighted average of estimator outputs.

    Raises:
        ModelError: If ``outputs`` is empty
    """
    if not outputs:
        raise ModelError("No estimator outputs to combine", code=ErrorCodes.ENSEMBLE_EMPTY)
    total = sum(o.confidence for o in outputs)
    if total <= 0:
        total = float(len(outputs))
        weights = [1.0] * len(outputs)
    else:
        weights = [o.confidence for o in outputs]

    def weighted(attribute: str) -> float:
        return sum(w * getattr(o, attribute) for w, o in zip(weights, outputs)) / total

    return EstimatorOutput(
        duration=weighted("duration"),
        memory_usage=weighted("memory_usage"),
        cpu_usage=weighted("cpu_usage"),
        io_operations=weighted("io_operations"),
        network_traffic=weighted("network_traffic"),
        confidence=weighted("confidence"),
    )
