"""Model variants of the ML optimizer.

Every registered model record is served by exactly one variant, chosen by
the record's type from a closed registry. Variants share one capability,
``predict(features)``, and differ only in how they score the features.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List, Type

from ..core.exceptions import ErrorCodes, ModelError
from ..features import FeatureVector
from ..models import OptimizationTechnique
from .models import MLModel


@dataclass
class ScoredPrediction:
    """Output of a single variant before ensemble combination."""
    confidence: float
    techniques: List[OptimizationTechnique] = field(default_factory=list)
    reasoning: List[str] = field(default_factory=list)


class ModelVariant(ABC):
    """Scoring behaviour bound to one model record."""

    model_type: str = ""

    def __init__(self, model: MLModel) -> None:
        self.model = model

    @property
    def name(self) -> str:
        return self.model.id

    @abstractmethod
    def predict(self, features: FeatureVector) -> ScoredPrediction:
        """Score ``features`` and propose optimization techniques."""


class RegressionVariant(ModelVariant):
    """Weighted feature sum thresholded into technique proposals."""

    model_type = "regression"

    def predict(self, features: FeatureVector) -> ScoredPrediction:
        score = (
            features.complexity_score * 0.3
            + features.table_count * 0.2
            + features.join_count * 0.25
            + features.system_load * 0.25
        )
        techniques = []
        if score > 0.7:
            techniques.append(OptimizationTechnique(
                name="ML_index_recommendation",
                description="Machine learning recommended optimal indexes",
                impact="high",
                applied_to=["WHERE clauses"],
                estimated_gain=45,
            ))
        if features.join_count > 2:
            techniques.append(OptimizationTechnique(
                name="ML_join_optimization",
                description="ML-optimized join order and strategy",
                impact="high",
                applied_to=["JOIN clauses"],
                estimated_gain=35,
            ))
        return ScoredPrediction(
            confidence=self.model.accuracy,
            techniques=techniques,
            reasoning=["Regression model predicted optimal execution path"],
        )


_STRATEGY_TECHNIQUES = {
    "index_optimization": ("ML_smart_indexing", "ML-driven intelligent indexing strategy", "high", "Index selection", 50),
    "join_reordering": ("ML_join_reordering", "ML-optimized join execution order", "medium", "JOIN execution", 30),
    "aggregation_pushdown": ("ML_aggregation_optimization", "ML-guided aggregation optimization", "medium", "GROUP BY, HAVING", 25),
}


class ClassificationVariant(ModelVariant):
    """Classifies the query into one optimization strategy."""

    model_type = "classification"

    @staticmethod
    def classify(features: FeatureVector) -> str:
        if features.join_count > 0:
            return "join_reordering"
        if features.aggregation_count > 0:
            return "aggregation_pushdown"
        return "index_optimization"

    def predict(self, features: FeatureVector) -> ScoredPrediction:
        strategy = self.classify(features)
        name, description, impact, target, gain = _STRATEGY_TECHNIQUES[strategy]
        return ScoredPrediction(
            confidence=self.model.accuracy,
            techniques=[OptimizationTechnique(
                name=name,
                description=description,
                impact=impact,
                applied_to=[target],
                estimated_gain=gain,
            )],
            reasoning=[f"Classification model selected {strategy} strategy"],
        )


class ReinforcementVariant(ModelVariant):
    """Picks an execution action from the current environment state."""

    model_type = "reinforcement"

    @staticmethod
    def choose_action(features: FeatureVector) -> str:
        if features.system_load > 80:
            return "resource_allocation"
        if features.table_count > 1 or features.join_count > 0:
            return "parallel_execution"
        return "cache_optimization"

    def predict(self, features: FeatureVector) -> ScoredPrediction:
        action = self.choose_action(features)
        return ScoredPrediction(
            confidence=self.model.accuracy,
            techniques=[OptimizationTechnique(
                name="RL_dynamic_optimization",
                description="Reinforcement learning adaptive optimization",
                impact="high",
                applied_to=["Execution strategy"],
                estimated_gain=40,
            )],
            reasoning=[f"RL model selected {action} as optimal action"],
        )


VARIANTS: Dict[str, Type[ModelVariant]] = {
    RegressionVariant.model_type: RegressionVariant,
    ClassificationVariant.model_type: ClassificationVariant,
    ReinforcementVariant.model_type: ReinforcementVariant,
}


def create_variant(model: MLModel) -> ModelVariant:
    """Bind the registered variant for ``model.type`` to ``model``.

    Raises:
        ModelError: If no variant serves the model type
    """
    variant_class = VARIANTS.get(model.type)
    if variant_class is None:
        raise ModelError(
            f"Unsupported model type: {model.type}",
            code=ErrorCodes.MODEL_UNSUPPORTED_TYPE,
            context={"model_id": model.id, "type": model.type},
        )
    return variant_class(model)


def seed_models() -> List[MLModel]:
    """Model records the optimizer starts with."""
    return [
        MLModel(
            id="linear_regression",
            name="Linear Regression Optimizer",
            type="regression",
            version="1.0.0",
            accuracy=0.7,
            features=["query_length", "table_count", "join_count", "complexity_score"],
            hyperparameters={"learning_rate": 0.01, "regularization": 0.1},
        ),
        MLModel(
            id="random_forest",
            name="Random Forest Optimizer",
            type="classification",
            version="1.0.0",
            accuracy=0.82,
            features=["query_length", "table_count", "join_count", "aggregation_count", "system_load"],
            hyperparameters={"n_estimators": 100, "max_depth": 10, "min_samples_split": 2},
        ),
        MLModel(
            id="neural_network",
            name="Neural Network Optimizer",
            type="regression",
            version="1.0.0",
            accuracy=0.85,
            features=FeatureVector.names(),
            hyperparameters={
                "hidden_layers": [64, 32, 16],
                "activation": "relu",
                "optimizer": "adam",
                "learning_rate": 0.001,
            },
        ),
        MLModel(
            id="reinforcement_learning",
            name="RL Query Optimizer",
            type="reinforcement",
            version="1.0.0",
            accuracy=0.78,
            features=["system_load", "memory_available", "disk_utilization", "network_latency"],
            hyperparameters={"algorithm": "PPO", "gamma": 0.99, "epsilon": 0.2},
            is_active=False,
        ),
    ]
