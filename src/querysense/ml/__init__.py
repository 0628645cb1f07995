"""ML optimizer: model registry, ensemble and online training."""

from .ensemble import combine, merge_techniques
from .evaluator import ModelEvaluator
from .models import (
    MLAlternative,
    MLModel,
    MLPrediction,
    MLTrainingData,
    ModelMetrics,
    PerformanceMetrics,
    UserFeedback,
)
from .optimizer import MLOptimizer
from .variants import (
    VARIANTS,
    ClassificationVariant,
    ModelVariant,
    RegressionVariant,
    ReinforcementVariant,
    ScoredPrediction,
    create_variant,
    seed_models,
)

__all__ = [
    "VARIANTS",
    "ClassificationVariant",
    "MLAlternative",
    "MLModel",
    "MLOptimizer",
    "MLPrediction",
    "MLTrainingData",
    "ModelEvaluator",
    "ModelMetrics",
    "ModelVariant",
    "PerformanceMetrics",
    "RegressionVariant",
    "ReinforcementVariant",
    "ScoredPrediction",
    "UserFeedback",
    "combine",
    "create_variant",
    "merge_techniques",
    "seed_models",
]
