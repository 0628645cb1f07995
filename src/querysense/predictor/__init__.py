"""Performance prediction from query features and live load."""

from .estimators import (
    ESTIMATORS,
    DecisionTreeEstimator,
    Estimator,
    LinearEstimator,
    NeuralNetworkEstimator,
    combine,
    create_estimator,
)
from .models import (
    EstimatorInfo,
    EstimatorOutput,
    PerformancePrediction,
    PerformanceRecommendation,
    PredictedBottleneck,
    PredictionMetrics,
    RiskFactor,
    TrainingSample,
)
from .predictor import PerformancePredictor

__all__ = [
    "ESTIMATORS",
    "DecisionTreeEstimator",
    "Estimator",
    "EstimatorInfo",
    "EstimatorOutput",
    "LinearEstimator",
    "NeuralNetworkEstimator",
    "PerformancePrediction",
    "PerformancePredictor",
    "PerformanceRecommendation",
    "PredictedBottleneck",
    "PredictionMetrics",
    "RiskFactor",
    "TrainingSample",
    "combine",
    "create_estimator",
]
