"""Data model of the performance predictor."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Literal

from ..features import FeatureVector
from ..models import QueryExecutionResult

Severity = Literal["low", "medium", "high", "critical"]
Cost = Literal["low", "medium", "high"]


@dataclass
class PredictedBottleneck:
    type: Literal["cpu", "memory", "disk", "network", "lock"]
    severity: Severity
    description: str
    probability: float
    impact: float
    mitigation: str


@dataclass
class PerformanceRecommendation:
    type: Literal["optimization", "resource", "configuration", "architecture"]
    priority: Literal["low", "medium", "high"]
    title: str
    description: str
    expected_improvement: float
    implementation_cost: Cost


@dataclass
class RiskFactor:
    factor: str
    risk_level: Literal["low", "medium", "high"]
    description: str
    probability: float
    impact: str


@dataclass
class EstimatorOutput:
    """Raw numeric output of one estimator."""
    duration: float
    memory_usage: float
    cpu_usage: float
    io_operations: float
    network_traffic: float
    confidence: float


@dataclass
class PerformancePrediction:
    estimated_duration: float
    estimated_memory_usage: float
    estimated_cpu_usage: float
    estimated_io_operations: float
    estimated_network_traffic: float
    confidence: float
    bottlenecks: List[PredictedBottleneck] = field(default_factory=list)
    recommendations: List[PerformanceRecommendation] = field(default_factory=list)
    risk_factors: List[RiskFactor] = field(default_factory=list)
    models_used: List[str] = field(default_factory=list)
    is_fallback: bool = False


@dataclass
class EstimatorInfo:
    """Introspection record of an estimator."""
    name: str
    version: str
    accuracy: float
    training_samples: int
    last_updated: datetime
    features: List[str]


@dataclass
class PredictionMetrics:
    """Rolling accuracy of predictions against observed executions."""
    accuracy: float = 0.0
    mean_absolute_error: float = 0.0
    mean_squared_error: float = 0.0
    prediction_count: int = 0
    evaluated_count: int = 0
    last_evaluated: datetime = field(default_factory=datetime.now)


@dataclass
class TrainingSample:
    features: FeatureVector
    actual: QueryExecutionResult
    timestamp: datetime
