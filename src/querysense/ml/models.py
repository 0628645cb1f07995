"""Data model of the ML optimizer."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from ..models import OptimizationTechnique, QueryContext

ModelType = Literal["regression", "classification", "clustering", "reinforcement"]


@dataclass
class MLModel:
    """Registry record of one learned model.

    Models are created with seed hyperparameters when the optimizer starts.
    They are never removed, only deactivated.
    """
    id: str
    name: str
    type: ModelType
    version: str
    accuracy: float
    training_samples: int = 0
    features: List[str] = field(default_factory=list)
    hyperparameters: Dict[str, Any] = field(default_factory=dict)
    last_trained: datetime = field(default_factory=datetime.now)
    is_active: bool = True


@dataclass
class MLAlternative:
    query: str
    score: float
    tradeoffs: List[str] = field(default_factory=list)


@dataclass
class MLPrediction:
    optimized_query: str
    confidence: float
    techniques: List[OptimizationTechnique] = field(default_factory=list)
    reasoning: List[str] = field(default_factory=list)
    alternatives: List[MLAlternative] = field(default_factory=list)


@dataclass
class PerformanceMetrics:
    """Measured performance attached to a training record."""
    execution_time: float
    memory_usage: float = 0.0
    cpu_usage: float = 0.0
    io_operations: float = 0.0
    network_traffic: float = 0.0
    rows_processed: int = 0


@dataclass
class UserFeedback:
    rating: int  # 1-5
    accepted: bool
    comments: Optional[str] = None
    actual_performance: Optional[PerformanceMetrics] = None


@dataclass
class MLTrainingData:
    original_query: str
    optimized_query: str
    performance: PerformanceMetrics
    feedback: UserFeedback
    context: QueryContext = field(default_factory=QueryContext)
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class ModelMetrics:
    """Evaluation metrics of one model on a held-out split."""
    accuracy: float
    precision: float
    recall: float
    f1_score: float
    mse: float
    mae: float
    r2_score: float
    samples: int = 0
