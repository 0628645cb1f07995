"""Held-out evaluation of ML model variants."""

from typing import Dict, Optional, Sequence, Tuple

from ..core.exceptions import ErrorCodes, ModelError
from ..features import FeatureVector
from .models import MLTrainingData, ModelMetrics
from .variants import ModelVariant

LabelledSample = Tuple[FeatureVector, MLTrainingData]


class ModelEvaluator:
    """Scores variants against accepted/rated training records.

    A record counts as a positive example when the user accepted the
    optimization. A variant predicts positive when it proposes at least one
    technique. The regression target is the user rating scaled to [0, 1].
    """

    def __init__(self) -> None:
        self._metrics: Dict[str, ModelMetrics] = {}

    def evaluate(self, variant: ModelVariant, samples: Sequence[LabelledSample]) -> ModelMetrics:
        """Evaluate ``variant`` on ``samples`` and remember the metrics.

        Raises:
            ModelError: If there are no samples to evaluate on
        """
        if not samples:
            raise ModelError(
                f"No evaluation samples for model {variant.name}",
                code=ErrorCodes.MODEL_INVOCATION_FAILED,
                context={"model_id": variant.name},
            )

        tp = fp = tn = fn = 0
        squared_errors = []
        absolute_errors = []
        targets = []

        for features, record in samples:
            scored = variant.predict(features)
            predicted = bool(scored.techniques)
            actual = record.feedback.accepted
            if predicted and actual:
                tp += 1
            elif predicted:
                fp += 1
            elif actual:
                fn += 1
            else:
                tn += 1

            target = min(max(record.feedback.rating, 0), 5) / 5
            estimate = scored.confidence if predicted else 0.0
            targets.append(target)
            squared_errors.append((estimate - target) ** 2)
            absolute_errors.append(abs(estimate - target))

        n = len(samples)
        precision = tp / (tp + fp) if tp + fp else 0.0
        recall = tp / (tp + fn) if tp + fn else 0.0
        f1 = 2 * precision * recall / (precision + recall) if precision + recall else 0.0

        mean_target = sum(targets) / n
        total_variance = sum((t - mean_target) ** 2 for t in targets)
        r2 = 1 - sum(squared_errors) / total_variance if total_variance else 0.0

        metrics = ModelMetrics(
            accuracy=(tp + tn) / n,
            precision=precision,
            recall=recall,
            f1_score=f1,
            mse=sum(squared_errors) / n,
            mae=sum(absolute_errors) / n,
            r2_score=r2,
            samples=n,
        )
        self._metrics[variant.name] = metrics
        return metrics

    def get_metrics(self, model_id: str) -> Optional[ModelMetrics]:
        return self._metrics.get(model_id)
