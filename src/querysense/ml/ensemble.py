"""Confidence-weighted combination of model predictions."""

from dataclasses import replace
from typing import Dict, List, Sequence

from ..core.exceptions import ErrorCodes, ModelError
from ..models import OptimizationTechnique
from .models import MLPrediction


def merge_techniques(techniques: Sequence[OptimizationTechnique]) -> List[OptimizationTechnique]:
    """De-duplicate techniques by name.

    The first occurrence keeps its position; duplicates raise its estimated
    gain to the maximum seen and extend its ``applied_to`` targets.
    """
    merged: Dict[str, OptimizationTechnique] = {}
    for technique in techniques:
        existing = merged.get(technique.name)
        if existing is None:
            merged[technique.name] = replace(technique, applied_to=list(technique.applied_to))
            continue
        existing.estimated_gain = max(existing.estimated_gain, technique.estimated_gain)
        existing.applied_to.extend(t for t in technique.applied_to if t not in existing.applied_to)
    return list(merged.values())


def combine(predictions: Sequence[MLPrediction]) -> MLPrediction:
    """Merge per-model predictions into one.

    The optimized query comes from the most confident prediction. The
    confidence is the confidence-weighted mean of all confidences.

    Raises:
        ModelError: If ``predictions`` is empty
    """
    if not predictions:
        raise ModelError("No predictions to combine", code=ErrorCodes.ENSEMBLE_EMPTY)
    if len(predictions) == 1:
        return predictions[0]

    total_weight = sum(p.confidence for p in predictions)
    if total_weight > 0:
        confidence = sum(p.confidence * p.confidence for p in predictions) / total_weight
    else:
        confidence = 0.0

    best = max(predictions, key=lambda p: p.confidence)
    reasoning = list(dict.fromkeys(r for p in predictions for r in p.reasoning))

    return MLPrediction(
        optimized_query=best.optimized_query,
        confidence=confidence,
        techniques=merge_techniques([t for p in predictions for t in p.techniques]),
        reasoning=reasoning,
    )
