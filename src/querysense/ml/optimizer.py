"""ML optimizer.

Runs a selection of registered model variants over a query's feature vector
and merges their proposals. Training records accumulate in a bounded buffer;
every ``retrain_every`` additions trigger a training pass.
"""

import asyncio
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from ..analyzer.analyzer import QueryAnalyzer
from ..analyzer.models import QueryAnalysis
from ..config.models import MLConfig
from ..core.base import BaseComponent
from ..core.buffers import BoundedBuffer
from ..core.exceptions import ModelError
from ..features import FeatureExtractor, FeatureVector
from ..models import QueryContext
from .ensemble import combine
from .evaluator import LabelledSample, ModelEvaluator
from .models import MLAlternative, MLModel, MLPrediction, MLTrainingData, ModelMetrics
from .variants import ModelVariant, create_variant, seed_models

_RECORD_ADAPTER = TypeAdapter(MLTrainingData)

FALLBACK_CONFIDENCE = 0.3
MODEL_FAILURE_CONFIDENCE = 0.1


class MLOptimizer(BaseComponent[MLConfig]):
    """Ensemble of learned scoring models proposing optimization techniques.

    Example:
        >>> ml = MLOptimizer(MLConfig())
        >>> prediction = ml.optimize_query(query, analyzer.analyze(query))
        >>> [t.name for t in prediction.techniques]
        ['ML_index_recommendation']
    """

    component_name = "ml_optimizer"

    def __init__(
        self,
        config: Optional[MLConfig] = None,
        *,
        analyzer: Optional[QueryAnalyzer] = None,
        extractor: Optional[FeatureExtractor] = None,
    ) -> None:
        super().__init__(config or MLConfig())
        self._analyzer = analyzer or QueryAnalyzer()
        self._extractor = extractor or FeatureExtractor(
            performance_lookup=self._analyzer.performance_history
        )
        self._models: Dict[str, MLModel] = {model.id: model for model in seed_models()}
        self._training_data: BoundedBuffer[MLTrainingData] = BoundedBuffer(
            self.config.training_buffer_size
        )
        self._evaluator = ModelEvaluator()
        self._training_lock = asyncio.Lock()
        self._initialized = True

    def optimize_query(
        self,
        query: str,
        analysis: QueryAnalysis,
        context: Optional[QueryContext] = None,
    ) -> MLPrediction:
        """Propose techniques for ``query``; never raises."""
        try:
            features = self._extractor.extract(query, analysis, context)
            models = self.select_models(features)
            combined = combine([self._predict_with(model, features, query) for model in models])
        except Exception as e:
            self.logger.warning(
                "ML optimization failed, using fallback",
                error=str(e),
                error_type=type(e).__name__,
            )
            return MLPrediction(
                optimized_query=query,
                confidence=FALLBACK_CONFIDENCE,
                reasoning=["ML optimization failed, using fallback"],
            )

        combined.alternatives = self.generate_alternatives(query, features)
        return combined

    def select_models(self, features: FeatureVector) -> List[MLModel]:
        """Active models to invoke for a feature vector.

        Low complexity uses the first regression model, medium complexity
        every regression and classification model, high complexity every
        active model.
        """
        active = [model for model in self._models.values() if model.is_active]
        complexity = features.complexity_estimate()
        if complexity < 0.3:
            return [model for model in active if model.type == "regression"][:1]
        if complexity < 0.7:
            return [model for model in active if model.type in ("regression", "classification")]
        return active

    def _predict_with(self, model: MLModel, features: FeatureVector, query: str) -> MLPrediction:
        try:
            scored = create_variant(model).predict(features)
        except ModelError as e:
            self.logger.warning("Model prediction failed", model_id=model.id, error=str(e))
            return MLPrediction(
                optimized_query=query,
                confidence=MODEL_FAILURE_CONFIDENCE,
                reasoning=[f"Model {model.name} failed"],
            )
        return MLPrediction(
            optimized_query=query,
            confidence=scored.confidence,
            techniques=scored.techniques,
            reasoning=[f"Optimized using {model.name}", *scored.reasoning],
        )

    @staticmethod
    def generate_alternatives(query: str, features: FeatureVector) -> List[MLAlternative]:
        alternatives = []
        if features.complexity_score > 0.5:
            alternatives.append(MLAlternative(
                query=query,
                score=0.8,
                tradeoffs=["Higher accuracy", "Slightly slower execution"],
            ))
        if features.join_count > 1:
            alternatives.append(MLAlternative(
                query=query,
                score=0.7,
                tradeoffs=["Better memory usage", "May require more CPU"],
            ))
        return alternatives

    async def add_training_data(self, record: MLTrainingData) -> None:
        """Append a training record, training every ``retrain_every`` additions."""
        evicted = self._training_data.append(record)
        if evicted is not None:
            self.logger.debug("Oldest ML training record evicted")
        if self._training_data.total_appended % self.config.retrain_every == 0:
            await self.train_models()

    async def train_models(self, data: Optional[Sequence[MLTrainingData]] = None) -> bool:
        """Run a training pass over ``data`` or the buffered records.

        Returns:
            True if a pass ran, False if there were too few samples
        """
        records = list(data) if data is not None else self._training_data.snapshot()
        if len(records) < self.config.min_training_samples:
            self.logger.debug(
                "Insufficient training data for ML models",
                samples=len(records),
                required=self.config.min_training_samples,
            )
            return False

        async with self._training_lock:
            samples = self._prepare(records)
            train_set, validation_set, test_set = self.split(samples)
            self._activate_dormant_models(len(records))

            for model in self._models.values():
                if not model.is_active:
                    continue
                model.training_samples = len(train_set)
                model.last_trained = datetime.now()
                model.accuracy = min(
                    model.accuracy + self.config.accuracy_step,
                    self.config.accuracy_ceiling,
                )
                await asyncio.sleep(0)

            self._evaluate(test_set)

        self.logger.info(
            "ML models trained",
            samples=len(samples),
            train=len(train_set),
            validation=len(validation_set),
            test=len(test_set),
        )
        return True

    def _prepare(self, records: Sequence[MLTrainingData]) -> List[LabelledSample]:
        samples = []
        for record in records:
            execution_time = record.performance.execution_time
            if not 0 < execution_time < self.config.max_execution_time_ms:
                continue
            if record.feedback.rating <= 0:
                continue
            analysis = self._analyzer.analyze(record.original_query, record.context)
            features = self._extractor.extract(record.original_query, analysis, record.context)
            samples.append((features, record))
        return samples

    def split(
        self,
        samples: Sequence[LabelledSample],
    ) -> Tuple[List[LabelledSample], List[LabelledSample], List[LabelledSample]]:
        """Split samples in order into train, validation and test sets."""
        train_size = int(len(samples) * self.config.train_ratio)
        validation_size = int(len(samples) * self.config.validation_ratio)
        return (
            list(samples[:train_size]),
            list(samples[train_size:train_size + validation_size]),
            list(samples[train_size + validation_size:]),
        )

    def _activate_dormant_models(self, sample_count: int) -> None:
        if sample_count < self.config.activation_samples:
            return
        for model in self._models.values():
            if not model.is_active:
                model.is_active = True
                self.logger.info("ML model activated", model_id=model.id, samples=sample_count)

    def _evaluate(self, test_set: Sequence[LabelledSample]) -> None:
        if not test_set:
            return
        for model in self._models.values():
            if not model.is_active:
                continue
            try:
                variant: ModelVariant = create_variant(model)
                self._evaluator.evaluate(variant, test_set)
            except ModelError as e:
                self.logger.warning("Model evaluation failed", model_id=model.id, error=str(e))

    def get_model_info(self) -> List[MLModel]:
        return list(self._models.values())

    def get_model_metrics(self, model_id: str) -> Optional[ModelMetrics]:
        """Latest evaluation metrics of a model, or None if unknown or unevaluated."""
        if model_id not in self._models:
            return None
        return self._evaluator.get_metrics(model_id)

    def register_model(self, model: MLModel) -> None:
        """Add or replace a model record.

        Raises:
            ModelError: If no variant serves the model type
        """
        create_variant(model)
        self._models[model.id] = model

    def deactivate_model(self, model_id: str) -> bool:
        model = self._models.get(model_id)
        if model is None:
            return False
        model.is_active = False
        return True

    @property
    def training_sample_count(self) -> int:
        return len(self._training_data)

    def export_training_data(self) -> List[Dict[str, Any]]:
        return [_RECORD_ADAPTER.dump_python(record, mode="json") for record in self._training_data]

    def import_training_data(self, records: Sequence[Any]) -> int:
        """Replace the buffer with the valid ``records``, newest kept on overflow.

        Returns:
            Number of records accepted
        """
        accepted = []
        for record in records:
            try:
                accepted.append(_RECORD_ADAPTER.validate_python(record))
            except PydanticValidationError:
                continue
        if len(accepted) < len(records):
            self.logger.warning(
                "Skipped malformed ML training records",
                skipped=len(records) - len(accepted),
            )
        self._training_data.replace(accepted[-self._training_data.capacity:])
        return len(accepted)

    def get_metrics(self) -> Dict[str, Any]:
        metrics = super().get_metrics()
        metrics.update({
            "training_samples": len(self._training_data),
            "active_models": sum(1 for m in self._models.values() if m.is_active),
        })
        return metrics
