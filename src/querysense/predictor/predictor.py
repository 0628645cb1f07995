"""Performance predictor.

Predicts duration and resource usage for a query from its feature vector,
then derives bottlenecks, recommendations and risk factors from fixed
thresholds. Predictions never fail: any internal error yields a labelled
conservative estimate.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from ..analyzer.analyzer import QueryAnalyzer
from ..analyzer.models import QueryAnalysis
from ..config.models import PredictorConfig
from ..core.base import BaseComponent
from ..core.buffers import BoundedBuffer, LRUCache
from ..core.exceptions import ErrorCodes, PredictionError
from ..core.utils import QueryText
from ..features import FeatureExtractor, FeatureVector
from ..models import (
    ExecutionStep,
    QueryContext,
    QueryExecutionResult,
    ResourceRequirements,
)
from .estimators import Estimator, combine, create_estimator
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

_CONTEXT_ADAPTER = TypeAdapter(QueryContext)
_SAMPLE_ADAPTER = TypeAdapter(TrainingSample)

_ACCURACY_STEP = 0.01

_BOTTLENECK_RECOMMENDATIONS = {
    "cpu": PerformanceRecommendation(
        type="optimization",
        priority="high",
        title="Optimize CPU-intensive operations",
        description="Reduce computational complexity or parallelize operations",
        expected_improvement=30,
        implementation_cost="medium",
    ),
    "memory": PerformanceRecommendation(
        type="resource",
        priority="high",
        title="Increase memory allocation",
        description="Add more RAM or optimize memory usage",
        expected_improvement=40,
        implementation_cost="low",
    ),
    "disk": PerformanceRecommendation(
        type="optimization",
        priority="medium",
        title="Optimize disk I/O",
        description="Add indexes or use faster storage",
        expected_improvement=50,
        implementation_cost="medium",
    ),
    "network": PerformanceRecommendation(
        type="architecture",
        priority="medium",
        title="Optimize network usage",
        description="Reduce data transfer or improve network infrastructure",
        expected_improvement=25,
        implementation_cost="high",
    ),
}


class PerformancePredictor(BaseComponent[PredictorConfig]):
    """Selects and combines estimators to predict query performance.

    Example:
        >>> predictor = PerformancePredictor(PredictorConfig())
        >>> prediction = predictor.predict("SELECT * FROM cpu LIMIT 10")
        >>> prediction.models_used
        ['linear_regression']
    """

    component_name = "predictor"

    def __init__(
        self,
        config: Optional[PredictorConfig] = None,
        *,
        analyzer: Optional[QueryAnalyzer] = None,
        extractor: Optional[FeatureExtractor] = None,
    ) -> None:
        super().__init__(config or PredictorConfig())
        self._analyzer = analyzer or QueryAnalyzer()
        self._extractor = extractor or FeatureExtractor(
            performance_lookup=self._analyzer.performance_history
        )
        self._estimators: Dict[str, Estimator] = {
            name: create_estimator(name)
            for name in ("linear_regression", "decision_tree", "neural_network")
        }
        self._training_data: BoundedBuffer[TrainingSample] = BoundedBuffer(
            self.config.training_buffer_size
        )
        self._cache: LRUCache[str, PerformancePrediction] = LRUCache(
            self.config.prediction_cache_size
        )
        self._metrics = PredictionMetrics()
        self._initialized = True

    def predict(
        self,
        query: str,
        context: Optional[QueryContext] = None,
        *,
        analysis: Optional[QueryAnalysis] = None,
    ) -> PerformancePrediction:
        """Predict performance of ``query`` under ``context``."""
        cache_key = self._cache_key(query, context)
        cached = self._cache.get(cache_key)
        if cached is not None and cached.confidence > self.config.cache_confidence_threshold:
            return cached

        try:
            analysis = analysis or self._analyzer.analyze(query, context)
            features = self._extractor.extract(query, analysis, context)
            estimators = self.select_estimators(features)
            output = combine([estimator.predict(features) for estimator in estimators])
        except Exception as e:
            error = PredictionError(
                "Performance prediction failed",
                code=ErrorCodes.PREDICTION_FAILED,
                context={"cache_key": cache_key},
                cause=e,
            )
            self.logger.warning("Using conservative estimate", error=error.to_dict())
            return self.conservative_estimate()

        bottlenecks = self.identify_bottlenecks(output, features)
        prediction = PerformancePrediction(
            estimated_duration=output.duration,
            estimated_memory_usage=output.memory_usage,
            estimated_cpu_usage=output.cpu_usage,
            estimated_io_operations=output.io_operations,
            estimated_network_traffic=output.network_traffic,
            confidence=output.confidence,
            bottlenecks=bottlenecks,
            recommendations=self.generate_recommendations(output, bottlenecks),
            risk_factors=self.assess_risk_factors(features),
            models_used=[estimator.name for estimator in estimators],
        )
        self._cache.set(cache_key, prediction)
        self._metrics.prediction_count += 1
        return prediction

    def select_estimators(self, features: FeatureVector) -> List[Estimator]:
        """Pick the estimator ensemble for a feature vector.

        Low complexity uses the linear estimator alone, medium adds the
        decision tree and high complexity uses every estimator.
        """
        complexity = features.complexity_estimate()
        if complexity < 0.3:
            names = ["linear_regression"]
        elif complexity < 0.7:
            names = ["linear_regression", "decision_tree"]
        else:
            names = list(self._estimators)
        return [self._estimators[name] for name in names]

    @staticmethod
    def identify_bottlenecks(
        output: EstimatorOutput,
        features: FeatureVector,
    ) -> List[PredictedBottleneck]:
        load = features.system_load / 100
        memory_available = features.memory_available / 100
        disk_utilization = features.disk_utilization / 100
        bottlenecks = []

        if output.cpu_usage > 80 or load > 0.8:
            bottlenecks.append(PredictedBottleneck(
                type="cpu",
                severity="critical" if output.cpu_usage > 90 else "high",
                description="High CPU usage expected due to complex operations",
                probability=0.8,
                impact=output.cpu_usage,
                mitigation="Consider query optimization or adding more CPU cores",
            ))
        if output.memory_usage > 1024 or memory_available < 0.2:
            bottlenecks.append(PredictedBottleneck(
                type="memory",
                severity="critical" if output.memory_usage > 2048 else "high",
                description="High memory usage expected due to large joins or aggregations",
                probability=0.7,
                impact=output.memory_usage,
                mitigation="Optimize joins or increase available memory",
            ))
        if output.io_operations > 1000 or disk_utilization > 0.8:
            bottlenecks.append(PredictedBottleneck(
                type="disk",
                severity="critical" if output.io_operations > 5000 else "medium",
                description="High disk I/O expected due to table scans",
                probability=0.6,
                impact=output.io_operations,
                mitigation="Add indexes or use SSD storage",
            ))
        if output.network_traffic > 10240 or features.network_latency > 100:
            bottlenecks.append(PredictedBottleneck(
                type="network",
                severity="high" if output.network_traffic > 51200 else "medium",
                description="High network traffic expected due to large result sets",
                probability=0.5,
                impact=output.network_traffic,
                mitigation="Optimize data transfer or use local processing",
            ))
        return bottlenecks

    @staticmethod
    def generate_recommendations(
        output: EstimatorOutput,
        bottlenecks: Sequence[PredictedBottleneck],
    ) -> List[PerformanceRecommendation]:
        recommendations = [
            _BOTTLENECK_RECOMMENDATIONS[b.type]
            for b in bottlenecks
            if b.type in _BOTTLENECK_RECOMMENDATIONS
        ]
        if output.duration > 10000:
            recommendations.append(PerformanceRecommendation(
                type="optimization",
                priority="high",
                title="Overall query optimization needed",
                description="Query is predicted to be slow, consider comprehensive optimization",
                expected_improvement=60,
                implementation_cost="high",
            ))
        return recommendations

    @staticmethod
    def assess_risk_factors(features: FeatureVector) -> List[RiskFactor]:
        risks = []
        if features.complexity_score > 100:
            risks.append(RiskFactor(
                factor="Query Complexity",
                risk_level="high",
                description="Query has high complexity score",
                probability=0.8,
                impact="May cause performance degradation",
            ))
        if features.system_load / 100 > 0.8:
            risks.append(RiskFactor(
                factor="System Load",
                risk_level="high",
                description="System is under high load",
                probability=0.9,
                impact="May cause query timeout or failure",
            ))
        if features.memory_available / 100 < 0.2:
            risks.append(RiskFactor(
                factor="Memory Availability",
                risk_level="medium",
                description="Low memory availability",
                probability=0.7,
                impact="May cause out-of-memory errors",
            ))
        return risks

    @staticmethod
    def conservative_estimate() -> PerformancePrediction:
        """Fixed estimate returned when prediction fails."""
        return PerformancePrediction(
            estimated_duration=1000.0,
            estimated_memory_usage=256.0,
            estimated_cpu_usage=50.0,
            estimated_io_operations=100.0,
            estimated_network_traffic=1024.0,
            confidence=0.5,
            recommendations=[PerformanceRecommendation(
                type="optimization",
                priority="medium",
                title="Performance analysis unavailable",
                description="Unable to perform detailed analysis, consider manual optimization",
                expected_improvement=20,
                implementation_cost="medium",
            )],
            risk_factors=[RiskFactor(
                factor="Unknown Performance",
                risk_level="medium",
                description="Performance characteristics unknown",
                probability=0.5,
                impact="Unpredictable performance",
            )],
            is_fallback=True,
        )

    @staticmethod
    def estimate_duration(
        steps: Sequence[ExecutionStep],
        requirements: ResourceRequirements,
        context: Optional[QueryContext] = None,
    ) -> float:
        """Estimate plan duration from step costs and live load.

        Intensive resource classes are penalised when the matching load is
        high, then parallelizable steps reduce the total by up to 60%.
        """
        duration = float(sum(step.estimated_cost for step in steps))

        if context is not None:
            load = context.system_load
            if requirements.cpu_intensive and load.cpu_usage > 80:
                duration *= 1.5
            if requirements.max_memory > 1024 and load.memory_usage > 80:
                duration *= 1.3
            if requirements.io_intensive and load.disk_io > 80:
                duration *= 1.4
            if requirements.network_intensive and load.network_latency > 100:
                duration *= 1.2

        parallel = sum(1 for step in steps if step.can_parallelize)
        if parallel > 1:
            duration *= 1 - min(parallel * 0.15, 0.6)

        return max(duration, 10.0)

    async def update_model(
        self,
        query: str,
        actual: QueryExecutionResult,
        context: Optional[QueryContext] = None,
    ) -> None:
        """Learn from an observed execution of ``query``."""
        analysis = self._analyzer.analyze(query, context)
        features = self._extractor.extract(query, analysis, context)
        evicted = self._training_data.append(
            TrainingSample(features=features, actual=actual, timestamp=datetime.now())
        )
        if evicted is not None:
            self.logger.debug("Oldest training sample evicted", buffer_size=len(self._training_data))

        if len(self._training_data) >= self.config.min_training_samples:
            self._retrain()

        self._update_accuracy(query, actual, context)

    def _retrain(self) -> None:
        sample_count = len(self._training_data)
        for estimator in self._estimators.values():
            estimator.retrain(
                sample_count,
                step=_ACCURACY_STEP,
                ceiling=self.config.accuracy_ceiling,
            )
        self.logger.debug("Estimators retrained", samples=sample_count)

    def _update_accuracy(
        self,
        query: str,
        actual: QueryExecutionResult,
        context: Optional[QueryContext],
    ) -> None:
        prediction = self._cache.peek(self._cache_key(query, context))
        if prediction is None or actual.execution_time <= 0:
            return

        error = prediction.estimated_duration - actual.execution_time
        accuracy = max(0.0, 1 - abs(error) / actual.execution_time)
        weight = self.config.ema_weight
        metrics = self._metrics
        metrics.accuracy = metrics.accuracy * (1 - weight) + accuracy * weight
        metrics.mean_absolute_error = metrics.mean_absolute_error * (1 - weight) + abs(error) * weight
        metrics.mean_squared_error = metrics.mean_squared_error * (1 - weight) + error ** 2 * weight
        metrics.evaluated_count += 1
        metrics.last_evaluated = datetime.now()

    @staticmethod
    def _cache_key(query: str, context: Optional[QueryContext]) -> str:
        query_hash = QueryText.fingerprint(query)
        if context is None:
            return f"{query_hash}-no-context"
        context_hash = QueryText.compute_hash(_CONTEXT_ADAPTER.dump_json(context).decode())[:16]
        return f"{query_hash}-{context_hash}"

    def get_prediction_metrics(self) -> PredictionMetrics:
        m = self._metrics
        return PredictionMetrics(
            accuracy=m.accuracy,
            mean_absolute_error=m.mean_absolute_error,
            mean_squared_error=m.mean_squared_error,
            prediction_count=m.prediction_count,
            evaluated_count=m.evaluated_count,
            last_evaluated=m.last_evaluated,
        )

    def get_model_info(self) -> List[EstimatorInfo]:
        return [estimator.info() for estimator in self._estimators.values()]

    def clear_cache(self) -> None:
        self._cache.clear()

    @property
    def training_sample_count(self) -> int:
        return len(self._training_data)

    def export_training_data(self) -> List[Dict[str, Any]]:
        """Training buffer as JSON-compatible records, oldest first."""
        return [_SAMPLE_ADAPTER.dump_python(sample, mode="json") for sample in self._training_data]

    def import_training_data(self, records: Sequence[Any]) -> int:
        """Replace the training buffer with valid ``records``.

        Malformed records are skipped; only the newest ``training_buffer_size``
        records are kept.

        Returns:
            Number of records accepted
        """
        samples = []
        for record in records:
            try:
                samples.append(_SAMPLE_ADAPTER.validate_python(record))
            except PydanticValidationError:
                continue
        capacity = self._training_data.capacity
        self._training_data.replace(samples[-capacity:])
        if len(samples) < len(records):
            self.logger.warning(
                "Skipped malformed training samples",
                skipped=len(records) - len(samples),
            )
        return len(samples)

    def get_metrics(self) -> Dict[str, Any]:
        metrics = super().get_metrics()
        metrics.update({
            "training_samples": len(self._training_data),
            "cached_predictions": len(self._cache),
            "prediction_count": self._metrics.prediction_count,
            "accuracy": self._metrics.accuracy,
        })
        return metrics
