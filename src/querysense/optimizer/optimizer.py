"""Query optimizer.

Layers three kinds of rewrites over a query: ordered rule-based rewrites,
learned rewrites from the ML optimizer and time-series rewrites. Also owns
execution-step planning and the advisory recommendation generators.
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..analyzer.models import QueryAnalysis
from ..config.models import OptimizerConfig
from ..core.base import BaseComponent
from ..ml.models import MLModel, MLTrainingData, ModelMetrics
from ..ml.optimizer import MLOptimizer
from ..models import (
    ExecutionStep,
    OptimizationTechnique,
    OptimizedQuery,
    ParallelizationInfo,
    QueryContext,
    Recommendation,
    ResourceRequirements,
    impact_rank,
)
from . import advisor, timeseries
from .planner import StepPlanner
from .rules import DEFAULT_RULES, OptimizationRule

_Stage = Tuple[str, List[OptimizationTechnique], float]


def calculate_confidence(techniques: Sequence[OptimizationTechnique]) -> float:
    """Confidence on a 0-100 scale from the impact tiers of ``techniques``."""
    if not techniques:
        return 0.0
    score = sum(impact_rank(t.impact) for t in techniques) / len(techniques)
    return min(score / 3 * 100, 100.0)


class QueryOptimizer(BaseComponent[OptimizerConfig]):
    """Rule, ML and time-series query rewriting.

    Example:
        >>> optimizer = QueryOptimizer(OptimizerConfig(enable_ml=False))
        >>> result = optimizer.optimize(query, analyzer.analyze(query))
        >>> [t.name for t in result.techniques]
        ['predicate_pushdown', 'limit_pushdown']
    """

    component_name = "optimizer"

    def __init__(
        self,
        config: Optional[OptimizerConfig] = None,
        *,
        ml_optimizer: Optional[MLOptimizer] = None,
        rules: Optional[Sequence[OptimizationRule]] = None,
    ) -> None:
        super().__init__(config or OptimizerConfig())
        self._ml = ml_optimizer or MLOptimizer()
        self._rules: List[OptimizationRule] = list(DEFAULT_RULES if rules is None else rules)
        self._planner = StepPlanner(
            bottleneck_cost_threshold=self.config.bottleneck_cost_threshold,
            data_scale_cap=self.config.data_scale_cap,
        )
        self._initialized = True

    @property
    def rules(self) -> List[OptimizationRule]:
        return list(self._rules)

    @property
    def ml_optimizer(self) -> MLOptimizer:
        return self._ml

    def optimize(
        self,
        query: str,
        analysis: QueryAnalysis,
        context: Optional[QueryContext] = None,
    ) -> OptimizedQuery:
        techniques: List[OptimizationTechnique] = []
        total_improvement = 0.0

        optimized, applied, improvement = self.apply_rules(query, analysis)
        techniques.extend(applied)
        total_improvement += improvement

        if self.config.enable_ml:
            optimized, applied, improvement = self.apply_ml(optimized, analysis, context)
            techniques.extend(applied)
            total_improvement += improvement

        if self.config.enable_time_series_rewrites:
            optimized, applied, improvement = self.apply_time_series(optimized)
            techniques.extend(applied)
            total_improvement += improvement

        return OptimizedQuery(
            query=optimized,
            techniques=techniques,
            confidence=calculate_confidence(techniques),
            estimated_improvement=min(total_improvement, self.config.max_rule_improvement),
        )

    def apply_rules(self, query: str, analysis: QueryAnalysis) -> _Stage:
        techniques = []
        improvement = 0.0
        for rule in self._rules:
            if not rule.predicate(analysis):
                continue
            result = rule.apply(query)
            if not result.success:
                continue
            query = result.query
            techniques.append(rule.technique(result))
            improvement += rule.estimated_gain
        return query, techniques, improvement

    def apply_ml(
        self,
        query: str,
        analysis: QueryAnalysis,
        context: Optional[QueryContext] = None,
    ) -> _Stage:
        prediction = self._ml.optimize_query(query, analysis, context)
        improvement = sum(t.estimated_gain for t in prediction.techniques)
        return (
            prediction.optimized_query,
            list(prediction.techniques),
            min(improvement, self.config.max_ml_improvement),
        )

    @staticmethod
    def apply_time_series(query: str) -> _Stage:
        techniques = []
        improvement = 0.0

        if timeseries.has_time_filter(query):
            rewritten = timeseries.normalize_time_range(query)
            if rewritten != query:
                query = rewritten
                techniques.append(OptimizationTechnique(
                    name="time_range_optimization",
                    description="Optimize time range queries for better performance",
                    impact="high",
                    applied_to=["WHERE clause"],
                    estimated_gain=40,
                ))
                improvement += 40

        if timeseries.has_time_grouping(query):
            rewritten = timeseries.normalize_time_buckets(query)
            if rewritten != query:
                query = rewritten
                techniques.append(OptimizationTechnique(
                    name="time_aggregation_optimization",
                    description="Optimize time-based aggregations",
                    impact="medium",
                    applied_to=["GROUP BY clause"],
                    estimated_gain=25,
                ))
                improvement += 25

        return query, techniques, improvement

    def generate_steps(self, query: str, analysis: QueryAnalysis) -> List[ExecutionStep]:
        return self._planner.generate_steps(query, analysis)

    def analyze_parallelization(self, steps: Sequence[ExecutionStep]) -> ParallelizationInfo:
        return self._planner.analyze_parallelization(steps)

    def calculate_resource_requirements(
        self,
        steps: Sequence[ExecutionStep],
        context: Optional[QueryContext] = None,
    ) -> ResourceRequirements:
        return self._planner.calculate_resource_requirements(steps, context)

    def recommend_indexes(
        self,
        query: str,
        analysis: QueryAnalysis,
        context: Optional[QueryContext] = None,
    ) -> List[Recommendation]:
        return advisor.recommend_indexes(query, analysis, context)

    def recommend_rewrites(self, query: str, analysis: QueryAnalysis) -> List[Recommendation]:
        return advisor.recommend_rewrites(query, analysis)

    def recommend_configuration(
        self,
        query: str,
        analysis: QueryAnalysis,
        context: Optional[QueryContext] = None,
    ) -> List[Recommendation]:
        return advisor.recommend_configuration(query, analysis, context)

    async def train_ml_models(self) -> bool:
        return await self._ml.train_models()

    async def add_ml_training_data(self, record: MLTrainingData) -> None:
        await self._ml.add_training_data(record)

    def get_ml_model_info(self) -> List[MLModel]:
        return self._ml.get_model_info()

    def get_ml_model_metrics(self, model_id: str) -> Optional[ModelMetrics]:
        return self._ml.get_model_metrics(model_id)

    def get_metrics(self) -> Dict[str, Any]:
        metrics = super().get_metrics()
        metrics.update({
            "rules": [rule.name for rule in self._rules],
            "ml_enabled": self.config.enable_ml,
        })
        return metrics
