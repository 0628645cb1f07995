"""Intelligent query engine.

``IntelligentQueryEngine`` composes the analyzer, optimizer, predictor,
router, result cache and optimization history into one pipeline:

    analyze -> cache check -> optimize -> predict -> route -> plan
            -> recommend -> cache write -> history record

It also fans observed executions back into every learning component and
owns the lifecycle of the router's health checks and of persisted state.
The embedding application constructs one engine and passes it where it is
needed; there is no process-wide instance.
"""

import asyncio
import json
from dataclasses import replace
from typing import Any, Awaitable, Dict, List, Optional, Sequence

from .analyzer.analyzer import QueryAnalyzer
from .analyzer.models import QueryAnalysis, QueryStatistics
from .cache.memory import InMemoryResultCache
from .config.models import EngineConfig
from .core.base import AsyncComponent
from .core.exceptions import (
    AnalysisError,
    ErrorCodes,
    OptimizationError,
    PersistenceError,
    create_error_from_exception,
)
from .core.protocols import HealthProbe, PersistenceStore, ResultCache
from .core.utils import QueryText, call_with_timeout
from .features import FeatureExtractor
from .history.ledger import OptimizationHistory
from .history.models import (
    ExecutionPerformance,
    ExportOptions,
    HistoryFeedback,
    HistoryFilter,
    HistoryStatistics,
    OptimizationHistoryEntry,
)
from .logging.factory import get_performance_logger
from .ml.models import MLModel, MLTrainingData, ModelMetrics
from .ml.optimizer import MLOptimizer
from .models import (
    CacheOptions,
    ExecutionPlan,
    OptimizationTechnique,
    OptimizedQuery,
    QueryContext,
    QueryExecutionResult,
    QueryOptimizationRequest,
    QueryOptimizationResult,
    Recommendation,
    TimeRange,
)
from .optimizer.optimizer import QueryOptimizer
from .predictor.predictor import PerformancePredictor
from .router.router import QueryRouter

CACHE_HIT_TECHNIQUE = "Cache Hit"


def cache_hit_technique() -> OptimizationTechnique:
    return OptimizationTechnique(
        name=CACHE_HIT_TECHNIQUE,
        description="Result retrieved from intelligent cache",
        impact="high",
        applied_to=["query_result"],
        estimated_gain=95.0,
    )


class IntelligentQueryEngine(AsyncComponent[EngineConfig]):
    """Query optimization pipeline with online learning.

    Every request-path method works on an engine that was never
    initialized; ``initialize()`` adds persisted state and background
    health checks.

    Example:
        >>> async with IntelligentQueryEngine(EngineConfig(), probe=probe, store=store) as engine:
        ...     result = await engine.optimize_query(QueryOptimizationRequest(
        ...         query="SELECT mean(value) FROM cpu WHERE time > now() - 1h GROUP BY host",
        ...         connection_id="primary",
        ...         database="metrics",
        ...     ))
        ...     await engine.learn_from_query(result.optimized_query, execution_result)
    """

    component_name = "engine"

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        *,
        cache: Optional[ResultCache] = None,
        probe: Optional[HealthProbe] = None,
        store: Optional[PersistenceStore] = None,
        router: Optional[QueryRouter] = None,
    ) -> None:
        super().__init__(config or EngineConfig())
        self._store = store
        self.analyzer = QueryAnalyzer(self.config.analyzer)
        extractor = FeatureExtractor(performance_lookup=self.analyzer.performance_history)
        self.ml_optimizer = MLOptimizer(self.config.ml, analyzer=self.analyzer, extractor=extractor)
        self.optimizer = QueryOptimizer(self.config.optimizer, ml_optimizer=self.ml_optimizer)
        self.predictor = PerformancePredictor(
            self.config.predictor, analyzer=self.analyzer, extractor=extractor,
        )
        self.router = router or QueryRouter(self.config.router, probe=probe)
        self.history = OptimizationHistory(self.config.history, store=store)
        self.cache: ResultCache = cache or InMemoryResultCache(self.config.cache)
        self.perf = get_performance_logger("querysense.engine")

    async def _async_initialize(self) -> None:
        await self.history.load()
        await self._load_training_state()
        await self.router.initialize()

    async def _async_cleanup(self) -> None:
        await self.router.cleanup()
        await self.save_state()

    async def optimize_query(self, request: QueryOptimizationRequest) -> QueryOptimizationResult:
        """Run the full optimization pipeline for one request.

        Stages run strictly in order. Collaborator failures degrade the
        result but never fail the call.
        """
        query = request.query
        context = request.context
        with self.logger.context(
            connection_id=request.connection_id,
            database=request.database,
            query_hash=QueryText.fingerprint(query),
        ):
            with self.perf.measure("analyze"):
                analysis = self._analyze(query, context)

            cache_key = self._cache_key(request)
            with self.perf.measure("cache_lookup"):
                cached = await self._cache_get(cache_key) if cache_key is not None else None
            if cached is not None:
                self.logger.debug("Serving optimization from cache", cache_key=cache_key)
                return replace(
                    cached,
                    optimization_techniques=[*cached.optimization_techniques, cache_hit_technique()],
                )

            with self.perf.measure("optimize"):
                optimized = self._optimize(query, analysis, context)
            with self.perf.measure("predict"):
                prediction = self.predictor.predict(optimized.query, context)
            with self.perf.measure("route"):
                routing = await self.router.determine_routing(
                    optimized.query, request.connection_id, context,
                )
            with self.perf.measure("plan"):
                plan = self.generate_execution_plan(optimized.query, analysis, context)
            with self.perf.measure("recommend"):
                recommendations = self.generate_recommendations(query, analysis, context)

            result = QueryOptimizationResult(
                original_query=query,
                optimized_query=optimized.query,
                optimization_techniques=optimized.techniques,
                estimated_performance_gain=optimized.estimated_improvement,
                routing_strategy=routing,
                execution_plan=plan,
                warnings=list(analysis.warnings),
                recommendations=recommendations,
                cache_key=cache_key,
            )

            with self.perf.measure("persist"):
                if cache_key is not None:
                    await self._cache_set(cache_key, result, analysis)
                result.history_entry_id = await self.history.record_optimization(
                    request.connection_id, request.database, query, result, context,
                )

            self.logger.info(
                "Query optimized",
                techniques=len(result.optimization_techniques),
                estimated_gain=result.estimated_performance_gain,
                predicted_duration=prediction.estimated_duration,
                target_connection=routing.target_connection,
            )
            return result

    async def optimize_queries(
        self,
        requests: Sequence[QueryOptimizationRequest],
    ) -> List[QueryOptimizationResult]:
        """Optimize a batch, returning results in request order.

        Requests that depend on an earlier request of the batch (shared
        tables) run one at a time in batch order after every independent
        request has completed; independent requests run concurrently.
        """
        dependencies = self.analyzer.analyze_dependencies([r.query for r in requests])
        dependent = {d.dependent_index for d in dependencies}
        results: List[Optional[QueryOptimizationResult]] = [None] * len(requests)

        independent = [i for i in range(len(requests)) if i not in dependent]
        optimized = await asyncio.gather(*(self.optimize_query(requests[i]) for i in independent))
        for index, result in zip(independent, optimized):
            results[index] = result

        for index in sorted(dependent):
            results[index] = await self.optimize_query(requests[index])

        self.logger.info(
            "Batch optimized",
            requests=len(requests),
            independent=len(independent),
            dependent=len(dependent),
        )
        return [result for result in results if result is not None]

    def _analyze(self, query: str, context: Optional[QueryContext]) -> QueryAnalysis:
        try:
            return self.analyzer.analyze(query, context)
        except Exception as e:
            raise AnalysisError(
                "Query analysis failed",
                code=ErrorCodes.QUERY_ANALYSIS_FAILED,
                context={"query_length": len(query)},
                cause=e,
            ) from e

    def _optimize(
        self,
        query: str,
        analysis: QueryAnalysis,
        context: Optional[QueryContext],
    ) -> OptimizedQuery:
        try:
            return self.optimizer.optimize(query, analysis, context)
        except Exception as e:
            error = OptimizationError(
                "Query optimization failed",
                code=ErrorCodes.OPTIMIZATION_FAILED,
                context={"query_length": len(query)},
                cause=e,
            )
            self.logger.error("Query optimization failed, returning query unchanged", error=error.to_dict())
            return OptimizedQuery(query=query, techniques=[], confidence=0.0, estimated_improvement=0.0)

    def generate_execution_plan(
        self,
        query: str,
        analysis: QueryAnalysis,
        context: Optional[QueryContext] = None,
    ) -> ExecutionPlan:
        steps = self.optimizer.generate_steps(query, analysis)
        requirements = self.optimizer.calculate_resource_requirements(steps, context)
        return ExecutionPlan(
            steps=steps,
            parallelization=self.optimizer.analyze_parallelization(steps),
            resource_requirements=requirements,
            estimated_duration=self.predictor.estimate_duration(steps, requirements, context),
        )

    def generate_recommendations(
        self,
        query: str,
        analysis: QueryAnalysis,
        context: Optional[QueryContext] = None,
    ) -> List[Recommendation]:
        """Index, rewrite, caching and configuration advice, best first."""
        recommendations = [
            *self.optimizer.recommend_indexes(query, analysis, context),
            *self.optimizer.recommend_rewrites(query, analysis),
            *self._caching_recommendations(query, analysis),
            *self.optimizer.recommend_configuration(query, analysis, context),
        ]
        recommendations.sort(key=lambda r: r.estimated_benefit, reverse=True)
        return recommendations[:self.config.max_recommendations]

    def _caching_recommendations(self, query: str, analysis: QueryAnalysis) -> List[Recommendation]:
        try:
            return list(self.cache.recommend_caching(query, analysis))
        except Exception as e:
            self.logger.warning("Caching advice unavailable", error=str(e))
            return []

    def _cache_key(self, request: QueryOptimizationRequest) -> Optional[str]:
        try:
            return self.cache.generate_cache_key(request.query, request.connection_id, request.database)
        except Exception as e:
            self.logger.warning("Cache key generation failed, bypassing cache", error=str(e))
            return None

    async def _cache_get(self, key: str) -> Optional[QueryOptimizationResult]:
        try:
            cached = await call_with_timeout(
                self.cache.get(key), self.config.collaborator_timeout, operation="cache_get",
            )
        except Exception as e:
            self.logger.warning("Cache lookup failed, treating as miss", cache_key=key, error=str(e))
            return None
        if cached is None or not self.cache.is_valid(cached):
            return None
        return cached

    async def _cache_set(self, key: str, result: QueryOptimizationResult, analysis: QueryAnalysis) -> None:
        try:
            options = CacheOptions(ttl=self.cache.calculate_ttl(analysis), tags=list(analysis.tags))
            await call_with_timeout(
                self.cache.set(key, result, options),
                self.config.collaborator_timeout,
                operation="cache_set",
            )
        except Exception as e:
            self.logger.warning("Cache write failed", cache_key=key, error=str(e))

    async def learn_from_query(
        self,
        query: str,
        result: QueryExecutionResult,
        context: Optional[QueryContext] = None,
        *,
        connection_id: Optional[str] = None,
    ) -> None:
        """Feed an observed execution to every learning component.

        The updates are independent; one failing does not stop the others.
        """
        async def record() -> None:
            self.analyzer.record_performance(query, result, connection_id=connection_id)

        updates: Dict[str, Awaitable[Any]] = {
            "analyzer": record(),
            "predictor": self.predictor.update_model(query, result, context),
            "router": self.router.update_weights(query, result),
            "cache": call_with_timeout(
                self.cache.update_strategy(query, result),
                self.config.collaborator_timeout,
                operation="cache_update_strategy",
            ),
        }
        outcomes = await asyncio.gather(*updates.values(), return_exceptions=True)
        for component, outcome in zip(updates, outcomes):
            if isinstance(outcome, Exception):
                error = create_error_from_exception(outcome, context={"target": component})
                self.logger.warning("Learning update failed", target=component, error=error.to_dict())

    def get_query_stats(
        self,
        connection_id: Optional[str] = None,
        time_range: Optional[TimeRange] = None,
    ) -> QueryStatistics:
        return self.analyzer.get_statistics(connection_id, time_range)

    async def clear_cache(self, pattern: Optional[str] = None) -> None:
        try:
            await call_with_timeout(
                self.cache.clear(pattern), self.config.collaborator_timeout, operation="cache_clear",
            )
        except Exception as e:
            self.logger.warning("Cache clear failed", pattern=pattern, error=str(e))
        self.predictor.clear_cache()

    def get_optimization_recommendations(
        self,
        connection_id: Optional[str] = None,
        limit: int = 10,
    ) -> List[Recommendation]:
        """Advice for the slowest recorded queries of a connection."""
        stats = self.get_query_stats(connection_id)
        recommendations: List[Recommendation] = []
        for slow in stats.slow_queries[:limit]:
            analysis = self.analyzer.analyze(slow.query)
            recommendations.extend(self.generate_recommendations(slow.query, analysis))
        recommendations.sort(key=lambda r: r.estimated_benefit, reverse=True)
        return recommendations[:limit]

    async def train_ml_models(self) -> bool:
        return await self.optimizer.train_ml_models()

    async def add_ml_training_data(self, record: MLTrainingData) -> None:
        await self.optimizer.add_ml_training_data(record)

    def get_ml_model_info(self) -> List[MLModel]:
        return self.optimizer.get_ml_model_info()

    def get_ml_model_metrics(self, model_id: str) -> Optional[ModelMetrics]:
        return self.optimizer.get_ml_model_metrics(model_id)

    def get_optimization_history(
        self,
        criteria: Optional[HistoryFilter] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[OptimizationHistoryEntry]:
        return self.history.query_history(criteria, limit, offset)

    def get_history_entry(self, entry_id: str) -> Optional[OptimizationHistoryEntry]:
        return self.history.get_history_entry(entry_id)

    async def update_execution_performance(self, entry_id: str, performance: ExecutionPerformance) -> bool:
        return await self.history.update_performance(entry_id, performance)

    async def add_user_feedback(self, entry_id: str, feedback: HistoryFeedback) -> bool:
        return await self.history.add_user_feedback(entry_id, feedback)

    def get_history_statistics(self, criteria: Optional[HistoryFilter] = None) -> HistoryStatistics:
        return self.history.generate_statistics(criteria)

    def find_similar_queries(
        self,
        query: str,
        limit: int = 10,
        threshold: float = 0.7,
    ) -> List[OptimizationHistoryEntry]:
        return self.history.find_similar_queries(query, limit, threshold)

    def get_best_optimizations(self, limit: int = 10) -> List[OptimizationHistoryEntry]:
        return self.history.get_best_optimizations(limit)

    def get_worst_optimizations(self, limit: int = 10) -> List[OptimizationHistoryEntry]:
        return self.history.get_worst_optimizations(limit)

    def export_optimization_history(self, options: Optional[ExportOptions] = None) -> str:
        return self.history.export_history(options)

    async def import_optimization_history(self, data: str, format: str = "json") -> int:
        return await self.history.import_history(data, format)

    async def clear_optimization_history(self) -> None:
        await self.history.clear_history()

    async def save_state(self) -> None:
        """Persist history and training buffers on a best-effort basis."""
        if self._store is None:
            return
        await self.history.save()
        await self._save_records(self.config.predictor_state_key, self.predictor.export_training_data())
        await self._save_records(self.config.ml_state_key, self.ml_optimizer.export_training_data())

    async def _load_training_state(self) -> None:
        records = await self._load_records(self.config.predictor_state_key)
        if records:
            self.predictor.import_training_data(records)
        records = await self._load_records(self.config.ml_state_key)
        if records:
            self.ml_optimizer.import_training_data(records)

    async def _load_records(self, key: str) -> List[Any]:
        """Persisted records under ``key``; any failure means no records."""
        if self._store is None:
            return []
        try:
            payload = await call_with_timeout(
                self._store.load(key), self.config.collaborator_timeout, operation="state_load",
            )
            records = json.loads(payload) if payload else []
        except Exception as e:
            error = PersistenceError(
                f"Failed to load persisted state {key}",
                code=ErrorCodes.PERSISTENCE_LOAD_FAILED,
                context={"key": key},
                cause=e,
            )
            self.logger.warning("State load failed, starting empty", error=error.to_dict())
            return []
        if not isinstance(records, list):
            self.logger.warning("Persisted state is not a list, starting empty", key=key)
            return []
        return records

    async def _save_records(self, key: str, records: List[Any]) -> None:
        assert self._store is not None
        try:
            await call_with_timeout(
                self._store.save(key, json.dumps(records)),
                self.config.collaborator_timeout,
                operation="state_save",
            )
        except Exception as e:
            error = PersistenceError(
                f"Failed to save state {key}",
                code=ErrorCodes.PERSISTENCE_SAVE_FAILED,
                context={"key": key, "records": len(records)},
                cause=e,
            )
            self.logger.warning("State save failed", error=error.to_dict())

    def get_metrics(self) -> Dict[str, Any]:
        metrics = super().get_metrics()
        metrics.update({
            "analyzer": self.analyzer.get_metrics(),
            "predictor": self.predictor.get_metrics(),
            "optimizer": self.optimizer.get_metrics(),
            "router": self.router.get_metrics(),
            "history": self.history.get_metrics(),
            "stages": self.perf.get_summary(),
        })
        return metrics
