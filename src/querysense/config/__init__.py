"""QuerySense configuration management.

This package provides type-safe configuration models for every engine
component, aggregated by ``EngineConfig``.

Example:
    >>> import yaml
    >>> from querysense.config import EngineConfig
    >>> config = EngineConfig(**yaml.safe_load(open("engine.yaml")))
"""

from .models import (
    AnalyzerConfig,
    BaseConfig,
    CacheConfig,
    EngineConfig,
    HistoryConfig,
    LoadBalancingStrategy,
    LoggingConfig,
    MLConfig,
    OptimizerConfig,
    PredictorConfig,
    RouterConfig,
)

__all__ = [
    "AnalyzerConfig",
    "BaseConfig",
    "CacheConfig",
    "EngineConfig",
    "HistoryConfig",
    "LoadBalancingStrategy",
    "LoggingConfig",
    "MLConfig",
    "OptimizerConfig",
    "PredictorConfig",
    "RouterConfig",
]
