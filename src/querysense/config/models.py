"""Configuration models for the QuerySense engine.

Each engine component takes an explicit, validated configuration object.
``EngineConfig`` aggregates them so an embedding application can build the
whole engine from a single mapping (for example a parsed YAML file).

Classes:
    BaseConfig: Base configuration class
    LoggingConfig: Logging configuration
    AnalyzerConfig: Query analyzer configuration
    PredictorConfig: Performance predictor configuration
    MLConfig: ML optimizer configuration
    OptimizerConfig: Query optimizer configuration
    RouterConfig: Query router configuration
    HistoryConfig: Optimization history configuration
    CacheConfig: In-memory result cache configuration
    EngineConfig: Aggregate engine configuration

Example:
    >>> config = EngineConfig(
    ...     router={"strategy": "least_connections", "health_check_interval": 10},
    ...     history={"max_entries": 5000},
    ... )
    >>> config.router.strategy
    'least_connections'
"""

import os
import re
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Literal, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PositiveFloat,
    PositiveInt,
    confloat,
    conint,
    field_validator,
    model_validator,
)

from ..core.exceptions import ValidationError

_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")

LoadBalancingStrategy = Literal[
    "round_robin", "least_connections", "weighted", "hash", "adaptive"
]


class BaseConfig(BaseModel):
    """Base configuration class with common functionality.

    Provides strict validation, environment variable resolution and
    dictionary conversion for every configuration model.
    """

    model_config = ConfigDict(
        validate_assignment=True,
        extra="forbid",
        use_enum_values=True,
        validate_default=True,
        populate_by_name=True,
        ser_json_timedelta="float",
    )

    @model_validator(mode="before")
    @classmethod
    def resolve_environment_variables(cls, values: Any) -> Any:
        """Resolve environment variables in configuration values.

        Supports ${VAR_NAME} and ${VAR_NAME:default_value} syntax.
        """
        def replace_env_var(match: "re.Match[str]") -> str:
            var_spec = match.group(1)
            if ":" in var_spec:
                var_name, default = var_spec.split(":", 1)
            else:
                var_name, default = var_spec, ""
            return os.getenv(var_name, default)

        def resolve_value(value: Any) -> Any:
            if isinstance(value, str):
                return _ENV_PATTERN.sub(replace_env_var, value)
            if isinstance(value, dict):
                return {k: resolve_value(v) for k, v in value.items()}
            if isinstance(value, list):
                return [resolve_value(item) for item in value]
            return value

        if not isinstance(values, dict):
            return values
        return {key: resolve_value(value) for key, value in values.items()}

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to a plain dictionary."""
        def convert(value: Any) -> Any:
            if isinstance(value, dict):
                return {k: convert(v) for k, v in value.items()}
            if isinstance(value, list):
                return [convert(item) for item in value]
            if isinstance(value, Path):
                return str(value)
            if isinstance(value, datetime):
                return value.isoformat()
            if isinstance(value, timedelta):
                return value.total_seconds()
            return value

        return convert(self.model_dump())

    def update_from_dict(self, data: Dict[str, Any]) -> "BaseConfig":
        """Return a new configuration with ``data`` merged over this one."""
        current_data = self.model_dump()
        current_data.update(data)
        return self.__class__(**current_data)


class LoggingConfig(BaseConfig):
    """Logging configuration.

    Attributes:
        level: Log level
        format: Log format (json, text)
        file_path: Log file path
        max_file_size: Maximum log file size in bytes
        backup_count: Number of backup files to keep
        console_output: Enable console output
        correlation_ids: Attach correlation ids to log events
    """

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        "INFO", description="Logging level"
    )
    format: Literal["json", "text"] = Field("json", description="Log format")
    file_path: Optional[Path] = Field(None, description="Log file path")
    max_file_size: PositiveInt = Field(10485760, description="Max file size in bytes (10MB)")
    backup_count: conint(ge=0) = Field(5, description="Number of backup files")
    console_output: bool = Field(True, description="Enable console output")
    correlation_ids: bool = Field(True, description="Attach correlation ids")

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v

    @field_validator("file_path")
    @classmethod
    def validate_log_file_path(cls, v: Optional[Path]) -> Optional[Path]:
        """Ensure the log directory exists.

        Raises:
            ValidationError: If the directory cannot be created
        """
        if v is not None and not v.parent.exists():
            try:
                v.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise ValidationError(f"Cannot create log directory: {e}")
        return v


class AnalyzerConfig(BaseConfig):
    """Query analyzer configuration."""

    performance_history_size: PositiveInt = Field(
        100, description="Execution records kept per query fingerprint"
    )
    slow_query_threshold_ms: PositiveFloat = Field(
        1000.0, description="Executions slower than this are reported as slow"
    )
    frequent_query_threshold: PositiveInt = Field(
        10, description="Queries recorded more often than this are frequent"
    )
    max_joins_before_warning: conint(ge=0) = Field(
        3, description="Join count above which a multi-join warning is raised"
    )
    data_scale_cap: confloat(ge=1.0) = Field(
        5.0, description="Upper bound of the data-size resource scale factor"
    )
    max_tracked_queries: PositiveInt = Field(
        10000, description="Distinct query fingerprints with recorded performance"
    )


class PredictorConfig(BaseConfig):
    """Performance predictor configuration."""

    training_buffer_size: PositiveInt = Field(10000, description="Training samples kept")
    min_training_samples: PositiveInt = Field(
        100, description="Samples required before a retraining pass"
    )
    prediction_cache_size: PositiveInt = Field(1000, description="Cached predictions kept")
    cache_confidence_threshold: confloat(ge=0.0, le=1.0) = Field(
        0.7, description="Cached predictions are reused only above this confidence"
    )
    accuracy_ceiling: confloat(gt=0.0, le=1.0) = Field(
        0.95, description="Retraining never raises accuracy above this value"
    )
    ema_weight: confloat(gt=0.0, le=1.0) = Field(
        0.1, description="Weight of a new observation in rolling accuracy metrics"
    )

    @model_validator(mode="after")
    def validate_buffer_size(self) -> "PredictorConfig":
        if self.min_training_samples > self.training_buffer_size:
            raise ValidationError(
                f"min_training_samples ({self.min_training_samples}) must be <= "
                f"training_buffer_size ({self.training_buffer_size})"
            )
        return self


class MLConfig(BaseConfig):
    """ML optimizer configuration."""

    training_buffer_size: PositiveInt = Field(50000, description="Training records kept")
    retrain_every: PositiveInt = Field(
        1000, description="Trigger a training pass every N additions"
    )
    min_training_samples: PositiveInt = Field(
        100, description="Training passes with fewer samples are skipped"
    )
    max_execution_time_ms: PositiveFloat = Field(
        300000.0, description="Training records slower than this are discarded"
    )
    accuracy_ceiling: confloat(gt=0.0, le=1.0) = Field(
        0.95, description="Training never raises accuracy above this value"
    )
    accuracy_step: confloat(ge=0.0, le=0.5) = Field(
        0.01, description="Accuracy gained per training pass"
    )
    activation_samples: PositiveInt = Field(
        5000, description="Training records required to activate dormant models"
    )
    train_ratio: confloat(gt=0.0, lt=1.0) = Field(0.7, description="Training split")
    validation_ratio: confloat(ge=0.0, lt=1.0) = Field(0.2, description="Validation split")

    @model_validator(mode="after")
    def validate_split(self) -> "MLConfig":
        if self.train_ratio + self.validation_ratio >= 1.0:
            raise ValidationError(
                "train_ratio + validation_ratio must leave room for a test split"
            )
        return self


class OptimizerConfig(BaseConfig):
    """Query optimizer configuration."""

    enable_ml: bool = Field(True, description="Layer ML rewrites over rule rewrites")
    enable_time_series_rewrites: bool = Field(
        True, description="Apply time-range and time-bucket rewrites"
    )
    max_rule_improvement: confloat(ge=0.0, le=100.0) = Field(
        95.0, description="Cap on the aggregate estimated improvement"
    )
    max_ml_improvement: confloat(ge=0.0, le=100.0) = Field(
        70.0, description="Cap on the improvement contributed by ML rewrites"
    )
    bottleneck_cost_threshold: PositiveFloat = Field(
        1000.0, description="Non-parallel steps above this cost are bottlenecks"
    )
    data_scale_cap: confloat(ge=1.0) = Field(
        10.0, description="Upper bound of the data-size memory scale factor"
    )


class RouterConfig(BaseConfig):
    """Query router configuration.

    Attributes:
        strategy: Load-balancing strategy used when no routing rule matches
        health_check_interval: Seconds between background health checks
        failover_timeout: Budget in seconds for a single health probe call
        max_retries: Probe retries before a check counts as failed
        retry_interval: Base delay in seconds between probe retries
        sticky_session: Hash strategy keeps a query on one endpoint
        weights: Learned per-endpoint weights for the weighted strategy
        history_size: Routing decisions kept for feedback matching
        feedback_window: Seconds during which feedback matches a decision
    """

    strategy: LoadBalancingStrategy = Field("adaptive", description="Load-balancing strategy")
    health_check_interval: PositiveFloat = Field(30.0, description="Health check interval (s)")
    failover_timeout: PositiveFloat = Field(5.0, description="Health probe timeout (s)")
    max_retries: conint(ge=0) = Field(3, description="Health probe retries")
    retry_interval: confloat(ge=0.0) = Field(1.0, description="Probe retry base delay (s)")
    sticky_session: bool = Field(False, description="Keep a query on one endpoint")
    weights: Dict[str, float] = Field(default_factory=dict, description="Endpoint weights")
    history_size: PositiveInt = Field(1000, description="Routing decisions kept")
    feedback_window: PositiveFloat = Field(300.0, description="Feedback matching window (s)")

    @field_validator("weights")
    @classmethod
    def validate_weights(cls, v: Dict[str, float]) -> Dict[str, float]:
        negative = [name for name, weight in v.items() if weight < 0]
        if negative:
            raise ValidationError(f"Endpoint weights must be non-negative: {negative}")
        return v


class HistoryConfig(BaseConfig):
    """Optimization history configuration."""

    max_entries: PositiveInt = Field(10000, description="Maximum ledger size")
    persistence_key: str = Field(
        "optimization_history", min_length=1, description="Persistence store key"
    )
    persistence_timeout: PositiveFloat = Field(5.0, description="Store call timeout (s)")
    autosave: bool = Field(True, description="Save after every ledger mutation")


class CacheConfig(BaseConfig):
    """In-memory result cache configuration."""

    default_ttl_ms: PositiveInt = Field(3600000, description="Default TTL in milliseconds")
    max_entries: PositiveInt = Field(1000, description="Maximum cached results")


class EngineConfig(BaseConfig):
    """Aggregate engine configuration.

    Attributes:
        collaborator_timeout: Budget in seconds for cache and store calls
        max_recommendations: Recommendations returned per optimization
        predictor_state_key: Persistence key of the predictor training buffer
        ml_state_key: Persistence key of the ML training buffer
    """

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    analyzer: AnalyzerConfig = Field(default_factory=AnalyzerConfig)
    predictor: PredictorConfig = Field(default_factory=PredictorConfig)
    ml: MLConfig = Field(default_factory=MLConfig)
    optimizer: OptimizerConfig = Field(default_factory=OptimizerConfig)
    router: RouterConfig = Field(default_factory=RouterConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)

    collaborator_timeout: PositiveFloat = Field(5.0, description="Collaborator call budget (s)")
    max_recommendations: PositiveInt = Field(10, description="Recommendations per result")
    predictor_state_key: str = Field("predictor_training_data", min_length=1)
    ml_state_key: str = Field("ml_training_data", min_length=1)
