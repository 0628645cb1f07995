"""Unit tests for configuration models."""

import pydantic
import pytest
import yaml

from querysense.config.models import (
    CacheConfig,
    EngineConfig,
    HistoryConfig,
    LoggingConfig,
    MLConfig,
    PredictorConfig,
    RouterConfig,
)
from querysense.core.exceptions import ValidationError


class TestEngineConfig:
    """Test aggregate engine configuration."""

    def test_defaults(self):
        config = EngineConfig()

        assert config.router.strategy == "adaptive"
        assert config.router.health_check_interval == 30.0
        assert config.history.max_entries == 10000
        assert config.cache.default_ttl_ms == 3600000
        assert config.ml.activation_samples == 5000
        assert config.max_recommendations == 10

    def test_nested_mappings(self, sample_config_data):
        config = EngineConfig(**sample_config_data)

        assert config.logging.level == "DEBUG"
        assert config.router.strategy == "least_connections"
        assert config.router.max_retries == 1
        assert config.history.max_entries == 500
        assert config.cache.default_ttl_ms == 60000
        assert config.max_recommendations == 5

    def test_load_from_yaml_file(self, config_file):
        with open(config_file) as f:
            config = EngineConfig(**yaml.safe_load(f))

        assert config.router.health_check_interval == 10
        assert config.to_dict()["router"]["strategy"] == "least_connections"

    def test_unknown_keys_are_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            EngineConfig(routing={"strategy": "hash"})

    def test_environment_variable_resolution(self, monkeypatch):
        monkeypatch.setenv("QS_HISTORY_KEY", "tenant_a_history")

        config = HistoryConfig(persistence_key="${QS_HISTORY_KEY}")
        fallback = HistoryConfig(persistence_key="${QS_MISSING_VAR:default_history}")

        assert config.persistence_key == "tenant_a_history"
        assert fallback.persistence_key == "default_history"

    def test_update_from_dict_returns_new_config(self):
        config = CacheConfig()

        updated = config.update_from_dict({"max_entries": 10})

        assert updated.max_entries == 10
        assert config.max_entries == 1000


class TestComponentConfigs:
    """Test per-component validation."""

    def test_logging_level_is_normalized(self):
        assert LoggingConfig(level="warning").level == "WARNING"

    def test_unknown_strategy_is_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            RouterConfig(strategy="random")

    def test_negative_weights_are_rejected(self):
        with pytest.raises(ValidationError):
            RouterConfig(weights={"primary": 1.0, "replica": -0.5})

    @pytest.mark.parametrize("field,value", [
        ("health_check_interval", 0),
        ("failover_timeout", -1),
        ("history_size", 0),
    ])
    def test_router_positive_fields(self, field, value):
        with pytest.raises(pydantic.ValidationError):
            RouterConfig(**{field: value})

    def test_predictor_min_samples_must_fit_buffer(self):
        with pytest.raises(ValidationError):
            PredictorConfig(training_buffer_size=50, min_training_samples=100)

    def test_ml_split_must_leave_test_share(self):
        with pytest.raises(ValidationError):
            MLConfig(train_ratio=0.8, validation_ratio=0.2)

    def test_validate_assignment(self):
        config = CacheConfig()

        with pytest.raises(pydantic.ValidationError):
            config.max_entries = 0
