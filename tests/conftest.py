"""Pytest configuration and shared fixtures.

This module provides pytest configuration, fake collaborators and shared
fixtures for all tests in the QuerySense test suite.
"""

import asyncio
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest
import structlog

from querysense.config.models import EngineConfig, RouterConfig
from querysense.models import (
    DataSize,
    ExecutionPlan,
    HealthDetails,
    OptimizationTechnique,
    ParallelizationInfo,
    QueryContext,
    QueryExecutionResult,
    QueryOptimizationResult,
    ResourceRequirements,
    RoutingStrategy,
    SystemLoad,
)

# Configure test logging to suppress noise during tests
structlog.configure(
    processors=[structlog.testing.LogCapture()],
    wrapper_class=structlog.BoundLogger,
    logger_factory=structlog.testing.ReturnLoggerFactory(),
    cache_logger_on_first_use=True,
)


class FakeHealthProbe:
    """Health probe returning scripted snapshots per connection.

    A connection mapped to an exception raises it on every check.
    """

    def __init__(self, default: Optional[HealthDetails] = None) -> None:
        self.default = default or HealthDetails(cpu_usage=20.0, memory_usage=30.0, network_latency=10.0)
        self.responses: Dict[str, object] = {}
        self.calls: List[str] = []

    def set(self, connection_id: str, response: object) -> None:
        self.responses[connection_id] = response

    async def check_health(self, connection_id: str) -> HealthDetails:
        self.calls.append(connection_id)
        response = self.responses.get(connection_id, self.default)
        if isinstance(response, Exception):
            raise response
        return response


class StallingHealthProbe:
    """Health probe that never answers in time."""

    async def check_health(self, connection_id: str) -> HealthDetails:
        await asyncio.sleep(3600)
        return HealthDetails()


class FakePersistenceStore:
    """In-memory persistence store with switchable failures."""

    def __init__(self) -> None:
        self.data: Dict[str, str] = {}
        self.fail_load = False
        self.fail_save = False
        self.saves = 0

    async def load(self, key: str) -> Optional[str]:
        if self.fail_load:
            raise ConnectionError("store unavailable")
        return self.data.get(key)

    async def save(self, key: str, payload: str) -> None:
        if self.fail_save:
            raise ConnectionError("store unavailable")
        self.saves += 1
        self.data[key] = payload


class FakeExecutionBackend:
    """Execution backend reporting a fixed result for every query."""

    def __init__(self, result: Optional[QueryExecutionResult] = None) -> None:
        self.result = result or QueryExecutionResult(execution_time=120.0, memory_used=1024.0)
        self.executed: List[tuple] = []

    async def execute(self, connection_id: str, query: str) -> QueryExecutionResult:
        self.executed.append((connection_id, query))
        return self.result


def make_result(
    query: str = "SELECT * FROM cpu WHERE host = 'a'",
    *,
    techniques: Optional[List[OptimizationTechnique]] = None,
    gain: float = 30.0,
) -> QueryOptimizationResult:
    """Minimal optimization result with one high-impact technique by default."""
    if techniques is None:
        techniques = [
            OptimizationTechnique(
                name="predicate_pushdown",
                description="Push predicates down",
                impact="high",
                applied_to=["WHERE clause"],
                estimated_gain=30.0,
            ),
        ]
    return QueryOptimizationResult(
        original_query=query,
        optimized_query=query,
        optimization_techniques=techniques,
        estimated_performance_gain=gain,
        routing_strategy=RoutingStrategy(
            target_connection="primary", load_balancing="adaptive", priority=1, reason="test",
        ),
        execution_plan=ExecutionPlan(
            steps=[],
            parallelization=ParallelizationInfo(
                max_degree_of_parallelism=1, parallel_steps=[], bottlenecks=[],
            ),
            resource_requirements=ResourceRequirements(min_memory=64, max_memory=512),
            estimated_duration=100.0,
        ),
    )


@pytest.fixture
def health_probe() -> FakeHealthProbe:
    return FakeHealthProbe()


@pytest.fixture
def stalling_probe() -> StallingHealthProbe:
    return StallingHealthProbe()


@pytest.fixture
def persistence_store() -> FakePersistenceStore:
    return FakePersistenceStore()


@pytest.fixture
def execution_backend() -> FakeExecutionBackend:
    return FakeExecutionBackend()


@pytest.fixture
def fast_router_config() -> RouterConfig:
    """Router configuration without retries or waiting."""
    return RouterConfig(max_retries=0, retry_interval=0.01, failover_timeout=0.2)


@pytest.fixture
def result_factory() -> Callable[..., QueryOptimizationResult]:
    return make_result


@pytest.fixture
def engine_config(fast_router_config: RouterConfig) -> EngineConfig:
    return EngineConfig(router=fast_router_config, collaborator_timeout=0.5)


@pytest.fixture
def query_context() -> QueryContext:
    return QueryContext(
        system_load=SystemLoad(cpu_usage=40.0, memory_usage=50.0, disk_io=20.0, network_latency=20.0),
        data_size=DataSize(total_rows=50_000, total_size=64 * 1024 * 1024, average_row_size=128.0),
    )


@pytest.fixture
def loaded_context() -> QueryContext:
    """Context of a saturated system holding a large dataset."""
    return QueryContext(
        system_load=SystemLoad(cpu_usage=95.0, memory_usage=92.0, disk_io=90.0, network_latency=150.0),
        data_size=DataSize(total_rows=5_000_000, total_size=8 * 1024 ** 3, average_row_size=256.0),
    )


@pytest.fixture
def sample_config_data() -> dict:
    """Sample engine configuration mapping for testing."""
    return {
        "logging": {
            "level": "DEBUG",
            "format": "json",
            "console_output": True,
        },
        "router": {
            "strategy": "least_connections",
            "health_check_interval": 10,
            "max_retries": 1,
        },
        "history": {"max_entries": 500},
        "cache": {"default_ttl_ms": 60000},
        "max_recommendations": 5,
    }


@pytest.fixture
def config_file(tmp_path: Path, sample_config_data: dict) -> Path:
    """Create temporary configuration file."""
    import yaml

    config_path = tmp_path / "querysense.yaml"
    with open(config_path, "w") as f:
        yaml.dump(sample_config_data, f)
    return config_path


# Pytest markers for different test categories
def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests (fast, isolated)"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (slower, real dependencies)"
    )
    config.addinivalue_line(
        "markers", "slow: marks tests that take > 1 second"
    )


# Auto-mark tests based on their location
def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(config.rootdir) / "tests")

        if test_path.parts[0] == "unit":
            item.add_marker(pytest.mark.unit)
        elif test_path.parts[0] == "integration":
            item.add_marker(pytest.mark.integration)
            item.add_marker(pytest.mark.slow)
