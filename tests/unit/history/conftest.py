"""Fixtures for history ledger tests."""

import pytest

from querysense.config.models import HistoryConfig
from querysense.history import OptimizationHistory


@pytest.fixture
def history() -> OptimizationHistory:
    """Ledger without a persistence store."""
    return OptimizationHistory(HistoryConfig(max_entries=100))
