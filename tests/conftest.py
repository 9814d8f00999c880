"""
Shared pytest fixtures and configuration for replcheck tests.

This module provides:
- Fake sessions and connectors standing in for MySQL (no live server)
- Settings cache isolation
- Deterministic RNGs

Usage:
    Fixtures are auto-discovered by pytest. Use them as function arguments:

    def test_read(fake_session, executor):
        ...
"""

import random
import sys
from pathlib import Path
from typing import Generator

import pytest
from structlog.testing import capture_logs

# Ensure replcheck package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent.parent))

from replcheck.core.config import clear_settings_cache
from replcheck.execution.workloads import LIST_APPEND
from tests._support.fakes import FakeConnector, FakeNodeControl, FakeSession


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        test_path = Path(item.fspath).relative_to(Path(__file__).parent)

        if "integration" in str(test_path):
            item.add_marker(pytest.mark.integration)

        markers = {mark.name for mark in item.iter_markers()}
        if not markers.intersection({"unit", "integration", "slow"}):
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def clean_settings_cache(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    """Clear cached settings and any REPLCHECK_* variables around each test."""
    import os

    for key in list(os.environ):
        if key.startswith("REPLCHECK_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(Path(__file__).parent)  # no stray .env files
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture(autouse=True)
def captured_logs() -> Generator[list[dict], None, None]:
    """Collect structlog events instead of printing them."""
    with capture_logs() as logs:
        yield logs


# =============================================================================
# Fakes
# =============================================================================


@pytest.fixture
def fake_session() -> FakeSession:
    """A session to node ``n1`` that answers every statement with defaults."""
    return FakeSession("n1")


@pytest.fixture
def fake_connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def fake_control() -> FakeNodeControl:
    return FakeNodeControl()


@pytest.fixture
def rng() -> random.Random:
    return random.Random(42)


@pytest.fixture
def append_workload():
    return LIST_APPEND
