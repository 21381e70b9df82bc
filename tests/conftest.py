"""
Shared pytest fixtures for tracecheck tests.

This module provides:
- Logging isolation (structlog reset between tests)
- A clean TRACECHECK_* environment
- The sample expectation file and a run config pointing at it
"""

from __future__ import annotations

import os
from pathlib import Path

import pytest
import structlog

from _support import RecordingSleep
from tracecheck.config import RunConfig

DATA_DIR = Path(__file__).parent / "data"


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their location."""
    for item in items:
        if "integration" in item.path.parts:
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def reset_structlog():
    """CLI tests point structlog at CliRunner's stderr; undo that afterwards."""
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    """Keep the developer's TRACECHECK_* variables and .env out of tests."""
    for key in list(os.environ):
        if key.startswith("TRACECHECK_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def expected_file() -> Path:
    return DATA_DIR / "expected_context.yaml"


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_config(expected_file):
    """Factory for run configs against the sample expectation."""

    def _make(**overrides) -> RunConfig:
        values = {
            "expected_file": expected_file,
            "max_retry_times": 3,
            "target_path": "/ping",
            "interval": 0.5,
        }
        values.update(overrides)
        return RunConfig(**values)

    return _make
