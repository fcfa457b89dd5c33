"""Shared test fixtures for Latchkey.

Provides common fixtures used across unit and integration tests.
"""

from collections.abc import Iterator
from datetime import UTC, datetime

import pytest

from src.settings import Settings
from tests.helpers.auth import make_test_settings
from tests.helpers.fakes import Harness, make_harness

# =============================================================================
# SETTINGS
# =============================================================================


@pytest.fixture
def test_settings() -> Settings:
    """Provide test settings with safe defaults."""
    return make_test_settings()


@pytest.fixture
def mock_settings(test_settings: Settings, monkeypatch: pytest.MonkeyPatch) -> Settings:
    """Mock get_settings() to return test settings."""
    from src import settings

    monkeypatch.setattr(settings, "get_settings", lambda: test_settings)
    return test_settings


# =============================================================================
# PROCESS-WIDE STATE
# =============================================================================


@pytest.fixture(autouse=True)
def _reset_flood_guard() -> Iterator[None]:
    """Clear the in-process slowapi counters between tests."""
    from src.api.rate_limit import limiter

    limiter.reset()
    yield
    limiter.reset()


# =============================================================================
# CEREMONY ENGINE
# =============================================================================


@pytest.fixture
def now() -> datetime:
    return datetime(2026, 3, 14, 12, 0, 30, tzinfo=UTC)


@pytest.fixture
def harness(now: datetime) -> Harness:
    """Orchestrator over in-memory stores with a frozen clock."""
    return make_harness(now)
