"""Shared test fixtures for almanac."""

import os
import tempfile
from datetime import UTC, datetime, timedelta

import pytest

from almanac.analytics.paths import AnalyticsPaths
from almanac.core.config_schema import AnalyticsSettings
from almanac.core.storage import InMemoryAggregateStore

# Wednesday of ISO week 2026-02-16 .. 2026-02-22
NOW = datetime(2026, 2, 18, 12, 0, tzinfo=UTC)


class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def tmp_dir():
    """Provide a temporary directory that is cleaned up after the test."""
    with tempfile.TemporaryDirectory() as d:
        yield d


@pytest.fixture
def tmp_config_file(tmp_dir):
    """Create a temporary YAML config file pointing at an on-disk store."""
    import yaml

    config_data = {
        "paths": {"data_dir": os.path.join(tmp_dir, "data")},
        "store": {"backend": "local", "path": os.path.join(tmp_dir, "aggregates")},
        "analytics": {"half_life_days": 14},
    }
    config_path = os.path.join(tmp_dir, "config.yaml")
    with open(config_path, "w") as f:
        yaml.dump(config_data, f)
    return config_path


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def store():
    return InMemoryAggregateStore()


@pytest.fixture
def settings():
    return AnalyticsSettings()


@pytest.fixture
def paths():
    return AnalyticsPaths()
