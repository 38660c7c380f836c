"""
Pytest configuration and shared fixtures for backend tests.
"""
import os
import sys
import tempfile
from pathlib import Path

import pytest

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
sys.path.insert(0, str(backend_dir))

# Set test config directory before importing modules
TEST_CONFIG_DIR = Path(tempfile.gettempdir()) / "quality_probe_test_config"
os.environ["CONFIG_DIR"] = str(TEST_CONFIG_DIR)

# Ensure test config directory exists
TEST_CONFIG_DIR.mkdir(parents=True, exist_ok=True)

import config
from log_utils import clear_secrets
from config import ProbeSettings
from tests.fixtures.mock_analytics import mock_analytics  # noqa: F401
from tests.fixtures.fake_channel import (
    FakeChannelFactory,
    ScriptedEstimator,
    make_descriptor,
)


@pytest.fixture(autouse=True)
def isolated_settings():
    """Every test starts with an empty settings cache and no config file."""
    config.clear_settings_cache()
    if config.CONFIG_FILE.exists():
        config.CONFIG_FILE.unlink()
    yield
    config.clear_settings_cache()
    clear_secrets()


@pytest.fixture
def descriptor():
    """Session descriptor used by the probe scenarios."""
    return make_descriptor()


@pytest.fixture
def channel_factory():
    """Factory producing well-behaved fake channels (stream created immediately)."""
    return FakeChannelFactory()


@pytest.fixture
def estimator():
    """Estimator that never converges on its own."""
    return ScriptedEstimator(score=3.1)


@pytest.fixture
def probe_settings():
    """Settings with a short deadline and analytics disabled."""
    return ProbeSettings(deadline_ms=200, analytics_enabled=False)

