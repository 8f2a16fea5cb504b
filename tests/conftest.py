"""
Pytest configuration and shared fixtures for e2e-testing tests.

This module provides common test fixtures and configuration for both
unit tests and the BDD end-to-end scenarios.
"""

from pathlib import Path

import pytest


class FakeClock:
    """Monotonic clock advanced only by its own sleep."""

    def __init__(self, start: float = 0.0):
        self.now = start
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(float(seconds))
        self.now += seconds


@pytest.fixture
def fake_clock():
    """Provide a fake clock whose sleep records waits instead of blocking."""
    return FakeClock()


@pytest.fixture
def mock_env_vars(tmp_path):
    """Provide environment variables for a local test stack."""
    return {
        "KIBANA_URL": "http://kibana.test:5601",
        "KIBANA_USERNAME": "elastic",
        "KIBANA_PASSWORD": "changeme",
        "POLL_INITIAL_INTERVAL": "1",
        "POLL_MAX_INTERVAL": "4",
        "POLL_MULTIPLIER": "2",
        "POLL_TIMEOUT": "20",
        "STACK_VERSION": "7.8.0",
        "AGENT_BINARY_DIR": str(tmp_path / "dist"),
        "METRICS_OUTPUT_DIR": str(tmp_path / "metrics"),
        "LOG_DIR": str(tmp_path / "logs"),
        "LOG_LEVEL": "DEBUG",
    }


@pytest.fixture
def mock_config(mock_env_vars, monkeypatch):
    """Set up environment variables and return a Config built from them."""
    from e2e_testing.config import Config

    for key, value in mock_env_vars.items():
        monkeypatch.setenv(key, value)
    return Config()


@pytest.fixture
def installers(mock_config):
    """Installers declared in the packaged installers.yaml."""
    from e2e_testing.installers import load_installers

    return load_installers(
        mock_config.installers_file, mock_config.stack_version, mock_config.agent_binary_dir
    )


@pytest.fixture
def installers_yaml(tmp_path):
    """Write an installers file and return its path."""

    def _write(content: str) -> Path:
        path = tmp_path / "installers.yaml"
        path.write_text(content)
        return path

    return _write


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "e2e" in str(item.fspath):
            item.add_marker(pytest.mark.e2e)
            item.add_marker(pytest.mark.docker)
            item.add_marker(pytest.mark.slow)
