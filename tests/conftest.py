"""
Pytest configuration for devwatch tests.
"""

import logging

import pytest

from monitor_fakes import FakeNotifier


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point the config file at a temp dir and clear monitor env vars."""
    from devwatch import config
    from devwatch.settings import ENV_VARS

    config_path = tmp_path / "devwatch" / "config.yaml"
    monkeypatch.setattr(config, "CONFIG_PATH", config_path)
    for env_var in ENV_VARS.values():
        monkeypatch.delenv(env_var, raising=False)
    yield config_path


@pytest.fixture(autouse=True)
def reset_logging():
    """Undo setup_logging() so later tests can use caplog."""
    yield
    logger = logging.getLogger("devwatch")
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


@pytest.fixture
def fake_notifier():
    return FakeNotifier()
