"""Pytest configuration and fixtures."""

from unittest.mock import Mock

import pytest

from teamorch.config.manager import ConfigManager
from teamorch.config.presets import create_team_structure
from teamorch.config.schema import (
    GitDisciplineConfig,
    OrchestrationConfig,
    SelfSchedulingConfig,
    TmuxConfig,
)
from teamorch.tmux.manager import TmuxManager


@pytest.fixture(autouse=True)
def reset_config(monkeypatch, tmp_path):
    """Isolate config loading from the real home directory."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    ConfigManager._config = None
    yield
    ConfigManager._config = None


@pytest.fixture
def fake_tmux():
    """TmuxManager double; async methods are AsyncMocks."""
    tmux = Mock(spec=TmuxManager)
    tmux.config = TmuxConfig(agent_startup_delay=0, message_settle_delay=0)
    tmux.session_exists.return_value = False
    tmux.list_windows.return_value = []
    tmux.capture_window_content.return_value = "working on task"
    return tmux


@pytest.fixture
def make_config(tmp_path):
    """Build an OrchestrationConfig with instant tmux delays."""

    def _make(size: str = "small", **overrides) -> OrchestrationConfig:
        values = {
            "project_name": "Demo App",
            "team_structure": create_team_structure(size, "Demo App"),
            "tmux": TmuxConfig(agent_startup_delay=0, message_settle_delay=0),
            "git_discipline": GitDisciplineConfig(enabled=False),
            "self_scheduling": SelfSchedulingConfig(),
            "state_dir": str(tmp_path / "state"),
        }
        values.update(overrides)
        return OrchestrationConfig(**values)

    return _make
