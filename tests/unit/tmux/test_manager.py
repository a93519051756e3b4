"""Tests for TmuxManager with a mocked libtmux server"""
from unittest.mock import Mock, patch

import pytest

from teamorch.config.schema import TmuxConfig
from teamorch.orchestration.errors import TmuxCommandError, TmuxUnavailableError
from teamorch.tmux.manager import TmuxManager


@pytest.fixture
def pane():
    pane = Mock()
    pane.capture_pane.return_value = ["line one", "line two"]
    return pane


@pytest.fixture
def server(pane):
    """Server with one session "orch-demo" holding window 0"""
    window = Mock(window_index="0", window_name="orchestrator-orchestrator", window_active="1")
    window.active_pane = pane

    session = Mock()
    session.name = "orch-demo"
    session.windows = [window]
    session.session_attached = "0"

    server = Mock()
    server.sessions.get.side_effect = (
        lambda session_name, default=None: session if session_name == "orch-demo" else default
    )
    server.sessions.__iter__ = lambda self: iter([session])
    return server


@pytest.fixture
def manager(server):
    manager = TmuxManager(TmuxConfig(message_settle_delay=0, poll_interval=0.01))
    manager._server = server
    return manager


def test_is_available():
    with patch("teamorch.tmux.manager.shutil.which", return_value="/usr/bin/tmux"):
        assert TmuxManager.is_available() is True

    with patch("teamorch.tmux.manager.shutil.which", return_value=None):
        assert TmuxManager.is_available() is False


def test_ensure_available_raises_when_missing():
    with patch("teamorch.tmux.manager.shutil.which", return_value=None):
        with pytest.raises(TmuxUnavailableError, match="tmux is not installed"):
            TmuxManager().ensure_available()


@pytest.mark.asyncio
async def test_session_exists(manager):
    assert await manager.session_exists("orch-demo") is True
    assert await manager.session_exists("other") is False


@pytest.mark.asyncio
async def test_list_windows(manager):
    windows = await manager.list_windows("orch-demo")

    assert len(windows) == 1
    assert windows[0].window_index == 0
    assert windows[0].window_name == "orchestrator-orchestrator"
    assert windows[0].active is True


@pytest.mark.asyncio
async def test_list_windows_unknown_session_is_empty(manager):
    assert await manager.list_windows("missing") == []


@pytest.mark.asyncio
async def test_unknown_window_raises(manager):
    with pytest.raises(TmuxCommandError, match="Window not found"):
        await manager.send_keys("orch-demo", 7, "hello")


@pytest.mark.asyncio
async def test_send_keys_is_literal(manager, pane):
    """Test text with quotes reaches the pane unchanged"""
    text = 'echo "it\'s done"'

    await manager.send_keys("orch-demo", 0, text)

    pane.send_keys.assert_called_once_with(text, enter=False, suppress_history=False, literal=True)
    pane.enter.assert_not_called()


@pytest.mark.asyncio
async def test_send_command_presses_enter(manager, pane):
    await manager.send_command("orch-demo", 0, "ls")

    pane.send_keys.assert_called_once()
    pane.enter.assert_called_once()


@pytest.mark.asyncio
async def test_send_agent_message_waits_then_enters(manager, pane):
    calls = []
    pane.send_keys.side_effect = lambda *a, **k: calls.append("keys")
    pane.enter.side_effect = lambda: calls.append("enter")

    with patch("teamorch.tmux.manager.asyncio.sleep") as mock_sleep:
        await manager.send_agent_message("orch-demo", 0, "Hello agent")

    mock_sleep.assert_awaited_once_with(0)
    assert calls == ["keys", "enter"]


@pytest.mark.asyncio
async def test_capture_is_capped(manager, pane):
    content = await manager.capture_window_content("orch-demo", 0, lines=5000)

    pane.capture_pane.assert_called_once_with(start=-1000)
    assert content == "line one\nline two"


@pytest.mark.asyncio
async def test_create_window_runs_command(manager, server):
    session = server.sessions.get("orch-demo")
    new_pane = Mock()
    session.new_window.return_value = Mock(active_pane=new_pane)

    await manager.create_window("orch-demo", 3, "developer-dev-1", "/tmp/project", command="claude")

    session.new_window.assert_called_once_with(
        window_name="developer-dev-1",
        window_index="3",
        start_directory="/tmp/project",
        attach=False,
    )
    new_pane.send_keys.assert_called_once_with("claude", enter=True, suppress_history=False)


@pytest.mark.asyncio
async def test_wait_for_text_found(manager, pane):
    pane.capture_pane.return_value = ["booting", "Ready for input"]

    assert await manager.wait_for_text("orch-demo", 0, "Ready", timeout=1) is True


@pytest.mark.asyncio
async def test_wait_for_text_times_out(manager):
    assert await manager.wait_for_text("orch-demo", 0, "never", timeout=0.05) is False


@pytest.mark.asyncio
async def test_wait_for_text_tolerates_missing_window(manager):
    assert await manager.wait_for_text("orch-demo", 9, "anything", timeout=0.05) is False


@pytest.mark.asyncio
async def test_wait_for_window(manager):
    assert await manager.wait_for_window("orch-demo", 0, timeout=1) is True
    assert await manager.wait_for_window("orch-demo", 4, timeout=0.05) is False


@pytest.mark.asyncio
async def test_find_windows_by_name(manager):
    matches = await manager.find_windows_by_name("ORCHESTRATOR")

    assert [w.window_index for w in matches] == [0]
    assert await manager.find_windows_by_name("qa-") == []


def test_list_sessions(manager):
    sessions = manager.list_sessions()

    assert sessions == [{"name": "orch-demo", "windows": 1, "attached": False}]


@pytest.mark.asyncio
async def test_monitoring_snapshot(manager):
    snapshot = await manager.create_monitoring_snapshot()

    assert "Session: orch-demo (DETACHED)" in snapshot
    assert "Window 0: orchestrator-orchestrator (ACTIVE)" in snapshot
    assert "| line two" in snapshot
