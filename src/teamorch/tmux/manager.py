"""tmux session management for deployed agent windows."""

import asyncio
import logging
import shutil
import subprocess
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any

import libtmux

from teamorch.config.schema import TmuxConfig
from teamorch.orchestration.errors import TmuxCommandError, TmuxUnavailableError

logger = logging.getLogger(__name__)


@dataclass
class TmuxWindow:
    """One window of a tmux session."""

    session_name: str
    window_index: int
    window_name: str
    active: bool


class TmuxManager:
    """Drives tmux sessions and windows that host agents.

    libtmux is blocking, so every public coroutine hands the call to a worker
    thread. Errors from tmux surface unchanged; nothing is retried here.
    """

    def __init__(self, config: TmuxConfig | None = None) -> None:
        self.config = config or TmuxConfig()
        self._server: libtmux.Server | None = None

    @staticmethod
    def is_available() -> bool:
        """Check if tmux is available on the system."""
        return shutil.which("tmux") is not None

    def ensure_available(self) -> None:
        """Raise TmuxUnavailableError when tmux is missing."""
        if not self.is_available():
            raise TmuxUnavailableError()

    @property
    def server(self) -> libtmux.Server:
        """Get or create the tmux server connection."""
        if self._server is None:
            self._server = libtmux.Server()
        return self._server

    # --- sync helpers (run in worker threads) ---

    def _find_session(self, session_name: str) -> libtmux.Session | None:
        return self.server.sessions.get(session_name=session_name, default=None)

    def _get_session(self, session_name: str) -> libtmux.Session:
        session = self._find_session(session_name)
        if session is None:
            raise TmuxCommandError(f"Session not found: {session_name}")
        return session

    def _get_window(self, session_name: str, window_index: int) -> libtmux.Window:
        session = self._get_session(session_name)
        for window in session.windows:
            if int(window.window_index) == window_index:
                return window
        raise TmuxCommandError(f"Window not found: {session_name}:{window_index}")

    def _get_pane(self, session_name: str, window_index: int) -> libtmux.Pane:
        window = self._get_window(session_name, window_index)
        pane = window.active_pane
        if pane is None:
            raise TmuxCommandError(f"No active pane in {session_name}:{window_index}")
        return pane

    def _list_windows(self, session_name: str) -> list[TmuxWindow]:
        session = self._find_session(session_name)
        if session is None:
            return []
        return [
            TmuxWindow(
                session_name=session_name,
                window_index=int(window.window_index),
                window_name=window.window_name or "",
                active=window.window_active == "1",
            )
            for window in session.windows
        ]

    def _create_window(
        self,
        session_name: str,
        window_index: int,
        window_name: str,
        working_dir: str,
        command: str | None,
    ) -> None:
        session = self._get_session(session_name)
        window = session.new_window(
            window_name=window_name,
            window_index=str(window_index),
            start_directory=working_dir,
            attach=False,
        )
        if command:
            pane = window.active_pane
            if pane is None:
                raise TmuxCommandError(f"No active pane in {session_name}:{window_index}")
            pane.send_keys(command, enter=True, suppress_history=False)

    def _send_keys(self, session_name: str, window_index: int, text: str, enter: bool) -> None:
        pane = self._get_pane(session_name, window_index)
        # Literal mode keeps quotes and key names like "Enter" as plain text
        pane.send_keys(text, enter=False, suppress_history=False, literal=True)
        if enter:
            pane.enter()

    def _press_enter(self, session_name: str, window_index: int) -> None:
        self._get_pane(session_name, window_index).enter()

    def _capture(self, session_name: str, window_index: int, lines: int) -> str:
        pane = self._get_pane(session_name, window_index)
        captured = pane.capture_pane(start=-lines)
        if isinstance(captured, str):
            return captured
        return "\n".join(captured)

    # --- sessions ---

    async def session_exists(self, session_name: str) -> bool:
        """Check if a session exists."""
        session = await asyncio.to_thread(self._find_session, session_name)
        return session is not None

    async def create_session(self, session_name: str, working_dir: str | None = None) -> None:
        """Create a detached session."""
        await asyncio.to_thread(
            self.server.new_session,
            session_name=session_name,
            start_directory=working_dir,
            attach=False,
        )
        logger.info("Created tmux session %s", session_name)

    async def kill_session(self, session_name: str) -> None:
        """Kill a session."""
        session = await asyncio.to_thread(self._get_session, session_name)
        await asyncio.to_thread(session.kill)

    def list_sessions(self) -> list[dict[str, Any]]:
        """List all tmux sessions."""
        sessions = []
        for session in self.server.sessions:
            sessions.append({
                "name": session.name,
                "windows": len(session.windows),
                "attached": session.session_attached not in (None, "0"),
            })
        return sessions

    def attach(self, session_name: str) -> None:
        """Attach the current terminal to a session."""
        if self._find_session(session_name) is None:
            raise TmuxCommandError(f"Session not found: {session_name}")
        subprocess.run(["tmux", "attach-session", "-t", session_name])

    # --- windows ---

    async def list_windows(self, session_name: str) -> list[TmuxWindow]:
        """List windows as index:name:active triples; empty if no session."""
        return await asyncio.to_thread(self._list_windows, session_name)

    async def create_window(
        self,
        session_name: str,
        window_index: int,
        window_name: str,
        working_dir: str,
        command: str | None = None,
    ) -> None:
        """Create a window at a given index and optionally start a command."""
        await asyncio.to_thread(
            self._create_window, session_name, window_index, window_name, working_dir, command
        )

    async def rename_window(self, session_name: str, window_index: int, new_name: str) -> None:
        """Rename a window."""
        window = await asyncio.to_thread(self._get_window, session_name, window_index)
        await asyncio.to_thread(window.rename_window, new_name)

    async def kill_window(self, session_name: str, window_index: int) -> None:
        """Kill a window."""
        window = await asyncio.to_thread(self._get_window, session_name, window_index)
        await asyncio.to_thread(window.kill)

    async def find_windows_by_name(self, pattern: str) -> list[TmuxWindow]:
        """Find windows across all sessions whose name contains pattern."""
        sessions = await asyncio.to_thread(lambda: [s.name for s in self.server.sessions])
        matches: list[TmuxWindow] = []
        for session_name in sessions:
            for window in await self.list_windows(session_name):
                if pattern.lower() in window.window_name.lower():
                    matches.append(window)
        return matches

    # --- input/output ---

    async def send_keys(
        self, session_name: str, window_index: int, text: str, enter: bool = False
    ) -> None:
        """Type text into a window."""
        await asyncio.to_thread(self._send_keys, session_name, window_index, text, enter)

    async def send_command(self, session_name: str, window_index: int, command: str) -> None:
        """Type a command and press Enter."""
        await self.send_keys(session_name, window_index, command, enter=True)

    async def send_agent_message(self, session_name: str, window_index: int, message: str) -> None:
        """Send a message to an agent window.

        The agent UI needs the text buffered before Enter arrives, so Enter is
        sent after a settle delay.
        """
        await self.send_keys(session_name, window_index, message)
        await asyncio.sleep(self.config.message_settle_delay)
        await asyncio.to_thread(self._press_enter, session_name, window_index)

    async def capture_window_content(
        self, session_name: str, window_index: int, lines: int = 50
    ) -> str:
        """Capture recent pane output, capped at capture_max_lines."""
        actual_lines = min(lines, self.config.capture_max_lines)
        return await asyncio.to_thread(self._capture, session_name, window_index, actual_lines)

    async def wait_for_text(
        self,
        session_name: str,
        window_index: int,
        text: str,
        timeout: float = 30.0,
    ) -> bool:
        """Poll a window until it contains text. Returns False on timeout."""
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            try:
                content = await self.capture_window_content(session_name, window_index, 50)
                if text in content:
                    return True
            except Exception as e:
                # Window might not exist yet
                logger.debug("wait_for_text capture failed: %s", e)
            await asyncio.sleep(self.config.poll_interval)
        return False

    async def wait_for_window(
        self,
        session_name: str,
        window_index: int,
        timeout: float = 30.0,
    ) -> bool:
        """Poll until a window exists. Returns False on timeout."""
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            windows = await self.list_windows(session_name)
            if any(w.window_index == window_index for w in windows):
                return True
            await asyncio.sleep(self.config.poll_interval)
        return False

    async def create_monitoring_snapshot(self) -> str:
        """Summarize every session and window with recent output."""
        sessions = await asyncio.to_thread(self.list_sessions)
        timestamp = datetime.now().isoformat()

        lines = [f"Tmux Monitoring Snapshot - {timestamp}", "=" * 50, ""]
        for session in sessions:
            state = "ATTACHED" if session["attached"] else "DETACHED"
            lines.append(f"Session: {session['name']} ({state})")
            lines.append("-" * 30)

            for window in await self.list_windows(session["name"]):
                header = f"  Window {window.window_index}: {window.window_name}"
                if window.active:
                    header += " (ACTIVE)"
                lines.append(header)

                try:
                    content = await self.capture_window_content(
                        session["name"], window.window_index, 10
                    )
                except Exception:
                    lines.append("    | [Unable to capture content]")
                else:
                    recent = [line for line in content.splitlines() if line.strip()]
                    if recent:
                        lines.append("    Recent output:")
                        lines.extend(f"    | {line}" for line in recent)
                lines.append("")

        return "\n".join(lines)
