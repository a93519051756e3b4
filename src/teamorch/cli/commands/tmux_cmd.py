"""tmux-related CLI commands."""

import click

from teamorch.config.manager import ConfigManager
from teamorch.output.formatter import get_formatter


def _require_tmux():
    from teamorch.tmux.manager import TmuxManager

    formatter = get_formatter()
    if not TmuxManager.is_available():
        formatter.print_error("tmux is not installed")
        raise SystemExit(1)
    return TmuxManager(ConfigManager.get_config().tmux)


def _orch_sessions(manager) -> list[str]:
    prefix = f"{manager.config.session_prefix}-"
    return [s["name"] for s in manager.list_sessions() if s["name"].startswith(prefix)]


def _resolve_session(manager, session_name: str | None) -> str | None:
    """Named session, or the only orchestration session running."""
    formatter = get_formatter()
    if session_name:
        return session_name

    sessions = _orch_sessions(manager)
    if not sessions:
        return None
    if len(sessions) > 1:
        formatter.print_error(
            f"Several orchestration sessions running ({', '.join(sessions)}); name one"
        )
        raise SystemExit(1)
    return sessions[0]


@click.group()
def tmux() -> None:
    """tmux sessions hosting agent teams."""
    pass


@tmux.command("attach")
@click.argument("session_name", required=False)
def tmux_attach(session_name: str | None) -> None:
    """Attach to an orchestration session."""
    from teamorch.orchestration.errors import TmuxCommandError

    formatter = get_formatter()
    manager = _require_tmux()

    target = _resolve_session(manager, session_name)
    if target is None:
        formatter.print_error("No orchestration session running")
        raise SystemExit(1)

    try:
        manager.attach(target)
    except TmuxCommandError as e:
        formatter.print_error(str(e))
        raise SystemExit(1)


@tmux.command("kill")
@click.argument("session_name", required=False)
def tmux_kill(session_name: str | None) -> None:
    """Kill an orchestration session."""
    import asyncio

    from teamorch.orchestration.errors import TmuxCommandError

    formatter = get_formatter()
    manager = _require_tmux()

    target = _resolve_session(manager, session_name)
    if target is None:
        formatter.print_info("No orchestration session running")
        return

    try:
        asyncio.run(manager.kill_session(target))
    except TmuxCommandError as e:
        formatter.print_error(str(e))
        raise SystemExit(1)
    formatter.print_success(f"tmux session {target} killed")


@tmux.command("list")
@click.option("--all", "show_all", is_flag=True, help="Include sessions not started by teamorch")
def tmux_list(show_all: bool) -> None:
    """List tmux sessions."""
    from rich.table import Table

    formatter = get_formatter()
    manager = _require_tmux()

    sessions = manager.list_sessions()
    if not show_all:
        prefix = f"{manager.config.session_prefix}-"
        sessions = [s for s in sessions if s["name"].startswith(prefix)]

    if not sessions:
        formatter.print_info("No tmux sessions running")
        return

    table = Table(title="tmux Sessions")
    table.add_column("Name", style="cyan")
    table.add_column("Windows", justify="right")
    table.add_column("Attached")

    for session in sessions:
        attached = "[green]Yes[/green]" if session["attached"] else "No"
        table.add_row(session["name"], str(session["windows"]), attached)

    formatter.console.print(table)
