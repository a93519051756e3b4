"""Main CLI entry point for teamorch."""

import asyncio
import json
import logging
import signal
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler

from teamorch.config.manager import ConfigManager
from teamorch.config.presets import TEAM_SIZES, create_team_structure
from teamorch.config.schema import CommunicationModel, OrchestrationConfig, OrchestrationStrategy
from teamorch.orchestration.errors import DeploymentError, TmuxUnavailableError
from teamorch.orchestration.status import StatusStore
from teamorch.orchestration.team import TeamOrchestrator
from teamorch.output.formatter import get_formatter


def _setup_logging(verbose: bool) -> None:
    handler = RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[handler],
    )


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Verbose output")
@click.option("--no-color", is_flag=True, help="Disable colors")
@click.version_option(package_name="teamorch")
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    no_color: bool,
) -> None:
    """teamorch - run a team of coding agents in tmux.

    \b
    Examples:
        teamorch deploy medium               # Orchestrator, PM, 2 devs, QA
        teamorch deploy large --strategy phased
        teamorch team large                  # Show the large preset
        teamorch status                      # Status of the last run
        teamorch tmux list                   # tmux sessions
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["no_color"] = no_color

    _setup_logging(verbose)
    get_formatter(color=not no_color, verbose=verbose)


@cli.command()
@click.argument("size", required=False, type=click.Choice(TEAM_SIZES))
@click.option(
    "--strategy",
    type=click.Choice([s.value for s in OrchestrationStrategy]),
    help="How agents are deployed",
)
@click.option(
    "--communication",
    type=click.Choice([m.value for m in CommunicationModel]),
    help="Who may message whom",
)
@click.option("--no-git", is_flag=True, help="Disable git discipline")
@click.option("--no-scheduling", is_flag=True, help="Disable self-scheduled check-ins")
@click.option("--commit-interval", type=click.IntRange(min=1), help="Minutes between auto-commits")
@click.option("--check-interval", type=click.IntRange(min=1), help="Default minutes between check-ins")
@click.option("--duration", type=click.FloatRange(min=0, min_open=True), help="Minutes to run before stopping")
@click.option("-n", "--name", "project_name", help="Project name (default: directory name)")
@click.option(
    "--project-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=".",
    help="Project to orchestrate",
)
def deploy(
    size: str | None,
    strategy: str | None,
    communication: str | None,
    no_git: bool,
    no_scheduling: bool,
    commit_interval: int | None,
    check_interval: int | None,
    duration: float | None,
    project_name: str | None,
    project_dir: Path,
) -> None:
    """Deploy a team and monitor it until Ctrl-C or --duration."""
    formatter = get_formatter()
    project_path = project_dir.resolve()

    overrides: dict = {}
    if no_git:
        overrides.setdefault("git_discipline", {})["enabled"] = False
    if commit_interval:
        overrides.setdefault("git_discipline", {})["auto_commit_interval"] = commit_interval
    if no_scheduling:
        overrides.setdefault("self_scheduling", {})["enabled"] = False
    if check_interval:
        overrides.setdefault("self_scheduling", {})["default_check_interval"] = check_interval

    try:
        config = ConfigManager.build_orchestration_config(
            project_name or project_path.name,
            size=size,
            strategy=strategy,
            communication_model=communication,
            overrides=overrides,
        )
    except ValueError as e:
        formatter.print_error(f"Invalid configuration: {e}")
        raise SystemExit(1)

    asyncio.run(_run_deployment(config, project_path, duration))


async def _run_deployment(
    config: OrchestrationConfig,
    project_path: Path,
    duration: float | None,
) -> None:
    """Deploy, monitor, and stop one orchestration."""
    formatter = get_formatter()
    orchestrator = TeamOrchestrator(config, project_path)

    try:
        await orchestrator.deploy()
    except TmuxUnavailableError as e:
        formatter.print_error(str(e))
        raise SystemExit(1)
    except DeploymentError as e:
        formatter.print_error(str(e))
        if e.__cause__ is not None:
            formatter.print_error(repr(e.__cause__))
        raise SystemExit(1)

    formatter.print_success(
        f"Deployed {len(orchestrator.agents)} agent(s) in tmux session {orchestrator.session_name}"
    )
    formatter.print_info(f"Attach with: tmux attach -t {orchestrator.session_name}")
    formatter.print_info("Press Ctrl-C to stop")

    asyncio.get_running_loop().add_signal_handler(signal.SIGINT, orchestrator.request_stop)
    try:
        await orchestrator.run(duration=duration * 60 if duration else None)
    finally:
        report_path = await orchestrator.stop()

    formatter.print_summary(orchestrator.generate_summary())
    formatter.print_success(f"Final report: {report_path}")


@cli.command()
@click.argument("size", required=False, default="medium", type=click.Choice(TEAM_SIZES))
@click.option("-n", "--name", "project_name", default="project", help="Project name used in briefings")
def team(size: str, project_name: str) -> None:
    """Show a preset team structure."""
    structure = create_team_structure(size, project_name)
    get_formatter().print_team(structure, title=f"{size.capitalize()} team")


@cli.command()
@click.option(
    "--project-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=".",
    help="Orchestrated project",
)
def status(project_dir: Path) -> None:
    """Show the saved status of the last orchestration."""
    formatter = get_formatter()
    project_path = project_dir.resolve()

    try:
        config = ConfigManager.build_orchestration_config(project_path.name)
    except ValueError as e:
        formatter.print_error(f"Invalid configuration: {e}")
        raise SystemExit(1)
    store = StatusStore(config.get_state_dir(project_path))

    saved = store.load_status()
    if saved is None:
        formatter.print_warning(f"No orchestration status found in {store.state_dir}")
        raise SystemExit(1)

    formatter.print_status(saved)


@cli.group()
def config() -> None:
    """Manage configuration."""
    pass


@config.command("show")
def config_show() -> None:
    """Show current configuration."""
    config = ConfigManager.get_config()
    formatter = get_formatter()

    config_dict = config.model_dump(by_alias=True, mode="json")
    formatter.console.print_json(json.dumps(config_dict, indent=2))


# Register tmux commands
from teamorch.cli.commands.tmux_cmd import tmux

cli.add_command(tmux)


if __name__ == "__main__":
    cli()
