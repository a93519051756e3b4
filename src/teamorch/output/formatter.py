"""Output formatting using Rich for terminal output."""

from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.theme import Theme
from rich.tree import Tree

from teamorch.config.schema import AgentDescriptor, TeamStructure

# Custom theme for teamorch
TEAMORCH_THEME = Theme(
    {
        "role.orchestrator": "magenta bold",
        "role.project-manager": "cyan",
        "role.default": "blue",
        "status.active": "green",
        "status.idle": "yellow",
        "status.blocked": "red",
        "status.error": "red bold",
        "status.completed": "dim",
        "success": "green",
        "error": "red bold",
        "warning": "yellow",
        "info": "blue",
        "metadata": "dim",
    }
)

_ROLE_STYLES = {"orchestrator", "project-manager"}


class OutputFormatter:
    """Handles all output formatting for teamorch."""

    def __init__(self, color: bool = True, verbose: bool = False) -> None:
        self.console = Console(theme=TEAMORCH_THEME, no_color=not color)
        self.verbose = verbose

    def print_error(self, message: str, agent_id: str | None = None) -> None:
        """Print an error message."""
        prefix = f"[{agent_id}] " if agent_id else ""
        self.console.print(f"[error]{prefix}Error: {message}[/error]")

    def print_success(self, message: str) -> None:
        """Print a success message."""
        self.console.print(f"[success]{message}[/success]")

    def print_info(self, message: str) -> None:
        """Print an info message."""
        self.console.print(f"[info]{message}[/info]")

    def print_warning(self, message: str) -> None:
        """Print a warning message."""
        self.console.print(f"[warning]{message}[/warning]")

    def _role_label(self, agent: AgentDescriptor) -> str:
        role = agent.role.value
        style = f"role.{role}" if role in _ROLE_STYLES else "role.default"
        return f"[{style}]{agent.display_name}[/{style}] [metadata]({agent.id}, {role})[/metadata]"

    def print_team(self, team: TeamStructure, title: str = "Team") -> None:
        """Print the reporting tree of a team."""
        root = Tree(self._role_label(team.orchestrator))
        nodes = {team.orchestrator.id: root}

        # all_agents() lists supervisors before the agents reporting to them
        pending = team.all_agents()[1:]
        while pending:
            remaining = []
            for agent in pending:
                parent = nodes.get(agent.reporting_to or team.orchestrator.id)
                if parent is None:
                    remaining.append(agent)
                    continue
                nodes[agent.id] = parent.add(self._role_label(agent))
            if len(remaining) == len(pending):
                # Supervisor not in the team; hang them off the root
                for agent in remaining:
                    nodes[agent.id] = root.add(self._role_label(agent))
                break
            pending = remaining

        self.console.print(Panel(root, title=title, border_style="info"))

    def print_status(self, status: dict[str, Any]) -> None:
        """Print a persisted status document."""
        metrics = status.get("metrics", {})
        self.console.print(Panel(
            f"Project: [bold]{status.get('project_name', '?')}[/bold]\n"
            f"Orchestration: {status.get('id', '?')}\n"
            f"State: {status.get('status', '?')}\n"
            f"Started: {status.get('start_time', '?')}\n"
            f"Ended: {status.get('end_time') or '-'}\n"
            f"Uptime: {metrics.get('uptime', '0h 0m')}",
            title="Orchestration Status",
            border_style="info",
        ))

        table = Table(title="Metrics")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", justify="right")
        for key in (
            "total_agents",
            "active_agents",
            "tasks_completed",
            "tasks_pending",
            "git_commits",
            "blockers",
            "errors",
        ):
            table.add_row(key.replace("_", " ").title(), str(metrics.get(key, 0)))
        self.console.print(table)

        agents = status.get("agents", [])
        if agents:
            self.print_agents(agents)

    def print_agents(self, agents: list[dict[str, Any]]) -> None:
        """Print agent sessions.

        Args:
            agents: Serialized AgentSession dicts.
        """
        table = Table(title="Agents")
        table.add_column("Agent", style="cyan")
        table.add_column("Window")
        table.add_column("Status", justify="center")
        table.add_column("Tasks", justify="right")
        table.add_column("Commits", justify="right")
        table.add_column("Messages", justify="right")
        table.add_column("Last Activity", style="metadata")

        for agent in agents:
            state = agent.get("status", "active")
            table.add_row(
                agent.get("agent_id", "?"),
                f"{agent.get('session_name', '?')}:{agent.get('window_index', '?')}",
                f"[status.{state}]{state}[/status.{state}]",
                str(agent.get("completed_tasks", 0)),
                str(agent.get("git_commits", 0)),
                str(agent.get("messages_exchanged", 0)),
                agent.get("last_activity", ""),
            )

        self.console.print(table)

    def print_summary(self, summary: str) -> None:
        """Print a compact orchestration summary."""
        self.console.print(Panel(summary, border_style="success"))


# Global formatter instance
_formatter: OutputFormatter | None = None


def get_formatter(color: bool = True, verbose: bool = False) -> OutputFormatter:
    """Get or create the global formatter instance."""
    global _formatter
    if _formatter is None:
        _formatter = OutputFormatter(color=color, verbose=verbose)
    return _formatter
