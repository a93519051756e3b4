"""Final orchestration report and heuristic recommendations."""
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from teamorch.config.defaults import (
    COMPLIANCE_WARNING_THRESHOLD,
    ERROR_COUNT_WARNING_THRESHOLD,
    IDLE_RATIO_WARNING_THRESHOLD,
)
from teamorch.orchestration.git_discipline import CommitRecord, GitStats
from teamorch.orchestration.models import AgentSession, AgentStatus, Message, OrchestrationState
from teamorch.orchestration.router import CommunicationStats


@dataclass
class AgentReportRow:
    """One agent in the final report"""
    name: str
    role: str
    session: AgentSession
    blocker: str | None = None


@dataclass
class ProductivityRow:
    agent: str
    tasks_per_hour: float
    commits_per_hour: float


@dataclass
class FinalReport:
    """Everything the final markdown report shows"""
    orchestration_id: str
    project_name: str
    state: OrchestrationState
    uptime: str
    total_agents: int
    active_agents: int
    tasks_completed: int
    tasks_pending: int
    blockers: int
    errors: int
    escalations: int
    communication_model: str
    branch_strategy: str
    git: GitStats
    communication: CommunicationStats
    active_branches: int = 1
    team_composition: list[tuple[str, int]] = field(default_factory=list)
    agents: list[AgentReportRow] = field(default_factory=list)
    productivity: list[ProductivityRow] = field(default_factory=list)
    recent_commits: list[CommitRecord] = field(default_factory=list)
    recent_messages: list[Message] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    next_steps: list[str] = field(default_factory=list)
    generated_at: datetime = field(default_factory=datetime.now)

    @property
    def completion_rate(self) -> int:
        return completion_rate(self.tasks_completed, self.tasks_pending)


def format_uptime(elapsed: timedelta) -> str:
    """Render a duration as "<h>h <m>m"."""
    total_minutes = int(elapsed.total_seconds() // 60)
    return f"{total_minutes // 60}h {total_minutes % 60}m"


def completion_rate(completed: int, pending: int) -> int:
    """Percent of known tasks completed, 0 when there are none."""
    total = completed + pending
    return round(completed / total * 100) if total else 0


def team_composition(roles: list[str]) -> list[tuple[str, int]]:
    """(role, count) pairs, largest group first."""
    counts: dict[str, int] = {}
    for role in roles:
        counts[role] = counts.get(role, 0) + 1
    return sorted(counts.items(), key=lambda item: item[1], reverse=True)


def productivity(rows: list[AgentReportRow], hours: float) -> list[ProductivityRow]:
    """Tasks and commits per hour for each agent, most productive first."""
    hours = max(hours, 1 / 60)
    result = [
        ProductivityRow(
            agent=row.name,
            tasks_per_hour=round(row.session.completed_tasks / hours, 2),
            commits_per_hour=round(row.session.git_commits / hours, 2),
        )
        for row in rows
    ]
    return sorted(result, key=lambda p: p.tasks_per_hour, reverse=True)


def recommendations(
    statuses: list[AgentStatus],
    error_count: int,
    compliance_rate: float,
) -> list[str]:
    """Operator advice derived from run metrics."""
    advice = []

    blocked = statuses.count(AgentStatus.BLOCKED)
    if blocked:
        advice.append(f"{blocked} agent(s) are blocked. Consider manual intervention.")

    if error_count > ERROR_COUNT_WARNING_THRESHOLD:
        advice.append("High error rate detected. Review error logs for patterns.")

    if compliance_rate < COMPLIANCE_WARNING_THRESHOLD:
        advice.append(
            f"Git commit compliance below {COMPLIANCE_WARNING_THRESHOLD:.0f}%. "
            "Agents may need reminders."
        )

    idle = statuses.count(AgentStatus.IDLE)
    if statuses and idle > len(statuses) * IDLE_RATIO_WARNING_THRESHOLD:
        advice.append(
            f"{idle} agent(s) idle (over {IDLE_RATIO_WARNING_THRESHOLD:.0%} of the team). "
            "Consider task redistribution."
        )

    return advice


def next_steps(state: OrchestrationState) -> list[str]:
    if state is OrchestrationState.COMPLETED:
        return [
            "Review final report and agent logs",
            "Merge feature branches to main",
            "Tag release version",
            "Archive orchestration data",
        ]
    return [
        "Monitor agent progress",
        "Address any blockers",
        "Review code quality metrics",
        "Prepare for next phase",
    ]


def _summarize(content: str, width: int = 50) -> str:
    first_line = content.splitlines()[0] if content else ""
    return first_line if len(first_line) <= width else first_line[:width] + "..."


def render_report(report: FinalReport) -> str:
    """Markdown for reports/final-report-<id>.md"""
    lines = [
        f"# Orchestration Report: {report.project_name}",
        "",
        f"- Orchestration ID: {report.orchestration_id}",
        f"- Generated: {report.generated_at.isoformat()}",
        f"- Status: {report.state.value}",
        f"- Uptime: {report.uptime}",
        "",
        "## Team",
        "",
        f"Agents: {report.active_agents} active of {report.total_agents}",
        "",
    ]
    lines.extend(f"- {role}: {count}" for role, count in report.team_composition)

    lines.extend([
        "",
        "## Progress",
        "",
        f"- Tasks completed: {report.tasks_completed}",
        f"- Tasks pending: {report.tasks_pending}",
        f"- Completion rate: {report.completion_rate}%",
        f"- Blockers: {report.blockers}",
        f"- Errors: {report.errors} ({report.escalations} escalations)",
        "",
        "## Agents",
        "",
        "| Agent | Role | Status | Window | Tasks | Commits | Messages | Last activity |",
        "|---|---|---|---|---|---|---|---|",
    ])
    for row in report.agents:
        s = row.session
        lines.append(
            f"| {row.name} | {row.role} | {s.status.value} | {s.target} | "
            f"{s.completed_tasks} | {s.git_commits} | {s.messages_exchanged} | "
            f"{s.last_activity.isoformat(timespec='seconds')} |"
        )
    blocked_rows = [row for row in report.agents if row.blocker]
    if blocked_rows:
        lines.extend(["", "Blockers:"])
        lines.extend(f"- {row.name}: {row.blocker}" for row in blocked_rows)

    lines.extend([
        "",
        "## Productivity",
        "",
        "| Agent | Tasks/hour | Commits/hour |",
        "|---|---|---|",
    ])
    lines.extend(
        f"| {p.agent} | {p.tasks_per_hour:.2f} | {p.commits_per_hour:.2f} |"
        for p in report.productivity
    )

    git = report.git
    lines.extend([
        "",
        "## Git Discipline",
        "",
        f"- Commits: {git.total_commits}",
        f"- Compliance: {git.compliance_rate:.0f}%",
        f"- Average commit interval: {git.average_commit_interval:.1f} minutes",
        f"- Branch strategy: {report.branch_strategy}",
        f"- Branches: {report.active_branches} ({git.branches_created} created)",
        f"- Tags created: {git.tags_created}",
    ])
    if report.recent_commits:
        lines.extend(["", "Recent commits:"])
        lines.extend(
            f"- `{c.hash}` {c.message} ({c.author}, {c.time})" for c in report.recent_commits
        )

    comm = report.communication
    lines.extend([
        "",
        "## Communication",
        "",
        f"- Model: {report.communication_model}",
        f"- Messages: {comm.total_messages}",
        f"- Average response time: {comm.average_response_time:.1f}s",
        f"- Blocked messages: {comm.blocked_messages}",
        f"- Escalations: {comm.escalations}",
    ])
    if report.recent_messages:
        lines.extend(["", "Recent messages:"])
        lines.extend(
            f"- {m.from_agent} -> {m.to_agent} [{m.type.value}]: {_summarize(m.content)}"
            for m in report.recent_messages
        )

    lines.extend(["", "## Recommendations", ""])
    if report.recommendations:
        lines.extend(f"- {r}" for r in report.recommendations)
    else:
        lines.append("- No issues detected")

    lines.extend(["", "## Next Steps", ""])
    lines.extend(f"- {step}" for step in report.next_steps)

    return "\n".join(lines) + "\n"
