"""Tests for the final report"""
from datetime import timedelta

import pytest

from teamorch.orchestration.git_discipline import CommitRecord, GitStats
from teamorch.orchestration.models import AgentSession, AgentStatus, Message, MessageType, OrchestrationState
from teamorch.orchestration.report import (
    AgentReportRow,
    FinalReport,
    completion_rate,
    format_uptime,
    next_steps,
    productivity,
    recommendations,
    render_report,
    team_composition,
)
from teamorch.orchestration.router import CommunicationStats


@pytest.mark.parametrize("elapsed,expected", [
    (timedelta(seconds=59), "0h 0m"),
    (timedelta(minutes=65), "1h 5m"),
    (timedelta(hours=26, minutes=3), "26h 3m"),
])
def test_format_uptime(elapsed, expected):
    assert format_uptime(elapsed) == expected


def test_completion_rate():
    assert completion_rate(0, 0) == 0
    assert completion_rate(3, 1) == 75
    assert completion_rate(1, 2) == 33


def test_team_composition_largest_first():
    roles = ["developer", "orchestrator", "developer", "qa-engineer", "developer"]

    assert team_composition(roles)[0] == ("developer", 3)


def test_productivity_sorted():
    slow = AgentSession("dev-1", "s", 2, "w", completed_tasks=1, git_commits=4)
    fast = AgentSession("dev-2", "s", 3, "w", completed_tasks=6)
    rows = [AgentReportRow("Dev 1", "developer", slow), AgentReportRow("Dev 2", "developer", fast)]

    result = productivity(rows, hours=2)

    assert [p.agent for p in result] == ["Dev 2", "Dev 1"]
    assert result[0].tasks_per_hour == 3.0
    assert result[1].commits_per_hour == 2.0


def test_productivity_short_run_does_not_divide_by_zero():
    session = AgentSession("dev-1", "s", 2, "w", completed_tasks=1)

    result = productivity([AgentReportRow("Dev", "developer", session)], hours=0)

    assert result[0].tasks_per_hour == 60.0


def test_no_recommendations_for_healthy_run():
    statuses = [AgentStatus.ACTIVE] * 4

    assert recommendations(statuses, error_count=2, compliance_rate=95) == []


def test_recommendations():
    statuses = [AgentStatus.BLOCKED, AgentStatus.IDLE, AgentStatus.IDLE, AgentStatus.ACTIVE]

    advice = recommendations(statuses, error_count=11, compliance_rate=50)

    assert advice == [
        "1 agent(s) are blocked. Consider manual intervention.",
        "High error rate detected. Review error logs for patterns.",
        "Git commit compliance below 80%. Agents may need reminders.",
        "2 agent(s) idle (over 30% of the team). Consider task redistribution.",
    ]


def test_idle_threshold_is_strict():
    # 3 of 10 idle is exactly 30%
    statuses = [AgentStatus.IDLE] * 3 + [AgentStatus.ACTIVE] * 7

    assert recommendations(statuses, 0, 100) == []


def test_next_steps_depend_on_state():
    assert next_steps(OrchestrationState.COMPLETED)[0] == "Review final report and agent logs"
    assert next_steps(OrchestrationState.RUNNING)[0] == "Monitor agent progress"


def _report(**kwargs) -> FinalReport:
    values = dict(
        orchestration_id="abc12345",
        project_name="Demo",
        state=OrchestrationState.COMPLETED,
        uptime="1h 0m",
        total_agents=2,
        active_agents=1,
        tasks_completed=3,
        tasks_pending=1,
        blockers=1,
        errors=0,
        escalations=0,
        communication_model="hub-and-spoke",
        branch_strategy="feature",
        git=GitStats(total_commits=5, compliance_rate=90.0),
        communication=CommunicationStats(total_messages=7),
    )
    values.update(kwargs)
    return FinalReport(**values)


def test_render_report_sections():
    blocked = AgentSession("dev-1", "orch-demo", 2, "developer-dev-1", status=AgentStatus.BLOCKED)
    report = _report(
        team_composition=[("developer", 1), ("orchestrator", 1)],
        agents=[AgentReportRow("Dev 1", "developer", blocked, blocker="waiting on schema")],
        recent_commits=[CommitRecord("a1b2c3d", "Progress: x", "teamorch", "2 minutes ago")],
        recent_messages=[Message("dev-1", "pm-1", MessageType.TASK_BLOCKED, "waiting on schema\nmore")],
        next_steps=next_steps(OrchestrationState.COMPLETED),
    )

    text = render_report(report)

    assert text.startswith("# Orchestration Report: Demo\n")
    for section in ("## Team", "## Progress", "## Agents", "## Productivity",
                    "## Git Discipline", "## Communication", "## Recommendations", "## Next Steps"):
        assert section in text
    assert "- Completion rate: 75%" in text
    assert "| Dev 1 | developer | blocked | orch-demo:2 |" in text
    assert "- Dev 1: waiting on schema" in text
    assert "- `a1b2c3d` Progress: x (teamorch, 2 minutes ago)" in text
    assert "- dev-1 -> pm-1 [task-blocked]: waiting on schema" in text
    assert "- No issues detected" in text


def test_render_report_lists_recommendations():
    text = render_report(_report(recommendations=["1 agent(s) are blocked. Consider manual intervention."]))

    assert "- 1 agent(s) are blocked. Consider manual intervention." in text
    assert "No issues detected" not in text
