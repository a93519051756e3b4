"""Tests for team presets."""
import pytest

from teamorch.config.presets import TEAM_SIZES, create_team_structure
from teamorch.config.schema import AgentRole


def test_small_team():
    team = create_team_structure("small", "Demo")

    assert [a.id for a in team.all_agents()] == ["orchestrator", "pm-1", "dev-1", "dev-2"]
    assert team.get("dev-1").reporting_to == "pm-1"
    assert team.get("pm-1").reporting_to == "orchestrator"


def test_medium_team_adds_qa():
    team = create_team_structure("medium", "Demo")

    assert [a.id for a in team.all_agents()] == ["orchestrator", "pm-1", "dev-1", "dev-2", "qa-1"]
    assert team.get("qa-1").role is AgentRole.QA_ENGINEER


def test_large_team_roles():
    team = create_team_structure("large", "Demo")
    roles = [a.role for a in team.all_agents()]

    assert len(roles) == 11
    assert roles.count(AgentRole.PROJECT_MANAGER) == 2
    assert roles.count(AgentRole.DEVELOPER) == 4
    assert roles.count(AgentRole.QA_ENGINEER) == 2
    assert team.get("devops-1").role is AgentRole.DEVOPS
    assert team.get("reviewer-1").role is AgentRole.CODE_REVIEWER
    assert team.get("dev-be-2").reporting_to == "pm-backend"


def test_project_name_in_orchestrator_briefing():
    team = create_team_structure("small", "Rocket")

    assert "Rocket" in team.orchestrator.briefing


@pytest.mark.parametrize("size", TEAM_SIZES)
def test_every_non_root_agent_reports_to_a_team_member(size):
    team = create_team_structure(size, "Demo")
    ids = {a.id for a in team.all_agents()}

    for agent in team.all_agents()[1:]:
        assert agent.reporting_to in ids


def test_unknown_size():
    with pytest.raises(ValueError, match="Unknown team size"):
        create_team_structure("huge", "Demo")
