"""Role policy and the briefing typed into each agent at deployment."""
from dataclasses import dataclass
from datetime import datetime

from teamorch.config.schema import (
    AgentDescriptor,
    AgentRole,
    CommunicationModel,
    OrchestrationConfig,
)

BASE_ESCALATION_CRITERIA = [
    "Stuck for more than 10 minutes",
    "Critical bug discovered",
    "Architecture decision needed",
    "Security vulnerability found",
]


@dataclass(frozen=True)
class RolePolicy:
    """When a role escalates and what counts as success for it"""
    escalation: tuple[str, ...]
    success: tuple[str, ...]


ROLE_POLICIES: dict[AgentRole, RolePolicy] = {
    AgentRole.ORCHESTRATOR: RolePolicy(
        escalation=("Project timeline at risk", "Resource allocation needed", "Cross-team conflict"),
        success=("All phases completed successfully", "Team operating efficiently", "Project goals achieved"),
    ),
    AgentRole.PROJECT_MANAGER: RolePolicy(
        escalation=("Team member stuck", "Quality standards not met", "Schedule slippage detected"),
        success=("Team productivity maintained", "Quality standards met", "No critical blockers"),
    ),
    AgentRole.DEVELOPER: RolePolicy(
        escalation=("Implementation approach unclear", "Missing requirements", "Technical debt accumulating"),
        success=("Features implemented as requested", "Tests passing", "Code reviewed and approved"),
    ),
    AgentRole.QA_ENGINEER: RolePolicy(
        escalation=("Critical bugs found", "Test coverage below threshold", "Performance regression"),
        success=("Test coverage above threshold", "No critical bugs", "Performance benchmarks met"),
    ),
    AgentRole.DEVOPS: RolePolicy(
        escalation=("Deployment failure", "Infrastructure issues", "Security concerns"),
        success=("Deployments successful", "Infrastructure stable", "Security measures in place"),
    ),
    AgentRole.CODE_REVIEWER: RolePolicy(
        escalation=("Code quality issues", "Security vulnerabilities", "Best practices violations"),
        success=("Code quality maintained", "Best practices followed", "No security issues"),
    ),
    AgentRole.RESEARCHER: RolePolicy(
        escalation=("Technology decision needed", "Conflicting information found", "Research stalled"),
        success=("Research questions answered", "Recommendations provided", "Documentation created"),
    ),
    AgentRole.DOCUMENTATION_WRITER: RolePolicy(
        escalation=("Documentation gaps identified", "API changes not documented", "User guide outdated"),
        success=("Documentation complete", "Examples provided", "User guide updated"),
    ),
}


def check_role_policies() -> None:
    """Raise if any role lacks a policy."""
    missing = [role.value for role in AgentRole if role not in ROLE_POLICIES]
    if missing:
        raise RuntimeError(f"No role policy for: {', '.join(missing)}")


check_role_policies()


def escalation_criteria(role: AgentRole) -> list[str]:
    return [*BASE_ESCALATION_CRITERIA, *ROLE_POLICIES[role].escalation]


def success_criteria(role: AgentRole) -> list[str]:
    return list(ROLE_POLICIES[role].success)


def communication_protocol(agent: AgentDescriptor, model: CommunicationModel) -> str:
    """Who the agent talks to under the given topology."""
    if model is CommunicationModel.HUB_AND_SPOKE:
        if agent.role is AgentRole.PROJECT_MANAGER:
            return (
                "You are a communication hub. Aggregate reports from team members "
                "and report to the orchestrator."
            )
        if agent.role is AgentRole.ORCHESTRATOR:
            return (
                "You receive reports from project managers. "
                "Do not communicate directly with developers."
            )
        return (
            f"Report to your project manager ({agent.reporting_to}). "
            "Do not communicate directly with other agents."
        )

    if model is CommunicationModel.HIERARCHICAL:
        return (
            f"Report to {agent.reporting_to or 'the orchestrator'}. "
            "You may receive instructions from higher-level agents."
        )

    return "Direct communication with any team member is allowed when necessary."


def git_instructions(config: OrchestrationConfig) -> str:
    git = config.git_discipline
    if not git.enabled:
        return "Git discipline not required for this session."

    return "\n".join([
        "MANDATORY Git Discipline:",
        f"- Auto-commit every {git.auto_commit_interval} minutes",
        f"- Use {git.branching_strategy} branching strategy",
        f"- Commit message format: {git.commit_message_format}",
        f"- {'All code must have tests' if git.require_tests else 'Tests optional'}",
        f"- {'Code review required before merge' if git.require_review else 'Direct commits allowed'}",
        "- NEVER work more than 1 hour without committing",
        "- Create feature branches for new work",
        "- Tag stable versions before major changes",
    ])


def scheduling_instructions(config: OrchestrationConfig) -> str:
    scheduling = config.self_scheduling
    if not scheduling.enabled:
        return "Self-scheduling not required for this session."

    return "\n".join([
        "Self-Scheduling Protocol:",
        f"- Expect a check-in every {scheduling.default_check_interval} minutes",
        f"- {'Schedule adapts to your status' if scheduling.adaptive_scheduling else 'Fixed interval scheduling'}",
        f"- Min interval: {scheduling.min_check_interval} minutes",
        f"- Max interval: {scheduling.max_check_interval} minutes",
        f"- Recovery strategy: {scheduling.recovery_strategy}",
    ])


def _bullets(items: list[str]) -> str:
    return "\n".join(f"- {item}" for item in items) if items else "- None"


def render_briefing(
    agent: AgentDescriptor,
    config: OrchestrationConfig,
    orchestration_id: str,
) -> str:
    """Full briefing text for one agent."""
    context = f"You are working on {config.project_name}. {agent.briefing}".strip()

    return f"""# Agent Briefing: {agent.display_name} ({agent.role.value})

Agent ID: {agent.id}
Orchestration: {orchestration_id}
Issued: {datetime.now().isoformat()}

## Project Context
{context}

## Objectives
{_bullets(agent.responsibilities)}

## Constraints
{_bullets(agent.constraints)}

## Communication Protocol
{communication_protocol(agent, config.communication_model)}

## Git Instructions
{git_instructions(config)}

## Scheduling
{scheduling_instructions(config)}

## Escalate When
{_bullets(escalation_criteria(agent.role))}

## Success Criteria
{_bullets(success_criteria(agent.role))}
"""
