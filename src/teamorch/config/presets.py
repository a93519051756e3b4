"""Predefined team structures for small, medium, and large teams."""

from teamorch.config.schema import AgentDescriptor, AgentRole, TeamStructure

TEAM_SIZES = ("small", "medium", "large")


def _orchestrator(project_name: str) -> AgentDescriptor:
    return AgentDescriptor(
        id="orchestrator",
        role=AgentRole.ORCHESTRATOR,
        name="Chief Orchestrator",
        briefing=(
            f"You are the chief orchestrator for {project_name}. "
            "Maintain high-level oversight without micromanaging."
        ),
        responsibilities=[
            "Monitor overall project progress",
            "Make architectural decisions",
            "Resolve cross-team dependencies",
            "Ensure quality standards",
            "Handle escalations",
        ],
        constraints=[
            "Do not implement code directly",
            "Do not micromanage team members",
            "Focus on strategic decisions",
        ],
    )


def _project_manager(
    agent_id: str,
    name: str,
    briefing: str,
    responsibilities: list[str],
) -> AgentDescriptor:
    return AgentDescriptor(
        id=agent_id,
        role=AgentRole.PROJECT_MANAGER,
        name=name,
        briefing=briefing,
        responsibilities=responsibilities,
        reporting_to="orchestrator",
    )


def _developer(agent_id: str, name: str, reporting_to: str, focus_areas: list[str]) -> AgentDescriptor:
    return AgentDescriptor(
        id=agent_id,
        role=AgentRole.DEVELOPER,
        name=name,
        briefing=f"You are a {name} responsible for implementing features with high quality.",
        responsibilities=[
            "Implement features according to requirements",
            "Write comprehensive tests",
            "Follow coding standards",
            "Document your code",
            "Collaborate with team",
        ],
        reporting_to=reporting_to,
        focus_areas=focus_areas,
        constraints=["All code must have tests", "Follow existing patterns", "Commit regularly"],
    )


def _qa_engineer(agent_id: str, name: str, reporting_to: str, focus_areas: list[str]) -> AgentDescriptor:
    return AgentDescriptor(
        id=agent_id,
        role=AgentRole.QA_ENGINEER,
        name=name,
        briefing=f"You are a {name} ensuring the highest quality standards.",
        responsibilities=[
            "Create test plans",
            "Execute tests thoroughly",
            "Track and report bugs",
            "Verify fixes",
            "Ensure coverage targets",
        ],
        reporting_to=reporting_to,
        focus_areas=focus_areas,
        constraints=["Be thorough in testing", "Document all issues", "Verify before approving"],
    )


def _devops(reporting_to: str) -> AgentDescriptor:
    return AgentDescriptor(
        id="devops-1",
        role=AgentRole.DEVOPS,
        name="DevOps Engineer",
        briefing="Manage infrastructure, deployment, and CI/CD pipelines.",
        responsibilities=[
            "Set up CI/CD pipelines",
            "Manage deployments",
            "Monitor infrastructure",
            "Ensure security",
        ],
        reporting_to=reporting_to,
        focus_areas=["CI/CD", "Infrastructure", "Security", "Monitoring"],
    )


def _code_reviewer(reporting_to: str) -> AgentDescriptor:
    return AgentDescriptor(
        id="reviewer-1",
        role=AgentRole.CODE_REVIEWER,
        name="Code Reviewer",
        briefing="Review all code for quality, security, and best practices.",
        responsibilities=[
            "Review pull requests",
            "Ensure code quality",
            "Check security issues",
            "Provide feedback",
        ],
        reporting_to=reporting_to,
        focus_areas=["Code quality", "Security", "Best practices", "Performance"],
    )


def create_team_structure(size: str, project_name: str) -> TeamStructure:
    """Build the preset team for a size.

    small:  1 PM, 2 developers
    medium: 1 PM, 2 developers, 1 QA (default)
    large:  2 PMs, 4 developers, 2 QA, 1 DevOps, 1 code reviewer
    """
    if size not in TEAM_SIZES:
        raise ValueError(f"Unknown team size: {size}. Expected one of {', '.join(TEAM_SIZES)}")

    orchestrator = _orchestrator(project_name)

    if size == "small":
        return TeamStructure(
            orchestrator=orchestrator,
            project_managers=[
                _project_manager(
                    "pm-1",
                    "Project Manager",
                    "Coordinate the development team and maintain exceptional quality standards.",
                    [
                        "Coordinate developer tasks",
                        "Track progress and blockers",
                        "Ensure code quality",
                        "Report to orchestrator",
                    ],
                )
            ],
            developers=[
                _developer("dev-1", "Lead Developer", "pm-1", ["Architecture", "Core features"]),
                _developer("dev-2", "Developer", "pm-1", ["Features", "Bug fixes"]),
            ],
        )

    if size == "large":
        return TeamStructure(
            orchestrator=orchestrator,
            project_managers=[
                _project_manager(
                    "pm-frontend",
                    "Frontend PM",
                    "Manage frontend development team.",
                    ["Coordinate frontend developers", "Ensure UI/UX quality", "Track frontend progress"],
                ),
                _project_manager(
                    "pm-backend",
                    "Backend PM",
                    "Manage backend development team.",
                    ["Coordinate backend developers", "Ensure API quality", "Track backend progress"],
                ),
            ],
            developers=[
                _developer("dev-fe-1", "Senior Frontend Dev", "pm-frontend", ["UI components", "State management"]),
                _developer("dev-fe-2", "Frontend Dev", "pm-frontend", ["UI implementation", "Testing"]),
                _developer("dev-be-1", "Senior Backend Dev", "pm-backend", ["API design", "Database"]),
                _developer("dev-be-2", "Backend Dev", "pm-backend", ["API implementation", "Integration"]),
            ],
            qa_engineers=[
                _qa_engineer("qa-1", "Senior QA", "orchestrator", ["Test strategy", "Automation"]),
                _qa_engineer("qa-2", "QA Engineer", "orchestrator", ["Manual testing", "Bug tracking"]),
            ],
            devops=[_devops("orchestrator")],
            code_reviewers=[_code_reviewer("orchestrator")],
        )

    return TeamStructure(
        orchestrator=orchestrator,
        project_managers=[
            _project_manager(
                "pm-1",
                "Project Manager",
                "Coordinate the development team and maintain exceptional quality standards.",
                [
                    "Coordinate all team members",
                    "Track progress and quality",
                    "Remove blockers",
                    "Report to orchestrator",
                ],
            )
        ],
        developers=[
            _developer("dev-1", "Lead Developer", "pm-1", ["Architecture", "Core features", "Code review"]),
            _developer("dev-2", "Developer", "pm-1", ["Feature implementation", "Testing", "Documentation"]),
        ],
        qa_engineers=[
            _qa_engineer("qa-1", "QA Engineer", "pm-1", ["Test planning", "Test execution", "Quality assurance"]),
        ],
    )
