"""Configuration schema using Pydantic."""

from enum import Enum
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from teamorch.config import defaults


class AgentRole(str, Enum):
    """Roles an agent can take in the team."""

    ORCHESTRATOR = "orchestrator"
    PROJECT_MANAGER = "project-manager"
    DEVELOPER = "developer"
    QA_ENGINEER = "qa-engineer"
    DEVOPS = "devops"
    CODE_REVIEWER = "code-reviewer"
    RESEARCHER = "researcher"
    DOCUMENTATION_WRITER = "documentation-writer"


class OrchestrationStrategy(str, Enum):
    """How the declared team is deployed."""

    BIG_BANG = "big-bang"  # Deploy all agents at once
    PHASED = "phased"  # Orchestrator and first PM, the rest later
    ADAPTIVE = "adaptive"  # Orchestrator only, grow with workload


class CommunicationModel(str, Enum):
    """Topology governing which agents may message each other."""

    HUB_AND_SPOKE = "hub-and-spoke"
    HIERARCHICAL = "hierarchical"
    MESH = "mesh"


class AgentDescriptor(BaseModel):
    """Declared identity and duties of one agent."""

    id: str
    role: AgentRole
    name: str = ""
    briefing: str = ""
    reporting_to: str | None = None  # ID of supervising agent
    responsibilities: list[str] = Field(default_factory=list)
    constraints: list[str] = Field(default_factory=list)
    skillset: list[str] = Field(default_factory=list)
    focus_areas: list[str] = Field(default_factory=list)

    class Config:
        frozen = True

    @property
    def display_name(self) -> str:
        return self.name or self.id


class TeamStructure(BaseModel):
    """Team forest rooted at a single orchestrator."""

    orchestrator: AgentDescriptor
    project_managers: list[AgentDescriptor] = Field(default_factory=list)
    developers: list[AgentDescriptor] = Field(default_factory=list)
    qa_engineers: list[AgentDescriptor] = Field(default_factory=list)
    devops: list[AgentDescriptor] = Field(default_factory=list)
    code_reviewers: list[AgentDescriptor] = Field(default_factory=list)
    researchers: list[AgentDescriptor] = Field(default_factory=list)
    documentation_writers: list[AgentDescriptor] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_root_and_ids(self) -> "TeamStructure":
        if self.orchestrator.role is not AgentRole.ORCHESTRATOR:
            raise ValueError("team root must have the orchestrator role")
        if self.orchestrator.reporting_to is not None:
            raise ValueError("the orchestrator cannot report to another agent")

        seen: set[str] = set()
        for agent in self.all_agents():
            if agent.id in seen:
                raise ValueError(f"duplicate agent id: {agent.id}")
            seen.add(agent.id)
        return self

    def all_agents(self) -> list[AgentDescriptor]:
        """All agents in deployment order.

        Orchestrator first, then project managers, developers, QA, and the
        remaining roles.
        """
        return [
            self.orchestrator,
            *self.project_managers,
            *self.developers,
            *self.qa_engineers,
            *self.devops,
            *self.code_reviewers,
            *self.researchers,
            *self.documentation_writers,
        ]

    def get(self, agent_id: str) -> AgentDescriptor | None:
        """Look up an agent by id."""
        for agent in self.all_agents():
            if agent.id == agent_id:
                return agent
        return None


class GitDisciplineConfig(BaseModel):
    """Periodic commit discipline settings."""

    enabled: bool = True
    auto_commit_interval: int = Field(default=defaults.DEFAULT_AUTO_COMMIT_INTERVAL, gt=0)  # minutes
    branching_strategy: Literal["feature", "gitflow", "trunk"] = "feature"
    commit_message_format: str = defaults.DEFAULT_COMMIT_MESSAGE_FORMAT
    tag_strategy: Literal["stable", "version", "milestone"] | None = "stable"
    require_tests: bool = False
    require_review: bool = False
    test_command: str = defaults.DEFAULT_TEST_COMMAND
    committer_name: str = defaults.DEFAULT_COMMITTER_NAME
    committer_email: str = defaults.DEFAULT_COMMITTER_EMAIL


class SelfSchedulingConfig(BaseModel):
    """Agent check-in scheduling settings (minutes)."""

    enabled: bool = True
    default_check_interval: int = Field(default=defaults.DEFAULT_CHECK_INTERVAL, gt=0)
    adaptive_scheduling: bool = True
    max_check_interval: int = Field(default=defaults.DEFAULT_MAX_CHECK_INTERVAL, gt=0)
    min_check_interval: int = Field(default=defaults.DEFAULT_MIN_CHECK_INTERVAL, gt=0)
    recovery_strategy: Literal["restart", "resume", "escalate"] = "resume"

    @model_validator(mode="after")
    def _check_bounds(self) -> "SelfSchedulingConfig":
        if self.min_check_interval > self.max_check_interval:
            raise ValueError("min_check_interval must not exceed max_check_interval")
        if not self.min_check_interval <= self.default_check_interval <= self.max_check_interval:
            raise ValueError("default_check_interval must lie between min and max check intervals")
        return self


class TmuxConfig(BaseModel):
    """tmux integration configuration."""

    session_prefix: str = defaults.DEFAULT_TMUX_SESSION_PREFIX
    layout: str = defaults.DEFAULT_TMUX_LAYOUT  # tiled, even-horizontal, even-vertical
    agent_command: str = defaults.DEFAULT_AGENT_COMMAND
    message_settle_delay: float = Field(default=defaults.DEFAULT_MESSAGE_SETTLE_DELAY, ge=0)
    agent_startup_delay: float = Field(default=defaults.DEFAULT_AGENT_STARTUP_DELAY, ge=0)
    capture_max_lines: int = Field(default=defaults.DEFAULT_CAPTURE_MAX_LINES, gt=0)
    poll_interval: float = Field(default=defaults.DEFAULT_WAIT_POLL_INTERVAL, gt=0)


class OrchestrationConfig(BaseModel):
    """Everything the coordinator needs; read-only once constructed."""

    project_name: str
    strategy: OrchestrationStrategy = OrchestrationStrategy.BIG_BANG
    communication_model: CommunicationModel = CommunicationModel.HUB_AND_SPOKE
    git_discipline: GitDisciplineConfig = Field(default_factory=GitDisciplineConfig)
    self_scheduling: SelfSchedulingConfig = Field(default_factory=SelfSchedulingConfig)
    team_structure: TeamStructure
    tmux: TmuxConfig = Field(default_factory=TmuxConfig)
    monitor_interval: float = Field(default=defaults.DEFAULT_MONITOR_INTERVAL, gt=0)  # seconds
    idle_threshold_minutes: int = Field(default=defaults.DEFAULT_IDLE_THRESHOLD_MINUTES, gt=0)
    state_dir: str | None = None

    def get_state_dir(self, project_path: Path) -> Path:
        """Directory holding status, logs, and reports for this run."""
        if self.state_dir:
            path = Path(self.state_dir)
            return path if path.is_absolute() else project_path / path
        return project_path / defaults.DEFAULT_STATE_DIR_NAME

    @property
    def session_name(self) -> str:
        slug = "-".join(self.project_name.lower().split())
        return f"{self.tmux.session_prefix}-{slug}"


class DeployDefaults(BaseModel):
    """CLI defaults for `teamorch deploy`."""

    team_size: Literal["small", "medium", "large"] = "medium"
    strategy: OrchestrationStrategy = OrchestrationStrategy.BIG_BANG
    communication_model: CommunicationModel = CommunicationModel.HUB_AND_SPOKE
    state_dir: str | None = None  # Relative to the project unless absolute


class GlobalConfig(BaseModel):
    """Global teamorch configuration."""

    color: bool = True
    verbose: bool = False


class TeamOrchConfig(BaseModel):
    """Root configuration model for teamorch."""

    global_: GlobalConfig = Field(default_factory=GlobalConfig, alias="global")
    deploy: DeployDefaults = Field(default_factory=DeployDefaults)
    git_discipline: GitDisciplineConfig = Field(default_factory=GitDisciplineConfig)
    self_scheduling: SelfSchedulingConfig = Field(default_factory=SelfSchedulingConfig)
    tmux: TmuxConfig = Field(default_factory=TmuxConfig)
    team: TeamStructure | None = None  # Explicit team overrides the size preset

    class Config:
        populate_by_name = True

    @classmethod
    def default(cls) -> "TeamOrchConfig":
        """Create default configuration."""
        return cls()


def get_config_dir() -> Path:
    """Get the configuration directory path."""
    config_dir = Path.home() / ".config" / "teamorch"
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


def get_config_file() -> Path:
    """Get the main configuration file path."""
    return get_config_dir() / "config.toml"
