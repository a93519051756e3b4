"""Core runtime data models for team orchestration."""
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Literal


class AgentStatus(str, Enum):
    """Runtime health of a deployed agent."""

    ACTIVE = "active"
    IDLE = "idle"
    BLOCKED = "blocked"
    ERROR = "error"
    COMPLETED = "completed"


class OrchestrationState(str, Enum):
    """Lifecycle of the coordinator."""

    INITIALIZING = "initializing"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    ERROR = "error"


class MessageType(str, Enum):
    """Kinds of inter-agent message."""

    STATUS = "status"
    TASK = "task"
    QUESTION = "question"
    ESCALATION = "escalation"
    COMPLETION = "completion"
    STATUS_UPDATE = "status-update"
    TASK_COMPLETED = "task-completed"
    TASK_BLOCKED = "task-blocked"
    CODE_REVIEW_REQUEST = "code-review-request"
    DEPLOYMENT_REQUEST = "deployment-request"


@dataclass
class AgentSession:
    """Runtime state of one deployed agent"""
    agent_id: str
    session_name: str
    window_index: int
    window_name: str
    status: AgentStatus = AgentStatus.ACTIVE
    start_time: datetime = field(default_factory=datetime.now)
    last_activity: datetime = field(default_factory=datetime.now)
    current_task: str | None = None
    completed_tasks: int = 0
    git_commits: int = 0
    messages_exchanged: int = 0

    @property
    def target(self) -> str:
        """tmux address of the agent window"""
        return f"{self.session_name}:{self.window_index}"

    def to_dict(self) -> dict:
        """Convert to dict for serialization"""
        return {
            "agent_id": self.agent_id,
            "session_name": self.session_name,
            "window_index": self.window_index,
            "window_name": self.window_name,
            "status": self.status.value,
            "start_time": self.start_time.isoformat(),
            "last_activity": self.last_activity.isoformat(),
            "current_task": self.current_task,
            "completed_tasks": self.completed_tasks,
            "git_commits": self.git_commits,
            "messages_exchanged": self.messages_exchanged,
        }


@dataclass(frozen=True)
class Message:
    """Message between two agents; never mutated once logged"""
    from_agent: str
    to_agent: str
    type: MessageType
    content: str
    metadata: dict[str, Any] = field(default_factory=dict)
    requires_response: bool = False
    parent_message_id: str | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        """Convert to dict for JSON serialization"""
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "from_agent": self.from_agent,
            "to_agent": self.to_agent,
            "type": self.type.value,
            "content": self.content,
            "metadata": self.metadata,
            "requires_response": self.requires_response,
            "parent_message_id": self.parent_message_id,
        }


ErrorType = Literal[
    "agent-crash",
    "communication",
    "git",
    "scheduling",
    "validation",
    "escalation",
    "task-blocked",
    "code-quality",
]
Severity = Literal["warning", "error", "critical"]


@dataclass
class OrchestrationMetrics:
    """Aggregated counters, recomputed on demand"""
    total_agents: int = 0
    active_agents: int = 0
    tasks_completed: int = 0
    tasks_pending: int = 0
    git_commits: int = 0
    blockers: int = 0
    errors: int = 0
    uptime: str = "0h 0m"


@dataclass
class OrchestrationStatus:
    """Snapshot of the whole orchestration"""
    id: str
    project_name: str
    start_time: datetime
    state: OrchestrationState = OrchestrationState.INITIALIZING
    end_time: datetime | None = None
    metrics: OrchestrationMetrics = field(default_factory=OrchestrationMetrics)
    active_agents: list[AgentSession] = field(default_factory=list)
    last_update: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        """Convert to dict for serialization"""
        return {
            "id": self.id,
            "project_name": self.project_name,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "status": self.state.value,
            "metrics": {
                "total_agents": self.metrics.total_agents,
                "active_agents": self.metrics.active_agents,
                "tasks_completed": self.metrics.tasks_completed,
                "tasks_pending": self.metrics.tasks_pending,
                "git_commits": self.metrics.git_commits,
                "blockers": self.metrics.blockers,
                "errors": self.metrics.errors,
                "uptime": self.metrics.uptime,
            },
            "agents": [session.to_dict() for session in self.active_agents],
            "last_update": self.last_update.isoformat(),
        }
