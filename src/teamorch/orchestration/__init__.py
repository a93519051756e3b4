"""Core orchestration logic."""
from teamorch.orchestration.analytics import ErrorLog, ErrorRecord
from teamorch.orchestration.errors import (
    CommunicationBlockedError,
    DeploymentError,
    GitCommandError,
    HierarchyCycleError,
    MessageNotFoundError,
    OrchestrationException,
    TmuxCommandError,
    TmuxUnavailableError,
)
from teamorch.orchestration.events import EventBus
from teamorch.orchestration.git_discipline import GitDisciplineService, GitStats
from teamorch.orchestration.models import (
    AgentSession,
    AgentStatus,
    Message,
    MessageType,
    OrchestrationState,
    OrchestrationStatus,
)
from teamorch.orchestration.router import BroadcastResult, CommunicationStats, MessageRouter
from teamorch.orchestration.scheduler import ScheduleEntry, SchedulerStats, SelfScheduler

__all__ = [
    "AgentSession",
    "AgentStatus",
    "BroadcastResult",
    "CommunicationBlockedError",
    "CommunicationStats",
    "DeploymentError",
    "ErrorLog",
    "ErrorRecord",
    "EventBus",
    "GitCommandError",
    "GitDisciplineService",
    "GitStats",
    "HierarchyCycleError",
    "Message",
    "MessageNotFoundError",
    "MessageRouter",
    "MessageType",
    "OrchestrationException",
    "OrchestrationState",
    "OrchestrationStatus",
    "ScheduleEntry",
    "SchedulerStats",
    "SelfScheduler",
    "TmuxCommandError",
    "TmuxUnavailableError",
]
