"""Message routing between agents under a communication topology."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from teamorch.config.schema import CommunicationModel
from teamorch.orchestration.errors import (
    CommunicationBlockedError,
    HierarchyCycleError,
    MessageNotFoundError,
)
from teamorch.orchestration.models import Message, MessageType

logger = logging.getLogger(__name__)

MessageHandler = Callable[[Message], Awaitable[None]]


@dataclass
class CommunicationStats:
    """Message bus counters"""
    total_messages: int = 0
    messages_by_type: dict[str, int] = field(default_factory=dict)
    messages_by_agent: dict[str, int] = field(default_factory=dict)
    average_response_time: float = 0.0  # seconds
    responses: int = 0
    blocked_messages: int = 0
    escalations: int = 0


@dataclass
class BroadcastResult:
    """Outcome of a broadcast"""
    sent: list[Message]
    dropped: int


class MessageRouter:
    """In-memory bus enforcing who may talk to whom.

    The reporting hierarchy is a forest of parent pointers. An agent with no
    registered supervisor counts as a root (the orchestrator).
    """

    def __init__(self, model: CommunicationModel = CommunicationModel.HUB_AND_SPOKE) -> None:
        self.model = model
        self._supervisors: dict[str, str] = {}
        self._handlers: dict[str, list[MessageHandler]] = {}
        self._messages: list[Message] = []
        self._awaiting_response: dict[str, datetime] = {}
        self._stats = CommunicationStats()

    def set_communication_model(self, model: CommunicationModel) -> None:
        """Switch topology."""
        self.model = model
        logger.info("Communication model set to: %s", model.value)

    # --- hierarchy ---

    def register_hierarchy(self, agent_id: str, supervisor_id: str | None = None) -> None:
        """Record who an agent reports to.

        Raises:
            HierarchyCycleError: If the edge would close a reporting loop.
        """
        if supervisor_id is None:
            self._supervisors.pop(agent_id, None)
            return

        # Walk up from the new supervisor; reaching agent_id means a cycle
        current: str | None = supervisor_id
        while current is not None:
            if current == agent_id:
                raise HierarchyCycleError(
                    f"{agent_id} cannot report to {supervisor_id}: reporting cycle"
                )
            current = self._supervisors.get(current)

        self._supervisors[agent_id] = supervisor_id

    def supervisor_of(self, agent_id: str) -> str | None:
        return self._supervisors.get(agent_id)

    def subscribe(self, agent_id: str, handler: MessageHandler) -> None:
        """Register a handler for messages addressed to an agent."""
        self._handlers.setdefault(agent_id, []).append(handler)

    def remove_agent(self, agent_id: str) -> None:
        """Forget an agent's handlers and supervisor; message history is kept."""
        self._handlers.pop(agent_id, None)
        self._supervisors.pop(agent_id, None)

    # --- topology ---

    def can_communicate(self, from_agent: str, to_agent: str) -> bool:
        """Whether the active model allows from_agent to message to_agent."""
        if self.model is CommunicationModel.MESH:
            return True

        from_supervisor = self._supervisors.get(from_agent)
        to_supervisor = self._supervisors.get(to_agent)

        if self.model is CommunicationModel.HUB_AND_SPOKE:
            return (
                from_agent == to_supervisor
                or to_agent == from_supervisor
                or (from_supervisor is not None and from_supervisor == to_supervisor)
                or from_supervisor is None
                or to_supervisor is None
            )

        if self.model is CommunicationModel.HIERARCHICAL:
            return (
                from_agent == to_supervisor
                or to_agent == from_supervisor
                or from_supervisor is None
            )

        return False

    # --- sending ---

    async def send(
        self,
        from_agent: str,
        to_agent: str,
        type: MessageType,
        content: str,
        metadata: dict[str, Any] | None = None,
        requires_response: bool = False,
        parent_message_id: str | None = None,
    ) -> Message:
        """Validate, record, and deliver a message.

        Raises:
            CommunicationBlockedError: If the topology forbids the pair.
        """
        message = self._accept(
            from_agent, to_agent, type, content, metadata, requires_response, parent_message_id
        )
        await self._deliver(message)
        return message

    def _accept(
        self,
        from_agent: str,
        to_agent: str,
        type: MessageType,
        content: str,
        metadata: dict[str, Any] | None,
        requires_response: bool,
        parent_message_id: str | None,
    ) -> Message:
        type = MessageType(type)
        if not self.can_communicate(from_agent, to_agent):
            self._stats.blocked_messages += 1
            raise CommunicationBlockedError(from_agent, to_agent, self.model.value)

        message = Message(
            from_agent=from_agent,
            to_agent=to_agent,
            type=type,
            content=content,
            metadata=dict(metadata or {}),
            requires_response=requires_response,
            parent_message_id=parent_message_id,
        )

        self._messages.append(message)
        self._update_stats(message)
        logger.debug("[%s -> %s] %s", from_agent, to_agent, type.value)

        if type is MessageType.ESCALATION:
            self._stats.escalations += 1
            logger.warning("Escalation from %s: %s", from_agent, content)

        if requires_response:
            self._awaiting_response[message.id] = message.timestamp

        return message

    async def _deliver(self, message: Message) -> None:
        handlers = self._handlers.get(message.to_agent, [])
        if not handlers:
            logger.info("No handlers for agent %s, message queued", message.to_agent)
            return
        await asyncio.gather(*(handler(message) for handler in handlers))

    async def broadcast(
        self,
        from_agent: str,
        to_agents: list[str],
        type: MessageType,
        content: str,
        metadata: dict[str, Any] | None = None,
    ) -> BroadcastResult:
        """Send to every recipient the topology allows; drop the rest."""
        recipients = [agent for agent in to_agents if self.can_communicate(from_agent, agent)]
        dropped = len(to_agents) - len(recipients)
        if dropped:
            logger.info(
                "Broadcast restricted: %d agents filtered by communication model", dropped
            )

        sent = [
            await self.send(from_agent, agent, type, content, metadata)
            for agent in recipients
        ]
        return BroadcastResult(sent=sent, dropped=dropped)

    async def respond(
        self,
        original_message_id: str,
        from_agent: str,
        content: str,
        metadata: dict[str, Any] | None = None,
    ) -> Message:
        """Reply to a message, recording latency if a response was required."""
        original = self.get_message(original_message_id)
        if original is None:
            raise MessageNotFoundError(f"Original message {original_message_id} not found")

        response = self._accept(
            from_agent,
            original.from_agent,
            MessageType.STATUS,
            content,
            {**(metadata or {}), "in_response_to": original_message_id},
            requires_response=False,
            parent_message_id=original_message_id,
        )

        # Only an accepted reply answers the request
        requested_at = self._awaiting_response.pop(original_message_id, None)
        if requested_at is not None:
            latency = (response.timestamp - requested_at).total_seconds()
            self._record_response_time(latency)

        await self._deliver(response)
        return response

    # --- queries ---

    def get_message(self, message_id: str) -> Message | None:
        for message in self._messages:
            if message.id == message_id:
                return message
        return None

    def pending_for(self, agent_id: str) -> list[Message]:
        """Messages to agent_id that still await a response."""
        answered = {
            m.parent_message_id for m in self._messages if m.parent_message_id is not None
        }
        return [
            m
            for m in self._messages
            if m.to_agent == agent_id and m.requires_response and m.id not in answered
        ]

    def statistics(self) -> CommunicationStats:
        """Snapshot of the counters."""
        return CommunicationStats(
            total_messages=self._stats.total_messages,
            messages_by_type=dict(self._stats.messages_by_type),
            messages_by_agent=dict(self._stats.messages_by_agent),
            average_response_time=self._stats.average_response_time,
            responses=self._stats.responses,
            blocked_messages=self._stats.blocked_messages,
            escalations=self._stats.escalations,
        )

    def recent_messages(self, limit: int = 10) -> list[Message]:
        """Newest messages first."""
        return sorted(reversed(self._messages), key=lambda m: m.timestamp, reverse=True)[:limit]

    def history(self, limit: int | None = None) -> list[Message]:
        """Full log, newest first."""
        messages = list(reversed(self._messages))
        return messages[:limit] if limit else messages

    def conversation(self, agent1: str, agent2: str) -> list[Message]:
        """Messages exchanged between two agents in order."""
        return sorted(
            (
                m
                for m in self._messages
                if (m.from_agent == agent1 and m.to_agent == agent2)
                or (m.from_agent == agent2 and m.to_agent == agent1)
            ),
            key=lambda m: m.timestamp,
        )

    def prune(self, older_than: datetime) -> int:
        """Drop messages at or before a cutoff. Returns the number removed."""
        before = len(self._messages)
        self._messages = [m for m in self._messages if m.timestamp > older_than]
        kept = {m.id for m in self._messages}
        self._awaiting_response = {
            k: v for k, v in self._awaiting_response.items() if k in kept
        }
        return before - len(self._messages)

    # --- stats ---

    def _update_stats(self, message: Message) -> None:
        self._stats.total_messages += 1
        kind = message.type.value
        self._stats.messages_by_type[kind] = self._stats.messages_by_type.get(kind, 0) + 1
        self._stats.messages_by_agent[message.from_agent] = (
            self._stats.messages_by_agent.get(message.from_agent, 0) + 1
        )

    def _record_response_time(self, seconds: float) -> None:
        count = self._stats.responses + 1
        self._stats.average_response_time = (
            self._stats.average_response_time * (count - 1) + seconds
        ) / count
        self._stats.responses = count


def format_status_update(
    completed: list[str],
    current: str,
    blocked: str | None = None,
    eta: str | None = None,
) -> str:
    """Standard STATUS UPDATE body."""
    lines = ["STATUS UPDATE", "Completed:"]
    lines.extend(f"- {task}" for task in completed)
    lines.append(f"Current: {current}")
    lines.append(f"Blocked: {blocked or 'None'}")
    lines.append(f"ETA: {eta or 'Unknown'}")
    return "\n".join(lines)


def format_task_assignment(
    task_id: str,
    task_name: str,
    description: str,
    priority: str,
    criteria: list[str],
) -> str:
    """Standard TASK body."""
    lines = [
        f"TASK {task_id}: {task_name}",
        f"Priority: {priority.upper()}",
        f"Description: {description}",
        "",
        "Success Criteria:",
    ]
    lines.extend(f"- {c}" for c in criteria)
    return "\n".join(lines)


def format_escalation(
    issue: str,
    impact: str,
    attempted_solutions: list[str],
    recommendation: str | None = None,
) -> str:
    """Standard ESCALATION body."""
    lines = ["ESCALATION REQUIRED", f"Issue: {issue}", f"Impact: {impact}", "", "Attempted Solutions:"]
    lines.extend(f"- {s}" for s in attempted_solutions)
    if recommendation:
        lines.extend(["", f"Recommendation: {recommendation}"])
    return "\n".join(lines)
