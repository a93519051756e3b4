"""Typed events posted by timer services to the coordinator's mailbox.

Commit and scheduling timers run as independent asyncio tasks. They never
touch coordinator state; they post one of these events and the coordinator's
dispatcher applies it.
"""
import asyncio
from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class CommitEvent:
    """An auto-commit was created for an agent"""
    agent_id: str
    changes: int
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class CommitFailedEvent:
    """An auto-commit failed for a reason other than a clean tree"""
    agent_id: str
    error: str
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class CheckInEvent:
    """A scheduled check-in came due"""
    agent_id: str
    scheduled_time: datetime
    note: str
    recovery: bool = False
    actual_time: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class ScheduleFailedEvent:
    """A check-in could not be scheduled"""
    agent_id: str
    error: str
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class RecoveryEscalationEvent:
    """An agent failed and the recovery strategy is to escalate"""
    agent_id: str
    reason: str
    timestamp: datetime = field(default_factory=datetime.now)


Event = CommitEvent | CommitFailedEvent | CheckInEvent | ScheduleFailedEvent | RecoveryEscalationEvent


class EventBus:
    """Single-consumer mailbox backed by an asyncio.Queue."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Event] = asyncio.Queue()

    def post(self, event: Event) -> None:
        """Enqueue an event without blocking."""
        self._queue.put_nowait(event)

    async def get(self) -> Event:
        """Wait for the next event."""
        return await self._queue.get()

    def task_done(self) -> None:
        self._queue.task_done()

    def drain(self) -> list[Event]:
        """Remove and return every queued event."""
        events: list[Event] = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except asyncio.QueueEmpty:
                return events
            self._queue.task_done()

    def empty(self) -> bool:
        return self._queue.empty()

    def __len__(self) -> int:
        return self._queue.qsize()
