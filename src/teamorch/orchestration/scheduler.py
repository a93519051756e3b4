"""Self-scheduled agent check-ins."""
import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Literal

from teamorch.config.schema import SelfSchedulingConfig
from teamorch.orchestration.events import (
    CheckInEvent,
    EventBus,
    RecoveryEscalationEvent,
    ScheduleFailedEvent,
)
from teamorch.orchestration.models import AgentSession, AgentStatus

logger = logging.getLogger(__name__)

ScheduleStatus = Literal["pending", "executed", "failed", "cancelled"]


@dataclass
class ScheduleEntry:
    """A pending or finished check-in for one agent"""
    agent_id: str
    session_name: str
    window_index: int
    scheduled_time: datetime
    interval: int  # minutes
    note: str
    status: ScheduleStatus = "pending"
    recovery: bool = False
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> dict:
        """Convert to dict for serialization"""
        return {
            "id": self.id,
            "agent_id": self.agent_id,
            "session_name": self.session_name,
            "window_index": self.window_index,
            "scheduled_time": self.scheduled_time.isoformat(),
            "interval": self.interval,
            "note": self.note,
            "status": self.status,
            "recovery": self.recovery,
        }


@dataclass
class SchedulerStats:
    """Scheduling counters"""
    total_scheduled: int = 0
    executed: int = 0
    failed: int = 0
    cancelled: int = 0
    average_interval: float = 0.0  # minutes, over current entries
    adaptive_adjustments: int = 0


class SelfScheduler:
    """Keeps one check-in timer per agent.

    When a timer fires the entry is marked executed and a CheckInEvent is
    posted; the coordinator decides what the check-in does.
    """

    def __init__(
        self,
        config: SelfSchedulingConfig,
        state_dir: Path,
        events: EventBus | None = None,
    ):
        self.config = config
        self.schedule_dir = Path(state_dir) / "schedule"
        self.events = events
        self._schedules: dict[str, ScheduleEntry] = {}
        self._timers: dict[str, asyncio.Task] = {}
        self._stats = SchedulerStats()

    def _post(self, event) -> None:
        if self.events is not None:
            self.events.post(event)

    # --- intervals ---

    def adaptive_interval(self, status: AgentStatus) -> int:
        """Interval for an agent's current health.

        Troubled agents are checked often, idle ones rarely.
        """
        if status in (AgentStatus.BLOCKED, AgentStatus.ERROR):
            return self.config.min_check_interval
        if status is AgentStatus.IDLE:
            return self.config.max_check_interval
        return self.config.default_check_interval

    def resolve_interval(self, session: AgentSession, interval: int | None = None) -> int:
        """Pick the next check-in interval in minutes, clamped to bounds."""
        if interval is not None:
            chosen = interval
        elif self.config.adaptive_scheduling:
            chosen = self.adaptive_interval(session.status)
            self._stats.adaptive_adjustments += 1
        else:
            chosen = self.config.default_check_interval

        return max(self.config.min_check_interval, min(self.config.max_check_interval, chosen))

    # --- scheduling ---

    def note_path(self, agent_id: str) -> Path:
        return self.schedule_dir / f"next_check_{agent_id}.txt"

    def _write_note(self, entry: ScheduleEntry) -> None:
        self.schedule_dir.mkdir(parents=True, exist_ok=True)
        lines = [
            f"=== Next Check Note ({datetime.now().isoformat()}) ===",
            f"Agent: {entry.agent_id}",
            f"Target: {entry.session_name}:{entry.window_index}",
            f"Scheduled for: {entry.interval} minutes ({entry.scheduled_time.isoformat()})",
            "",
            entry.note,
        ]
        self.note_path(entry.agent_id).write_text("\n".join(lines) + "\n")

    def schedule_check_in(
        self,
        session: AgentSession,
        interval: int | None = None,
        note: str | None = None,
        recovery: bool = False,
    ) -> ScheduleEntry:
        """Schedule the agent's next check-in, replacing any pending one."""
        self._stop_timer(session.agent_id)

        minutes = self.resolve_interval(session, interval)
        entry = ScheduleEntry(
            agent_id=session.agent_id,
            session_name=session.session_name,
            window_index=session.window_index,
            scheduled_time=datetime.now() + timedelta(minutes=minutes),
            interval=minutes,
            note=note or f"Regular check-in for {session.agent_id}",
            recovery=recovery,
        )
        self._schedules[session.agent_id] = entry
        self._stats.total_scheduled += 1
        self._update_average_interval()

        try:
            self._write_note(entry)
        except OSError as e:
            entry.status = "failed"
            self._stats.failed += 1
            logger.error("Failed to schedule check-in for %s: %s", session.agent_id, e)
            self._post(ScheduleFailedEvent(agent_id=session.agent_id, error=str(e)))
            return entry

        self._timers[session.agent_id] = asyncio.create_task(
            self._wait_and_fire(entry),
            name=f"check-in-{session.agent_id}",
        )
        logger.info("Scheduled check-in for %s in %d minutes", session.agent_id, minutes)
        return entry

    async def _wait_and_fire(self, entry: ScheduleEntry) -> None:
        await asyncio.sleep(entry.interval * 60)
        # The timer is done; drop it before firing so a reschedule
        # from the handler does not cancel this task
        self._timers.pop(entry.agent_id, None)
        self.execute(entry.agent_id)

    def execute(self, agent_id: str) -> ScheduleEntry | None:
        """Fire an agent's pending check-in now."""
        entry = self._schedules.get(agent_id)
        if entry is None or entry.status != "pending":
            return None

        self._stop_timer(agent_id)
        entry.status = "executed"
        self._stats.executed += 1
        self._post(
            CheckInEvent(
                agent_id=agent_id,
                scheduled_time=entry.scheduled_time,
                note=entry.note,
                recovery=entry.recovery,
            )
        )
        logger.info(
            "Agent %s check-in executed (scheduled: %s)",
            agent_id,
            entry.scheduled_time.isoformat(),
        )
        return entry

    def _stop_timer(self, agent_id: str) -> None:
        timer = self._timers.pop(agent_id, None)
        if timer is not None:
            timer.cancel()

    def cancel(self, agent_id: str) -> bool:
        """Cancel an agent's pending check-in.

        Returns:
            True if a pending entry was cancelled.
        """
        entry = self._schedules.get(agent_id)
        self._stop_timer(agent_id)
        if entry is None or entry.status != "pending":
            return False

        entry.status = "cancelled"
        self._stats.cancelled += 1
        return True

    def cancel_all(self) -> int:
        """Cancel every pending check-in; returns how many were cancelled."""
        cancelled = sum(1 for agent_id in list(self._schedules) if self.cancel(agent_id))
        for agent_id in list(self._timers):
            self._stop_timer(agent_id)
        if cancelled:
            logger.info("Cancelled all %d active schedules", cancelled)
        return cancelled

    def reschedule(
        self,
        session: AgentSession,
        interval: int | None = None,
        note: str | None = None,
    ) -> ScheduleEntry:
        """Cancel and schedule again."""
        self.cancel(session.agent_id)
        return self.schedule_check_in(session, interval, note)

    def schedule_recovery(self, session: AgentSession, reason: str) -> ScheduleEntry | None:
        """Apply the recovery strategy for a failed agent.

        Returns:
            The recovery check-in, or None when the failure is escalated.
        """
        strategy = self.config.recovery_strategy
        logger.warning(
            "Creating recovery schedule for %s (strategy: %s)", session.agent_id, strategy
        )

        if strategy == "escalate":
            self.cancel(session.agent_id)
            self._post(RecoveryEscalationEvent(agent_id=session.agent_id, reason=reason))
            return None

        if strategy == "restart":
            note = f"Recovery restart: {reason}"
        else:
            note = f"Resume: {reason}"

        return self.schedule_check_in(
            session,
            interval=self.config.min_check_interval,
            note=note,
            recovery=strategy == "restart",
        )

    # --- queries ---

    def get_agent_schedule(self, agent_id: str) -> ScheduleEntry | None:
        return self._schedules.get(agent_id)

    def active_schedules(self) -> list[ScheduleEntry]:
        """Entries still pending."""
        return [entry for entry in self._schedules.values() if entry.status == "pending"]

    def has_timer(self, agent_id: str) -> bool:
        return agent_id in self._timers

    def stats(self) -> SchedulerStats:
        return SchedulerStats(**vars(self._stats))

    def _update_average_interval(self) -> None:
        intervals = [entry.interval for entry in self._schedules.values()]
        if intervals:
            self._stats.average_interval = sum(intervals) / len(intervals)
