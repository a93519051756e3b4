"""Team orchestrator: deploys agents into tmux and keeps them on track"""
import asyncio
import functools
import json
import logging
import time
import uuid
from collections import deque
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from teamorch.config.defaults import (
    CHECK_IN_CAPTURE_LINES,
    MONITOR_CAPTURE_LINES,
    TYPED_LINES_MEMORY,
)
from teamorch.config.schema import (
    AgentDescriptor,
    AgentRole,
    OrchestrationConfig,
    OrchestrationStrategy,
)
from teamorch.orchestration.analytics import ErrorLog, ErrorRecord
from teamorch.orchestration.briefing import render_briefing
from teamorch.orchestration.errors import DeploymentError, OrchestrationException
from teamorch.orchestration.events import (
    CheckInEvent,
    CommitEvent,
    CommitFailedEvent,
    Event,
    EventBus,
    RecoveryEscalationEvent,
    ScheduleFailedEvent,
)
from teamorch.orchestration.git_discipline import GitDisciplineService
from teamorch.orchestration.models import (
    AgentSession,
    AgentStatus,
    Message,
    MessageType,
    OrchestrationMetrics,
    OrchestrationState,
    OrchestrationStatus,
)
from teamorch.orchestration.report import (
    AgentReportRow,
    FinalReport,
    format_uptime,
    next_steps,
    productivity,
    recommendations,
    render_report,
    team_composition,
)
from teamorch.orchestration.router import BroadcastResult, MessageRouter
from teamorch.orchestration.scheduler import SelfScheduler
from teamorch.orchestration.status import StatusStore
from teamorch.tmux.manager import TmuxManager

logger = logging.getLogger(__name__)


def format_agent_message(message: Message) -> str:
    """Text typed into the recipient's window for a routed message."""
    lines = [
        f"[{message.timestamp.strftime('%H:%M:%S')}] Message from {message.from_agent}:",
        f"Type: {message.type.value}",
        message.content,
    ]
    if message.metadata:
        lines.extend(["", f"Metadata: {json.dumps(message.metadata, default=str)}"])
    return "\n".join(lines)


class TeamOrchestrator:
    """Deploys a team of agents and coordinates them for one run.

    Collaborators can be injected; by default they are built from the
    config. Timer services report back through ``events``, which a single
    dispatcher task applies to the orchestrator's state.
    """

    def __init__(
        self,
        config: OrchestrationConfig,
        project_path: Path,
        tmux: TmuxManager | None = None,
        router: MessageRouter | None = None,
        git: GitDisciplineService | None = None,
        scheduler: SelfScheduler | None = None,
        events: EventBus | None = None,
    ):
        self.config = config
        self.project_path = Path(project_path)
        self.id = str(uuid.uuid4())[:8]
        self.session_name = config.session_name
        self.state_dir = config.get_state_dir(self.project_path)

        self.events = events or EventBus()
        self.tmux = tmux or TmuxManager(config.tmux)
        self.router = router or MessageRouter(config.communication_model)
        self.git = git or GitDisciplineService(config.git_discipline, self.project_path, self.events)
        self.scheduler = scheduler or SelfScheduler(config.self_scheduling, self.state_dir, self.events)
        self.store = StatusStore(self.state_dir)
        self.error_log = ErrorLog(self.state_dir)

        self._agents: dict[str, AgentSession] = {}
        self._typed: dict[str, deque[str]] = {}
        self._status = OrchestrationStatus(
            id=self.id,
            project_name=config.project_name,
            start_time=datetime.now(),
        )
        self._dispatcher: asyncio.Task | None = None
        self._stop_requested = asyncio.Event()
        self._report_path: Path | None = None

    # --- properties ---

    @property
    def state(self) -> OrchestrationState:
        return self._status.state

    @property
    def agents(self) -> dict[str, AgentSession]:
        return dict(self._agents)

    @property
    def errors(self) -> list[ErrorRecord]:
        return self.error_log.records

    def descriptor(self, agent_id: str) -> AgentDescriptor | None:
        return self.config.team_structure.get(agent_id)

    def _role_of(self, agent_id: str) -> AgentRole | None:
        agent = self.descriptor(agent_id)
        return agent.role if agent else None

    # --- deployment ---

    async def deploy(self) -> None:
        """Bring up the tmux session and the agents the strategy starts with.

        Raises:
            OrchestrationException: If this orchestrator was already deployed.
            TmuxUnavailableError: If tmux is not installed.
            DeploymentError: If any step fails; timers are stopped and the
                partially deployed agents are dropped first.
        """
        if self.state is not OrchestrationState.INITIALIZING:
            raise OrchestrationException(
                f"Cannot deploy while orchestration is {self.state.value}"
            )

        self.tmux.ensure_available()
        logger.info("Deploying orchestration for %s...", self.config.project_name)

        try:
            if await self.tmux.session_exists(self.session_name):
                logger.info("Session %s already exists. Using existing session.", self.session_name)
            else:
                await self.tmux.create_session(self.session_name, str(self.project_path))

            if self.config.git_discipline.enabled:
                await self.git.initialize()

            for agent in self._initial_agents():
                await self._deploy_agent(agent)

        except Exception as e:
            self.git.stop_all()
            self.scheduler.cancel_all()
            for agent_id in self._agents:
                self.router.remove_agent(agent_id)
            self._agents.clear()
            self._typed.clear()
            self._status.state = OrchestrationState.ERROR
            self._save_status()
            raise DeploymentError(f"Deployment failed: {e}") from e

        self._status.state = OrchestrationState.RUNNING
        self._start_dispatcher()
        self._save_status()

        if self.config.strategy is not OrchestrationStrategy.BIG_BANG:
            logger.info(
                "%s deployment initialized. Additional agents will be deployed as needed.",
                self.config.strategy.value,
            )

    def _initial_agents(self) -> list[AgentDescriptor]:
        team = self.config.team_structure
        if self.config.strategy is OrchestrationStrategy.BIG_BANG:
            return team.all_agents()
        if self.config.strategy is OrchestrationStrategy.PHASED:
            return [team.orchestrator, *team.project_managers[:1]]
        return [team.orchestrator]

    def _window_index(self, agent: AgentDescriptor) -> int:
        # Window index is the agent's position in deployment order
        ids = [a.id for a in self.config.team_structure.all_agents()]
        return ids.index(agent.id)

    async def deploy_additional_agents(self, agent_ids: list[str] | None = None) -> list[AgentSession]:
        """Deploy declared agents that are not running yet.

        Args:
            agent_ids: Restrict to these agents; all pending agents if None.

        Raises:
            OrchestrationException: If the orchestration is not running.
            ValueError: If an id is not part of the team.
            DeploymentError: If deploying an agent fails.
        """
        if self.state not in (OrchestrationState.RUNNING, OrchestrationState.PAUSED):
            raise OrchestrationException(
                f"Cannot deploy agents while orchestration is {self.state.value}"
            )

        declared = self.config.team_structure.all_agents()
        if agent_ids is not None:
            unknown = set(agent_ids) - {a.id for a in declared}
            if unknown:
                raise ValueError(f"Unknown agent(s): {', '.join(sorted(unknown))}")

        pending = [
            a for a in declared
            if a.id not in self._agents and (agent_ids is None or a.id in agent_ids)
        ]

        deployed = []
        try:
            for agent in pending:
                deployed.append(await self._deploy_agent(agent))
        except Exception as e:
            raise DeploymentError(f"Failed to deploy additional agents: {e}") from e
        finally:
            self._save_status()

        return deployed

    async def _deploy_agent(self, agent: AgentDescriptor) -> AgentSession:
        logger.info("Deploying %s: %s...", agent.role.value, agent.display_name)

        window_index = self._window_index(agent)
        window_name = f"{agent.role.value}-{agent.id}"

        windows = await self.tmux.list_windows(self.session_name)
        if any(w.window_index == window_index for w in windows):
            await self.tmux.rename_window(self.session_name, window_index, window_name)
        else:
            await self.tmux.create_window(
                self.session_name, window_index, window_name, str(self.project_path)
            )

        await self._launch_agent(agent, self.session_name, window_index)

        self.router.register_hierarchy(agent.id, agent.reporting_to)

        session = AgentSession(
            agent_id=agent.id,
            session_name=self.session_name,
            window_index=window_index,
            window_name=window_name,
        )
        self._agents[agent.id] = session
        self.router.subscribe(agent.id, functools.partial(self._handle_message, agent.id))

        if self.config.git_discipline.enabled:
            self.git.start_auto_commit(agent.id, agent.role.value, self.id)

        if self.config.self_scheduling.enabled:
            self.scheduler.schedule_check_in(
                session, note=f"Initial check-in for {agent.display_name}"
            )

        return session

    async def _launch_agent(self, agent: AgentDescriptor, session_name: str, window_index: int) -> None:
        """Start the agent command in its window and type the briefing."""
        command = self.config.tmux.agent_command
        await self.tmux.send_command(session_name, window_index, command)
        self._remember_typed(agent.id, command)
        await asyncio.sleep(self.config.tmux.agent_startup_delay)
        await self._type_to_agent(
            agent.id, session_name, window_index, render_briefing(agent, self.config, self.id)
        )

    # --- pane text ---

    async def _type_to_agent(self, agent_id: str, session_name: str, window_index: int, text: str) -> None:
        await self.tmux.send_agent_message(session_name, window_index, text)
        self._remember_typed(agent_id, text)

    def _remember_typed(self, agent_id: str, text: str) -> None:
        typed = self._typed.setdefault(agent_id, deque(maxlen=TYPED_LINES_MEMORY))
        typed.extend(line.strip() for line in text.splitlines() if line.strip())

    def _agent_output(self, agent_id: str, content: str) -> str:
        """Pane content without the lines the orchestrator typed itself.

        Briefings, forwarded messages and reminders echo into the pane and
        must not be read back as the agent's own status.
        """
        typed = set(self._typed.get(agent_id, ()))
        return "\n".join(line for line in content.splitlines() if line.strip() not in typed)

    # --- messaging ---

    async def send_message(
        self,
        from_agent: str,
        to_agent: str,
        type: MessageType,
        content: str,
        metadata: dict[str, Any] | None = None,
        requires_response: bool = False,
    ) -> Message:
        """Route a message between agents."""
        try:
            return await self.router.send(
                from_agent, to_agent, type, content, metadata, requires_response
            )
        finally:
            self._save_status()

    async def broadcast(
        self,
        from_agent: str,
        to_agents: list[str],
        type: MessageType,
        content: str,
        metadata: dict[str, Any] | None = None,
    ) -> BroadcastResult:
        """Send to several agents; recipients the topology forbids are dropped."""
        try:
            return await self.router.broadcast(from_agent, to_agents, type, content, metadata)
        finally:
            self._save_status()

    async def _handle_message(self, agent_id: str, message: Message) -> None:
        session = self._agents.get(agent_id)
        if session is None:
            logger.error("Unknown agent: %s", agent_id)
            return

        session.last_activity = datetime.now()
        session.messages_exchanged += 1

        # Completion and blocking belong to whoever reported them
        owner = self._agents.get(message.from_agent, session)

        if message.type is MessageType.STATUS_UPDATE:
            logger.info("Status from %s: %s", message.from_agent, message.content)

        elif message.type is MessageType.TASK_COMPLETED:
            owner.completed_tasks += 1
            self._status.metrics.tasks_completed += 1
            logger.info("Task completed by %s: %s", owner.agent_id, message.content)

        elif message.type is MessageType.TASK_BLOCKED:
            owner.status = AgentStatus.BLOCKED
            self._status.metrics.blockers += 1
            self.error_log.record(ErrorRecord(
                type="task-blocked",
                message=message.content,
                severity="warning",
                agent_id=owner.agent_id,
            ))

        elif message.type is MessageType.CODE_REVIEW_REQUEST:
            if self._role_of(agent_id) is not AgentRole.CODE_REVIEWER:
                logger.info("Code review requested by %s", message.from_agent)
                await self._fan_out(message, AgentRole.CODE_REVIEWER)

        elif message.type is MessageType.DEPLOYMENT_REQUEST:
            if self._role_of(agent_id) is not AgentRole.DEVOPS:
                logger.info("Deployment requested by %s", message.from_agent)
                await self._fan_out(message, AgentRole.DEVOPS)

        elif message.type is MessageType.ESCALATION:
            self.error_log.record(ErrorRecord(
                type="escalation",
                message=message.content,
                severity="critical",
                agent_id=message.from_agent,
                requires_intervention=True,
            ))

        if message.to_agent != message.from_agent:
            await self._type_to_agent(
                agent_id, session.session_name, session.window_index, format_agent_message(message)
            )

    async def _fan_out(self, message: Message, role: AgentRole) -> None:
        recipients = [
            agent_id
            for agent_id in self._agents
            if self._role_of(agent_id) is role and agent_id != message.from_agent
        ]
        if recipients:
            await self.router.broadcast(
                message.from_agent, recipients, message.type, message.content, message.metadata
            )

    # --- health ---

    async def monitor_agents(self) -> None:
        """Classify every agent from its recent pane output."""
        idle_after = timedelta(minutes=self.config.idle_threshold_minutes)

        for agent_id, session in list(self._agents.items()):
            try:
                content = await self.tmux.capture_window_content(
                    session.session_name, session.window_index, MONITOR_CAPTURE_LINES
                )
            except Exception as e:
                session.status = AgentStatus.ERROR
                self.error_log.record(ErrorRecord(
                    type="communication",
                    message=f"Failed to monitor agent: {e}",
                    severity="warning",
                    agent_id=agent_id,
                ))
                continue

            if "error" in self._agent_output(agent_id, content).lower():
                if session.status is not AgentStatus.ERROR:
                    session.status = AgentStatus.ERROR
                    self.error_log.record(ErrorRecord(
                        type="agent-crash",
                        message="Error detected in agent output",
                        severity="error",
                        agent_id=agent_id,
                        recovery=self.config.self_scheduling.recovery_strategy,
                        requires_intervention=True,
                    ))
                    if self.config.self_scheduling.enabled:
                        self.scheduler.schedule_recovery(session, "agent output reported a failure")
            elif datetime.now() - session.last_activity > idle_after:
                session.status = AgentStatus.IDLE
            else:
                session.status = AgentStatus.ACTIVE

        self._save_status()

    async def handle_agent_check_in(
        self,
        agent_id: str,
        note: str | None = None,
        recovery: bool = False,
    ) -> AgentSession | None:
        """Look at an agent whose check-in came due and schedule the next one."""
        session = self._agents.get(agent_id)
        if session is None:
            return None

        target = (session.session_name, session.window_index)

        if recovery:
            logger.info("Restarting agent %s", agent_id)
            await self._launch_agent(self.config.team_structure.get(agent_id), *target)

        # Read the pane before the reminder lands in it
        content = await self.tmux.capture_window_content(*target, CHECK_IN_CAPTURE_LINES)
        output = self._agent_output(agent_id, content).lower()

        reminder = "Time for orchestration check!"
        if note:
            reminder = f"{reminder} {note}"
        await self._type_to_agent(agent_id, *target, reminder)

        if "error" in output:
            session.status = AgentStatus.ERROR
        elif "blocked" in output:
            session.status = AgentStatus.BLOCKED
        elif "waiting" in output:
            session.status = AgentStatus.IDLE
        else:
            session.status = AgentStatus.ACTIVE

        session.last_activity = datetime.now()

        if self.config.self_scheduling.enabled:
            self.scheduler.schedule_check_in(session)

        self._save_status()
        return session

    # --- events ---

    def _start_dispatcher(self) -> None:
        if self._dispatcher is None or self._dispatcher.done():
            self._dispatcher = asyncio.create_task(
                self._dispatch_events(), name=f"teamorch-events-{self.id}"
            )

    async def _dispatch_events(self) -> None:
        while True:
            event = await self.events.get()
            try:
                await self._apply_event(event)
            except Exception as e:
                logger.exception("Failed to handle %s", type(event).__name__)
                self.error_log.record(ErrorRecord(
                    type="communication",
                    message=f"Failed to handle {type(event).__name__}: {e}",
                    severity="warning",
                    agent_id=getattr(event, "agent_id", None),
                ))
            finally:
                self.events.task_done()

    async def process_pending_events(self) -> int:
        """Apply every queued event now; returns how many were applied."""
        events = self.events.drain()
        for event in events:
            await self._apply_event(event)
        return len(events)

    async def _apply_event(self, event: Event) -> None:
        if isinstance(event, CommitEvent):
            session = self._agents.get(event.agent_id)
            if session is not None:
                session.git_commits += 1
            self._status.metrics.git_commits += 1
            logger.info("Git commit by %s", event.agent_id)

        elif isinstance(event, CommitFailedEvent):
            self.error_log.record(ErrorRecord(
                type="git",
                message=f"Commit failed: {event.error}",
                severity="warning",
                agent_id=event.agent_id,
            ))

        elif isinstance(event, CheckInEvent):
            logger.info("Check-in from %s", event.agent_id)
            await self.handle_agent_check_in(event.agent_id, event.note, event.recovery)

        elif isinstance(event, ScheduleFailedEvent):
            self.error_log.record(ErrorRecord(
                type="scheduling",
                message=f"Schedule failed: {event.error}",
                severity="error",
                agent_id=event.agent_id,
            ))

        elif isinstance(event, RecoveryEscalationEvent):
            self.error_log.record(ErrorRecord(
                type="escalation",
                message=f"Agent requires manual intervention: {event.reason}",
                severity="critical",
                agent_id=event.agent_id,
                recovery="escalate",
                requires_intervention=True,
            ))

    # --- run loop ---

    async def run(self, poll_interval: float | None = None, duration: float | None = None) -> None:
        """Monitor agents until request_stop() or the duration (seconds) elapses."""
        interval = poll_interval or self.config.monitor_interval
        deadline = time.monotonic() + duration if duration else None
        self._stop_requested.clear()

        while not self._stop_requested.is_set():
            if self.state is OrchestrationState.RUNNING:
                await self.monitor_agents()

            timeout = interval
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                timeout = min(interval, remaining)

            try:
                await asyncio.wait_for(self._stop_requested.wait(), timeout)
            except asyncio.TimeoutError:
                pass

    def request_stop(self) -> None:
        """Make run() return after its current iteration."""
        self._stop_requested.set()

    def pause(self) -> None:
        """Suspend monitoring; timers keep running."""
        if self.state is not OrchestrationState.RUNNING:
            logger.warning("Cannot pause orchestration in state %s", self.state.value)
            return
        self._status.state = OrchestrationState.PAUSED
        self._save_status()

    def resume(self) -> None:
        if self.state is not OrchestrationState.PAUSED:
            logger.warning("Cannot resume orchestration in state %s", self.state.value)
            return
        self._status.state = OrchestrationState.RUNNING
        self._save_status()

    # --- shutdown ---

    async def stop(self) -> Path:
        """Stop timers, archive logs, and write the final report.

        Safe to call more than once; later calls return the same report path.
        """
        if self._report_path is not None:
            return self._report_path

        logger.info("Stopping orchestration...")
        self.request_stop()

        self.git.stop_all()
        self.scheduler.cancel_all()

        if self._dispatcher is not None:
            self._dispatcher.cancel()
            try:
                await self._dispatcher
            except asyncio.CancelledError:
                pass
            self._dispatcher = None

        # Check-ins are moot once stopping; keep the counters and records
        for event in self.events.drain():
            if not isinstance(event, CheckInEvent):
                await self._apply_event(event)

        self._status.state = OrchestrationState.COMPLETED
        if self._status.end_time is None:
            self._status.end_time = datetime.now()
        self._save_status()

        await self._archive_agent_logs()

        report = await self.build_report()
        self._report_path = self.store.save_report(self.id, render_report(report))
        logger.info("Orchestration stopped")
        return self._report_path

    async def _archive_agent_logs(self) -> list[Path]:
        archived = []
        for agent_id, session in self._agents.items():
            try:
                content = await self.tmux.capture_window_content(
                    session.session_name,
                    session.window_index,
                    self.config.tmux.capture_max_lines,
                )
                archived.append(self.store.archive_agent_log(agent_id, content))
            except Exception as e:
                logger.error("Failed to archive logs for agent %s: %s", agent_id, e)
        return archived

    # --- status and reporting ---

    def get_status(self) -> OrchestrationStatus:
        """Refresh metrics and return the status snapshot."""
        sessions = list(self._agents.values())
        metrics = self._status.metrics

        end = self._status.end_time or datetime.now()
        task_messages = self.router.statistics().messages_by_type.get(MessageType.TASK.value, 0)

        self._status.metrics = OrchestrationMetrics(
            total_agents=len(sessions),
            active_agents=sum(1 for s in sessions if s.status is AgentStatus.ACTIVE),
            tasks_completed=metrics.tasks_completed,
            tasks_pending=max(0, task_messages - metrics.tasks_completed),
            git_commits=metrics.git_commits,
            blockers=metrics.blockers,
            errors=len(self.error_log),
            uptime=format_uptime(end - self._status.start_time),
        )
        self._status.active_agents = sessions
        self._status.last_update = max(self._status.last_update, datetime.now())
        return self._status

    def _save_status(self) -> None:
        try:
            self.store.save_status(self.get_status().to_dict())
        except OSError as e:
            logger.error("Failed to save status: %s", e)

    def generate_summary(self) -> str:
        """Compact human-readable status."""
        status = self.get_status()
        git_stats = self.git.stats()
        m = status.metrics

        return "\n".join([
            "Orchestration Status:",
            f"- Project: {self.config.project_name}",
            f"- Active Agents: {m.active_agents}/{m.total_agents}",
            f"- Tasks: {m.tasks_completed} completed, {m.tasks_pending} pending",
            f"- Git: {git_stats.total_commits} commits ({git_stats.compliance_rate:.0f}% compliance)",
            f"- Uptime: {m.uptime}",
        ])

    async def build_report(self) -> FinalReport:
        """Collect everything the final report shows."""
        status = self.get_status()
        git_stats = self.git.stats()

        recent_commits = []
        active_branches = 1
        if self.config.git_discipline.enabled:
            recent_commits = await self.git.get_recent_commits(5)
            active_branches = await self.git.count_branches()

        rows = []
        for agent_id, session in self._agents.items():
            agent = self.descriptor(agent_id)
            blockers = [r for r in self.error_log.by_agent(agent_id) if r.type == "task-blocked"]
            rows.append(AgentReportRow(
                name=agent.display_name if agent else agent_id,
                role=agent.role.value if agent else "unknown",
                session=session,
                blocker=blockers[-1].message if blockers else None,
            ))

        end = status.end_time or datetime.now()
        hours = (end - status.start_time).total_seconds() / 3600
        m = status.metrics

        return FinalReport(
            orchestration_id=self.id,
            project_name=self.config.project_name,
            state=status.state,
            uptime=m.uptime,
            total_agents=m.total_agents,
            active_agents=m.active_agents,
            tasks_completed=m.tasks_completed,
            tasks_pending=m.tasks_pending,
            blockers=m.blockers,
            errors=m.errors,
            escalations=self.error_log.count(type="escalation"),
            communication_model=self.config.communication_model.value,
            branch_strategy=self.config.git_discipline.branching_strategy,
            git=git_stats,
            communication=self.router.statistics(),
            active_branches=active_branches,
            team_composition=team_composition([row.role for row in rows]),
            agents=rows,
            productivity=productivity(rows, hours),
            recent_commits=recent_commits,
            recent_messages=self.router.recent_messages(5),
            recommendations=recommendations(
                [s.status for s in self._agents.values()],
                len(self.error_log),
                git_stats.compliance_rate,
            ),
            next_steps=next_steps(status.state),
        )
