"""Periodic commit discipline for the orchestrated repository."""
import asyncio
import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from teamorch.config.defaults import COMMIT_COMPLIANCE_GRACE
from teamorch.config.schema import GitDisciplineConfig
from teamorch.orchestration.errors import GitCommandError
from teamorch.orchestration.events import CommitEvent, CommitFailedEvent, EventBus

logger = logging.getLogger(__name__)

MAX_CHANGES_IN_MESSAGE = 5

PRE_COMMIT_HOOK = """#!/bin/sh
# Pre-commit hook installed by teamorch: tests must pass before commit

echo "Running tests before commit..."
{test_command}
if [ $? -ne 0 ]; then
  echo "Tests failed! Commit aborted."
  exit 1
fi

echo "Tests passed. Proceeding with commit."
exit 0
"""


@dataclass
class GitStats:
    """Commit discipline counters"""
    total_commits: int = 0
    commits_by_agent: dict[str, int] = field(default_factory=dict)
    average_commit_interval: float = 0.0  # minutes
    branches_created: int = 0
    tags_created: int = 0
    last_commit_time: datetime | None = None
    compliance_rate: float = 100.0  # percentage


@dataclass
class CommitRecord:
    """One line of `git log`"""
    hash: str
    message: str
    author: str
    time: str


def slugify_branch(name: str) -> str:
    """Reduce a name to lowercase letters, digits, and single dashes."""
    slug = re.sub(r"[^a-z0-9-]", "-", name.lower())
    slug = re.sub(r"-+", "-", slug).strip("-")
    return slug or "work"


class GitDisciplineService:
    """Commits each agent's work on a fixed interval and tracks compliance"""

    def __init__(
        self,
        config: GitDisciplineConfig,
        project_path: Path,
        events: EventBus | None = None,
    ):
        self.config = config
        self.project_path = Path(project_path)
        self.events = events
        self._timers: dict[str, asyncio.Task] = {}
        self._last_commit_times: dict[str, datetime] = {}
        self._stats = GitStats()
        self._intervals_recorded = 0

    async def _git(self, *args: str) -> str:
        """Run a git command in the project and return stdout."""
        process = await asyncio.create_subprocess_exec(
            "git",
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=self.project_path,
        )
        stdout, stderr = await process.communicate()
        out = stdout.decode("utf-8", errors="replace")
        if process.returncode != 0:
            err = stderr.decode("utf-8", errors="replace")
            raise GitCommandError(list(args), process.returncode or 1, out + err)
        return out

    def _post(self, event) -> None:
        if self.events is not None:
            self.events.post(event)

    # --- setup ---

    async def initialize(self) -> None:
        """Make the project a configured repository with optional test gate."""
        logger.info("Initializing git discipline...")

        if not (self.project_path / ".git").exists():
            logger.info("Initializing git repository in %s", self.project_path)
            await self._git("init")

        await self._git("config", "user.name", self.config.committer_name)
        await self._git("config", "user.email", self.config.committer_email)

        if self.config.require_tests:
            hooks_path = self.project_path / ".git" / "hooks"
            hooks_path.mkdir(parents=True, exist_ok=True)
            hook = hooks_path / "pre-commit"
            hook.write_text(PRE_COMMIT_HOOK.format(test_command=self.config.test_command))
            hook.chmod(0o755)

        logger.info("Git discipline initialized")

    # --- timers ---

    def start_auto_commit(self, agent_id: str, agent_role: str, session_id: str = "") -> None:
        """Start (or restart) the commit timer for an agent."""
        if not self.config.enabled:
            return

        self.stop_auto_commit(agent_id)
        self._timers[agent_id] = asyncio.create_task(
            self._auto_commit_loop(agent_id, agent_role, session_id),
            name=f"auto-commit-{agent_id}",
        )
        logger.info(
            "Auto-commit enabled for %s (every %d minutes)",
            agent_id,
            self.config.auto_commit_interval,
        )

    def stop_auto_commit(self, agent_id: str) -> None:
        """Cancel an agent's commit timer."""
        timer = self._timers.pop(agent_id, None)
        if timer is not None:
            timer.cancel()

    def stop_all(self) -> None:
        """Cancel every commit timer."""
        for agent_id in list(self._timers):
            self.stop_auto_commit(agent_id)

    def has_timer(self, agent_id: str) -> bool:
        return agent_id in self._timers

    async def _auto_commit_loop(self, agent_id: str, agent_role: str, session_id: str) -> None:
        while True:
            await asyncio.sleep(self.config.auto_commit_interval * 60)
            await self.perform_auto_commit(agent_id, agent_role, session_id)

    async def perform_auto_commit(self, agent_id: str, agent_role: str, session_id: str = "") -> bool:
        """One timer tick: commit pending changes if the tree is dirty.

        Returns:
            True if a commit was created.
        """
        try:
            status_output = await self._git("status", "--porcelain")
            if not status_output.strip():
                logger.debug("No changes to commit for %s", agent_id)
                return False

            # Porcelain lines are "XY path"; X may be a space, so no strip()
            changes = [line[3:] for line in status_output.splitlines() if line.strip()]

            await self._git("add", "-A")
            message = self.generate_commit_message(agent_id, agent_role, session_id, changes)
            await self._git("commit", "-m", message)

        except GitCommandError as e:
            if "nothing to commit" in e.output:
                return False
            logger.error("Auto-commit failed for %s: %s", agent_id, e)
            self._post(CommitFailedEvent(agent_id=agent_id, error=str(e)))
            return False
        except OSError as e:
            logger.error("Auto-commit failed for %s: %s", agent_id, e)
            self._post(CommitFailedEvent(agent_id=agent_id, error=str(e)))
            return False

        self._update_commit_stats(agent_id)
        logger.info("Auto-commit completed for %s", agent_id)
        self._post(CommitEvent(agent_id=agent_id, changes=len(changes)))
        return True

    def generate_commit_message(
        self,
        agent_id: str,
        agent_role: str,
        session_id: str,
        changes: list[str],
    ) -> str:
        """Build a commit message from the configured format."""
        listed = changes[:MAX_CHANGES_IN_MESSAGE]
        task = f"Auto-commit by {agent_id}"
        timestamp = datetime.now().isoformat()

        if self.config.commit_message_format:
            return (
                self.config.commit_message_format
                .replace("$TASK", task)
                .replace("$DESCRIPTION", ", ".join(listed))
                .replace("$AGENT", agent_id)
                .replace("$TIMESTAMP", timestamp)
            )

        lines = [
            f"Progress: {task}",
            "",
            f"Agent: {agent_id} ({agent_role})",
            f"Session: {session_id or 'n/a'}",
            f"Timestamp: {timestamp}",
            f"Commit interval: {self.config.auto_commit_interval} minutes",
            "",
            "Changes:",
        ]
        lines.extend(f"- {change}" for change in listed)
        if len(changes) > len(listed):
            lines.append(f"- ... and {len(changes) - len(listed)} more")
        return "\n".join(lines)

    # --- compliance ---

    def check_compliance(self, agent_id: str) -> bool:
        """Whether the agent committed within the grace-padded interval."""
        last_commit = self._last_commit_times.get(agent_id)
        if last_commit is None:
            return True

        elapsed = (datetime.now() - last_commit).total_seconds()
        max_interval = self.config.auto_commit_interval * 60 * COMMIT_COMPLIANCE_GRACE
        return elapsed <= max_interval

    def last_commit_time(self, agent_id: str) -> datetime | None:
        return self._last_commit_times.get(agent_id)

    def _update_commit_stats(self, agent_id: str) -> None:
        self._stats.total_commits += 1
        self._stats.commits_by_agent[agent_id] = self._stats.commits_by_agent.get(agent_id, 0) + 1

        now = datetime.now()
        previous = self._last_commit_times.get(agent_id)
        if previous is not None:
            interval = (now - previous).total_seconds() / 60
            self._intervals_recorded += 1
            n = self._intervals_recorded
            self._stats.average_commit_interval = (
                self._stats.average_commit_interval * (n - 1) + interval
            ) / n

        self._last_commit_times[agent_id] = now
        self._stats.last_commit_time = now

    def stats(self) -> GitStats:
        """Counters with the compliance rate over agents with a timer."""
        timed = list(self._timers)
        compliant = sum(1 for agent_id in timed if self.check_compliance(agent_id))
        compliance = (compliant / len(timed)) * 100 if timed else 100.0

        return GitStats(
            total_commits=self._stats.total_commits,
            commits_by_agent=dict(self._stats.commits_by_agent),
            average_commit_interval=self._stats.average_commit_interval,
            branches_created=self._stats.branches_created,
            tags_created=self._stats.tags_created,
            last_commit_time=self._stats.last_commit_time,
            compliance_rate=compliance,
        )

    # --- branches and tags ---

    async def create_feature_branch(self, branch_name: str, agent_id: str) -> str:
        """Create feature/<slug>, or switch to it if it already exists."""
        full_name = f"feature/{slugify_branch(branch_name)}"

        try:
            await self._git("checkout", "-b", full_name)
        except GitCommandError as e:
            if "already exists" not in e.output:
                raise
            await self._git("checkout", full_name)
            return full_name

        self._stats.branches_created += 1
        logger.info("Created branch %s for %s", full_name, agent_id)
        return full_name

    async def tag_stable_version(self, tag_name: str, message: str, agent_id: str) -> str | None:
        """Create an annotated tag per the tag strategy. None if tagging is off."""
        if not self.config.tag_strategy:
            return None

        prefix = "stable" if self.config.tag_strategy == "stable" else "v"
        full_tag = f"{prefix}-{tag_name}-{int(time.time() * 1000)}"

        await self._git("tag", "-a", full_tag, "-m", message)
        self._stats.tags_created += 1
        logger.info("Created tag %s for %s", full_tag, agent_id)
        return full_tag

    # --- repository queries ---

    async def get_recent_commits(self, limit: int = 10) -> list[CommitRecord]:
        """Most recent commits, newest first; empty if there is no history."""
        try:
            output = await self._git("log", f"-{limit}", "--pretty=format:%h|%s|%an|%ar")
        except (GitCommandError, OSError):
            return []

        records = []
        for line in output.strip().splitlines():
            parts = line.split("|", 3)
            if len(parts) == 4:
                records.append(CommitRecord(*parts))
        return records

    async def get_current_branch(self) -> str:
        """Current branch name, "main" if it cannot be read."""
        try:
            return (await self._git("rev-parse", "--abbrev-ref", "HEAD")).strip()
        except (GitCommandError, OSError):
            return "main"

    async def count_branches(self) -> int:
        """Number of local branches, at least 1."""
        try:
            output = await self._git("branch", "--list")
        except (GitCommandError, OSError):
            return 1
        return max(1, len([line for line in output.splitlines() if line.strip()]))
