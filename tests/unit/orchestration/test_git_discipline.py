"""Tests for GitDisciplineService against a real repository"""
import asyncio
import shutil
from datetime import datetime, timedelta

import pytest

from teamorch.config.schema import GitDisciplineConfig
from teamorch.orchestration import git_discipline
from teamorch.orchestration.errors import GitCommandError
from teamorch.orchestration.events import CommitEvent, CommitFailedEvent, EventBus
from teamorch.orchestration.git_discipline import GitDisciplineService, slugify_branch

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


@pytest.fixture
def events():
    return EventBus()


@pytest.fixture
def service(tmp_path, events):
    project = tmp_path / "project"
    project.mkdir()
    return GitDisciplineService(GitDisciplineConfig(), project, events)


@requires_git
@pytest.mark.asyncio
async def test_initialize_creates_repository(service):
    await service.initialize()

    assert (service.project_path / ".git").is_dir()
    assert not (service.project_path / ".git" / "hooks" / "pre-commit").exists()


@requires_git
@pytest.mark.asyncio
async def test_initialize_installs_test_hook(tmp_path):
    config = GitDisciplineConfig(require_tests=True, test_command="make check")
    service = GitDisciplineService(config, tmp_path)

    await service.initialize()

    hook = tmp_path / ".git" / "hooks" / "pre-commit"
    assert "make check" in hook.read_text()
    assert hook.stat().st_mode & 0o111


@requires_git
@pytest.mark.asyncio
async def test_clean_tree_does_not_commit(service, events):
    await service.initialize()

    assert await service.perform_auto_commit("dev-1", "developer") is False
    assert events.empty()
    assert service.stats().total_commits == 0


@requires_git
@pytest.mark.asyncio
async def test_dirty_tree_commits_and_posts_event(service, events):
    await service.initialize()
    (service.project_path / "app.py").write_text("print('hi')\n")
    (service.project_path / "README.md").write_text("# demo\n")

    assert await service.perform_auto_commit("dev-1", "developer", "orch-demo") is True

    event = events.drain()[0]
    assert isinstance(event, CommitEvent)
    assert event.agent_id == "dev-1"
    assert event.changes == 2

    commits = await service.get_recent_commits()
    assert len(commits) == 1
    assert commits[0].message == "Progress: Auto-commit by dev-1 - README.md, app.py"
    assert commits[0].author == "teamorch"

    stats = service.stats()
    assert stats.total_commits == 1
    assert stats.commits_by_agent == {"dev-1": 1}
    assert service.last_commit_time("dev-1") is not None


@requires_git
@pytest.mark.asyncio
async def test_auto_commit_timer_commits_only_dirty_ticks(tmp_path, events, monkeypatch):
    """Test two timer ticks: the dirty one commits, the clean one does nothing"""
    project = tmp_path / "project"
    project.mkdir()
    service = GitDisciplineService(GitDisciplineConfig(auto_commit_interval=1), project, events)
    await service.initialize()
    (project / "app.py").write_text("print('hi')\n")

    real_sleep = asyncio.sleep
    ticks: asyncio.Queue = asyncio.Queue()
    delays = []

    async def fake_sleep(delay):
        delays.append(delay)
        await ticks.get()

    monkeypatch.setattr(git_discipline.asyncio, "sleep", fake_sleep)
    ticks.put_nowait(None)
    ticks.put_nowait(None)

    service.start_auto_commit("dev-1", "developer", "orch-demo")

    # The third sleep means both ticks have finished
    for _ in range(500):
        if len(delays) == 3:
            break
        await real_sleep(0.01)

    service.stop_all()
    await real_sleep(0)

    assert delays == [60, 60, 60]
    stats = service.stats()
    assert stats.total_commits == 1
    assert stats.commits_by_agent == {"dev-1": 1}
    assert stats.last_commit_time is not None
    assert service.last_commit_time("dev-1") == stats.last_commit_time

    posted = events.drain()
    assert [type(e) for e in posted] == [CommitEvent]
    assert len(await service.get_recent_commits()) == 1


@pytest.mark.asyncio
async def test_commit_failure_posts_event(tmp_path, events):
    # Not a repository, so `git status` fails
    service = GitDisciplineService(GitDisciplineConfig(), tmp_path / "missing", events)

    assert await service.perform_auto_commit("dev-1", "developer") is False

    event = events.drain()[0]
    assert isinstance(event, CommitFailedEvent)
    assert event.agent_id == "dev-1"


def test_commit_message_replaces_every_token(service):
    service.config.commit_message_format = "$AGENT: $TASK ($AGENT) $DESCRIPTION"

    message = service.generate_commit_message("qa-1", "qa-engineer", "s", ["a.py", "b.py"])

    assert message == "qa-1: Auto-commit by qa-1 (qa-1) a.py, b.py"


def test_structured_commit_message_when_format_is_empty(service):
    service.config.commit_message_format = ""
    changes = [f"file{i}.py" for i in range(7)]

    message = service.generate_commit_message("dev-2", "developer", "orch-demo", changes)
    lines = message.splitlines()

    assert lines[0] == "Progress: Auto-commit by dev-2"
    assert "Agent: dev-2 (developer)" in lines
    assert "Session: orch-demo" in lines
    assert "Commit interval: 30 minutes" in lines
    assert "- file4.py" in lines
    assert "- file5.py" not in lines
    assert lines[-1] == "- ... and 2 more"


@pytest.mark.parametrize("name,expected", [
    ("User Login", "user-login"),
    ("Fix: API/v2 -- errors!", "fix-api-v2-errors"),
    ("---", "work"),
    ("", "work"),
])
def test_slugify_branch(name, expected):
    assert slugify_branch(name) == expected


def test_compliance_without_commits(service):
    assert service.check_compliance("dev-1") is True


def test_compliance_uses_grace_factor(service):
    # 30 minute interval, 45 minutes of grace
    service._last_commit_times["dev-1"] = datetime.now() - timedelta(minutes=40)
    service._last_commit_times["dev-2"] = datetime.now() - timedelta(minutes=50)

    assert service.check_compliance("dev-1") is True
    assert service.check_compliance("dev-2") is False


def test_stats_compliance_is_full_without_timers(service):
    service._last_commit_times["dev-1"] = datetime.now() - timedelta(hours=5)

    assert service.stats().compliance_rate == 100.0


@pytest.mark.asyncio
async def test_stats_compliance_over_timed_agents(service):
    service.config.auto_commit_interval = 10
    service.start_auto_commit("dev-1", "developer")
    service.start_auto_commit("dev-2", "developer")
    service._last_commit_times["dev-1"] = datetime.now() - timedelta(hours=1)

    try:
        assert service.stats().compliance_rate == 50.0
    finally:
        service.stop_all()

    assert not service.has_timer("dev-1")


@pytest.mark.asyncio
async def test_disabled_service_starts_no_timers(tmp_path):
    service = GitDisciplineService(GitDisciplineConfig(enabled=False), tmp_path)

    service.start_auto_commit("dev-1", "developer")

    assert service.has_timer("dev-1") is False


@pytest.mark.asyncio
async def test_tagging_disabled_returns_none(service):
    service.config.tag_strategy = None

    assert await service.tag_stable_version("release", "msg", "dev-1") is None


@requires_git
@pytest.mark.asyncio
async def test_feature_branch_and_tag(service):
    await service.initialize()
    (service.project_path / "a.txt").write_text("a")
    await service.perform_auto_commit("dev-1", "developer")

    branch = await service.create_feature_branch("User Login", "dev-1")
    again = await service.create_feature_branch("User Login", "dev-1")
    tag = await service.tag_stable_version("login", "Login works", "dev-1")

    assert branch == again == "feature/user-login"
    assert await service.get_current_branch() == "feature/user-login"
    assert await service.count_branches() == 2
    assert tag.startswith("stable-login-")
    stats = service.stats()
    assert stats.branches_created == 1
    assert stats.tags_created == 1


@requires_git
@pytest.mark.asyncio
async def test_tag_without_commits_raises(service):
    await service.initialize()

    with pytest.raises(GitCommandError):
        await service.tag_stable_version("x", "nothing", "dev-1")


@pytest.mark.asyncio
async def test_queries_outside_repository(tmp_path):
    service = GitDisciplineService(GitDisciplineConfig(), tmp_path / "missing")

    assert await service.get_recent_commits() == []
    assert await service.get_current_branch() == "main"
    assert await service.count_branches() == 1
