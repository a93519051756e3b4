"""Tests for MessageRouter"""
import asyncio
from datetime import datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from teamorch.config.schema import CommunicationModel
from teamorch.orchestration.errors import (
    CommunicationBlockedError,
    HierarchyCycleError,
    MessageNotFoundError,
)
from teamorch.orchestration.models import MessageType
from teamorch.orchestration.router import (
    MessageRouter,
    format_escalation,
    format_status_update,
    format_task_assignment,
)


def make_router(model: CommunicationModel) -> MessageRouter:
    """O at the root, P reports to O, D1 and D2 report to P, Q reports to O"""
    router = MessageRouter(model)
    router.register_hierarchy("O")
    router.register_hierarchy("P", "O")
    router.register_hierarchy("D1", "P")
    router.register_hierarchy("D2", "P")
    router.register_hierarchy("Q", "O")
    return router


@pytest.mark.parametrize("sender,recipient,allowed", [
    ("O", "P", True),     # supervisor to report
    ("P", "O", True),     # report to supervisor
    ("D1", "D2", True),   # same supervisor
    ("D1", "O", True),    # recipient has no supervisor
    ("O", "D1", True),    # sender has no supervisor
    ("D1", "Q", False),   # different supervisors
    ("D1", "X", True),    # unregistered recipient counts as root
])
def test_hub_and_spoke(sender, recipient, allowed):
    router = make_router(CommunicationModel.HUB_AND_SPOKE)
    assert router.can_communicate(sender, recipient) is allowed


@pytest.mark.parametrize("sender,recipient,allowed", [
    ("O", "P", True),
    ("P", "D1", True),
    ("D1", "P", True),
    ("D1", "D2", False),  # peers may not talk directly
    ("D1", "O", False),   # no skipping levels upward
    ("O", "D1", True),    # the root may reach anyone
    ("P", "Q", False),
])
def test_hierarchical(sender, recipient, allowed):
    router = make_router(CommunicationModel.HIERARCHICAL)
    assert router.can_communicate(sender, recipient) is allowed


def test_mesh_allows_everything():
    router = make_router(CommunicationModel.MESH)

    assert router.can_communicate("D1", "Q") is True
    assert router.can_communicate("Q", "D2") is True


@pytest.mark.asyncio
async def test_scenario_same_supervisor_depends_on_model():
    """Test D1 to D2 passes hub-and-spoke but not hierarchical"""
    router = make_router(CommunicationModel.HUB_AND_SPOKE)

    await router.send("D1", "D2", MessageType.STATUS, "hi")
    await router.send("D1", "O", MessageType.STATUS, "hi")

    router.set_communication_model(CommunicationModel.HIERARCHICAL)
    with pytest.raises(CommunicationBlockedError):
        await router.send("D1", "D2", MessageType.STATUS, "hi")


@pytest.mark.asyncio
async def test_blocked_send_counts_once_and_is_not_logged():
    router = make_router(CommunicationModel.HIERARCHICAL)

    with pytest.raises(CommunicationBlockedError) as exc_info:
        await router.send("D1", "D2", MessageType.TASK, "do it")

    assert exc_info.value.from_agent == "D1"
    assert exc_info.value.to_agent == "D2"
    assert "hierarchical" in str(exc_info.value)
    stats = router.statistics()
    assert stats.blocked_messages == 1
    assert stats.total_messages == 0
    assert router.history() == []


def test_register_rejects_self_supervision():
    router = MessageRouter()

    with pytest.raises(HierarchyCycleError):
        router.register_hierarchy("A", "A")


def test_register_rejects_cycle_and_leaves_forest_unchanged():
    router = MessageRouter()
    router.register_hierarchy("B", "A")
    router.register_hierarchy("C", "B")

    with pytest.raises(HierarchyCycleError, match="cycle"):
        router.register_hierarchy("A", "C")

    assert router.supervisor_of("A") is None
    assert router.supervisor_of("C") == "B"


def test_register_none_clears_supervisor():
    router = MessageRouter()
    router.register_hierarchy("B", "A")

    router.register_hierarchy("B")

    assert router.supervisor_of("B") is None


@pytest.mark.asyncio
async def test_send_delivers_to_all_handlers():
    router = MessageRouter(CommunicationModel.MESH)
    first, second = AsyncMock(), AsyncMock()
    router.subscribe("B", first)
    router.subscribe("B", second)

    message = await router.send("A", "B", "task", "build it", {"priority": "high"})

    assert message.type is MessageType.TASK
    first.assert_awaited_once_with(message)
    second.assert_awaited_once_with(message)


@pytest.mark.asyncio
async def test_send_without_handlers_keeps_history():
    router = MessageRouter(CommunicationModel.MESH)

    message = await router.send("A", "B", MessageType.QUESTION, "where?")

    assert router.history() == [message]


@pytest.mark.asyncio
async def test_statistics():
    router = MessageRouter(CommunicationModel.MESH)

    await router.send("A", "B", MessageType.TASK, "1")
    await router.send("A", "C", MessageType.TASK, "2")
    await router.send("B", "A", MessageType.ESCALATION, "help")

    stats = router.statistics()
    assert stats.total_messages == 3
    assert stats.messages_by_type == {"task": 2, "escalation": 1}
    assert stats.messages_by_agent == {"A": 2, "B": 1}
    assert stats.escalations == 1


@pytest.mark.asyncio
async def test_broadcast_drops_disallowed_recipients():
    router = make_router(CommunicationModel.HIERARCHICAL)

    result = await router.broadcast("P", ["D1", "D2", "Q"], MessageType.TASK, "standup")

    assert [m.to_agent for m in result.sent] == ["D1", "D2"]
    assert result.dropped == 1
    # Filtered recipients are not counted as blocked sends
    assert router.statistics().blocked_messages == 0


@pytest.mark.asyncio
async def test_respond_records_latency_and_clears_pending():
    router = MessageRouter(CommunicationModel.MESH)
    question = await router.send("A", "B", MessageType.QUESTION, "status?", requires_response=True)

    assert router.pending_for("B") == [question]

    reply = await router.respond(question.id, "B", "all good")

    assert reply.to_agent == "A"
    assert reply.type is MessageType.STATUS
    assert reply.parent_message_id == question.id
    assert reply.metadata["in_response_to"] == question.id
    assert router.pending_for("B") == []
    stats = router.statistics()
    assert stats.responses == 1
    assert stats.average_response_time >= 0


@pytest.mark.asyncio
async def test_blocked_response_leaves_request_pending():
    router = make_router(CommunicationModel.HIERARCHICAL)
    question = await router.send("O", "D1", MessageType.QUESTION, "ETA?", requires_response=True)

    # D1 may not skip P to reach O
    with pytest.raises(CommunicationBlockedError):
        await router.respond(question.id, "D1", "tomorrow")

    stats = router.statistics()
    assert stats.responses == 0
    assert stats.average_response_time == 0.0
    assert stats.blocked_messages == 1
    assert router.pending_for("D1") == [question]

    router.set_communication_model(CommunicationModel.MESH)
    await router.respond(question.id, "D1", "tomorrow")

    assert router.statistics().responses == 1
    assert router.pending_for("D1") == []


@pytest.mark.asyncio
async def test_remove_agent_drops_handlers_and_supervisor():
    router = make_router(CommunicationModel.HUB_AND_SPOKE)
    handler = AsyncMock()
    router.subscribe("D1", handler)

    router.remove_agent("D1")
    await router.send("P", "D1", MessageType.TASK, "build it")

    handler.assert_not_awaited()
    assert router.supervisor_of("D1") is None
    assert len(router.history()) == 1


def test_average_response_time_is_mean():
    router = MessageRouter(CommunicationModel.MESH)
    router._record_response_time(2.0)
    router._record_response_time(4.0)
    router._record_response_time(9.0)

    assert router.statistics().average_response_time == pytest.approx(5.0)


@pytest.mark.asyncio
async def test_respond_to_unknown_message():
    router = MessageRouter()

    with pytest.raises(MessageNotFoundError):
        await router.respond("nope", "A", "hello")


@pytest.mark.asyncio
async def test_recent_messages_and_conversation():
    router = MessageRouter(CommunicationModel.MESH)
    m1 = await router.send("A", "B", MessageType.STATUS, "1")
    m2 = await router.send("C", "A", MessageType.STATUS, "2")
    m3 = await router.send("B", "A", MessageType.STATUS, "3")

    assert router.recent_messages(2) == [m3, m2]
    assert router.conversation("A", "B") == [m1, m3]
    assert router.history(limit=1) == [m3]


@pytest.mark.asyncio
async def test_prune_removes_messages_at_or_before_cutoff():
    router = MessageRouter(CommunicationModel.MESH)
    old = await router.send("A", "B", MessageType.STATUS, "old", requires_response=True)
    await asyncio.sleep(0.002)
    new = await router.send("A", "B", MessageType.STATUS, "new")

    removed = router.prune(old.timestamp)

    assert removed == 1
    assert router.history() == [new]
    assert router.pending_for("B") == []


@pytest.mark.asyncio
async def test_prune_in_the_future_removes_everything():
    router = MessageRouter(CommunicationModel.MESH)
    await router.send("A", "B", MessageType.STATUS, "x")

    assert router.prune(datetime.now() + timedelta(minutes=1)) == 1
    assert router.history() == []


def test_format_helpers():
    status = format_status_update(["Login form"], "Signup flow", eta="2h")
    task = format_task_assignment("T-7", "Auth", "Add OAuth", "high", ["Tests pass"])
    escalation = format_escalation("DB down", "All devs blocked", ["Restarted"], "Page ops")

    assert status.splitlines() == [
        "STATUS UPDATE",
        "Completed:",
        "- Login form",
        "Current: Signup flow",
        "Blocked: None",
        "ETA: 2h",
    ]
    assert "TASK T-7: Auth" in task
    assert "Priority: HIGH" in task
    assert "- Tests pass" in task
    assert escalation.startswith("ESCALATION REQUIRED")
    assert "Recommendation: Page ops" in escalation
