from __future__ import annotations

import pytest

from visor.channels import Channel
from visor.events import ChatMessage, StatusUpdate, TurnEnded
from visor.models import ChatRole
from tests.utils import Core


def _chat(content: str, session_id: str = "s1") -> dict:
    return {"type": "chat_message", "session_id": session_id, "content": content}


@pytest.mark.asyncio
async def test_chat_chunks_coalesce_until_status() -> None:
    core = Core()
    await core.sessions.start("claude", "/proj")
    for chunk in ("a", "b", "c"):
        core.router.apply(_chat(chunk))
    core.router.apply({"type": "status_update", "session_id": "s1", "content": "Read (pending)"})
    core.router.apply(_chat("d"))

    entries = core.transcript.snapshot()
    assert [(e.role, e.content) for e in entries] == [
        (ChatRole.ASSISTANT, "abc"),
        (ChatRole.STATUS, "Read (pending)"),
        (ChatRole.ASSISTANT, "d"),
    ]


@pytest.mark.asyncio
async def test_error_update_becomes_prefixed_status() -> None:
    core = Core()
    await core.sessions.start("claude", "/proj")
    core.router.apply({"type": "error", "session_id": "s1", "content": "model overloaded"})
    assert core.contents() == ["Error: model overloaded"]


@pytest.mark.asyncio
async def test_mode_changed_updates_session() -> None:
    core = Core()
    await core.sessions.start("claude", "/proj")
    assert core.router.apply({"type": "mode_changed", "session_id": "s1", "mode_id": "code"})
    assert core.sessions.snapshot().current_mode_id == "code"


@pytest.mark.asyncio
async def test_duplicate_permission_requests_collapse() -> None:
    core = Core()
    await core.sessions.start("claude", "/proj")
    request = {
        "type": "permission_request",
        "session_id": "s1",
        "request_id": "p1",
        "message": "Write file?",
        "options": [{"option_id": "allow", "label": "Allow"}],
    }
    core.router.apply(request)
    core.router.apply(request)

    assert len(core.permissions) == 1
    await core.permissions.resolve("p1", "allow")
    assert len(core.permissions) == 0
    core.backend.acp_resolve_permission.assert_awaited_once_with("p1", "allow")


@pytest.mark.asyncio
async def test_malformed_updates_are_dropped() -> None:
    core = Core()
    assert core.router.apply({"type": "mystery", "session_id": "s1"}) is False
    assert core.router.apply({"type": "chat_message"}) is False
    assert core.router.apply({"type": "mode_changed", "session_id": "s1", "mode_id": ""}) is False
    assert core.router.apply("not an event") is False
    assert core.transcript.snapshot() == ()
    assert core.router.dropped == 4


@pytest.mark.asyncio
async def test_stale_events_after_stop_are_dropped() -> None:
    core = Core()
    await core.sessions.start("claude", "/proj")
    await core.sessions.stop()

    assert core.router.apply(_chat("late")) is False
    assert core.router.apply(
        {"type": "permission_request", "session_id": "s1", "request_id": "p9", "options": []}
    ) is False
    assert core.transcript.snapshot() == ()
    assert len(core.permissions) == 0


@pytest.mark.asyncio
async def test_stale_filter_can_be_disabled() -> None:
    core = Core(drop_stale_events=False)
    await core.sessions.start("claude", "/proj")
    await core.sessions.stop()
    assert core.router.apply(_chat("late")) is True
    assert core.contents() == ["late"]


@pytest.mark.asyncio
async def test_turn_ended_closes_stream() -> None:
    core = Core()
    await core.sessions.start("claude", "/proj")
    core.router.apply(ChatMessage(session_id="s1", content="first answer"))
    core.router.apply(TurnEnded(session_id="s1", stop_reason="end_turn"))
    core.router.apply(ChatMessage(session_id="s1", content="second answer"))

    entries = core.transcript.snapshot()
    assert [e.content for e in entries] == ["first answer", "second answer"]
    assert entries[0].streaming is False


@pytest.mark.asyncio
async def test_run_consumes_channel_in_order() -> None:
    core = Core()
    await core.sessions.start("claude", "/proj")
    channel: Channel[object] = Channel("updates")
    subscription = channel.subscribe()

    channel.publish(ChatMessage(session_id="s1", content="x"))
    channel.publish(StatusUpdate(session_id="s1", content="Tool update: completed"))
    channel.publish(ChatMessage(session_id="s1", content="y"))
    channel.close()

    await core.router.run(subscription)
    assert core.contents() == ["x", "Tool update: completed", "y"]
    assert core.router.applied == 3
