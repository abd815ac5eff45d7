from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path

import pytest

from visor.backend.local import LocalBackend
from visor.config import CoreSettings
from visor.copilot import Copilot
from visor.events import ChatMessage, TurnEnded
from visor.models import ChatRole

FAKE_AGENT = Path(__file__).with_name("fake_agent.py")


def _settings(tmp_path: Path) -> CoreSettings:
    config = tmp_path / "agents.json"
    config.write_text(
        json.dumps(
            {
                "version": 1,
                "agents": {"fake": {"label": "Fake", "command": sys.executable, "args": [str(FAKE_AGENT)]}},
            }
        ),
        encoding="utf-8",
    )
    return CoreSettings(agent_config_path=config, shell="/bin/sh")


@pytest.mark.asyncio
async def test_turn_ended_follows_the_turns_chunks(tmp_path: Path) -> None:
    backend = LocalBackend(_settings(tmp_path))
    updates = backend.updates.subscribe()
    try:
        info = await backend.acp_start_session("fake", str(tmp_path))
        assert info.session_id == "fake-1"

        await backend.acp_send_prompt("hi")
        received = [await asyncio.wait_for(updates.__anext__(), timeout=5) for _ in range(3)]
    finally:
        updates.close()
        await backend.close()

    assert [type(event) for event in received] == [ChatMessage, ChatMessage, TurnEnded]
    assert [event.content for event in received[:2]] == ["hello ", "world"]
    assert received[2].stop_reason == "end_turn"


@pytest.mark.asyncio
async def test_streamed_reply_is_one_finished_entry(tmp_path: Path) -> None:
    copilot = Copilot(LocalBackend(_settings(tmp_path)))
    finished = asyncio.Event()

    def _on_change() -> None:
        tail = copilot.snapshot().entries[-1:]
        if tail and tail[0].role is ChatRole.ASSISTANT and not tail[0].streaming:
            finished.set()

    unsubscribe = copilot.subscribe(_on_change)
    copilot.attach()
    try:
        assert await copilot.start("fake", str(tmp_path)) is True
        assert await copilot.send_prompt("hi") is True
        await asyncio.wait_for(finished.wait(), timeout=5)
        entries = [(e.role, e.content, e.streaming) for e in copilot.snapshot().entries]
    finally:
        unsubscribe()
        await copilot.close()

    assert entries == [
        (ChatRole.USER, "hi", False),
        (ChatRole.ASSISTANT, "hello world", False),
    ]
