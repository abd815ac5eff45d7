from __future__ import annotations

import asyncio
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock

import pytest

from visor.backend.acp_host import AcpHost
from visor.backend.acp_session import AgentSession, _mode_summary
from visor.backend.agents import AgentConfig
from visor.channels import Channel
from visor.errors import BackendError
from visor.events import TurnEnded
from visor.models import Mode, ModeSummary


def _agent(command: str = "sleep", args: list[str] | None = None) -> AgentConfig:
    return AgentConfig(id="test", label="Test", command=command, args=args or ["5"])


async def _session(tmp_path: Path, conn: AsyncMock, updates: Channel[object]) -> AgentSession:
    proc = await asyncio.create_subprocess_exec("sleep", "5")
    return AgentSession(_agent(), proc, conn, AcpHost(tmp_path, updates), "s1")


def test_mode_summary_from_session_response() -> None:
    modes = SimpleNamespace(
        current_mode_id="ask",
        available_modes=[
            SimpleNamespace(id="ask", name="Ask", description="Ask before edits"),
            SimpleNamespace(id="code", name="Code", description=None),
        ],
    )
    assert _mode_summary(modes) == ModeSummary(
        current_mode_id="ask",
        available_modes=(Mode("ask", "Ask", "Ask before edits"), Mode("code", "Code", None)),
    )
    assert _mode_summary(None) is None


@pytest.mark.asyncio
async def test_launch_reports_missing_command(tmp_path: Path) -> None:
    agent = _agent(command=str(tmp_path / "no-such-agent"), args=[])
    with pytest.raises(BackendError, match="failed to spawn agent test"):
        await AgentSession.launch(agent, tmp_path, Channel("updates"), stdio_buffer_limit=64 * 1024)


@pytest.mark.asyncio
async def test_prompt_publishes_turn_ended(tmp_path: Path) -> None:
    updates: Channel[object] = Channel("updates")
    subscription = updates.subscribe()
    conn = AsyncMock()
    conn.prompt.return_value = SimpleNamespace(stop_reason="end_turn")
    session = await _session(tmp_path, conn, updates)

    await session.prompt("hi", updates)

    kwargs = conn.prompt.await_args.kwargs
    assert kwargs["session_id"] == "s1"
    assert kwargs["prompt"][0].text == "hi"
    assert subscription._queue.get_nowait() == TurnEnded(session_id="s1", stop_reason="end_turn")
    await session.shutdown()


@pytest.mark.asyncio
async def test_prompt_and_mode_failures_become_backend_errors(tmp_path: Path) -> None:
    conn = AsyncMock()
    conn.prompt.side_effect = RuntimeError("connection closed")
    conn.set_session_mode.side_effect = RuntimeError("unknown mode")
    session = await _session(tmp_path, conn, Channel("updates"))

    with pytest.raises(BackendError, match="prompt failed"):
        await session.prompt("hi", Channel("updates"))
    with pytest.raises(BackendError, match="set_mode failed"):
        await session.set_mode("code")
    await session.shutdown()


@pytest.mark.asyncio
async def test_shutdown_terminates_agent_process(tmp_path: Path) -> None:
    conn = AsyncMock()
    session = await _session(tmp_path, conn, Channel("updates"))
    proc = session._proc

    await session.shutdown()
    assert proc.returncode is not None
    conn.close.assert_awaited_once()
