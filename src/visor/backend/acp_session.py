"""One running agent process and its ACP session."""

from __future__ import annotations

import asyncio
import asyncio.subprocess as aio_subprocess
import contextlib
import logging
import os
from pathlib import Path
from typing import Any

from acp import PROTOCOL_VERSION, text_block
from acp.core import connect_to_agent
from acp.schema import ClientCapabilities, FileSystemCapability, Implementation

from visor import __version__
from visor.backend.acp_host import AcpHost, UpdateTrackingQueue
from visor.backend.agents import AgentConfig
from visor.channels import Channel
from visor.errors import BackendError
from visor.events import TurnEnded
from visor.log_utils import log_context, log_event
from visor.models import Mode, ModeSummary, SessionInfo

logger = logging.getLogger(__name__)

SHUTDOWN_TIMEOUT = 2.0


def _mode_summary(modes: Any) -> ModeSummary | None:
    if modes is None or not getattr(modes, "current_mode_id", None):
        return None
    return ModeSummary(
        current_mode_id=modes.current_mode_id,
        available_modes=tuple(
            Mode(id=mode.id, name=mode.name, description=getattr(mode, "description", None))
            for mode in modes.available_modes or []
        ),
    )


async def _drain_stderr(stream: asyncio.StreamReader, agent_id: str) -> None:
    while True:
        line = await stream.readline()
        if not line:
            return
        log_event(
            logger,
            "agent.stderr",
            level=logging.DEBUG,
            agent_id=agent_id,
            line=line.decode("utf-8", errors="replace").rstrip(),
        )


class AgentSession:
    def __init__(
        self,
        agent: AgentConfig,
        proc: asyncio.subprocess.Process,
        conn: Any,
        host: AcpHost,
        session_id: str,
        stderr_task: asyncio.Task[None] | None = None,
    ) -> None:
        self.agent = agent
        self.session_id = session_id
        self._proc = proc
        self._conn = conn
        self._host = host
        self._stderr_task = stderr_task

    @property
    def host(self) -> AcpHost:
        return self._host

    @classmethod
    async def launch(
        cls,
        agent: AgentConfig,
        root_dir: Path,
        updates: Channel[Any],
        *,
        stdio_buffer_limit: int,
    ) -> tuple["AgentSession", SessionInfo]:
        """Spawn the agent in ``root_dir`` and open a session on it."""
        env = os.environ.copy()
        env.update(agent.env)
        try:
            proc = await asyncio.create_subprocess_exec(
                agent.command,
                *agent.args,
                cwd=str(root_dir),
                env=env,
                stdin=aio_subprocess.PIPE,
                stdout=aio_subprocess.PIPE,
                stderr=aio_subprocess.PIPE,
                limit=stdio_buffer_limit,
            )
        except OSError as exc:
            raise BackendError(f"failed to spawn agent {agent.id}: {exc}") from exc

        if proc.stdin is None or proc.stdout is None:
            await _terminate(proc)
            raise BackendError("Agent process does not expose stdio pipes")

        stderr_task = asyncio.create_task(_drain_stderr(proc.stderr, agent.id)) if proc.stderr else None
        host = AcpHost(root_dir, updates)
        conn = connect_to_agent(host, proc.stdin, proc.stdout, queue=UpdateTrackingQueue(host))

        with log_context(agent_id=agent.id):
            try:
                init_resp = await conn.initialize(
                    protocol_version=PROTOCOL_VERSION,
                    client_capabilities=ClientCapabilities(
                        fs=FileSystemCapability(read_text_file=True, write_text_file=True),
                        terminal=True,
                    ),
                    client_info=Implementation(name="visor", title="Visor", version=__version__),
                )
                log_event(logger, "agent.initialized", protocol_version=init_resp.protocol_version)
                session = await conn.new_session(cwd=str(root_dir), mcp_servers=agent.acp_mcp_servers())
            except Exception as exc:
                await host.close()
                with contextlib.suppress(Exception):
                    await conn.close()
                await _terminate(proc)
                if stderr_task is not None:
                    stderr_task.cancel()
                raise BackendError(f"ACP handshake failed: {exc}") from exc

        info = SessionInfo(
            agent_id=agent.id,
            session_id=session.session_id,
            modes=_mode_summary(getattr(session, "modes", None)),
        )
        log_event(logger, "agent.session.started", agent_id=agent.id, session_id=session.session_id, pid=proc.pid)
        return cls(agent, proc, conn, host, session.session_id, stderr_task), info

    async def prompt(self, text: str, updates: Channel[Any]) -> None:
        try:
            response = await self._conn.prompt(prompt=[text_block(text)], session_id=self.session_id)
        except Exception as exc:
            raise BackendError(f"prompt failed: {exc}") from exc
        # Updates sent before the response may still be queued behind it.
        await self._host.drain()
        stop_reason = getattr(response, "stop_reason", None)
        log_event(logger, "agent.turn.ended", session_id=self.session_id, stop_reason=stop_reason)
        updates.publish(TurnEnded(session_id=self.session_id, stop_reason=stop_reason))

    async def set_mode(self, mode_id: str) -> None:
        try:
            await self._conn.set_session_mode(mode_id=mode_id, session_id=self.session_id)
        except Exception as exc:
            raise BackendError(f"set_mode failed: {exc}") from exc

    def resolve_permission(self, request_id: str, option_id: str | None) -> None:
        self._host.resolve_permission(request_id, option_id)

    async def shutdown(self) -> None:
        cancelled = self._host.cancel_pending()
        # Give cancelled permission handlers a turn to answer before the pipe closes.
        await asyncio.sleep(0)
        await self._host.close()
        with contextlib.suppress(Exception):
            await self._conn.close()
        await _terminate(self._proc)
        if self._stderr_task is not None:
            self._stderr_task.cancel()
        log_event(
            logger,
            "agent.session.stopped",
            session_id=self.session_id,
            returncode=self._proc.returncode,
            cancelled_permissions=cancelled,
        )


async def _terminate(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is not None:
        return
    with contextlib.suppress(ProcessLookupError):
        proc.terminate()
    try:
        await asyncio.wait_for(proc.wait(), timeout=SHUTDOWN_TIMEOUT)
    except asyncio.TimeoutError:
        with contextlib.suppress(ProcessLookupError):
            proc.kill()
        with contextlib.suppress(ProcessLookupError):
            await proc.wait()
