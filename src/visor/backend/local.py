"""In-process backend: host PTY shell, agent registry, one ACP session."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

from visor.backend import files
from visor.backend.acp_session import AgentSession
from visor.backend.agents import AgentsConfig, load_agents_config
from visor.backend.shell import ShellTerminal
from visor.channels import Channel
from visor.config import CoreSettings
from visor.errors import BackendError
from visor.log_utils import log_event
from visor.models import AgentSummary, SessionInfo, TerminalHandle

logger = logging.getLogger(__name__)


class LocalBackend:
    def __init__(self, settings: CoreSettings | None = None) -> None:
        self.settings = settings or CoreSettings()
        self.term_data: Channel[bytes] = Channel("term_data")
        self.updates: Channel[Any] = Channel("updates")
        self.open_folder: Channel[str] = Channel("open_folder")
        self._shell = ShellTerminal(self.term_data, self.settings.shell)
        self._agents: AgentsConfig | None = None
        self._session: AgentSession | None = None
        # Serializes start/stop/reload; prompts and mode switches do not take it.
        self._lock = asyncio.Lock()

    @property
    def session(self) -> AgentSession | None:
        return self._session

    def request_open_folder(self, path: str) -> None:
        """Host-side trigger, e.g. a menu action or the CLI ``--root`` flag."""
        self.open_folder.publish(path)

    async def spawn_terminal(self) -> TerminalHandle:
        try:
            return await self._shell.spawn()
        except OSError as exc:
            raise BackendError(f"failed to spawn shell {self.settings.shell}: {exc}") from exc

    async def write_to_terminal(self, data: bytes) -> None:
        await self._shell.write(data)

    async def resize_terminal(self, cols: int, rows: int) -> None:
        await self._shell.resize(cols, rows)

    async def list_files(self, path: str) -> list[str]:
        return await asyncio.to_thread(files.list_files, path)

    def _registry(self) -> AgentsConfig:
        if self._agents is None:
            self._agents = load_agents_config(self.settings.agent_config_path)
            log_event(
                logger,
                "agents.loaded",
                path=str(self.settings.agent_config_path),
                count=len(self._agents.agents),
            )
        return self._agents

    async def acp_list_agents(self) -> list[AgentSummary]:
        return self._registry().summaries()

    async def acp_reload_config(self) -> list[AgentSummary]:
        async with self._lock:
            if self._session is not None:
                raise BackendError("Stop the active ACP session before reloading agents.")
            self._agents = None
            return self._registry().summaries()

    async def acp_start_session(self, agent_id: str, root_dir: str) -> SessionInfo:
        async with self._lock:
            if self._session is not None:
                raise BackendError("ACP session already active")
            agent = self._registry().find(agent_id)
            if agent is None:
                raise BackendError(f"unknown agent id: {agent_id}")
            try:
                root = Path(root_dir).expanduser().resolve(strict=True)
            except OSError as exc:
                raise BackendError(f"invalid root dir: {exc}") from exc
            if not root.is_dir():
                raise BackendError(f"invalid root dir: {root} is not a directory")

            session, info = await AgentSession.launch(
                agent,
                root,
                self.updates,
                stdio_buffer_limit=self.settings.stdio_buffer_limit,
            )
            self._session = session
            return info

    async def acp_stop_session(self) -> None:
        async with self._lock:
            session, self._session = self._session, None
            if session is None:
                return
            await session.shutdown()

    def _require_session(self) -> AgentSession:
        if self._session is None:
            raise BackendError("No active ACP session")
        return self._session

    async def acp_send_prompt(self, text: str) -> None:
        await self._require_session().prompt(text, self.updates)

    async def acp_set_mode(self, mode_id: str) -> None:
        await self._require_session().set_mode(mode_id)

    async def acp_resolve_permission(self, request_id: str, option_id: str | None) -> None:
        self._require_session().resolve_permission(request_id, option_id)

    async def close(self) -> None:
        await self.acp_stop_session()
        await self._shell.close()
        for channel in (self.term_data, self.updates, self.open_folder):
            channel.close()
        log_event(logger, "backend.closed")
