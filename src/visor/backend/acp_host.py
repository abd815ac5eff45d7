"""Client side of the ACP connection: what the agent can ask of us.

Session updates are reduced to ``visor.events`` and published on the backend's
``updates`` channel. Permission requests park on a future until the UI answers
through ``resolve_permission``.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from pathlib import Path
from typing import Any

from acp import (
    Client,
    CreateTerminalResponse,
    KillTerminalCommandResponse,
    ReadTextFileResponse,
    ReleaseTerminalResponse,
    RequestPermissionResponse,
    SessionNotification,
    TerminalOutputResponse,
    WaitForTerminalExitResponse,
    WriteTextFileResponse,
)
from acp.meta import CLIENT_METHODS
from acp.schema import (
    AgentMessageChunk,
    AgentPlanUpdate,
    AllowedOutcome,
    CurrentModeUpdate,
    DeniedOutcome,
    ResourceContentBlock,
    TextContentBlock,
    ToolCallProgress,
    ToolCallStart,
)
from acp.task import InMemoryMessageQueue, RpcTask, RpcTaskKind

from visor.backend import fs
from visor.backend.agent_terminals import AgentTerminalManager
from visor.channels import Channel
from visor.errors import BackendError
from visor.events import (
    ChatMessage,
    ModeChanged,
    PermissionOptionModel,
    PermissionRequested,
    StatusUpdate,
)
from visor.log_utils import log_chunks_enabled, log_event

logger = logging.getLogger(__name__)

DEFAULT_PERMISSION_MESSAGE = "Permission requested"
DRAIN_TIMEOUT = 5.0

_CANCELLED = object()


class _PendingPermission:
    def __init__(self, session_id: str, option_ids: set[str]) -> None:
        self.session_id = session_id
        self.option_ids = option_ids
        self.future: asyncio.Future[object] = asyncio.get_running_loop().create_future()


def describe_update(update: Any, session_id: str) -> Any | None:
    """Map one ACP session update to a visor event, or None if it is not shown."""
    if isinstance(update, AgentMessageChunk):
        content = update.content
        if isinstance(content, TextContentBlock):
            return ChatMessage(session_id=session_id, content=content.text)
        if isinstance(content, ResourceContentBlock):
            return ChatMessage(session_id=session_id, content=content.uri)
        return None
    if isinstance(update, ToolCallStart):
        status = update.status or "pending"
        return StatusUpdate(session_id=session_id, content=f"{update.title} ({status})")
    if isinstance(update, ToolCallProgress):
        status = update.status or "in_progress"
        return StatusUpdate(session_id=session_id, content=f"Tool update: {status}")
    if isinstance(update, AgentPlanUpdate):
        return StatusUpdate(session_id=session_id, content=f"Plan received: {len(update.entries or [])} steps")
    if isinstance(update, CurrentModeUpdate):
        return ModeChanged(session_id=session_id, mode_id=update.current_mode_id)
    return None


class AcpHost(Client):
    def __init__(self, root_dir: Path, updates: Channel[Any]) -> None:
        self._root_dir = root_dir
        self._updates = updates
        self._terminals = AgentTerminalManager(root_dir)
        self._pending: dict[str, _PendingPermission] = {}
        self._updates_in_flight = 0
        self._updates_idle = asyncio.Event()
        self._updates_idle.set()

    @property
    def root_dir(self) -> Path:
        return self._root_dir

    @property
    def pending_permissions(self) -> list[str]:
        return list(self._pending)

    def expect_update(self) -> None:
        """Count a ``session/update`` that has arrived but not been handled yet."""
        self._updates_in_flight += 1
        self._updates_idle.clear()

    def _update_handled(self) -> None:
        if self._updates_in_flight > 0:
            self._updates_in_flight -= 1
        if self._updates_in_flight == 0:
            self._updates_idle.set()

    async def drain(self, timeout: float = DRAIN_TIMEOUT) -> bool:
        """Wait until every update received so far is on the ``updates`` channel.

        An update the connection fails to route never reaches ``session_update``;
        after ``timeout`` the count is reset and ``False`` returned.
        """
        try:
            await asyncio.wait_for(self._updates_idle.wait(), timeout)
        except asyncio.TimeoutError:
            log_event(logger, "acp.update.drain_timeout", level=logging.WARNING, pending=self._updates_in_flight)
            self._updates_in_flight = 0
            self._updates_idle.set()
            return False
        return True

    async def session_update(self, session_id: str, update: SessionNotification | Any, **_: Any) -> None:
        try:
            if isinstance(update, SessionNotification):
                update = update.update
            event = describe_update(update, session_id)
            if event is None:
                log_event(logger, "acp.update.skipped", level=logging.DEBUG, kind=type(update).__name__)
                return
            if log_chunks_enabled() or not isinstance(event, ChatMessage):
                log_event(logger, "acp.update", level=logging.DEBUG, type=event.type, session_id=session_id)
            self._updates.publish(event)
        finally:
            self._update_handled()

    async def request_permission(
        self,
        options,
        session_id: str,
        tool_call: Any,
        **_: Any,
    ) -> RequestPermissionResponse:
        request_id = uuid.uuid4().hex
        message = getattr(tool_call, "title", None) or DEFAULT_PERMISSION_MESSAGE
        pending = _PendingPermission(session_id, {opt.option_id for opt in options})
        self._pending[request_id] = pending
        log_event(
            logger,
            "acp.permission.request",
            request_id=request_id,
            session_id=session_id,
            options=[opt.option_id for opt in options],
        )
        self._updates.publish(
            PermissionRequested(
                session_id=session_id,
                request_id=request_id,
                message=message,
                options=[PermissionOptionModel(option_id=opt.option_id, label=opt.name) for opt in options],
            )
        )
        try:
            decision = await pending.future
        finally:
            self._pending.pop(request_id, None)

        if isinstance(decision, str):
            log_event(logger, "acp.permission.selected", request_id=request_id, option_id=decision)
            return RequestPermissionResponse(outcome=AllowedOutcome(option_id=decision, outcome="selected"))
        log_event(logger, "acp.permission.cancelled", request_id=request_id)
        return RequestPermissionResponse(outcome=DeniedOutcome(outcome="cancelled"))

    def resolve_permission(self, request_id: str, option_id: str | None) -> None:
        """Answer a parked request; ``None`` cancels it."""
        pending = self._pending.get(request_id)
        if pending is None or pending.future.done():
            raise BackendError(f"unknown permission request: {request_id}")
        if option_id is not None and option_id not in pending.option_ids:
            raise BackendError(f"unknown option {option_id} for permission request {request_id}")
        pending.future.set_result(option_id if option_id is not None else _CANCELLED)

    def cancel_pending(self) -> int:
        count = 0
        for pending in list(self._pending.values()):
            if not pending.future.done():
                pending.future.set_result(_CANCELLED)
                count += 1
        return count

    async def read_text_file(
        self,
        path: str,
        session_id: str,
        limit: int | None = None,
        line: int | None = None,
        **_: Any,
    ) -> ReadTextFileResponse:
        content = await asyncio.to_thread(fs.read_text, self._root_dir, path, line, limit)
        log_event(logger, "acp.fs.read", level=logging.DEBUG, path=path, size=len(content))
        return ReadTextFileResponse(content=content)

    async def write_text_file(self, content: str, path: str, session_id: str, **_: Any) -> WriteTextFileResponse:
        await asyncio.to_thread(fs.write_text, self._root_dir, path, content)
        log_event(logger, "acp.fs.write", path=path, size=len(content))
        return WriteTextFileResponse()

    async def create_terminal(
        self,
        command: str,
        session_id: str,
        args=None,
        cwd=None,
        env=None,
        output_byte_limit=None,
        **_: Any,
    ) -> CreateTerminalResponse:
        response = await self._terminals.create_terminal(
            command, args=args, cwd=cwd, env=env, output_byte_limit=output_byte_limit
        )
        log_event(logger, "acp.terminal.created", terminal_id=response.terminal_id, command=command)
        return response

    async def terminal_output(self, session_id: str, terminal_id: str, **_: Any) -> TerminalOutputResponse:
        return await self._terminals.terminal_output(terminal_id)

    async def release_terminal(self, session_id: str, terminal_id: str, **_: Any) -> ReleaseTerminalResponse:
        return await self._terminals.release_terminal(terminal_id)

    async def wait_for_terminal_exit(
        self, session_id: str, terminal_id: str, **_: Any
    ) -> WaitForTerminalExitResponse:
        return await self._terminals.wait_for_terminal_exit(terminal_id)

    async def kill_terminal_command(
        self, session_id: str, terminal_id: str, **_: Any
    ) -> KillTerminalCommandResponse:
        return await self._terminals.kill_terminal(terminal_id)

    async def kill_terminal(self, *args: Any, **kwargs: Any) -> KillTerminalCommandResponse:
        return await self.kill_terminal_command(*args, **kwargs)

    async def ext_method(self, method: str, params: dict[str, Any]) -> dict[str, Any]:
        log_event(logger, "acp.ext.method", level=logging.DEBUG, method=method)
        return {}

    async def ext_notification(self, method: str, params: dict[str, Any]) -> None:
        log_event(logger, "acp.ext.notification", level=logging.DEBUG, method=method)

    def on_connect(self, *_: Any, **__: Any) -> None:
        return None

    async def close(self) -> None:
        self.cancel_pending()
        await self._terminals.close()


class UpdateTrackingQueue(InMemoryMessageQueue):
    """Inbound RPC queue that registers each ``session/update`` with the host on arrival.

    The connection resolves responses inline but dispatches notifications as
    separate tasks, so a prompt response can overtake the turn's last updates.
    """

    def __init__(self, host: AcpHost) -> None:
        super().__init__()
        self._host = host

    async def publish(self, task: RpcTask) -> None:
        if task.kind is RpcTaskKind.NOTIFICATION and task.message.get("method") == CLIENT_METHODS["session_update"]:
            self._host.expect_update()
        await super().publish(task)
