"""Composition root: wires the core components to one backend."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from visor.backend.base import Backend
from visor.channels import Subscription
from visor.clipboard import Clipboard
from visor.config import CoreSettings
from visor.log_utils import log_event
from visor.models import AgentSummary, CopilotSnapshot, SessionStatus
from visor.observable import ChangeNotifier
from visor.permissions import PermissionQueue
from visor.pty_link import PTYLink
from visor.router import EventRouter
from visor.session import SessionManager
from visor.transcript import ChatTranscript

logger = logging.getLogger(__name__)


class Copilot:
    """What a presentation layer talks to.

    Commands report failures into the transcript instead of raising. The UI
    reads ``snapshot()`` after each change notification and should run commands
    through ``submit`` so a slow acknowledgement never blocks the next action.
    """

    def __init__(
        self,
        backend: Backend,
        settings: CoreSettings | None = None,
        *,
        clipboard: Clipboard | None = None,
    ) -> None:
        self.settings = settings or CoreSettings()
        self.backend = backend
        self.notifier = ChangeNotifier()
        self.transcript = ChatTranscript()
        self.permissions = PermissionQueue(backend, self.transcript, self.notifier)
        self.sessions = SessionManager(
            backend,
            self.transcript,
            self.permissions,
            mode_update=self.settings.mode_update,
            notifier=self.notifier,
        )
        self.router = EventRouter(
            self.transcript,
            self.permissions,
            self.sessions,
            drop_stale_events=self.settings.drop_stale_events,
            notifier=self.notifier,
        )
        self.terminal = PTYLink(backend, clipboard)
        self._root_dir: str | None = None
        self._files: tuple[str, ...] = ()
        self._subscriptions: list[Subscription[Any]] = []
        self._consumers: list[asyncio.Task[None]] = []
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def attached(self) -> bool:
        return bool(self._subscriptions)

    @property
    def root_dir(self) -> str | None:
        return self._root_dir

    def attach(self) -> None:
        if self._subscriptions:
            return
        updates = self.backend.updates.subscribe()
        folders = self.backend.open_folder.subscribe()
        self._subscriptions = [updates, folders]
        self._consumers = [
            asyncio.create_task(self.router.run(updates)),
            asyncio.create_task(self._follow_open_folder(folders)),
        ]
        log_event(logger, "copilot.attached")

    async def detach(self) -> None:
        subscriptions, self._subscriptions = self._subscriptions, []
        consumers, self._consumers = self._consumers, []
        if not subscriptions:
            return
        for subscription in subscriptions:
            subscription.close()
        await asyncio.gather(*consumers, return_exceptions=True)
        log_event(logger, "copilot.detached")

    async def _follow_open_folder(self, source: Subscription[str]) -> None:
        async for path in source:
            await self.open_folder(path)

    def subscribe(self, listener: Callable[[], None]) -> Callable[[], None]:
        return self.notifier.subscribe(listener)

    def snapshot(self) -> CopilotSnapshot:
        return CopilotSnapshot(
            session=self.sessions.snapshot(),
            entries=self.transcript.snapshot(),
            permissions=self.permissions.snapshot(),
            root_dir=self._root_dir,
            files=self._files,
        )

    def submit(self, command: Awaitable[Any]) -> asyncio.Task[Any]:
        """Run a command in the background, keeping a reference until it is done."""
        task = asyncio.ensure_future(command)
        self._tasks.add(task)
        task.add_done_callback(self._finish)
        return task

    def _finish(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log_event(logger, "copilot.command.failed", level=logging.ERROR, error=repr(exc))

    async def open_folder(self, path: str) -> bool:
        path = (path or "").strip()
        if not path:
            self.transcript.append_status("Choose a folder to open.")
            self.notifier.notify_changed()
            return False
        try:
            listing = await self.backend.list_files(path)
        except Exception as exc:  # noqa: BLE001
            log_event(logger, "copilot.open_folder.failed", level=logging.WARNING, path=path, error=str(exc))
            self.transcript.append_status(f"Failed to open {path}: {exc}")
            self.notifier.notify_changed()
            return False
        self._root_dir = path
        self._files = tuple(listing)
        log_event(logger, "copilot.open_folder", path=path, files=len(listing))
        self.notifier.notify_changed()
        return True

    async def list_agents(self) -> list[AgentSummary]:
        return await self._load_agents(self.backend.acp_list_agents)

    async def reload_agents(self) -> list[AgentSummary]:
        return await self._load_agents(self.backend.acp_reload_config)

    async def _load_agents(self, load: Callable[[], Awaitable[list[AgentSummary]]]) -> list[AgentSummary]:
        try:
            return list(await load())
        except Exception as exc:  # noqa: BLE001
            log_event(logger, "copilot.agents.failed", level=logging.WARNING, error=str(exc))
            self.transcript.append_status(f"Failed to load agents: {exc}")
            self.notifier.notify_changed()
            return []

    async def start(self, agent_id: str, root_dir: str | None = None) -> bool:
        return await self.sessions.start(agent_id, root_dir or self._root_dir or "")

    async def stop(self) -> None:
        await self.sessions.stop()

    async def set_mode(self, mode_id: str) -> bool:
        return await self.sessions.set_mode(mode_id)

    async def send_prompt(self, text: str) -> bool:
        return await self.sessions.send_prompt(text)

    async def resolve_permission(self, request_id: str, option_id: str | None) -> bool:
        return await self.permissions.resolve(request_id, option_id)

    async def close(self) -> None:
        if self.sessions.status is not SessionStatus.IDLE:
            await self.sessions.stop()
        await self.detach()
        pending = list(self._tasks)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        await self.backend.close()
        log_event(logger, "copilot.closed")
