"""Bridge between the terminal panel and the backend shell PTY."""

from __future__ import annotations

import asyncio
import logging

from visor.backend.base import Backend
from visor.channels import Subscription
from visor.clipboard import Clipboard, HostClipboard
from visor.log_utils import log_event
from visor.models import TerminalHandle, TerminalSize

logger = logging.getLogger(__name__)

CTRL_C = b"\x03"


class PTYLink:
    """Terminal side of the copilot.

    Writes, resizes and clipboard operations never raise: a shell that went away
    is logged and otherwise ignored. Output is not buffered here; every
    subscriber of ``output()`` sees each chunk once, in arrival order.
    """

    def __init__(self, backend: Backend, clipboard: Clipboard | None = None) -> None:
        self._backend = backend
        self._clipboard = clipboard or HostClipboard()
        self._handle: TerminalHandle | None = None
        self._spawning: asyncio.Task[TerminalHandle] | None = None
        self._applied: TerminalSize | None = None
        self._requested: TerminalSize | None = None

    @property
    def handle(self) -> TerminalHandle | None:
        return self._handle

    @property
    def size(self) -> TerminalSize | None:
        """Last size the backend acknowledged."""
        return self._applied

    async def spawn(self) -> TerminalHandle:
        if self._handle is not None:
            return self._handle
        if self._spawning is None:
            self._spawning = asyncio.ensure_future(self._backend.spawn_terminal())
        try:
            handle = await asyncio.shield(self._spawning)
        except Exception:
            self._spawning = None
            raise
        self._handle = handle
        log_event(logger, "pty.spawned", pid=handle.pid)
        return handle

    def output(self) -> Subscription[bytes]:
        return self._backend.term_data.subscribe()

    async def write(self, data: bytes | str) -> bool:
        payload = data.encode("utf-8") if isinstance(data, str) else bytes(data)
        if not payload:
            return False
        try:
            await self._backend.write_to_terminal(payload)
        except Exception as exc:  # noqa: BLE001
            log_event(logger, "pty.write.failed", level=logging.WARNING, size=len(payload), error=str(exc))
            return False
        return True

    async def resize(self, cols: int, rows: int) -> bool:
        """Forward a panel size; repeats of the last size are dropped.

        Returns True only when a resize call was issued and acknowledged.
        """
        if cols <= 0 or rows <= 0:
            log_event(logger, "pty.resize.ignored", level=logging.DEBUG, cols=cols, rows=rows)
            return False
        size = TerminalSize(cols=cols, rows=rows)
        if size == self._requested:
            return False
        self._requested = size
        try:
            await self._backend.resize_terminal(cols, rows)
        except Exception as exc:  # noqa: BLE001
            log_event(logger, "pty.resize.failed", level=logging.WARNING, cols=cols, rows=rows, error=str(exc))
            if self._requested == size:
                self._requested = self._applied
            return False
        self._applied = size
        log_event(logger, "pty.resized", level=logging.DEBUG, cols=cols, rows=rows)
        return True

    async def paste(self) -> bool:
        try:
            text = await self._clipboard.read_text()
        except Exception as exc:  # noqa: BLE001
            log_event(logger, "pty.paste.failed", level=logging.WARNING, error=str(exc))
            return False
        if not text:
            return False
        return await self.write(text)

    async def copy(self, selection: str | None, passthrough: bytes = CTRL_C) -> bool:
        """Copy the selection, or send the key sequence through when nothing is selected.

        Returns True when text was placed on the clipboard.
        """
        if not selection:
            await self.write(passthrough)
            return False
        try:
            await self._clipboard.write_text(selection)
        except Exception as exc:  # noqa: BLE001
            log_event(logger, "pty.copy.failed", level=logging.WARNING, error=str(exc))
            return False
        return True
