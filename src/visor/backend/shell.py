"""Interactive shell on a host pseudo-terminal.

Output is read from the PTY master with ``loop.add_reader`` and published
as raw chunks on the ``term_data`` channel.
"""

from __future__ import annotations

import asyncio
import contextlib
import fcntl
import logging
import os
import struct
import termios

from visor.channels import Channel
from visor.errors import TransportError
from visor.log_utils import log_chunks_enabled, log_event
from visor.models import TerminalHandle

logger = logging.getLogger(__name__)

DEFAULT_COLS = 80
DEFAULT_ROWS = 24
READ_CHUNK_BYTES = 4096


def set_window_size(fd: int, cols: int, rows: int) -> None:
    fcntl.ioctl(fd, termios.TIOCSWINSZ, struct.pack("HHHH", max(1, rows), max(1, cols), 0, 0))


class ShellTerminal:
    def __init__(self, term_data: Channel[bytes], shell: str) -> None:
        self._term_data = term_data
        self._shell = shell
        self._proc: asyncio.subprocess.Process | None = None
        self._master_fd: int | None = None
        self._lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._proc is not None and self._proc.returncode is None and self._master_fd is not None

    async def spawn(self) -> TerminalHandle:
        """Start the shell once; later calls return the running shell's handle."""
        async with self._lock:
            if self._proc is not None and self._master_fd is not None:
                return TerminalHandle(pid=self._proc.pid)

            master_fd, slave_fd = os.openpty()
            try:
                set_window_size(slave_fd, DEFAULT_COLS, DEFAULT_ROWS)
                env = os.environ.copy()
                env["TERM"] = "xterm-256color"
                proc = await asyncio.create_subprocess_exec(
                    self._shell,
                    stdin=slave_fd,
                    stdout=slave_fd,
                    stderr=slave_fd,
                    env=env,
                    start_new_session=True,
                )
            except Exception:
                os.close(master_fd)
                os.close(slave_fd)
                raise
            os.close(slave_fd)
            os.set_blocking(master_fd, False)

            self._proc = proc
            self._master_fd = master_fd
            asyncio.get_running_loop().add_reader(master_fd, self._on_readable)
            log_event(logger, "shell.spawned", pid=proc.pid, shell=self._shell)
            return TerminalHandle(pid=proc.pid)

    def _on_readable(self) -> None:
        fd = self._master_fd
        if fd is None:
            return
        try:
            chunk = os.read(fd, READ_CHUNK_BYTES)
        except BlockingIOError:
            return
        except OSError as exc:
            # Linux reports EIO on the master once the shell side is gone.
            log_event(logger, "shell.read.closed", level=logging.DEBUG, error=str(exc))
            chunk = b""
        if not chunk:
            self._detach_reader()
            return
        if log_chunks_enabled():
            log_event(logger, "shell.chunk", level=logging.DEBUG, size=len(chunk))
        self._term_data.publish(chunk)

    def _detach_reader(self) -> None:
        if self._master_fd is None:
            return
        with contextlib.suppress(Exception):
            asyncio.get_running_loop().remove_reader(self._master_fd)
        with contextlib.suppress(OSError):
            os.close(self._master_fd)
        self._master_fd = None
        log_event(logger, "shell.exited", pid=self._proc.pid if self._proc else None)

    async def write(self, data: bytes) -> None:
        fd = self._master_fd
        if fd is None:
            raise TransportError("terminal not spawned")
        view = memoryview(data)
        while view:
            try:
                written = os.write(fd, view)
            except BlockingIOError:
                await asyncio.sleep(0.01)
                continue
            except OSError as exc:
                raise TransportError(f"write failed: {exc}") from exc
            view = view[written:]

    async def resize(self, cols: int, rows: int) -> None:
        fd = self._master_fd
        if fd is None:
            raise TransportError("terminal not spawned")
        try:
            set_window_size(fd, cols, rows)
        except OSError as exc:
            raise TransportError(f"resize failed: {exc}") from exc

    async def close(self) -> None:
        self._detach_reader()
        proc = self._proc
        self._proc = None
        if proc is None or proc.returncode is not None:
            return
        with contextlib.suppress(ProcessLookupError):
            proc.terminate()
        try:
            await asyncio.wait_for(proc.wait(), timeout=2.0)
        except asyncio.TimeoutError:
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            with contextlib.suppress(ProcessLookupError):
                await proc.wait()
