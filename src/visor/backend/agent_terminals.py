"""Terminals the agent asks the client to run (ACP ``terminal/*`` methods).

See: https://agentclientprotocol.com/protocol/terminals
"""

from __future__ import annotations

import asyncio
import codecs
import contextlib
import itertools
import os
import signal
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from acp import (
    CreateTerminalResponse,
    KillTerminalCommandResponse,
    ReleaseTerminalResponse,
    RequestError,
    TerminalOutputResponse,
    WaitForTerminalExitResponse,
)
from acp.schema import TerminalExitStatus

from visor.backend.fs import resolve_in_root


@dataclass
class TerminalState:
    proc: asyncio.subprocess.Process
    output_limit: int | None = None
    output: str = ""
    truncated: bool = False
    readers: list[asyncio.Task[None]] = field(default_factory=list)

    def append(self, chunk: str) -> None:
        self.output += chunk
        if self.output_limit is None:
            return
        encoded = self.output.encode("utf-8")
        if len(encoded) > self.output_limit:
            self.truncated = True
            # Keep the tail; drop a split leading character if the cut lands mid-codepoint.
            self.output = encoded[len(encoded) - self.output_limit :].decode("utf-8", errors="ignore")


def build_exit_status(returncode: int | None) -> TerminalExitStatus | None:
    if returncode is None:
        return None
    if returncode < 0:
        sig = abs(returncode)
        try:
            sig_name = signal.Signals(sig).name
        except ValueError:
            sig_name = f"SIG{sig}"
        return TerminalExitStatus(exit_code=None, signal=sig_name)
    return TerminalExitStatus(exit_code=returncode, signal=None)


async def _pump(stream: asyncio.StreamReader | None, state: TerminalState) -> None:
    if stream is None:
        return
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    while True:
        data = await stream.read(1024)
        if not data:
            tail = decoder.decode(b"", final=True)
            if tail:
                state.append(tail)
            return
        text = decoder.decode(data)
        if text:
            state.append(text)


class AgentTerminalManager:
    """Agent-requested subprocesses, confined to the session root."""

    def __init__(self, root_dir: Path) -> None:
        self._root_dir = root_dir
        self._terminals: dict[str, TerminalState] = {}
        self._ids = itertools.count(1)

    def _get(self, terminal_id: str) -> TerminalState:
        state = self._terminals.get(terminal_id)
        if state is None:
            raise RequestError.invalid_params({"terminal_id": terminal_id, "reason": "terminal not found"})
        return state

    async def create_terminal(
        self,
        command: str,
        args: list[str] | None = None,
        cwd: str | None = None,
        env: list[Any] | None = None,
        output_byte_limit: int | None = None,
    ) -> CreateTerminalResponse:
        workdir = resolve_in_root(self._root_dir, cwd, allow_missing=False) if cwd else self._root_dir
        proc_env = os.environ.copy()
        for var in env or []:
            proc_env[var.name] = var.value
        try:
            proc = await asyncio.create_subprocess_exec(
                command,
                *(args or []),
                cwd=str(workdir),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=proc_env,
            )
        except OSError as exc:
            raise RequestError.internal_error({"reason": f"failed to spawn terminal: {exc}"}) from exc

        terminal_id = f"term-{next(self._ids)}"
        state = TerminalState(proc=proc, output_limit=output_byte_limit)
        state.readers = [
            asyncio.create_task(_pump(proc.stdout, state)),
            asyncio.create_task(_pump(proc.stderr, state)),
        ]
        self._terminals[terminal_id] = state
        return CreateTerminalResponse(terminal_id=terminal_id)

    async def terminal_output(self, terminal_id: str) -> TerminalOutputResponse:
        state = self._get(terminal_id)
        return TerminalOutputResponse(
            output=state.output,
            truncated=state.truncated,
            exit_status=build_exit_status(state.proc.returncode),
        )

    async def wait_for_terminal_exit(self, terminal_id: str) -> WaitForTerminalExitResponse:
        state = self._get(terminal_id)
        returncode = await state.proc.wait()
        # Let the readers drain what the process wrote before exiting.
        await asyncio.gather(*state.readers, return_exceptions=True)
        exit_status = build_exit_status(returncode)
        return WaitForTerminalExitResponse(
            exit_code=exit_status.exit_code if exit_status else None,
            signal=exit_status.signal if exit_status else None,
        )

    async def kill_terminal(self, terminal_id: str) -> KillTerminalCommandResponse:
        state = self._get(terminal_id)
        if state.proc.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                state.proc.kill()
        return KillTerminalCommandResponse()

    async def release_terminal(self, terminal_id: str) -> ReleaseTerminalResponse:
        state = self._terminals.pop(terminal_id, None)
        if state is not None:
            await self._terminate(state)
        return ReleaseTerminalResponse()

    async def close(self) -> None:
        terminals = list(self._terminals.values())
        self._terminals.clear()
        for state in terminals:
            await self._terminate(state)

    @staticmethod
    async def _terminate(state: TerminalState) -> None:
        if state.proc.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                state.proc.kill()
            with contextlib.suppress(ProcessLookupError):
                await state.proc.wait()
        for reader in state.readers:
            reader.cancel()
