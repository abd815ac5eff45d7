"""Interactive REPL over a ``Copilot``."""

from __future__ import annotations

import asyncio
import contextlib
import sys

from prompt_toolkit import PromptSession  # type: ignore
from prompt_toolkit.patch_stdout import patch_stdout  # type: ignore

from visor.channels import Subscription
from visor.copilot import Copilot
from visor.display import SnapshotPrinter, print_terminal_output, prompt_label
from visor.slash import QUIT, handle_slash_command


async def _echo_terminal(source: Subscription[bytes]) -> None:
    async for chunk in source:
        print_terminal_output(chunk)


async def interactive_loop(copilot: Copilot) -> None:
    """Plain lines go to the agent as prompts; ``/`` lines are local commands."""
    printer = SnapshotPrinter()
    unsubscribe = copilot.subscribe(lambda: printer.render(copilot.snapshot()))
    printer.render(copilot.snapshot())
    terminal_output = copilot.terminal.output()
    echo = asyncio.create_task(_echo_terminal(terminal_output))
    session: PromptSession = PromptSession()

    try:
        with patch_stdout():
            while True:
                try:
                    line = await session.prompt_async(lambda: prompt_label(copilot.snapshot().session))
                except EOFError:
                    break
                except KeyboardInterrupt:
                    print("", file=sys.stderr)
                    continue

                line = line.strip()
                if not line:
                    continue
                if line.startswith("/"):
                    if await handle_slash_command(line, copilot) == QUIT:
                        break
                    continue
                copilot.submit(copilot.send_prompt(line))
    finally:
        unsubscribe()
        terminal_output.close()
        echo.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await echo
