"""REPL slash command registry and dispatch."""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from visor.copilot import Copilot
from visor.display import print_agents, print_session, print_status

logger = logging.getLogger(__name__)

QUIT = "__quit__"

SlashHandler = Callable[[Copilot, str], Awaitable[bool | str] | bool | str]


@dataclass
class SlashCommandDef:
    description: str
    hint: str
    handler: SlashHandler


SLASH_HANDLERS: dict[str, SlashCommandDef] = {}


def register_slash_command(name: str, description: str, hint: str) -> Callable[[SlashHandler], SlashHandler]:
    """Decorator to register a slash command."""

    def _decorator(func: SlashHandler) -> SlashHandler:
        SLASH_HANDLERS[name] = SlashCommandDef(description=description, hint=hint, handler=func)
        return func

    return _decorator


async def handle_slash_command(line: str, copilot: Copilot) -> bool | str:
    """Run a ``/command``; returns ``QUIT`` to leave the REPL.

    Unknown commands print a hint and count as handled.
    """
    name, _, argument = line.strip().partition(" ")
    entry = SLASH_HANDLERS.get(name)
    if entry is None:
        print_status(f"Unknown command {name}; try /help")
        return True
    result = entry.handler(copilot, argument.strip())
    if inspect.isawaitable(result):
        result = await result
    return result


@register_slash_command("/help", description="Show available slash commands.", hint="/help")
def _handle_help(_copilot: Copilot, _argument: str) -> bool:
    for entry in SLASH_HANDLERS.values():
        print_status(f"{entry.hint:<28} {entry.description}")
    return True


@register_slash_command("/agents", description="List configured agents.", hint="/agents")
async def _handle_agents(copilot: Copilot, _argument: str) -> bool:
    agents = await copilot.list_agents()
    if agents:
        print_agents(agents)
    return True


@register_slash_command("/reload", description="Reload the agent configuration.", hint="/reload")
async def _handle_reload(copilot: Copilot, _argument: str) -> bool:
    agents = await copilot.reload_agents()
    if agents:
        print_agents(agents)
    return True


@register_slash_command("/open", description="Open a project folder.", hint="/open <dir>")
async def _handle_open(copilot: Copilot, argument: str) -> bool:
    if await copilot.open_folder(argument):
        print_status(f"Opened {copilot.root_dir} ({len(copilot.snapshot().files)} files)")
    return True


@register_slash_command("/files", description="List files in the open folder.", hint="/files")
def _handle_files(copilot: Copilot, _argument: str) -> bool:
    snapshot = copilot.snapshot()
    if snapshot.root_dir is None:
        print_status("No folder is open.")
        return True
    for path in snapshot.files:
        print_status(path)
    return True


@register_slash_command("/start", description="Start an agent session.", hint="/start <agent> [dir]")
def _handle_start(copilot: Copilot, argument: str) -> bool:
    agent_id, _, root_dir = argument.partition(" ")
    copilot.submit(copilot.start(agent_id, root_dir.strip() or None))
    return True


@register_slash_command("/stop", description="Stop the agent session.", hint="/stop")
def _handle_stop(copilot: Copilot, _argument: str) -> bool:
    copilot.submit(copilot.stop())
    return True


@register_slash_command("/status", description="Show the session status.", hint="/status")
def _handle_status(copilot: Copilot, _argument: str) -> bool:
    print_session(copilot.snapshot().session)
    return True


@register_slash_command("/mode", description="Switch the agent mode.", hint="/mode <id>")
def _handle_mode(copilot: Copilot, argument: str) -> bool:
    if not argument:
        print_session(copilot.snapshot().session)
        return True
    copilot.submit(copilot.set_mode(argument))
    return True


@register_slash_command("/allow", description="Grant a permission request.", hint="/allow <request> <option>")
def _handle_allow(copilot: Copilot, argument: str) -> bool:
    request_id, _, option_id = argument.partition(" ")
    option_id = option_id.strip()
    if not request_id or not option_id:
        print_status("Usage: /allow <request> <option>")
        return True
    copilot.submit(copilot.resolve_permission(request_id, option_id))
    return True


@register_slash_command("/deny", description="Deny a permission request.", hint="/deny <request>")
def _handle_deny(copilot: Copilot, argument: str) -> bool:
    if not argument:
        print_status("Usage: /deny <request>")
        return True
    copilot.submit(copilot.resolve_permission(argument, None))
    return True


@register_slash_command("/sh", description="Run a line in the shell terminal.", hint="/sh <command>")
async def _handle_shell(copilot: Copilot, argument: str) -> bool:
    try:
        await copilot.terminal.spawn()
    except Exception as exc:  # noqa: BLE001
        print_status(f"Shell unavailable: {exc}")
        return True
    await copilot.terminal.write(argument + "\n")
    return True


@register_slash_command("/paste", description="Paste the clipboard into the shell.", hint="/paste")
async def _handle_paste(copilot: Copilot, _argument: str) -> bool:
    if not await copilot.terminal.paste():
        print_status("Nothing pasted.")
    return True


@register_slash_command("/quit", description="Stop the session and exit.", hint="/quit")
def _handle_quit(_copilot: Copilot, _argument: str) -> str:
    return QUIT
