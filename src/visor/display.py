"""Rich rendering of copilot state for the REPL."""

from __future__ import annotations

from io import StringIO
from threading import Lock
from typing import Any, Iterable

from prompt_toolkit.formatted_text import ANSI  # type: ignore
from prompt_toolkit.shortcuts import print_formatted_text  # type: ignore
from rich.console import Console
from rich.table import Table
from rich.text import Text

from visor.models import AgentSummary, ChatEntry, ChatRole, CopilotSnapshot, PermissionRequest, Session

# Rendered into a buffer and handed to prompt_toolkit so output lands above the prompt.
_render_buffer = StringIO()
_render_console = Console(
    file=_render_buffer,
    force_terminal=True,
    color_system="standard",
    markup=False,
    highlight=False,
)
_render_lock = Lock()

_STATUS_STYLES = {
    "idle": "white",
    "starting": "yellow",
    "active": "green",
    "error": "red",
}


def _render_and_print(*args: Any, **kwargs: Any) -> None:
    kwargs.setdefault("end", "\n")
    with _render_lock:
        _render_buffer.seek(0)
        _render_buffer.truncate(0)
        _render_console.print(*args, **kwargs)
        output = _render_buffer.getvalue()
    if output:
        print_formatted_text(ANSI(output), end="")


def print_assistant_text(text: str) -> None:
    _render_and_print(Text.from_ansi(text) if "\x1b" in text else Text(text), end="")


def print_status(text: str) -> None:
    style = "red" if text.startswith("Error: ") else "cyan"
    _render_and_print(Text(f"· {text}", style=style))


def print_terminal_output(chunk: bytes) -> None:
    _render_and_print(Text.from_ansi(chunk.decode("utf-8", errors="replace")), end="")


def print_permission(request: PermissionRequest) -> None:
    table = Table(show_header=False, box=None)
    table.add_column("", style="yellow")
    table.add_column("")
    table.add_row("permission", f"{request.message} [{request.id}]")
    for option in request.options:
        table.add_row("", f"/allow {request.id} {option.option_id}  ({option.label})")
    table.add_row("", f"/deny {request.id}")
    _render_and_print(table)


def print_agents(agents: Iterable[AgentSummary]) -> None:
    table = Table(show_header=True, box=None, header_style="bold")
    table.add_column("id", style="cyan")
    table.add_column("label")
    for agent in agents:
        table.add_row(agent.id, agent.label)
    _render_and_print(table)


def print_session(session: Session) -> None:
    style = _STATUS_STYLES.get(session.status.value, "white")
    parts = [f"[{session.status.value}]"]
    if session.agent_id:
        parts.append(session.agent_id)
    if session.current_mode_id:
        parts.append(f"mode={session.current_mode_id}")
    if session.available_modes:
        parts.append("modes=" + ",".join(mode.id for mode in session.available_modes))
    _render_and_print(Text(" ".join(parts), style=style))


def prompt_label(session: Session) -> str:
    if session.current_mode_id:
        return f"{session.status.value}|{session.current_mode_id}> "
    return f"{session.status.value}> "


class SnapshotPrinter:
    """Prints what changed between successive snapshots.

    Assistant entries are printed incrementally while they stream; every other
    entry and each new permission request is printed once.
    """

    def __init__(self) -> None:
        self._printed: dict[str, int] = {}
        self._open_stream: str | None = None
        self._seen_permissions: set[str] = set()
        self._last_session: Session | None = None

    def render(self, snapshot: CopilotSnapshot) -> None:
        for entry in snapshot.entries:
            self._render_entry(entry)
        for request in snapshot.permissions:
            if request.id not in self._seen_permissions:
                self._seen_permissions.add(request.id)
                self._close_stream()
                print_permission(request)
        self._seen_permissions &= {request.id for request in snapshot.permissions}
        if self._last_session is not None and snapshot.session.status != self._last_session.status:
            self._close_stream()
            print_session(snapshot.session)
        self._last_session = snapshot.session

    def _render_entry(self, entry: ChatEntry) -> None:
        printed = self._printed.get(entry.id)
        if entry.role is ChatRole.ASSISTANT:
            done = printed or 0
            if len(entry.content) > done:
                self._open_stream = entry.id
                print_assistant_text(entry.content[done:])
                self._printed[entry.id] = len(entry.content)
            if not entry.streaming and self._open_stream == entry.id:
                self._close_stream()
            return
        if printed is not None:
            return
        self._close_stream()
        self._printed[entry.id] = len(entry.content)
        # The prompt line already shows what the user typed.
        if entry.role is not ChatRole.USER:
            print_status(entry.content)

    def _close_stream(self) -> None:
        if self._open_stream is not None:
            self._open_stream = None
            _render_and_print("")
