from __future__ import annotations

from unittest.mock import AsyncMock

from visor.channels import Channel
from visor.config import ModeUpdateStrategy
from visor.models import AgentSummary, Mode, ModeSummary, SessionInfo, TerminalHandle
from visor.permissions import PermissionQueue
from visor.router import EventRouter
from visor.session import SessionManager
from visor.transcript import ChatTranscript

ASK_CODE_MODES = ModeSummary(
    current_mode_id="ask",
    available_modes=(Mode(id="ask", name="Ask"), Mode(id="code", name="Code")),
)


def make_backend(session_id: str = "s1", modes: ModeSummary | None = ASK_CODE_MODES) -> AsyncMock:
    """AsyncMock backend with real channels and a session that starts cleanly."""

    backend = AsyncMock()
    backend.term_data = Channel("term_data")
    backend.updates = Channel("updates")
    backend.open_folder = Channel("open_folder")
    backend.spawn_terminal.return_value = TerminalHandle(pid=4242)
    backend.list_files.return_value = ["src/main.rs"]
    backend.acp_list_agents.return_value = [AgentSummary(id="claude", label="Claude Code")]
    backend.acp_reload_config.return_value = [AgentSummary(id="claude", label="Claude Code")]
    backend.acp_start_session.return_value = SessionInfo(agent_id="claude", session_id=session_id, modes=modes)
    return backend


class Core:
    def __init__(
        self,
        backend: AsyncMock | None = None,
        *,
        mode_update: ModeUpdateStrategy = ModeUpdateStrategy.OPTIMISTIC,
        drop_stale_events: bool = True,
    ) -> None:
        self.backend = backend or make_backend()
        self.transcript = ChatTranscript()
        self.permissions = PermissionQueue(self.backend, self.transcript)
        self.sessions = SessionManager(self.backend, self.transcript, self.permissions, mode_update=mode_update)
        self.router = EventRouter(
            self.transcript,
            self.permissions,
            self.sessions,
            drop_stale_events=drop_stale_events,
        )

    def contents(self) -> list[str]:
        return [entry.content for entry in self.transcript.snapshot()]


class FakeClipboard:
    def __init__(self, text: str = "") -> None:
        self.text = text
        self.fail = False

    async def read_text(self) -> str:
        if self.fail:
            raise RuntimeError("no clipboard")
        return self.text

    async def write_text(self, text: str) -> None:
        if self.fail:
            raise RuntimeError("no clipboard")
        self.text = text
