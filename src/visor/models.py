"""Value types shared by the core components and the presentation layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class SessionStatus(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    ACTIVE = "active"
    ERROR = "error"


class ChatRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    STATUS = "status"


@dataclass(frozen=True)
class Mode:
    id: str
    name: str
    description: str | None = None


@dataclass(frozen=True)
class ModeSummary:
    current_mode_id: str
    available_modes: tuple[Mode, ...] = ()


@dataclass(frozen=True)
class AgentSummary:
    id: str
    label: str


@dataclass(frozen=True)
class SessionInfo:
    """Response of ``acp_start_session``."""

    agent_id: str
    session_id: str
    modes: ModeSummary | None = None


@dataclass(frozen=True)
class Session:
    agent_id: str | None = None
    session_id: str | None = None
    status: SessionStatus = SessionStatus.IDLE
    current_mode_id: str | None = None
    available_modes: tuple[Mode, ...] = ()
    error: str | None = None

    @property
    def is_live(self) -> bool:
        """True while the single session slot is taken."""
        return self.status in (SessionStatus.STARTING, SessionStatus.ACTIVE)


@dataclass(frozen=True)
class ChatEntry:
    id: str
    role: ChatRole
    content: str
    streaming: bool = False


@dataclass(frozen=True)
class PermissionChoice:
    option_id: str
    label: str


@dataclass(frozen=True)
class PermissionRequest:
    id: str
    session_id: str
    message: str
    options: tuple[PermissionChoice, ...] = ()


@dataclass(frozen=True)
class TerminalSize:
    cols: int
    rows: int


@dataclass(frozen=True)
class TerminalHandle:
    pid: int


@dataclass(frozen=True)
class CopilotSnapshot:
    session: Session
    entries: tuple[ChatEntry, ...] = ()
    permissions: tuple[PermissionRequest, ...] = ()
    root_dir: str | None = None
    files: tuple[str, ...] = field(default_factory=tuple)
