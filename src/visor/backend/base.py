"""Backend command surface consumed by the copilot core.

Commands raise ``BackendError`` on failure. Streams are exposed as channels the
core subscribes to.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from visor.channels import Channel
from visor.models import AgentSummary, SessionInfo, TerminalHandle


@runtime_checkable
class Backend(Protocol):
    term_data: Channel[bytes]
    updates: Channel[Any]
    open_folder: Channel[str]

    async def spawn_terminal(self) -> TerminalHandle: ...

    async def write_to_terminal(self, data: bytes) -> None: ...

    async def resize_terminal(self, cols: int, rows: int) -> None: ...

    async def list_files(self, path: str) -> list[str]: ...

    async def acp_list_agents(self) -> list[AgentSummary]: ...

    async def acp_reload_config(self) -> list[AgentSummary]: ...

    async def acp_start_session(self, agent_id: str, root_dir: str) -> SessionInfo: ...

    async def acp_stop_session(self) -> None: ...

    async def acp_send_prompt(self, text: str) -> None: ...

    async def acp_set_mode(self, mode_id: str) -> None: ...

    async def acp_resolve_permission(self, request_id: str, option_id: str | None) -> None: ...

    async def close(self) -> None: ...
