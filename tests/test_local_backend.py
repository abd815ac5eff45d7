from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from visor.backend.local import LocalBackend
from visor.config import CoreSettings
from visor.errors import BackendError


def _settings(tmp_path: Path) -> CoreSettings:
    config = tmp_path / "agents.json"
    config.write_text(
        json.dumps(
            {
                "version": 1,
                "agents": {"ghost": {"label": "Ghost", "command": str(tmp_path / "missing-agent")}},
            }
        ),
        encoding="utf-8",
    )
    return CoreSettings(agent_config_path=config, shell="/bin/sh")


@pytest.mark.asyncio
async def test_lists_and_reloads_agents(tmp_path: Path) -> None:
    settings = _settings(tmp_path)
    backend = LocalBackend(settings)
    assert [(a.id, a.label) for a in await backend.acp_list_agents()] == [("ghost", "Ghost")]

    data = json.loads(settings.agent_config_path.read_text())
    data["agents"]["other"] = {"command": "other-acp"}
    settings.agent_config_path.write_text(json.dumps(data))

    assert [a.id for a in await backend.acp_list_agents()] == ["ghost"]
    assert [a.id for a in await backend.acp_reload_config()] == ["ghost", "other"]


@pytest.mark.asyncio
async def test_start_errors(tmp_path: Path) -> None:
    backend = LocalBackend(_settings(tmp_path))

    with pytest.raises(BackendError, match="unknown agent id"):
        await backend.acp_start_session("nobody", str(tmp_path))
    with pytest.raises(BackendError, match="invalid root dir"):
        await backend.acp_start_session("ghost", str(tmp_path / "absent"))
    with pytest.raises(BackendError, match="failed to spawn agent"):
        await backend.acp_start_session("ghost", str(tmp_path))
    assert backend.session is None


@pytest.mark.asyncio
async def test_single_session_slot(tmp_path: Path) -> None:
    backend = LocalBackend(_settings(tmp_path))
    fake = AsyncMock()
    backend._session = fake

    with pytest.raises(BackendError, match="ACP session already active"):
        await backend.acp_start_session("ghost", str(tmp_path))
    with pytest.raises(BackendError, match="Stop the active ACP session"):
        await backend.acp_reload_config()

    await backend.acp_send_prompt("hi")
    fake.prompt.assert_awaited_once_with("hi", backend.updates)
    await backend.acp_set_mode("code")
    fake.set_mode.assert_awaited_once_with("code")

    await backend.acp_stop_session()
    fake.shutdown.assert_awaited_once()
    assert backend.session is None


@pytest.mark.asyncio
async def test_commands_without_session(tmp_path: Path) -> None:
    backend = LocalBackend(_settings(tmp_path))
    await backend.acp_stop_session()
    with pytest.raises(BackendError, match="No active ACP session"):
        await backend.acp_send_prompt("hi")
    with pytest.raises(BackendError, match="No active ACP session"):
        await backend.acp_resolve_permission("p1", "allow")


@pytest.mark.asyncio
async def test_list_files_and_open_folder_trigger(tmp_path: Path) -> None:
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "main.rs").write_text("")
    backend = LocalBackend(_settings(tmp_path))
    folders = backend.open_folder.subscribe()

    assert "src/main.rs" in await backend.list_files(str(tmp_path))
    with pytest.raises(BackendError):
        await backend.list_files(str(tmp_path / "src" / "main.rs"))

    backend.request_open_folder(str(tmp_path))
    await backend.close()
    assert [path async for path in folders] == [str(tmp_path)]
