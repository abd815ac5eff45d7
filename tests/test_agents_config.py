from __future__ import annotations

import json
from pathlib import Path

import pytest

from visor.backend.agents import load_agents_config
from visor.errors import BackendError


def _write(path: Path, payload: object) -> Path:
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_loads_agents_with_defaults(tmp_path: Path) -> None:
    config = load_agents_config(
        _write(
            tmp_path / "agents.json",
            {
                "version": 1,
                "agents": {
                    "claude": {"label": "Claude Code", "command": "claude-code-acp"},
                    "gemini": {"command": "gemini", "args": ["--experimental-acp"], "env": {"A": "1"}},
                },
            },
        )
    )

    assert [(a.id, a.label) for a in config.summaries()] == [("claude", "Claude Code"), ("gemini", "gemini")]
    gemini = config.find("gemini")
    assert gemini is not None
    assert gemini.args == ["--experimental-acp"]
    assert gemini.env == {"A": "1"}
    assert config.find("missing") is None


def test_mcp_servers_become_stdio_servers(tmp_path: Path) -> None:
    config = load_agents_config(
        _write(
            tmp_path / "agents.json",
            {
                "version": 1,
                "agents": {
                    "claude": {
                        "command": "claude-code-acp",
                        "mcp_servers": {"fs": {"command": "mcp-fs", "args": ["--root", "."], "env": {"K": "V"}}},
                    }
                },
            },
        )
    )
    servers = config.find("claude").acp_mcp_servers()
    assert len(servers) == 1
    assert servers[0].name == "fs"
    assert servers[0].command == "mcp-fs"
    assert servers[0].args == ["--root", "."]
    assert [(env.name, env.value) for env in servers[0].env] == [("K", "V")]


def test_unsupported_version_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(BackendError, match="unsupported agent config version 2"):
        load_agents_config(_write(tmp_path / "agents.json", {"version": 2, "agents": {}}))


def test_missing_or_malformed_file(tmp_path: Path) -> None:
    with pytest.raises(BackendError, match="failed to read"):
        load_agents_config(tmp_path / "absent.json")

    bad = tmp_path / "bad.json"
    bad.write_text("{not json", encoding="utf-8")
    with pytest.raises(BackendError, match="failed to parse"):
        load_agents_config(bad)

    with pytest.raises(BackendError, match="failed to parse"):
        load_agents_config(_write(tmp_path / "nocmd.json", {"version": 1, "agents": {"x": {}}}))
