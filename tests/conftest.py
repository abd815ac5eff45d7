from __future__ import annotations

from pathlib import Path

import pytest


@pytest.fixture(autouse=True)
def _isolate_home(tmp_path_factory, monkeypatch):
    """Point HOME and the XDG dirs at a temp dir so config, .env and logs stay out of the real home."""
    base = tmp_path_factory.mktemp("home")
    monkeypatch.setenv("HOME", str(base))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(base / ".config"))
    monkeypatch.setenv("XDG_STATE_HOME", str(base / ".local" / "state"))
    monkeypatch.setenv("XDG_DATA_HOME", str(base / ".local" / "share"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(base / ".cache"))
    monkeypatch.setattr(Path, "home", lambda: base)
    for name in (
        "VISOR_MODE_UPDATE",
        "VISOR_DROP_STALE_EVENTS",
        "VISOR_AGENT_CONFIG",
        "VISOR_SHELL",
        "VISOR_ACP_STDIO_BUFFER_LIMIT_BYTES",
        "VISOR_LOG_DIR",
        "VISOR_LOG_LEVEL",
        "VISOR_LOG_CHUNKS",
    ):
        monkeypatch.delenv(name, raising=False)
