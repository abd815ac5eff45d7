"""Core settings resolved from the environment.

Values come from process environment variables, with an optional ``.env`` file
in the user config directory loaded first (existing variables win).
"""

from __future__ import annotations

import contextlib
import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from dotenv import load_dotenv

from visor.paths import env_file

DEFAULT_AGENT_CONFIG_PATH = Path(".acp") / "agents.json"
DEFAULT_SHELL = "/bin/sh"
DEFAULT_STDIO_BUFFER_LIMIT_BYTES = 50 * 1024 * 1024
_MIN_STDIO_BUFFER_LIMIT_BYTES = 64 * 1024


class ModeUpdateStrategy(str, Enum):
    """How ``set_mode`` applies the new mode locally.

    ``OPTIMISTIC`` updates the current mode before the agent confirms and keeps
    it even if the agent call fails. ``CONFIRM`` waits for the agent first.
    """

    OPTIMISTIC = "optimistic"
    CONFIRM = "confirm"


def parse_level(value: str | None, default: int) -> int:
    """Parse a log level string or numeric value from environment settings."""
    if not value:
        return default
    if value.isdigit():
        return int(value)
    return logging._nameToLevel.get(value.upper(), default)


def parse_bool(value: str | None, default: bool) -> bool:
    """Parse a truthy/falsy toggle from environment settings."""
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def parse_int(value: str | None, default: int) -> int:
    """Parse an integer setting, returning the default on invalid input."""
    if value is None:
        return default
    with contextlib.suppress(ValueError):
        return int(value)
    return default


def parse_mode_update(value: str | None) -> ModeUpdateStrategy:
    if not value:
        return ModeUpdateStrategy.OPTIMISTIC
    try:
        return ModeUpdateStrategy(value.strip().lower())
    except ValueError:
        return ModeUpdateStrategy.OPTIMISTIC


def default_agent_config_path(cwd: Path | None = None) -> Path:
    """Locate ``.acp/agents.json`` in the working directory or its parent."""
    base = cwd or Path.cwd()
    direct = base / DEFAULT_AGENT_CONFIG_PATH
    if direct.exists():
        return direct
    fallback = base.parent / DEFAULT_AGENT_CONFIG_PATH
    if fallback.exists():
        return fallback
    return direct


def default_shell() -> str:
    return os.getenv("VISOR_SHELL") or os.getenv("SHELL") or DEFAULT_SHELL


@dataclass(frozen=True)
class CoreSettings:
    mode_update: ModeUpdateStrategy = ModeUpdateStrategy.OPTIMISTIC
    drop_stale_events: bool = True
    agent_config_path: Path = DEFAULT_AGENT_CONFIG_PATH
    shell: str = DEFAULT_SHELL
    stdio_buffer_limit: int = DEFAULT_STDIO_BUFFER_LIMIT_BYTES


def build_settings(*, agent_config_path: str | None = None) -> CoreSettings:
    """Build settings from ``.env`` and the process environment."""

    load_dotenv(env_file(), override=False)
    config_path = agent_config_path or os.getenv("VISOR_AGENT_CONFIG")
    return CoreSettings(
        mode_update=parse_mode_update(os.getenv("VISOR_MODE_UPDATE")),
        drop_stale_events=parse_bool(os.getenv("VISOR_DROP_STALE_EVENTS"), True),
        agent_config_path=Path(config_path).expanduser() if config_path else default_agent_config_path(),
        shell=default_shell(),
        stdio_buffer_limit=max(
            parse_int(os.getenv("VISOR_ACP_STDIO_BUFFER_LIMIT_BYTES"), DEFAULT_STDIO_BUFFER_LIMIT_BYTES),
            _MIN_STDIO_BUFFER_LIMIT_BYTES,
        ),
    )
