"""Agent registry loaded from ``.acp/agents.json``.

Format (version 1)::

    {
      "version": 1,
      "agents": {
        "claude": {
          "label": "Claude Code",
          "command": "claude-code-acp",
          "args": [],
          "env": {"FOO": "bar"},
          "mcp_servers": {"fs": {"command": "mcp-fs", "args": ["--root", "."]}}
        }
      }
    }
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from acp.schema import EnvVariable, StdioMcpServer
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from visor.errors import BackendError
from visor.models import AgentSummary

SUPPORTED_VERSION = 1


class McpServerConfig(BaseModel):
    command: str
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)


class RawAgentConfig(BaseModel):
    label: str | None = None
    command: str
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)
    settings: dict[str, Any] = Field(default_factory=dict)
    mcp_servers: dict[str, McpServerConfig] = Field(default_factory=dict)


class RawAgentsConfig(BaseModel):
    version: int
    agents: dict[str, RawAgentConfig] = Field(default_factory=dict)


class AgentConfig(BaseModel):
    id: str
    label: str
    command: str
    args: list[str] = Field(default_factory=list)
    env: dict[str, str] = Field(default_factory=dict)
    settings: dict[str, Any] = Field(default_factory=dict)
    mcp_servers: dict[str, McpServerConfig] = Field(default_factory=dict)

    def summary(self) -> AgentSummary:
        return AgentSummary(id=self.id, label=self.label)

    def acp_mcp_servers(self) -> list[StdioMcpServer]:
        """MCP servers to hand to the agent in ``session/new``."""
        return [
            StdioMcpServer(
                name=name,
                command=server.command,
                args=list(server.args),
                env=[EnvVariable(name=key, value=value) for key, value in server.env.items()],
            )
            for name, server in self.mcp_servers.items()
        ]


class AgentsConfig(BaseModel):
    agents: list[AgentConfig] = Field(default_factory=list)

    def find(self, agent_id: str) -> AgentConfig | None:
        return next((agent for agent in self.agents if agent.id == agent_id), None)

    def summaries(self) -> list[AgentSummary]:
        return [agent.summary() for agent in self.agents]


def load_agents_config(path: Path) -> AgentsConfig:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise BackendError(f"failed to read agent config {path}: {exc}") from exc
    try:
        parsed = RawAgentsConfig.model_validate(json.loads(raw))
    except (json.JSONDecodeError, PydanticValidationError) as exc:
        raise BackendError(f"failed to parse agent config {path}: {exc}") from exc

    if parsed.version != SUPPORTED_VERSION:
        raise BackendError(f"unsupported agent config version {parsed.version} (expected {SUPPORTED_VERSION})")

    return AgentsConfig(
        agents=[
            AgentConfig(
                id=agent_id,
                label=agent.label or agent_id,
                command=agent.command,
                args=agent.args,
                env=agent.env,
                settings=agent.settings,
                mcp_servers=agent.mcp_servers,
            )
            for agent_id, agent in parsed.agents.items()
        ]
    )
