"""Command-line entrypoint: ``visor``."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from visor.backend.local import LocalBackend
from visor.config import build_settings
from visor.copilot import Copilot
from visor.display import print_agents
from visor.log_utils import build_log_config, configure_logging, log_event
from visor.repl import interactive_loop

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="visor", description="Terminal and ACP agent copilot.")
    parser.add_argument("--agent", help="Agent id from agents.json to start right away")
    parser.add_argument("--root", help="Project folder to open (and to start the agent in)")
    parser.add_argument("--agent-config", help="Path to agents.json (default: ./.acp/agents.json)")
    parser.add_argument("--list-agents", action="store_true", help="Print configured agents and exit")
    return parser


async def run(argv: list[str]) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(build_log_config())
    settings = build_settings(agent_config_path=args.agent_config)
    log_event(logger, "cli.start", agent_config=str(settings.agent_config_path), mode_update=settings.mode_update.value)

    backend = LocalBackend(settings)
    copilot = Copilot(backend, settings)
    copilot.attach()
    try:
        if args.list_agents:
            agents = await copilot.list_agents()
            if not agents:
                for entry in copilot.snapshot().entries:
                    print(entry.content, file=sys.stderr)
                return 1
            print_agents(agents)
            return 0

        if args.root:
            await copilot.open_folder(args.root)
        if args.agent:
            await copilot.start(args.agent)
        await interactive_loop(copilot)
        return 0
    finally:
        await copilot.close()


def main(argv: list[str] | None = None) -> int:
    try:
        return asyncio.run(run(sys.argv[1:] if argv is None else argv))
    except KeyboardInterrupt:
        return 130


def main_entry() -> None:
    raise SystemExit(main())


if __name__ == "__main__":
    main_entry()
