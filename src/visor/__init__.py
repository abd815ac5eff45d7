"""Visor: a terminal and ACP agent copilot core."""

__version__ = "0.1.0"
