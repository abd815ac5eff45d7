"""Error taxonomy for the copilot core.

None of these escape a core command: validation and lifecycle failures are
reported in the transcript, transport and protocol failures are logged.
"""

from __future__ import annotations


class VisorError(Exception):
    """Base class for all core errors."""


class ValidationError(VisorError):
    """A command was rejected before any backend call (missing agent, empty prompt)."""


class TransportError(VisorError):
    """The terminal channel is unavailable (not spawned, closed, or the shell exited)."""


class LifecycleError(VisorError):
    """Starting or stopping the agent session failed."""


class ProtocolError(VisorError):
    """An inbound protocol update was malformed or of an unknown type."""


class BackendError(VisorError):
    """A backend command returned an error."""
