"""Backend command surface and the in-process implementation."""

from visor.backend.base import Backend
from visor.backend.local import LocalBackend

__all__ = ["Backend", "LocalBackend"]
