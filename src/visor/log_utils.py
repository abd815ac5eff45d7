"""Logging setup plus structured context helpers shared by the core and CLI.

Records carry two field sets: ``context_fields`` from the enclosing
``log_context`` block and ``event_fields`` passed to ``log_event``. The text
formatter appends both as ``key=value`` pairs; the JSON formatter nests them.
"""

from __future__ import annotations

import contextlib
import contextvars
import json
import logging
import os
from dataclasses import dataclass, field
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Iterator, Mapping

from visor.config import parse_bool, parse_int, parse_level
from visor.paths import log_dir

DEFAULT_LOG_FILE = "visor.log"
ROTATE_AT_BYTES = 5_000_000
ROTATED_FILES_KEPT = 3
TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

# The ACP connection logs every JSON-RPC frame at DEBUG.
QUIET_LOGGERS = {"acp": logging.WARNING}

_context: contextvars.ContextVar[Mapping[str, Any]] = contextvars.ContextVar("visor_log_context", default={})
_chunk_logging = {"enabled": False}


@dataclass(frozen=True)
class LogConfig:
    """Resolved log settings.

    The file lives in the platform log dir unless ``VISOR_LOG_DIR`` says
    otherwise; stderr output is off so the REPL stays readable.
    """

    log_file: Path
    level: int = logging.INFO
    stderr: bool = False
    json: bool = False
    log_chunks: bool = False
    max_bytes: int = ROTATE_AT_BYTES
    backup_count: int = ROTATED_FILES_KEPT
    logger_levels: Dict[str, int] = field(default_factory=dict)


def build_log_config(*, log_file_name: str = DEFAULT_LOG_FILE, default_level: int = logging.INFO) -> LogConfig:
    """Build a ``LogConfig`` from ``VISOR_LOG_*`` environment variables."""

    env = os.environ
    target = Path(env.get("VISOR_LOG_DIR") or log_dir())
    target.mkdir(parents=True, exist_ok=True)
    return LogConfig(
        log_file=target / log_file_name,
        level=parse_level(env.get("VISOR_LOG_LEVEL"), default_level),
        stderr=parse_bool(env.get("VISOR_LOG_STDERR"), False),
        json=parse_bool(env.get("VISOR_LOG_JSON"), False),
        log_chunks=parse_bool(env.get("VISOR_LOG_CHUNKS"), False),
        max_bytes=parse_int(env.get("VISOR_LOG_MAX_BYTES"), ROTATE_AT_BYTES),
        backup_count=parse_int(env.get("VISOR_LOG_BACKUPS"), ROTATED_FILES_KEPT),
        logger_levels=dict(QUIET_LOGGERS),
    )


def _build_handlers(config: LogConfig) -> list[logging.Handler]:
    handlers: list[logging.Handler] = [
        RotatingFileHandler(config.log_file, maxBytes=config.max_bytes, backupCount=config.backup_count, encoding="utf-8")
    ]
    if config.stderr:
        handlers.append(logging.StreamHandler())
    formatter = JsonFormatter() if config.json else ContextFormatter(TEXT_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(ContextFilter())
    return handlers


def configure_logging(config: LogConfig) -> None:
    """Replace the root logger's handlers with the ones ``config`` asks for.

    Safe to call more than once; earlier handlers are closed and dropped.
    """

    _chunk_logging["enabled"] = config.log_chunks

    root = logging.getLogger()
    for old in list(root.handlers):
        root.removeHandler(old)
        old.close()
    for handler in _build_handlers(config):
        root.addHandler(handler)
    root.setLevel(config.level)

    for name, level in config.logger_levels.items():
        logging.getLogger(name).setLevel(level)


def log_chunks_enabled() -> bool:
    """True when terminal and chat chunks should be logged one by one."""

    return _chunk_logging["enabled"]


@contextlib.contextmanager
def log_context(**fields: Any) -> Iterator[None]:
    """Attach fields such as ``session_id`` to every record logged in the block."""

    token = _context.set({**_context.get(), **{key: value for key, value in fields.items() if value is not None}})
    try:
        yield
    finally:
        _context.reset(token)


def log_event(logger: logging.Logger, event: str, *, level: int = logging.INFO, **fields: Any) -> None:
    """Log a dotted event name (``session.start.failed``) with key/value fields."""

    logger.log(level, event, extra={"event_fields": fields})


def _quote(value: Any) -> str:
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, ensure_ascii=True, separators=(",", ":"), default=str)
    text = str(value)
    if not text or any(ch.isspace() or ch in '="' for ch in text):
        return json.dumps(text)
    return text


def _pairs(fields: Mapping[str, Any]) -> Iterator[str]:
    for key, value in sorted(fields.items()):
        if value is not None:
            yield f"{key}={_quote(value)}"


class ContextFilter(logging.Filter):
    """Stamp the active ``log_context`` fields onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        record.context_fields = dict(_context.get())
        if not hasattr(record, "event_fields"):
            record.event_fields = {}
        return True


class ContextFormatter(logging.Formatter):
    """Plain text lines; context then event fields trail the message."""

    def format(self, record: logging.LogRecord) -> str:
        tail = [
            *_pairs(getattr(record, "context_fields", {})),
            *_pairs(getattr(record, "event_fields", {})),
        ]
        line = super().format(record)
        return " ".join([line, *tail]) if tail else line


class JsonFormatter(logging.Formatter):
    """One JSON object per line (``VISOR_LOG_JSON=1``)."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, attr in (("context", "context_fields"), ("fields", "event_fields")):
            value = getattr(record, attr, None)
            if value:
                payload[key] = value
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True, default=str)
