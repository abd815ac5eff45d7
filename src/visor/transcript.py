"""Ordered chat log with streaming coalescing of assistant text."""

from __future__ import annotations

import itertools
import logging
from dataclasses import replace

from visor.log_utils import log_chunks_enabled, log_event
from visor.models import ChatEntry, ChatRole

logger = logging.getLogger(__name__)

ERROR_PREFIX = "Error: "


class ChatTranscript:
    """Append-only chat entries.

    The only entry that ever changes is a trailing ASSISTANT entry whose
    ``streaming`` flag is still set: further chunks are appended to it until a
    status line, an error, a user prompt or the end of the turn closes it.
    """

    def __init__(self) -> None:
        self._entries: list[ChatEntry] = []
        self._ids = itertools.count(1)

    def __len__(self) -> int:
        return len(self._entries)

    def snapshot(self) -> tuple[ChatEntry, ...]:
        return tuple(self._entries)

    @property
    def last(self) -> ChatEntry | None:
        return self._entries[-1] if self._entries else None

    def _streaming_tail(self) -> ChatEntry | None:
        tail = self.last
        if tail is not None and tail.role is ChatRole.ASSISTANT and tail.streaming:
            return tail
        return None

    def _append(self, role: ChatRole, content: str, *, streaming: bool = False) -> ChatEntry:
        entry = ChatEntry(id=f"entry-{next(self._ids)}", role=role, content=content, streaming=streaming)
        self._entries.append(entry)
        return entry

    def append_user(self, text: str) -> ChatEntry:
        self.end_stream()
        return self._append(ChatRole.USER, text)

    def append_status(self, text: str) -> ChatEntry:
        self.end_stream()
        return self._append(ChatRole.STATUS, text)

    def append_error(self, text: str) -> ChatEntry:
        return self.append_status(f"{ERROR_PREFIX}{text}")

    def stream_assistant(self, chunk: str) -> ChatEntry:
        """Add a chunk of assistant text, merging into the open streaming entry."""
        if log_chunks_enabled():
            log_event(logger, "transcript.chunk", level=logging.DEBUG, size=len(chunk))
        tail = self._streaming_tail()
        if tail is None:
            return self._append(ChatRole.ASSISTANT, chunk, streaming=True)
        merged = replace(tail, content=tail.content + chunk)
        self._entries[-1] = merged
        return merged

    def end_stream(self) -> None:
        tail = self._streaming_tail()
        if tail is not None:
            self._entries[-1] = replace(tail, streaming=False)
