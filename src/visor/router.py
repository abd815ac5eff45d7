"""Applies inbound protocol updates to the transcript, permissions and session."""

from __future__ import annotations

import logging
from typing import Any, AsyncIterable

from visor.errors import ProtocolError
from visor.events import (
    ChatMessage,
    ErrorUpdate,
    ModeChanged,
    PermissionRequested,
    StatusUpdate,
    TurnEnded,
    parse_update,
)
from visor.log_utils import log_context, log_event
from visor.observable import ChangeNotifier
from visor.permissions import PermissionQueue
from visor.session import SessionManager
from visor.transcript import ChatTranscript

logger = logging.getLogger(__name__)


class EventRouter:
    """Single consumer of the protocol-update stream.

    ``apply`` never awaits, so each update is fully applied before the next one
    is looked at, whichever task delivered it.
    """

    def __init__(
        self,
        transcript: ChatTranscript,
        permissions: PermissionQueue,
        sessions: SessionManager,
        *,
        drop_stale_events: bool = True,
        notifier: ChangeNotifier | None = None,
    ) -> None:
        self._transcript = transcript
        self._permissions = permissions
        self._sessions = sessions
        self._drop_stale_events = drop_stale_events
        self._notifier = notifier or ChangeNotifier()
        self.applied = 0
        self.dropped = 0

    async def run(self, source: AsyncIterable[Any]) -> None:
        async for raw in source:
            self.apply(raw)

    def apply(self, raw: Any) -> bool:
        """Apply one update; returns False if it was dropped."""
        try:
            update = parse_update(raw)
        except ProtocolError as exc:
            self.dropped += 1
            log_event(logger, "router.update.malformed", level=logging.WARNING, error=str(exc))
            return False

        if self._drop_stale_events and self._sessions.is_closed(update.session_id):
            self.dropped += 1
            with log_context(session_id=update.session_id):
                log_event(logger, "router.update.stale", level=logging.DEBUG, type=update.type)
            return False

        if isinstance(update, ChatMessage):
            self._transcript.stream_assistant(update.content)
        elif isinstance(update, StatusUpdate):
            self._transcript.append_status(update.content)
        elif isinstance(update, ErrorUpdate):
            with log_context(session_id=update.session_id):
                log_event(logger, "router.agent.error", level=logging.WARNING, message=update.content)
            self._transcript.append_error(update.content)
        elif isinstance(update, ModeChanged):
            self._sessions.apply_mode_changed(update.mode_id)
        elif isinstance(update, PermissionRequested):
            self._permissions.enqueue(update.to_request())
        elif isinstance(update, TurnEnded):
            self._transcript.end_stream()
            with log_context(session_id=update.session_id):
                log_event(logger, "router.turn.ended", stop_reason=update.stop_reason)

        self.applied += 1
        self._notifier.notify_changed()
        return True
