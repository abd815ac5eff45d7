"""Outstanding agent permission requests awaiting a user decision."""

from __future__ import annotations

import logging

from visor.backend.base import Backend
from visor.log_utils import log_context, log_event
from visor.models import PermissionRequest
from visor.observable import ChangeNotifier
from visor.transcript import ChatTranscript

logger = logging.getLogger(__name__)


class PermissionQueue:
    """Requests keyed by id, kept in arrival order for display.

    Resolution order is free. A request leaves the queue before its answer is
    sent, so a second answer for the same id finds nothing and does nothing.
    """

    def __init__(
        self,
        backend: Backend,
        transcript: ChatTranscript,
        notifier: ChangeNotifier | None = None,
    ) -> None:
        self._backend = backend
        self._transcript = transcript
        self._notifier = notifier or ChangeNotifier()
        self._requests: dict[str, PermissionRequest] = {}

    def __len__(self) -> int:
        return len(self._requests)

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._requests

    def get(self, request_id: str) -> PermissionRequest | None:
        return self._requests.get(request_id)

    def snapshot(self) -> tuple[PermissionRequest, ...]:
        return tuple(self._requests.values())

    def enqueue(self, request: PermissionRequest) -> None:
        replaced = request.id in self._requests
        self._requests[request.id] = request
        with log_context(session_id=request.session_id):
            log_event(logger, "permission.enqueued", request_id=request.id, replaced=replaced)
        self._notifier.notify_changed()

    def clear(self) -> int:
        """Drop every outstanding request without answering it."""
        dropped = len(self._requests)
        self._requests.clear()
        if dropped:
            log_event(logger, "permission.discarded", count=dropped)
            self._notifier.notify_changed()
        return dropped

    async def resolve(self, request_id: str, option_id: str | None) -> bool:
        """Answer a request; ``option_id=None`` denies it.

        Returns False when the id is not outstanding.
        """
        request = self._requests.pop(request_id, None)
        if request is None:
            log_event(logger, "permission.resolve.unknown", level=logging.DEBUG, request_id=request_id)
            return False
        self._notifier.notify_changed()
        with log_context(session_id=request.session_id):
            log_event(logger, "permission.resolve", request_id=request_id, option_id=option_id or "<deny>")
            try:
                await self._backend.acp_resolve_permission(request_id, option_id)
            except Exception as exc:  # noqa: BLE001
                log_event(logger, "permission.resolve.failed", level=logging.WARNING, error=str(exc))
                self._transcript.append_status(f"Permission response failed: {exc}")
                self._notifier.notify_changed()
        return True
