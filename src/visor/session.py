"""Agent session lifecycle: one session slot, start/stop, modes, prompts."""

from __future__ import annotations

import logging
from dataclasses import replace

from visor.backend.base import Backend
from visor.config import ModeUpdateStrategy
from visor.errors import LifecycleError, ValidationError
from visor.log_utils import log_context, log_event
from visor.models import Mode, Session, SessionInfo, SessionStatus
from visor.observable import ChangeNotifier
from visor.permissions import PermissionQueue
from visor.transcript import ChatTranscript

logger = logging.getLogger(__name__)

NO_SESSION_MESSAGE = "Start a session before sending prompts."
EMPTY_PROMPT_MESSAGE = "Prompt is empty."


class SessionManager:
    """Owns the single agent session.

    ``IDLE -> STARTING -> ACTIVE -> IDLE`` with ``STARTING``/``ACTIVE -> ERROR``
    on failures. ``stop()`` always lands in ``IDLE``. Ids of stopped sessions are
    remembered so late updates from them can be recognised.
    """

    def __init__(
        self,
        backend: Backend,
        transcript: ChatTranscript,
        permissions: PermissionQueue,
        *,
        mode_update: ModeUpdateStrategy = ModeUpdateStrategy.OPTIMISTIC,
        notifier: ChangeNotifier | None = None,
    ) -> None:
        self._backend = backend
        self._transcript = transcript
        self._permissions = permissions
        self._mode_update = mode_update
        self._notifier = notifier or ChangeNotifier()
        self._session = Session()
        self._closed_ids: set[str] = set()
        # Bumped by stop() so a start() still in flight knows it was cancelled.
        self._generation = 0

    @property
    def status(self) -> SessionStatus:
        return self._session.status

    @property
    def session_id(self) -> str | None:
        return self._session.session_id

    @property
    def mode_update(self) -> ModeUpdateStrategy:
        return self._mode_update

    def snapshot(self) -> Session:
        return self._session

    def is_closed(self, session_id: str) -> bool:
        return session_id in self._closed_ids

    def _update(self, **changes: object) -> None:
        self._session = replace(self._session, **changes)
        self._notifier.notify_changed()

    def _reject(self, exc: ValidationError) -> bool:
        log_event(logger, "session.rejected", level=logging.DEBUG, reason=str(exc))
        self._transcript.append_status(str(exc))
        self._notifier.notify_changed()
        return False

    def _report(self, message: str) -> None:
        self._transcript.append_status(message)
        self._notifier.notify_changed()

    async def start(self, agent_id: str, root_dir: str) -> bool:
        """Start a session for ``agent_id`` rooted at ``root_dir``.

        Returns True when the session became active.
        """
        agent_id = (agent_id or "").strip()
        root_dir = (root_dir or "").strip()
        if not agent_id:
            return self._reject(ValidationError("Select an agent before starting a session."))
        if not root_dir:
            return self._reject(ValidationError("Open a folder before starting a session."))
        if self._session.is_live:
            log_event(
                logger,
                "session.start.ignored",
                level=logging.WARNING,
                status=self._session.status.value,
                agent_id=agent_id,
            )
            return False

        generation = self._generation
        self._session = Session()
        self._update(agent_id=agent_id, status=SessionStatus.STARTING)
        log_event(logger, "session.start", agent_id=agent_id, root_dir=root_dir)
        try:
            info = await self._backend.acp_start_session(agent_id, root_dir)
        except Exception as exc:  # noqa: BLE001
            if generation != self._generation:
                log_event(logger, "session.start.failed_after_stop", level=logging.DEBUG, error=str(exc))
                return False
            error = LifecycleError(str(exc))
            log_event(logger, "session.start.failed", level=logging.WARNING, agent_id=agent_id, error=str(error))
            self._update(status=SessionStatus.ERROR, error=str(error))
            self._report(f"Failed to start {agent_id}: {error}")
            return False

        if generation != self._generation:
            # stop() ran while the agent was starting; do not resurrect the slot.
            log_event(logger, "session.start.superseded", session_id=info.session_id)
            self._closed_ids.add(info.session_id)
            try:
                await self._backend.acp_stop_session()
            except Exception as exc:  # noqa: BLE001
                log_event(logger, "session.stop.failed", level=logging.WARNING, error=str(exc))
            return False

        self._apply_started(info)
        return True

    def _apply_started(self, info: SessionInfo) -> None:
        modes: tuple[Mode, ...] = ()
        current: str | None = None
        if info.modes is not None:
            modes = tuple(info.modes.available_modes)
            current = info.modes.current_mode_id or None
        with log_context(session_id=info.session_id):
            log_event(logger, "session.active", agent_id=info.agent_id, modes=[m.id for m in modes])
        self._transcript.end_stream()
        self._update(
            agent_id=info.agent_id or self._session.agent_id,
            session_id=info.session_id,
            status=SessionStatus.ACTIVE,
            available_modes=modes,
            current_mode_id=current,
            error=None,
        )

    async def stop(self) -> None:
        """Tear the session down from any status; always ends IDLE."""
        self._generation += 1
        session_id = self._session.session_id
        if session_id:
            self._closed_ids.add(session_id)
        with log_context(session_id=session_id):
            log_event(logger, "session.stop", status=self._session.status.value)
            try:
                await self._backend.acp_stop_session()
            except Exception as exc:  # noqa: BLE001
                log_event(logger, "session.stop.failed", level=logging.WARNING, error=str(exc))
                self._transcript.append_status(f"Stopping the session reported an error: {exc}")
            finally:
                self._permissions.clear()
                self._transcript.end_stream()
                self._session = Session()
                self._notifier.notify_changed()

    async def set_mode(self, mode_id: str) -> bool:
        mode_id = (mode_id or "").strip()
        if self._session.status is not SessionStatus.ACTIVE:
            return self._reject(ValidationError("Start a session before switching modes."))
        if not mode_id:
            return self._reject(ValidationError("Choose a mode to switch to."))
        known = {mode.id for mode in self._session.available_modes}
        if known and mode_id not in known:
            return self._reject(ValidationError(f"Unknown mode: {mode_id}"))

        session_id = self._session.session_id
        previous = self._session.current_mode_id
        if self._mode_update is ModeUpdateStrategy.OPTIMISTIC:
            self._update(current_mode_id=mode_id)
        with log_context(session_id=session_id):
            log_event(logger, "session.mode.set", mode_id=mode_id, previous=previous, strategy=self._mode_update.value)
            try:
                await self._backend.acp_set_mode(mode_id)
            except Exception as exc:  # noqa: BLE001
                log_event(logger, "session.mode.failed", level=logging.WARNING, mode_id=mode_id, error=str(exc))
                # Optimistic updates are intentionally left in place.
                self._report(f"Failed to switch mode to {mode_id}: {exc}")
                return False
        if self._mode_update is ModeUpdateStrategy.CONFIRM and self._session.session_id == session_id:
            self._update(current_mode_id=mode_id)
        return True

    def apply_mode_changed(self, mode_id: str) -> None:
        if self._session.current_mode_id == mode_id:
            return
        self._update(current_mode_id=mode_id)

    async def send_prompt(self, text: str) -> bool:
        if not text or not text.strip():
            return self._reject(ValidationError(EMPTY_PROMPT_MESSAGE))
        if self._session.status is not SessionStatus.ACTIVE:
            return self._reject(ValidationError(NO_SESSION_MESSAGE))

        self._transcript.append_user(text)
        self._notifier.notify_changed()
        with log_context(session_id=self._session.session_id):
            log_event(logger, "session.prompt", size=len(text))
            try:
                await self._backend.acp_send_prompt(text)
            except Exception as exc:  # noqa: BLE001
                log_event(logger, "session.prompt.failed", level=logging.WARNING, error=str(exc))
                self._report(f"Prompt failed: {exc}")
                return False
        return True
