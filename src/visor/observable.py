"""Change notification fan-out for the presentation layer."""

from __future__ import annotations

import logging
from typing import Callable

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


class ChangeNotifier:
    """Calls every listener after core state changed.

    Listeners take no arguments and are expected to read a fresh snapshot.
    A failing listener is logged and does not stop the others.
    """

    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def notify_changed(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:  # noqa: BLE001
                logger.exception("change listener failed")
