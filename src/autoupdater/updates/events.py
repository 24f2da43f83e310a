"""
Event registration for update progress and lifecycle notifications.

Events emitted by the AutoUpdater:
- ``download``: (bytes_transferred,)
- ``install``: (files_unpacked, total_files)
- ``state``: (new_state, old_state)
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable
from typing import Any

from autoupdater.logging import get_logger

logger = get_logger(__name__)

Listener = Callable[..., Any]


class EventEmitter:
    """
    Per-instance listener registry.

    Listeners run synchronously on the event loop in registration order.
    A failing listener is logged and skipped; it never interrupts the
    pipeline that emitted the event.
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = defaultdict(list)

    def on(self, event: str, listener: Listener) -> Callable[[], None]:
        """
        Register ``listener`` for ``event``.

        Returns:
            A callable that unregisters the listener.
        """
        self._listeners[event].append(listener)

        def unsubscribe() -> None:
            self.off(event, listener)

        return unsubscribe

    def off(self, event: str, listener: Listener) -> None:
        """Unregister ``listener``; unknown listeners are ignored."""
        listeners = self._listeners.get(event)
        if listeners and listener in listeners:
            listeners.remove(listener)

    def listener_count(self, event: str) -> int:
        """Return how many listeners are registered for ``event``."""
        return len(self._listeners.get(event, ()))

    def emit(self, event: str, *args: Any) -> bool:
        """
        Notify every listener of ``event``.

        Returns:
            True if at least one listener was registered.
        """
        listeners = list(self._listeners.get(event, ()))
        for listener in listeners:
            try:
                listener(*args)
            except Exception as e:
                logger.warning(
                    f"Listener for '{event}' failed: {e}",
                    extra={"event": event},
                )
        return bool(listeners)
