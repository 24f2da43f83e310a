"""
Rate limiting for progress callbacks.

Transfer and extraction report progress far more often than listeners
care to hear about it. :class:`Debouncer` coalesces a burst of calls into
at most one callback per interval and always delivers the latest value
of a burst, even when the source stops producing before the timer fires.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

from autoupdater.logging import get_logger

logger = get_logger(__name__)


class Debouncer:
    """
    Trailing-edge rate limiter bound to the running asyncio event loop.

    The first call of a burst arms a timer for ``wait_ms``; calls arriving
    before it fires only replace the pending arguments. When the timer
    fires the callback receives the most recent arguments. ``flush()``
    delivers a pending call immediately, ``cancel()`` drops it.

    Must be called from the event loop thread.

    Example:
        >>> debounced = Debouncer(lambda n: print(n), wait_ms=100)
        >>> for n in range(1000):
        ...     debounced(n)        # prints 999 once, ~100ms later
    """

    def __init__(self, callback: Callable[..., Any], wait_ms: float) -> None:
        """
        Initialize the Debouncer.

        Args:
            callback: Function invoked with the latest arguments.
            wait_ms: Minimum milliseconds between two invocations.
        """
        self._callback = callback
        self._wait = max(wait_ms, 0) / 1000
        self._pending: tuple[Any, ...] | None = None
        self._handle: asyncio.TimerHandle | None = None

    @property
    def wait_ms(self) -> float:
        """Return the debounce interval in milliseconds."""
        return self._wait * 1000

    @property
    def pending(self) -> bool:
        """Whether a call is waiting to be delivered."""
        return self._pending is not None

    def __call__(self, *args: Any) -> None:
        self._pending = args
        if self._handle is not None:
            return
        if self._wait == 0:
            self._fire()
            return
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self._wait, self._fire)

    def _fire(self) -> None:
        self._handle = None
        args, self._pending = self._pending, None
        if args is None:
            return
        self._callback(*args)

    def flush(self) -> None:
        """Deliver the pending call, if any, right away."""
        if self._handle is not None:
            self._handle.cancel()
        self._fire()

    def cancel(self) -> None:
        """Drop the pending call without delivering it."""
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        if self._pending is not None:
            logger.debug("Dropped pending progress update", extra={"args": self._pending})
        self._pending = None
