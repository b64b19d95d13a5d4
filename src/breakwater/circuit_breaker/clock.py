"""Injectable time source and one-shot scheduler."""

import asyncio
import threading
import time
from collections.abc import Callable
from typing import Protocol


class Timer(Protocol):
    """Handle for a scheduled one-shot callback."""

    def cancel(self) -> None:
        """Prevent the callback from running if it has not run yet."""


class Scheduler(Protocol):
    """Clock plus ``after(delay, callback)`` capability used by breakers."""

    def now(self) -> float:
        """Return monotonic time in seconds."""

    def after(self, delay: float, callback: Callable[[], None]) -> Timer:
        """Run ``callback`` once after ``delay`` seconds."""


class LoopScheduler:
    """Real-time scheduler backed by the running event loop.

    Outside a running loop (for example a manual ``open()`` from synchronous
    code) callbacks run on a daemon ``threading.Timer`` instead.
    """

    def now(self) -> float:
        return time.monotonic()

    def after(self, delay: float, callback: Callable[[], None]) -> Timer:
        bounded_delay = max(delay, 0.0)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            timer = threading.Timer(bounded_delay, callback)
            timer.daemon = True
            timer.start()
            return timer
        return loop.call_later(bounded_delay, callback)
