"""Publish/subscribe channel for breaker lifecycle events."""

import threading
from collections import defaultdict
from collections.abc import Callable
from enum import StrEnum

from breakwater.logging import get_logger, log_exception

EventCallback = Callable[[object | None], None]

_logger = get_logger(__name__)


class BreakerEvent(StrEnum):
    """Names of the events a breaker publishes."""

    OPEN = "open"
    CLOSE = "close"
    HALF_OPEN = "half_open"
    REJECT = "reject"
    SUCCESS = "success"
    ERROR = "error"


class EventBus:
    """Synchronous, ordered fan-out of breaker events.

    Notes:
        Subscribers receive one positional ``payload`` argument: the result for
        ``SUCCESS``, the exception for ``ERROR`` and ``None`` otherwise. A
        subscriber raising is logged and skipped; later subscribers still run.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: dict[BreakerEvent, list[EventCallback]] = defaultdict(list)

    def subscribe(
        self, event: BreakerEvent, callback: EventCallback
    ) -> Callable[[], None]:
        """Register ``callback`` for ``event`` and return an unsubscribe hook."""
        event = BreakerEvent(event)
        with self._lock:
            self._subscribers[event].append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                callbacks = self._subscribers[event]
                if callback in callbacks:
                    callbacks.remove(callback)

        return _unsubscribe

    def subscriber_count(self, event: BreakerEvent) -> int:
        with self._lock:
            return len(self._subscribers[BreakerEvent(event)])

    def publish(self, event: BreakerEvent, payload: object | None = None) -> None:
        """Invoke subscribers of ``event`` in subscription order."""
        with self._lock:
            callbacks = tuple(self._subscribers[event])
        for callback in callbacks:
            try:
                callback(payload)
            except Exception:
                log_exception(_logger, "circuit_breaker.subscriber_failed", event=event)
