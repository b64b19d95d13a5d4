"""Per-call cancellation tokens and their coordinator.

A token is handed to the guarded operation so it can observe cancellation
cooperatively. The breaker cancels a token when its call settles, when the
per-call timeout fires and, depending on policy, when the circuit opens.
"""

import threading
from collections.abc import Callable

from breakwater.logging import get_logger, log_exception

CancelListener = Callable[[BaseException | None], None]

_logger = get_logger(__name__)


class CancellationToken:
    """One-shot, thread-safe cancellation signal."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._cancelled = False
        self._reason: BaseException | None = None
        self._listeners: list[CancelListener] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> BaseException | None:
        return self._reason

    def raise_if_cancelled(self) -> None:
        """Raise the cancellation reason when the token has been cancelled."""
        if not self._cancelled:
            return
        if self._reason is not None:
            raise self._reason
        raise RuntimeError("operation cancelled")

    def add_listener(self, listener: CancelListener) -> Callable[[], None]:
        """Register ``listener`` and return a function that unregisters it.

        Listeners added after cancellation are invoked immediately.
        """
        with self._lock:
            if not self._cancelled:
                self._listeners.append(listener)
                return lambda: self._remove_listener(listener)
            reason = self._reason
        self._notify(listener, reason)
        return lambda: None

    def cancel(self, reason: BaseException | None = None) -> bool:
        """Cancel the token.

        Returns:
            ``True`` for the call that performed the cancellation, ``False``
            when the token was already cancelled.
        """
        with self._lock:
            if self._cancelled:
                return False
            self._cancelled = True
            self._reason = reason
            listeners = self._listeners
            self._listeners = []
        for listener in listeners:
            self._notify(listener, reason)
        return True

    def _remove_listener(self, listener: CancelListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    @staticmethod
    def _notify(listener: CancelListener, reason: BaseException | None) -> None:
        try:
            listener(reason)
        except Exception:
            log_exception(_logger, "cancellation.listener_failed")


class CancellationCoordinator:
    """Issue, track and bulk-cancel cancellation tokens for one breaker."""

    def __init__(self, *, renew: bool = False) -> None:
        """Create a coordinator.

        Args:
            renew: Keep a long-lived shared token that is replaced whenever it
                is observed to be cancelled.
        """
        self._lock = threading.Lock()
        self._renew = renew
        self._live: set[CancellationToken] = set()
        self._shared: CancellationToken | None = CancellationToken() if renew else None

    @property
    def in_flight(self) -> int:
        with self._lock:
            return len(self._live)

    @property
    def shared_token(self) -> CancellationToken:
        """Return the circuit-level token, renewing it if already cancelled."""
        if not self._renew:
            raise RuntimeError("shared token requires renew=True")
        with self._lock:
            if self._shared is None or self._shared.cancelled:
                self._shared = CancellationToken()
            return self._shared

    def acquire(self) -> CancellationToken:
        token = CancellationToken()
        with self._lock:
            self._live.add(token)
        return token

    def release(self, token: CancellationToken) -> None:
        """Cancel ``token`` and stop tracking it. Safe to call repeatedly."""
        with self._lock:
            self._live.discard(token)
        token.cancel()

    def cancel_all(self, reason: BaseException | None = None) -> int:
        """Cancel every live token plus the shared token.

        Returns:
            Number of per-call tokens that were cancelled.
        """
        with self._lock:
            live = list(self._live)
            self._live.clear()
            shared = self._shared
        cancelled = sum(1 for token in live if token.cancel(reason))
        if shared is not None:
            shared.cancel(reason)
        return cancelled

    def cancel_shared(self, reason: BaseException | None = None) -> bool:
        with self._lock:
            shared = self._shared
        if shared is None:
            return False
        return shared.cancel(reason)
