"""Core circuit breaker implementation."""

import asyncio
import inspect
import threading
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from breakwater.circuit_breaker.cancellation import (
    CancellationCoordinator,
    CancellationToken,
)
from breakwater.circuit_breaker.clock import LoopScheduler, Scheduler, Timer
from breakwater.circuit_breaker.events import BreakerEvent, EventBus
from breakwater.circuit_breaker.exceptions import (
    CallCancelledError,
    CircuitOpenError,
    InvalidOperationError,
    OperationTimeoutError,
)
from breakwater.circuit_breaker.state import (
    AdmissionState,
    BreakerSnapshot,
    CircuitState,
)
from breakwater.circuit_breaker.window import OutcomeWindow
from breakwater.logging import (
    StructuredLogger,
    get_logger,
    log_info,
    log_warning,
)

T = TypeVar("T")

Operation = Callable[[CancellationToken], Awaitable[T]]
ErrorPredicate = Callable[[Exception], bool]


class _NotAwaitableError(Exception):
    def __init__(self, value: object) -> None:
        self.value = value
        super().__init__(type(value).__qualname__)


def _callable_name(func: object) -> str:
    callable_name = getattr(func, "__qualname__", None)
    if callable_name is None:
        callable_name = getattr(func, "__name__", None)
    if callable_name is None:
        callable_name = func.__class__.__qualname__
    return str(callable_name)


@dataclass(frozen=True, slots=True)
class CircuitBreakerConfig:
    """Circuit breaker configuration values.

    Durations are in seconds.

    Attributes:
        window_size: Width of the trailing outcome window.
        failure_threshold_percentage: Open when the windowed failure ratio
            exceeds this percentage.
        failure_threshold_count: Open when windowed failures reach this count.
            ``0`` disables the count threshold.
        timeout: Per-call timeout. ``None`` disables it.
        reset_timeout: Delay while ``OPEN`` before probing. ``None`` keeps the
            circuit open until it is closed manually.
        success_threshold: Half-open successes required to close.
        retry_attempts: Half-open failures tolerated before re-opening.
        is_error: Predicate deciding whether an exception counts as a failure.
            Exceptions it rejects are booked as successes and still re-raised.
        renew_cancellation: Maintain a renewable circuit-level token.
        cancel_on_open: Cancel in-flight calls when the circuit opens.
    """

    window_size: float = 60.0
    failure_threshold_percentage: float = 5.0
    failure_threshold_count: int = 0
    timeout: float | None = None
    reset_timeout: float | None = None
    success_threshold: int = 1
    retry_attempts: int = 1
    is_error: ErrorPredicate | None = None
    renew_cancellation: bool = False
    cancel_on_open: bool = False

    def __post_init__(self) -> None:
        if self.window_size <= 0:
            raise ValueError("window_size must be > 0")
        if not 0 <= self.failure_threshold_percentage <= 100:
            raise ValueError("failure_threshold_percentage must be within 0..100")
        if self.failure_threshold_count < 0:
            raise ValueError("failure_threshold_count must be >= 0")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0 when provided")
        if self.reset_timeout is not None and self.reset_timeout < 0:
            raise ValueError("reset_timeout must be >= 0 when provided")
        if self.success_threshold < 1:
            raise ValueError("success_threshold must be >= 1")
        if self.retry_attempts < 1:
            raise ValueError("retry_attempts must be >= 1")

    def as_dict(self) -> dict[str, object]:
        """Render options for snapshots; the predicate is rendered by name."""
        return {
            "window_size": self.window_size,
            "failure_threshold_percentage": self.failure_threshold_percentage,
            "failure_threshold_count": self.failure_threshold_count,
            "timeout": self.timeout,
            "reset_timeout": self.reset_timeout,
            "success_threshold": self.success_threshold,
            "retry_attempts": self.retry_attempts,
            "is_error": None if self.is_error is None else _callable_name(self.is_error),
            "renew_cancellation": self.renew_cancellation,
            "cancel_on_open": self.cancel_on_open,
        }


class CircuitBreaker:
    """Stateful proxy around a cancellable async operation."""

    def __init__(
        self,
        name: str,
        *,
        config: CircuitBreakerConfig | None = None,
        scheduler: Scheduler | None = None,
        logger: StructuredLogger | None = None,
    ) -> None:
        """Build a circuit breaker with optional custom dependencies.

        Args:
            name: Breaker name used in errors, task names and logs.
            config: Breaker behavior configuration. Defaults to
                ``CircuitBreakerConfig()``.
            scheduler: Clock and timer source. Defaults to ``LoopScheduler()``.
            logger: Structured logger. Defaults to a structlog logger.
        """
        self.name = name
        self.config = CircuitBreakerConfig() if config is None else config
        self._scheduler = LoopScheduler() if scheduler is None else scheduler
        self._logger = get_logger(__name__) if logger is None else logger
        self._lock = threading.RLock()
        self._state = AdmissionState()
        self._window = OutcomeWindow(self.config.window_size, clock=self._scheduler.now)
        self._coordinator = CancellationCoordinator(
            renew=self.config.renew_cancellation
        )
        self._events = EventBus()
        self._recovery_timer: Timer | None = None
        self._timer_generation = 0

    @property
    def events(self) -> EventBus:
        return self._events

    @property
    def state(self) -> CircuitState:
        return self._state.current

    @property
    def success_count(self) -> int:
        with self._lock:
            return self._window.success_count

    @property
    def failure_count(self) -> int:
        with self._lock:
            return self._window.failure_count

    @property
    def total_requests(self) -> int:
        with self._lock:
            return self._window.total_requests

    @property
    def failure_percentage(self) -> float:
        with self._lock:
            return self._window.failure_percentage

    @property
    def in_flight(self) -> int:
        return self._coordinator.in_flight

    @property
    def shared_token(self) -> CancellationToken:
        """Circuit-level token, renewed once observed cancelled.

        Raises:
            RuntimeError: When ``renew_cancellation`` is not enabled.
        """
        return self._coordinator.shared_token

    def is_open(self) -> bool:
        return self._state.is_open

    def is_closed(self) -> bool:
        return self._state.is_closed

    def is_half_open(self) -> bool:
        return self._state.is_half_open

    def snapshot(self) -> BreakerSnapshot:
        with self._lock:
            success_count = self._window.success_count
            failure_count = self._window.failure_count
            return BreakerSnapshot(
                name=self.name,
                state=self._state.current,
                success_count=success_count,
                failure_count=failure_count,
                total_requests=success_count + failure_count,
                failure_percentage=self._window.failure_percentage,
                options=self.config.as_dict(),
            )

    def to_dict(self) -> dict[str, object]:
        return self.snapshot().to_dict()

    def open(self) -> None:
        """Force the circuit ``OPEN`` and (re)start the recovery timer."""
        with self._lock:
            self._open()

    def close(self) -> None:
        """Force the circuit ``CLOSED`` with a fresh window."""
        with self._lock:
            self._close()

    def half_open(self) -> None:
        """Force the circuit ``HALF_OPEN`` with one probe permitted."""
        with self._lock:
            self._half_open()

    async def execute(self, operation: Operation[T]) -> T:
        """Invoke ``operation`` under circuit breaker protection.

        Args:
            operation: Async callable receiving the call's
                ``CancellationToken``. Pass the function, not its awaitable.

        Returns:
            The result of ``operation`` when admitted and successful.

        Raises:
            InvalidOperationError: When ``operation`` is not callable.
            CircuitOpenError: When the circuit is open or the half-open probe
                slot is taken.
            OperationTimeoutError: When the configured timeout elapses first.
            CallCancelledError: When the circuit opened mid-flight and
                ``cancel_on_open`` is enabled.
            Exception: The original exception from ``operation``.
        """
        if not callable(operation):
            raise InvalidOperationError(operation)

        with self._lock:
            self._evaluate_reset_condition()
            if self._state.is_open:
                self._reject()
                raise CircuitOpenError(self.name, CircuitState.OPEN)

            is_probe = False
            if self._state.is_half_open:
                if not self._state.try_acquire_probe():
                    self._reject()
                    raise CircuitOpenError(self.name, CircuitState.HALF_OPEN)
                is_probe = True

            token = self._coordinator.acquire()

        settled = False
        try:
            try:
                result = await self._run_guarded(operation, token)
            except _NotAwaitableError as exc:
                raise InvalidOperationError(exc.value) from None
            except Exception as exc:
                with self._lock:
                    self._handle_failure(exc, is_probe=is_probe)
                    settled = True
                raise

            with self._lock:
                self._handle_success(result, is_probe=is_probe)
                settled = True
            return result
        finally:
            if is_probe and not settled:
                with self._lock:
                    if self._state.is_half_open:
                        self._state.rearm_probe()

    async def _run_guarded(self, operation: Operation[T], token: CancellationToken) -> T:
        loop = asyncio.get_running_loop()
        cancelled: asyncio.Future[None] = loop.create_future()

        def _resolve_cancelled() -> None:
            if not cancelled.done():
                cancelled.set_result(None)

        token.add_listener(lambda _: loop.call_soon_threadsafe(_resolve_cancelled))

        timeout = self.config.timeout
        if timeout is not None:
            timer = self._scheduler.after(
                timeout, lambda: token.cancel(OperationTimeoutError(timeout))
            )
            token.add_listener(lambda _: timer.cancel())

        task: asyncio.Future[T] | None = None
        try:
            awaitable = operation(token)
            if not inspect.isawaitable(awaitable):
                raise _NotAwaitableError(awaitable)
            if asyncio.iscoroutine(awaitable):
                task = loop.create_task(
                    awaitable,
                    name=f"circuit_breaker:{self.name}:{_callable_name(operation)}",
                )
            else:
                task = asyncio.ensure_future(awaitable)

            await asyncio.wait({task, cancelled}, return_when=asyncio.FIRST_COMPLETED)
            if task.done():
                return task.result()

            reason = token.reason
            if reason is None or isinstance(reason, CallCancelledError):
                raise CallCancelledError(self.name)
            raise reason
        finally:
            if task is not None and not task.done():
                task.cancel()
            if not cancelled.done():
                cancelled.cancel()
            self._coordinator.release(token)

    def _handle_success(self, result: object | None, *, is_probe: bool) -> None:
        if is_probe and self._state.is_half_open:
            self._window.record_success_on_half_open()
            if self._window.success_count_on_half_open >= self.config.success_threshold:
                self._close()
            else:
                self._state.rearm_probe()

        self._window.record_success()
        self._events.publish(BreakerEvent.SUCCESS, result)

    def _handle_failure(self, exc: Exception, *, is_probe: bool) -> None:
        is_error = self.config.is_error
        if is_error is not None and not is_error(exc):
            self._handle_success(None, is_probe=is_probe)
            return

        if is_probe and self._state.is_half_open:
            self._window.record_failure_on_half_open()
            self._window.reset_success_on_half_open()
            if self._window.failure_count_on_half_open >= self.config.retry_attempts:
                self._open()
            else:
                self._state.rearm_probe()
        elif self._state.is_closed:
            self._window.record_failure()
            log_warning(
                self._logger,
                "circuit_breaker.call_failed",
                breaker=self.name,
                error_type=exc.__class__.__name__,
                failure_count=self._window.failure_count,
            )
            self._evaluate_reset_condition()

        self._events.publish(BreakerEvent.ERROR, exc)

    def _evaluate_reset_condition(self) -> None:
        if not self._state.is_closed:
            return
        if self._window.failure_percentage > self.config.failure_threshold_percentage:
            self._open()
            return
        threshold_count = self.config.failure_threshold_count
        if threshold_count > 0 and self._window.failure_count >= threshold_count:
            self._open()

    def _reject(self) -> None:
        log_info(
            self._logger,
            "circuit_breaker.rejected",
            breaker=self.name,
            state=str(self._state.current),
        )
        self._events.publish(BreakerEvent.REJECT)

    def _open(self) -> None:
        old = self._state.current
        failure_count = self._window.failure_count
        failure_percentage = self._window.failure_percentage
        self._state.set_open()
        self._state.disarm_probe()
        self._window.reset()
        self._start_recovery_timer()
        if self.config.cancel_on_open:
            self._coordinator.cancel_all(CallCancelledError(self.name))
        else:
            self._coordinator.cancel_shared(CallCancelledError(self.name))
        log_info(
            self._logger,
            "circuit_breaker.opened",
            breaker=self.name,
            previous_state=str(old),
            failure_count=failure_count,
            failure_percentage=failure_percentage,
        )
        self._events.publish(BreakerEvent.OPEN)

    def _close(self) -> None:
        old = self._state.current
        self._clear_recovery_timer()
        self._state.set_closed()
        self._state.disarm_probe()
        self._window.reset()
        log_info(
            self._logger,
            "circuit_breaker.closed",
            breaker=self.name,
            previous_state=str(old),
        )
        self._events.publish(BreakerEvent.CLOSE)

    def _half_open(self) -> None:
        old = self._state.current
        self._clear_recovery_timer()
        self._state.set_half_open()
        self._window.reset_half_open()
        self._state.rearm_probe()
        log_info(
            self._logger,
            "circuit_breaker.half_opened",
            breaker=self.name,
            previous_state=str(old),
        )
        self._events.publish(BreakerEvent.HALF_OPEN)

    def _start_recovery_timer(self) -> None:
        self._clear_recovery_timer()
        reset_timeout = self.config.reset_timeout
        if reset_timeout is None:
            return
        generation = self._timer_generation
        self._recovery_timer = self._scheduler.after(
            reset_timeout, lambda: self._on_recovery_timer(generation)
        )

    def _clear_recovery_timer(self) -> None:
        self._timer_generation += 1
        timer = self._recovery_timer
        self._recovery_timer = None
        if timer is not None:
            timer.cancel()

    def _on_recovery_timer(self, generation: int) -> None:
        with self._lock:
            if generation != self._timer_generation or not self._state.is_open:
                return
            self._half_open()
