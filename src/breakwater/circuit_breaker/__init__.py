"""Transport-agnostic async circuit breaker.

This package implements the circuit breaker pattern from *Release It!* over a
trailing time window of outcomes.

Key behavior notes:
  - The circuit opens from ``CLOSED`` when the windowed failure percentage
    exceeds ``failure_threshold_percentage`` or, when configured, windowed
    failures reach ``failure_threshold_count``. Either condition suffices.
  - ``OPEN`` moves to ``HALF_OPEN`` only when the recovery timer fires.
    Without ``reset_timeout`` the circuit stays open until closed manually.
  - Half-open probing admits exactly one in-flight probe at a time. Concurrent
    callers are rejected without their operation ever running.
  - Exceptions rejected by ``is_error`` are booked as successes but still
    reach the caller.
  - In-flight calls keep running when the circuit opens unless
    ``cancel_on_open`` is enabled.
"""

from breakwater.circuit_breaker.breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    Operation,
)
from breakwater.circuit_breaker.cancellation import (
    CancellationCoordinator,
    CancellationToken,
)
from breakwater.circuit_breaker.clock import LoopScheduler, Scheduler, Timer
from breakwater.circuit_breaker.events import BreakerEvent, EventBus
from breakwater.circuit_breaker.exceptions import (
    CallCancelledError,
    CircuitBreakerError,
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

__all__ = [
    "AdmissionState",
    "BreakerEvent",
    "BreakerSnapshot",
    "CallCancelledError",
    "CancellationCoordinator",
    "CancellationToken",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerError",
    "CircuitOpenError",
    "CircuitState",
    "EventBus",
    "InvalidOperationError",
    "LoopScheduler",
    "Operation",
    "OperationTimeoutError",
    "OutcomeWindow",
    "Scheduler",
    "Timer",
]
