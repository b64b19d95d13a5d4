"""Circuit breaker exceptions.

Callers can distinguish between:
  - A call being rejected because the circuit is open or the half-open probe
    slot is taken.
  - A call that did not settle before the configured timeout.
  - A call cancelled mid-flight because the circuit opened.
  - A caller handing ``execute`` something that is not a callable.

Errors raised by the guarded operation itself are never wrapped.
"""

from breakwater.circuit_breaker.state import CircuitState


class CircuitBreakerError(Exception):
    """Base exception for the circuit breaker package."""


class CircuitOpenError(CircuitBreakerError):
    """Raised when a call is rejected without running the operation.

    Attributes:
        breaker_name: Name of the breaker rejecting the call.
        state: Breaker state at rejection time (``OPEN`` or ``HALF_OPEN``).
    """

    def __init__(self, breaker_name: str, state: CircuitState) -> None:
        """Initialize a circuit-open exception payload.

        Args:
            breaker_name: Breaker rejecting the call.
            state: State that caused the rejection.
        """
        self.breaker_name = breaker_name
        self.state = state
        super().__init__(f"circuit_open: {breaker_name} state={state}")


class OperationTimeoutError(CircuitBreakerError, TimeoutError):
    """Raised when the guarded operation outlives the configured timeout."""

    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"operation_timed_out: timeout={timeout:g}s")


class CallCancelledError(CircuitBreakerError):
    """Raised to in-flight callers cancelled because the circuit opened."""

    def __init__(self, breaker_name: str) -> None:
        self.breaker_name = breaker_name
        super().__init__(f"call_cancelled: {breaker_name} opened mid-flight")


class InvalidOperationError(CircuitBreakerError, TypeError):
    """Raised when ``execute`` receives a non-callable operation, or one that
    does not return an awaitable."""

    def __init__(self, operation: object) -> None:
        self.operation_type = type(operation).__qualname__
        super().__init__(
            "invalid_operation: expected a callable returning an awaitable, got "
            f"{self.operation_type}; pass the function, not its result"
        )
