"""Circuit breaker state primitives."""

import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType


class CircuitState(StrEnum):
    """Circuit breaker state values."""

    CLOSED = "closed"
    HALF_OPEN = "half_open"
    OPEN = "open"


class AdmissionState:
    """Three-state admission machine plus the half-open probe permit.

    The permit is only meaningful while ``HALF_OPEN``: it is armed on entry,
    consumed by the single admitted probe and re-armed once that probe settles
    without leaving ``HALF_OPEN``.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._probe_permitted = False

    @property
    def current(self) -> CircuitState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state == CircuitState.OPEN

    @property
    def is_closed(self) -> bool:
        return self._state == CircuitState.CLOSED

    @property
    def is_half_open(self) -> bool:
        return self._state == CircuitState.HALF_OPEN

    @property
    def probe_permitted(self) -> bool:
        return self._probe_permitted

    def set_open(self) -> None:
        self._state = CircuitState.OPEN

    def set_closed(self) -> None:
        self._state = CircuitState.CLOSED

    def set_half_open(self) -> None:
        self._state = CircuitState.HALF_OPEN

    def try_acquire_probe(self) -> bool:
        """Consume the probe permit if it is available.

        Returns:
            ``True`` when the caller now owns the probe slot.
        """
        with self._lock:
            if not self._probe_permitted:
                return False
            self._probe_permitted = False
            return True

    def rearm_probe(self) -> None:
        with self._lock:
            self._probe_permitted = True

    def disarm_probe(self) -> None:
        with self._lock:
            self._probe_permitted = False


@dataclass(frozen=True)
class BreakerSnapshot:
    """Point-in-time view of breaker internals useful for metrics/logging.

    Attributes:
        name: Breaker name.
        state: Current admission state.
        success_count: Successes recorded inside the trailing window.
        failure_count: Failures recorded inside the trailing window.
        total_requests: ``success_count + failure_count``.
        failure_percentage: Failure ratio in percent, ``0.0`` without traffic.
        options: Read-only rendering of the breaker configuration.
    """

    name: str
    state: CircuitState
    success_count: int
    failure_count: int
    total_requests: int
    failure_percentage: float
    options: Mapping[str, object] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Freeze the options mapping to keep snapshots read-only."""
        object.__setattr__(self, "options", MappingProxyType(dict(self.options)))

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    @property
    def is_closed(self) -> bool:
        return self.state == CircuitState.CLOSED

    @property
    def is_half_open(self) -> bool:
        return self.state == CircuitState.HALF_OPEN

    def to_dict(self) -> dict[str, object]:
        """Render the snapshot as plain JSON-friendly data."""
        return {
            "name": self.name,
            "state": str(self.state),
            "is_open": self.is_open,
            "is_closed": self.is_closed,
            "is_half_open": self.is_half_open,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "total_requests": self.total_requests,
            "failure_percentage": self.failure_percentage,
            "options": dict(self.options),
        }
