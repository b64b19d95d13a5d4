"""Trailing time window of call outcomes.

Timestamps are appended in clock order, so each sequence is always sorted and
eviction only ever drops a prefix. Half-open counters are scoped to the current
probe episode and are not time-bounded; the breaker resets them explicitly.
"""

from collections import deque
from collections.abc import Callable


class OutcomeWindow:
    """Success/failure timestamps confined to the last ``window_size`` seconds."""

    def __init__(self, window_size: float, *, clock: Callable[[], float]) -> None:
        """Create an empty window.

        Args:
            window_size: Width of the trailing window in seconds.
            clock: Monotonic time source returning seconds.
        """
        if window_size <= 0:
            raise ValueError("window_size must be > 0")
        self._window_size = window_size
        self._clock = clock
        self._successes: deque[float] = deque()
        self._failures: deque[float] = deque()
        self._half_open_successes = 0
        self._half_open_failures = 0

    @property
    def window_size(self) -> float:
        return self._window_size

    @property
    def success_count(self) -> int:
        self._evict(self._successes)
        return len(self._successes)

    @property
    def failure_count(self) -> int:
        self._evict(self._failures)
        return len(self._failures)

    @property
    def total_requests(self) -> int:
        return self.success_count + self.failure_count

    @property
    def failure_percentage(self) -> float:
        failures = self.failure_count
        total = self.success_count + failures
        if total == 0:
            return 0.0
        return failures * 100 / total

    @property
    def success_count_on_half_open(self) -> int:
        return self._half_open_successes

    @property
    def failure_count_on_half_open(self) -> int:
        return self._half_open_failures

    def record_success(self) -> None:
        self._successes.append(self._clock())

    def record_failure(self) -> None:
        self._failures.append(self._clock())

    def record_success_on_half_open(self) -> None:
        self._half_open_successes += 1

    def record_failure_on_half_open(self) -> None:
        self._half_open_failures += 1

    def reset(self) -> None:
        """Drop every recorded outcome, including half-open counters."""
        self._successes.clear()
        self._failures.clear()
        self.reset_half_open()

    def reset_half_open(self) -> None:
        self.reset_success_on_half_open()
        self._half_open_failures = 0

    def reset_success_on_half_open(self) -> None:
        """Break a partial half-open success streak after a probe failure."""
        self._half_open_successes = 0

    def _evict(self, timestamps: deque[float]) -> None:
        cutoff = self._clock() - self._window_size
        while timestamps and timestamps[0] < cutoff:
            timestamps.popleft()
