from __future__ import annotations

import pytest

from breakwater.circuit_breaker import OutcomeWindow
from tests.breakwater.support.fakes import FakeScheduler


def _window(clock: FakeScheduler, size: float = 0.1) -> OutcomeWindow:
    return OutcomeWindow(size, clock=clock.now)


def test_empty_window_reports_zero(fake_scheduler: FakeScheduler) -> None:
    window = _window(fake_scheduler)

    assert window.success_count == 0
    assert window.failure_count == 0
    assert window.total_requests == 0
    assert window.failure_percentage == 0.0


def test_failure_percentage_tracks_ratio(fake_scheduler: FakeScheduler) -> None:
    window = _window(fake_scheduler)

    window.record_success()
    window.record_failure()
    window.record_failure()

    assert window.total_requests == 3
    assert window.failure_percentage == pytest.approx(66.67, abs=0.01)


def test_single_failure_is_one_hundred_percent(fake_scheduler: FakeScheduler) -> None:
    window = _window(fake_scheduler)

    window.record_failure()

    assert window.failure_percentage == 100.0


def test_entries_expire_after_window(fake_scheduler: FakeScheduler) -> None:
    window = _window(fake_scheduler)
    window.record_success()
    window.record_failure()
    assert window.failure_percentage == 50.0

    fake_scheduler.advance(0.15)

    assert window.success_count == 0
    assert window.failure_count == 0
    assert window.total_requests == 0
    assert window.failure_percentage == 0.0


def test_only_stale_prefix_is_evicted(fake_scheduler: FakeScheduler) -> None:
    window = _window(fake_scheduler, size=10.0)
    window.record_failure()
    fake_scheduler.advance(6.0)
    window.record_failure()
    window.record_success()

    fake_scheduler.advance(6.0)

    assert window.failure_count == 1
    assert window.success_count == 1
    assert window.failure_percentage == 50.0


def test_entry_exactly_at_cutoff_is_retained(fake_scheduler: FakeScheduler) -> None:
    window = _window(fake_scheduler, size=5.0)
    window.record_failure()

    fake_scheduler.advance(5.0)

    assert window.failure_count == 1


def test_reset_clears_timestamps_and_half_open_counters(
    fake_scheduler: FakeScheduler,
) -> None:
    window = _window(fake_scheduler)
    window.record_success()
    window.record_failure()
    window.record_success_on_half_open()
    window.record_failure_on_half_open()

    window.reset()

    assert window.total_requests == 0
    assert window.success_count_on_half_open == 0
    assert window.failure_count_on_half_open == 0


def test_half_open_counters_ignore_window_expiry(
    fake_scheduler: FakeScheduler,
) -> None:
    window = _window(fake_scheduler)
    window.record_success_on_half_open()
    window.record_failure_on_half_open()

    fake_scheduler.advance(60.0)

    assert window.success_count_on_half_open == 1
    assert window.failure_count_on_half_open == 1


def test_reset_success_on_half_open_keeps_failures(
    fake_scheduler: FakeScheduler,
) -> None:
    window = _window(fake_scheduler)
    window.record_success_on_half_open()
    window.record_success_on_half_open()
    window.record_failure_on_half_open()

    window.reset_success_on_half_open()

    assert window.success_count_on_half_open == 0
    assert window.failure_count_on_half_open == 1


def test_window_rejects_non_positive_size(fake_scheduler: FakeScheduler) -> None:
    with pytest.raises(ValueError, match="window_size"):
        OutcomeWindow(0, clock=fake_scheduler.now)
