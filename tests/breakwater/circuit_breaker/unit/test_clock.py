from __future__ import annotations

import asyncio
import threading
import time

import pytest

from breakwater.circuit_breaker import CircuitBreaker, CircuitBreakerConfig, LoopScheduler


def test_loop_scheduler_falls_back_to_thread_timer_without_loop() -> None:
    scheduler = LoopScheduler()
    fired = threading.Event()

    timer = scheduler.after(0.01, fired.set)

    assert isinstance(timer, threading.Timer)
    assert fired.wait(timeout=1.0) is True


def test_loop_scheduler_thread_timer_can_be_cancelled() -> None:
    scheduler = LoopScheduler()
    fired = threading.Event()

    timer = scheduler.after(0.05, fired.set)
    timer.cancel()

    assert fired.wait(timeout=0.2) is False


def test_loop_scheduler_now_is_monotonic() -> None:
    scheduler = LoopScheduler()

    first = scheduler.now()
    second = scheduler.now()

    assert second >= first


def test_manual_open_outside_loop_still_recovers() -> None:
    breaker = CircuitBreaker("svc", config=CircuitBreakerConfig(reset_timeout=0.01))

    breaker.open()
    deadline = time.monotonic() + 1.0
    while not breaker.is_half_open() and time.monotonic() < deadline:
        time.sleep(0.01)

    assert breaker.is_half_open() is True


@pytest.mark.asyncio
async def test_loop_scheduler_uses_running_loop() -> None:
    scheduler = LoopScheduler()
    fired = asyncio.Event()

    timer = scheduler.after(0.0, fired.set)

    assert isinstance(timer, asyncio.TimerHandle)
    await asyncio.wait_for(fired.wait(), timeout=1.0)
