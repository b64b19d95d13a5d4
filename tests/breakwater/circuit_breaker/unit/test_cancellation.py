from __future__ import annotations

import threading

import pytest

from breakwater.circuit_breaker import CancellationCoordinator, CancellationToken


def test_cancel_is_idempotent_and_fires_listeners_once() -> None:
    token = CancellationToken()
    calls: list[BaseException | None] = []
    token.add_listener(calls.append)
    reason = RuntimeError("stop")

    assert token.cancel(reason) is True
    assert token.cancel(RuntimeError("again")) is False

    assert calls == [reason]
    assert token.cancelled is True
    assert token.reason is reason


def test_listener_added_after_cancel_runs_immediately() -> None:
    token = CancellationToken()
    token.cancel()
    calls: list[BaseException | None] = []

    token.add_listener(calls.append)

    assert calls == [None]


def test_removed_listener_is_not_called() -> None:
    token = CancellationToken()
    calls: list[BaseException | None] = []
    remove = token.add_listener(calls.append)

    remove()
    remove()
    token.cancel()

    assert calls == []


def test_failing_listener_does_not_block_others() -> None:
    token = CancellationToken()
    calls: list[str] = []

    def _boom(_: BaseException | None) -> None:
        raise RuntimeError("boom")

    token.add_listener(_boom)
    token.add_listener(lambda _: calls.append("after"))

    assert token.cancel() is True
    assert calls == ["after"]


def test_raise_if_cancelled() -> None:
    token = CancellationToken()
    token.raise_if_cancelled()

    token.cancel(ValueError("cancelled"))

    with pytest.raises(ValueError, match="cancelled"):
        token.raise_if_cancelled()


def test_concurrent_cancels_fire_listener_once() -> None:
    token = CancellationToken()
    calls: list[BaseException | None] = []
    token.add_listener(calls.append)
    barrier = threading.Barrier(8)
    results: list[bool] = []

    def _cancel() -> None:
        barrier.wait()
        results.append(token.cancel())

    threads = [threading.Thread(target=_cancel) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert results.count(True) == 1
    assert len(calls) == 1


def test_coordinator_issues_independent_tokens() -> None:
    coordinator = CancellationCoordinator()

    first = coordinator.acquire()
    second = coordinator.acquire()
    assert first is not second
    assert coordinator.in_flight == 2

    coordinator.release(first)
    coordinator.release(first)

    assert first.cancelled is True
    assert second.cancelled is False
    assert coordinator.in_flight == 1


def test_cancel_all_cancels_live_tokens_only() -> None:
    coordinator = CancellationCoordinator()
    released = coordinator.acquire()
    coordinator.release(released)
    live = [coordinator.acquire(), coordinator.acquire()]

    assert coordinator.cancel_all(RuntimeError("open")) == 2

    assert all(token.cancelled for token in live)
    assert coordinator.in_flight == 0


def test_shared_token_requires_renew_mode() -> None:
    coordinator = CancellationCoordinator()

    with pytest.raises(RuntimeError, match="renew"):
        _ = coordinator.shared_token
    assert coordinator.cancel_shared() is False


def test_shared_token_is_reused_until_cancelled_then_renewed() -> None:
    coordinator = CancellationCoordinator(renew=True)

    first = coordinator.shared_token
    assert coordinator.shared_token is first

    assert coordinator.cancel_shared(RuntimeError("open")) is True
    assert first.cancelled is True

    renewed = coordinator.shared_token
    assert renewed is not first
    assert renewed.cancelled is False


def test_cancel_all_also_cancels_shared_token() -> None:
    coordinator = CancellationCoordinator(renew=True)
    shared = coordinator.shared_token

    coordinator.cancel_all()

    assert shared.cancelled is True
