from __future__ import annotations

import pytest

from breakwater.circuit_breaker import BreakerEvent, EventBus


def test_publish_calls_subscribers_in_order_with_payload() -> None:
    bus = EventBus()
    calls: list[tuple[str, object | None]] = []
    bus.subscribe(BreakerEvent.SUCCESS, lambda payload: calls.append(("a", payload)))
    bus.subscribe(BreakerEvent.SUCCESS, lambda payload: calls.append(("b", payload)))
    bus.subscribe(BreakerEvent.ERROR, lambda payload: calls.append(("err", payload)))

    bus.publish(BreakerEvent.SUCCESS, "ok")

    assert calls == [("a", "ok"), ("b", "ok")]


def test_unsubscribe_stops_delivery() -> None:
    bus = EventBus()
    calls: list[object | None] = []
    unsubscribe = bus.subscribe(BreakerEvent.OPEN, calls.append)

    unsubscribe()
    unsubscribe()
    bus.publish(BreakerEvent.OPEN)

    assert calls == []
    assert bus.subscriber_count(BreakerEvent.OPEN) == 0


def test_subscribe_accepts_event_name_strings() -> None:
    bus = EventBus()
    calls: list[object | None] = []
    bus.subscribe("half_open", calls.append)  # type: ignore[arg-type]

    bus.publish(BreakerEvent.HALF_OPEN)

    assert calls == [None]


def test_subscribe_rejects_unknown_event() -> None:
    bus = EventBus()

    with pytest.raises(ValueError):
        bus.subscribe("halfOpen", lambda _: None)  # type: ignore[arg-type]


def test_subscriber_exceptions_are_isolated() -> None:
    bus = EventBus()
    calls: list[object | None] = []

    def _boom(_: object | None) -> None:
        raise RuntimeError("boom")

    bus.subscribe(BreakerEvent.REJECT, _boom)
    bus.subscribe(BreakerEvent.REJECT, calls.append)

    bus.publish(BreakerEvent.REJECT)

    assert calls == [None]
