from __future__ import annotations

from event_bus import PLAYBACK_ENDED, PLAYBACK_STARTED, EventBus


def test_handlers_receive_events_in_order() -> None:
    bus = EventBus()
    seen: list[tuple[str, object]] = []
    bus.subscribe(PLAYBACK_STARTED, lambda p: seen.append(("start", p)))
    bus.subscribe(PLAYBACK_ENDED, lambda p: seen.append(("end", p)))

    bus.emit(PLAYBACK_STARTED)
    bus.emit(PLAYBACK_ENDED, "done")

    assert seen == [("start", None), ("end", "done")]


def test_failing_handler_does_not_block_others() -> None:
    bus = EventBus()
    seen: list[object] = []

    def broken(_payload: object) -> None:
        raise ValueError("boom")

    bus.subscribe("x", broken)
    bus.subscribe("x", seen.append)
    bus.emit("x", 1)

    assert seen == [1]


def test_unsubscribe_stops_delivery() -> None:
    bus = EventBus()
    seen: list[object] = []
    bus.subscribe("x", seen.append)
    bus.unsubscribe("x", seen.append)
    bus.unsubscribe("missing", seen.append)
    bus.emit("x", 1)

    assert seen == []
