"""Tests for the in-process event bus."""

from datetime import timedelta

from cakeshop.application.event_bus import EventBus
from cakeshop.domain.base import utcnow
from cakeshop.domain.events import BusinessEvent, EventName


class Recorder:
    """Collects every event it is handed."""

    def __init__(self) -> None:
        self.events: list[BusinessEvent] = []

    def __call__(self, event: BusinessEvent) -> None:
        self.events.append(event)

    notify = audit = stock_changed = __call__


class TestSubscription:
    """Tests for subscribe and unsubscribe."""

    def test_handler_receives_matching_events(self) -> None:
        """Handlers only see the event they subscribed to."""
        bus = EventBus()
        recorder = Recorder()
        bus.subscribe(EventName.ORDER_CONFIRMED, recorder)

        bus.emit(EventName.ORDER_CONFIRMED, {"order_id": "ORD-PRM-20260310-0001"})
        bus.emit(EventName.ORDER_CANCELLED, {"order_id": "ORD-PRM-20260310-0001"})

        assert [e.name for e in recorder.events] == ["orderConfirmed"]
        assert recorder.events[0].data == {"order_id": "ORD-PRM-20260310-0001"}

    def test_string_and_enum_names_match(self) -> None:
        """Plain strings and EventName members are interchangeable."""
        bus = EventBus()
        recorder = Recorder()
        bus.subscribe("stockLow", recorder)
        bus.emit(EventName.STOCK_LOW)
        assert len(recorder.events) == 1

    def test_wildcard_handler_sees_everything(self) -> None:
        """subscribe_all handlers receive every event."""
        bus = EventBus()
        recorder = Recorder()
        bus.subscribe_all(recorder)
        bus.emit("customEvent")
        bus.emit(EventName.STOCK_OUT)
        assert [e.name for e in recorder.events] == ["customEvent", "stockOut"]

    def test_unsubscribe(self) -> None:
        """Unsubscribed handlers stop receiving events."""
        bus = EventBus()
        recorder = Recorder()
        bus.subscribe(EventName.ORDER_READY, recorder)

        assert bus.unsubscribe(EventName.ORDER_READY, recorder)
        assert not bus.unsubscribe(EventName.ORDER_READY, recorder)
        bus.emit(EventName.ORDER_READY)
        assert recorder.events == []

    def test_register_typed_subscribers(self) -> None:
        """Typed subscribers are wired to their event groups."""
        bus = EventBus()
        notifier, auditor, watcher = Recorder(), Recorder(), Recorder()
        bus.register(notifier=notifier, auditor=auditor, inventory_watcher=watcher)

        bus.emit(EventName.REFUND_REQUESTED)
        bus.emit(EventName.STATE_TRANSITION)
        bus.emit(EventName.STOCK_RESTORED)

        assert [e.name for e in notifier.events] == ["refundRequested"]
        assert [e.name for e in auditor.events] == ["stateTransition"]
        assert [e.name for e in watcher.events] == ["stockRestored"]
        assert bus.subscriber_count(EventName.BUSINESS_ERROR) == 1


class TestHandlerIsolation:
    """Tests for failure isolation between handlers."""

    def test_failing_handler_does_not_stop_others(self) -> None:
        """A raising handler is skipped and counted."""
        bus = EventBus()
        recorder = Recorder()

        def broken(event: BusinessEvent) -> None:
            raise RuntimeError("smtp down")

        bus.subscribe(EventName.ORDER_CONFIRMED, broken)
        bus.subscribe(EventName.ORDER_CONFIRMED, recorder)

        event = bus.emit(EventName.ORDER_CONFIRMED, {"order_id": "ORD-PRM-20260310-0001"})

        assert recorder.events == [event]
        assert bus.get_event_stats()["handler_failures"] == 1


class TestHistory:
    """Tests for the bounded event history."""

    def test_history_is_bounded(self) -> None:
        """Only the most recent events are kept."""
        bus = EventBus(max_history=3)
        for index in range(5):
            bus.emit("tick", {"index": index})

        history = bus.get_event_history()
        assert [e.data["index"] for e in history] == [2, 3, 4]
        assert bus.get_event_stats()["total_events"] == 3

    def test_filters(self) -> None:
        """History filters by name, time and limit."""
        bus = EventBus()
        bus.emit("a")
        bus.emit("b")
        bus.emit("a")

        assert len(bus.get_event_history("a")) == 2
        assert [e.name for e in bus.get_event_history(limit=2)] == ["b", "a"]
        assert bus.get_event_history(limit=0) == []
        assert bus.get_event_history(since=utcnow() + timedelta(minutes=1)) == []

    def test_stats(self) -> None:
        """Stats count events by name."""
        bus = EventBus(max_history=10)
        assert bus.get_event_stats()["oldest_event"] is None

        bus.emit("a")
        bus.emit("a")
        bus.emit("b")

        stats = bus.get_event_stats()
        assert stats["event_counts"] == {"a": 2, "b": 1}
        assert stats["max_history"] == 10
        assert stats["newest_event"] is not None

    def test_clear_history(self) -> None:
        """Clearing empties the history."""
        bus = EventBus()
        bus.emit("a")
        bus.clear_event_history()
        assert bus.get_event_history() == []
