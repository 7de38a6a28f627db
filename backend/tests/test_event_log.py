"""
Unit tests for the append-only event log.
"""

import logging
from datetime import timezone

import pytest

from backend.core.event_log import Event, EventLevel, EventLog


class TestEventLog:
    """Test cases for EventLog."""

    def test_append_stamps_event(self):
        log = EventLog()
        event = log.append(EventLevel.INFO, "Sending order")

        assert isinstance(event, Event)
        assert event.level == EventLevel.INFO
        assert event.message == "Sending order"
        assert event.timestamp.tzinfo == timezone.utc
        assert log.all() == (event,)

    def test_order_preserved_and_ids_unique(self):
        log = EventLog()
        events = [log.append(EventLevel.SUCCESS, f"event {i}") for i in range(20)]

        assert list(log.all()) == events
        assert len({e.event_id for e in events}) == 20
        assert len(log) == 20

    def test_all_returns_immutable_snapshot(self):
        log = EventLog()
        log.append(EventLevel.INFO, "first")
        snapshot = log.all()
        log.append(EventLevel.INFO, "second")

        assert isinstance(snapshot, tuple)
        assert len(snapshot) == 1

    def test_events_are_immutable(self):
        event = EventLog().append(EventLevel.WARN, "careful")
        with pytest.raises(AttributeError):
            event.message = "changed"

    def test_tail_and_since(self):
        log = EventLog()
        for i in range(5):
            log.append(EventLevel.INFO, str(i))

        assert [e.message for e in log.tail(2)] == ["3", "4"]
        assert log.tail(0) == ()
        assert [e.message for e in log.since(3)] == ["3", "4"]
        assert len(log.since(-1)) == 5

    def test_listeners_notified(self):
        log = EventLog()
        received = []
        log.add_listener(received.append)

        event = log.append(EventLevel.ERROR, "feed down")
        assert received == [event]

        log.remove_listener(received.append)
        log.append(EventLevel.INFO, "ignored")
        assert received == [event]

    def test_failing_listener_does_not_break_append(self):
        log = EventLog()
        received = []

        def broken(event):
            raise RuntimeError("boom")

        log.add_listener(broken)
        log.add_listener(received.append)
        log.append(EventLevel.INFO, "still appended")

        assert len(log) == 1
        assert len(received) == 1

    def test_mirrored_to_logger(self, caplog):
        log = EventLog()
        with caplog.at_level(logging.INFO, logger="backend.core.event_log"):
            log.append(EventLevel.SUCCESS, "Market Order FILLED")
            log.append(EventLevel.WARN, "Insufficient data")

        levels = [record.levelno for record in caplog.records]
        assert levels == [logging.INFO, logging.WARNING]

    def test_to_dict(self):
        event = EventLog().append(EventLevel.SUCCESS, "done")
        data = event.to_dict()

        assert data["level"] == "SUCCESS"
        assert data["message"] == "done"
        assert data["event_id"] == str(event.event_id)
