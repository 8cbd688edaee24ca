from __future__ import annotations

import logging

import pytest

from book_liberator.core.events import EventBus, EventType


class TestEventBus:
    def test_delivery_in_subscription_order(self, item):
        bus = EventBus(log_events=False)
        calls: list[str] = []
        bus.subscribe(lambda e: calls.append("first"))
        bus.subscribe(lambda e: calls.append("second"))

        bus.emit(EventType.RUN_BEGIN, item)

        assert calls == ["first", "second"]

    def test_type_filter(self, item):
        bus = EventBus(log_events=False)
        seen = []
        bus.subscribe(seen.append, EventType.RUN_COMPLETED)

        bus.emit(EventType.RUN_BEGIN, item)
        event = bus.emit(EventType.RUN_COMPLETED, item)

        assert seen == [event]

    def test_unsubscribe(self, item):
        bus = EventBus(log_events=False)
        seen = []
        listener = bus.subscribe(seen.append)
        bus.unsubscribe(listener)

        bus.emit(EventType.RUN_BEGIN, item)

        assert seen == []

    def test_failing_listener_is_isolated(self, item, caplog: pytest.LogCaptureFixture):
        bus = EventBus(log_events=False)
        seen = []

        def broken(event):
            raise ValueError("boom")

        bus.subscribe(broken)
        bus.subscribe(seen.append)

        with caplog.at_level(logging.WARNING, logger="book_liberator.core.events"):
            bus.emit(EventType.STATUS_UPDATE, item, "hello")

        assert len(seen) == 1
        assert "boom" in caplog.text

    def test_events_are_logged(self, item, caplog: pytest.LogCaptureFixture):
        bus = EventBus()
        with caplog.at_level(logging.DEBUG, logger="book_liberator.core.events"):
            bus.emit(EventType.DECRYPT_BEGIN, item, "Begin decrypting")
            bus.emit(EventType.AUTHORS_DISCOVERED, item, "Jane Author")
            bus.emit(EventType.DECRYPT_PROGRESS, item, None)

        levels = [(r.levelno, r.getMessage()) for r in caplog.records]
        assert (logging.INFO, "[dim]decrypt_begin[/dim] Begin decrypting") in levels
        assert (logging.DEBUG, "authors_discovered: Jane Author") in levels
        assert len(levels) == 2

    def test_describe_hides_binary_payloads(self, item):
        bus = EventBus(log_events=False)
        event = bus.emit(EventType.COVER_ART_DISCOVERED, item, b"1234")
        assert event.describe() == "4 bytes"
