"""
The notification protocol of a liberation run.

Every run broadcasts a fixed vocabulary of events to zero or more listeners.
Delivery is synchronous at the firing point and in subscription order, so
listeners (progress displays, loggers) must return quickly. Events raised from
the decrypt engine's callbacks are delivered on the engine's worker thread.
"""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from book_liberator.models.book import AcquisitionItem

log = logging.getLogger(__name__)


class EventType(str, Enum):
    RUN_BEGIN = "run_begin"
    DECRYPT_BEGIN = "decrypt_begin"
    DECRYPT_PROGRESS = "decrypt_progress"
    TIME_REMAINING = "time_remaining"
    TITLE_DISCOVERED = "title_discovered"
    AUTHORS_DISCOVERED = "authors_discovered"
    NARRATORS_DISCOVERED = "narrators_discovered"
    COVER_ART_DISCOVERED = "cover_art_discovered"
    COVER_ART_REQUESTED = "cover_art_requested"
    DECRYPT_COMPLETED = "decrypt_completed"
    STATUS_UPDATE = "status_update"
    RUN_COMPLETED = "run_completed"


# Events that may legitimately fire many times in one run
PERIODIC_EVENTS = frozenset({EventType.DECRYPT_PROGRESS, EventType.TIME_REMAINING})

_DEBUG_EVENTS = frozenset(
    {
        EventType.TITLE_DISCOVERED,
        EventType.AUTHORS_DISCOVERED,
        EventType.NARRATORS_DISCOVERED,
        EventType.COVER_ART_DISCOVERED,
        EventType.COVER_ART_REQUESTED,
    }
)
_INFO_EVENTS = frozenset(
    {
        EventType.RUN_BEGIN,
        EventType.DECRYPT_BEGIN,
        EventType.DECRYPT_COMPLETED,
        EventType.STATUS_UPDATE,
        EventType.RUN_COMPLETED,
    }
)


@dataclass(frozen=True)
class LiberationEvent:
    """
    One notification.

    Payload by type:
        RUN_BEGIN / RUN_COMPLETED: None (the item is on the event)
        DECRYPT_BEGIN / DECRYPT_COMPLETED / STATUS_UPDATE: str message
        DECRYPT_PROGRESS: DecryptProgress
        TIME_REMAINING: datetime.timedelta
        *_DISCOVERED (text): str
        COVER_ART_DISCOVERED: bytes
        COVER_ART_REQUESTED: Callable[[bytes], None] that injects artwork
    """

    type: EventType
    item: AcquisitionItem
    payload: Any = None

    def describe(self) -> str:
        if self.type == EventType.COVER_ART_DISCOVERED:
            return f"{len(self.payload or b'')} bytes"
        if self.type == EventType.COVER_ART_REQUESTED:
            return "artwork injection offered"
        if self.payload is None:
            return str(self.item)
        return str(self.payload)


Listener = Callable[[LiberationEvent], None]


class EventBus:
    """Fire-and-forget broadcaster with listener registration."""

    def __init__(self, log_events: bool = True):
        self._listeners: list[tuple[Listener, Optional[frozenset[EventType]]]] = []
        self._lock = threading.Lock()
        if log_events:
            self.subscribe(_log_event)

    def subscribe(self, listener: Listener, *types: EventType) -> Listener:
        """
        Registers a listener for the given event types, or for every event when
        no type is given. Returns the listener so it can be used as a decorator.
        """
        with self._lock:
            self._listeners.append((listener, frozenset(types) if types else None))
        return listener

    def unsubscribe(self, listener: Listener) -> None:
        with self._lock:
            self._listeners = [(l, t) for l, t in self._listeners if l is not listener]

    def emit(
        self, event_type: EventType, item: AcquisitionItem, payload: Any = None
    ) -> LiberationEvent:
        event = LiberationEvent(event_type, item, payload)
        with self._lock:
            listeners = list(self._listeners)

        for listener, types in listeners:
            if types is not None and event_type not in types:
                continue
            try:
                listener(event)
            except Exception as e:
                # A broken observer must never take down a run.
                log.warning(
                    f"Listener {getattr(listener, '__name__', listener)!r} failed "
                    f"on {event_type.value}: {e}",
                    exc_info=log.getEffectiveLevel() == logging.DEBUG,
                )
        return event


def _log_event(event: LiberationEvent) -> None:
    if event.type in _INFO_EVENTS:
        log.info(f"[dim]{event.type.value}[/dim] {event.describe()}")
    elif event.type in _DEBUG_EVENTS:
        log.debug(f"{event.type.value}: {event.describe()}")
