"""
Mastery event bus.

Every committed transaction is announced on the bus: absorbs, applies,
level-ups, letter unlocks, rejections and snapshot pushes.  Notifications to
the player ("You learned Sharpness I!") are bus handlers, not engine code.

=============================================================================
RULES
=============================================================================

1. THE BUS RECORDS FACTS
   - Events are emitted after the ledger mutation is committed.
   - "mastery:absorbed" means the absorb happened.

2. EVENTS ARE IMMUTABLE
   - Handlers receive frozen events and cannot change them.

3. EMIT IS SYNCHRONOUS
   - Sequence numbers give a global order.
   - Sync handlers run inline, async handlers are scheduled.

4. HANDLER ERRORS STAY IN THE HANDLER
   - A failing handler is logged; the event and the transaction stand.

=============================================================================
USAGE
=============================================================================

    from enchant_mastery.core.bus import bus
    from enchant_mastery.core.events import Events

    unsubscribe = bus.on(Events.LETTER_UNLOCKED, lambda e: print(e.detail["letter"]))
    ...
    unsubscribe()

=============================================================================
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
from collections import deque
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

logger = logging.getLogger(__name__)


# =============================================================================
# TYPE ALIASES
# =============================================================================

SyncHandler = Callable[["MasteryEvent"], None]
AsyncHandler = Callable[["MasteryEvent"], Coroutine[Any, Any, None]]
EventHandler = SyncHandler | AsyncHandler
Unsubscribe = Callable[[], None]


# =============================================================================
# EVENT
# =============================================================================


@dataclass(frozen=True)
class EventMetadata:
    """
    Metadata attached to every event.

    Attributes:
        timestamp: Unix epoch milliseconds (UTC).  For display only.
        source:    Component that emitted the event, e.g. "engine", "admin".
        sequence:  Monotonic counter; the only reliable ordering key.
    """

    timestamp: int
    source: str
    sequence: int

    @staticmethod
    def create(source: str, sequence: int) -> EventMetadata:
        now_ms = int(datetime.now(UTC).timestamp() * 1000)
        return EventMetadata(timestamp=now_ms, source=source, sequence=sequence)


@dataclass(frozen=True)
class MasteryEvent:
    """
    A single event on the bus.

    Attributes:
        type:   Event type, one of :class:`~enchant_mastery.core.events.Events`.
        detail: Event payload.  Treat as read-only.
        _meta:  Timestamp, source and sequence number.
    """

    type: str
    detail: dict = field(default_factory=dict)
    _meta: EventMetadata | None = field(default=None)

    def __str__(self) -> str:
        if self._meta:
            return (
                f"MasteryEvent(type='{self.type}', "
                f"source='{self._meta.source}', seq={self._meta.sequence})"
            )
        return f"MasteryEvent(type='{self.type}')"

    @property
    def meta(self) -> EventMetadata | None:
        return self._meta


# =============================================================================
# BUS (SINGLETON)
# =============================================================================


class MasteryBus:
    """
    The event bus.  One instance per process.

    Unlike a single-threaded game loop, transactions for different players
    may run on different threads, so sequence assignment and the handler
    registry are guarded by a lock.  Handlers are invoked outside the lock so
    a handler may itself emit.

    Key methods:
    - emit(): record an event and notify handlers
    - on() / once(): subscribe, returning an unsubscribe function
    - get_event_log(): bounded history for debugging and tests
    """

    _instance: MasteryBus | None = None
    _initialized: bool = False

    def __new__(cls) -> MasteryBus:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        if MasteryBus._initialized:
            return

        # event_type -> handlers, in registration order
        self._handlers: dict[str, list[EventHandler]] = {}
        self._event_log: deque[MasteryEvent] = deque(maxlen=10000)
        self._sequence: int = 0
        self._lock = threading.RLock()
        self.debug: bool = False

        MasteryBus._initialized = True
        logger.info("Mastery bus initialized")

    # =========================================================================
    # EMIT
    # =========================================================================

    def emit(
        self, event_type: str, detail: dict[str, Any] | None = None, source: str = "engine"
    ) -> MasteryEvent:
        """
        Emit an event.

        When this returns the event has a sequence number, is in the log,
        every sync handler has run and every async handler is scheduled.

        Args:
            event_type: Event type string ("domain:action").
            detail:     Payload.  Defaults to an empty dict.
            source:     Emitting component.

        Returns:
            The committed :class:`MasteryEvent`.
        """
        with self._lock:
            self._sequence += 1
            event = MasteryEvent(
                type=event_type,
                detail=detail if detail is not None else {},
                _meta=EventMetadata.create(source, self._sequence),
            )
            self._event_log.append(event)
            handlers = list(self._handlers.get(event_type, ()))

        if self.debug:
            logger.debug("EMIT [%d]: %s from %s", event.meta.sequence, event.type, source)

        for handler in handlers:
            try:
                if inspect.iscoroutinefunction(handler):
                    self._schedule_async_handler(handler, event)
                else:
                    handler(event)
            except Exception:
                logger.error("Handler error for '%s'", event.type, exc_info=True)

        return event

    def _schedule_async_handler(self, handler: AsyncHandler, event: MasteryEvent) -> None:
        """Run *handler* on the running loop, or synchronously when there is none."""
        try:
            loop = asyncio.get_running_loop()
            loop.create_task(handler(event))
        except RuntimeError:
            asyncio.run(handler(event))

    # =========================================================================
    # SUBSCRIBE
    # =========================================================================

    def on(self, event_type: str, handler: EventHandler) -> Unsubscribe:
        """
        Subscribe *handler* to *event_type*.

        Returns:
            A function that removes the subscription.  Calling it twice is
            harmless.
        """
        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)

        def unsubscribe() -> None:
            with self._lock:
                handlers = self._handlers.get(event_type, [])
                if handler in handlers:
                    handlers.remove(handler)

        return unsubscribe

    def once(self, event_type: str, handler: EventHandler) -> Unsubscribe:
        """Subscribe *handler* for the next *event_type* event only."""
        unsub: Unsubscribe | None = None

        def one_time_wrapper(event: MasteryEvent) -> None:
            try:
                if inspect.iscoroutinefunction(handler):
                    self._schedule_async_handler(handler, event)
                else:
                    handler(event)
            finally:
                if unsub is not None:
                    unsub()

        unsub = self.on(event_type, one_time_wrapper)
        return unsub

    # =========================================================================
    # INSPECTION
    # =========================================================================

    def get_event_log(self, limit: int | None = None) -> list[MasteryEvent]:
        """Return logged events, oldest first (the last *limit* when given)."""
        with self._lock:
            events = list(self._event_log)
        if limit is not None:
            return events[-limit:]
        return events

    def events_of_type(self, event_type: str) -> list[MasteryEvent]:
        return [event for event in self.get_event_log() if event.type == event_type]

    def get_sequence(self) -> int:
        return self._sequence

    def get_handler_count(self, event_type: str) -> int:
        return len(self._handlers.get(event_type, ()))

    # =========================================================================
    # TESTING SUPPORT
    # =========================================================================

    @classmethod
    def reset_for_testing(cls) -> None:
        """
        Drop the singleton so the next ``MasteryBus()`` is a fresh bus.

        *** NOT FOR PRODUCTION USE ***
        """
        cls._instance = None
        cls._initialized = False

    def clear_event_log(self) -> None:
        with self._lock:
            self._event_log.clear()


# The process-wide bus.  Engines use it unless another bus is injected.
bus = MasteryBus()
