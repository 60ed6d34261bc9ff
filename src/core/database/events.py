"""
Case Warden - Store Event Bus
=============================

Typed publish/subscribe channel for case store changes.

DESIGN:
    Two ways to listen:
    - subscribe(listener): plain callback, returns an unsubscribe callable
    - subscription(maxsize): async context manager yielding a bounded
      asyncio.Queue, unsubscribed automatically on exit (one per
      dashboard connection)

    Delivery is best effort and at most once. There is no replay; a new
    subscriber pulls current state from the store instead. A full queue
    drops the event for that subscriber only. A failing callback is
    logged and never reaches the publisher.

Author: حَـــــنَّـــــا
Server: discord.gg/syria
"""

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Callable, Dict, List

from src.core.constants import EVENT_QUEUE_SIZE
from src.core.logger import logger


# =============================================================================
# Event Types
# =============================================================================

class StoreEventType(str, Enum):
    CASE_CREATED = "case:created"
    CASE_MESSAGE = "case:message"
    CASE_STATUS = "case:status"
    CASE_ASSIGNMENT = "case:assignment"
    CASE_SLA = "case:sla"
    CASE_DELETED = "case:deleted"
    CASES_UPDATED = "cases:updated"
    STATS_UPDATED = "stats:updated"


@dataclass(frozen=True)
class StoreEvent:
    type: StoreEventType
    payload: Dict[str, Any]
    timestamp: float = field(default_factory=time.time)


StoreListener = Callable[[StoreEvent], Any]


# =============================================================================
# Bus
# =============================================================================

class ModerationEventBus:
    """Fan-out of StoreEvents to a dynamic set of subscribers."""

    def __init__(self) -> None:
        self._listeners: List[StoreListener] = []
        self._queues: List[asyncio.Queue] = []
        self.dropped = 0

    @property
    def subscriber_count(self) -> int:
        return len(self._listeners) + len(self._queues)

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @asynccontextmanager
    async def subscription(self, maxsize: int = EVENT_QUEUE_SIZE) -> AsyncIterator[asyncio.Queue]:
        """
        Queue-backed subscription tied to the caller's lifetime.

        Usage:
            async with store.events.subscription() as queue:
                while True:
                    event = await queue.get()
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._queues.append(queue)
        try:
            yield queue
        finally:
            if queue in self._queues:
                self._queues.remove(queue)

    def publish(self, event_type: StoreEventType, payload: Dict[str, Any]) -> StoreEvent:
        event = StoreEvent(type=event_type, payload=payload)

        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.warning("Store Event Listener Failed", [
                    ("Event", event_type.value),
                    ("Error Type", type(e).__name__),
                    ("Error", str(e)[:100]),
                ])

        for queue in list(self._queues):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                self.dropped += 1
                logger.debug("Store Event Dropped", [
                    ("Event", event_type.value),
                    ("Queue Size", str(queue.maxsize)),
                ])

        return event


__all__ = [
    "StoreEventType",
    "StoreEvent",
    "StoreListener",
    "ModerationEventBus",
]
