"""
Change Broker - in-process pub/sub for feed and folder changes.

Each subscriber owns a bounded queue. Publishing never blocks: when a
subscriber's queue is full its oldest event is dropped and its `dropped`
counter is incremented, so a slow client loses history instead of stalling
ingestion.
"""

import asyncio
import logging
import threading
from dataclasses import asdict, dataclass, field
from .timeutil import Clock, format_ts, utcnow

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 100

FEED_CREATED = "feed_created"
FEED_UPDATED = "feed_updated"
FEED_DELETED = "feed_deleted"
FEED_REFRESHED = "feed_refreshed"
FEED_FAILED = "feed_failed"
FOLDER_CREATED = "folder_created"
FOLDER_UPDATED = "folder_updated"
FOLDER_DELETED = "folder_deleted"


@dataclass(frozen=True)
class ChangeEvent:
    type: str
    entity_id: int | None
    timestamp: str
    data: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)


class Subscription:
    """A subscriber's bounded inbox."""

    def __init__(self, broker: "ChangeBroker", maxsize: int, loop: asyncio.AbstractEventLoop | None):
        self._broker = broker
        self._loop = loop
        self.queue: asyncio.Queue[ChangeEvent] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0
        self.closed = False

    def offer(self, event: ChangeEvent):
        """Enqueue without blocking, evicting the oldest event when full."""
        if self.closed:
            return
        if self.queue.full():
            self.queue.get_nowait()
            self.dropped += 1
        self.queue.put_nowait(event)

    def deliver(self, event: ChangeEvent):
        """offer() from any thread."""
        loop = self._loop
        if loop is None or loop.is_closed():
            self.offer(event)
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self.offer(event)
        else:
            loop.call_soon_threadsafe(self.offer, event)

    async def get(self) -> ChangeEvent:
        return await self.queue.get()

    def get_nowait(self) -> ChangeEvent | None:
        try:
            return self.queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    def close(self):
        self._broker.unsubscribe(self)


class ChangeBroker:
    """Fan-out of change events to any number of subscribers."""

    def __init__(self, queue_size: int = DEFAULT_QUEUE_SIZE, clock: Clock = utcnow):
        self.queue_size = queue_size
        self._clock = clock
        self._subscribers: list[Subscription] = []
        self._lock = threading.Lock()

    def subscribe(self, maxsize: int | None = None) -> Subscription:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None
        subscription = Subscription(self, maxsize or self.queue_size, loop)
        with self._lock:
            self._subscribers.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription):
        subscription.closed = True
        with self._lock:
            if subscription in self._subscribers:
                self._subscribers.remove(subscription)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, event_type: str, entity_id: int | None = None, **data) -> ChangeEvent:
        """Publish an event to every subscriber. Never blocks."""
        event = ChangeEvent(
            type=event_type,
            entity_id=entity_id,
            timestamp=format_ts(self._clock()),
            data=data,
        )
        with self._lock:
            subscribers = list(self._subscribers)
        for subscription in subscribers:
            subscription.deliver(event)
        logger.debug(f"Published {event_type} for {entity_id} to {len(subscribers)} subscribers")
        return event
