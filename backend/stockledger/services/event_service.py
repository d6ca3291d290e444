# Overview: In-process fan-out of domain events to live subscribers.

"""
Event broadcaster

Events are a convenience notification layer for connected UIs. The
committed database is the only source of truth.

- publish() never blocks and never raises. It captures the subscribers
  connected at that instant and hands the event to a bounded queue.
- A daemon fan-out thread copies each event into every captured
  subscriber's own bounded buffer.
- A full or closed subscriber is a BroadcastFailure: logged, the
  subscriber is dropped, the publisher never sees it.
- No persistence and no replay. A subscriber that connects after a
  publish never sees that event and must refresh on its own.
"""

from __future__ import annotations

import itertools
import logging
import queue
import threading
from dataclasses import dataclass, field
from typing import Any

from ..errors import BroadcastFailure
from ..time_utils import epoch_millis

logger = logging.getLogger(__name__)

SALE_COMPLETED = "sale_completed"
SALE_VOIDED = "sale_voided"
PRODUCT_UPDATED = "product_updated"
PRODUCT_DELETED = "product_deleted"
SNAPSHOT_RESTORED = "snapshot_restored"

_STOP = object()


@dataclass(frozen=True)
class Event:
    name: str
    payload: Any
    published_at: int = field(default_factory=epoch_millis)

    def to_dict(self) -> dict:
        return {"event": self.name, "payload": self.payload, "published_at": self.published_at}


class Subscription:
    """A connected listener with its own bounded buffer."""

    _ids = itertools.count(1)

    def __init__(self, maxsize: int):
        self.id = next(self._ids)
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def deliver(self, event: Event) -> None:
        if self.closed:
            raise BroadcastFailure(f"Subscriber {self.id} is disconnected")
        try:
            self._queue.put_nowait(event)
        except queue.Full:
            raise BroadcastFailure(
                f"Subscriber {self.id} is not keeping up",
                details={"event": event.name},
            )

    def get(self, timeout: float | None = None) -> Event:
        """Next event; raises queue.Empty after timeout."""
        return self._queue.get(timeout=timeout)

    def close(self) -> None:
        self._closed.set()


class EventBroadcaster:
    def __init__(self, app=None):
        self._subscribers: dict[int, Subscription] = {}
        self._lock = threading.Lock()
        self._queue: queue.Queue | None = None
        self._thread: threading.Thread | None = None
        self.subscriber_queue_size = 100
        self.dispatched = 0
        self.dropped = 0
        if app is not None:
            self.init_app(app)

    def init_app(self, app) -> None:
        self.subscriber_queue_size = app.config.get("SUBSCRIBER_QUEUE_SIZE", 100)
        app.extensions["event_broadcaster"] = self
        self.start(maxsize=app.config.get("EVENT_QUEUE_SIZE", 1000))

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, maxsize: int = 1000) -> None:
        if self.running:
            return
        self._queue = queue.Queue(maxsize=maxsize)
        self._thread = threading.Thread(
            target=self._run,
            args=(self._queue,),
            name="event-broadcaster",
            daemon=True,
        )
        self._thread.start()

    def stop(self, drain: bool = True, timeout: float = 5.0) -> None:
        """Stop the fan-out thread, delivering what is queued first when drain is set."""
        thread, q = self._thread, self._queue
        if thread is None or q is None:
            return
        if not drain:
            while True:
                try:
                    q.get_nowait()
                except queue.Empty:
                    break
        q.put(_STOP)
        thread.join(timeout)
        self._thread = None
        self._queue = None
        with self._lock:
            for sub in self._subscribers.values():
                sub.close()
            self._subscribers.clear()

    def subscribe(self) -> Subscription:
        sub = Subscription(self.subscriber_queue_size)
        with self._lock:
            self._subscribers[sub.id] = sub
        logger.debug("Subscriber %s connected", sub.id)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        sub.close()
        with self._lock:
            self._subscribers.pop(sub.id, None)
        logger.debug("Subscriber %s disconnected", sub.id)

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, event_name: str, payload: Any) -> bool:
        """
        Hand an event off for delivery to the subscribers connected right now.

        Returns False when the event was dropped. Never raises.
        """
        q = self._queue
        if q is None:
            logger.warning("Broadcaster not running; dropped %s", event_name)
            self.dropped += 1
            return False

        with self._lock:
            targets = list(self._subscribers.values())
        if not targets:
            return True

        try:
            q.put_nowait((Event(event_name, payload), targets))
        except queue.Full:
            logger.warning("Event queue full; dropped %s", event_name)
            self.dropped += 1
            return False
        return True

    def _run(self, q: queue.Queue) -> None:
        while True:
            item = q.get()
            if item is _STOP:
                break
            event, targets = item
            for sub in targets:
                try:
                    sub.deliver(event)
                except BroadcastFailure as exc:
                    logger.warning("Dropping subscriber after failed delivery: %s", exc.message)
                    self.unsubscribe(sub)
                except Exception:
                    logger.exception("Unexpected failure delivering %s", event.name)
                    self.unsubscribe(sub)
            self.dispatched += 1
