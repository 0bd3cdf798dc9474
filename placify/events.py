"""In-process event bus.

Decouples state-change producers (moderation, submissions, auth) from the
real-time notification layer. Domain events are signals, not records: if
nobody is subscribed when an event is published, it is gone. The audit
trail is the durable record.

Delivery is off the publisher's thread. publish() snapshots the current
subscribers and hands one (subscription, event) job per subscriber to a
bounded queue served by daemon worker threads. A full queue drops the job
with a warning instead of blocking, and a failing handler is logged and
swallowed, so a slow or broken subscriber can never stall or fail the
request that published the event.

Usage:
    bus = EventBus(workers=4, queue_size=1000)
    bus.start()
    sub = bus.subscribe("experienceStatusChanged", handler)
    bus.publish("experienceStatusChanged", {"record_id": "..."})
    bus.unsubscribe(sub)
    bus.shutdown()
"""

import logging
import queue
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

ALL_EVENTS = "*"

_STOP = object()


@dataclass(frozen=True)
class DomainEvent:
    """An ephemeral message describing a completed state change."""

    name: str
    payload: dict
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "event": self.name,
            "payload": self.payload,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class Subscription:
    """Handle returned by subscribe(); pass it back to unsubscribe()."""

    event_name: str
    handler: Callable[[DomainEvent], Any]
    id: str = field(default_factory=lambda: str(uuid.uuid4()))


class EventBus:
    """Publish/subscribe with non-blocking, isolated delivery."""

    def __init__(self, workers: int = 4, queue_size: int = 1000, name: str = "placify-events") -> None:
        if workers < 1:
            raise ValueError("EventBus needs at least one worker")
        self.name = name
        self._worker_count = workers
        self._queue: queue.Queue = queue.Queue(maxsize=queue_size)
        self._subscribers: dict[str, list[Subscription]] = {}
        self._lock = threading.Lock()
        self._threads: list[threading.Thread] = []
        self._running = False
        self._dropped = 0

    # -- lifecycle -----------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._running

    @property
    def dropped(self) -> int:
        """Deliveries discarded because the bus was stopped or its queue was full."""
        with self._lock:
            return self._dropped

    def _count_dropped(self, count: int) -> None:
        with self._lock:
            self._dropped += count

    def start(self) -> None:
        """Spawn the delivery workers. Safe to call more than once."""
        with self._lock:
            if self._running:
                return
            self._running = True
            for i in range(self._worker_count):
                thread = threading.Thread(
                    target=self._run, name=f"{self.name}-{i}", daemon=True
                )
                thread.start()
                self._threads.append(thread)
        logger.info(f"Event bus '{self.name}' started with {self._worker_count} workers")

    def shutdown(self, timeout: float = 5.0) -> None:
        """Stop accepting events and let the workers finish what is queued."""
        with self._lock:
            if not self._running:
                return
            self._running = False
            threads, self._threads = self._threads, []

        deadline = time.monotonic() + timeout
        for _ in threads:
            try:
                self._queue.put(_STOP, timeout=max(0.0, deadline - time.monotonic()))
            except queue.Full:
                logger.warning(f"Event bus '{self.name}' shutdown: queue still full, workers left running")
                break
        for thread in threads:
            thread.join(max(0.0, deadline - time.monotonic()))
        logger.info(f"Event bus '{self.name}' stopped")

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until every queued delivery has run. Returns False on timeout."""
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._queue.all_tasks_done:
            while self._queue.unfinished_tasks:
                if deadline is None:
                    self._queue.all_tasks_done.wait()
                    continue
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._queue.all_tasks_done.wait(remaining)
        return True

    # -- subscriptions -------------------------------------------------------

    def subscribe(self, event_name: str, handler: Callable[[DomainEvent], Any]) -> Subscription:
        """Register *handler* for *event_name* ("*" receives every event)."""
        if not callable(handler):
            raise TypeError("handler must be callable")
        subscription = Subscription(event_name=event_name, handler=handler)
        with self._lock:
            self._subscribers.setdefault(event_name, []).append(subscription)
        logger.debug(f"Listener added for event: {event_name}")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> bool:
        """Remove a subscription. Returns False if it was already gone."""
        with self._lock:
            handlers = self._subscribers.get(subscription.event_name, [])
            for i, existing in enumerate(handlers):
                if existing.id == subscription.id:
                    del handlers[i]
                    if not handlers:
                        del self._subscribers[subscription.event_name]
                    logger.debug(f"Listener removed for event: {subscription.event_name}")
                    return True
        return False

    def subscriber_count(self, event_name: Optional[str] = None) -> int:
        with self._lock:
            if event_name is None:
                return sum(len(subs) for subs in self._subscribers.values())
            return len(self._subscribers.get(event_name, []))

    # -- publishing ----------------------------------------------------------

    def publish(self, event_name: str, payload: Optional[dict] = None) -> DomainEvent:
        """Hand *event_name* to every current subscriber without waiting on any.

        Never raises on delivery problems; the event is returned so callers
        can log or test against it.
        """
        event = DomainEvent(name=event_name, payload=dict(payload or {}))

        with self._lock:
            targets = list(self._subscribers.get(event_name, ()))
            targets.extend(self._subscribers.get(ALL_EVENTS, ()))
            running = self._running

        if not targets:
            logger.debug(f"Event {event_name} published with no listeners")
            return event
        if not running:
            logger.warning(f"Event {event_name} dropped: event bus '{self.name}' is not running")
            self._count_dropped(len(targets))
            return event

        for subscription in targets:
            try:
                self._queue.put_nowait((subscription, event))
            except queue.Full:
                self._count_dropped(1)
                logger.warning(
                    f"Event bus '{self.name}' queue full, dropped {event_name} "
                    f"for listener {subscription.id}"
                )
        return event

    # -- workers -------------------------------------------------------------

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                subscription, event = item
                try:
                    subscription.handler(event)
                except Exception:
                    logger.exception(
                        f"Error in listener {subscription.id} handling event {event.name}"
                    )
            finally:
                self._queue.task_done()
