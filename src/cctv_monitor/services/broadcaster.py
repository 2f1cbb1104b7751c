"""In-process pub/sub for event notifications (new event, video attached, events deleted).

Subscribers own a bounded queue obtained from subscribe() and must hand it back
via unsubscribe(). The web layer streams these queues as server-sent events; the
core only calls publish().
"""

import logging
import queue
import threading

from cctv_monitor.constants import SUBSCRIBER_QUEUE_SIZE

logger = logging.getLogger("cctv-monitor")


class EventBroadcaster:
    """Thread-safe fan-out of notification payloads to registered subscriber queues."""

    def __init__(self, max_queue_size: int = SUBSCRIBER_QUEUE_SIZE) -> None:
        self._subscribers: set[queue.Queue] = set()
        self._max_queue_size = max_queue_size
        self._lock = threading.Lock()

    def subscribe(self) -> queue.Queue:
        q: queue.Queue = queue.Queue(maxsize=self._max_queue_size)
        with self._lock:
            self._subscribers.add(q)
            count = len(self._subscribers)
        logger.debug("Subscriber registered, total subscribers: %d", count)
        return q

    def unsubscribe(self, q: queue.Queue) -> None:
        """Remove a subscriber. Idempotent if already removed."""
        with self._lock:
            self._subscribers.discard(q)
            count = len(self._subscribers)
        logger.debug("Subscriber removed, remaining subscribers: %d", count)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, payload: dict) -> int:
        """Deliver payload to every subscriber. Returns the number of subscribers reached.

        A full subscriber queue drops its oldest message to make room.
        """
        with self._lock:
            targets = list(self._subscribers)
        for q in targets:
            try:
                q.put_nowait(payload)
            except queue.Full:
                try:
                    q.get_nowait()
                except queue.Empty:
                    pass
                try:
                    q.put_nowait(payload)
                except queue.Full:
                    logger.debug("Dropping notification for slow subscriber")
        return len(targets)
