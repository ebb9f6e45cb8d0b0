# core/comms.py
"""
In-process communication layer for the watchdog.

Responsibilities:
- Deliver messages published on a topic to every callback subscribed to it.
- Stamp each delivery with the receipt time (monotonic clock), which is the
  only thing the watchdog looks at on monitored channels.
- Serve as the reporting sink: status / info messages are ordinary publishes.

Delivery is synchronous on the publisher's thread, so each publisher thread
is the "delivery task" for its topic. Replace with a real middleware adapter
(ROS, MQTT, ...) by keeping the same subscribe/publish surface.

Key classes:
- MessageBus
    - subscribe(topic, fn) -> fn          # fn(message, receipt_time)
    - unsubscribe(topic, fn)
    - publish(topic, message) -> int      # number of callbacks reached
    - last_message(topic)
"""

import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from core.utils import now_s

logger = logging.getLogger("core.comms")
logger.setLevel(logging.INFO)
if not logger.handlers:
    ch = logging.StreamHandler()
    ch.setFormatter(logging.Formatter("[%(asctime)s] %(levelname)s %(message)s"))
    logger.addHandler(ch)

Callback = Callable[[Any, float], None]


class MessageBus:
    def __init__(self, clock: Callable[[], float] = now_s):
        self._clock = clock
        self._subscribers: Dict[str, List[Callback]] = {}
        self._latest: Dict[str, Any] = {}
        self._lock = threading.Lock()

    # ----------------------
    # Registration / callbacks
    # ----------------------
    def subscribe(self, topic: str, fn: Callback) -> Callback:
        """
        Register fn for every message on topic.
        Callback signature: fn(message, receipt_time: float) -> None
        """
        with self._lock:
            self._subscribers.setdefault(topic, []).append(fn)
        logger.debug("Subscribed %s to '%s'", fn, topic)
        return fn

    def unsubscribe(self, topic: str, fn: Callback):
        with self._lock:
            callbacks = self._subscribers.get(topic, [])
            if fn in callbacks:
                callbacks.remove(fn)

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._subscribers.get(topic, []))

    # ----------------------
    # Outgoing
    # ----------------------
    def publish(self, topic: str, message: Any) -> int:
        """
        Deliver message to all subscribers of topic.

        A failing callback is logged and does not prevent delivery to the rest.
        Returns the number of callbacks invoked.
        """
        receipt_time = self._clock()
        with self._lock:
            self._latest[topic] = message
            # copy so callbacks may (un)subscribe without deadlocking
            callbacks = list(self._subscribers.get(topic, ()))
        for cb in callbacks:
            try:
                cb(message, receipt_time)
            except Exception:
                logger.exception("Subscriber callback failed on topic '%s'", topic)
        return len(callbacks)

    def last_message(self, topic: str) -> Optional[Any]:
        """Latest message published on topic (None if nothing was published)."""
        with self._lock:
            return self._latest.get(topic)

    def topics(self) -> List[str]:
        with self._lock:
            return sorted(set(self._subscribers) | set(self._latest))
