# core/sensors.py
"""
FeedManager: simulated periodic publishers for stand-alone runs and tests.

Responsibilities:
- Publish a heartbeat message on a topic at a nominal rate, one thread per feed.
- Optionally add gaussian jitter to the publish period.
- Pause / resume a feed to simulate a sensor dropout.
- Publish a stream of velocity commands (CommandSource).

API:
- FeedManager(bus, seed=None)
- add_feed(topic, rate_hz, jitter_s=0.0) -> SimulatedFeed
- add_command_source(topic, rate_hz, command) -> CommandSource
- pause(topic) / resume(topic)
- start() / stop()
"""

import logging
import threading
from typing import Dict, Optional

import numpy as np

from core.control import VelocityCommand
from core.utils import now_s, period_from_hz

logger = logging.getLogger("core.sensors")
logger.setLevel(logging.INFO)
if not logger.handlers:
    ch = logging.StreamHandler()
    ch.setFormatter(logging.Formatter("[%(asctime)s] %(levelname)s %(message)s"))
    logger.addHandler(ch)


class SimulatedFeed:
    def __init__(self, bus, topic: str, rate_hz: float, jitter_s: float = 0.0,
                 rng: Optional[np.random.Generator] = None):
        self.bus = bus
        self.topic = topic
        self.period = period_from_hz(rate_hz)
        self.jitter_s = max(0.0, float(jitter_s))
        self._rng = rng if rng is not None else np.random.default_rng()
        self._stop_event = threading.Event()
        self._paused = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.seq = 0

    @property
    def paused(self) -> bool:
        return self._paused.is_set()

    def pause(self):
        self._paused.set()
        logger.info("Feed '%s' paused", self.topic)

    def resume(self):
        self._paused.clear()
        logger.info("Feed '%s' resumed", self.topic)

    def next_delay(self) -> float:
        if self.jitter_s <= 0.0:
            return self.period
        # never negative, never zero
        return float(np.clip(self._rng.normal(self.period, self.jitter_s), 1e-3, None))

    def make_message(self):
        return {"seq": self.seq, "ts": now_s()}

    def _loop(self):
        while not self._stop_event.wait(self.next_delay()):
            if self._paused.is_set():
                continue
            self.seq += 1
            self.bus.publish(self.topic, self.make_message())

    def start(self):
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, name=f"feed:{self.topic}", daemon=True)
        self._thread.start()

    def stop(self, timeout_s: float = 2.0):
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout_s)
            self._thread = None


class CommandSource(SimulatedFeed):
    """Publishes the same velocity command at a fixed rate (a stand-in planner)."""

    def __init__(self, bus, topic: str, rate_hz: float, command: Optional[VelocityCommand] = None, **kwargs):
        super().__init__(bus, topic, rate_hz, **kwargs)
        self.command = command or VelocityCommand(linear_x=1.0)

    def make_message(self):
        return self.command


class FeedManager:
    def __init__(self, bus, seed: Optional[int] = None):
        self.bus = bus
        self._rng = np.random.default_rng(seed)
        self._feeds: Dict[str, SimulatedFeed] = {}
        self._running = False

    # ----------------------
    # Registration API
    # ----------------------
    def add_feed(self, topic: str, rate_hz: float, jitter_s: float = 0.0) -> SimulatedFeed:
        feed = SimulatedFeed(self.bus, topic, rate_hz, jitter_s=jitter_s, rng=self._rng)
        self._feeds[topic] = feed
        logger.debug("Registered feed '%s' (%.1f Hz, jitter=%.3fs)", topic, rate_hz, feed.jitter_s)
        return feed

    def add_command_source(self, topic: str, rate_hz: float,
                           command: Optional[VelocityCommand] = None) -> CommandSource:
        source = CommandSource(self.bus, topic, rate_hz, command=command, rng=self._rng)
        self._feeds[topic] = source
        return source

    def register_from_config(self, sim_cfg: Dict):
        """
        sim_cfg: {"feeds": [{"topic_name", "rate", "jitter"?}, ...],
                  "command": {"topic_name", "rate", "linear_x"?, ...}}
        """
        for entry in sim_cfg.get("feeds", []):
            self.add_feed(entry["topic_name"], entry["rate"], entry.get("jitter", 0.0))
        cmd = sim_cfg.get("command")
        if cmd:
            self.add_command_source(cmd["topic_name"], cmd["rate"], VelocityCommand.from_dict(cmd))
        logger.info("Simulated feeds registered: %s", list(self._feeds))

    def feed(self, topic: str) -> SimulatedFeed:
        return self._feeds[topic]

    def pause(self, topic: str):
        self._feeds[topic].pause()

    def resume(self, topic: str):
        self._feeds[topic].resume()

    # ----------------------
    # Control
    # ----------------------
    def start(self):
        if self._running:
            return
        self._running = True
        for feed in self._feeds.values():
            feed.start()
        logger.info("FeedManager started with feeds: %s", list(self._feeds))

    def stop(self):
        self._running = False
        for feed in self._feeds.values():
            feed.stop()
        logger.info("FeedManager stopped.")
