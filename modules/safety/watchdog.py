# modules/safety/watchdog.py
"""
Per-channel frequency watchdog.

- Record the receipt time of every message on one channel.
- Periodically check that the gaps between arrivals respect the channel's
  minimum frequency, either gap by gap (strict) or on average.
- After each check keep only the newest stamp, so the gap across two
  evaluation cycles is still checked.
- With max_samples set, at most that many new arrivals are buffered; the
  gaps of evicted stamps are folded into running max / sum so an outage
  is never dropped with them.

API:
- ChannelMonitor(config: ChannelConfig)
- record_arrival(instant)
- evaluate() -> bool
- status() -> bool
- start() / stop()
"""

import logging
import threading
from collections import deque
from typing import List, Optional

import numpy as np

from core.parameters import AVERAGE_OVER_STAMPS, ChannelConfig
from core.utils import PeriodicTimer

logger = logging.getLogger("modules.safety.watchdog")


class ChannelMonitor:
    def __init__(self, config: ChannelConfig):
        self.config = config
        self._lock = threading.Lock()
        # guarded by _lock
        # _seed: stamp just before the first buffered one (previous cycle's
        # last arrival, or the last stamp evicted from a full buffer)
        self._seed: Optional[float] = None
        self._stamps = deque()
        self._folded_count = 0
        self._folded_sum = 0.0
        self._folded_max = 0.0
        self._status = False
        self._timer = PeriodicTimer(f"monitor:{config.name}", config.run_frequency, self.evaluate)

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def failed(self) -> bool:
        return self._timer.failed

    @property
    def running(self) -> bool:
        return self._timer.running

    def describe(self) -> str:
        c = self.config
        mode = f"average over {c.average_over}" if c.use_average else "strict"
        return (f"name: {c.name}, topic_name: {c.channel}, min_freq: {c.min_frequency:g} Hz, "
                f"run_freq: {c.run_frequency:g} Hz, mode: {mode}")

    def record_arrival(self, instant: float):
        """Transport callback: append the receipt time. Order is trusted."""
        with self._lock:
            cap = self.config.max_samples
            if cap is not None and len(self._stamps) >= cap:
                self._evict_oldest()
            self._stamps.append(instant)

    def _evict_oldest(self):
        # the evicted gap still counts towards this cycle's verdict
        evicted = self._stamps.popleft()
        if self._seed is not None:
            gap = evicted - self._seed
            self._folded_count += 1
            self._folded_sum += gap
            self._folded_max = max(self._folded_max, gap)
        self._seed = evicted

    def on_message(self, message, receipt_time: float):
        # message content is never inspected
        self.record_arrival(receipt_time)

    def evaluate(self) -> bool:
        with self._lock:
            previous = self._status
            stamps = self._window()
            self._status = self._check(stamps)
            self._seed = stamps[-1] if stamps else None
            self._stamps.clear()
            self._folded_count = 0
            self._folded_sum = 0.0
            self._folded_max = 0.0
            status = self._status

        if status != previous:
            if status:
                logger.info("Channel '%s' healthy again", self.name)
            else:
                logger.warning("Channel '%s' is stale (min %.2f Hz)", self.name, self.config.min_frequency)
        return status

    def _window(self) -> List[float]:
        if self._seed is None:
            return list(self._stamps)
        return [self._seed] + list(self._stamps)

    def _check(self, stamps) -> bool:
        n_gaps = self._folded_count + max(len(stamps) - 1, 0)
        if n_gaps < 1:
            return False
        gaps = np.diff(np.fromiter(stamps, dtype=float, count=len(stamps)))
        min_interval = self.config.min_interval
        if not self.config.use_average:
            return not (self._folded_max > min_interval or bool(np.any(gaps > min_interval)))
        divisor = n_gaps + 1 if self.config.average_over == AVERAGE_OVER_STAMPS else n_gaps
        return (self._folded_sum + float(gaps.sum())) / divisor <= min_interval

    def status(self) -> bool:
        with self._lock:
            return self._status

    def samples(self) -> List[float]:
        """Retained seed followed by the buffered arrivals."""
        with self._lock:
            return self._window()

    def start(self):
        self._timer.start()

    def stop(self):
        self._timer.stop()
