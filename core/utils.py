# core/utils.py
"""
Utility helpers: clocks, rate conversion and a periodic timer thread.

API:
- now_s() -> float                      # monotonic seconds, used for arrival stamps
- wall_time_s() -> float                # wall clock, used for report headers
- period_from_hz(hz) -> float
- PeriodicTimer(name, frequency_hz, fn) # start() / stop() / join()
"""

import logging
import math
import threading
import time
from typing import Callable, Optional

logger = logging.getLogger("core.utils")
logger.setLevel(logging.INFO)
if not logger.handlers:
    ch = logging.StreamHandler()
    ch.setFormatter(logging.Formatter("[%(asctime)s] %(levelname)s %(message)s"))
    logger.addHandler(ch)


def now_s() -> float:
    return time.monotonic()


def wall_time_s() -> float:
    return time.time()


def period_from_hz(hz: float) -> float:
    """Convert a frequency in Hz to a period in seconds."""
    if not hz > 0 or math.isinf(hz):
        raise ValueError(f"frequency must be a positive finite number, got {hz!r}")
    return 1.0 / hz


class PeriodicTimer:
    """
    Calls fn() at a fixed rate from a dedicated daemon thread.

    The schedule is drift-free (next deadline = previous deadline + period);
    if a call overruns, missed deadlines are skipped rather than replayed.
    stop() wakes the thread immediately instead of waiting out the period.

    If fn raises, the exception is logged, the timer stops and `failed`
    becomes True. Owners must check it; a dead timer is never silent.
    """

    def __init__(self, name: str, frequency_hz: float, fn: Callable[[], object]):
        self.name = name
        self.period = period_from_hz(frequency_hz)
        self._fn = fn
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._failed = False

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def failed(self) -> bool:
        return self._failed

    def start(self):
        if self.running:
            return
        self._stop_event.clear()
        self._failed = False
        self._thread = threading.Thread(target=self._loop, name=self.name, daemon=True)
        self._thread.start()
        logger.debug("Timer '%s' started (period=%.3fs)", self.name, self.period)

    def stop(self, timeout_s: Optional[float] = 2.0):
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout_s)
            if thread.is_alive():
                logger.warning("Timer '%s' did not stop within %.1fs", self.name, timeout_s)
        self._thread = None

    def _loop(self):
        next_deadline = now_s() + self.period
        while not self._stop_event.is_set():
            delay = next_deadline - now_s()
            if delay > 0 and self._stop_event.wait(delay):
                break
            try:
                self._fn()
            except Exception:
                logger.exception("Timer '%s' callback failed; timer stopped", self.name)
                self._failed = True
                return
            next_deadline += self.period
            now = now_s()
            if next_deadline < now:
                # overran one or more periods
                skipped = math.ceil((now - next_deadline) / self.period)
                next_deadline += skipped * self.period
        logger.debug("Timer '%s' stopped", self.name)
