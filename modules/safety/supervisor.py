# modules/safety/supervisor.py
"""
Watchdog supervisor.

Owns one ChannelMonitor per configured channel, aggregates their verdicts at
a fixed rate and gates the motion command stream on the result.

Each cycle publishes:
  - status_topic: bool, True iff every channel is healthy
  - info_topic:   HealthReport with the per-channel verdicts

The command gate reflects the most recent completed tick, so it may lag the
channels by up to one aggregation period.

API:
- Supervisor(bus, config: WatchdogConfig)
- initialize(channels=None, start_monitors=True)
- tick() -> HealthReport
- on_command(cmd, receipt_time=None) -> forwarded cmd
- start() / stop() / run(duration_s=None)
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from core.parameters import ChannelConfig, WatchdogConfig, validate_channels
from core.utils import PeriodicTimer, wall_time_s
from modules.safety.failsafe import CommandGate
from modules.safety.watchdog import ChannelMonitor

logger = logging.getLogger("modules.safety.supervisor")


@dataclass(frozen=True)
class ChannelStatus:
    name: str
    status: bool


@dataclass(frozen=True)
class HealthReport:
    stamp: float
    healthy: bool
    channels: List[ChannelStatus] = field(default_factory=list)

    def as_dict(self) -> Dict[str, bool]:
        return {c.name: c.status for c in self.channels}

    def stale_channels(self) -> List[str]:
        return [c.name for c in self.channels if not c.status]


class Supervisor:
    def __init__(self, bus, config: WatchdogConfig):
        self.bus = bus
        self.config = config
        self.gate = CommandGate(initially_open=False)
        self._monitors: List[ChannelMonitor] = []
        self._initialized = False
        self._subscribed = False
        self._running = False
        self._healthy: Optional[bool] = None
        self._last_report: Optional[HealthReport] = None
        self._timer = PeriodicTimer("supervisor", config.rate, self.tick)
        self._stopped = threading.Event()

    @property
    def channel_count(self) -> int:
        return len(self._monitors)

    @property
    def monitors(self) -> List[ChannelMonitor]:
        return list(self._monitors)

    @property
    def last_report(self) -> Optional[HealthReport]:
        return self._last_report

    @property
    def failed(self) -> bool:
        return self._timer.failed

    def initialize(self, channels: Optional[Sequence[ChannelConfig]] = None, start_monitors: bool = True):
        """
        Create, subscribe and start one monitor per channel.
        With start_monitors=False the evaluation timers are left to the caller.

        Raises ConfigError if the set is empty or invalid; nothing is started
        in that case.
        """
        if self._initialized:
            raise RuntimeError("Supervisor already initialized")
        channels = tuple(self.config.channels if channels is None else channels)
        validate_channels(channels)

        for i, cfg in enumerate(channels):
            monitor = ChannelMonitor(cfg)
            if start_monitors:
                monitor.start()
            logger.info("topic_%d: %s", i + 1, monitor.describe())
            self._monitors.append(monitor)
        self._subscribe_channels()
        self._initialized = True

    def _subscribe_channels(self):
        if self._subscribed:
            return
        for monitor in self._monitors:
            self.bus.subscribe(monitor.config.channel, monitor.on_message)
        self._subscribed = True

    def _unsubscribe_channels(self):
        for monitor in self._monitors:
            self.bus.unsubscribe(monitor.config.channel, monitor.on_message)
        self._subscribed = False

    def tick(self) -> HealthReport:
        statuses = []
        for monitor in self._monitors:
            status = monitor.status()
            if monitor.failed:
                logger.critical("Monitor '%s' evaluation timer died; treating channel as stale", monitor.name)
                status = False
            statuses.append(ChannelStatus(monitor.name, status))

        healthy = all(s.status for s in statuses)
        report = HealthReport(stamp=wall_time_s(), healthy=healthy, channels=statuses)

        self.bus.publish(self.config.status_topic, healthy)
        self.bus.publish(self.config.info_topic, report)
        self.gate.update(healthy)

        if healthy != self._healthy:
            if healthy:
                logger.info("All %d channels healthy", len(statuses))
            else:
                logger.warning("System unhealthy, stale channels: %s", report.stale_channels())
        self._healthy = healthy
        self._last_report = report
        return report

    def on_command(self, cmd, receipt_time: Optional[float] = None):
        """Transport callback for inbound commands; forwards downstream synchronously."""
        out = self.gate.filter(cmd)
        self.bus.publish(self.config.cmd_out_topic, out)
        return out

    def start(self):
        if self._running:
            return
        if not self._initialized:
            self.initialize()
        self._subscribe_channels()
        for monitor in self._monitors:
            monitor.start()
        self.bus.subscribe(self.config.cmd_in_topic, self.on_command)
        self._stopped.clear()
        self._timer.start()
        self._running = True
        logger.info("Supervisor started (%d channels, %.1f Hz)", self.channel_count, float(self.config.rate))

    def stop(self):
        self.bus.unsubscribe(self.config.cmd_in_topic, self.on_command)
        self._timer.stop()
        self._unsubscribe_channels()
        for monitor in self._monitors:
            monitor.stop()
        self._running = False
        self._stopped.set()
        logger.info("Supervisor stopped.")

    def run(self, duration_s: Optional[float] = None):
        """Block until stop() is called (or duration_s elapses), then stop."""
        self.start()
        try:
            self._stopped.wait(duration_s)
        finally:
            if not self._stopped.is_set():
                self.stop()

