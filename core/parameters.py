# core/parameters.py
"""
Parameter loading for the stream watchdog.

Responsibilities:
- Convert the WATCHDOG parameter block (see config.py) into immutable
  ChannelConfig / WatchdogConfig records.
- Reject anything missing or malformed with ConfigError. A configuration
  error is fatal: the process must not start monitoring.

Expected parameter shape:
    {
        "rate": 10.0,                       # aggregation rate (Hz)
        "cmd_in_topic": "cmd_vel_in",       # optional, defaults below
        "cmd_out_topic": "cmd_vel_out",
        "status_topic": "status",
        "info_topic": "info",
        "topics": [
            {"name": "lidar", "topic_name": "/lidar/points", "min_freq": 10.0,
             "use_average": False, "monitoring_rate": 10.0,
             "max_samples": 512,            # optional
             "average_over": "gaps"},       # optional: "gaps" | "stamps"
            ...
        ],
    }
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

logger = logging.getLogger("core.parameters")
logger.setLevel(logging.INFO)
if not logger.handlers:
    ch = logging.StreamHandler()
    ch.setFormatter(logging.Formatter("[%(asctime)s] %(levelname)s %(message)s"))
    logger.addHandler(ch)

AVERAGE_OVER_GAPS = "gaps"
AVERAGE_OVER_STAMPS = "stamps"
AVERAGE_MODES = (AVERAGE_OVER_GAPS, AVERAGE_OVER_STAMPS)

DEFAULT_TOPICS = {
    "cmd_in_topic": "cmd_vel_in",
    "cmd_out_topic": "cmd_vel_out",
    "status_topic": "status",
    "info_topic": "info",
}

_REQUIRED_CHANNEL_KEYS = ("name", "topic_name", "min_freq", "use_average", "monitoring_rate")


class ConfigError(ValueError):
    """Missing or invalid watchdog parameter."""


def _positive_float(value: Any, what: str) -> float:
    # bool is an int subclass; True must not pass as 1 Hz
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{what} must be a number, got {value!r}")
    value = float(value)
    if not value > 0 or math.isinf(value):
        raise ConfigError(f"{what} must be positive and finite, got {value!r}")
    return value


def _non_empty_str(value: Any, what: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"{what} must be a non-empty string, got {value!r}")
    return value


@dataclass(frozen=True)
class ChannelConfig:
    name: str
    channel: str
    min_frequency: float
    use_average: bool = False
    monitoring_rate: float = 10.0
    max_samples: Optional[int] = None
    average_over: str = AVERAGE_OVER_GAPS

    def __post_init__(self):
        _non_empty_str(self.name, "channel name")
        _non_empty_str(self.channel, f"{self.name}: topic_name")
        _positive_float(self.min_frequency, f"{self.name}: min_freq")
        _positive_float(self.monitoring_rate, f"{self.name}: monitoring_rate")
        if not isinstance(self.use_average, bool):
            raise ConfigError(f"{self.name}: use_average must be a bool, got {self.use_average!r}")
        if self.max_samples is not None:
            if isinstance(self.max_samples, bool) or not isinstance(self.max_samples, int) or self.max_samples < 2:
                raise ConfigError(f"{self.name}: max_samples must be an int >= 2, got {self.max_samples!r}")
        if self.average_over not in AVERAGE_MODES:
            raise ConfigError(f"{self.name}: average_over must be one of {AVERAGE_MODES}, got {self.average_over!r}")

    @property
    def min_interval(self) -> float:
        """Largest acceptable gap between two arrivals (s)."""
        return 1.0 / self.min_frequency

    @property
    def run_frequency(self) -> float:
        """Evaluation rate: never faster than the channel is required to publish."""
        return min(self.min_frequency, self.monitoring_rate)


@dataclass(frozen=True)
class WatchdogConfig:
    rate: float
    channels: Tuple[ChannelConfig, ...]
    cmd_in_topic: str = DEFAULT_TOPICS["cmd_in_topic"]
    cmd_out_topic: str = DEFAULT_TOPICS["cmd_out_topic"]
    status_topic: str = DEFAULT_TOPICS["status_topic"]
    info_topic: str = DEFAULT_TOPICS["info_topic"]

    def __post_init__(self):
        _positive_float(self.rate, "rate")
        validate_channels(self.channels)
        for key in DEFAULT_TOPICS:
            _non_empty_str(getattr(self, key), key)


def validate_channels(channels: Sequence[ChannelConfig]):
    """Raise ConfigError for an empty set or duplicate display names."""
    if not channels:
        raise ConfigError("no topics configured; at least one channel must be monitored")
    seen = set()
    for cfg in channels:
        if not isinstance(cfg, ChannelConfig):
            raise ConfigError(f"expected ChannelConfig, got {type(cfg).__name__}")
        if cfg.name in seen:
            raise ConfigError(f"duplicate channel name: {cfg.name!r}")
        seen.add(cfg.name)


def channel_from_params(params: Mapping[str, Any], label: str = "topic") -> ChannelConfig:
    if not isinstance(params, Mapping):
        raise ConfigError(f"{label}: expected a mapping, got {type(params).__name__}")
    missing = [k for k in _REQUIRED_CHANNEL_KEYS if k not in params]
    if missing:
        raise ConfigError(f"One or more parameter for {label} is missing: {', '.join(missing)}")
    return ChannelConfig(
        name=params["name"],
        channel=params["topic_name"],
        min_frequency=params["min_freq"],
        use_average=params["use_average"],
        monitoring_rate=params["monitoring_rate"],
        max_samples=params.get("max_samples"),
        average_over=params.get("average_over", AVERAGE_OVER_GAPS),
    )


def load_watchdog_config(params: Mapping[str, Any]) -> WatchdogConfig:
    """
    Build a WatchdogConfig from a parameter mapping.

    Raises ConfigError on any missing or invalid entry.
    """
    if not isinstance(params, Mapping):
        raise ConfigError(f"watchdog parameters must be a mapping, got {type(params).__name__}")
    if "rate" not in params:
        raise ConfigError("Missing rate parameter")
    topics = params.get("topics")
    if topics is None:
        raise ConfigError("Missing topics parameter")
    if isinstance(topics, (str, bytes)) or not isinstance(topics, Sequence):
        raise ConfigError("topics must be a list of channel entries")

    channels = tuple(channel_from_params(p, f"topic_{i + 1}") for i, p in enumerate(topics))
    extras: Dict[str, str] = {k: params[k] for k in DEFAULT_TOPICS if k in params}
    cfg = WatchdogConfig(rate=params["rate"], channels=channels, **extras)
    logger.info("Monitoring %d topics at %.1f Hz aggregation rate", len(cfg.channels), float(cfg.rate))
    return cfg
