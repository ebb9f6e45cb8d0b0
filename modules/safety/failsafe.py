# modules/safety/failsafe.py
"""
Command gate.

- Holds the system health flag written by the supervisor once per cycle.
- Passes motion commands through unchanged while healthy; substitutes the
  neutral command of the same type while unhealthy.

The gate starts closed: until the first health update every command is
neutralised.

API:
- CommandGate(initially_open=False)
- update(healthy: bool)
- is_open() -> bool
- filter(cmd) -> cmd or neutral
"""

import logging
import threading

logger = logging.getLogger("modules.safety.failsafe")


def neutral_like(cmd):
    """Zero-valued command with the same type as cmd."""
    neutral = getattr(type(cmd), "neutral", None)
    if callable(neutral):
        return neutral()
    return type(cmd)()


class CommandGate:
    def __init__(self, initially_open: bool = False):
        self._lock = threading.Lock()
        self._open = bool(initially_open)
        self.passed = 0
        self.blocked = 0

    def update(self, healthy: bool):
        with self._lock:
            changed = self._open != healthy
            self._open = bool(healthy)
        if changed:
            if healthy:
                logger.info("Command gate opened")
            else:
                logger.warning("Command gate closed: motion commands are zeroed")

    def is_open(self) -> bool:
        with self._lock:
            return self._open

    def filter(self, cmd):
        with self._lock:
            is_open = self._open
            if is_open:
                self.passed += 1
            else:
                self.blocked += 1
        if is_open:
            return cmd
        logger.debug("Gated command %s", cmd)
        return neutral_like(cmd)
