# core/control.py
"""
Motion command schema passed through the watchdog gate.

Responsibilities:
- Define the velocity command (linear + angular, like a Twist) that flows
  from the planner to the flight controller.
- Provide the neutral (all-zero) command substituted when inputs are stale.

APIs:
- VelocityCommand(linear_x, linear_y, linear_z, angular_x, angular_y, angular_z)
- VelocityCommand.neutral() -> VelocityCommand
- cmd.is_neutral() -> bool
- cmd.to_dict() / VelocityCommand.from_dict(d)
"""

from dataclasses import asdict, dataclass, fields
from typing import Dict


@dataclass(frozen=True)
class VelocityCommand:
    linear_x: float = 0.0
    linear_y: float = 0.0
    linear_z: float = 0.0
    angular_x: float = 0.0
    angular_y: float = 0.0
    angular_z: float = 0.0

    @classmethod
    def neutral(cls) -> "VelocityCommand":
        return cls()

    def is_neutral(self) -> bool:
        return all(getattr(self, f.name) == 0.0 for f in fields(self))

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict) -> "VelocityCommand":
        """Build from a dict; missing axes default to zero, unknown keys are ignored."""
        return cls(**{f.name: float(d.get(f.name, 0.0)) for f in fields(cls)})
