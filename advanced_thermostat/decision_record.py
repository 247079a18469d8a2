"""
Decision Record

Output of one controller evaluation. Carries everything the host needs to
schedule the next evaluation, log the decision and export telemetry.
"""

import math
from dataclasses import dataclass
from typing import Optional

from .control_state import ActuatorState, Mode, format_timestamp


@dataclass(frozen=True)
class DecisionRecord:
    timestamp: float  # epoch seconds
    trigger: str
    mode: Mode
    old_state: ActuatorState
    new_state: ActuatorState
    target_temperature: float
    current_temperature: Optional[float]
    error: float
    elapsed: float  # s
    p_power: float  # W
    i_power: float  # W
    d_power: float  # W
    p_energy: float  # J
    i_energy: float  # J
    d_energy: float  # J
    delivered_energy: float  # J
    compensation_factor: float
    budget: float  # J
    duration: float  # s until the budget reaches the next limit (may be inf)
    next_update_in: Optional[float]  # s the host should wait, None = don't schedule
    shutdown: bool = False

    @property
    def changed(self) -> bool:
        return self.old_state != self.new_state

    @property
    def pid_power(self) -> float:
        return self.p_power + self.i_power + self.d_power

    def describe(self) -> str:
        """Single log line summarising the decision"""
        transition = (
            f"{self.old_state.name} → {self.new_state.name}" if self.changed
            else f"{self.new_state.name} (unchanged)"
        )
        current = f"{self.current_temperature:.1f}°C" if self.current_temperature is not None else "n/a"
        return (
            f"[{self.trigger}] {transition} | mode: {self.mode.name} | "
            f"target: {self.target_temperature:.1f}°C, current: {current}, error: {self.error:+.2f}°C | "
            f"PID: {self.pid_power:.1f} W (P: {self.p_power:.1f}, I: {self.i_power:.1f}, "
            f"D: {self.d_power:.1f}), factor: {self.compensation_factor:.3f} | "
            f"elapsed: {format_duration(self.elapsed)}, budget: {self.budget:.0f} J | "
            f"next: {format_duration(self.duration)}"
            + (" | shutdown" if self.shutdown else "")
        )

    def to_telemetry(self) -> dict:
        """Flat mapping of the values exported to the telemetry sinks"""
        return {
            'timestamp': format_timestamp(self.timestamp),
            'trigger': self.trigger,
            'mode': self.mode.value,
            'actuator_state': self.new_state.value,
            'target_temperature': self.target_temperature,
            'current_temperature': self.current_temperature,
            'p_power': self.p_power,
            'i_power': self.i_power,
            'd_power': self.d_power,
            'compensation_factor': self.compensation_factor,
            'budget': self.budget,
            'duration': self.duration,
        }


def format_duration(seconds: Optional[float]) -> str:
    """Human readable duration: ∞, seconds, minutes or hours"""
    if seconds is None or math.isinf(seconds):
        return "∞"
    if seconds < 120:
        return f"{seconds:.1f} s"
    if seconds < 2 * 3600:
        return f"{seconds / 60:.1f} min"
    return f"{seconds / 3600:.1f} h"
