"""
Control State

Mutable model owned by the controller: user intent (mode, target), the last
measurement, the actuator state and the PID accumulators. Also converts the
state to and from the persisted snapshot format.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

import pytz


DEFAULT_TARGET_TEMPERATURE = 20.0


class Mode(Enum):
    """User intent for the thermostat"""
    OFF = "off"
    HEAT = "heat"  # Heating only
    COOL = "cool"  # Cooling only
    AUTO = "auto"  # Heating and cooling

    @classmethod
    def parse(cls, value) -> "Mode":
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().lower())


class ActuatorState(Enum):
    """Physical state of the heating/cooling actuator"""
    OFF = "off"
    HEAT = "heat"
    COOL = "cool"

    @classmethod
    def parse(cls, value) -> "ActuatorState":
        if isinstance(value, cls):
            return value
        return cls(str(value).strip().lower())


@dataclass
class ControlState:
    """
    Everything the controller needs to carry from one evaluation to the next.

    `error` and `updated` stay None until the first evaluation; that
    evaluation accrues no budget.
    """
    mode: Mode = Mode.OFF
    actuator_state: ActuatorState = ActuatorState.OFF
    target_temperature: float = DEFAULT_TARGET_TEMPERATURE
    current_temperature: Optional[float] = None
    error: Optional[float] = None
    bias: float = 0.0  # W
    budget: float = 0.0  # J
    updated: Optional[float] = None  # epoch seconds

    def to_snapshot(self) -> dict:
        """Persistable representation (JSON compatible)"""
        return {
            'mode': self.mode.value,
            'actuatorState': self.actuator_state.value,
            'targetTemperature': self.target_temperature,
            'currentTemperature': self.current_temperature,
            'updated': format_timestamp(self.updated),
            'error': self.error,
            'biasW': self.bias,
            'budgetJ': self.budget,
        }

    @classmethod
    def from_snapshot(cls, snapshot: Optional[dict]) -> "ControlState":
        """
        Rebuild a state from a snapshot, falling back to defaults field by field.

        Missing or malformed fields never raise; each one is logged and
        replaced by its default.
        """
        state = cls()
        if not snapshot:
            return state
        if not isinstance(snapshot, dict):
            logging.warning(f"Ignoring persisted state of type {type(snapshot).__name__}")
            return state

        state.mode = _restore_field(snapshot, 'mode', Mode.parse, state.mode)
        state.actuator_state = _restore_field(snapshot, 'actuatorState', ActuatorState.parse, state.actuator_state)
        state.target_temperature = _restore_field(snapshot, 'targetTemperature', _to_float, state.target_temperature)
        state.current_temperature = _restore_field(snapshot, 'currentTemperature', _to_float, None)
        state.updated = _restore_field(snapshot, 'updated', parse_timestamp, None)
        state.error = _restore_field(snapshot, 'error', _to_float, None)
        state.bias = _restore_field(snapshot, 'biasW', _to_float, state.bias)
        state.budget = _restore_field(snapshot, 'budgetJ', _to_float, state.budget)
        return state


def format_timestamp(timestamp: Optional[float]) -> Optional[str]:
    """Epoch seconds to ISO-8601 (UTC)"""
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp, pytz.utc).isoformat()


def parse_timestamp(value) -> float:
    """ISO-8601 string (naive values are taken as UTC) or epoch number to epoch seconds"""
    if isinstance(value, bool):
        raise TypeError("boolean is not a timestamp")
    if isinstance(value, (int, float)):
        return float(value)
    parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = pytz.utc.localize(parsed)
    return parsed.timestamp()


def _to_float(value) -> float:
    if isinstance(value, bool):
        raise TypeError("boolean is not a number")
    number = float(value)
    if not math.isfinite(number):
        raise ValueError("not a finite number")
    return number


def _restore_field(snapshot, key, parse, default):
    value = snapshot.get(key)
    if value is None:
        return default
    try:
        return parse(value)
    except (TypeError, ValueError) as e:
        logging.warning(f"Persisted field '{key}' is invalid ({value!r}: {e}), using default {default!r}")
        return default
