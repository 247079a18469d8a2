"""
Controller Configuration

Immutable tuning parameters for the budget-based PID controller, plus
validation and loading from the YAML configuration mapping.
"""

import logging
from dataclasses import dataclass
from typing import Optional


SECONDS_PER_MINUTE = 60.0


class ConfigurationError(ValueError):
    """Raised when the controller configuration cannot drive an actuator."""


@dataclass(frozen=True)
class ControllerConfig:
    """
    Tuning parameters for the budget-based PID controller.

    Attributes:
        heating_power: Heater capacity in W (0 disables heating)
        cooling_power: Cooler capacity in W (0 disables cooling)
        c_p: Proportional gain in W/°C
        c_i: Integral gain in W/(°C·s)
        c_d: Differential gain in J/°C
        k: Overshoot compensation coefficient in W/°C (0 disables compensation)
        dt: Expected target temperature step in °C (None = adaptive, uses |error|)
        budget_threshold: Energy budget in J that switches the actuator on
        minimum_update_interval: Longest wait in s before a forced evaluation
    """
    heating_power: float = 0.0
    cooling_power: float = 0.0
    c_p: float = 0.0
    c_i: float = 0.0
    c_d: float = 0.0
    k: float = 0.0
    dt: Optional[float] = None
    budget_threshold: float = 0.0
    minimum_update_interval: Optional[float] = None

    def __post_init__(self):
        if self.budget_threshold <= 0:
            raise ConfigurationError(
                f"budget_threshold must be positive (got {self.budget_threshold})"
            )
        if self.heating_power < 0 or self.cooling_power < 0:
            raise ConfigurationError(
                f"Actuator powers must not be negative "
                f"(heating={self.heating_power}, cooling={self.cooling_power})"
            )
        if self.heating_power == 0 and self.cooling_power == 0:
            raise ConfigurationError("At least one of heating_power or cooling_power must be positive")
        if self.k < 0:
            raise ConfigurationError(f"k must not be negative (got {self.k})")
        if self.dt is not None and self.dt <= 0:
            raise ConfigurationError(f"dt must be positive when set (got {self.dt})")
        if self.minimum_update_interval is not None and self.minimum_update_interval <= 0:
            raise ConfigurationError(
                f"minimum_update_interval must be positive when set (got {self.minimum_update_interval})"
            )

    @property
    def can_heat(self) -> bool:
        return self.heating_power > 0

    @property
    def can_cool(self) -> bool:
        return self.cooling_power > 0

    @classmethod
    def from_dict(cls, config: dict) -> "ControllerConfig":
        """
        Build a configuration from the `controller` section of the YAML file.

        Supports two budget units:
        - energy (default): powers in W, budget_threshold in J
        - time: heating/cooling are booleans, each enabled direction gets a
          power of 1 W so the budget counts seconds of actuation, and
          budget_threshold is given in minutes

        Args:
            config: Mapping with keys heating_power, cooling_power, pid
                    (c_p, c_i, c_d), overshoot_compensation (k, dt),
                    budget_threshold, minimum_update_interval, budget_unit

        Returns:
            Validated ControllerConfig

        Raises:
            ConfigurationError: if keys are missing or values are invalid
        """
        if not isinstance(config, dict):
            raise ConfigurationError(f"Controller configuration must be a mapping (got {type(config).__name__})")

        unit = str(config.get('budget_unit', 'energy')).lower()
        pid = config.get('pid') or {}
        compensation = config.get('overshoot_compensation') or {}

        try:
            if unit == 'time':
                heating_power = 1.0 if config.get('heating', True) else 0.0
                cooling_power = 1.0 if config.get('cooling', False) else 0.0
                budget_threshold = float(config['budget_threshold']) * SECONDS_PER_MINUTE
            elif unit == 'energy':
                heating_power = float(config.get('heating_power', 0.0))
                cooling_power = float(config.get('cooling_power', 0.0))
                budget_threshold = float(config['budget_threshold'])
            else:
                raise ConfigurationError(f"Unknown budget_unit '{unit}' (expected 'energy' or 'time')")

            dt = compensation.get('dt')
            interval = config.get('minimum_update_interval')

            controller_config = cls(
                heating_power=heating_power,
                cooling_power=cooling_power,
                c_p=float(pid.get('c_p', 0.0)),
                c_i=float(pid.get('c_i', 0.0)),
                c_d=float(pid.get('c_d', 0.0)),
                k=float(compensation.get('k', 0.0)),
                dt=float(dt) if dt is not None else None,
                budget_threshold=budget_threshold,
                minimum_update_interval=float(interval) if interval is not None else None,
            )
        except KeyError as e:
            raise ConfigurationError(f"Missing controller configuration key: {e}") from e
        except (TypeError, ValueError) as e:
            if isinstance(e, ConfigurationError):
                raise
            raise ConfigurationError(f"Invalid controller configuration value: {e}") from e

        logging.info(
            f"Controller config ({unit} budget): heating={controller_config.heating_power} W, "
            f"cooling={controller_config.cooling_power} W, cP={controller_config.c_p}, "
            f"cI={controller_config.c_i}, cD={controller_config.c_d}, k={controller_config.k}, "
            f"dt={controller_config.dt}, threshold={controller_config.budget_threshold} J, "
            f"max interval={controller_config.minimum_update_interval}"
        )
        return controller_config
