"""
Budget-based PID Controller

Continuous-time PID controller driving a three-state actuator (HEAT/COOL/OFF).

Instead of a duty cycle, the PID output is integrated into an energy budget:
- the P, I and D terms add the energy the room asks for
- the actuator subtracts the energy it actually delivers
- the actuator switches on when the budget reaches ±budget_threshold and
  switches off when the budget returns to 0 (hysteresis)

Between evaluations the budget follows a quadratic trajectory, so the moment
of the next switch can be solved exactly and the host only needs to wake the
controller at that moment (or earlier when an input changes).
"""

import logging
import math
import time
from typing import Callable, List, Optional

from .compensation import compensation_factor
from .config import ControllerConfig
from .control_state import ActuatorState, ControlState, Mode
from .decision_record import DecisionRecord
from .duration_solver import solve


def clamp(x: float, lo: float, hi: float) -> float:
    """Clamp x into [lo, hi]."""
    if x < lo:
        return lo
    if x > hi:
        return hi
    return x


class BudgetController:
    """
    Budget-based PID controller for a single thermostat.

    The controller exclusively owns its ControlState. It performs no I/O:
    scheduling, persistence and telemetry are left to the host, which calls
    update() whenever a timer expires or an input changes.
    """

    def __init__(self, name: str, config: ControllerConfig, state: Optional[ControlState] = None,
                 clock: Callable[[], float] = time.time, max_timer_delay: Optional[float] = None):
        """
        Initialize the controller.

        Args:
            name: Identifier for this thermostat (used in log lines)
            config: Validated controller configuration
            state: Initial state (default: OFF, 20°C, zero accumulators)
            clock: Returns the current time in epoch seconds
            max_timer_delay: Longest delay in s the host's timers can represent
        """
        self.name = name
        self.config = config
        self.state = state if state is not None else ControlState()
        self.clock = clock
        self.max_timer_delay = max_timer_delay

    # Mode helpers

    def heating_permitted(self, mode: Mode) -> bool:
        return mode in (Mode.HEAT, Mode.AUTO) and self.config.can_heat

    def cooling_permitted(self, mode: Mode) -> bool:
        return mode in (Mode.COOL, Mode.AUTO) and self.config.can_cool

    def bias_limits(self, mode: Mode):
        """Range of the integral bias the actuator can follow in this mode"""
        upper = self.config.heating_power if self.heating_permitted(mode) else 0.0
        lower = -self.config.cooling_power if self.cooling_permitted(mode) else 0.0
        return lower, upper

    def power(self, actuator_state: ActuatorState) -> float:
        """Power delivered by the actuator in W (cooling is negative)"""
        if actuator_state == ActuatorState.HEAT:
            return self.config.heating_power
        if actuator_state == ActuatorState.COOL:
            return -self.config.cooling_power
        return 0.0

    def next_state(self, mode: Mode, budget: float, current: ActuatorState,
                   shutdown: bool = False) -> ActuatorState:
        """
        Actuator state for the given budget.

        The actuator turns on at ±budget_threshold but only turns off once the
        budget is back at 0, so it does not chatter around the threshold.
        """
        threshold = self.config.budget_threshold
        if shutdown:
            return ActuatorState.OFF
        if self.heating_permitted(mode) and budget >= threshold:
            return ActuatorState.HEAT
        if self.cooling_permitted(mode) and budget <= -threshold:
            return ActuatorState.COOL
        if current == ActuatorState.HEAT and (budget <= 0 or not self.heating_permitted(mode)):
            return ActuatorState.OFF
        if current == ActuatorState.COOL and (budget >= 0 or not self.cooling_permitted(mode)):
            return ActuatorState.OFF
        return current

    # Evaluation

    def update(self, trigger: str = "timer", shutdown: bool = False,
               now: Optional[float] = None) -> DecisionRecord:
        """
        Advance the model to `now` and decide the actuator state.

        Args:
            trigger: Human readable reason for this evaluation
            shutdown: Final evaluation; the actuator is switched off and
                      nothing is scheduled afterwards
            now: Evaluation time in epoch seconds (default: clock())

        Returns:
            DecisionRecord describing the decision and the next deadline
        """
        config = self.config
        state = self.state
        now = self.clock() if now is None else now
        # Persisted timestamps keep whole microseconds
        now = round(now, 6)

        old_state = state.actuator_state
        old_bias = state.bias
        first_evaluation = state.error is None

        # Error (target stands in for the measurement until the first sample)
        current = state.current_temperature if state.current_temperature is not None else state.target_temperature
        new_error = state.target_temperature - current
        old_error = new_error if first_evaluation else state.error

        elapsed = 0.0 if state.updated is None else max(0.0, now - state.updated)
        lower, upper = self.bias_limits(state.mode)

        factor_old = compensation_factor(config, old_error, old_bias)
        p_energy = i_energy = d_energy = delivered = 0.0
        bias_new = old_bias

        if elapsed > 0:
            # I: linear bias trajectory, clamped to the actuator capacity
            start_bias = clamp(old_bias, lower, upper)
            rate = config.c_i * factor_old * old_error
            proposed = start_bias + rate * elapsed
            bias_new = clamp(proposed, lower, upper)

            elapsed_unlimited = elapsed
            if bias_new != proposed and rate != 0:
                elapsed_unlimited = clamp((bias_new - start_bias) / rate, 0.0, elapsed)
                logging.debug(
                    f"Budget PID [{self.name}]: Bias clamped at {bias_new:.1f} W "
                    f"after {elapsed_unlimited:.1f} of {elapsed:.1f} s"
                )

            factor_new = compensation_factor(config, new_error, bias_new)
            factor_avg = (factor_old + factor_new) / 2

            delivered = self.power(old_state) * elapsed
            p_energy = elapsed_unlimited * config.c_p * factor_avg * old_error
            i_energy = (elapsed_unlimited * (start_bias + bias_new) / 2
                        + (elapsed - elapsed_unlimited) * bias_new)
            d_energy = config.c_d * (new_error - old_error)
        else:
            factor_new = compensation_factor(config, new_error, bias_new)

        budget = state.budget + p_energy + i_energy + d_energy - delivered
        new_state = self.next_state(state.mode, budget, old_state, shutdown)

        state.actuator_state = new_state
        state.updated = now
        # Same instant: keep the derivative reference for the next interval
        if elapsed > 0 or first_evaluation:
            state.error = new_error
        state.bias = bias_new
        state.budget = budget

        duration = self.predict_duration(new_state, new_error, factor_new, shutdown)
        next_update_in = self._next_update_in(duration, shutdown)

        record = DecisionRecord(
            timestamp=now,
            trigger=trigger,
            mode=state.mode,
            old_state=old_state,
            new_state=new_state,
            target_temperature=state.target_temperature,
            current_temperature=state.current_temperature,
            error=new_error,
            elapsed=elapsed,
            p_power=config.c_p * factor_new * new_error,
            i_power=bias_new,
            d_power=d_energy / elapsed if elapsed > 0 else 0.0,
            p_energy=p_energy,
            i_energy=i_energy,
            d_energy=d_energy,
            delivered_energy=delivered,
            compensation_factor=factor_new,
            budget=budget,
            duration=duration,
            next_update_in=next_update_in,
            shutdown=shutdown,
        )

        logging.debug(
            f"Budget PID [{self.name}]: error={new_error:+.2f}°C, elapsed={elapsed:.1f}s | "
            f"P={p_energy:.0f} J, I={i_energy:.0f} J, D={d_energy:.0f} J, delivered={delivered:.0f} J | "
            f"factor={factor_old:.3f}→{factor_new:.3f}, bias={old_bias:.1f}→{bias_new:.1f} W | "
            f"budget={budget:.0f} J, state={old_state.name}→{new_state.name}"
        )
        return record

    def predict_duration(self, actuator_state: ActuatorState, error: float, factor: float,
                         shutdown: bool = False) -> float:
        """
        Seconds until the budget reaches the next switching limit.

        With the current inputs held constant the budget follows

            budget(t) = ½·cI·f·e·t² + (bias + cP·f·e − power)·t + budget

        The result is also bounded by the moment the bias reaches its clamp,
        after which the trajectory is no longer quadratic.
        """
        if shutdown:
            return math.inf

        state = self.state
        limits = self._limits(actuator_state, state.mode)
        if not limits:
            return math.inf

        rate = self.config.c_i * factor * error
        a = 0.5 * rate
        b = state.bias + self.config.c_p * factor * error - self.power(actuator_state)
        duration = solve(a, b, state.budget, limits)

        lower, upper = self.bias_limits(state.mode)
        if rate > 0 and state.bias < upper:
            duration = min(duration, (upper - state.bias) / rate)
        elif rate < 0 and state.bias > lower:
            duration = min(duration, (lower - state.bias) / rate)
        return duration

    def _limits(self, actuator_state: ActuatorState, mode: Mode) -> List[float]:
        if actuator_state != ActuatorState.OFF:
            return [0.0]
        limits = []
        if self.heating_permitted(mode):
            limits.append(self.config.budget_threshold)
        if self.cooling_permitted(mode):
            limits.append(-self.config.budget_threshold)
        return limits

    def _next_update_in(self, duration: float, shutdown: bool) -> Optional[float]:
        if shutdown:
            return None
        delay = duration
        if self.config.minimum_update_interval is not None:
            delay = min(delay, self.config.minimum_update_interval)
        if math.isinf(delay):
            return None
        if self.max_timer_delay is not None:
            delay = min(delay, self.max_timer_delay)
        return delay

    # Inputs

    def set_mode(self, mode) -> Optional[DecisionRecord]:
        """Change the mode; re-evaluates immediately if it changed"""
        mode = Mode.parse(mode)
        if mode == self.state.mode:
            logging.debug(f"Budget PID [{self.name}]: Mode already {mode.name}")
            return None
        logging.info(f"Budget PID [{self.name}]: Mode {self.state.mode.name} → {mode.name}")
        self.state.mode = mode
        return self.update(f"mode set to {mode.name}")

    def set_target(self, temperature: float) -> Optional[DecisionRecord]:
        """Change the target temperature; re-evaluates immediately if it changed"""
        temperature = float(temperature)
        if not math.isfinite(temperature):
            logging.warning(f"Budget PID [{self.name}]: Ignoring non-finite target {temperature}")
            return None
        if temperature == self.state.target_temperature:
            logging.debug(f"Budget PID [{self.name}]: Target already {temperature:.1f}°C")
            return None
        logging.info(
            f"Budget PID [{self.name}]: Target {self.state.target_temperature:.1f}°C → {temperature:.1f}°C"
        )
        self.state.target_temperature = temperature
        return self.update(f"target set to {temperature:.1f}°C")

    def set_current(self, temperature: float) -> Optional[DecisionRecord]:
        """Record a new measurement; re-evaluates immediately if it changed"""
        temperature = float(temperature)
        if not math.isfinite(temperature):
            logging.warning(f"Budget PID [{self.name}]: Ignoring non-finite temperature {temperature}")
            return None
        if temperature == self.state.current_temperature:
            logging.debug(f"Budget PID [{self.name}]: Current temperature still {temperature:.1f}°C")
            return None
        logging.debug(f"Budget PID [{self.name}]: Current temperature {temperature:.1f}°C")
        self.state.current_temperature = temperature
        return self.update(f"current temperature {temperature:.1f}°C")

    # Persistence

    def snapshot(self) -> dict:
        return self.state.to_snapshot()

    def restore(self, snapshot: Optional[dict]):
        """
        Replace the state with a persisted snapshot.

        Missing or invalid fields fall back to their defaults. An actuator
        state the restored mode cannot drive is reset to OFF and the bias is
        clamped to the mode's capacity range.
        """
        state = ControlState.from_snapshot(snapshot)
        if ((state.actuator_state == ActuatorState.HEAT and not self.heating_permitted(state.mode))
                or (state.actuator_state == ActuatorState.COOL and not self.cooling_permitted(state.mode))):
            logging.warning(
                f"Budget PID [{self.name}]: Restored actuator state {state.actuator_state.name} "
                f"not possible in mode {state.mode.name}, switching OFF"
            )
            state.actuator_state = ActuatorState.OFF

        lower, upper = self.bias_limits(state.mode)
        bias = clamp(state.bias, lower, upper)
        if bias != state.bias:
            logging.warning(
                f"Budget PID [{self.name}]: Restored bias {state.bias:.1f} W outside {lower:.0f}..{upper:.0f} W "
                f"in mode {state.mode.name}, clamping to {bias:.1f} W"
            )
            state.bias = bias
        self.state = state
        logging.info(
            f"Budget PID [{self.name}]: State restored | mode: {state.mode.name}, "
            f"actuator: {state.actuator_state.name}, target: {state.target_temperature:.1f}°C, "
            f"bias: {state.bias:.1f} W, budget: {state.budget:.0f} J"
        )

    def __repr__(self):
        return f"{self.__class__.__name__}(name='{self.name}')"
