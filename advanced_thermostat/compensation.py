"""
Overshoot Compensation

Damps the proportional and integral gain as the integral bias approaches the
actuator's power ceiling, so a plant with limited capacity does not overshoot
once the target is reached.
"""

from .config import ControllerConfig


def compensation_factor(config: ControllerConfig, error: float, bias: float) -> float:
    """
    Calculate the compensation factor for the current error and bias.

        factor = 1 / (1 + k * step / headroom)

    where headroom is the power left between the bias and the ceiling in the
    direction of the error, and step is the configured dt or |error|.

    Args:
        config: Controller configuration (heating/cooling power, k, dt)
        error: Target minus current temperature in °C
        bias: Integral bias in W

    Returns:
        Factor in [0, 1]:
        - 1: compensation disabled (k = 0)
        - 0: actuator already saturated in the direction of the error
    """
    if config.k == 0:
        return 1.0

    if error >= 0:
        headroom = config.heating_power - bias
    else:
        headroom = config.cooling_power + bias

    if headroom <= 0:
        return 0.0

    step = config.dt if config.dt is not None else abs(error)
    return 1.0 / (1.0 + config.k * step / headroom)
