"""
Duration Solver

Finds the earliest moment a quadratic budget trajectory

    budget(t) = a * t^2 + b * t + budget

reaches one of a set of limits.
"""

import math
from typing import Iterable


# Coefficients below this magnitude are treated as zero
EPSILON = 1e-9


def solve(a: float, b: float, budget: float, limits: Iterable[float]) -> float:
    """
    Earliest positive time at which the trajectory equals any of the limits.

    Args:
        a: Quadratic coefficient (J/s²)
        b: Linear coefficient (J/s)
        budget: Budget at t = 0 (J)
        limits: Budget values to watch for (J)

    Returns:
        Seconds until the first crossing, or math.inf if no limit is ever
        reached in the future. Never zero, negative or NaN.
    """
    earliest = math.inf
    for limit in limits:
        for root in _roots(a, b, budget - limit):
            if root > 0 and root < earliest:
                earliest = root
    return earliest


def _roots(a: float, b: float, c: float):
    """Real roots of a*t^2 + b*t + c = 0, with explicit degenerate branches"""
    if abs(a) > EPSILON:
        discriminant = b * b - 4 * a * c
        if discriminant < 0:
            return []
        sqrt_discriminant = math.sqrt(discriminant)
        return [(-b - sqrt_discriminant) / (2 * a), (-b + sqrt_discriminant) / (2 * a)]

    if abs(b) > EPSILON:
        return [-c / b]

    # Flat trajectory
    return []
