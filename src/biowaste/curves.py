"""
Ramp curves used by the territory model.

Two shapes are used throughout the simulation:
1.  sigmoid: an S-shaped diffusion curve (x^5 / (x^5 + m^5)) used for
    behavioural-intention ramps and for the exogenous anti-biowaste plan.
2.  linear: a capped linear ramp used for infrastructure capacity roll-out.

Both are pure functions of elapsed time; series helpers precompute them for a
whole horizon.
"""

from typing import List

import numpy as np

SIGMOID_EXPONENT = 5
MAX_TIME_BEFORE_INIT = 1000


def sigmoid(x: float, inflection: float) -> float:
    """
    Bounded diffusion curve passing 0.5 at x == inflection.

    A non-positive inflection point means the curve is already saturated
    and 1.0 is returned. Negative time offsets are treated as 0.
    """
    if inflection <= 0:
        return 1.0
    x = max(0.0, float(x))
    t = x ** SIGMOID_EXPONENT
    return t / (t + float(inflection) ** SIGMOID_EXPONENT)


def linear(t: float, duration: float) -> float:
    """Capped linear ramp: min(t / duration, 1). A zero duration is an instant roll-out."""
    if duration <= 0:
        return 1.0
    return min(max(0.0, float(t)) / float(duration), 1.0)


def sigmoid_series(length: int, inflection: float, offset: int = 0) -> List[float]:
    """Precompute sigmoid(y + offset, inflection) for y in [0, length)."""
    return [sigmoid(y + offset, inflection) for y in range(length)]


def linear_series(length: int, duration: float) -> List[float]:
    """Precompute linear(y, duration) for y in [0, length)."""
    return [linear(y, duration) for y in range(length)]


def time_before_init(value: float, inflection: float) -> int:
    """
    Number of years the sigmoid needs to reach `value`.

    Used to shift an intention ramp so it starts where the observed
    baseline already is, instead of at the bottom of the S-curve.
    """
    if value <= 0 or inflection <= 0:
        return 0
    target = min(float(value), float(np.nextafter(1.0, 0.0)))
    t = 0
    while sigmoid(t, inflection) < target and t < MAX_TIME_BEFORE_INIT:
        t += 1
    return t
