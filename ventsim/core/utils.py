"""
Shared utility functions for VentSim.
"""

import math


def clamp(value: float, low: float, high: float) -> float:
    """
    Clamp value to the inclusive range [low, high].
    """
    if low > high:
        low, high = high, low
    return max(low, min(high, value))


def clamp01(value: float) -> float:
    """
    Clamp value to the inclusive range [0.0, 1.0].
    """
    return clamp(value, 0.0, 1.0)


def approach_fraction(dt: float, tau: float) -> float:
    """
    Fraction of the remaining gap covered by a first-order system in dt.

    Returns 1 - exp(-dt / tau). A non-positive tau means an instantaneous
    response (1.0).
    """
    if tau <= 0:
        return 1.0
    return 1.0 - math.exp(-dt / tau)


def lerp(low: float, high: float, t: float) -> float:
    """Linear interpolation between low and high at t in [0, 1]."""
    return low + (high - low) * t
