"""Fixed-point conversion for currency amounts and DP capacities."""

from __future__ import annotations

from decimal import ROUND_CEILING, ROUND_FLOOR, ROUND_HALF_UP, Decimal


def to_minor_units(value: float, scale: int = 100, rounding: str = ROUND_HALF_UP) -> int:
    """Convert a decimal quantity into integer minor units.

    The value goes through ``str`` first so ``4.35`` is treated as the decimal
    literal the caller wrote, not its binary approximation.
    """
    if scale <= 0:
        raise ValueError("scale must be > 0")
    scaled = Decimal(str(value)) * scale
    return int(scaled.to_integral_value(rounding=rounding))


def floor_units(value: float, scale: int = 100) -> int:
    return to_minor_units(value, scale=scale, rounding=ROUND_FLOOR)


def ceil_units(value: float, scale: int = 100) -> int:
    return to_minor_units(value, scale=scale, rounding=ROUND_CEILING)


def from_minor_units(units: int, scale: int = 100) -> float:
    return float(Decimal(units) / scale)
