"""
Fixed-point money helpers.

Every amount in the system is an int of minor currency units (centavos).
Multiplication by fractional quantities happens in Decimal and is rounded
back to a whole minor unit; nothing is ever stored as float.
"""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_EVEN, ROUND_HALF_UP

from .validation import ValidationError


ROUNDING_MODES = {
    "half_even": ROUND_HALF_EVEN,
    "half_up": ROUND_HALF_UP,
}


def _rounding(mode: str) -> str:
    try:
        return ROUNDING_MODES[mode]
    except KeyError:
        raise ValidationError(f"Unknown rounding mode: {mode}")


def round_to_cents(value: Decimal, mode: str = "half_even") -> int:
    return int(value.quantize(Decimal(1), rounding=_rounding(mode)))


def line_total(unit_price_cents: int, quantity: int, scale: int = 1, mode: str = "half_even") -> int:
    """
    Total for `quantity` units at `unit_price_cents` each.

    `quantity` is a scaled integer: for weight products with scale=1000,
    quantity=1250 means 1.250 kg.
    """
    if scale <= 0:
        raise ValidationError("quantity scale must be positive")
    if scale == 1:
        return unit_price_cents * quantity
    exact = Decimal(unit_price_cents) * Decimal(quantity) / Decimal(scale)
    return round_to_cents(exact, mode)


def ratio(total_cents: int, count: int, mode: str = "half_even") -> int:
    """Average in minor units (0 when count is 0)."""
    if count <= 0:
        return 0
    return round_to_cents(Decimal(total_cents) / Decimal(count), mode)


def sum_cents(amounts) -> int:
    return sum(int(a) for a in amounts)
