"""Decimal money helpers shared by the calculators."""

from __future__ import annotations

from decimal import ROUND_CEILING, ROUND_DOWN, ROUND_HALF_EVEN, ROUND_HALF_UP, Decimal

CENTS = Decimal("0.01")
ZERO = Decimal("0")


def round_to_cents(amount: Decimal) -> Decimal:
    """Round half-up to 2 decimal places."""
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def truncate_to_cents(amount: Decimal) -> Decimal:
    """Drop everything past the second decimal place."""
    return amount.quantize(CENTS, rounding=ROUND_DOWN)


def ceil_to_step(amount: Decimal, step: Decimal) -> Decimal:
    """Round up to the next multiple of ``step``."""
    units = (amount / step).quantize(Decimal("1"), rounding=ROUND_CEILING)
    return (units * step).quantize(CENTS)


def round_to_step(amount: Decimal, step: Decimal) -> Decimal:
    """Round to the nearest multiple of ``step``, ties to even."""
    units = (amount / step).quantize(Decimal("1"), rounding=ROUND_HALF_EVEN)
    return (units * step).quantize(CENTS)


def ceil_to_ringgit(amount: Decimal) -> Decimal:
    """Round up to a whole ringgit, kept at 2 dp."""
    return amount.quantize(Decimal("1"), rounding=ROUND_CEILING).quantize(CENTS)
