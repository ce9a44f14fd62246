"""
Utilities for Reports module

Provides decimal rounding helpers and common utility functions for
report assembly. All money, quantity and percentage values are rounded
exactly once, when a builder assembles its output.
"""

from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Union

ZERO = Decimal("0")
HUNDRED = Decimal("100")

QUANTITY_PLACES = Decimal("0.001")
PERCENT_PLACES = Decimal("0.01")

# ISO 4217 minor units that differ from the usual two decimals
CURRENCY_MINOR_UNITS = {
    "JPY": 0,
    "KRW": 0,
    "VND": 0,
    "CLP": 0,
    "BHD": 3,
    "KWD": 3,
    "OMR": 3,
    "JOD": 3,
    "TND": 3,
}
DEFAULT_MINOR_UNITS = 2

Number = Union[Decimal, int, str, None]


def to_decimal(value: Any) -> Decimal:
    """
    Convert a stored value to Decimal without going through float.

    None is treated as zero. Floats are converted via their string form so
    that values read back from SQLite keep their declared scale.
    """
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def minor_units(currency: str) -> int:
    return CURRENCY_MINOR_UNITS.get((currency or "").upper(), DEFAULT_MINOR_UNITS)


def money_exponent(currency: str) -> Decimal:
    return Decimal(1).scaleb(-minor_units(currency))


def quantize_money(value: Number, currency: str) -> Decimal:
    """Round a monetary amount to the currency minor unit (ROUND_HALF_UP)"""
    return to_decimal(value).quantize(money_exponent(currency), rounding=ROUND_HALF_UP)


def quantize_quantity(value: Number) -> Decimal:
    return to_decimal(value).quantize(QUANTITY_PLACES, rounding=ROUND_HALF_UP)


def quantize_percent(value: Number) -> Decimal:
    return to_decimal(value).quantize(PERCENT_PLACES, rounding=ROUND_HALF_UP)


def safe_divide(numerator: Number, denominator: Number) -> Decimal:
    """Divide, returning 0 when the denominator is 0"""
    denominator = to_decimal(denominator)
    if denominator == 0:
        return ZERO
    return to_decimal(numerator) / denominator


def percentage(part: Number, total: Number) -> Decimal:
    """
    part / total * 100, rounded to two places.

    Returns 0 when total is 0.
    """
    return quantize_percent(safe_divide(part, total) * HUNDRED)


def clamp(value: Decimal, lower: Decimal = ZERO, upper: Decimal = HUNDRED) -> Decimal:
    if value < lower:
        return lower
    if value > upper:
        return upper
    return value


def month_key(value: date) -> str:
    """Calendar month key in YYYY-MM form"""
    return f"{value.year:04d}-{value.month:02d}"
