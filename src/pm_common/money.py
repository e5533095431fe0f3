"""Integer fixed-point utilities for the play-money economy.

All balances, share quantities and pool reserves are int micro-units
(1 unit = 0.000001 dollar or share). No float anywhere in the engine; Decimal
is only used at the edges to parse user input and render prices.

Rounding rule: whatever the pool charges is rounded up, whatever it pays out
is rounded down. See pm_pricing.domain.cpmm.
"""

from decimal import ROUND_DOWN, ROUND_HALF_EVEN, Decimal, InvalidOperation
from math import isqrt

from src.pm_common.errors import InvalidAmountError

UNITS_PER_DOLLAR = 1_000_000
_UNIT = Decimal(1) / UNITS_PER_DOLLAR
_MAX_EXPONENT = 15      # amounts below 10**16 dollars or shares


def to_units(value: Decimal | int | str | float) -> int:
    """Convert a user-supplied amount to micro-units.

    Rejects NaN, infinities, unparsable strings and absurdly large values.
    Sub-unit digits are rounded half-even. Sign is not checked; see positive_units().
    """
    if isinstance(value, float):
        value = repr(value)
    try:
        dec = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidAmountError(f"not a number: {value!r}") from None
    if not dec.is_finite():
        raise InvalidAmountError(f"not finite: {value!r}")
    if dec and dec.adjusted() > _MAX_EXPONENT:
        raise InvalidAmountError(f"too large: {value!r}")
    try:
        return int((dec * UNITS_PER_DOLLAR).to_integral_value(rounding=ROUND_HALF_EVEN))
    except ArithmeticError:
        raise InvalidAmountError(f"out of range: {value!r}") from None


def positive_units(value: Decimal | int | str | float) -> int:
    """to_units() that also rejects zero and negative amounts."""
    units = to_units(value)
    if units <= 0:
        raise InvalidAmountError(f"must be positive, got {value}")
    return units


def from_units(units: int) -> Decimal:
    """Exact Decimal value of a micro-unit amount: 994504902 -> Decimal("994.504902")."""
    return (Decimal(units) * _UNIT).quantize(_UNIT)


def units_to_display(units: int) -> str:
    """Dollar display string rounded down to cents: 994504902 -> '$994.50'."""
    cents = abs(units) * 100 // UNITS_PER_DOLLAR
    sign = "-" if units < 0 else ""
    return f"{sign}${cents // 100:,}.{cents % 100:02d}"


def shares_to_display(units: int) -> str:
    """Share quantity rounded down to two decimals: 10000000 -> '10.00'."""
    return str(from_units(units).quantize(Decimal("0.01"), rounding=ROUND_DOWN))


def ceil_div(numerator: int, denominator: int) -> int:
    """Integer ceiling division for positive denominators."""
    return -(-numerator // denominator)


def isqrt_ceil(n: int) -> int:
    """Smallest integer r with r * r >= n."""
    if n < 0:
        raise ValueError(f"isqrt_ceil of negative number: {n}")
    r = isqrt(n)
    return r if r * r == n else r + 1
