"""Exact decimal arithmetic for quantities and monetary amounts.

Every stored quantity and amount has at most 8 fractional digits. Sums,
differences and products of such values are exact under Python's decimal
context (28 significant digits is plenty for Numeric(20, 8)). Division is the
one operation that may not terminate: its result is rounded to 8 fractional
digits using banker's rounding (ROUND_HALF_EVEN). Per-share cost is therefore
``quantize(cost_basis / quantity)`` and may differ from the true ratio by at
most half a unit in the 8th place.
"""

from datetime import date
from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation
from typing import Iterable, Optional, Union

SCALE = 8
QUANTUM = Decimal(1).scaleb(-SCALE)  # 0.00000001
ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")

Number = Union[Decimal, int, str]


def to_decimal(value: Optional[Number]) -> Decimal:
    """Coerce ints, strings and decimals. Floats are refused to avoid binary noise."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        raise TypeError("floats are not accepted for money arithmetic; pass a str or Decimal")
    try:
        return Decimal(value)
    except InvalidOperation as e:
        raise ValueError(f"not a decimal: {value!r}") from e


def quantize(value: Number, scale: int = SCALE) -> Decimal:
    """Round to ``scale`` fractional digits with banker's rounding."""
    exp = QUANTUM if scale == SCALE else Decimal(1).scaleb(-scale)
    return to_decimal(value).quantize(exp, rounding=ROUND_HALF_EVEN)


def div(numerator: Number, denominator: Number, scale: int = SCALE) -> Decimal:
    """Divide and round to ``scale`` places. Division by zero yields zero."""
    d = to_decimal(denominator)
    if d == ZERO:
        return ZERO
    return quantize(to_decimal(numerator) / d, scale)


def mul(a: Number, b: Number) -> Decimal:
    """Product rounded back to the storage scale."""
    return quantize(to_decimal(a) * to_decimal(b))


def total(values: Iterable[Number]) -> Decimal:
    result = ZERO
    for v in values:
        result += to_decimal(v)
    return result


def is_zero(value: Number) -> bool:
    return to_decimal(value) == ZERO


def is_negative(value: Number) -> bool:
    return to_decimal(value) < ZERO


def is_positive(value: Number) -> bool:
    return to_decimal(value) > ZERO


def percent(part: Number, whole: Number) -> Decimal:
    """``part / whole * 100``, zero when ``whole`` is zero."""
    if is_zero(whole):
        return ZERO
    return quantize(to_decimal(part) / to_decimal(whole) * HUNDRED)


def add_years(d: date, years: int) -> date:
    """Calendar year arithmetic; Feb 29 maps to Feb 28 in non-leap years."""
    try:
        return d.replace(year=d.year + years)
    except ValueError:
        return d.replace(year=d.year + years, day=28)


def is_long_term(purchase_date: date, sell_date: date) -> bool:
    """True when the sale is at least one calendar year after purchase."""
    return sell_date >= add_years(purchase_date, 1)
