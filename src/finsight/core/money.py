"""
Money arithmetic helpers.

Every monetary figure in the engine is a ``Decimal`` and every displayed figure
goes through ``round_money`` so that a total and its constituent buckets can
never drift apart by being rounded in two different ways.
"""

from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from .exceptions import MalformedRecordError

CENT = Decimal("0.01")
ZERO = Decimal("0")


def to_decimal(value: Any) -> Decimal:
    """Convert a raw number or numeric string to a finite ``Decimal``.

    ``None`` and empty strings become zero.  NaN, Infinity and unparseable
    input raise :class:`MalformedRecordError`.
    """
    if value is None or value == "":
        return ZERO
    if isinstance(value, bool):
        raise MalformedRecordError(f"Boolean is not a monetary amount: {value!r}")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            # str() avoids binary float artefacts: 0.1 -> Decimal("0.1")
            result = Decimal(str(value).strip().replace(",", ""))
        except (InvalidOperation, ValueError) as e:
            raise MalformedRecordError(f"Not a number: {value!r}") from e
    if not result.is_finite():
        raise MalformedRecordError(f"Amount must be finite: {value!r}")
    return result


def round_money(value: Decimal) -> Decimal:
    """Round to cents, half-up.  Non-finite values pass through for validation to catch."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    if not value.is_finite():
        return value
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def sum_money(values: Iterable[Decimal]) -> Decimal:
    """Sum monetary values exactly (no rounding)."""
    total = ZERO
    for v in values:
        total += v
    return total


def is_finite(value: Any) -> bool:
    """True when *value* is a finite int, float or Decimal."""
    if isinstance(value, Decimal):
        return value.is_finite()
    if isinstance(value, int | float) and not isinstance(value, bool):
        return value == value and value not in (float("inf"), float("-inf"))
    return False


def percent_change(current: Decimal, previous: Decimal) -> float | None:
    """``(current - previous) / previous * 100``, or None when *previous* is zero."""
    if previous == 0:
        return None
    return float((current - previous) / previous * 100)
