"""
Amounts -- Decimal helpers for single-currency ledger arithmetic.

Responsibility:
    Convert inputs to ``Decimal`` (never float) and provide the sanctioned
    rounding functions used by the engines.

Invariants enforced:
    - No floats: ``to_amount`` rejects ``float`` outright so binary
      rounding noise never reaches the ledger.
    - Rounding is ROUND_HALF_UP by default; stored allocation amounts are
      whole units (``round_whole``).
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

ZERO = Decimal("0")
WHOLE = Decimal("1")

DEFAULT_ROUNDING = ROUND_HALF_UP


def to_amount(value: Decimal | str | int) -> Decimal:
    """
    Convert a value to Decimal.

    Raises:
        TypeError: if value is a float (or bool).
        ValueError: if value cannot be parsed as a number.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise TypeError(
            f"Amounts must be Decimal, str or int, not {type(value).__name__}"
        )
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(value)
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"Invalid amount: {value!r}") from exc


def to_optional_amount(value: Decimal | str | int | None) -> Decimal | None:
    """``to_amount`` that lets None through."""
    if value is None:
        return None
    return to_amount(value)


def round_amount(
    value: Decimal,
    quantum: Decimal = WHOLE,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """Round ``value`` to ``quantum`` (e.g. ``Decimal("1")`` or ``Decimal("0.01")``)."""
    return value.quantize(quantum, rounding=rounding)


def round_whole(value: Decimal) -> Decimal:
    """Round to the nearest whole currency unit."""
    return round_amount(value, WHOLE)


def round_to_step(value: Decimal, step: Decimal | int) -> Decimal:
    """Round ``value`` to the nearest multiple of ``step`` (half up)."""
    step = to_amount(step)
    return round_whole(value / step) * step


def sum_amounts(values) -> Decimal:
    """Sum an iterable of Decimals starting from ``Decimal("0")``."""
    return sum(values, ZERO)
