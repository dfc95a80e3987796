# utils/money.py
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(value) -> Decimal:
    """
    Parse a JSON/DB value into Decimal without going through binary floats.
    Raises ValueError for anything that is not a finite number.
    """
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, bool) or value is None:
        raise ValueError(f"not a number: {value!r}")
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValueError(f"not a number: {value!r}")
    if not result.is_finite():
        raise ValueError(f"not a finite number: {value!r}")
    return result


def money(value) -> Decimal:
    """Round to the currency minor unit (2 dp, half-up)."""
    if value is None:
        return ZERO
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def as_float(value):
    return float(value) if value is not None else None
