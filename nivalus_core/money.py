"""
Money Helpers Module

Single-currency Decimal handling. Balances and amounts are always Decimal
quantized to cents; float input is converted through ``str`` so binary
rounding never leaks into stored values.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from .errors import InvalidValueError


CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_amount(value: Any, field_name: str = "amount") -> Decimal:
    """
    Convert a caller-supplied value to a cent-quantized Decimal

    Args:
        value: Decimal, int, float or numeric string
        field_name: Name used in the error message

    Returns:
        Decimal rounded half-up to two places

    Raises:
        InvalidValueError: If the value is not a finite number
    """
    if isinstance(value, bool) or value is None:
        raise InvalidValueError(f"{field_name} must be a number")

    try:
        if isinstance(value, Decimal):
            result = value
        elif isinstance(value, (int, float)):
            result = Decimal(str(value))
        elif isinstance(value, str):
            result = Decimal(value.strip())
        else:
            raise InvalidValueError(f"{field_name} must be a number")
    except InvalidOperation:
        raise InvalidValueError(f"{field_name} must be a number, got {value!r}")

    if not result.is_finite():
        raise InvalidValueError(f"{field_name} must be a finite number")

    return result.quantize(CENT, rounding=ROUND_HALF_UP)


def to_positive_amount(value: Any, field_name: str = "amount") -> Decimal:
    """Convert and require a strictly positive amount"""
    result = to_amount(value, field_name)
    if result <= ZERO:
        raise InvalidValueError(f"{field_name} must be greater than zero")
    return result


def to_non_negative_amount(value: Any, field_name: str = "amount") -> Decimal:
    """Convert and require an amount >= 0"""
    result = to_amount(value, field_name)
    if result < ZERO:
        raise InvalidValueError(f"{field_name} must be zero or greater")
    return result


def format_amount(value: Decimal) -> str:
    """Render an amount with two decimal places"""
    return str(value.quantize(CENT, rounding=ROUND_HALF_UP))
