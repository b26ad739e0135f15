"""Number parsing utilities for request payloads."""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

from jewelquote.exceptions import ValidationError

CENT = Decimal('0.01')


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def parse_decimal(
    value: Any,
    field: str,
    default: Optional[Decimal] = None,
    minimum: Optional[Decimal] = None,
) -> Optional[Decimal]:
    """
    Parse a JSON/form value into a Decimal.

    Accepts ints, floats and numeric strings ("12.5", " 3 "). Blank values
    return ``default``. Booleans are rejected even though they are ints.

    Raises:
        ValidationError: if the value is malformed or below ``minimum``.
    """
    if is_blank(value):
        return default

    if isinstance(value, bool):
        raise ValidationError(f'{field} must be a number', field=field)

    try:
        decimal_value = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f'{field} must be a number', field=field)

    if not decimal_value.is_finite():
        raise ValidationError(f'{field} must be a number', field=field)

    if minimum is not None and decimal_value < minimum:
        raise ValidationError(f'{field} must be at least {minimum}', field=field)

    return decimal_value


def parse_int(
    value: Any,
    field: str,
    default: Optional[int] = None,
    minimum: Optional[int] = None,
) -> Optional[int]:
    """
    Parse an integer field. "2" and 2.0 are accepted, 2.5 is not.

    Raises:
        ValidationError: if the value is not integral or below ``minimum``.
    """
    decimal_value = parse_decimal(value, field)
    if decimal_value is None:
        return default

    if decimal_value != decimal_value.to_integral_value():
        raise ValidationError(f'{field} must be an integer', field=field)

    int_value = int(decimal_value)
    if minimum is not None and int_value < minimum:
        raise ValidationError(f'{field} must be at least {minimum}', field=field)

    return int_value


def to_scale(value: Optional[Decimal], exponent: Decimal) -> Optional[Decimal]:
    """
    Round half up to the column scale, e.g. to_scale(Decimal('1.125'), Decimal('0.01')) -> 1.13.
    """
    if value is None:
        return None
    return Decimal(value).quantize(exponent, rounding=ROUND_HALF_UP)


def to_money(value: Decimal) -> Decimal:
    """Quantize an amount to cents for persistence."""
    return to_scale(value, CENT)
