"""
Formatting helpers for API payloads and quote documents.
"""
from decimal import Decimal, InvalidOperation
from datetime import date, datetime
from typing import Union, Optional


def decimal_str(value: Union[int, float, Decimal, str, None]) -> Optional[str]:
    """
    Serialize a numeric column value for JSON without losing precision.

    Examples:
        decimal_str(Decimal('900.00')) -> "900.00"
        decimal_str(None) -> None
    """
    if value is None:
        return None
    if isinstance(value, Decimal):
        return str(value)
    return str(Decimal(str(value)))


def money(value: Union[int, float, Decimal, str, None], symbol: str = 'R') -> str:
    """
    Format an amount with the currency symbol and exactly 2 decimals.

    Examples:
        money(Decimal('1170')) -> "R1,170.00"
        money(-5, symbol='$') -> "-$5.00"
        money(None) -> "-"
    """
    if value is None or value == "":
        return "-"

    try:
        num = Decimal(str(value)).quantize(Decimal('0.01'))
    except (InvalidOperation, ValueError, TypeError):
        return "-"

    sign = "-" if num < 0 else ""
    return f"{sign}{symbol}{abs(num):,.2f}"


def date_long(value: Union[date, datetime, None]) -> str:
    """
    Long date used on quote documents: 16 October 2026.
    """
    if value is None:
        return "-"

    if isinstance(value, datetime):
        value = value.date()

    if not isinstance(value, date):
        return "-"

    return f"{value.day} {value.strftime('%B %Y')}"
