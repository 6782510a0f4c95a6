"""
Decimal helpers for money and percentages
"""
from datetime import date, datetime, time, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Tuple

CENT = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_decimal(value) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    # float goes through str so 0.1 stays 0.1
    return Decimal(str(value))


def money(value) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def percentage(part, whole) -> Decimal:
    """part / whole * 100 rounded to cents, 0 when whole is 0"""
    whole = to_decimal(whole)
    if whole == 0:
        return ZERO.quantize(CENT)
    return money(to_decimal(part) / whole * HUNDRED)


def day_range(start: date, end: date) -> Tuple[datetime, datetime]:
    """Inclusive date range as a half-open datetime interval [start, end + 1 day)"""
    return datetime.combine(start, time.min), datetime.combine(end + timedelta(days=1), time.min)
