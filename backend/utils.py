import calendar
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Sequence, Tuple, Union

from dateutil.relativedelta import relativedelta

from planning_config import PLANNING_MIN_YEAR, PLANNING_MAX_YEAR
from planning_errors import InvalidPeriodError

Number = Union[int, float, Decimal]
DayValues = Sequence[Optional[Number]]

ZERO = Decimal("0")
HUNDRED = Decimal("100")
CENT = Decimal("0.01")


def to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def safe_number(value: Optional[Number]) -> Decimal:
    """No data counts as zero in every summation."""
    if value is None:
        return ZERO
    return to_decimal(value)


def quantize_cents(value: Number) -> Decimal:
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def sum_values(values: DayValues) -> Decimal:
    return sum((safe_number(v) for v in values), ZERO)


def sum_until(values: DayValues, day_count: int) -> Decimal:
    return sum_values(values[:max(0, day_count)])


def avg_until(values: DayValues, day_count: int) -> Decimal:
    if day_count <= 0:
        return ZERO
    return sum_until(values, day_count) / day_count


def last_until(values: DayValues, day_count: int) -> Decimal:
    """Latest known value within the first day_count days, skipping no-data days."""
    for i in range(min(day_count, len(values)) - 1, -1, -1):
        if values[i] is not None:
            return to_decimal(values[i])
    return ZERO


def pct(part: Number, whole: Number) -> Decimal:
    whole = safe_number(whole)
    if whole <= 0:
        return ZERO
    return safe_number(part) / whole * HUNDRED


def clamp(n: int, low: int, high: int) -> int:
    return max(low, min(high, n))


def days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def month_bounds(year: int, month: int) -> Tuple[date, date]:
    return date(year, month, 1), date(year, month, days_in_month(year, month))


def shift_month(year: int, month: int, months: int) -> Tuple[int, int]:
    shifted = date(year, month, 1) + relativedelta(months=months)
    return shifted.year, shifted.month


def validate_period(year: int, month: Optional[int] = None) -> None:
    if not isinstance(year, int) or isinstance(year, bool) or not PLANNING_MIN_YEAR <= year <= PLANNING_MAX_YEAR:
        raise InvalidPeriodError(
            f"Invalid year {year!r}: expected {PLANNING_MIN_YEAR}..{PLANNING_MAX_YEAR}"
        )
    if month is None:
        return
    if not isinstance(month, int) or isinstance(month, bool) or not 1 <= month <= 12:
        raise InvalidPeriodError(f"Invalid month {month!r}: expected 1..12")


def parse_iso_date(value: Union[str, date, datetime, None]) -> Optional[date]:
    """ISO string, date or datetime to a date; datetimes keep only their calendar day."""
    if isinstance(value, datetime):
        return value.date()
    if value is None or isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise InvalidPeriodError(f"Invalid date {value!r}: {e}") from e


def decimal_str(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else str(value)
