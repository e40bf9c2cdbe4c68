"""Named reporting periods resolved to concrete ``(from, to)`` date ranges.

Every report resolves its period here so that "month" or "quarter" mean the
same thing on every page. ``quarter`` is the rolling three-month window; the
calendar-aligned variant is only available as ``calendar_quarter``.
"""

from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta
from typing import Any, Optional, Tuple

from utils.errors import InvalidDateRange, InvalidFilter

PERIOD_TOKENS = (
    "today",
    "week",
    "month",
    "quarter",
    "rolling_quarter",
    "calendar_quarter",
    "year",
    "all",
    "custom",
)

DEFAULT_EPOCH_FLOOR = date(2024, 1, 1)


def parse_date(value: Any, field: str = "date") -> Optional[date]:
    """Accept a date, datetime or ``YYYY-MM-DD`` string; blank means ``None``."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        raise InvalidDateRange(f"{field} must be a YYYY-MM-DD date, got {text!r}") from None


def months_before(day: date, months: int) -> date:
    """Step back whole calendar months, clamping to the target month's length."""
    index = day.year * 12 + (day.month - 1) - months
    year, month = divmod(index, 12)
    month += 1
    last = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last))


def calendar_quarter_start(day: date) -> date:
    first_month = ((day.month - 1) // 3) * 3 + 1
    return date(day.year, first_month, 1)


def is_inverted(date_from: Optional[date], date_to: Optional[date]) -> bool:
    return bool(date_from and date_to and date_from > date_to)


def resolve_period(
    token: Optional[str],
    explicit_from: Any = None,
    explicit_to: Any = None,
    today: Optional[date] = None,
    earliest: Optional[date] = None,
    epoch_floor: Optional[date] = None,
) -> Tuple[date, date]:
    """Map a period token plus optional bounds to ``(from_date, to_date)``.

    ``custom`` returns the explicit bounds verbatim, even when ``from > to``;
    the caller decides whether that is an error. ``all`` starts at the
    earliest known activity, or at ``epoch_floor`` when there is none.
    """
    today = today or date.today()
    p = (token or "month").strip().lower()
    if p not in PERIOD_TOKENS:
        raise InvalidFilter(f"Unknown period {token!r}; expected one of {', '.join(PERIOD_TOKENS)}")

    if p == "today":
        return today, today
    if p == "week":
        return today - timedelta(days=7), today
    if p == "month":
        return today.replace(day=1), today
    if p in ("quarter", "rolling_quarter"):
        return months_before(today, 3), today
    if p == "calendar_quarter":
        return calendar_quarter_start(today), today
    if p == "year":
        return date(today.year, 1, 1), today
    if p == "all":
        return (earliest or epoch_floor or DEFAULT_EPOCH_FLOOR), today

    # custom
    date_from = parse_date(explicit_from, "date_from") or today.replace(day=1)
    date_to = parse_date(explicit_to, "date_to") or today
    return date_from, date_to
