"""
COBROS CRM - Due-Date Calculator

Pure date arithmetic for billing cycles. Inputs are clamped, never rejected.
Also owns the "date-only due date -> send instant" normalization.
"""

import calendar
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Union

from config import local_tz, send_time


def add_months_no_overflow(anchor: date, months: int) -> date:
    """
    Add calendar months without rolling into the following month.
    Jan 31 + 1 month -> Feb 28/29.
    """
    month_index = anchor.month - 1 + months
    year = anchor.year + month_index // 12
    month = month_index % 12 + 1
    day = min(anchor.day, calendar.monthrange(year, month)[1])
    return anchor.replace(year=year, month=month, day=day)


def next_due_date(cycle, anchor: date) -> date:
    """
    Next occurrence of a billing cycle after anchor.

    weekly +7d, biweekly +14d, monthly +1 month (no overflow);
    one_time and unknown cycles return anchor unchanged.
    """
    cycle = getattr(cycle, "value", cycle)
    if cycle == "weekly":
        return anchor + timedelta(days=7)
    if cycle == "biweekly":
        return anchor + timedelta(days=14)
    if cycle == "monthly":
        return add_months_no_overflow(anchor, 1)
    return anchor


def next_due_date_from_day_of_month(day: int, anchor: date) -> date:
    """
    "Due on the Nth of each month": first date on day N (clamped to the
    month length) that is not before anchor.
    """
    day = min(max(1, int(day)), 31)
    last_day = calendar.monthrange(anchor.year, anchor.month)[1]
    candidate = anchor.replace(day=min(day, last_day))

    if candidate < anchor:
        following = add_months_no_overflow(anchor.replace(day=1), 1)
        last_day = calendar.monthrange(following.year, following.month)[1]
        candidate = following.replace(day=min(day, last_day))

    return candidate


# ════════════════════════════════════════════════════════════════════════════
# LOCAL TIME HELPERS
# ════════════════════════════════════════════════════════════════════════════

def parse_date(value: Union[str, date, datetime, None]) -> Optional[date]:
    """Accepts 'YYYY-MM-DD', ISO datetimes, date or datetime"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return to_local(value).date()
    if isinstance(value, date):
        return value
    text = str(value)
    if len(text) == 10:
        return date.fromisoformat(text)
    return to_local(datetime.fromisoformat(text)).date()


def localize(value: datetime) -> datetime:
    """Naive wall-clock time -> aware datetime in the app timezone"""
    return local_tz().localize(value)


def to_local(value: Union[str, datetime]) -> datetime:
    """ISO string or datetime -> aware datetime in the app timezone"""
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if value.tzinfo is None:
        value = localize(value)
    return value.astimezone(local_tz())


def local_today() -> date:
    return datetime.now(local_tz()).date()


def scheduled_for_due_date(due: date) -> datetime:
    """Due date at the configured send time, local timezone"""
    return localize(datetime.combine(due, send_time()))


def to_storage(value: datetime) -> str:
    """Aware datetime -> UTC ISO string (lexically sortable)"""
    if value.tzinfo is None:
        value = localize(value)
    return value.astimezone(timezone.utc).isoformat()
