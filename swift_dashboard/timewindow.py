import re
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Any, List, NamedTuple, Optional

from .models import PeriodInfo, PeriodType

DAY_NAMES = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)

SERIES_LENGTH = {
    PeriodType.DAILY: 7,
    PeriodType.WEEKLY: 52,
    PeriodType.MONTHLY: 12,
}

# Epoch seconds or milliseconds, optionally fractional.
EPOCH_PATTERN = re.compile(r"^(\d{10}|\d{13})(\.\d+)?$")
COMPACT_DATE_PATTERN = re.compile(r"^\d{8}$")


class DateRange(NamedTuple):
    start: datetime
    end: datetime


class Slot(NamedTuple):
    key: str
    label: str


class Skeleton(NamedTuple):
    """Ordered bucket slots plus the inclusive window they cover."""

    start: datetime
    end: datetime
    slots: List[Slot]


def start_of_day(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_day(value: datetime) -> datetime:
    return value.replace(hour=23, minute=59, second=59, microsecond=999000)


def day_range(now: datetime) -> DateRange:
    start = start_of_day(now)
    return DateRange(start, end_of_day(start))


def week_range(now: datetime) -> DateRange:
    """Monday to Sunday of the ISO week holding ``now``."""
    start = start_of_day(now - timedelta(days=now.weekday()))
    return DateRange(start, end_of_day(start + timedelta(days=6)))


def _last_day_of_month(year: int, month: int) -> int:
    if month == 12:
        return 31
    return (date(year, month + 1, 1) - timedelta(days=1)).day


def month_range(now: datetime) -> DateRange:
    start = start_of_day(now.replace(day=1))
    last = _last_day_of_month(now.year, now.month)
    return DateRange(start, end_of_day(now.replace(day=last)))


def period_range(period: PeriodType, now: datetime) -> DateRange:
    if period is PeriodType.DAILY:
        return day_range(now)
    if period is PeriodType.WEEKLY:
        return week_range(now)
    return month_range(now)


def _week_thursday(value: date) -> date:
    # ISO weeks belong to the year holding their Thursday.
    return value + timedelta(days=3 - value.weekday())


def iso_week(value: date) -> int:
    thursday = _week_thursday(value)
    day_of_year = thursday.timetuple().tm_yday
    return (day_of_year + 6) // 7


def iso_week_year(value: date) -> int:
    return _week_thursday(value).year


def bucket_key(value: datetime, period: PeriodType) -> str:
    if period is PeriodType.DAILY:
        return value.strftime("%Y-%m-%d")
    if period is PeriodType.WEEKLY:
        return f"{iso_week_year(value)}-W{iso_week(value):02d}"
    return f"{value.year}-{value.month:02d}"


def bucket_label(value: datetime, period: PeriodType) -> str:
    if period is PeriodType.DAILY:
        return f"{DAY_NAMES[value.weekday()]} {value.month:02d}/{value.day:02d}"
    if period is PeriodType.WEEKLY:
        return f"Week {iso_week(value)}, {iso_week_year(value)}"
    return f"{MONTH_NAMES[value.month - 1]} {value.year}"


def _shift_months(value: datetime, months: int) -> datetime:
    index = value.year * 12 + value.month - 1 + months
    year, month = divmod(index, 12)
    return value.replace(year=year, month=month + 1, day=1)


def series_skeleton(period: PeriodType, now: datetime) -> Skeleton:
    """Continuous series of buckets ending at the one holding ``now``.

    Daily series cover the last 7 days, weekly the last 52 ISO weeks and
    monthly the last 12 calendar months. ``start`` is the first instant of the
    oldest slot and ``end`` is the end of ``now``'s day.
    """
    length = SERIES_LENGTH[period]
    anchors: List[datetime] = []
    for offset in range(length - 1, -1, -1):
        if period is PeriodType.DAILY:
            anchors.append(now - timedelta(days=offset))
        elif period is PeriodType.WEEKLY:
            anchors.append(now - timedelta(weeks=offset))
        else:
            anchors.append(_shift_months(now, -offset))

    first = anchors[0]
    if period is PeriodType.DAILY:
        start = start_of_day(first)
    elif period is PeriodType.WEEKLY:
        start = week_range(first).start
    else:
        start = month_range(first).start

    slots = [Slot(bucket_key(a, period), bucket_label(a, period)) for a in anchors]
    return Skeleton(start, end_of_day(now), slots)


def period_day_skeleton(period: PeriodType, now: datetime) -> Skeleton:
    """Buckets inside the current period: hours of today, or days of the week/month."""
    window = period_range(period, now)
    if period is PeriodType.DAILY:
        slots = [Slot(f"{hour:02d}", f"{hour:02d}:00") for hour in range(24)]
        return Skeleton(window.start, window.end, slots)

    slots = []
    cursor = window.start
    while cursor <= window.end:
        slots.append(Slot(bucket_key(cursor, PeriodType.DAILY), bucket_label(cursor, PeriodType.DAILY)))
        cursor = cursor + timedelta(days=1)
    return Skeleton(window.start, window.end, slots)


def in_zone(value: datetime, zone: Optional[tzinfo]) -> datetime:
    if zone is None:
        return value
    return value.astimezone(zone)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Best-effort conversion of an upstream timestamp to an aware datetime.

    Accepts ISO-8601 strings (date-only, compact ``YYYYMMDD``, ``Z`` suffix or
    explicit offsets), epoch seconds or milliseconds as numbers or digit
    strings, and datetime/date objects. Naive values are taken as UTC.
    Returns None for anything else.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, (int, float)):
        return _from_epoch(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if EPOCH_PATTERN.match(text):
            return _from_epoch(float(text))
        if COMPACT_DATE_PATTERN.match(text):
            text = f"{text[:4]}-{text[4:6]}-{text[6:]}"
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _from_epoch(value: float) -> Optional[datetime]:
    seconds = value / 1000 if abs(value) >= 100_000_000_000 else value
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def period_info(period: PeriodType, now: datetime) -> PeriodInfo:
    window = period_range(period, now)
    if period is PeriodType.DAILY:
        return PeriodInfo(period="day", date=window.start.date().isoformat())
    info = PeriodInfo(
        period="week" if period is PeriodType.WEEKLY else "month",
        start_date=window.start.date().isoformat(),
        end_date=window.end.date().isoformat(),
    )
    if period is PeriodType.MONTHLY:
        info.month_name = MONTH_NAMES[now.month - 1]
    return info
