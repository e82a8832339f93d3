"""
Date/time helpers for bookings.

All appointment dates and HH:MM times are stored in UTC; comparisons against
"now" therefore happen on timezone-aware UTC datetimes.
"""

from datetime import date, datetime, time, timedelta, timezone


def utcnow() -> datetime:
    """Current wall-clock time (aware, UTC)"""
    return datetime.now(timezone.utc)


def parse_time(value: str) -> time:
    hours, minutes = value.split(":")[:2]
    return time(int(hours), int(minutes))


def combine_utc(day: date, hhmm: str) -> datetime:
    """Combine a calendar date and an HH:MM time into an aware UTC datetime"""
    return datetime.combine(day, parse_time(hhmm), tzinfo=timezone.utc)


def is_datetime_in_past(day: date, hhmm: str, now: datetime | None = None) -> bool:
    return combine_utc(day, hhmm) < (now or utcnow())


def is_date_in_past(day: date, now: datetime | None = None) -> bool:
    return day < (now or utcnow()).date()


def hours_until(day: date, hhmm: str, now: datetime | None = None) -> float:
    return (combine_utc(day, hhmm) - (now or utcnow())).total_seconds() / 3600


def minutes_between(start: str, end: str) -> int:
    """Span of a same-day HH:MM interval in minutes (negative if end is before start)"""
    start_t = parse_time(start)
    end_t = parse_time(end)
    return (end_t.hour * 60 + end_t.minute) - (start_t.hour * 60 + start_t.minute)


def add_minutes(hhmm: str, minutes: int) -> str:
    shifted = datetime.combine(date(2000, 1, 1), parse_time(hhmm)) + timedelta(minutes=minutes)
    return shifted.strftime("%H:%M")


def time_to_minutes(hhmm: str) -> int:
    t = parse_time(hhmm)
    return t.hour * 60 + t.minute
