from datetime import date, datetime, time, timedelta
from typing import Iterator, Union

MINUTES_PER_DAY = 24 * 60

TimeLike = Union[time, int]


def parse_time(value) -> time:
    """Parse 'HH:MM' or 'HH:MM:SS' into a time"""
    if isinstance(value, time):
        return value.replace(microsecond=0)
    if not isinstance(value, str) or not value:
        raise ValueError(f"Invalid time: {value!r}")
    for fmt in ('%H:%M', '%H:%M:%S'):
        try:
            return datetime.strptime(value.strip(), fmt).time()
        except ValueError:
            continue
    raise ValueError(f"Invalid time: {value!r}. Use HH:MM")


def parse_date(value) -> date:
    """Parse 'YYYY-MM-DD' into a date"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value:
        raise ValueError(f"Invalid date: {value!r}")
    try:
        return date.fromisoformat(value.strip()[:10])
    except ValueError:
        raise ValueError(f"Invalid date: {value!r}. Use YYYY-MM-DD")


def to_minutes(value: TimeLike) -> int:
    """Minutes since midnight"""
    if isinstance(value, int):
        return value
    return value.hour * 60 + value.minute


def from_minutes(minutes: int) -> time:
    if minutes < 0 or minutes >= MINUTES_PER_DAY:
        raise ValueError(f"{minutes} minutes is outside a single day")
    return time(minutes // 60, minutes % 60)


def add_minutes(value: time, minutes: int) -> time:
    """Shift a time of day; raises ValueError if the result leaves the day"""
    return from_minutes(to_minutes(value) + minutes)


def minutes_between(start: TimeLike, end: TimeLike) -> int:
    return to_minutes(end) - to_minutes(start)


def overlaps(a_start: TimeLike, a_end: TimeLike, b_start: TimeLike, b_end: TimeLike) -> bool:
    """Half-open interval overlap: touching ranges do not overlap"""
    return to_minutes(a_start) < to_minutes(b_end) and to_minutes(b_start) < to_minutes(a_end)


def week_start(day: date) -> date:
    """Monday of the week containing day"""
    return day - timedelta(days=day.weekday())


def date_range(start: date, end: date) -> Iterator[date]:
    """Inclusive range of dates"""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)
