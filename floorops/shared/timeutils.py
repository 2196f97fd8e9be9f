from datetime import datetime, time, timezone
from typing import Callable, Optional

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how DateTime columns are stored"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Convert aware datetimes to naive UTC; naive values are assumed UTC already"""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def day_bounds(value: datetime) -> tuple[datetime, datetime]:
    start = datetime.combine(value.date(), time.min)
    end = datetime.combine(value.date(), time.max)
    return start, end


def end_of_day(value: Optional[datetime]) -> Optional[datetime]:
    """Treat a bare date (midnight) as inclusive of the whole day"""
    if value is None:
        return None
    value = to_naive_utc(value)
    if value.time() == time.min:
        return datetime.combine(value.date(), time.max)
    return value


def date_range(
    start: Optional[datetime], end: Optional[datetime]
) -> tuple[Optional[datetime], Optional[datetime]]:
    return (to_naive_utc(start) if start else None), end_of_day(end)


def get_clock() -> Clock:
    """Dependency injection for the wall clock"""
    return utcnow
