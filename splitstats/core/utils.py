import calendar
import itertools
import random
from datetime import datetime, timedelta, timezone
from typing import Iterator

# Record ids: 8 hex chars of unix seconds, 6 hex chars of a per-process
# counter, 10 random hex chars. Sorting ids sorts by creation time.
_id_counter = itertools.count()


def utcnow() -> datetime:
    """Current UTC time as a naive datetime (the way it is stored)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(date: datetime) -> datetime:
    """Aware datetimes are converted to UTC; naive ones are taken as UTC already."""
    if date.tzinfo is not None:
        date = date.astimezone(timezone.utc).replace(tzinfo=None)
    return date


def snap_to_day(date: datetime) -> datetime:
    """Midnight of the UTC day containing ``date``."""
    date = to_naive_utc(date)
    return datetime(date.year, date.month, date.day)


def next_day(day: datetime) -> datetime:
    return snap_to_day(day) + timedelta(days=1)


def day_range(start: datetime, end: datetime) -> Iterator[datetime]:
    """Yield every UTC day in the half-open range [start, end)."""
    current = snap_to_day(start)
    while current < end:
        yield current
        current = next_day(current)


def _seconds(date: datetime) -> int:
    return calendar.timegm(to_naive_utc(date).timetuple())


def new_record_id(created_at: datetime | None = None) -> str:
    created_at = created_at or utcnow()
    counter = next(_id_counter) & 0xFFFFFF
    return "%08x%06x%010x" % (_seconds(created_at), counter, random.getrandbits(40))


def id_floor(date: datetime) -> str:
    """Smallest record id that can have been created at or after ``date``."""
    return "%08x" % _seconds(date) + "0" * 16


def day_id_range(day: datetime) -> tuple[str, str]:
    """Record id bounds ``[low, high)`` covering one UTC day."""
    day = snap_to_day(day)
    return id_floor(day), id_floor(next_day(day))
