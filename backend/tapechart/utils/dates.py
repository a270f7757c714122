from __future__ import annotations

import math
from datetime import date, datetime, timezone
from typing import Union

DateLike = Union[date, datetime, str]


def now_utc() -> datetime:
    """Get current UTC time"""
    return datetime.now(timezone.utc)


def today_utc() -> date:
    return now_utc().date()


def to_date(value: DateLike) -> date:
    """Coerce YYYY-MM-DD strings, ISO datetimes and datetime objects to a calendar date.

    Room blocks are tracked in room-nights, so any time-of-day component is dropped.
    """

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raw = str(value).strip()
    if len(raw) == 10:
        return date.fromisoformat(raw)
    # 2024-06-10T00:00:00.000Z style payloads from the remote service
    return datetime.fromisoformat(raw.replace("Z", "+00:00")).date()


def days_between(start: DateLike, end: DateLike) -> int:
    """Signed number of whole days from `start` to `end`.

    Plain dates give the exact day difference. Datetimes are rounded up to the
    next whole day so a partial day still occupies a grid column.
    """

    if isinstance(start, datetime) and isinstance(end, datetime):
        seconds = (end - start).total_seconds()
        return int(math.ceil(seconds / 86400.0))
    return (to_date(end) - to_date(start)).days


def format_day(value: DateLike) -> str:
    return to_date(value).strftime("%Y-%m-%d")
