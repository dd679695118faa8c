"""Date-window arithmetic shared by the coordinator, reports and the CLI.

All datetimes are naive local time. Stored ``date`` values are ISO-8601
strings in one canonical shape (``YYYY-MM-DDTHH:MM:SS.mmm``) so that range
predicates can compare them lexicographically; :func:`to_iso` is the only
writer of that shape.

Windows are closed intervals normalized to whole days: ``start`` at
00:00:00.000 and ``end`` at 23:59:59.999. Callers must normalize before
querying, otherwise an end bound such as ``2024-03-05T00:00`` silently drops
everything logged later that day.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

# "All time" sentinel accepted by ``get_financial_stats``.
EPOCH = datetime(1970, 1, 1)

_END_OF_DAY = time(23, 59, 59, 999000)

type DateLike = date | datetime | str


def parse_iso(value: str) -> datetime:
    """Parse an ISO-8601 string into a naive local datetime.

    Offset-aware inputs (including a trailing ``Z``) are converted to local
    time first, so values written by other clients compare correctly.
    """

    dt = datetime.fromisoformat(value.strip())
    if dt.tzinfo is not None:
        dt = dt.astimezone().replace(tzinfo=None)
    return dt


def as_datetime(value: DateLike) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone().replace(tzinfo=None)
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    if isinstance(value, str):
        return parse_iso(value)
    raise TypeError(f"expected date, datetime or ISO string, got {type(value).__name__}")


def to_iso(value: DateLike) -> str:
    return as_datetime(value).isoformat(timespec="milliseconds")


def is_all_time(value: DateLike) -> bool:
    """True when ``value`` is the "all time" start.

    Naive values must fall on the :data:`EPOCH` day. Offset-aware values (and
    ISO strings carrying an offset) are compared as instants, so the Unix
    epoch in any zone counts even where local time puts it on 1969-12-31.
    """

    if isinstance(value, str):
        value = datetime.fromisoformat(value.strip())
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.timestamp() == 0
    return start_of_day(value) == EPOCH


def start_of_day(value: DateLike) -> datetime:
    return datetime.combine(as_datetime(value).date(), time.min)


def end_of_day(value: DateLike) -> datetime:
    return datetime.combine(as_datetime(value).date(), _END_OF_DAY)


def start_of_week(value: DateLike) -> datetime:
    """Monday 00:00 of the week containing ``value``."""
    day = start_of_day(value)
    return day - timedelta(days=day.weekday())


def end_of_week(value: DateLike) -> datetime:
    """Sunday 23:59:59.999 of the week containing ``value``."""
    return end_of_day(start_of_week(value) + timedelta(days=6))


def start_of_month(value: DateLike) -> datetime:
    dt = as_datetime(value)
    return datetime(dt.year, dt.month, 1)


def end_of_month(value: DateLike) -> datetime:
    dt = as_datetime(value)
    last = calendar.monthrange(dt.year, dt.month)[1]
    return datetime.combine(date(dt.year, dt.month, last), _END_OF_DAY)


def start_of_year(value: DateLike) -> datetime:
    return datetime(as_datetime(value).year, 1, 1)


def sub_months(value: DateLike, months: int) -> datetime:
    """Shift back by whole calendar months, clamping the day to the target month."""
    dt = as_datetime(value)
    index = dt.year * 12 + (dt.month - 1) - months
    year, month = divmod(index, 12)
    month += 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return dt.replace(year=year, month=month, day=day)


@dataclass(frozen=True, slots=True)
class ViewRange:
    """A closed, day-normalized window ``[start, end]``.

    Equality compares the two instants, never object identity; this is what
    lets repeated ``set_view_date_range`` calls with fresh but equal values be
    recognised as no-ops.
    """

    start: datetime
    end: datetime

    @property
    def start_iso(self) -> str:
        return to_iso(self.start)

    @property
    def end_iso(self) -> str:
        return to_iso(self.end)

    def contains(self, value: DateLike) -> bool:
        return self.start <= as_datetime(value) <= self.end


def normalize_range(start: DateLike, end: DateLike) -> ViewRange:
    """Snap ``start`` to start-of-day and ``end`` to end-of-day."""
    return ViewRange(start=start_of_day(start), end=end_of_day(end))


def current_month(now: datetime | None = None) -> ViewRange:
    now = now or datetime.now()
    return ViewRange(start=start_of_month(now), end=end_of_month(now))


QUICK_RANGES: tuple[str, ...] = (
    "today",
    "yesterday",
    "week",
    "month",
    "last-3-months",
    "this-year",
    "last-7-days",
    "last-30-days",
    "all",
)


def quick_range(name: str, now: datetime | None = None) -> tuple[datetime, datetime]:
    """Resolve a named preset to raw ``(start, end)`` bounds.

    The bounds are not day-normalized here; pass them through
    :func:`normalize_range` (or ``set_view_date_range``) before querying.
    ``all`` starts at :data:`EPOCH` so aggregate callers can detect it.
    """

    now = now or datetime.now()
    key = name.strip().lower().replace("_", "-")
    if key == "today":
        return start_of_day(now), end_of_day(now)
    if key == "yesterday":
        prev = now - timedelta(days=1)
        return start_of_day(prev), end_of_day(prev)
    if key == "week":
        return start_of_week(now), end_of_week(now)
    if key in {"month", "this-month"}:
        return start_of_month(now), end_of_month(now)
    if key == "last-3-months":
        return start_of_month(sub_months(now, 3)), end_of_month(now)
    if key == "this-year":
        return start_of_year(now), end_of_day(now)
    if key.startswith("last-") and key.endswith("-days"):
        try:
            days = int(key[len("last-") : -len("-days")])
        except ValueError:
            days = 0
        if days > 0:
            return start_of_day(now) - timedelta(days=days), now
    if key == "all":
        return EPOCH, now
    raise ValueError(f"unknown range {name!r}; expected one of: {', '.join(QUICK_RANGES)}")


__all__ = [
    "EPOCH",
    "DateLike",
    "ViewRange",
    "QUICK_RANGES",
    "as_datetime",
    "current_month",
    "end_of_day",
    "end_of_month",
    "end_of_week",
    "is_all_time",
    "normalize_range",
    "parse_iso",
    "quick_range",
    "start_of_day",
    "start_of_month",
    "start_of_week",
    "start_of_year",
    "sub_months",
    "to_iso",
]
