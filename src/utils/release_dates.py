"""Partial-precision release date parsing and recency comparisons.

The catalog reports release dates as ``"YYYY"``, ``"YYYY-MM"`` or
``"YYYY-MM-DD"``.  Missing components round *down* to the first month/day,
which keeps recency checks conservative: a year-only date is treated as
January 1st, so sparse metadata can make an old release look old but never
makes one look new.

All instants are timezone-aware UTC midnights.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone

from pydantic import ValidationError

from src.models.catalog import DatePrecision, PartialDate
from src.utils.errors import ParseError

_DATE_PATTERN = re.compile(r"^(\d{4})(?:-(\d{1,2})(?:-(\d{1,2}))?)?$")

_SECONDS_PER_DAY = 86400


def parse_release_date(value: str) -> PartialDate:
    """Parse a catalog release date string.

    Parameters
    ----------
    value:
        ``"YYYY"``, ``"YYYY-MM"`` or ``"YYYY-MM-DD"``.  Surrounding
        whitespace is ignored.

    Returns
    -------
    PartialDate
        With precision YEAR, MONTH or DAY respectively.

    Raises
    ------
    ParseError
        If *value* is empty, does not start with a four-digit year, or
        names an impossible date.
    """
    text = (value or "").strip()
    if not text:
        raise ParseError("Release date is empty")

    match = _DATE_PATTERN.match(text)
    if match is None:
        raise ParseError(f"Unrecognised release date {value!r}")

    year_str, month_str, day_str = match.groups()
    if day_str is not None:
        precision = DatePrecision.DAY
    elif month_str is not None:
        precision = DatePrecision.MONTH
    else:
        precision = DatePrecision.YEAR

    try:
        return PartialDate(
            year=int(year_str),
            month=int(month_str) if month_str else 1,
            day=int(day_str) if day_str else 1,
            precision=precision,
        )
    except ValidationError as exc:
        raise ParseError(f"Invalid release date {value!r}") from exc


def try_parse_release_date(value: str | None) -> PartialDate | None:
    """Like :func:`parse_release_date` but returns ``None`` instead of raising."""
    if not value:
        return None
    try:
        return parse_release_date(value)
    except ParseError:
        return None


def to_comparable_instant(date: PartialDate) -> datetime:
    """Return UTC midnight of the (rounded-down) release date."""
    return datetime(date.year, date.month, date.day, tzinfo=timezone.utc)  # noqa: UP017


def _utc_now(now: datetime | None) -> datetime:
    if now is None:
        return datetime.now(tz=timezone.utc)  # noqa: UP017
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)  # noqa: UP017
    return now


def is_within(date: PartialDate | None, window_days: int, now: datetime | None = None) -> bool:
    """Return ``True`` if *date* falls inside the last *window_days* days.

    The cutoff is ``now - window_days * 86400s`` and is inclusive.
    Undated releases are never considered recent.
    """
    if date is None:
        return False
    cutoff = _utc_now(now) - timedelta(seconds=window_days * _SECONDS_PER_DAY)
    return to_comparable_instant(date) >= cutoff


def compare_newest_first(a: PartialDate | None, b: PartialDate | None) -> int:
    """Comparator for newest-first ordering; undated values sort last.

    Returns a negative number when *a* should come before *b*.
    Usable with :func:`functools.cmp_to_key`.
    """
    if a is None and b is None:
        return 0
    if a is None:
        return 1
    if b is None:
        return -1
    instant_a = to_comparable_instant(a)
    instant_b = to_comparable_instant(b)
    if instant_a > instant_b:
        return -1
    if instant_a < instant_b:
        return 1
    return 0


def newest_first_key(date: PartialDate | None) -> tuple[int, float]:
    """Sort key equivalent to :func:`compare_newest_first`."""
    if date is None:
        return (1, 0.0)
    return (0, -to_comparable_instant(date).timestamp())


def days_since_release(date: PartialDate | None, now: datetime | None = None) -> int | None:
    """Whole days elapsed since *date*, or ``None`` when undated."""
    if date is None:
        return None
    elapsed = _utc_now(now) - to_comparable_instant(date)
    return int(elapsed.total_seconds() // _SECONDS_PER_DAY)
