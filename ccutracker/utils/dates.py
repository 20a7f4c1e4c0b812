"""Datetime helpers."""

from __future__ import annotations

import os
from datetime import date, datetime, timezone

import pendulum

DEFAULT_TZ = "UTC"


def timezone_name() -> str:
    return os.environ.get("TIMEZONE", DEFAULT_TZ)


def now_in_tz() -> pendulum.DateTime:
    tz = pendulum.timezone(timezone_name())
    return pendulum.now(tz)


def today_in_tz() -> date:
    return now_in_tz().date()


def local_date(moment: datetime) -> date:
    """Calendar day of ``moment`` in the configured zone."""
    return pendulum.instance(moment).in_timezone(timezone_name()).date()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """Return the UTC start (inclusive) and end (exclusive) of ``day`` in the configured zone."""
    tz = pendulum.timezone(timezone_name())
    start = pendulum.datetime(day.year, day.month, day.day, tz=tz)
    end = start.add(days=1)
    return (
        datetime.fromtimestamp(start.timestamp(), timezone.utc),
        datetime.fromtimestamp(end.timestamp(), timezone.utc),
    )


def parse_release_date(value: str | None) -> date | None:
    """Parse the store's human release date ("21 Aug, 2012", "Aug 21, 2012", "2012-08-21")."""
    if not value:
        return None
    for fmt in ("%d %b, %Y", "%b %d, %Y", "%d %B, %Y", "%B %d, %Y"):
        try:
            return datetime.strptime(value.strip(), fmt).date()
        except ValueError:
            continue
    try:
        return parse_iso_date(value.strip())
    except ValueError:
        return None


def parse_iso_date(value: str) -> date:
    parsed = pendulum.parse(value)
    return date(parsed.year, parsed.month, parsed.day)


def format_date(value: date) -> str:
    return value.strftime("%Y-%m-%d")
