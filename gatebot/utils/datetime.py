"""Time utilities with timezone-aware defaults."""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from functools import lru_cache
from zoneinfo import ZoneInfo


def utc_now() -> datetime:
    """Return current UTC time with tzinfo."""

    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes read back from the database as UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@lru_cache(maxsize=8)
def _zone(name: str) -> ZoneInfo:
    return ZoneInfo(name)


def local_today(tz_name: str = "UTC") -> date:
    """Calendar day in the deployment timezone; daily counters roll on this value."""

    return utc_now().astimezone(_zone(tz_name)).date()


def next_midnight(tz_name: str = "UTC") -> datetime:
    """Moment the daily counters roll over next."""

    zone = _zone(tz_name)
    tomorrow = local_today(tz_name) + timedelta(days=1)
    return datetime.combine(tomorrow, time.min, tzinfo=zone)


__all__ = ["ensure_utc", "local_today", "next_midnight", "utc_now"]
