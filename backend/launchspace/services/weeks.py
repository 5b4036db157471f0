from __future__ import annotations
from datetime import date, datetime, time, timedelta, timezone as dt_tz, tzinfo
from zoneinfo import ZoneInfo

# Fixed-offset zones accepted by name in addition to IANA identifiers.
_FIXED = {
    "PST": dt_tz(timedelta(hours=-8), "PST"),
    "UTC": dt_tz.utc,
}

ONE_MS = timedelta(milliseconds=1)


def competition_tz(name: str) -> tzinfo:
    """
    Resolve the competition reference timezone.

    "PST" is a fixed UTC-8 offset all year (Monday 00:00 PST is always 08:00 UTC);
    any IANA name such as "America/Los_Angeles" gives DST-aware local Mondays.

    Examples:
        >>> competition_tz("PST").utcoffset(None)
        datetime.timedelta(days=-1, seconds=57600)
    """
    if name in _FIXED:
        return _FIXED[name]
    return ZoneInfo(name)


def monday_of(d: date) -> date:
    # Monday = 0
    return d - timedelta(days=d.weekday())


def local_midnight_utc(d: date, tz: tzinfo) -> datetime:
    return datetime.combine(d, time(0, 0), tzinfo=tz).astimezone(dt_tz.utc)


def next_monday(now_utc: datetime, tz: tzinfo) -> date:
    """Local date of the next Monday strictly after today (a Monday yields the following one)."""
    today = now_utc.astimezone(tz).date()
    return today + timedelta(days=(7 - today.weekday()) or 7)


def week_window(monday: date, tz: tzinfo) -> tuple[datetime, datetime]:
    """
    UTC bounds of the competition week starting on local `monday`.

    The week runs from Monday 00:00 local to Sunday 23:59:59.999 local, i.e. one
    millisecond before the next week's start, so consecutive weeks never overlap.
    """
    start = local_midnight_utc(monday, tz)
    end = local_midnight_utc(monday + timedelta(days=7), tz) - ONE_MS
    return start, end


def local_monday(start_utc: datetime, tz: tzinfo) -> date:
    return monday_of(start_utc.astimezone(tz).date())


def competition_code(start_utc: datetime, tz: tzinfo) -> str:
    """ISO week code of the week's local start date, e.g. 2025-W03."""
    iso = start_utc.astimezone(tz).date().isocalendar()
    return f"{iso[0]}-W{iso[1]:02d}"


def window_state(start: datetime, end: datetime, now: datetime) -> str:
    if now < start:
        return "upcoming"
    if start <= now <= end:
        return "active"
    return "ended"


def time_left(end: datetime, now: datetime) -> dict:
    total_ms = max(0, int((end - now).total_seconds() * 1000))
    secs = total_ms // 1000
    return {
        "days": secs // 86400,
        "hours": (secs % 86400) // 3600,
        "minutes": (secs % 3600) // 60,
        "seconds": secs % 60,
        "totalMs": total_ms,
    }
