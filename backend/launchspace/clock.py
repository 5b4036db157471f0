from __future__ import annotations
from datetime import datetime, timedelta, timezone as dt_tz


class Clock:
    """Source of "now" for every time-dependent rule. Always returns aware UTC."""

    def now(self) -> datetime:
        return datetime.now(dt_tz.utc)


class FrozenClock(Clock):
    def __init__(self, at: datetime):
        if at.tzinfo is None:
            at = at.replace(tzinfo=dt_tz.utc)
        self._at = at.astimezone(dt_tz.utc)

    def now(self) -> datetime:
        return self._at

    def set(self, at: datetime) -> None:
        self._at = at.astimezone(dt_tz.utc)

    def advance(self, **kwargs) -> datetime:
        self._at = self._at + timedelta(**kwargs)
        return self._at


system_clock = Clock()
