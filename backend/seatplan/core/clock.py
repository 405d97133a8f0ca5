"""Injectable time sources."""
from datetime import date, datetime, timedelta, timezone
from typing import Protocol
from zoneinfo import ZoneInfo


class Clock(Protocol):
    def now(self) -> datetime: ...

    def today(self) -> date: ...


class SystemClock:
    """Wall clock in the restaurant's timezone."""

    def __init__(self, tz_name: str = "UTC"):
        self.tz = timezone.utc if tz_name.upper() == "UTC" else ZoneInfo(tz_name)

    def now(self) -> datetime:
        return datetime.now(self.tz)

    def today(self) -> date:
        return self.now().date()


class FixedClock:
    """Manually driven clock for tests and replays."""

    def __init__(self, current: datetime):
        self.current = current

    def now(self) -> datetime:
        return self.current

    def today(self) -> date:
        return self.current.date()

    def advance(self, **delta) -> datetime:
        self.current = self.current + timedelta(**delta)
        return self.current
