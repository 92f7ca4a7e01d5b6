from datetime import date, datetime
from typing import Protocol
from zoneinfo import ZoneInfo


class Clock(Protocol):
    def now(self) -> datetime:
        ...

    def today(self) -> date:
        ...


class SystemClock:
    """Wall clock of the clinic time zone, returned as naive datetimes.

    Appointment timestamps are stored without tzinfo, so every comparison
    against them has to use the same naive local time.
    """

    def __init__(self, timezone: str = "UTC"):
        self.zone = ZoneInfo(timezone)

    def now(self) -> datetime:
        return datetime.now(self.zone).replace(tzinfo=None)

    def today(self) -> date:
        return self.now().date()


def to_wall_time(moment: datetime, timezone: str = "UTC") -> datetime:
    """Naive wall time of ``moment`` in ``timezone``; naive input is kept as is."""
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(ZoneInfo(timezone)).replace(tzinfo=None)
