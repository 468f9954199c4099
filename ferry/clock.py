from datetime import date, datetime, time
from typing import Optional
from zoneinfo import ZoneInfo

from ferry.config import settings


class Clock:
    """Current time in the single canonical timezone (Philippines)"""

    def __init__(self, tz_name: Optional[str] = None):
        self.tz = ZoneInfo(tz_name or settings.TIMEZONE)

    def now(self) -> datetime:
        return datetime.now(self.tz)

    def today(self) -> date:
        return self.now().date()

    def localize(self, value: Optional[datetime]) -> Optional[datetime]:
        """Attach the canonical zone to naive values read back from the store"""
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=self.tz)
        return value.astimezone(self.tz)

    def departure_at(self, departure_date: date, departure_time: time) -> datetime:
        """Trip departure as an aware datetime; dates and times are stored as Manila local"""
        return datetime.combine(departure_date, departure_time, tzinfo=self.tz)


class FixedClock(Clock):
    """Clock frozen at a given instant, settable by tests and replays"""

    def __init__(self, current: datetime, tz_name: Optional[str] = None):
        super().__init__(tz_name)
        self.current = self.localize(current)

    def now(self) -> datetime:
        return self.current

    def set(self, current: datetime):
        self.current = self.localize(current)


def get_clock() -> Clock:
    return Clock()
