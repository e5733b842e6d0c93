"""Civil-timezone calendar: "today" and day-of-week for the daily run, with an explicit override for tests."""

from __future__ import annotations

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")


def parse_clock_override(value: str | None, tz: ZoneInfo) -> datetime | None:
    """
    Parse "YYYY-MM-DD" or an ISO datetime into an aware datetime in tz.
    Malformed or empty input returns None so the caller falls back to the real clock.
    """
    if not value or not value.strip():
        return None
    raw = value.strip()
    try:
        if "T" in raw or " " in raw:
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
        else:
            d = date.fromisoformat(raw)
            parsed = datetime(d.year, d.month, d.day, 12, 0)
    except (ValueError, TypeError):
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=tz)
    return parsed.astimezone(tz)


def day_name(day_of_week: int) -> str:
    if 0 <= day_of_week < len(DAY_NAMES):
        return DAY_NAMES[day_of_week]
    return "Unknown"


class CivilClock:
    """Clock pinned to one IANA zone; never reads the host's local time."""

    def __init__(self, tz_name: str = "Asia/Seoul", override: str | None = None):
        self.tz = ZoneInfo(tz_name)
        self._override = parse_clock_override(override, self.tz)

    @property
    def is_overridden(self) -> bool:
        return self._override is not None

    def now(self) -> datetime:
        if self._override is not None:
            return self._override
        return datetime.now(timezone.utc).astimezone(self.tz)

    def today(self) -> date:
        return self.now().date()

    def day_of_week(self) -> int:
        """0=Sunday .. 6=Saturday."""
        return (self.now().weekday() + 1) % 7

    def is_weekday(self) -> bool:
        return 1 <= self.day_of_week() <= 5

    def day_name(self) -> str:
        return day_name(self.day_of_week())
