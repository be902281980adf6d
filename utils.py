"""
Time helpers of the jobs engine.

All the code asks the current time to `clock` instead of calling
`datetime.now()`, so tests can freeze it:

    clock.freeze(datetime(2023, 4, 20, 12, 0, tzinfo=timezone.utc))
    clock.sleep(3)  # returns immediately, now() moved 3 seconds forward
    clock.unfreeze()

Relative modifiers look like "+1 hour", "-5 minutes" or "+1 day +2 hours".
"""
import calendar
import re
import time
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple
from zoneinfo import ZoneInfo

from errors import InvalidFrequency

UNITS = {
    "sec": ("seconds", 1),
    "secs": ("seconds", 1),
    "second": ("seconds", 1),
    "seconds": ("seconds", 1),
    "min": ("minutes", 1),
    "mins": ("minutes", 1),
    "minute": ("minutes", 1),
    "minutes": ("minutes", 1),
    "hour": ("hours", 1),
    "hours": ("hours", 1),
    "day": ("days", 1),
    "days": ("days", 1),
    "week": ("days", 7),
    "weeks": ("days", 7),
    "fortnight": ("days", 14),
    "fortnights": ("days", 14),
    "month": ("months", 1),
    "months": ("months", 1),
    "year": ("months", 12),
    "years": ("months", 12),
}

# seconds, minutes and hours are elapsed time, the others follow the wall clock
ABSOLUTE_UNITS = ("seconds", "minutes", "hours")

TERM_RE = re.compile(r"\s*([+-]?)\s*(\d+)\s*([a-zA-Z]+)\s*")


def parse_modifier(modifier: str) -> List[Tuple[int, str]]:
    """Split a relative modifier into (signed amount, unit) terms."""
    text = (modifier or "").strip()
    if not text:
        raise InvalidFrequency("An empty string is not a valid time modifier")

    terms = []
    pos = 0
    while pos < len(text):
        m = TERM_RE.match(text, pos)
        if not m or m.group(3).lower() not in UNITS:
            raise InvalidFrequency(f"{modifier!r} is not a valid time modifier")
        unit, factor = UNITS[m.group(3).lower()]
        amount = int(m.group(2)) * factor
        if m.group(1) == "-":
            amount = -amount
        terms.append((amount, unit))
        pos = m.end()
    return terms


def _add_months(value: datetime, months: int) -> datetime:
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def apply_modifier(value: datetime, modifier: str, tz=None) -> datetime:
    """Return `value` moved by the relative `modifier`, expressed in `tz`."""
    tz = tz or clock.tz
    if value.tzinfo is None:
        value = value.replace(tzinfo=tz)

    result = value.astimezone(tz)
    for amount, unit in parse_modifier(modifier):
        if unit in ABSOLUTE_UNITS:
            utc_value = result.astimezone(timezone.utc) + timedelta(**{unit: amount})
            result = utc_value.astimezone(tz)
        else:
            local = result.replace(tzinfo=None)
            if unit == "days":
                local = local + timedelta(days=amount)
            else:
                local = _add_months(local, amount)
            result = local.replace(tzinfo=tz)
    return result


class Clock:
    def __init__(self, tz=timezone.utc):
        self.tz = tz
        self._frozen: Optional[datetime] = None

    def set_timezone(self, name: Optional[str]):
        if not name or name.upper() == "UTC":
            self.tz = timezone.utc
        else:
            self.tz = ZoneInfo(name)

    @property
    def is_frozen(self) -> bool:
        return self._frozen is not None

    def now(self) -> datetime:
        if self._frozen is not None:
            return self._frozen.astimezone(self.tz)
        return datetime.now(self.tz)

    def freeze(self, value: Optional[datetime] = None):
        """Freeze the time at the given datetime (default: the current time)."""
        if value is None:
            value = datetime.now(self.tz)
        elif value.tzinfo is None:
            value = value.replace(tzinfo=self.tz)
        self._frozen = value

    def unfreeze(self):
        self._frozen = None

    def relative(self, modifier: str) -> datetime:
        return apply_modifier(self.now(), modifier, self.tz)

    def from_now(self, number: int, unit: str) -> datetime:
        return self.relative(f"+{number} {unit}")

    def ago(self, number: int, unit: str) -> datetime:
        return self.relative(f"-{number} {unit}")

    def sleep(self, seconds: float):
        """Sleep, or move the frozen time forward without waiting."""
        if self.is_frozen:
            self._frozen = self._frozen + timedelta(seconds=seconds)
        else:
            time.sleep(seconds)


clock = Clock()


def now_iso():
    return clock.now().isoformat()


def format_datetime(value: Optional[datetime]) -> str:
    if value is None:
        return ""
    return value.astimezone(clock.tz).isoformat(sep=" ", timespec="seconds")


def parse_when(text: str) -> datetime:
    """Parse an ISO datetime, or a modifier relative to now ("+10 minutes")."""
    try:
        value = datetime.fromisoformat(text)
    except ValueError:
        return clock.relative(text)
    if value.tzinfo is None:
        value = value.replace(tzinfo=clock.tz)
    return value
