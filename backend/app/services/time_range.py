from __future__ import annotations

from dataclasses import dataclass
import re

from app.core.exceptions import InvalidRange, InvalidTimeFormat

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
DAY_ORDER = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]
DAY_VALUES = set(DAY_ORDER)


def parse_time_to_minutes(value: str) -> int:
    text = (value or "").strip()
    if not TIME_PATTERN.match(text):
        raise InvalidTimeFormat(value)
    hours, minutes = text.split(":")
    return int(hours) * 60 + int(minutes)


def minutes_to_hhmm(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def day_index(day: str) -> int:
    try:
        return DAY_ORDER.index(day)
    except ValueError:
        return len(DAY_ORDER)


@dataclass(frozen=True, order=True)
class TimeRange:
    """Half-open `[start, end)` interval in minutes of day."""

    start: int
    end: int

    def __post_init__(self) -> None:
        if self.end <= self.start:
            raise InvalidRange(minutes_to_hhmm(self.start), minutes_to_hhmm(self.end))

    @classmethod
    def from_bounds(cls, start: str, end: str) -> TimeRange:
        start_minutes = parse_time_to_minutes(start)
        end_minutes = parse_time_to_minutes(end)
        if end_minutes <= start_minutes:
            raise InvalidRange(start, end)
        return cls(start_minutes, end_minutes)

    @property
    def start_hhmm(self) -> str:
        return minutes_to_hhmm(self.start)

    @property
    def end_hhmm(self) -> str:
        return minutes_to_hhmm(self.end)

    @property
    def duration_minutes(self) -> int:
        return self.end - self.start

    def overlaps(self, other: TimeRange) -> bool:
        return overlaps(self, other)

    def format(self) -> str:
        return f"{self.start_hhmm}-{self.end_hhmm}"


def overlaps(a: TimeRange, b: TimeRange) -> bool:
    # Touching endpoints (a.end == b.start) are not a conflict.
    return a.start < b.end and b.start < a.end


def parse(text: str) -> TimeRange:
    """Parse a display string such as ``"09:00-10:30"``."""
    raw = (text or "").strip()
    start, separator, end = raw.partition("-")
    if not separator:
        raise InvalidTimeFormat(text)
    return TimeRange.from_bounds(start.strip(), end.strip())
