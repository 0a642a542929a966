"""Minute arithmetic for the booking grid.

Times of day are ``HH:MM`` strings at the edges of the system and integer
minutes since midnight inside it. Every range is half-open ``[start, end)``
and lives within a single day.
"""

import math
import re
from dataclasses import dataclass

MINUTES_PER_DAY = 24 * 60

_TIME_PATTERN = re.compile(r'^([01][0-9]|2[0-3]):([0-5][0-9])$')


def to_minutes(value: str) -> int:
    match = _TIME_PATTERN.match(value.strip()) if isinstance(value, str) else None
    if match is None:
        raise ValueError(f'Invalid time {value!r}. Use HH:MM (24-hour format).')
    return int(match.group(1)) * 60 + int(match.group(2))


def from_minutes(minutes: int) -> str:
    if not 0 <= minutes < MINUTES_PER_DAY:
        raise ValueError(f'Minute of day out of range: {minutes}')
    return f'{minutes // 60:02d}:{minutes % 60:02d}'


def to_end_minutes(value: str) -> int:
    """Like ``to_minutes`` but also accepts ``24:00`` as the end of the day."""
    if isinstance(value, str) and value.strip() == '24:00':
        return MINUTES_PER_DAY
    return to_minutes(value)


def is_valid_time(value: str) -> bool:
    return isinstance(value, str) and _TIME_PATTERN.match(value.strip()) is not None


def is_aligned(value: str | int, slot_duration: int) -> bool:
    minutes = value if isinstance(value, int) else to_minutes(value)
    return minutes % slot_duration == 0


def slots_needed(duration_minutes: int, slot_duration: int) -> int:
    return math.ceil(duration_minutes / slot_duration)


def rounded_duration(duration_minutes: int, slot_duration: int) -> int:
    """Length actually booked for a service: whole slots, never shorter."""
    return slots_needed(duration_minutes, slot_duration) * slot_duration


@dataclass(frozen=True, order=True)
class TimeRange:
    start: int
    end: int

    def __post_init__(self) -> None:
        if not 0 <= self.start < self.end <= MINUTES_PER_DAY:
            raise ValueError(
                f'Invalid time range {self.start}-{self.end}: start must be before end within one day.'
            )

    @classmethod
    def parse(cls, start: str, end: str) -> 'TimeRange':
        return cls(to_minutes(start), to_end_minutes(end))

    @classmethod
    def from_dict(cls, data: dict) -> 'TimeRange':
        return cls.parse(data['start'], data['end'])

    def to_dict(self) -> dict[str, str]:
        return {'start': from_minutes(self.start), 'end': format_end(self.end)}

    @property
    def length(self) -> int:
        return self.end - self.start

    def contains(self, minute: int) -> bool:
        return self.start <= minute < self.end

    def covers(self, other: 'TimeRange') -> bool:
        return self.start <= other.start and other.end <= self.end

    def __str__(self) -> str:
        return f'{from_minutes(self.start)}-{format_end(self.end)}'


def format_end(minutes: int) -> str:
    # An end boundary may sit exactly on midnight.
    if minutes == MINUTES_PER_DAY:
        return '24:00'
    return from_minutes(minutes)


def expand_range(time_range: TimeRange, slot_duration: int) -> list[int]:
    first = time_range.start
    if first % slot_duration:
        first += slot_duration - first % slot_duration

    return list(range(first, time_range.end - slot_duration + 1, slot_duration))


def ranges_overlap(a: TimeRange, b: TimeRange) -> bool:
    return a.start < b.end and b.start < a.end


def subtract_ranges(old: list[TimeRange], new: list[TimeRange]) -> list[TimeRange]:
    """Return the parts of ``old`` that no range in ``new`` covers."""
    removed: list[TimeRange] = []
    for source in sorted(old):
        pieces = [(source.start, source.end)]
        for cut in new:
            next_pieces = []
            for start, end in pieces:
                if cut.end <= start or cut.start >= end:
                    next_pieces.append((start, end))
                    continue
                if start < cut.start:
                    next_pieces.append((start, cut.start))
                if cut.end < end:
                    next_pieces.append((cut.end, end))
            pieces = next_pieces
        removed.extend(TimeRange(start, end) for start, end in pieces)
    return removed


def booking_range(start: str | int, duration_minutes: int, slot_duration: int) -> TimeRange:
    start_minutes = start if isinstance(start, int) else to_minutes(start)
    return TimeRange(start_minutes, start_minutes + rounded_duration(duration_minutes, slot_duration))
