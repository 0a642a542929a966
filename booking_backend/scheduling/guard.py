"""Reject schedule changes that would strand existing bookings.

Narrowing the template, an override or adding a closure must not leave a
pending or confirmed booking outside the open windows of its date. The guard
recomputes the removed time for every affected date, lists every booking
that overlaps it, and blocks the whole change when that list is not empty.
Deleting a closure only ever opens time and is always allowed.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Optional, Union

from sqlalchemy.orm import Session

from booking_backend.core.timegrid import TimeRange, format_end, ranges_overlap, subtract_ranges
from booking_backend.models.booking import Booking
from booking_backend.scheduling.booking_index import active_bookings, active_bookings_between, occupied_range
from booking_backend.scheduling.resolver import (
    SOURCE_TEMPLATE,
    ClosureRule,
    ScheduleConfig,
    WeeklyTemplate,
    load_schedule_config,
    resolve_availability,
    resolve_with_source,
)
from booking_backend.scheduling.settings import BusinessSettings, load_business_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TemplateChange:
    template: WeeklyTemplate


@dataclass(frozen=True)
class OverrideChange:
    date: date
    # None deletes the override.
    windows: Optional[tuple[TimeRange, ...]]


@dataclass(frozen=True)
class ClosureChange:
    dates: tuple[date, ...]
    recurring: bool = False
    recurrence_pattern: Optional[str] = None
    closure_id: Optional[int] = None


@dataclass(frozen=True)
class ClosureDeletion:
    closure_id: int


ConfigChange = Union[TemplateChange, OverrideChange, ClosureChange, ClosureDeletion]


@dataclass(frozen=True)
class BookingConflict:
    booking_id: int
    date: date
    start_time: str
    end_time: str
    client_name: str
    status: str

    @classmethod
    def from_booking(cls, booking: Booking, slot_duration: int) -> 'BookingConflict':
        occupied = occupied_range(booking, slot_duration)
        return cls(
            booking_id=booking.id,
            date=booking.date,
            start_time=booking.start_time,
            end_time=format_end(occupied.end),
            client_name=booking.client_name,
            status=booking.status,
        )


@dataclass(frozen=True)
class GuardResult:
    allowed: bool
    conflicts: list[BookingConflict] = field(default_factory=list)

    @property
    def message(self) -> str:
        if self.allowed:
            return 'Change allowed.'
        listed = ', '.join(
            f'#{conflict.booking_id} {conflict.date.isoformat()} {conflict.start_time}-{conflict.end_time}'
            for conflict in self.conflicts
        )
        return (
            f'{len(self.conflicts)} existing booking(s) conflict with this change: {listed}. '
            'Please cancel or reschedule them first.'
        )


def _result(conflicts: list[BookingConflict]) -> GuardResult:
    conflicts = sorted(conflicts, key=lambda conflict: (conflict.date, conflict.start_time, conflict.booking_id))
    return GuardResult(allowed=not conflicts, conflicts=conflicts)


def _overlapping(bookings: list[Booking], removed: list[TimeRange], slot_duration: int) -> list[Booking]:
    return [
        booking
        for booking in bookings
        if any(ranges_overlap(occupied_range(booking, slot_duration), cut) for cut in removed)
    ]


def _template_conflicts(
    db: Session,
    change: TemplateChange,
    schedule: ScheduleConfig,
    settings: BusinessSettings,
    today: date,
) -> list[BookingConflict]:
    removed_by_weekday = {
        weekday: subtract_ranges(list(schedule.template.get(weekday, ())), list(change.template.get(weekday, ())))
        for weekday in range(7)
    }
    if not any(removed_by_weekday.values()):
        return []

    horizon = today + timedelta(days=settings.guard_lookahead_days)
    conflicts = []
    for booking in active_bookings_between(db, today, horizon):
        removed = removed_by_weekday[booking.date.weekday()]
        if not removed:
            continue
        source, _ = resolve_with_source(booking.date, schedule)
        if source != SOURCE_TEMPLATE:
            continue
        if _overlapping([booking], removed, settings.slot_duration):
            conflicts.append(BookingConflict.from_booking(booking, settings.slot_duration))
    return conflicts


def _override_conflicts(
    db: Session,
    change: OverrideChange,
    schedule: ScheduleConfig,
    settings: BusinessSettings,
) -> list[BookingConflict]:
    bookings = active_bookings(db, change.date)

    if change.windows is None:
        blocking = bookings
    else:
        before = resolve_availability(change.date, schedule)
        after = resolve_availability(change.date, schedule.with_override(change.date, list(change.windows)))
        blocking = _overlapping(bookings, subtract_ranges(before, after), settings.slot_duration)

    return [BookingConflict.from_booking(booking, settings.slot_duration) for booking in blocking]


def closure_affected_dates(change: ClosureChange, today: date, lookahead_days: int) -> list[date]:
    rule = ClosureRule(
        name='',
        dates=change.dates,
        recurring=change.recurring,
        recurrence_pattern=change.recurrence_pattern,
    )
    affected = set(change.dates)
    if change.recurring:
        for offset in range(lookahead_days + 1):
            day = today + timedelta(days=offset)
            if rule.covers(day):
                affected.add(day)
    return sorted(affected)


def _closure_conflicts(
    db: Session,
    change: ClosureChange,
    settings: BusinessSettings,
    today: date,
) -> list[BookingConflict]:
    conflicts = []
    for day in closure_affected_dates(change, today, settings.guard_lookahead_days):
        conflicts.extend(
            BookingConflict.from_booking(booking, settings.slot_duration)
            for booking in active_bookings(db, day)
        )
    return conflicts


def guard_config_change(
    db: Session,
    change: ConfigChange,
    settings: Optional[BusinessSettings] = None,
    today: Optional[date] = None,
) -> GuardResult:
    if isinstance(change, ClosureDeletion):
        return GuardResult(allowed=True)

    settings = settings or load_business_settings(db)
    today = today or settings.today()

    if isinstance(change, ClosureChange):
        result = _result(_closure_conflicts(db, change, settings, today))
    elif isinstance(change, OverrideChange):
        schedule = load_schedule_config(db, change.date, change.date)
        result = _result(_override_conflicts(db, change, schedule, settings))
    elif isinstance(change, TemplateChange):
        horizon = today + timedelta(days=settings.guard_lookahead_days)
        schedule = load_schedule_config(db, today, horizon)
        result = _result(_template_conflicts(db, change, schedule, settings, today))
    else:
        raise TypeError(f'Unsupported schedule change: {type(change).__name__}')

    if not result.allowed:
        logger.warning('Schedule change blocked by %d booking(s)', len(result.conflicts))
    return result
