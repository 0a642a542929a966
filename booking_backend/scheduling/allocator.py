"""Candidate start times and single-start validation.

``list_available_starts`` and ``validate_start`` are pure and must agree: a
start is listed exactly when ``validate_start`` accepts it for the same
windows, occupancy, duration and clock. The ``*_for`` variants load that
state from the database for one call.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from booking_backend.core import config
from booking_backend.core.timegrid import (
    MINUTES_PER_DAY,
    TimeRange,
    expand_range,
    format_end,
    from_minutes,
    is_aligned,
    rounded_duration,
    to_minutes,
)
from booking_backend.models.service import Service
from booking_backend.scheduling.booking_index import active_bookings_between, occupied_slots, occupied_slots_of
from booking_backend.scheduling.resolver import (
    SOURCE_CLOSURE,
    load_schedule_config,
    resolve_availability,
    resolve_with_source,
)
from booking_backend.scheduling.results import RejectionReason, SlotValidation
from booking_backend.scheduling.settings import BusinessSettings, load_business_settings

logger = logging.getLogger(__name__)


def past_cutoff(day: date, now: Optional[datetime]) -> int:
    """Minute of ``day`` at or before which a start counts as past (-1 when none does)."""
    if now is None:
        return -1
    today = now.date()
    if day < today:
        return MINUTES_PER_DAY
    if day == today:
        return now.hour * 60 + now.minute
    return -1


def booked_length(duration_minutes: Optional[int], slot_duration: int) -> int:
    if not duration_minutes or duration_minutes <= 0:
        return slot_duration
    return rounded_duration(duration_minutes, slot_duration)


def _is_free(start: int, end: int, slot_duration: int, occupied: set[int]) -> bool:
    return all(slot not in occupied for slot in range(start, end, slot_duration))


def list_available_starts(
    day: date,
    windows: list[TimeRange],
    occupied: set[int],
    slot_duration: int,
    service_minutes: Optional[int] = None,
    now: Optional[datetime] = None,
    business_hours: Optional[TimeRange] = None,
) -> list[str]:
    if not windows:
        return []

    cutoff = past_cutoff(day, now)
    length = booked_length(service_minutes, slot_duration)
    starts: set[int] = set()

    for window in windows:
        for start in expand_range(window, slot_duration):
            end = start + length
            if start <= cutoff or end > window.end:
                continue
            if business_hours is not None and (start < business_hours.start or end > business_hours.end):
                continue
            if _is_free(start, end, slot_duration, occupied):
                starts.add(start)

    return [from_minutes(start) for start in sorted(starts)]


def validate_start(
    day: date,
    start: str,
    duration_minutes: Optional[int],
    slot_duration: int,
    windows: list[TimeRange],
    closed: bool,
    occupied: set[int],
    now: Optional[datetime] = None,
    business_hours: Optional[TimeRange] = None,
) -> SlotValidation:
    start_minutes = to_minutes(start)

    if start_minutes <= past_cutoff(day, now):
        return SlotValidation.reject(RejectionReason.PAST, 'Cannot book appointments in the past.')

    if not is_aligned(start_minutes, slot_duration):
        return SlotValidation.reject(
            RejectionReason.MISALIGNED,
            f'Time {start} must align with {slot_duration}-minute slot boundaries.',
        )

    if closed:
        return SlotValidation.reject(RejectionReason.CLOSED, 'This date is closed for bookings.')

    if not windows:
        return SlotValidation.reject(
            RejectionReason.NO_AVAILABILITY,
            'No availability configured for this date.',
        )

    containing = [window for window in windows if window.contains(start_minutes)]
    before_hours = business_hours is not None and not business_hours.contains(start_minutes)
    if not containing or before_hours:
        return SlotValidation.reject(
            RejectionReason.OUTSIDE_HOURS,
            f'Time {start} is outside available hours for this date.',
        )

    end_minutes = start_minutes + booked_length(duration_minutes, slot_duration)
    fits_window = any(end_minutes <= window.end for window in containing)
    fits_hours = business_hours is None or end_minutes <= business_hours.end
    if not fits_window or not fits_hours:
        return SlotValidation.reject(
            RejectionReason.DOES_NOT_FIT,
            f'Service duration ({duration_minutes} min) does not fit at {start} within available hours.',
        )

    if not _is_free(start_minutes, end_minutes, slot_duration, occupied):
        return SlotValidation.reject(
            RejectionReason.OVERLAPS_BOOKING,
            f'Time slot {start}-{format_end(end_minutes)} overlaps with an existing booking.',
        )

    return SlotValidation.ok()


@dataclass(frozen=True)
class StartsListing:
    date: date
    source: str
    windows: list[TimeRange] = field(default_factory=list)
    starts: list[str] = field(default_factory=list)


def _business_now(settings: BusinessSettings, now: Optional[datetime]) -> datetime:
    return settings.localize(now) if now is not None else settings.now()


def available_starts_for(
    db: Session,
    day: date,
    service: Optional[Service] = None,
    now: Optional[datetime] = None,
    settings: Optional[BusinessSettings] = None,
) -> StartsListing:
    settings = settings or load_business_settings(db)
    source, windows = resolve_with_source(day, load_schedule_config(db, day, day))

    starts = list_available_starts(
        day,
        windows,
        occupied_slots(db, day, settings.slot_duration),
        settings.slot_duration,
        service_minutes=service.duration_minutes if service is not None else None,
        now=_business_now(settings, now),
        business_hours=settings.business_hours,
    )
    return StartsListing(date=day, source=source, windows=windows, starts=starts)


def validate_start_for(
    db: Session,
    day: date,
    start: str,
    duration_minutes: int,
    now: Optional[datetime] = None,
    settings: Optional[BusinessSettings] = None,
    exclude_booking_id: Optional[int] = None,
) -> SlotValidation:
    settings = settings or load_business_settings(db)
    source, windows = resolve_with_source(day, load_schedule_config(db, day, day))

    result = validate_start(
        day,
        start,
        duration_minutes,
        settings.slot_duration,
        windows,
        source == SOURCE_CLOSURE,
        occupied_slots(db, day, settings.slot_duration, exclude_booking_id),
        now=_business_now(settings, now),
        business_hours=settings.business_hours,
    )
    if not result.valid:
        logger.info('Slot %s %s rejected: %s', day, start, result.reason.value)
    return result


def available_dates_in_range(
    db: Session,
    start: date,
    end: date,
    service: Service,
    now: Optional[datetime] = None,
    settings: Optional[BusinessSettings] = None,
) -> list[date]:
    """Dates in ``[start, end]`` with at least one start that fits ``service``."""
    if start > end:
        raise ValueError('start_date must be before or equal to end_date.')
    if (end - start).days > config.MAX_DATE_RANGE_DAYS:
        raise ValueError(f'Date range cannot exceed {config.MAX_DATE_RANGE_DAYS} days.')

    settings = settings or load_business_settings(db)
    business_now = _business_now(settings, now)
    schedule = load_schedule_config(db, start, end)

    bookings_by_date = defaultdict(list)
    for booking in active_bookings_between(db, start, end):
        bookings_by_date[booking.date].append(booking)

    available: list[date] = []
    first = max(start, business_now.date())
    for offset in range((end - first).days + 1):
        current = first + timedelta(days=offset)
        windows = resolve_availability(current, schedule)
        starts = list_available_starts(
            current,
            windows,
            occupied_slots_of(bookings_by_date[current], settings.slot_duration),
            settings.slot_duration,
            service_minutes=service.duration_minutes,
            now=business_now,
            business_hours=settings.business_hours,
        )
        if starts:
            available.append(current)

    return available
