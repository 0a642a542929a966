"""Validated, guarded changes to the weekly template, date overrides and closures.

Each operation validates its input, asks the mutation guard, and then applies
the change in a single commit. A blocked change writes nothing.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from booking_backend.core.timegrid import TimeRange, is_aligned, ranges_overlap, to_end_minutes, to_minutes
from booking_backend.models.schedule import Closure, DateOverride, WeeklyTemplateWindow
from booking_backend.scheduling.guard import (
    ClosureChange,
    ClosureDeletion,
    GuardResult,
    OverrideChange,
    TemplateChange,
    guard_config_change,
)
from booking_backend.scheduling.resolver import RECURRENCE_PATTERNS, WEEKDAY_NAMES, WeeklyTemplate, load_template
from booking_backend.scheduling.settings import BusinessSettings, load_business_settings

logger = logging.getLogger(__name__)


class ScheduleValidationError(ValueError):
    """Malformed schedule input; raised before anything is read or written."""


@dataclass(frozen=True)
class MutationResult:
    applied: bool
    guard: GuardResult
    closure_id: Optional[int] = None


def _parse_window(raw: dict, slot_duration: int, label: str) -> TimeRange:
    start = raw.get('start') if isinstance(raw, dict) else None
    end = raw.get('end') if isinstance(raw, dict) else None
    if not start or not end:
        raise ScheduleValidationError(f'Invalid window for {label}: start and end are required.')

    try:
        start_minutes = to_minutes(start)
        end_minutes = to_end_minutes(end)
    except ValueError:
        raise ScheduleValidationError(f'Invalid time format for {label}. Use HH:MM (24-hour format).') from None

    for value, minutes in ((start, start_minutes), (end, end_minutes)):
        if not is_aligned(minutes, slot_duration):
            raise ScheduleValidationError(
                f'{label}: time {value} must align with {slot_duration}-minute slot boundaries.'
            )

    if start_minutes >= end_minutes:
        raise ScheduleValidationError(f'Invalid time range for {label}: start time must be before end time.')

    return TimeRange(start_minutes, end_minutes)


def parse_windows(raw_windows: Iterable[dict], slot_duration: int, label: str) -> tuple[TimeRange, ...]:
    if raw_windows is None or isinstance(raw_windows, (str, dict)):
        raise ScheduleValidationError(f'Windows for {label} must be a list.')

    windows = sorted(_parse_window(raw, slot_duration, label) for raw in raw_windows)
    for earlier, later in zip(windows, windows[1:]):
        if ranges_overlap(earlier, later):
            raise ScheduleValidationError(f'Windows for {label} must not overlap ({earlier} and {later}).')
    return tuple(windows)


def parse_template(payload: dict, slot_duration: int) -> WeeklyTemplate:
    if not isinstance(payload, dict):
        raise ScheduleValidationError('Template is required.')

    unknown = sorted(set(payload) - set(WEEKDAY_NAMES))
    if unknown:
        raise ScheduleValidationError(f"Unknown weekday(s): {', '.join(unknown)}.")

    template = {}
    for weekday, name in enumerate(WEEKDAY_NAMES):
        windows = parse_windows(payload.get(name) or [], slot_duration, name)
        if windows:
            template[weekday] = windows

    if not template:
        raise ScheduleValidationError('Weekly template must have at least one day with time windows.')
    return template


def template_to_payload(template: WeeklyTemplate) -> dict[str, list[dict[str, str]]]:
    return {
        name: [window.to_dict() for window in template.get(weekday, ())]
        for weekday, name in enumerate(WEEKDAY_NAMES)
    }


def _coerce_date(value, label: str) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise ScheduleValidationError(f'Invalid date format for {label}: {value}. Use YYYY-MM-DD.') from None


def _require_not_past(day: date, today: date, message: str) -> None:
    if day < today:
        raise ScheduleValidationError(message)


def set_weekly_template(
    db: Session,
    payload: dict,
    settings: Optional[BusinessSettings] = None,
    today: Optional[date] = None,
) -> MutationResult:
    settings = settings or load_business_settings(db)
    template = parse_template(payload, settings.slot_duration)

    guard = guard_config_change(db, TemplateChange(template), settings=settings, today=today)
    if not guard.allowed:
        return MutationResult(applied=False, guard=guard)

    db.query(WeeklyTemplateWindow).delete(synchronize_session=False)
    for weekday, windows in template.items():
        for window in windows:
            start_end = window.to_dict()
            db.add(WeeklyTemplateWindow(weekday=weekday, start_time=start_end['start'], end_time=start_end['end']))
    db.commit()

    logger.info('Weekly template updated (%d day(s) open)', len(template))
    return MutationResult(applied=True, guard=guard)


def get_weekly_template(db: Session) -> dict[str, list[dict[str, str]]]:
    return template_to_payload(load_template(db))


def set_date_override(
    db: Session,
    day,
    raw_windows: Iterable[dict],
    settings: Optional[BusinessSettings] = None,
    today: Optional[date] = None,
) -> MutationResult:
    settings = settings or load_business_settings(db)
    day = _coerce_date(day, 'override')
    _require_not_past(day, today or settings.today(), 'Cannot plan dates in the past.')
    windows = parse_windows(raw_windows, settings.slot_duration, day.isoformat())

    guard = guard_config_change(db, OverrideChange(day, windows), settings=settings, today=today)
    if not guard.allowed:
        return MutationResult(applied=False, guard=guard)

    payload = [window.to_dict() for window in windows]
    override = db.query(DateOverride).filter(DateOverride.date == day).first()
    if override is None:
        db.add(DateOverride(date=day, windows=payload))
    else:
        override.windows = payload
    db.commit()

    logger.info('Override for %s set to %d window(s)', day, len(windows))
    return MutationResult(applied=True, guard=guard)


def delete_date_override(
    db: Session,
    day,
    settings: Optional[BusinessSettings] = None,
    today: Optional[date] = None,
) -> Optional[MutationResult]:
    day = _coerce_date(day, 'override')
    override = db.query(DateOverride).filter(DateOverride.date == day).first()
    if override is None:
        return None

    guard = guard_config_change(db, OverrideChange(day, None), settings=settings, today=today)
    if not guard.allowed:
        return MutationResult(applied=False, guard=guard)

    db.delete(override)
    db.commit()
    logger.info('Override for %s deleted', day)
    return MutationResult(applied=True, guard=guard)


def save_closure(
    db: Session,
    name: str,
    dates: Iterable,
    recurring: bool = False,
    recurrence_pattern: Optional[str] = None,
    closure_id: Optional[int] = None,
    settings: Optional[BusinessSettings] = None,
    today: Optional[date] = None,
) -> Optional[MutationResult]:
    """Create (or, with ``closure_id``, update) a closure. None when the closure to update is missing."""
    if not name or not name.strip():
        raise ScheduleValidationError('Name and dates are required.')
    dates = tuple(sorted({_coerce_date(value, 'closure') for value in dates or []}))
    if not dates:
        raise ScheduleValidationError('Name and dates are required.')
    if recurring and recurrence_pattern not in RECURRENCE_PATTERNS:
        raise ScheduleValidationError(
            f"Recurrence pattern must be one of: {', '.join(RECURRENCE_PATTERNS)}."
        )

    settings = settings or load_business_settings(db)
    current = today or settings.today()
    for day in dates:
        _require_not_past(day, current, f'Cannot block past date: {day.isoformat()}')

    closure = None
    if closure_id is not None:
        closure = db.get(Closure, closure_id)
        if closure is None:
            return None

    change = ClosureChange(
        dates=dates,
        recurring=recurring,
        recurrence_pattern=recurrence_pattern if recurring else None,
        closure_id=closure_id,
    )
    guard = guard_config_change(db, change, settings=settings, today=current)
    if not guard.allowed:
        return MutationResult(applied=False, guard=guard)

    if closure is None:
        closure = Closure()
        db.add(closure)
    closure.name = name.strip()
    closure.dates = [day.isoformat() for day in dates]
    closure.recurring = recurring
    closure.recurrence_pattern = change.recurrence_pattern
    db.commit()
    db.refresh(closure)

    logger.info('Closure %s "%s" saved for %d date(s)', closure.id, closure.name, len(dates))
    return MutationResult(applied=True, guard=guard, closure_id=closure.id)


def delete_closure(db: Session, closure_id: int) -> bool:
    closure = db.get(Closure, closure_id)
    if closure is None:
        return False

    guard_config_change(db, ClosureDeletion(closure_id))
    db.delete(closure)
    db.commit()
    logger.info('Closure %s deleted', closure_id)
    return True


def list_closures(db: Session) -> list[Closure]:
    return db.query(Closure).order_by(Closure.id.asc()).all()
