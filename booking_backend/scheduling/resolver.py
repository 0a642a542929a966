"""Resolve the open windows of a calendar date.

Three configuration sources decide a date's windows, highest precedence first:
closures, date overrides, then the weekly template. The first source that has
an opinion about a date decides it alone; sources are never merged.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Optional

from sqlalchemy.orm import Session

from booking_backend.core.timegrid import TimeRange
from booking_backend.models.schedule import Closure, DateOverride, WeeklyTemplateWindow

logger = logging.getLogger(__name__)

WEEKDAY_NAMES = ('monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday')
RECURRENCE_YEARLY = 'yearly'
RECURRENCE_PATTERNS = (RECURRENCE_YEARLY,)

SOURCE_CLOSURE = 'closure'
SOURCE_OVERRIDE = 'override'
SOURCE_TEMPLATE = 'template'


@dataclass(frozen=True)
class ClosureRule:
    name: str
    dates: tuple[date, ...]
    recurring: bool = False
    recurrence_pattern: Optional[str] = None
    id: Optional[int] = None

    def covers(self, day: date) -> bool:
        if day in self.dates:
            return True
        if self.recurring and self.recurrence_pattern == RECURRENCE_YEARLY:
            return any(
                (listed.month, listed.day) == (day.month, day.day) and day >= listed
                for listed in self.dates
            )
        return False


WeeklyTemplate = dict[int, tuple[TimeRange, ...]]


@dataclass(frozen=True)
class ScheduleConfig:
    """Snapshot of every schedule source, loaded once per call."""

    template: WeeklyTemplate = field(default_factory=dict)
    overrides: dict[date, tuple[TimeRange, ...]] = field(default_factory=dict)
    closures: tuple[ClosureRule, ...] = ()

    def closures_covering(self, day: date) -> list[ClosureRule]:
        return [closure for closure in self.closures if closure.covers(day)]

    def is_closed(self, day: date) -> bool:
        return any(closure.covers(day) for closure in self.closures)

    def with_template(self, template: WeeklyTemplate) -> 'ScheduleConfig':
        return ScheduleConfig(template=template, overrides=self.overrides, closures=self.closures)

    def with_override(self, day: date, windows: Optional[list[TimeRange]]) -> 'ScheduleConfig':
        overrides = dict(self.overrides)
        if windows is None:
            overrides.pop(day, None)
        else:
            overrides[day] = tuple(windows)
        return ScheduleConfig(template=self.template, overrides=overrides, closures=self.closures)


@dataclass(frozen=True)
class WindowSource:
    """One precedence level; ``resolve`` returns None when it has no say about the date."""

    name: str
    resolve: Callable[[date, ScheduleConfig], Optional[list[TimeRange]]]


def _closure_windows(day: date, schedule: ScheduleConfig) -> Optional[list[TimeRange]]:
    return [] if schedule.is_closed(day) else None


def _override_windows(day: date, schedule: ScheduleConfig) -> Optional[list[TimeRange]]:
    windows = schedule.overrides.get(day)
    return None if windows is None else list(windows)


def _template_windows(day: date, schedule: ScheduleConfig) -> Optional[list[TimeRange]]:
    return list(schedule.template.get(day.weekday(), ()))


DEFAULT_SOURCES: tuple[WindowSource, ...] = (
    WindowSource(SOURCE_CLOSURE, _closure_windows),
    WindowSource(SOURCE_OVERRIDE, _override_windows),
    WindowSource(SOURCE_TEMPLATE, _template_windows),
)


def resolve_with_source(
    day: date,
    schedule: ScheduleConfig,
    sources: tuple[WindowSource, ...] = DEFAULT_SOURCES,
) -> tuple[str, list[TimeRange]]:
    for source in sources:
        windows = source.resolve(day, schedule)
        if windows is not None:
            return source.name, windows
    return SOURCE_TEMPLATE, []


def resolve_availability(
    day: date,
    schedule: ScheduleConfig,
    sources: tuple[WindowSource, ...] = DEFAULT_SOURCES,
) -> list[TimeRange]:
    return resolve_with_source(day, schedule, sources)[1]


def parse_windows(raw_windows) -> tuple[TimeRange, ...]:
    return tuple(TimeRange.from_dict(window) for window in raw_windows or [])


def parse_closure_dates(raw_dates) -> tuple[date, ...]:
    return tuple(date.fromisoformat(value) for value in raw_dates or [])


def closure_rule_from_row(row: Closure) -> ClosureRule:
    return ClosureRule(
        id=row.id,
        name=row.name,
        dates=parse_closure_dates(row.dates),
        recurring=bool(row.recurring),
        recurrence_pattern=row.recurrence_pattern,
    )


def load_template(db: Session) -> WeeklyTemplate:
    rows = db.query(WeeklyTemplateWindow).order_by(
        WeeklyTemplateWindow.weekday.asc(),
        WeeklyTemplateWindow.start_time.asc(),
    ).all()

    template: dict[int, list[TimeRange]] = {}
    for row in rows:
        template.setdefault(row.weekday, []).append(TimeRange.parse(row.start_time, row.end_time))
    return {weekday: tuple(windows) for weekday, windows in template.items()}


def load_schedule_config(
    db: Session,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> ScheduleConfig:
    """Read the schedule sources, limiting overrides to ``[start, end]`` when given."""
    override_query = db.query(DateOverride)
    if start is not None:
        override_query = override_query.filter(DateOverride.date >= start)
    if end is not None:
        override_query = override_query.filter(DateOverride.date <= end)

    overrides = {row.date: parse_windows(row.windows) for row in override_query.all()}
    closures = tuple(closure_rule_from_row(row) for row in db.query(Closure).order_by(Closure.id.asc()).all())

    return ScheduleConfig(template=load_template(db), overrides=overrides, closures=closures)


def resolve_availability_for(db: Session, day: date) -> list[TimeRange]:
    windows = resolve_availability(day, load_schedule_config(db, day, day))
    logger.debug('Resolved %d window(s) for %s', len(windows), day)
    return windows
