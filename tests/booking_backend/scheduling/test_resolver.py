from datetime import date

from conftest import MONDAY, add_template_window

from booking_backend.core.timegrid import TimeRange
from booking_backend.models.schedule import Closure, DateOverride
from booking_backend.scheduling.resolver import (
    SOURCE_CLOSURE,
    SOURCE_OVERRIDE,
    SOURCE_TEMPLATE,
    ClosureRule,
    ScheduleConfig,
    load_schedule_config,
    resolve_availability,
    resolve_availability_for,
    resolve_with_source,
)

MORNING = TimeRange(540, 780)


def test_template_decides_when_nothing_else_applies() -> None:
    schedule = ScheduleConfig(template={0: (MORNING,)})

    assert resolve_with_source(MONDAY, schedule) == (SOURCE_TEMPLATE, [MORNING])
    assert resolve_availability(date(2026, 1, 6), schedule) == []


def test_override_replaces_template_windows() -> None:
    afternoon = TimeRange(840, 960)
    schedule = ScheduleConfig(template={0: (MORNING,)}, overrides={MONDAY: (afternoon,)})

    assert resolve_with_source(MONDAY, schedule) == (SOURCE_OVERRIDE, [afternoon])


def test_empty_override_closes_the_date() -> None:
    schedule = ScheduleConfig(template={0: (MORNING,)}, overrides={MONDAY: ()})

    assert resolve_with_source(MONDAY, schedule) == (SOURCE_OVERRIDE, [])


def test_closure_wins_over_override_and_template() -> None:
    schedule = ScheduleConfig(
        template={0: (MORNING,)},
        overrides={MONDAY: (TimeRange(840, 960),)},
        closures=(ClosureRule(name='Holiday', dates=(MONDAY,)),),
    )

    assert resolve_with_source(MONDAY, schedule) == (SOURCE_CLOSURE, [])
    assert schedule.is_closed(MONDAY)


def test_yearly_closure_repeats_on_later_years_only() -> None:
    rule = ClosureRule(name='Anniversary', dates=(MONDAY,), recurring=True, recurrence_pattern='yearly')

    assert rule.covers(date(2027, 1, 5))
    assert not rule.covers(date(2025, 1, 5))
    assert not rule.covers(date(2027, 1, 6))


def test_non_recurring_closure_covers_listed_dates_only() -> None:
    rule = ClosureRule(name='Trip', dates=(MONDAY,))

    assert not rule.covers(date(2027, 1, 5))


def test_with_override_returns_new_snapshot() -> None:
    schedule = ScheduleConfig(template={0: (MORNING,)})
    changed = schedule.with_override(MONDAY, [])

    assert schedule.overrides == {}
    assert changed.overrides == {MONDAY: ()}
    assert changed.with_override(MONDAY, None).overrides == {}


def test_load_schedule_config_reads_every_source(booking_db) -> None:
    add_template_window(booking_db, 0, '09:00', '13:00')
    add_template_window(booking_db, 0, '14:00', '17:00')
    booking_db.add(DateOverride(date=date(2026, 1, 12), windows=[{'start': '10:00', 'end': '12:00'}]))
    booking_db.add(DateOverride(date=date(2026, 3, 2), windows=[]))
    booking_db.add(Closure(name='Holiday', dates=['2026-01-19'], recurring=False))
    booking_db.commit()

    schedule = load_schedule_config(booking_db, MONDAY, date(2026, 1, 31))

    assert schedule.template == {0: (MORNING, TimeRange(840, 1020))}
    assert schedule.overrides == {date(2026, 1, 12): (TimeRange(600, 720),)}
    assert schedule.is_closed(date(2026, 1, 19))


def test_resolve_availability_for_reads_database(booking_db) -> None:
    add_template_window(booking_db, 0, '09:00', '13:00')

    assert resolve_availability_for(booking_db, MONDAY) == [MORNING]
    assert resolve_availability_for(booking_db, date(2026, 1, 7)) == []
