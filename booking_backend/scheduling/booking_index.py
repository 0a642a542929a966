"""Occupancy of a date by pending and confirmed bookings."""

from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from booking_backend.core.timegrid import TimeRange, booking_range, expand_range
from booking_backend.models.booking import ACTIVE_STATUSES, Booking


def active_bookings(db: Session, day: date, exclude_booking_id: Optional[int] = None) -> list[Booking]:
    query = db.query(Booking).filter(
        Booking.date == day,
        Booking.status.in_(ACTIVE_STATUSES),
    )
    if exclude_booking_id is not None:
        query = query.filter(Booking.id != exclude_booking_id)
    return query.order_by(Booking.start_time.asc()).all()


def active_bookings_between(db: Session, start: date, end: date) -> list[Booking]:
    return db.query(Booking).filter(
        Booking.date >= start,
        Booking.date <= end,
        Booking.status.in_(ACTIVE_STATUSES),
    ).order_by(Booking.date.asc(), Booking.start_time.asc()).all()


def occupied_range(booking: Booking, slot_duration: int) -> TimeRange:
    return booking_range(booking.start_time, booking.duration_minutes, slot_duration)


def occupied_slots_of(bookings: list[Booking], slot_duration: int) -> set[int]:
    occupied: set[int] = set()
    for booking in bookings:
        occupied.update(expand_range(occupied_range(booking, slot_duration), slot_duration))
    return occupied


def occupied_slots(
    db: Session,
    day: date,
    slot_duration: int,
    exclude_booking_id: Optional[int] = None,
) -> set[int]:
    """Slot start minutes already taken on ``day``."""
    return occupied_slots_of(active_bookings(db, day, exclude_booking_id), slot_duration)
