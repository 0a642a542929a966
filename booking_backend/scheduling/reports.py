"""Booking waste: the buffer left when service durations are rounded up to whole slots."""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from booking_backend.core.timegrid import rounded_duration, slots_needed
from booking_backend.models.booking import ACTIVE_STATUSES, Booking


@dataclass(frozen=True)
class BookingWaste:
    booking_id: int
    date: date
    start_time: str
    service_name: str
    status: str
    service_duration: int
    booked_duration: int
    slots_needed: int

    @property
    def waste(self) -> int:
        return self.booked_duration - self.service_duration


@dataclass(frozen=True)
class WasteReport:
    slot_duration: int
    bookings: list[BookingWaste] = field(default_factory=list)

    @property
    def total_service_duration(self) -> int:
        return sum(item.service_duration for item in self.bookings)

    @property
    def total_booked_duration(self) -> int:
        return sum(item.booked_duration for item in self.bookings)

    @property
    def total_waste(self) -> int:
        return self.total_booked_duration - self.total_service_duration

    @property
    def waste_percentage(self) -> float:
        if not self.total_booked_duration:
            return 0.0
        return self.total_waste / self.total_booked_duration * 100

    @property
    def average_waste(self) -> float:
        if not self.bookings:
            return 0.0
        return self.total_waste / len(self.bookings)

    def by_date(self) -> dict[date, list[BookingWaste]]:
        grouped = defaultdict(list)
        for item in self.bookings:
            grouped[item.date].append(item)
        return dict(grouped)


def booking_waste_report(db: Session, slot_duration: int, day: Optional[date] = None) -> WasteReport:
    query = db.query(Booking).filter(Booking.status.in_(ACTIVE_STATUSES))
    if day is not None:
        query = query.filter(Booking.date == day)

    items = [
        BookingWaste(
            booking_id=booking.id,
            date=booking.date,
            start_time=booking.start_time,
            service_name=booking.service_name or 'N/A',
            status=booking.status,
            service_duration=booking.duration_minutes,
            booked_duration=rounded_duration(booking.duration_minutes, slot_duration),
            slots_needed=slots_needed(booking.duration_minutes, slot_duration),
        )
        for booking in query.order_by(Booking.date.asc(), Booking.start_time.asc()).all()
    ]
    return WasteReport(slot_duration=slot_duration, bookings=items)
