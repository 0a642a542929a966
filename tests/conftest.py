import os
from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from booking_backend.core.timegrid import TimeRange, booking_range, format_end  # noqa: E402
from booking_backend.database import Base  # noqa: E402
from booking_backend.models import otp, settings  # noqa: E402,F401
from booking_backend.models.booking import ACTIVE_STATUSES, STATUS_CONFIRMED, Booking, BookingSlotClaim  # noqa: E402
from booking_backend.models.schedule import WeeklyTemplateWindow  # noqa: E402
from booking_backend.models.service import Service  # noqa: E402
from booking_backend.scheduling.settings import BusinessSettings  # noqa: E402

# 2026-01-05 is a Monday.
MONDAY = date(2026, 1, 5)


@pytest.fixture
def booking_db():
    engine = create_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def business_settings() -> BusinessSettings:
    return BusinessSettings(
        slot_duration=15,
        timezone='Asia/Jerusalem',
        max_advance_days=60,
        min_notice_minutes=0,
        guard_lookahead_days=365,
    )


def add_service(db, name: str = 'Haircut', duration_minutes: int = 60, active: bool = True) -> Service:
    service = Service(name=name, duration_minutes=duration_minutes, active=active)
    db.add(service)
    db.commit()
    db.refresh(service)
    return service


def add_template_window(db, weekday: int, start: str, end: str) -> None:
    db.add(WeeklyTemplateWindow(weekday=weekday, start_time=start, end_time=end))
    db.commit()


def add_booking(
    db,
    day: date,
    start: str,
    duration_minutes: int,
    status: str = STATUS_CONFIRMED,
    service: Service | None = None,
    slot_duration: int = 15,
    client_name: str = 'Dana Levi',
) -> Booking:
    occupied: TimeRange = booking_range(start, duration_minutes, slot_duration)
    booking = Booking(
        client_name=client_name,
        phone='0501234567',
        date=day,
        start_time=start,
        end_time=format_end(occupied.end),
        duration_minutes=duration_minutes,
        service_id=service.id if service is not None else None,
        service_name=service.name if service is not None else None,
        status=status,
        claims=[
            BookingSlotClaim(date=day, slot_start_minutes=slot)
            for slot in range(occupied.start, occupied.end, slot_duration)
            if status in ACTIVE_STATUSES
        ],
    )
    db.add(booking)
    db.commit()
    db.refresh(booking)
    return booking
