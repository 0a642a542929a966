from datetime import date

import pytest
from conftest import MONDAY, add_booking, add_service

from booking_backend.models.booking import STATUS_REJECTED
from booking_backend.scheduling.reports import booking_waste_report


def test_waste_report_measures_rounding_buffer(booking_db) -> None:
    consultation = add_service(booking_db, name='Consultation', duration_minutes=50)
    add_booking(booking_db, MONDAY, '09:00', 50, service=consultation)
    add_booking(booking_db, MONDAY, '11:00', 30)
    add_booking(booking_db, date(2026, 1, 6), '09:00', 20)
    add_booking(booking_db, MONDAY, '14:00', 10, status=STATUS_REJECTED)

    report = booking_waste_report(booking_db, 15)

    assert [item.waste for item in report.bookings] == [10, 0, 10]
    assert report.bookings[0].service_name == 'Consultation'
    assert report.bookings[1].service_name == 'N/A'
    assert report.bookings[0].slots_needed == 4
    assert report.total_service_duration == 100
    assert report.total_booked_duration == 120
    assert report.total_waste == 20
    assert report.waste_percentage == pytest.approx(100 * 20 / 120)
    assert report.average_waste == pytest.approx(20 / 3)
    assert sorted(report.by_date()) == [MONDAY, date(2026, 1, 6)]


def test_waste_report_filters_by_date(booking_db) -> None:
    add_booking(booking_db, MONDAY, '09:00', 50)
    add_booking(booking_db, date(2026, 1, 6), '09:00', 20)

    report = booking_waste_report(booking_db, 15, MONDAY)

    assert len(report.bookings) == 1
    assert report.total_waste == 10


def test_empty_waste_report(booking_db) -> None:
    report = booking_waste_report(booking_db, 15)

    assert report.waste_percentage == 0.0
    assert report.average_waste == 0.0
