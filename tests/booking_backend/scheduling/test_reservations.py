from dataclasses import replace
from datetime import datetime

import pytest
from conftest import MONDAY, add_booking, add_service, add_template_window

from booking_backend.models.booking import STATUS_CONFIRMED, STATUS_PENDING, STATUS_REJECTED, Booking, BookingSlotClaim
from booking_backend.scheduling.otp import OtpStatus, OtpVerification
from booking_backend.scheduling.reservations import (
    ReservationStage,
    cancel_booking,
    create_confirmed_booking,
    create_reservation,
    reschedule_booking,
    update_booking_status,
    validate_booking_fields,
)
from booking_backend.scheduling.results import RejectionReason, SlotValidation

NOW = datetime(2026, 1, 1, 8, 0)


class StubVerifier:
    def __init__(self, verification: OtpVerification = OtpVerification(OtpStatus.VERIFIED)):
        self.verification = verification
        self.calls = []

    def verify(self, phone: str, code: str) -> OtpVerification:
        self.calls.append((phone, code))
        return self.verification


@pytest.fixture
def open_monday(booking_db):
    add_template_window(booking_db, 0, '09:00', '13:00')
    return add_service(booking_db, name='Haircut', duration_minutes=60)


def reserve(db, settings, service_id, start='09:00', verifier=None, **overrides):
    fields = {
        'otp_code': '1234',
        'client_name': 'Dana Levi',
        'phone': '0501234567',
        'day': MONDAY.isoformat(),
        'start': start,
        'service_id': service_id,
        'now': NOW,
        'settings': settings,
    }
    fields.update(overrides)
    return create_reservation(db, verifier or StubVerifier(), **fields)


def claimed_slots(db) -> list[int]:
    return sorted(claim.slot_start_minutes for claim in db.query(BookingSlotClaim).all())


def test_reservation_creates_pending_booking_with_claims(booking_db, business_settings, open_monday) -> None:
    verifier = StubVerifier()

    result = reserve(booking_db, business_settings, open_monday.id, verifier=verifier)

    assert result.success
    assert result.stage is ReservationStage.CREATED
    booking = booking_db.get(Booking, result.booking_id)
    assert booking.status == STATUS_PENDING
    assert booking.end_time == '10:00'
    assert booking.service_name == 'Haircut'
    assert claimed_slots(booking_db) == [540, 555, 570, 585]
    assert verifier.calls == [('0501234567', '1234')]


def test_reservation_requires_a_code(booking_db, business_settings, open_monday) -> None:
    verifier = StubVerifier()

    result = reserve(booking_db, business_settings, open_monday.id, verifier=verifier, otp_code='  ')

    assert not result.success
    assert result.stage is ReservationStage.START
    assert result.reason is RejectionReason.OTP_REQUIRED
    assert verifier.calls == []


@pytest.mark.parametrize(
    ('verification', 'reason'),
    [
        (OtpVerification(OtpStatus.NOT_FOUND), RejectionReason.OTP_NOT_FOUND),
        (OtpVerification(OtpStatus.EXPIRED), RejectionReason.OTP_EXPIRED),
        (OtpVerification(OtpStatus.TOO_MANY_ATTEMPTS), RejectionReason.OTP_TOO_MANY_ATTEMPTS),
        (OtpVerification(OtpStatus.WRONG_CODE, attempts_left=2), RejectionReason.OTP_INVALID_CODE),
    ],
)
def test_reservation_forwards_code_failures(booking_db, business_settings, open_monday, verification, reason) -> None:
    result = reserve(booking_db, business_settings, open_monday.id, verifier=StubVerifier(verification))

    assert not result.success
    assert result.reason is reason
    assert result.attempts_left == verification.attempts_left
    assert booking_db.query(Booking).count() == 0


@pytest.mark.parametrize(
    ('fields', 'message'),
    [
        ({'client_name': ''}, 'Missing required fields: client_name.'),
        ({'phone': '12345'}, 'Invalid phone number format.'),
        ({'day': '05/01/2026'}, 'Invalid date format. Use YYYY-MM-DD.'),
        ({'start': '9am'}, 'Invalid time format. Use HH:MM.'),
        ({'client_name': 'D'}, 'Client name must be at least 2 characters.'),
    ],
)
def test_reservation_rejects_malformed_fields(booking_db, business_settings, open_monday, fields, message) -> None:
    result = reserve(booking_db, business_settings, open_monday.id, **fields)

    assert result.stage is ReservationStage.OTP_VERIFIED
    assert result.reason is RejectionReason.INVALID_FIELDS
    assert result.message == message


def test_validate_booking_fields_accepts_dashed_phone() -> None:
    assert validate_booking_fields('Dana Levi', '050-1234567', '2026-01-05', '09:00', 3) is None
    assert validate_booking_fields('Dana Levi', '0501234567', '2026-01-05', '09:00', 0) == 'Invalid service id.'


def test_reservation_rejects_past_dates(booking_db, business_settings, open_monday) -> None:
    result = reserve(booking_db, business_settings, open_monday.id, now=datetime(2026, 1, 5, 9, 30))

    assert result.stage is ReservationStage.FIELDS_VALID
    assert result.reason is RejectionReason.PAST


def test_reservation_rejects_dates_beyond_horizon(booking_db, business_settings, open_monday) -> None:
    result = reserve(booking_db, business_settings, open_monday.id, day='2026-03-09')

    assert result.reason is RejectionReason.BEYOND_HORIZON


def test_reservation_enforces_minimum_notice(booking_db, business_settings, open_monday) -> None:
    settings = replace(business_settings, min_notice_minutes=60)

    result = reserve(
        booking_db,
        settings,
        open_monday.id,
        start='09:30',
        now=datetime(2026, 1, 5, 9, 0),
    )

    assert result.reason is RejectionReason.INSIDE_MIN_NOTICE


def test_reservation_rejects_missing_or_inactive_service(booking_db, business_settings, open_monday) -> None:
    inactive = add_service(booking_db, name='Retired', duration_minutes=30, active=False)

    missing = reserve(booking_db, business_settings, 999)
    retired = reserve(booking_db, business_settings, inactive.id)

    assert missing.stage is ReservationStage.TIME_VALID
    assert missing.reason is RejectionReason.SERVICE_NOT_FOUND
    assert retired.reason is RejectionReason.SERVICE_INACTIVE


def test_reservation_forwards_slot_rejection(booking_db, business_settings, open_monday) -> None:
    result = reserve(booking_db, business_settings, open_monday.id, start='12:30')

    assert result.stage is ReservationStage.SERVICE_VALID
    assert result.reason is RejectionReason.DOES_NOT_FIT


def test_second_reservation_for_same_slot_is_rejected(booking_db, business_settings, open_monday) -> None:
    first = reserve(booking_db, business_settings, open_monday.id)
    second = reserve(booking_db, business_settings, open_monday.id, start='09:30')

    assert first.success
    assert not second.success
    assert second.reason is RejectionReason.OVERLAPS_BOOKING
    assert booking_db.query(Booking).count() == 1


def test_slot_claims_stop_a_reservation_that_passed_validation(
    booking_db,
    business_settings,
    open_monday,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    assert reserve(booking_db, business_settings, open_monday.id).success

    # Simulate a request that validated before the first one committed.
    monkeypatch.setattr(
        'booking_backend.scheduling.reservations.validate_start_for',
        lambda *args, **kwargs: SlotValidation.ok(),
    )
    racing = reserve(booking_db, business_settings, open_monday.id, start='09:45')

    assert not racing.success
    assert racing.stage is ReservationStage.SLOT_VALID
    assert racing.reason is RejectionReason.OVERLAPS_BOOKING
    assert booking_db.query(Booking).count() == 1
    assert claimed_slots(booking_db) == [540, 555, 570, 585]


def test_reservation_rounds_service_duration_to_slots(booking_db, business_settings) -> None:
    add_template_window(booking_db, 0, '09:00', '13:00')
    service = add_service(booking_db, name='Consultation', duration_minutes=50)

    result = reserve(booking_db, business_settings, service.id)

    booking = booking_db.get(Booking, result.booking_id)
    assert booking.duration_minutes == 50
    assert booking.end_time == '10:00'
    assert claimed_slots(booking_db) == [540, 555, 570, 585]


def test_confirmed_booking_skips_horizon_rules(booking_db, business_settings, open_monday) -> None:
    add_template_window(booking_db, 4, '09:00', '13:00')

    result = create_confirmed_booking(
        booking_db,
        client_name='Dana Levi',
        phone='0501234567',
        day='2026-06-05',
        start='10:00',
        service_id=open_monday.id,
        now=NOW,
        settings=business_settings,
    )

    assert result.success
    assert booking_db.get(Booking, result.booking_id).status == STATUS_CONFIRMED


def test_confirmed_booking_still_checks_the_slot(booking_db, business_settings, open_monday) -> None:
    add_booking(booking_db, MONDAY, '10:00', 60)

    result = create_confirmed_booking(
        booking_db,
        client_name='Dana Levi',
        phone='0501234567',
        day=MONDAY.isoformat(),
        start='10:30',
        service_id=open_monday.id,
        now=NOW,
        settings=business_settings,
    )

    assert result.reason is RejectionReason.OVERLAPS_BOOKING


def test_reschedule_moves_booking_over_its_own_slots(booking_db, business_settings, open_monday) -> None:
    booking_id = reserve(booking_db, business_settings, open_monday.id).booking_id

    result = reschedule_booking(booking_db, booking_id, MONDAY.isoformat(), '09:30', now=NOW, settings=business_settings)

    assert result.success
    booking = booking_db.get(Booking, booking_id)
    assert (booking.start_time, booking.end_time) == ('09:30', '10:30')
    assert claimed_slots(booking_db) == [570, 585, 600, 615]


def test_reschedule_rejects_taken_time(booking_db, business_settings, open_monday) -> None:
    booking_id = reserve(booking_db, business_settings, open_monday.id).booking_id
    add_booking(booking_db, MONDAY, '11:00', 60)

    result = reschedule_booking(booking_db, booking_id, MONDAY.isoformat(), '10:30', now=NOW, settings=business_settings)

    assert result.reason is RejectionReason.OVERLAPS_BOOKING
    assert booking_db.get(Booking, booking_id).start_time == '09:00'


def test_reschedule_unknown_booking_returns_none(booking_db, business_settings) -> None:
    assert reschedule_booking(booking_db, 42, MONDAY.isoformat(), '09:00', now=NOW, settings=business_settings) is None


def test_cancel_booking_releases_claims(booking_db, business_settings, open_monday) -> None:
    booking_id = reserve(booking_db, business_settings, open_monday.id).booking_id

    assert cancel_booking(booking_db, booking_id)
    assert booking_db.query(Booking).count() == 0
    assert claimed_slots(booking_db) == []
    assert not cancel_booking(booking_db, booking_id)


def test_status_updates_follow_allowed_transitions(booking_db, business_settings, open_monday) -> None:
    booking_id = reserve(booking_db, business_settings, open_monday.id).booking_id

    assert update_booking_status(booking_db, booking_id, STATUS_CONFIRMED).status == STATUS_CONFIRMED
    assert update_booking_status(booking_db, booking_id, STATUS_REJECTED).status == STATUS_REJECTED
    assert claimed_slots(booking_db) == []

    with pytest.raises(ValueError):
        update_booking_status(booking_db, booking_id, STATUS_CONFIRMED)
    assert update_booking_status(booking_db, 999, STATUS_CONFIRMED) is None


def test_rejected_booking_frees_its_time(booking_db, business_settings, open_monday) -> None:
    booking_id = reserve(booking_db, business_settings, open_monday.id).booking_id
    update_booking_status(booking_db, booking_id, STATUS_REJECTED)

    assert reserve(booking_db, business_settings, open_monday.id).success
