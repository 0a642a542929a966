"""Reservation workflow and booking lifecycle.

A client reservation walks ``START -> OTP_VERIFIED -> FIELDS_VALID ->
TIME_VALID -> SERVICE_VALID -> SLOT_VALID -> CREATED``; the first failing
stage ends it with a ``RejectionReason``. Nothing is written before the final
stage, and the final stage writes the booking together with one claim row per
occupied slot, so two requests racing for the same slot cannot both commit.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from booking_backend.core import config
from booking_backend.core.timegrid import booking_range, expand_range, format_end, is_valid_time, to_minutes
from booking_backend.models.booking import (
    ACTIVE_STATUSES,
    STATUS_CONFIRMED,
    STATUS_PENDING,
    STATUS_REJECTED,
    Booking,
    BookingSlotClaim,
)
from booking_backend.models.service import Service
from booking_backend.scheduling.allocator import past_cutoff, validate_start_for
from booking_backend.scheduling.otp import OtpStatus, OtpVerifier
from booking_backend.scheduling.results import RejectionReason, SlotValidation
from booking_backend.scheduling.settings import BusinessSettings, load_business_settings

logger = logging.getLogger(__name__)

_DATE_PATTERN = re.compile(r'^[0-9]{4}-[0-9]{2}-[0-9]{2}$')

_OTP_REJECTIONS = {
    OtpStatus.NOT_FOUND: (
        RejectionReason.OTP_NOT_FOUND,
        'No verification code found. Please request a new code.',
    ),
    OtpStatus.EXPIRED: (RejectionReason.OTP_EXPIRED, 'Code expired. Please request a new one.'),
    OtpStatus.TOO_MANY_ATTEMPTS: (
        RejectionReason.OTP_TOO_MANY_ATTEMPTS,
        'Too many failed attempts. Please request a new code.',
    ),
    OtpStatus.WRONG_CODE: (RejectionReason.OTP_INVALID_CODE, 'Invalid code. Please try again.'),
}


class ReservationStage(str, Enum):
    START = 'start'
    OTP_VERIFIED = 'otp_verified'
    FIELDS_VALID = 'fields_valid'
    TIME_VALID = 'time_valid'
    SERVICE_VALID = 'service_valid'
    SLOT_VALID = 'slot_valid'
    CREATED = 'created'


@dataclass(frozen=True)
class ReservationResult:
    success: bool
    stage: ReservationStage
    booking_id: Optional[int] = None
    reason: Optional[RejectionReason] = None
    message: str = ''
    attempts_left: Optional[int] = None

    @classmethod
    def created(cls, booking: Booking) -> 'ReservationResult':
        return cls(
            success=True,
            stage=ReservationStage.CREATED,
            booking_id=booking.id,
            message='Booking request submitted successfully.',
        )

    @classmethod
    def rejected(
        cls,
        stage: ReservationStage,
        reason: RejectionReason,
        message: str,
        attempts_left: Optional[int] = None,
    ) -> 'ReservationResult':
        logger.warning('Reservation rejected after %s: %s (%s)', stage.value, reason.value, message)
        return cls(success=False, stage=stage, reason=reason, message=message, attempts_left=attempts_left)


def _is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _parse_date(value: str) -> Optional[date]:
    if not isinstance(value, str) or not _DATE_PATTERN.match(value.strip()):
        return None
    try:
        return date.fromisoformat(value.strip())
    except ValueError:
        return None


def _parse_service_id(value) -> Optional[int]:
    try:
        service_id = int(value)
    except (TypeError, ValueError):
        return None
    return service_id if service_id > 0 else None


def validate_booking_fields(client_name, phone, day, start, service_id) -> Optional[str]:
    """Return the first syntactic problem with the booking fields, or None."""
    missing = [
        name
        for name, value in [
            ('client_name', client_name),
            ('phone', phone),
            ('date', day),
            ('time', start),
            ('service_id', service_id),
        ]
        if _is_blank(value)
    ]
    if missing:
        return f"Missing required fields: {', '.join(missing)}."

    if not re.match(config.PHONE_PATTERN, str(phone).strip()):
        return 'Invalid phone number format.'

    if _parse_date(day) is None:
        return 'Invalid date format. Use YYYY-MM-DD.'

    if not is_valid_time(start):
        return 'Invalid time format. Use HH:MM.'

    if _parse_service_id(service_id) is None:
        return 'Invalid service id.'

    name_length = len(str(client_name).strip())
    if name_length < config.CLIENT_NAME_MIN_LENGTH:
        return f'Client name must be at least {config.CLIENT_NAME_MIN_LENGTH} characters.'
    if name_length > config.CLIENT_NAME_MAX_LENGTH:
        return f'Client name is too long (max {config.CLIENT_NAME_MAX_LENGTH} characters).'

    return None


def check_booking_window(day: date, start: str, settings: BusinessSettings, now: datetime) -> SlotValidation:
    """Past, advance-horizon and minimum-notice rules for a client request."""
    start_minutes = to_minutes(start)
    today = now.date()

    if start_minutes <= past_cutoff(day, now):
        return SlotValidation.reject(RejectionReason.PAST, 'Cannot create bookings in the past.')

    if day > today + timedelta(days=settings.max_advance_days):
        return SlotValidation.reject(
            RejectionReason.BEYOND_HORIZON,
            f'Bookings can only be made up to {settings.max_advance_days} days in advance.',
        )

    if day == today and start_minutes < now.hour * 60 + now.minute + settings.min_notice_minutes:
        return SlotValidation.reject(
            RejectionReason.INSIDE_MIN_NOTICE,
            f'Same-day bookings need at least {settings.min_notice_minutes} minutes notice.',
        )

    return SlotValidation.ok()


def _build_claims(day: date, start_minutes: int, duration_minutes: int, slot_duration: int) -> tuple[str, list]:
    occupied = booking_range(start_minutes, duration_minutes, slot_duration)
    claims = [
        BookingSlotClaim(date=day, slot_start_minutes=slot)
        for slot in expand_range(occupied, slot_duration)
    ]
    return format_end(occupied.end), claims


def persist_booking(
    db: Session,
    client_name: str,
    phone: str,
    day: date,
    start: str,
    service: Service,
    status: str,
    settings: BusinessSettings,
) -> Optional[Booking]:
    """Insert a booking and claim its slots atomically; None when a slot was already claimed."""
    end_time, claims = _build_claims(day, to_minutes(start), service.duration_minutes, settings.slot_duration)
    booking = Booking(
        client_name=client_name.strip(),
        phone=phone.strip(),
        date=day,
        start_time=start,
        end_time=end_time,
        duration_minutes=service.duration_minutes,
        service_id=service.id,
        service_name=service.name,
        status=status,
        claims=claims,
    )
    db.add(booking)

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.warning('Slot claim conflict for %s %s', day, start)
        return None

    db.refresh(booking)
    logger.info('Booking %s created (%s) for %s %s-%s', booking.id, status, day, start, end_time)
    return booking


def _business_now(settings: BusinessSettings, now: Optional[datetime]) -> datetime:
    return settings.localize(now) if now is not None else settings.now()


def create_reservation(
    db: Session,
    verifier: OtpVerifier,
    otp_code: Optional[str],
    client_name: str,
    phone: str,
    day: str,
    start: str,
    service_id,
    now: Optional[datetime] = None,
    settings: Optional[BusinessSettings] = None,
) -> ReservationResult:
    stage = ReservationStage.START

    if _is_blank(otp_code):
        return ReservationResult.rejected(stage, RejectionReason.OTP_REQUIRED, 'Verification code is required.')

    verification = verifier.verify(str(phone or '').strip(), otp_code.strip())
    if not verification.verified:
        reason, message = _OTP_REJECTIONS[verification.status]
        return ReservationResult.rejected(stage, reason, message, attempts_left=verification.attempts_left)
    stage = ReservationStage.OTP_VERIFIED

    field_error = validate_booking_fields(client_name, phone, day, start, service_id)
    if field_error:
        return ReservationResult.rejected(stage, RejectionReason.INVALID_FIELDS, field_error)
    stage = ReservationStage.FIELDS_VALID

    booking_date = _parse_date(day)
    start = start.strip()
    settings = settings or load_business_settings(db)
    business_now = _business_now(settings, now)

    window_check = check_booking_window(booking_date, start, settings, business_now)
    if not window_check.valid:
        return ReservationResult.rejected(stage, window_check.reason, window_check.message)
    stage = ReservationStage.TIME_VALID

    service = db.get(Service, _parse_service_id(service_id))
    if service is None:
        return ReservationResult.rejected(stage, RejectionReason.SERVICE_NOT_FOUND, 'Service not found.')
    if not service.active:
        return ReservationResult.rejected(stage, RejectionReason.SERVICE_INACTIVE, 'Service is not available.')
    stage = ReservationStage.SERVICE_VALID

    slot_check = validate_start_for(
        db,
        booking_date,
        start,
        service.duration_minutes,
        now=business_now,
        settings=settings,
    )
    if not slot_check.valid:
        return ReservationResult.rejected(stage, slot_check.reason, slot_check.message)
    stage = ReservationStage.SLOT_VALID

    booking = persist_booking(db, client_name, phone, booking_date, start, service, STATUS_PENDING, settings)
    if booking is None:
        return ReservationResult.rejected(
            stage,
            RejectionReason.OVERLAPS_BOOKING,
            'This time slot was just booked. Please select another time.',
        )

    return ReservationResult.created(booking)


def create_confirmed_booking(
    db: Session,
    client_name: str,
    phone: str,
    day: str,
    start: str,
    service_id,
    now: Optional[datetime] = None,
    settings: Optional[BusinessSettings] = None,
) -> ReservationResult:
    """Administrator booking: no code, no horizon or notice rules, same slot rules and claims."""
    stage = ReservationStage.OTP_VERIFIED

    field_error = validate_booking_fields(client_name, phone, day, start, service_id)
    if field_error:
        return ReservationResult.rejected(stage, RejectionReason.INVALID_FIELDS, field_error)
    stage = ReservationStage.FIELDS_VALID

    booking_date = _parse_date(day)
    start = start.strip()
    settings = settings or load_business_settings(db)
    business_now = _business_now(settings, now)
    stage = ReservationStage.TIME_VALID

    service = db.get(Service, _parse_service_id(service_id))
    if service is None:
        return ReservationResult.rejected(stage, RejectionReason.SERVICE_NOT_FOUND, 'Service not found.')
    stage = ReservationStage.SERVICE_VALID

    slot_check = validate_start_for(
        db,
        booking_date,
        start,
        service.duration_minutes,
        now=business_now,
        settings=settings,
    )
    if not slot_check.valid:
        return ReservationResult.rejected(stage, slot_check.reason, slot_check.message)
    stage = ReservationStage.SLOT_VALID

    booking = persist_booking(db, client_name, phone, booking_date, start, service, STATUS_CONFIRMED, settings)
    if booking is None:
        return ReservationResult.rejected(
            stage,
            RejectionReason.OVERLAPS_BOOKING,
            'This time slot was just booked. Please select another time.',
        )

    return ReservationResult(
        success=True,
        stage=ReservationStage.CREATED,
        booking_id=booking.id,
        message='Booking created successfully.',
    )


def reschedule_booking(
    db: Session,
    booking_id: int,
    day: str,
    start: str,
    now: Optional[datetime] = None,
    settings: Optional[BusinessSettings] = None,
) -> Optional[ReservationResult]:
    """Move an active booking; its own slots do not block the new time. None when not found."""
    booking = db.get(Booking, booking_id)
    if booking is None or booking.status not in ACTIVE_STATUSES:
        return None

    stage = ReservationStage.FIELDS_VALID
    booking_date = _parse_date(day)
    if booking_date is None or not is_valid_time(start):
        return ReservationResult.rejected(
            stage,
            RejectionReason.INVALID_FIELDS,
            'Use YYYY-MM-DD for the date and HH:MM for the time.',
        )
    start = start.strip()

    settings = settings or load_business_settings(db)
    slot_check = validate_start_for(
        db,
        booking_date,
        start,
        booking.duration_minutes,
        now=_business_now(settings, now),
        settings=settings,
        exclude_booking_id=booking.id,
    )
    if not slot_check.valid:
        return ReservationResult.rejected(stage, slot_check.reason, slot_check.message)

    end_time, claims = _build_claims(
        booking_date,
        to_minutes(start),
        booking.duration_minutes,
        settings.slot_duration,
    )

    try:
        booking.claims.clear()
        db.flush()
        booking.date = booking_date
        booking.start_time = start
        booking.end_time = end_time
        booking.claims.extend(claims)
        db.commit()
    except IntegrityError:
        db.rollback()
        return ReservationResult.rejected(
            ReservationStage.SLOT_VALID,
            RejectionReason.OVERLAPS_BOOKING,
            'This time slot was just booked. Please select another time.',
        )

    logger.info('Booking %s moved to %s %s-%s', booking.id, booking_date, start, end_time)
    return ReservationResult(
        success=True,
        stage=ReservationStage.CREATED,
        booking_id=booking.id,
        message='Booking rescheduled successfully.',
    )


def cancel_booking(db: Session, booking_id: int) -> bool:
    booking = db.get(Booking, booking_id)
    if booking is None:
        return False

    db.delete(booking)
    db.commit()
    logger.info('Booking %s cancelled', booking_id)
    return True


_ALLOWED_TRANSITIONS = {
    STATUS_PENDING: {STATUS_CONFIRMED, STATUS_REJECTED},
    STATUS_CONFIRMED: {STATUS_REJECTED},
}


def update_booking_status(db: Session, booking_id: int, status: str) -> Optional[Booking]:
    """Confirm or reject a booking; rejected bookings give their slots back."""
    booking = db.get(Booking, booking_id)
    if booking is None:
        return None

    if status not in _ALLOWED_TRANSITIONS.get(booking.status, set()):
        raise ValueError(f'Cannot change booking status from {booking.status} to {status}.')

    booking.status = status
    if status == STATUS_REJECTED:
        booking.claims.clear()
    db.commit()
    db.refresh(booking)
    logger.info('Booking %s is now %s', booking_id, status)
    return booking
