"""Stable rejection codes shared by the slot allocator and the reservation workflow."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class RejectionReason(str, Enum):
    PAST = 'past'
    MISALIGNED = 'misaligned'
    CLOSED = 'closed'
    NO_AVAILABILITY = 'no_availability'
    OUTSIDE_HOURS = 'outside_hours'
    DOES_NOT_FIT = 'does_not_fit'
    OVERLAPS_BOOKING = 'overlaps_booking'

    OTP_REQUIRED = 'otp_required'
    OTP_NOT_FOUND = 'otp_not_found'
    OTP_EXPIRED = 'otp_expired'
    OTP_TOO_MANY_ATTEMPTS = 'otp_too_many_attempts'
    OTP_INVALID_CODE = 'otp_invalid_code'

    INVALID_FIELDS = 'invalid_fields'
    BEYOND_HORIZON = 'beyond_horizon'
    INSIDE_MIN_NOTICE = 'inside_min_notice'
    SERVICE_NOT_FOUND = 'service_not_found'
    SERVICE_INACTIVE = 'service_inactive'


@dataclass(frozen=True)
class SlotValidation:
    valid: bool
    reason: Optional[RejectionReason] = None
    message: str = ''

    @classmethod
    def ok(cls) -> 'SlotValidation':
        return cls(valid=True)

    @classmethod
    def reject(cls, reason: RejectionReason, message: str) -> 'SlotValidation':
        return cls(valid=False, reason=reason, message=message)
