"""One-time code verification capability.

The reservation workflow only consumes ``OtpVerifier.verify`` results. The
SQL-backed implementation keeps one outstanding code per phone number with an
expiry and an attempt counter; a code is deleted once it is used, expires or
locks out.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Optional, Protocol

from sqlalchemy.orm import Session

from booking_backend.core import config
from booking_backend.models.otp import OtpCode

logger = logging.getLogger(__name__)


class OtpStatus(str, Enum):
    VERIFIED = 'verified'
    NOT_FOUND = 'not_found'
    EXPIRED = 'expired'
    TOO_MANY_ATTEMPTS = 'too_many_attempts'
    WRONG_CODE = 'wrong_code'


@dataclass(frozen=True)
class OtpVerification:
    status: OtpStatus
    attempts_left: Optional[int] = None

    @property
    def verified(self) -> bool:
        return self.status is OtpStatus.VERIFIED


class OtpVerifier(Protocol):
    def verify(self, phone: str, code: str) -> OtpVerification:
        ...


class MessageSender(Protocol):
    def send(self, phone: str, text: str) -> None:
        ...


class LoggingMessageSender:
    """Stand-in sender for environments without a messaging provider."""

    def send(self, phone: str, text: str) -> None:
        logger.info('Message to %s: %s', phone, text)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(moment: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


class SqlOtpVerifier:
    def __init__(
        self,
        db: Session,
        max_attempts: int = config.OTP_MAX_ATTEMPTS,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.db = db
        self.max_attempts = max_attempts
        self.clock = clock

    def verify(self, phone: str, code: str) -> OtpVerification:
        record = self.db.get(OtpCode, phone)

        if record is None:
            return OtpVerification(OtpStatus.NOT_FOUND)

        if self.clock() > _as_utc(record.expires_at):
            self._discard(record)
            logger.info('OTP expired for %s', phone)
            return OtpVerification(OtpStatus.EXPIRED)

        if record.attempts >= self.max_attempts:
            self._discard(record)
            logger.warning('Too many OTP attempts for %s', phone)
            return OtpVerification(OtpStatus.TOO_MANY_ATTEMPTS)

        if not secrets.compare_digest(record.code.encode(), code.encode()):
            record.attempts += 1
            self.db.commit()
            attempts_left = self.max_attempts - record.attempts
            logger.info('Invalid OTP for %s, %d attempt(s) left', phone, attempts_left)
            return OtpVerification(OtpStatus.WRONG_CODE, attempts_left=attempts_left)

        self._discard(record)
        return OtpVerification(OtpStatus.VERIFIED)

    def _discard(self, record: OtpCode) -> None:
        self.db.delete(record)
        self.db.commit()


def generate_code(length: int = config.OTP_CODE_LENGTH) -> str:
    return ''.join(secrets.choice('0123456789') for _ in range(length))


def issue_code(
    db: Session,
    phone: str,
    sender: MessageSender,
    ttl_minutes: int = config.OTP_TTL_MINUTES,
    clock: Callable[[], datetime] = _utcnow,
) -> datetime:
    """Store a fresh code for ``phone`` (replacing any previous one), send it, and return its expiry."""
    code = generate_code()
    expires_at = clock() + timedelta(minutes=ttl_minutes)

    record = db.get(OtpCode, phone)
    if record is None:
        record = OtpCode(phone=phone, code=code, expires_at=expires_at, attempts=0)
        db.add(record)
    else:
        record.code = code
        record.expires_at = expires_at
        record.attempts = 0
    db.commit()

    sender.send(phone, f'Your verification code is {code}. It expires in {ttl_minutes} minutes.')
    return expires_at
