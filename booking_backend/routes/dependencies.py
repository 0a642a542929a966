from fastapi import Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from booking_backend.database import SessionLocal, ensure_booking_schema
from booking_backend.models.service import Service
from booking_backend.scheduling.otp import LoggingMessageSender, MessageSender, OtpVerifier, SqlOtpVerifier

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and database credentials.'


def database_unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=DATABASE_UNAVAILABLE_DETAIL,
    )


def ensure_database_ready() -> None:
    try:
        ensure_booking_schema()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_otp_verifier(db: Session = Depends(get_db)) -> OtpVerifier:
    return SqlOtpVerifier(db)


def get_message_sender() -> MessageSender:
    return LoggingMessageSender()


def get_service_or_404(db: Session, service_id: int, require_active: bool = True) -> Service:
    service = db.get(Service, service_id)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Service not found.',
        )
    if require_active and not service.active:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Service is not available.',
        )
    return service
