from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from booking_backend.models.booking import STATUS_CONFIRMED, STATUS_REJECTED
from booking_backend.routes.dependencies import (
    database_unavailable,
    ensure_database_ready,
    get_db,
    get_message_sender,
    get_otp_verifier,
)
from booking_backend.scheduling.booking_index import active_bookings
from booking_backend.scheduling.otp import MessageSender, OtpVerifier, issue_code
from booking_backend.scheduling.reports import booking_waste_report
from booking_backend.scheduling.reservations import (
    ReservationResult,
    cancel_booking,
    create_confirmed_booking,
    create_reservation,
    reschedule_booking,
    update_booking_status,
)
from booking_backend.scheduling.results import RejectionReason
from booking_backend.scheduling.settings import load_business_settings

router = APIRouter(tags=['bookings'])

_REJECTION_STATUS = {
    RejectionReason.OTP_REQUIRED: status.HTTP_400_BAD_REQUEST,
    RejectionReason.INVALID_FIELDS: status.HTTP_400_BAD_REQUEST,
    RejectionReason.OTP_NOT_FOUND: status.HTTP_403_FORBIDDEN,
    RejectionReason.OTP_EXPIRED: status.HTTP_403_FORBIDDEN,
    RejectionReason.OTP_TOO_MANY_ATTEMPTS: status.HTTP_403_FORBIDDEN,
    RejectionReason.OTP_INVALID_CODE: status.HTTP_403_FORBIDDEN,
    RejectionReason.SERVICE_NOT_FOUND: status.HTTP_404_NOT_FOUND,
}


class OtpRequest(BaseModel):
    phone: str

    @field_validator('phone')
    @classmethod
    def validate_phone(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Phone number is required.')
        return normalized


class OtpResponse(BaseModel):
    phone: str
    expires_at: datetime


class ReservationRequest(BaseModel):
    code: str | None = None
    client_name: str = ''
    phone: str = ''
    date: str = ''
    time: str = ''
    service_id: int | None = None


class AdminBookingRequest(BaseModel):
    client_name: str
    phone: str
    date: str
    time: str
    service_id: int


class RescheduleRequest(BaseModel):
    date: str
    time: str


class StatusUpdateRequest(BaseModel):
    status: str

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in {STATUS_CONFIRMED, STATUS_REJECTED}:
            raise ValueError('Status must be confirmed or rejected.')
        return normalized


class ReservationResponse(BaseModel):
    success: bool
    stage: str
    booking_id: int | None = None
    code: str | None = None
    message: str = ''
    attempts_left: int | None = None


class BookingResponse(BaseModel):
    id: int
    client_name: str
    phone: str
    date: date
    start_time: str
    end_time: str
    duration_minutes: int
    service_id: int | None = None
    service_name: str | None = None
    status: str

    class Config:
        from_attributes = True


class BookingWasteResponse(BaseModel):
    booking_id: int
    date: date
    start_time: str
    service_name: str
    status: str
    service_duration: int
    booked_duration: int
    slots_needed: int
    waste: int


class WasteReportResponse(BaseModel):
    slot_duration: int
    total_bookings: int
    total_service_duration: int
    total_booked_duration: int
    total_waste: int
    waste_percentage: float
    average_waste_per_booking: float
    bookings: list[BookingWasteResponse]


def to_reservation_response(result: ReservationResult, response: Response) -> ReservationResponse:
    if result.success:
        response.status_code = status.HTTP_201_CREATED
    else:
        response.status_code = _REJECTION_STATUS.get(result.reason, status.HTTP_409_CONFLICT)

    return ReservationResponse(
        success=result.success,
        stage=result.stage.value,
        booking_id=result.booking_id,
        code=result.reason.value if result.reason else None,
        message=result.message,
        attempts_left=result.attempts_left,
    )


@router.post('/otp', response_model=OtpResponse, status_code=status.HTTP_202_ACCEPTED)
def request_otp(
    data: OtpRequest,
    db: Session = Depends(get_db),
    sender: MessageSender = Depends(get_message_sender),
):
    ensure_database_ready()

    phone = data.phone
    try:
        expires_at = issue_code(db, phone, sender)
        return OtpResponse(phone=phone, expires_at=expires_at)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/reservations', response_model=ReservationResponse)
def submit_reservation(
    data: ReservationRequest,
    response: Response,
    db: Session = Depends(get_db),
    verifier: OtpVerifier = Depends(get_otp_verifier),
):
    ensure_database_ready()

    try:
        result = create_reservation(
            db,
            verifier,
            otp_code=data.code,
            client_name=data.client_name,
            phone=data.phone,
            day=data.date,
            start=data.time,
            service_id=data.service_id,
        )
        return to_reservation_response(result, response)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('', response_model=ReservationResponse)
def create_booking(data: AdminBookingRequest, response: Response, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        result = create_confirmed_booking(
            db,
            client_name=data.client_name,
            phone=data.phone,
            day=data.date,
            start=data.time,
            service_id=data.service_id,
        )
        return to_reservation_response(result, response)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('', response_model=list[BookingResponse])
def list_bookings(day: date = Query(..., alias='date'), db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return active_bookings(db, day)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/waste', response_model=WasteReportResponse)
def get_booking_waste(day: date | None = Query(default=None, alias='date'), db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        report = booking_waste_report(db, load_business_settings(db).slot_duration, day)
        return WasteReportResponse(
            slot_duration=report.slot_duration,
            total_bookings=len(report.bookings),
            total_service_duration=report.total_service_duration,
            total_booked_duration=report.total_booked_duration,
            total_waste=report.total_waste,
            waste_percentage=report.waste_percentage,
            average_waste_per_booking=report.average_waste,
            bookings=[
                BookingWasteResponse(
                    booking_id=item.booking_id,
                    date=item.date,
                    start_time=item.start_time,
                    service_name=item.service_name,
                    status=item.status,
                    service_duration=item.service_duration,
                    booked_duration=item.booked_duration,
                    slots_needed=item.slots_needed,
                    waste=item.waste,
                )
                for item in report.bookings
            ],
        )
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.patch('/{booking_id}', response_model=ReservationResponse)
def move_booking(
    booking_id: int,
    data: RescheduleRequest,
    response: Response,
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        result = reschedule_booking(db, booking_id, data.date, data.time)
        if result is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Booking not found.',
            )

        reservation_response = to_reservation_response(result, response)
        if result.success:
            response.status_code = status.HTTP_200_OK
        return reservation_response
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.patch('/{booking_id}/status', response_model=BookingResponse)
def change_booking_status(booking_id: int, data: StatusUpdateRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        try:
            booking = update_booking_status(db, booking_id, data.status)
        except ValueError as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=str(exc),
            ) from exc

        if booking is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Booking not found.',
            )
        return booking
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.delete('/{booking_id}', status_code=status.HTTP_204_NO_CONTENT)
def remove_booking(booking_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        if not cancel_booking(db, booking_id):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Booking not found.',
            )
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
