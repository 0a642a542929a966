from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from booking_backend.core.timegrid import is_valid_time
from booking_backend.routes.dependencies import (
    database_unavailable,
    ensure_database_ready,
    get_db,
    get_service_or_404,
)
from booking_backend.scheduling.allocator import available_dates_in_range, available_starts_for, validate_start_for
from booking_backend.scheduling.resolver import load_schedule_config, resolve_with_source

router = APIRouter(tags=['availability'])


class TimeWindowResponse(BaseModel):
    start: str
    end: str


class WindowsResponse(BaseModel):
    date: date
    source: str
    windows: list[TimeWindowResponse]


class StartsResponse(BaseModel):
    date: date
    source: str
    service_id: int | None = None
    starts: list[str]


class SlotValidationResponse(BaseModel):
    date: date
    time: str
    service_id: int
    valid: bool
    reason: str | None = None
    message: str = ''


class AvailableDatesResponse(BaseModel):
    start_date: date
    end_date: date
    service_id: int
    service_duration: int
    available_dates: list[date]
    total_available: int


@router.get('/windows', response_model=WindowsResponse)
def get_open_windows(
    day: date = Query(..., alias='date'),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        source, windows = resolve_with_source(day, load_schedule_config(db, day, day))
        return WindowsResponse(
            date=day,
            source=source,
            windows=[TimeWindowResponse(**window.to_dict()) for window in windows],
        )
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/starts', response_model=StartsResponse)
def list_available_starts(
    day: date = Query(..., alias='date'),
    service_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        service = get_service_or_404(db, service_id) if service_id is not None else None
        listing = available_starts_for(db, day, service=service)

        return StartsResponse(
            date=listing.date,
            source=listing.source,
            service_id=service_id,
            starts=listing.starts,
        )
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/validate', response_model=SlotValidationResponse)
def validate_start(
    day: date = Query(..., alias='date'),
    time: str = Query(...),
    service_id: int = Query(...),
    db: Session = Depends(get_db),
):
    if not is_valid_time(time):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Invalid time format. Use HH:MM.',
        )

    ensure_database_ready()

    try:
        service = get_service_or_404(db, service_id)
        result = validate_start_for(db, day, time.strip(), service.duration_minutes)

        return SlotValidationResponse(
            date=day,
            time=time.strip(),
            service_id=service_id,
            valid=result.valid,
            reason=result.reason.value if result.reason else None,
            message=result.message,
        )
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/dates', response_model=AvailableDatesResponse)
def list_available_dates(
    start_date: date = Query(...),
    end_date: date = Query(...),
    service_id: int = Query(...),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        service = get_service_or_404(db, service_id)
        try:
            available = available_dates_in_range(db, start_date, end_date, service)
        except ValueError as exc:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=str(exc),
            ) from exc

        return AvailableDatesResponse(
            start_date=start_date,
            end_date=end_date,
            service_id=service.id,
            service_duration=service.duration_minutes,
            available_dates=available,
            total_available=len(available),
        )
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc
