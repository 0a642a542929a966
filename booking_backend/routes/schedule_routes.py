from datetime import date
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from booking_backend.models.schedule import Closure, DateOverride
from booking_backend.routes.dependencies import database_unavailable, ensure_database_ready, get_db
from booking_backend.scheduling.guard import (
    ClosureChange,
    ClosureDeletion,
    GuardResult,
    OverrideChange,
    TemplateChange,
    guard_config_change,
)
from booking_backend.scheduling.schedule_config import (
    MutationResult,
    ScheduleValidationError,
    delete_closure,
    delete_date_override,
    get_weekly_template,
    list_closures,
    parse_template,
    parse_windows,
    save_closure,
    set_date_override,
    set_weekly_template,
)
from booking_backend.scheduling.settings import load_business_settings

router = APIRouter(tags=['schedule'])


class TimeWindow(BaseModel):
    start: str
    end: str


class OverrideRequest(BaseModel):
    windows: list[TimeWindow]


class OverrideResponse(BaseModel):
    date: date
    windows: list[TimeWindow]

    class Config:
        from_attributes = True


class ClosureRequest(BaseModel):
    name: str
    dates: list[date]
    recurring: bool = False
    recurrence_pattern: str | None = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Name is required.')
        return normalized


class ClosureResponse(BaseModel):
    id: int
    name: str
    dates: list[date]
    recurring: bool
    recurrence_pattern: str | None = None

    class Config:
        from_attributes = True


class ConflictResponse(BaseModel):
    booking_id: int
    date: date
    start_time: str
    end_time: str
    client_name: str
    status: str


class GuardResponse(BaseModel):
    allowed: bool
    message: str
    conflicts: list[ConflictResponse]


class GuardRequest(BaseModel):
    kind: Literal['template', 'override', 'override_delete', 'closure', 'closure_delete']
    template: dict[str, list[TimeWindow]] | None = None
    day: date | None = None
    windows: list[TimeWindow] | None = None
    dates: list[date] | None = None
    recurring: bool = False
    recurrence_pattern: str | None = None
    closure_id: int | None = None


def to_guard_response(guard: GuardResult) -> GuardResponse:
    return GuardResponse(
        allowed=guard.allowed,
        message=guard.message,
        conflicts=[ConflictResponse(**conflict.__dict__) for conflict in guard.conflicts],
    )


def raise_if_blocked(result: MutationResult) -> None:
    if not result.applied:
        guard = to_guard_response(result.guard)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={
                'message': guard.message,
                'conflicts': [conflict.model_dump(mode='json') for conflict in guard.conflicts],
            },
        )


def bad_request(exc: ScheduleValidationError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=str(exc),
    )


def _windows_payload(windows: list[TimeWindow] | None) -> list[dict]:
    return [window.model_dump() for window in windows or []]


@router.get('/template', response_model=dict[str, list[TimeWindow]])
def read_weekly_template(db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return get_weekly_template(db)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.put('/template', response_model=dict[str, list[TimeWindow]])
def replace_weekly_template(payload: dict[str, list[TimeWindow]], db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        try:
            result = set_weekly_template(
                db,
                {name: _windows_payload(windows) for name, windows in payload.items()},
            )
        except ScheduleValidationError as exc:
            raise bad_request(exc) from exc

        raise_if_blocked(result)
        return get_weekly_template(db)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/overrides', response_model=list[OverrideResponse])
def read_date_overrides(db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return db.query(DateOverride).order_by(DateOverride.date.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.put('/overrides/{day}', response_model=OverrideResponse)
def upsert_date_override(day: date, data: OverrideRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        try:
            result = set_date_override(db, day, _windows_payload(data.windows))
        except ScheduleValidationError as exc:
            raise bad_request(exc) from exc

        raise_if_blocked(result)
        return db.query(DateOverride).filter(DateOverride.date == day).first()
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.delete('/overrides/{day}', status_code=status.HTTP_204_NO_CONTENT)
def remove_date_override(day: date, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        result = delete_date_override(db, day)
        if result is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Override not found.',
            )
        raise_if_blocked(result)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/closures', response_model=list[ClosureResponse])
def read_closures(db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return list_closures(db)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


def _save_closure(db: Session, data: ClosureRequest, closure_id: int | None = None):
    try:
        try:
            result = save_closure(
                db,
                name=data.name,
                dates=data.dates,
                recurring=data.recurring,
                recurrence_pattern=data.recurrence_pattern,
                closure_id=closure_id,
            )
        except ScheduleValidationError as exc:
            raise bad_request(exc) from exc

        if result is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Closure not found.',
            )
        raise_if_blocked(result)
        return db.get(Closure, result.closure_id)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/closures', response_model=ClosureResponse, status_code=status.HTTP_201_CREATED)
def create_closure(data: ClosureRequest, db: Session = Depends(get_db)):
    ensure_database_ready()
    return _save_closure(db, data)


@router.put('/closures/{closure_id}', response_model=ClosureResponse)
def update_closure(closure_id: int, data: ClosureRequest, db: Session = Depends(get_db)):
    ensure_database_ready()
    return _save_closure(db, data, closure_id)


@router.delete('/closures/{closure_id}', status_code=status.HTTP_204_NO_CONTENT)
def remove_closure(closure_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        if not delete_closure(db, closure_id):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Closure not found.',
            )
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


def build_change(data: GuardRequest, slot_duration: int):
    if data.kind == 'template':
        payload = {name: _windows_payload(windows) for name, windows in (data.template or {}).items()}
        return TemplateChange(parse_template(payload, slot_duration))

    if data.kind in {'override', 'override_delete'}:
        if data.day is None:
            raise ScheduleValidationError('Date is required.')
        if data.kind == 'override_delete':
            return OverrideChange(data.day, None)
        windows = parse_windows(_windows_payload(data.windows), slot_duration, data.day.isoformat())
        return OverrideChange(data.day, windows)

    if data.kind == 'closure':
        if not data.dates:
            raise ScheduleValidationError('Dates are required.')
        return ClosureChange(
            dates=tuple(sorted(set(data.dates))),
            recurring=data.recurring,
            recurrence_pattern=data.recurrence_pattern if data.recurring else None,
            closure_id=data.closure_id,
        )

    if data.closure_id is None:
        raise ScheduleValidationError('Closure id is required.')
    return ClosureDeletion(data.closure_id)


@router.post('/guard', response_model=GuardResponse)
def check_schedule_change(data: GuardRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        settings = load_business_settings(db)
        try:
            change = build_change(data, settings.slot_duration)
        except ScheduleValidationError as exc:
            raise bad_request(exc) from exc

        return to_guard_response(guard_config_change(db, change, settings=settings))
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc
