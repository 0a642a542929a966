from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from booking_backend.models.service import Service
from booking_backend.routes.dependencies import database_unavailable, ensure_database_ready, get_db

router = APIRouter(tags=['services'])


class ServiceResponse(BaseModel):
    id: int
    name: str
    duration_minutes: int

    class Config:
        from_attributes = True


@router.get('', response_model=list[ServiceResponse])
def list_services(db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return (
            db.query(Service)
            .filter(Service.active.is_(True))
            .order_by(Service.name.asc())
            .all()
        )
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc
