"""Service model definitions."""

from sqlalchemy import Boolean, Column, Integer, String
from booking_backend.database import Base


class Service(Base):
    """A bookable service and its nominal duration."""
    __tablename__ = "services"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    active = Column(Boolean, default=True, nullable=False)
