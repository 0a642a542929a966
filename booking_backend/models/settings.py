"""Business settings model definitions."""

from sqlalchemy import Column, Integer, String
from booking_backend.database import Base


class BusinessSetting(Base):
    """Single-row store for business configuration; NULL columns fall back to the environment."""
    __tablename__ = "business_settings"

    id = Column(Integer, primary_key=True)
    slot_duration_minutes = Column(Integer)
    timezone = Column(String)
    max_advance_days = Column(Integer)
    min_notice_minutes = Column(Integer)
    working_hours_start = Column(String(5))
    working_hours_end = Column(String(5))
