"""Schedule configuration model definitions."""

from sqlalchemy import JSON, Boolean, Column, Date, Integer, String
from booking_backend.database import Base


class WeeklyTemplateWindow(Base):
    """One open window of the recurring weekly schedule (weekday 0 is Monday)."""
    __tablename__ = "weekly_template_windows"

    id = Column(Integer, primary_key=True)
    weekday = Column(Integer, nullable=False, index=True)
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)


class DateOverride(Base):
    """Replaces the weekly template windows for a single date."""
    __tablename__ = "date_overrides"

    id = Column(Integer, primary_key=True)
    date = Column(Date, unique=True, nullable=False, index=True)
    windows = Column(JSON, nullable=False, default=list)


class Closure(Base):
    """Fully closes the listed dates (and their yearly recurrences when recurring)."""
    __tablename__ = "closures"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    dates = Column(JSON, nullable=False, default=list)
    recurring = Column(Boolean, default=False, nullable=False)
    recurrence_pattern = Column(String)
