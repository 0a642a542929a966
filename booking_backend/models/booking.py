"""Booking model definitions."""

from datetime import datetime, timezone

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship
from booking_backend.database import Base

STATUS_PENDING = "pending"
STATUS_CONFIRMED = "confirmed"
STATUS_REJECTED = "rejected"
ACTIVE_STATUSES = (STATUS_PENDING, STATUS_CONFIRMED)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Booking(Base):
    """A pending or confirmed reservation of a service on one date."""
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True)
    client_name = Column(String, nullable=False)
    phone = Column(String, nullable=False)
    date = Column(Date, nullable=False, index=True)
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    service_id = Column(Integer, ForeignKey("services.id"))
    service_name = Column(String)
    status = Column(String, nullable=False, default=STATUS_PENDING)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    claims = relationship(
        "BookingSlotClaim",
        back_populates="booking",
        cascade="all, delete-orphan",
    )


class BookingSlotClaim(Base):
    """Exclusive claim of one grid slot; the unique key prevents double-booking."""
    __tablename__ = "booking_slot_claims"
    __table_args__ = (
        UniqueConstraint("date", "slot_start_minutes", name="uq_booking_slot_claims_date_slot"),
    )

    id = Column(Integer, primary_key=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False)
    date = Column(Date, nullable=False)
    slot_start_minutes = Column(Integer, nullable=False)

    booking = relationship("Booking", back_populates="claims")
