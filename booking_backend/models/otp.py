"""One-time code model definitions."""

from sqlalchemy import Column, DateTime, Integer, String
from booking_backend.database import Base


class OtpCode(Base):
    """The single outstanding verification code for a phone number."""
    __tablename__ = "otp_codes"

    phone = Column(String, primary_key=True)
    code = Column(String, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    attempts = Column(Integer, default=0, nullable=False)
