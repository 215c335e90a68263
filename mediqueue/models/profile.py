"""Profile model definitions."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String
from mediqueue.database import Base

ROLE_PATIENT = "patient"
ROLE_DOCTOR = "doctor"
ROLES = (ROLE_PATIENT, ROLE_DOCTOR)


class Profile(Base):
    """Represents an authenticated person, either a patient or a doctor."""
    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String, nullable=False, default="")
    role = Column(String, nullable=False, default=ROLE_PATIENT)  # patient/doctor
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
