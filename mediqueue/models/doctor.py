"""Doctor model definitions."""

from sqlalchemy import Boolean, Column, ForeignKey, Integer, String
from mediqueue.core import config
from mediqueue.database import Base


class Doctor(Base):
    """Represents a doctor's directory entry and queue settings."""
    __tablename__ = "doctors"

    id = Column(Integer, primary_key=True)
    profile_id = Column(Integer, ForeignKey("profiles.id"), unique=True, nullable=False)
    specialization = Column(String, nullable=False, default=config.DEFAULT_SPECIALIZATION)
    average_consultation_minutes = Column(Integer, nullable=False, default=config.DEFAULT_CONSULTATION_MINUTES)
    is_available = Column(Boolean, nullable=False, default=True)
    # Bumped by every queue mutation; the update doubles as the per-doctor write lock.
    queue_revision = Column(Integer, nullable=False, default=0)
