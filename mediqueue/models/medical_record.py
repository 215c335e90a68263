"""Medical record model definitions."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Text
from mediqueue.database import Base


class MedicalRecord(Base):
    """Represents the notes a doctor attaches when completing a booking."""
    __tablename__ = "medical_records"

    id = Column(Integer, primary_key=True)
    booking_id = Column(Integer, ForeignKey("queue_bookings.id"), unique=True, nullable=False)
    patient_id = Column(Integer, ForeignKey("profiles.id"), nullable=False)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False)
    diagnosis = Column(Text)
    prescription = Column(Text)
    notes = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False)
