"""Queue booking model definitions."""

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, UniqueConstraint, text
from mediqueue.database import Base

BOOKING_STATUS_WAITING = "waiting"
BOOKING_STATUS_CALLED = "called"
BOOKING_STATUS_COMPLETED = "completed"
ACTIVE_BOOKING_STATUSES = (BOOKING_STATUS_WAITING, BOOKING_STATUS_CALLED)

_CALLED_ONLY = text("status = 'called'")
_ACTIVE_ONLY = text("status IN ('waiting', 'called')")


class QueueBooking(Base):
    """Represents one patient's position in a doctor's queue."""
    __tablename__ = "queue_bookings"
    __table_args__ = (
        UniqueConstraint("doctor_id", "queue_number", name="uq_queue_bookings_doctor_number"),
        Index(
            "uq_queue_bookings_one_called",
            "doctor_id",
            unique=True,
            sqlite_where=_CALLED_ONLY,
            postgresql_where=_CALLED_ONLY,
        ),
        Index(
            "uq_queue_bookings_active_patient",
            "doctor_id",
            "patient_id",
            unique=True,
            sqlite_where=_ACTIVE_ONLY,
            postgresql_where=_ACTIVE_ONLY,
        ),
    )

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False)
    patient_id = Column(Integer, ForeignKey("profiles.id"), nullable=False)
    queue_number = Column(Integer, nullable=False)
    status = Column(String, nullable=False, default=BOOKING_STATUS_WAITING)
    booked_at = Column(DateTime(timezone=True), nullable=False)
    called_at = Column(DateTime(timezone=True))
    completed_at = Column(DateTime(timezone=True))
