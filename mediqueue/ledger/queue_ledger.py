"""Queue ledger: numbering, status transitions and position queries.

Every write transaction starts by bumping the doctor's ``queue_revision`` row.
That update takes the row lock on PostgreSQL and the database write lock on
SQLite, so all mutations of one doctor's queue run one at a time across
processes. The ``(doctor_id, queue_number)`` unique constraint and the partial
unique indexes on ``queue_bookings`` are the backstop if that ever fails.
Under the ``global`` booking scope the patient's profile row is locked as
well, after the doctor row, so one patient cannot book two doctors at once.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from mediqueue.core import config
from mediqueue.ledger.errors import (
    AlreadyCalledError,
    ConcurrencyConflictError,
    DoctorUnavailableError,
    DuplicateBookingError,
    InvalidStateTransitionError,
    NoWaitingPatientsError,
    NotFoundError,
)
from mediqueue.ledger.notifications import (
    EVENT_BOOKING_CALLED,
    EVENT_BOOKING_COMPLETED,
    EVENT_BOOKING_CREATED,
    QueueEvent,
    QueueEventBroker,
    queue_events,
)
from mediqueue.models.booking import (
    ACTIVE_BOOKING_STATUSES,
    BOOKING_STATUS_CALLED,
    BOOKING_STATUS_COMPLETED,
    BOOKING_STATUS_WAITING,
    QueueBooking,
)
from mediqueue.models.doctor import Doctor
from mediqueue.models.medical_record import MedicalRecord
from mediqueue.models.profile import Profile

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class MedicalRecordInput:
    diagnosis: str | None = None
    prescription: str | None = None
    notes: str | None = None


@dataclass
class PatientPosition:
    booking: QueueBooking
    patients_ahead: int
    estimated_wait_minutes: int


class QueueLedger:
    def __init__(
        self,
        db: Session,
        events: QueueEventBroker | None = None,
        booking_scope: str | None = None,
        max_attempts: int | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.db = db
        self.events = events if events is not None else queue_events
        self.booking_scope = booking_scope or config.BOOKING_SCOPE
        self.max_attempts = max_attempts or config.BOOKING_MAX_ATTEMPTS
        self.clock = clock

    # Writes

    def create_booking(self, doctor_id: int, patient_id: int) -> QueueBooking:
        """Append ``patient_id`` to the end of the doctor's queue.

        Lost numbering races are retried up to ``max_attempts`` times before
        ``ConcurrencyConflictError`` reaches the caller.
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                booking, revision = self._insert_booking(doctor_id, patient_id)
                self.db.commit()
            except (ConcurrencyConflictError, IntegrityError):
                self.db.rollback()
                logger.warning(
                    'Queue number conflict for doctor %s (attempt %s of %s).',
                    doctor_id,
                    attempt,
                    self.max_attempts,
                )
                continue
            except Exception:
                self.db.rollback()
                raise

            self.db.refresh(booking)
            logger.info(
                'Booked patient %s into doctor %s queue as #%s.',
                patient_id,
                doctor_id,
                booking.queue_number,
            )
            self._publish(EVENT_BOOKING_CREATED, booking, revision)
            return booking

        raise ConcurrencyConflictError()

    def call_next(self, doctor_id: int) -> QueueBooking:
        try:
            doctor = self._lock_doctor_queue(doctor_id)

            current = self._bookings_for(doctor_id).filter(
                QueueBooking.status == BOOKING_STATUS_CALLED,
            ).first()
            if current is not None:
                raise AlreadyCalledError()

            booking = self._bookings_for(doctor_id).filter(
                QueueBooking.status == BOOKING_STATUS_WAITING,
            ).order_by(QueueBooking.queue_number.asc()).first()
            if booking is None:
                raise NoWaitingPatientsError()

            booking.status = BOOKING_STATUS_CALLED
            booking.called_at = self.clock()
            revision = doctor.queue_revision
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise ConcurrencyConflictError() from exc
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(booking)
        logger.info('Doctor %s called queue #%s.', doctor_id, booking.queue_number)
        self._publish(EVENT_BOOKING_CALLED, booking, revision)
        return booking

    def complete_booking(
        self,
        booking_id: int,
        record: MedicalRecordInput | None = None,
        doctor_id: int | None = None,
    ) -> QueueBooking:
        """Mark a called booking completed, writing ``record`` in the same transaction.

        When ``doctor_id`` is given, bookings from other doctors' queues are
        reported as missing.
        """
        try:
            booking = self.db.get(QueueBooking, booking_id)
            if booking is None or (doctor_id is not None and booking.doctor_id != doctor_id):
                raise NotFoundError('Booking not found.')

            doctor = self._lock_doctor_queue(booking.doctor_id)
            booking = self.db.query(QueueBooking).filter(
                QueueBooking.id == booking_id,
            ).populate_existing().one()

            if booking.status == BOOKING_STATUS_COMPLETED:
                raise InvalidStateTransitionError('This booking has already been completed.')
            if booking.status != BOOKING_STATUS_CALLED:
                raise InvalidStateTransitionError()

            completed_at = self.clock()
            booking.status = BOOKING_STATUS_COMPLETED
            booking.completed_at = completed_at

            if record is not None:
                self.db.add(
                    MedicalRecord(
                        booking_id=booking.id,
                        patient_id=booking.patient_id,
                        doctor_id=booking.doctor_id,
                        diagnosis=record.diagnosis,
                        prescription=record.prescription,
                        notes=record.notes,
                        created_at=completed_at,
                    )
                )

            revision = doctor.queue_revision
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise ConcurrencyConflictError() from exc
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(booking)
        logger.info(
            'Doctor %s completed queue #%s%s.',
            booking.doctor_id,
            booking.queue_number,
            ' with a medical record' if record is not None else '',
        )
        self._publish(EVENT_BOOKING_COMPLETED, booking, revision)
        return booking

    # Reads

    def count_ahead(self, doctor_id: int, queue_number: int, patient_id: int) -> int:
        """Number of active bookings in front of ``queue_number``, not counting the patient's own."""
        count = self.db.query(func.count(QueueBooking.id)).filter(
            QueueBooking.doctor_id == doctor_id,
            QueueBooking.status.in_(ACTIVE_BOOKING_STATUSES),
            QueueBooking.queue_number < queue_number,
            QueueBooking.patient_id != patient_id,
        ).scalar()
        return count or 0

    def estimated_wait(self, doctor_id: int, queue_number: int, patient_id: int) -> int:
        doctor = self.db.get(Doctor, doctor_id)
        if doctor is None:
            raise NotFoundError('Doctor not found.')
        return self.count_ahead(doctor_id, queue_number, patient_id) * doctor.average_consultation_minutes

    def active_bookings(self, patient_id: int) -> list[QueueBooking]:
        """The patient's waiting or called bookings, oldest first."""
        return self.db.query(QueueBooking).filter(
            QueueBooking.patient_id == patient_id,
            QueueBooking.status.in_(ACTIVE_BOOKING_STATUSES),
        ).order_by(QueueBooking.booked_at.asc(), QueueBooking.id.asc()).all()

    def patient_positions(self, patient_id: int) -> list[PatientPosition]:
        """One position per active booking, so a patient in several queues sees all of them."""
        return [
            PatientPosition(
                booking=booking,
                patients_ahead=self.count_ahead(booking.doctor_id, booking.queue_number, patient_id),
                estimated_wait_minutes=self.estimated_wait(booking.doctor_id, booking.queue_number, patient_id),
            )
            for booking in self.active_bookings(patient_id)
        ]

    def doctor_queue(self, doctor_id: int) -> list[tuple[QueueBooking, str]]:
        """Active bookings in call order, with patient names. For the owning doctor only."""
        rows = self.db.query(QueueBooking, Profile.full_name).join(
            Profile, Profile.id == QueueBooking.patient_id,
        ).filter(
            QueueBooking.doctor_id == doctor_id,
            QueueBooking.status.in_(ACTIVE_BOOKING_STATUSES),
        ).order_by(QueueBooking.queue_number.asc()).all()
        return [(booking, full_name or '') for booking, full_name in rows]

    def current_booking(self, doctor_id: int) -> QueueBooking | None:
        return self._bookings_for(doctor_id).filter(
            QueueBooking.status == BOOKING_STATUS_CALLED,
        ).first()

    def waiting_count(self, doctor_id: int) -> int:
        count = self.db.query(func.count(QueueBooking.id)).filter(
            QueueBooking.doctor_id == doctor_id,
            QueueBooking.status == BOOKING_STATUS_WAITING,
        ).scalar()
        return count or 0

    def booking_history(self, patient_id: int) -> list[tuple[QueueBooking, Doctor, str]]:
        rows = self.db.query(QueueBooking, Doctor, Profile.full_name).join(
            Doctor, Doctor.id == QueueBooking.doctor_id,
        ).join(
            Profile, Profile.id == Doctor.profile_id,
        ).filter(
            QueueBooking.patient_id == patient_id,
        ).order_by(QueueBooking.booked_at.desc(), QueueBooking.id.desc()).all()
        return [(booking, doctor, full_name or '') for booking, doctor, full_name in rows]

    def medical_records(self, patient_id: int) -> list[tuple[MedicalRecord, QueueBooking, Doctor, str]]:
        rows = self.db.query(MedicalRecord, QueueBooking, Doctor, Profile.full_name).join(
            QueueBooking, QueueBooking.id == MedicalRecord.booking_id,
        ).join(
            Doctor, Doctor.id == MedicalRecord.doctor_id,
        ).join(
            Profile, Profile.id == Doctor.profile_id,
        ).filter(
            MedicalRecord.patient_id == patient_id,
        ).order_by(MedicalRecord.created_at.desc(), MedicalRecord.id.desc()).all()
        return [(record, booking, doctor, full_name or '') for record, booking, doctor, full_name in rows]

    # Internals

    def _bookings_for(self, doctor_id: int):
        return self.db.query(QueueBooking).filter(QueueBooking.doctor_id == doctor_id)

    def _lock_doctor_queue(self, doctor_id: int) -> Doctor:
        updated = self.db.query(Doctor).filter(Doctor.id == doctor_id).update(
            {Doctor.queue_revision: Doctor.queue_revision + 1},
            synchronize_session=False,
        )
        if not updated:
            raise NotFoundError('Doctor not found.')
        return self.db.query(Doctor).filter(Doctor.id == doctor_id).populate_existing().one()

    def _insert_booking(self, doctor_id: int, patient_id: int) -> tuple[QueueBooking, int]:
        doctor = self._lock_doctor_queue(doctor_id)
        if not doctor.is_available:
            raise DoctorUnavailableError()

        patient_query = self.db.query(Profile).filter(Profile.id == patient_id)
        if self.booking_scope == config.BOOKING_SCOPE_GLOBAL:
            # Bookings with different doctors hold different doctor locks, so lock the patient too.
            patient_query = patient_query.with_for_update()
        if patient_query.first() is None:
            raise NotFoundError('Patient not found.')

        active = self.db.query(QueueBooking.id).filter(
            QueueBooking.patient_id == patient_id,
            QueueBooking.status.in_(ACTIVE_BOOKING_STATUSES),
        )
        if self.booking_scope == config.BOOKING_SCOPE_GLOBAL:
            if active.first() is not None:
                raise DuplicateBookingError('You already have an active booking.')
        elif active.filter(QueueBooking.doctor_id == doctor_id).first() is not None:
            raise DuplicateBookingError("You are already in this doctor's queue.")

        last_number = self.db.query(func.max(QueueBooking.queue_number)).filter(
            QueueBooking.doctor_id == doctor_id,
        ).scalar()

        booking = QueueBooking(
            doctor_id=doctor_id,
            patient_id=patient_id,
            queue_number=(last_number or 0) + 1,
            status=BOOKING_STATUS_WAITING,
            booked_at=self.clock(),
        )
        self.db.add(booking)
        try:
            self.db.flush()
        except IntegrityError as exc:
            raise ConcurrencyConflictError() from exc
        return booking, doctor.queue_revision

    def _publish(self, event_type: str, booking: QueueBooking, revision: int) -> None:
        self.events.publish(
            QueueEvent(
                event_type=event_type,
                doctor_id=booking.doctor_id,
                booking_id=booking.id,
                queue_number=booking.queue_number,
                status=booking.status,
                revision=revision,
                occurred_at=self.clock(),
            )
        )
