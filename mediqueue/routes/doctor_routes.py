import logging
from datetime import datetime

from fastapi import APIRouter, Body, Depends, HTTPException, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from mediqueue.auth.dependencies import require_doctor
from mediqueue.core import config
from mediqueue.ledger import directory
from mediqueue.ledger.errors import QueueLedgerError
from mediqueue.ledger.queue_ledger import MedicalRecordInput, QueueLedger
from mediqueue.models.booking import BOOKING_STATUS_CALLED, BOOKING_STATUS_WAITING, QueueBooking
from mediqueue.models.doctor import Doctor
from mediqueue.models.profile import Profile
from mediqueue.routes.common import database_http_error, ensure_database_ready, get_ledger, ledger_http_error
from mediqueue.routes.queue_routes import BookingResponse

router = APIRouter(tags=['doctor'])

logger = logging.getLogger(__name__)


class DoctorProfileResponse(BaseModel):
    id: int
    full_name: str
    email: str
    specialization: str
    average_consultation_minutes: int
    is_available: bool
    created: bool = False


class QueueEntryResponse(BaseModel):
    id: int
    queue_number: int
    status: str
    booked_at: datetime
    called_at: datetime | None = None
    patient_full_name: str


class DoctorQueueResponse(BaseModel):
    entries: list[QueueEntryResponse]
    current_patient: QueueEntryResponse | None = None
    waiting_count: int
    average_consultation_minutes: int


class CompleteBookingRequest(BaseModel):
    diagnosis: str | None = None
    prescription: str | None = None
    notes: str | None = None

    @field_validator('diagnosis', 'prescription', 'notes')
    @classmethod
    def validate_record_field(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > config.MAX_RECORD_FIELD_LENGTH:
            raise ValueError(f'Record fields must be {config.MAX_RECORD_FIELD_LENGTH} characters or fewer.')

        return normalized

    def to_record(self) -> MedicalRecordInput | None:
        if self.diagnosis is None and self.prescription is None and self.notes is None:
            return None
        return MedicalRecordInput(diagnosis=self.diagnosis, prescription=self.prescription, notes=self.notes)


class UpdateConsultationTimeRequest(BaseModel):
    average_consultation_minutes: int

    @field_validator('average_consultation_minutes')
    @classmethod
    def validate_minutes(cls, value: int) -> int:
        if value < 1 or value > config.MAX_CONSULTATION_MINUTES:
            raise ValueError(f'Consultation time must be between 1 and {config.MAX_CONSULTATION_MINUTES} minutes.')
        return value


class UpdateAvailabilityRequest(BaseModel):
    is_available: bool


def build_doctor_profile_response(doctor: Doctor, profile: Profile, created: bool = False) -> DoctorProfileResponse:
    return DoctorProfileResponse(
        id=doctor.id,
        full_name=profile.full_name or '',
        email=profile.email,
        specialization=doctor.specialization,
        average_consultation_minutes=doctor.average_consultation_minutes,
        is_available=doctor.is_available,
        created=created,
    )


def build_queue_entry(booking: QueueBooking, patient_full_name: str) -> QueueEntryResponse:
    return QueueEntryResponse(
        id=booking.id,
        queue_number=booking.queue_number,
        status=booking.status,
        booked_at=booking.booked_at,
        called_at=booking.called_at,
        patient_full_name=patient_full_name,
    )


def get_current_doctor(db: Session, profile: Profile) -> tuple[Doctor, bool]:
    try:
        return directory.ensure_doctor(db, profile)
    except SQLAlchemyError as exc:
        logger.exception('Failed to create doctor entry for profile %s.', profile.id)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail='Failed to create doctor profile.',
        ) from exc


@router.get('/me', response_model=DoctorProfileResponse)
def get_my_doctor_profile(
    current_user: Profile = Depends(require_doctor),
    ledger: QueueLedger = Depends(get_ledger),
):
    ensure_database_ready()

    doctor, created = get_current_doctor(ledger.db, current_user)
    return build_doctor_profile_response(doctor, current_user, created)


@router.get('/queue', response_model=DoctorQueueResponse)
def get_doctor_queue(
    current_user: Profile = Depends(require_doctor),
    ledger: QueueLedger = Depends(get_ledger),
):
    ensure_database_ready()

    doctor, _ = get_current_doctor(ledger.db, current_user)
    try:
        entries = [build_queue_entry(booking, full_name) for booking, full_name in ledger.doctor_queue(doctor.id)]
    except SQLAlchemyError as exc:
        raise database_http_error() from exc

    current_patient = next((entry for entry in entries if entry.status == BOOKING_STATUS_CALLED), None)
    return DoctorQueueResponse(
        entries=entries,
        current_patient=current_patient,
        waiting_count=sum(1 for entry in entries if entry.status == BOOKING_STATUS_WAITING),
        average_consultation_minutes=doctor.average_consultation_minutes,
    )


@router.post('/queue/call-next', response_model=QueueEntryResponse)
def call_next_patient(
    current_user: Profile = Depends(require_doctor),
    ledger: QueueLedger = Depends(get_ledger),
):
    ensure_database_ready()

    doctor, _ = get_current_doctor(ledger.db, current_user)
    try:
        booking = ledger.call_next(doctor.id)
        patient = ledger.db.get(Profile, booking.patient_id)
    except QueueLedgerError as exc:
        raise ledger_http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_http_error() from exc

    return build_queue_entry(booking, patient.full_name if patient else '')


@router.post('/queue/bookings/{booking_id}/complete', response_model=BookingResponse)
def complete_patient(
    booking_id: int,
    data: CompleteBookingRequest | None = Body(default=None),
    current_user: Profile = Depends(require_doctor),
    ledger: QueueLedger = Depends(get_ledger),
):
    ensure_database_ready()

    doctor, _ = get_current_doctor(ledger.db, current_user)
    record = data.to_record() if data is not None else None
    try:
        booking = ledger.complete_booking(booking_id, record=record, doctor_id=doctor.id)
    except QueueLedgerError as exc:
        raise ledger_http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_http_error() from exc

    return BookingResponse.model_validate(booking)


@router.put('/consultation-time', response_model=DoctorProfileResponse)
def update_consultation_time(
    data: UpdateConsultationTimeRequest,
    current_user: Profile = Depends(require_doctor),
    ledger: QueueLedger = Depends(get_ledger),
):
    ensure_database_ready()

    get_current_doctor(ledger.db, current_user)
    try:
        doctor = directory.update_consultation_time(ledger.db, current_user, data.average_consultation_minutes)
    except QueueLedgerError as exc:
        raise ledger_http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_http_error() from exc

    return build_doctor_profile_response(doctor, current_user)


@router.put('/availability', response_model=DoctorProfileResponse)
def update_availability(
    data: UpdateAvailabilityRequest,
    current_user: Profile = Depends(require_doctor),
    ledger: QueueLedger = Depends(get_ledger),
):
    ensure_database_ready()

    get_current_doctor(ledger.db, current_user)
    try:
        doctor = directory.set_availability(ledger.db, current_user, data.is_available)
    except QueueLedgerError as exc:
        raise ledger_http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_http_error() from exc

    return build_doctor_profile_response(doctor, current_user)
