from datetime import datetime

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError

from mediqueue.auth.dependencies import require_patient
from mediqueue.ledger import directory
from mediqueue.ledger.errors import QueueLedgerError
from mediqueue.ledger.queue_ledger import QueueLedger
from mediqueue.models.booking import BOOKING_STATUS_CALLED
from mediqueue.models.doctor import Doctor
from mediqueue.models.profile import Profile
from mediqueue.routes.common import database_http_error, ensure_database_ready, get_ledger, ledger_http_error

router = APIRouter(tags=['queue'])


class CreateBookingRequest(BaseModel):
    doctor_id: int

    @field_validator('doctor_id')
    @classmethod
    def validate_doctor_id(cls, value: int) -> int:
        if value < 1:
            raise ValueError('Choose a doctor to book with.')
        return value


class DoctorResponse(BaseModel):
    id: int
    full_name: str
    specialization: str
    average_consultation_minutes: int
    is_available: bool


class BookingResponse(BaseModel):
    id: int
    doctor_id: int
    queue_number: int
    status: str
    booked_at: datetime
    called_at: datetime | None = None
    completed_at: datetime | None = None

    class Config:
        from_attributes = True


class QueuePositionResponse(BaseModel):
    booking: BookingResponse
    doctor_full_name: str
    doctor_specialization: str
    patients_ahead: int
    estimated_wait_minutes: int
    is_your_turn: bool


class BookingHistoryResponse(BookingResponse):
    doctor_full_name: str
    doctor_specialization: str


class MedicalRecordResponse(BaseModel):
    id: int
    booking_id: int
    queue_number: int
    booked_at: datetime
    doctor_full_name: str
    doctor_specialization: str
    diagnosis: str | None = None
    prescription: str | None = None
    notes: str | None = None
    created_at: datetime


def build_doctor_response(doctor: Doctor, full_name: str) -> DoctorResponse:
    return DoctorResponse(
        id=doctor.id,
        full_name=full_name,
        specialization=doctor.specialization,
        average_consultation_minutes=doctor.average_consultation_minutes,
        is_available=doctor.is_available,
    )


@router.get('/doctors', response_model=list[DoctorResponse])
def list_doctors(
    current_user: Profile = Depends(require_patient),
    ledger: QueueLedger = Depends(get_ledger),
):
    del current_user
    ensure_database_ready()

    try:
        return [
            build_doctor_response(doctor, full_name)
            for doctor, full_name in directory.list_available_doctors(ledger.db)
        ]
    except SQLAlchemyError as exc:
        raise database_http_error() from exc


@router.post('/bookings', response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def book_queue(
    data: CreateBookingRequest,
    current_user: Profile = Depends(require_patient),
    ledger: QueueLedger = Depends(get_ledger),
):
    ensure_database_ready()

    try:
        booking = ledger.create_booking(data.doctor_id, current_user.id)
    except QueueLedgerError as exc:
        raise ledger_http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_http_error() from exc

    return BookingResponse.model_validate(booking)


@router.get('/me', response_model=list[QueuePositionResponse])
def get_my_queue(
    current_user: Profile = Depends(require_patient),
    ledger: QueueLedger = Depends(get_ledger),
):
    ensure_database_ready()

    try:
        positions = ledger.patient_positions(current_user.id)
        doctors = {
            doctor.id: (doctor, full_name)
            for doctor, full_name in directory.doctors_by_id(
                ledger.db, {position.booking.doctor_id for position in positions},
            )
        }
    except QueueLedgerError as exc:
        raise ledger_http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_http_error() from exc

    responses = []
    for position in positions:
        doctor, full_name = doctors[position.booking.doctor_id]
        responses.append(
            QueuePositionResponse(
                booking=BookingResponse.model_validate(position.booking),
                doctor_full_name=full_name,
                doctor_specialization=doctor.specialization,
                patients_ahead=position.patients_ahead,
                estimated_wait_minutes=position.estimated_wait_minutes,
                is_your_turn=position.booking.status == BOOKING_STATUS_CALLED,
            )
        )
    return responses


@router.get('/history', response_model=list[BookingHistoryResponse])
def list_booking_history(
    current_user: Profile = Depends(require_patient),
    ledger: QueueLedger = Depends(get_ledger),
):
    ensure_database_ready()

    try:
        history = ledger.booking_history(current_user.id)
    except SQLAlchemyError as exc:
        raise database_http_error() from exc

    return [
        BookingHistoryResponse(
            id=booking.id,
            doctor_id=booking.doctor_id,
            queue_number=booking.queue_number,
            status=booking.status,
            booked_at=booking.booked_at,
            called_at=booking.called_at,
            completed_at=booking.completed_at,
            doctor_full_name=full_name,
            doctor_specialization=doctor.specialization,
        )
        for booking, doctor, full_name in history
    ]


@router.get('/records', response_model=list[MedicalRecordResponse])
def list_medical_records(
    current_user: Profile = Depends(require_patient),
    ledger: QueueLedger = Depends(get_ledger),
):
    ensure_database_ready()

    try:
        records = ledger.medical_records(current_user.id)
    except SQLAlchemyError as exc:
        raise database_http_error() from exc

    return [
        MedicalRecordResponse(
            id=record.id,
            booking_id=record.booking_id,
            queue_number=booking.queue_number,
            booked_at=booking.booked_at,
            doctor_full_name=full_name,
            doctor_specialization=doctor.specialization,
            diagnosis=record.diagnosis,
            prescription=record.prescription,
            notes=record.notes,
            created_at=record.created_at,
        )
        for record, booking, doctor, full_name in records
    ]
