from fastapi import Depends, HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from mediqueue.database import (
    ensure_booking_schema,
    ensure_doctor_schema,
    ensure_medical_record_schema,
    get_db,
)
from mediqueue.ledger.errors import (
    AlreadyCalledError,
    ConcurrencyConflictError,
    DoctorUnavailableError,
    DuplicateBookingError,
    InvalidStateTransitionError,
    NoWaitingPatientsError,
    NotFoundError,
    QueueLedgerError,
)
from mediqueue.ledger.queue_ledger import QueueLedger

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and database credentials.'

LEDGER_ERROR_STATUS_CODES = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    DoctorUnavailableError: status.HTTP_409_CONFLICT,
    DuplicateBookingError: status.HTTP_409_CONFLICT,
    NoWaitingPatientsError: status.HTTP_409_CONFLICT,
    AlreadyCalledError: status.HTTP_409_CONFLICT,
    InvalidStateTransitionError: status.HTTP_409_CONFLICT,
    ConcurrencyConflictError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def ensure_database_ready() -> None:
    try:
        ensure_doctor_schema()
        ensure_booking_schema()
        ensure_medical_record_schema()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


def get_ledger(db: Session = Depends(get_db)) -> QueueLedger:
    return QueueLedger(db)


def ledger_http_error(exc: QueueLedgerError) -> HTTPException:
    status_code = LEDGER_ERROR_STATUS_CODES.get(type(exc), status.HTTP_400_BAD_REQUEST)
    return HTTPException(status_code=status_code, detail=exc.message)


def database_http_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=DATABASE_UNAVAILABLE_DETAIL,
    )
