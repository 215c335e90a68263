"""Errors raised by the queue ledger.

Each error carries a short, non-technical ``message`` that can be shown to the
patient or doctor as-is.
"""


class QueueLedgerError(Exception):
    message = 'The queue could not be updated.'

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class NotFoundError(QueueLedgerError):
    message = 'The requested booking or doctor was not found.'


class DoctorUnavailableError(QueueLedgerError):
    message = 'This doctor is not accepting bookings right now.'


class DuplicateBookingError(QueueLedgerError):
    message = 'You are already in the queue.'


class NoWaitingPatientsError(QueueLedgerError):
    message = 'No patients in the waiting queue.'


class AlreadyCalledError(QueueLedgerError):
    message = 'Complete the current patient before calling the next one.'


class InvalidStateTransitionError(QueueLedgerError):
    message = 'Only a called patient can be marked as completed.'


class ConcurrencyConflictError(QueueLedgerError):
    message = 'The queue is busy. Please try again.'
