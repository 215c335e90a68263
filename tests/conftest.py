import os
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from mediqueue.database import Base  # noqa: E402
from mediqueue.ledger.notifications import QueueEventBroker  # noqa: E402
from mediqueue.ledger.queue_ledger import QueueLedger  # noqa: E402
from mediqueue.models.booking import QueueBooking  # noqa: E402
from mediqueue.models.doctor import Doctor  # noqa: E402
from mediqueue.models.medical_record import MedicalRecord  # noqa: E402
from mediqueue.models.profile import ROLE_DOCTOR, ROLE_PATIENT, Profile  # noqa: E402

QUEUE_TABLES = [Profile.__table__, Doctor.__table__, QueueBooking.__table__, MedicalRecord.__table__]


class TickingClock:
    """Returns a strictly increasing time, one minute per call."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.current += timedelta(minutes=1)
        return self.current


@pytest.fixture
def queue_db():
    engine = create_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine, tables=QUEUE_TABLES)

    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine, tables=list(reversed(QUEUE_TABLES)))


@pytest.fixture
def broker():
    return QueueEventBroker()


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def ledger(queue_db, broker, clock):
    return QueueLedger(queue_db, events=broker, booking_scope='doctor', max_attempts=3, clock=clock)


@pytest.fixture
def add_patient(queue_db):
    def _add_patient(email: str, full_name: str = 'Test Patient') -> Profile:
        patient = Profile(email=email, full_name=full_name, role=ROLE_PATIENT)
        queue_db.add(patient)
        queue_db.commit()
        queue_db.refresh(patient)
        return patient

    return _add_patient


@pytest.fixture
def add_doctor(queue_db):
    def _add_doctor(
        email: str,
        full_name: str = 'Dr. Test',
        average_consultation_minutes: int = 15,
        is_available: bool = True,
        specialization: str = 'General Practice',
    ) -> Doctor:
        profile = Profile(email=email, full_name=full_name, role=ROLE_DOCTOR)
        queue_db.add(profile)
        queue_db.flush()
        doctor = Doctor(
            profile_id=profile.id,
            specialization=specialization,
            average_consultation_minutes=average_consultation_minutes,
            is_available=is_available,
            queue_revision=0,
        )
        queue_db.add(doctor)
        queue_db.commit()
        queue_db.refresh(doctor)
        return doctor

    return _add_doctor
