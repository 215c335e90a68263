import os
from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from mediqueue.core import config


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./mediqueue.db")


def build_engine(url: str) -> Engine:
    connect_args = {}
    if url.startswith("sqlite"):
        # Request threads share the pool; writers wait on the database lock instead of failing.
        connect_args = {"check_same_thread": False, "timeout": 30}
    return create_engine(url, echo=config.SQL_ECHO, connect_args=connect_args)


engine = build_engine(DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_checked_tables: set[str] = set()

# Columns added to the models after their tables were first created.
DOCTOR_MIGRATION_STEPS = [
    ('is_available', 'ALTER TABLE doctors ADD COLUMN is_available BOOLEAN DEFAULT TRUE'),
    ('queue_revision', 'ALTER TABLE doctors ADD COLUMN queue_revision INTEGER NOT NULL DEFAULT 0'),
]
DOCTOR_INDEXES = [
    'CREATE INDEX IF NOT EXISTS idx_doctors_available ON doctors(is_available)',
]

BOOKING_MIGRATION_STEPS = [
    ('called_at', 'ALTER TABLE queue_bookings ADD COLUMN called_at TIMESTAMP'),
    ('completed_at', 'ALTER TABLE queue_bookings ADD COLUMN completed_at TIMESTAMP'),
]
BOOKING_INDEXES = [
    'CREATE INDEX IF NOT EXISTS idx_queue_bookings_doctor_status ON queue_bookings(doctor_id, status, queue_number)',
    'CREATE INDEX IF NOT EXISTS idx_queue_bookings_patient_booked ON queue_bookings(patient_id, booked_at)',
    "CREATE UNIQUE INDEX IF NOT EXISTS uq_queue_bookings_one_called ON queue_bookings(doctor_id) "
    "WHERE status = 'called'",
    "CREATE UNIQUE INDEX IF NOT EXISTS uq_queue_bookings_active_patient ON queue_bookings(doctor_id, patient_id) "
    "WHERE status IN ('waiting', 'called')",
]

MEDICAL_RECORD_INDEXES = [
    'CREATE INDEX IF NOT EXISTS idx_medical_records_patient_created ON medical_records(patient_id, created_at)',
]


def _ensure_schema(
    bind: Engine,
    table_name: str,
    migration_steps: list[tuple[str, str]],
    index_statements: list[str],
) -> None:
    """Bring an existing table up to the current model.

    ``create_all`` never alters a table that already exists, so a database
    created before a column was added to the model only gains it here.
    """
    cache_key = f'{bind.url}:{table_name}'
    if cache_key in _checked_tables:
        return

    with _schema_lock:
        if cache_key in _checked_tables:
            return

        inspector = inspect(bind)

        if table_name not in inspector.get_table_names():
            _checked_tables.add(cache_key)
            return

        existing_columns = {column['name'] for column in inspector.get_columns(table_name)}

        with bind.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            for statement in index_statements:
                connection.execute(text(statement))

        _checked_tables.add(cache_key)


def ensure_doctor_schema(bind: Engine | None = None) -> None:
    _ensure_schema(bind or engine, 'doctors', DOCTOR_MIGRATION_STEPS, DOCTOR_INDEXES)


def ensure_booking_schema(bind: Engine | None = None) -> None:
    _ensure_schema(bind or engine, 'queue_bookings', BOOKING_MIGRATION_STEPS, BOOKING_INDEXES)


def ensure_medical_record_schema(bind: Engine | None = None) -> None:
    _ensure_schema(bind or engine, 'medical_records', [], MEDICAL_RECORD_INDEXES)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
