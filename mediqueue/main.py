import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from mediqueue.core import config
from mediqueue.database import (
    Base,
    engine,
    ensure_booking_schema,
    ensure_doctor_schema,
    ensure_medical_record_schema,
)
from mediqueue.ledger.notifications import log_queue_event, queue_events
from mediqueue.models import booking, doctor, medical_record, profile  # noqa: F401
from mediqueue.routes import auth_routes, doctor_routes, queue_routes

logging.basicConfig(level=config.LOG_LEVEL)

app = FastAPI(title='MediQueue API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)


@app.on_event('startup')
def initialize_database() -> None:
    config.validate_runtime_config()
    try:
        Base.metadata.create_all(bind=engine)
        ensure_doctor_schema()
        ensure_booking_schema()
        ensure_medical_record_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.on_event('startup')
def subscribe_queue_logger() -> None:
    app.state.queue_log_subscription = queue_events.subscribe(log_queue_event)


@app.on_event('shutdown')
def unsubscribe_queue_logger() -> None:
    subscription = getattr(app.state, 'queue_log_subscription', None)
    if subscription is not None:
        subscription.close()


@app.get('/')
def root():
    return {'status': 'MediQueue API Running'}


app.include_router(auth_routes.router, prefix='/auth')
app.include_router(queue_routes.router, prefix='/queue')
app.include_router(doctor_routes.router, prefix='/doctor')
