"""Doctor directory: who can be booked and how long a consultation takes."""

import logging

from sqlalchemy.orm import Session

from mediqueue.core import config
from mediqueue.ledger.errors import NotFoundError
from mediqueue.models.doctor import Doctor
from mediqueue.models.profile import ROLE_DOCTOR, Profile

logger = logging.getLogger(__name__)


def list_available_doctors(db: Session) -> list[tuple[Doctor, str]]:
    rows = db.query(Doctor, Profile.full_name).join(
        Profile, Profile.id == Doctor.profile_id,
    ).filter(
        Doctor.is_available.is_(True),
    ).order_by(Profile.full_name.asc(), Doctor.id.asc()).all()
    return [(doctor, full_name or '') for doctor, full_name in rows]


def doctors_by_id(db: Session, doctor_ids: set[int]) -> list[tuple[Doctor, str]]:
    if not doctor_ids:
        return []
    rows = db.query(Doctor, Profile.full_name).join(
        Profile, Profile.id == Doctor.profile_id,
    ).filter(
        Doctor.id.in_(doctor_ids),
    ).all()
    return [(doctor, full_name or '') for doctor, full_name in rows]


def get_doctor_for_profile(db: Session, profile: Profile) -> Doctor | None:
    return db.query(Doctor).filter(Doctor.profile_id == profile.id).first()


def ensure_doctor(db: Session, profile: Profile) -> tuple[Doctor, bool]:
    """Return the doctor entry for ``profile``, creating one with clinic defaults on first use."""
    if profile.role != ROLE_DOCTOR:
        raise ValueError('Only doctor profiles have a doctor entry.')

    doctor = get_doctor_for_profile(db, profile)
    if doctor is not None:
        return doctor, False

    try:
        doctor = Doctor(
            profile_id=profile.id,
            specialization=config.DEFAULT_SPECIALIZATION,
            average_consultation_minutes=config.DEFAULT_CONSULTATION_MINUTES,
            is_available=True,
            queue_revision=0,
        )
        db.add(doctor)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(doctor)
    logger.info('Created doctor entry %s for profile %s.', doctor.id, profile.id)
    return doctor, True


def _require_doctor(db: Session, profile: Profile) -> Doctor:
    doctor = get_doctor_for_profile(db, profile)
    if doctor is None:
        raise NotFoundError('Doctor profile not found.')
    return doctor


def update_consultation_time(db: Session, profile: Profile, minutes: int) -> Doctor:
    if minutes < 1 or minutes > config.MAX_CONSULTATION_MINUTES:
        raise ValueError(f'Consultation time must be between 1 and {config.MAX_CONSULTATION_MINUTES} minutes.')

    doctor = _require_doctor(db, profile)
    try:
        doctor.average_consultation_minutes = minutes
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(doctor)
    return doctor


def set_availability(db: Session, profile: Profile, is_available: bool) -> Doctor:
    doctor = _require_doctor(db, profile)
    try:
        doctor.is_available = is_available
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(doctor)
    return doctor
