"""Create a profile if needed and print a bearer token for it.

Usage:
    python -m mediqueue.issue_token --email doctor@clinic.test --role doctor --name "Dr. Ada Lee"
"""
import argparse
import sys

from sqlalchemy.orm import Session

from mediqueue.auth.jwt_handler import create_access_token
from mediqueue.database import Base, SessionLocal, engine
from mediqueue.models.profile import ROLES, Profile


def ensure_profile(db: Session, email: str, role: str, full_name: str) -> Profile:
    normalized_email = email.strip().lower()
    profile = db.query(Profile).filter(Profile.email == normalized_email).first()
    if profile is None:
        profile = Profile(email=normalized_email, role=role, full_name=full_name)
        db.add(profile)
    elif profile.role != role:
        raise ValueError(f'{normalized_email} is already registered as a {profile.role}.')
    elif full_name and profile.full_name != full_name:
        profile.full_name = full_name
    db.commit()
    db.refresh(profile)
    return profile


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument('--email', required=True)
    parser.add_argument('--role', choices=ROLES, default=ROLES[0])
    parser.add_argument('--name', default='')
    parser.add_argument('--expires-minutes', type=int, default=None)
    args = parser.parse_args(argv)

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        profile = ensure_profile(db, args.email, args.role, args.name)
    except ValueError as exc:
        db.rollback()
        print(exc, file=sys.stderr)
        return 1
    finally:
        db.close()

    print(create_access_token(subject=profile.email, role=profile.role, expires_minutes=args.expires_minutes))
    return 0


if __name__ == '__main__':
    sys.exit(main())
