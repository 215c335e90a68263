import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]

APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
SQL_ECHO = _get_bool(os.getenv("SQL_ECHO"), default=False)

CORS_ALLOWED_ORIGINS = _get_list(os.getenv("CORS_ALLOWED_ORIGINS"), ["http://localhost:5173"])

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

DEFAULT_SPECIALIZATION = os.getenv("DEFAULT_SPECIALIZATION", "General Practice")
DEFAULT_CONSULTATION_MINUTES = int(os.getenv("DEFAULT_CONSULTATION_MINUTES", "15"))
MAX_CONSULTATION_MINUTES = int(os.getenv("MAX_CONSULTATION_MINUTES", "240"))
MAX_RECORD_FIELD_LENGTH = int(os.getenv("MAX_RECORD_FIELD_LENGTH", "2000"))

# "doctor": one active booking per doctor; "global": one active booking overall,
# enforced by also locking the patient row while booking.
BOOKING_SCOPE_DOCTOR = "doctor"
BOOKING_SCOPE_GLOBAL = "global"
BOOKING_SCOPE = os.getenv("BOOKING_SCOPE", BOOKING_SCOPE_DOCTOR).strip().lower()
BOOKING_MAX_ATTEMPTS = int(os.getenv("BOOKING_MAX_ATTEMPTS", "5"))


def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if BOOKING_SCOPE not in {BOOKING_SCOPE_DOCTOR, BOOKING_SCOPE_GLOBAL}:
        raise RuntimeError(f"BOOKING_SCOPE must be '{BOOKING_SCOPE_DOCTOR}' or '{BOOKING_SCOPE_GLOBAL}'.")
    if BOOKING_MAX_ATTEMPTS < 1:
        raise RuntimeError("BOOKING_MAX_ATTEMPTS must be at least 1.")
    if DEFAULT_CONSULTATION_MINUTES < 1 or DEFAULT_CONSULTATION_MINUTES > MAX_CONSULTATION_MINUTES:
        raise RuntimeError("DEFAULT_CONSULTATION_MINUTES must be between 1 and MAX_CONSULTATION_MINUTES.")
