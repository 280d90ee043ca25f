"""
Application configuration using python-dotenv.

This module loads environment variables from .env file into os.environ
for use throughout the application.
"""

import os
import pathlib
from dotenv import load_dotenv


# Don't load .env file during testing to ensure predictable test behavior
is_testing = os.getenv("PYTEST_VERSION") is not None or any("pytest" in str(frame) for frame in __import__('inspect').stack(0))

if not is_testing:
    # Try multiple possible locations for .env file
    possible_paths = [
        pathlib.Path(__file__).parent.parent.parent / ".env",  # backend/.env (when run from backend/src)
        pathlib.Path(__file__).parent.parent.parent.parent / ".env",  # .env at repository root
        pathlib.Path.cwd() / ".env",
        pathlib.Path.cwd().parent / ".env",
    ]

    for env_path in possible_paths:
        if env_path.exists():
            load_dotenv(env_path)
            break


def _get_bool(name: str, default: bool) -> bool:
    """Read a boolean flag from the environment ("1", "true", "yes", "on")."""
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


# Configuration constants with defaults
# These match the environment variables defined in .env.example
def get_database_url():
    """Get the database URL from environment."""
    return os.getenv(
        "DATABASE_URL",
        "postgresql://localhost/therapy_practice_dev"
    )

DATABASE_URL = get_database_url()
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
APP_URL = os.getenv("APP_URL", "http://localhost:5173")
FRONTEND_URL = os.getenv("FRONTEND_URL", APP_URL)

# Authentication
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-key-change-in-production")
JWT_ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("JWT_ACCESS_TOKEN_EXPIRE_MINUTES", "1440"))

# Communications provider (SMS, WhatsApp, OTP verification)
TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID", "")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN", "")
TWILIO_PHONE_NUMBER = os.getenv("TWILIO_PHONE_NUMBER", "")
TWILIO_WHATSAPP_NUMBER = os.getenv("TWILIO_WHATSAPP_NUMBER", "")
TWILIO_VERIFY_SERVICE_SID = os.getenv("TWILIO_VERIFY_SERVICE_SID", "")
DEFAULT_PHONE_COUNTRY_CODE = os.getenv("DEFAULT_PHONE_COUNTRY_CODE", "52")

# Transactional email provider
SENDGRID_API_KEY = os.getenv("SENDGRID_API_KEY", "")
EMAIL_FROM = os.getenv("EMAIL_FROM", "noreply@gestionterapeutica.com")

DELIVERY_TIMEOUT_SECONDS = float(os.getenv("DELIVERY_TIMEOUT_SECONDS", "10"))

# Invitations
INVITATION_EXPIRATION_DAYS = int(os.getenv("INVITATION_EXPIRATION_DAYS", "7"))
INVITATION_CODE_MAX_ATTEMPTS = int(os.getenv("INVITATION_CODE_MAX_ATTEMPTS", "10"))
INVITATION_SWEEP_ENABLED = _get_bool("INVITATION_SWEEP_ENABLED", True)

# Booking: "atomic" serializes reservations per professional and rejects
# conflicting slots; "legacy" inserts without any check (availability is
# advisory only, two concurrent reservations may both succeed).
RESERVATION_MODE = os.getenv("RESERVATION_MODE", "atomic").strip().lower()


def is_production() -> bool:
    """Check whether the application runs in production mode."""
    return ENVIRONMENT.lower() == "production"
