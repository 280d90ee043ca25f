"""Application constants and configuration values."""

from core.config import FRONTEND_URL

# Database connection settings
DB_POOL_RECYCLE_SECONDS = 300  # 5 minutes

# CORS origins for development and production
_CORS_ORIGINS_RAW = [
    "http://localhost:5173",      # React dev server (Vite)
    "https://gestionterapeutica.netlify.app",
    FRONTEND_URL,
]

# Filter out None values and empty strings to avoid CORS errors
CORS_ORIGINS = list(dict.fromkeys(origin for origin in _CORS_ORIGINS_RAW if origin and origin.strip()))

# User roles
ROLE_PATIENT = "patient"
ROLE_PROFESSIONAL = "professional"
ROLE_ADMIN = "admin"

# Weekly schedule
# Day keys follow the 0=Sunday..6=Saturday convention used by the frontend.
DEFAULT_DAY_SLOTS = [
    "09:00", "09:30", "10:00", "10:30", "11:00",
    "11:30", "14:00", "14:30", "15:00", "15:30",
]
DEFAULT_WEEKLY_SCHEDULE = {str(day): list(DEFAULT_DAY_SLOTS) for day in range(1, 6)}
SCHEDULE_DAY_KEYS = tuple(str(day) for day in range(7))

# Appointments
APPOINTMENT_TYPES = ("consultation", "followup", "therapy", "emergency")
APPOINTMENT_STATUSES = ("reserved", "scheduled", "confirmed", "completed", "cancelled")
# Statuses that occupy a slot for availability purposes
ACTIVE_APPOINTMENT_STATUSES = ("reserved", "scheduled", "confirmed")
TERMINAL_APPOINTMENT_STATUSES = ("completed", "cancelled")
PAYMENT_STATUSES = ("pending", "completed", "refunded")

RESERVATION_MODE_ATOMIC = "atomic"
RESERVATION_MODE_LEGACY = "legacy"

# Invitations
INVITATION_CODE_LENGTH = 8
INVITATION_CODE_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
INVITATION_STATUSES = ("pending", "registered", "expired", "cancelled")
INVITATION_CHANNELS = ("SMS", "EMAIL", "WHATSAPP")
PHONE_CHANNELS = ("SMS", "WHATSAPP")
INVITATION_SWEEP_INTERVAL_MINUTES = 60

# Passwords
MIN_PASSWORD_LENGTH = 6
