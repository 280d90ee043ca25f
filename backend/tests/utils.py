"""
Test utilities for therapy practice tests.
"""

from datetime import date, timedelta
from typing import Dict, List, Optional, Set, Tuple

from sqlalchemy.orm import Session

from models import Patient, Professional, User
from services.jwt_service import jwt_service, TokenPayload
from shared_types.delivery import DeliveryResult, MessageContent

DEFAULT_PASSWORD = "secret123"


class FakeDeliveryGateway:
    """
    In-memory stand-in for DeliveryGateway.

    Channels listed in fail_channels return a failed DeliveryResult with
    fail_error/fail_code; every other send succeeds.
    """

    def __init__(self, fail_channels: Optional[Set[str]] = None):
        self.fail_channels: Set[str] = set(fail_channels or ())
        self.fail_error = "Provider unavailable"
        self.fail_code: Optional[str] = None
        self.sent: List[Tuple[str, Optional[str], MessageContent]] = []
        self.otp_result = DeliveryResult(success=True, provider_status="pending", to="+525512345678")
        self.verify_result = DeliveryResult(success=True, provider_status="approved", to="+525512345678")

    async def send(self, channel: str, destination: Optional[str], content: MessageContent) -> DeliveryResult:
        self.sent.append((channel, destination, content))
        if channel in self.fail_channels:
            return DeliveryResult(success=False, error=self.fail_error, code=self.fail_code)
        return DeliveryResult(
            success=True,
            provider_message_id=f"MSG{len(self.sent)}",
            provider_status="queued",
            to=destination,
        )

    async def send_otp(self, phone: str, channel: str = "sms") -> DeliveryResult:
        return self.otp_result

    async def verify_otp(self, phone: str, code: str) -> DeliveryResult:
        return self.verify_result

    def channels_sent(self) -> List[str]:
        return [channel for channel, _, _ in self.sent]


def create_professional(
    db: Session,
    email: str = "therapist@example.com",
    first_name: str = "Laura",
    last_name: str = "Méndez",
) -> Tuple[User, Professional]:
    """Create a registered professional user with a profile."""
    user = User(
        email=email,
        password_hash=jwt_service.hash_password(DEFAULT_PASSWORD),
        first_name=first_name,
        last_name=last_name,
        role="professional",
        is_registered=True,
        is_active=True,
    )
    db.add(user)
    db.flush()
    professional = Professional(user_id=user.id, specialty="Psicología clínica")
    db.add(professional)
    db.commit()
    return user, professional


def create_patient(
    db: Session,
    professional: Professional,
    email: str = "patient@example.com",
    first_name: str = "Ana",
    last_name: str = "López",
) -> Tuple[User, Patient]:
    """Create a registered patient assigned to the professional."""
    user = User(
        email=email,
        password_hash=jwt_service.hash_password(DEFAULT_PASSWORD),
        first_name=first_name,
        last_name=last_name,
        role="patient",
        is_registered=True,
        is_active=True,
    )
    db.add(user)
    db.flush()
    patient = Patient(
        user_id=user.id,
        assigned_professional_id=professional.id,
        created_by_professional_id=professional.id,
        source="invitation",
    )
    db.add(patient)
    db.commit()
    return user, patient


def create_admin(db: Session, email: str = "admin@example.com") -> User:
    user = User(
        email=email,
        password_hash=jwt_service.hash_password(DEFAULT_PASSWORD),
        first_name="Admin",
        last_name="General",
        role="admin",
        is_registered=True,
        is_active=True,
    )
    db.add(user)
    db.commit()
    return user


def create_jwt_token(user: User, professional_id: Optional[int] = None) -> str:
    """Create an access token for a user."""
    payload = TokenPayload(
        sub=str(user.id),
        email=user.email,
        role=user.role,
        professional_id=professional_id,
        first_name=user.first_name,
        last_name=user.last_name,
    )
    return jwt_service.create_access_token(payload)


def auth_headers(user: User, professional_id: Optional[int] = None) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_jwt_token(user, professional_id)}"}


def next_weekday(weekday: int, start: Optional[date] = None) -> date:
    """Next date strictly after start falling on weekday (Python's 0=Monday)."""
    start = start or date.today()
    days_ahead = (weekday - start.weekday()) % 7 or 7
    return start + timedelta(days=days_ahead)
