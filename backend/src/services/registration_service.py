"""
Registration service: account creation, login and invitation redemption.

Redeeming an invitation creates (or completes) the user identity, creates
the patient profile and marks the invitation as registered in a single
database transaction. Any failure rolls back all three. The welcome email
is sent after the commit and its failure never affects the registration.
"""

import logging
from dataclasses import dataclass
from datetime import date as date_type
from typing import Any, Dict, List, Optional, Tuple

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from core.constants import MIN_PASSWORD_LENGTH, ROLE_PATIENT, ROLE_PROFESSIONAL
from models import Invitation, Patient, Professional, User
from services.delivery_gateway import DeliveryGateway
from services.invitation_service import InvitationService
from services.jwt_service import jwt_service, TokenPayload
from services.message_templates import welcome_email
from utils.datetime_utils import parse_date_string, utc_now

logger = logging.getLogger(__name__)


@dataclass
class RegistrationResult:
    """Identity, optional profile and access token produced by a registration."""
    user: User
    token: str
    patient: Optional[Patient] = None
    professional: Optional[Professional] = None


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def _as_list(value: Any) -> List[str]:
    """Accept a list or a comma-separated string and return a clean list."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if str(item).strip()]
    return [item.strip() for item in str(value).split(",") if item.strip()]


def _first_present(*values: Optional[str]) -> str:
    for value in values:
        if value and str(value).strip():
            return str(value).strip()
    return ""


class RegistrationService:
    """Service class for account creation and authentication."""

    @staticmethod
    def validate_password(password: Optional[str]) -> str:
        if not password:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="La contraseña es requerida"
            )
        if len(password) < MIN_PASSWORD_LENGTH:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"La contraseña debe tener al menos {MIN_PASSWORD_LENGTH} caracteres"
            )
        return password

    @staticmethod
    def build_token_for_user(user: User, professional_id: Optional[int] = None) -> str:
        """Mint an access token carrying the user's identity claims."""
        payload = TokenPayload(
            sub=str(user.id),
            email=user.email,
            role=user.role,
            professional_id=professional_id,
            first_name=user.first_name,
            last_name=user.last_name,
        )
        return jwt_service.create_access_token(payload)

    # ===== Invitation redemption =====

    @staticmethod
    def _parse_birth_date(value: Any) -> Optional[date_type]:
        if not value:
            return None
        if isinstance(value, date_type):
            return value
        try:
            return parse_date_string(str(value))
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Fecha de nacimiento inválida en la invitación"
            )

    @staticmethod
    def build_profile_fields(invitation: Invitation) -> Dict[str, Any]:
        """Map the invitation snapshot onto patient profile columns."""
        snapshot = invitation.patient_data or {}

        address = snapshot.get("address")
        if isinstance(address, str):
            address = {"street": address}

        emergency = snapshot.get("emergency_contact")
        if isinstance(emergency, dict):
            emergency_contact = dict(emergency)
        elif emergency:
            emergency_contact = {"name": str(emergency)}
        else:
            emergency_contact = {}
        if snapshot.get("emergency_phone"):
            emergency_contact.setdefault("phone", snapshot["emergency_phone"])

        return {
            "phone": _first_present(snapshot.get("phone"), invitation.patient_phone) or None,
            "date_of_birth": RegistrationService._parse_birth_date(snapshot.get("date_of_birth")),
            "gender": snapshot.get("gender") or None,
            "address": address or {},
            "emergency_contact": emergency_contact,
            "medical_history": {
                "allergies": _as_list(snapshot.get("allergies")),
                "current_medications": _as_list(snapshot.get("current_medications")),
                "medical_conditions": _as_list(snapshot.get("medical_history")),
                "previous_surgeries": [],
            },
        }

    @staticmethod
    def _upsert_patient_profile(
        db: Session,
        user: User,
        invitation: Invitation,
        profile_fields: Dict[str, Any],
        consents: Optional[Dict[str, Any]],
    ) -> Patient:
        """Create the patient profile, or refresh an existing one from the snapshot."""
        patient = db.query(Patient).filter(Patient.user_id == user.id).first()
        if patient is None:
            patient = Patient(
                user_id=user.id,
                assigned_professional_id=invitation.professional_id,
                created_by_professional_id=invitation.professional_id,
                source="invitation",
            )
            db.add(patient)
        else:
            patient.assigned_professional_id = invitation.professional_id

        for field_name, value in profile_fields.items():
            setattr(patient, field_name, value)
        patient.consents = dict(consents or {})
        patient.is_active = True
        db.flush()
        return patient

    @staticmethod
    async def register_patient_with_invitation(
        db: Session,
        code: Optional[str],
        password: Optional[str],
        gateway: DeliveryGateway,
        consents: Optional[Dict[str, Any]] = None,
    ) -> RegistrationResult:
        """
        Redeem an invitation code into a patient account.

        Raises:
            HTTPException: 400 on missing code/password, invalid/expired/used
                code or incomplete snapshot; 409 if the email already belongs
                to a registered user; 500 if materialization fails
        """
        if not code or not code.strip():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="El código de invitación es requerido"
            )
        RegistrationService.validate_password(password)
        assert password is not None

        invitation = InvitationService.find_valid_by_code(db, code)
        if not invitation:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Código de invitación inválido o expirado"
            )

        snapshot = invitation.patient_data or {}
        first_name, fallback_last = (invitation.patient_name or "").strip().partition(" ")[::2]
        first_name = _first_present(snapshot.get("first_name"), first_name)
        last_name = _first_present(snapshot.get("last_name"), fallback_last)
        email = normalize_email(_first_present(snapshot.get("invitation_email"), invitation.patient_email))

        if not email or not first_name or not last_name:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="La invitación no contiene nombre, apellido y email del paciente"
            )

        profile_fields = RegistrationService.build_profile_fields(invitation)

        existing = db.query(User).filter(User.email == email).first()
        if existing and existing.is_registered:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Ya existe un usuario registrado con este email"
            )

        try:
            # Claim the code first: a concurrent redemption blocks here and then
            # finds it no longer pending.
            if not InvitationService.claim_for_registration(db, invitation, utc_now()):
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Código de invitación inválido o expirado"
                )

            if existing:
                user = existing
                user.first_name = first_name
                user.last_name = last_name
                user.role = ROLE_PATIENT
            else:
                user = User(email=email, first_name=first_name, last_name=last_name, role=ROLE_PATIENT)
                db.add(user)

            user.password_hash = jwt_service.hash_password(password)
            user.is_registered = True
            user.is_active = True
            db.flush()

            patient = RegistrationService._upsert_patient_profile(db, user, invitation, profile_fields, consents)

            db.commit()
        except HTTPException:
            db.rollback()
            raise
        except IntegrityError as e:
            db.rollback()
            logger.warning(f"Registration conflict for invitation {invitation.id}: {e}")
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Ya existe un usuario registrado con este email"
            )
        except Exception as e:
            db.rollback()
            logger.exception(f"Failed to register patient from invitation {invitation.id}: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Error al registrar el paciente"
            )

        db.refresh(user)
        db.refresh(patient)
        logger.info(f"Patient user {user.id} registered from invitation {invitation.id}")

        welcome = await gateway.send("EMAIL", user.email, welcome_email(user.full_name))
        if not welcome.success:
            logger.warning(f"Welcome email for user {user.id} not delivered: {welcome.error}")

        return RegistrationResult(
            user=user,
            patient=patient,
            token=RegistrationService.build_token_for_user(user),
        )

    # ===== Professional accounts and login =====

    @staticmethod
    def register_professional(
        db: Session,
        email: Optional[str],
        password: Optional[str],
        first_name: Optional[str],
        last_name: Optional[str],
        phone: Optional[str] = None,
        specialty: Optional[str] = None,
        license_number: Optional[str] = None,
    ) -> RegistrationResult:
        """
        Create a professional account with its profile.

        Raises:
            HTTPException: 400 on missing fields, 409 on duplicate email
        """
        email = normalize_email(email)
        first_name = (first_name or "").strip()
        last_name = (last_name or "").strip()
        if not email or not first_name or not last_name:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Email, nombre y apellido son requeridos"
            )
        RegistrationService.validate_password(password)
        assert password is not None

        if db.query(User.id).filter(User.email == email).first():
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Ya existe un usuario con este email"
            )

        try:
            user = User(
                email=email,
                password_hash=jwt_service.hash_password(password),
                first_name=first_name,
                last_name=last_name,
                role=ROLE_PROFESSIONAL,
                is_registered=True,
                is_active=True,
            )
            db.add(user)
            db.flush()

            professional = Professional(
                user_id=user.id,
                phone=phone,
                specialty=specialty,
                license_number=license_number,
            )
            db.add(professional)
            db.commit()
        except IntegrityError:
            db.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Ya existe un usuario con este email"
            )

        db.refresh(user)
        db.refresh(professional)
        logger.info(f"Registered professional {professional.id} (user {user.id})")
        return RegistrationResult(
            user=user,
            professional=professional,
            token=RegistrationService.build_token_for_user(user, professional.id),
        )

    @staticmethod
    def login(db: Session, email: Optional[str], password: Optional[str]) -> RegistrationResult:
        """
        Authenticate with email and password.

        Raises:
            HTTPException: 401 on bad credentials, 403 if the user is disabled
        """
        user = db.query(User).filter(User.email == normalize_email(email)).first()
        if not user or not jwt_service.verify_password(password or "", user.password_hash):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Credenciales inválidas"
            )
        if not user.is_active:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Usuario desactivado"
            )

        professional = user.professional_profile if user.role == ROLE_PROFESSIONAL else None
        logger.info(f"User {user.id} logged in")
        return RegistrationResult(
            user=user,
            professional=professional,
            patient=user.patient_profile if user.role == ROLE_PATIENT else None,
            token=RegistrationService.build_token_for_user(user, professional.id if professional else None),
        )

    @staticmethod
    def get_profile(db: Session, user_id: int) -> Tuple[User, Optional[Professional], Optional[Patient]]:
        """Load a user with their role profile."""
        user = db.query(User).filter(User.id == user_id).first()
        if not user:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Usuario no encontrado"
            )
        return user, user.professional_profile, user.patient_profile
