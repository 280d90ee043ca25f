"""
Patient service for professional-managed patient records.

Covers direct patient creation by a professional (without an invitation),
patient listing, diary notes and the patient counters shown on a
professional's dashboard. Counters are computed from the patients table on
every read.
"""

import logging
import re
import secrets
import unicodedata
from datetime import date as date_type
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from auth.dependencies import UserContext
from core.constants import ROLE_PATIENT
from models import DiaryNote, Patient, User
from services.jwt_service import jwt_service
from utils.datetime_utils import parse_date_string, utc_now
from utils.phone_validator import last_digits

logger = logging.getLogger(__name__)

SYNTHETIC_EMAIL_DOMAIN = "temp.gestionterapeutica.com"


def synthesize_email(first_name: str, last_name: str, phone: Optional[str] = None) -> str:
    """
    Build a placeholder email for a patient created without one.

    Uses the last four phone digits when a phone is known, a timestamp
    otherwise, e.g. "ana.lopez.4567@temp.gestionterapeutica.com".
    """
    def slug(value: str) -> str:
        ascii_value = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
        return re.sub(r"[^a-z0-9]+", "", ascii_value.strip().lower())

    suffix = last_digits(phone) or str(int(utc_now().timestamp() * 1000))
    return f"{slug(first_name)}.{slug(last_name)}.{suffix}@{SYNTHETIC_EMAIL_DOMAIN}"


class PatientService:
    """
    Service class for patient operations.

    Patients created here are not registered users yet: they hold a random
    password until they redeem an invitation with the same email.
    """

    @staticmethod
    def create_patient_for_professional(
        db: Session,
        professional_id: int,
        first_name: Optional[str],
        last_name: Optional[str],
        email: Optional[str] = None,
        password: Optional[str] = None,
        phone: Optional[str] = None,
        date_of_birth: Optional[str] = None,
        gender: Optional[str] = None,
        address: Optional[Dict[str, Any]] = None,
        emergency_contact: Optional[Dict[str, Any]] = None,
        medical_history: Optional[Dict[str, List[str]]] = None,
        psychological_history: Optional[Dict[str, Any]] = None,
        insurance: Optional[Dict[str, Any]] = None,
    ) -> Patient:
        """
        Create a patient user and profile in one transaction.

        Raises:
            HTTPException: 400 on missing names or bad birth date, 409 on
                duplicate email
        """
        first_name = (first_name or "").strip()
        last_name = (last_name or "").strip()
        if not first_name or not last_name:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Nombre y apellido son requeridos"
            )

        birth_date: Optional[date_type] = None
        if date_of_birth:
            try:
                birth_date = parse_date_string(date_of_birth)
            except ValueError:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Fecha de nacimiento inválida (use YYYY-MM-DD)"
                )

        patient_email = (email or "").strip().lower() or synthesize_email(first_name, last_name, phone)
        if db.query(User.id).filter(User.email == patient_email).first():
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="El correo electrónico ya está registrado"
            )

        try:
            user = User(
                email=patient_email,
                password_hash=jwt_service.hash_password(password or secrets.token_urlsafe(12)),
                first_name=first_name,
                last_name=last_name,
                role=ROLE_PATIENT,
                is_registered=False,
                is_active=True,
            )
            db.add(user)
            db.flush()

            patient = Patient(
                user_id=user.id,
                assigned_professional_id=professional_id,
                created_by_professional_id=professional_id,
                source="professional",
                phone=phone,
                date_of_birth=birth_date,
                gender=gender,
                address=address or {},
                emergency_contact=emergency_contact or {},
                medical_history=medical_history or {
                    "allergies": [], "current_medications": [],
                    "medical_conditions": [], "previous_surgeries": [],
                },
                psychological_history=psychological_history or {},
                insurance=insurance or {},
                consents={},
                is_active=True,
            )
            db.add(patient)
            db.commit()
        except IntegrityError:
            db.rollback()
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="El correo electrónico ya está registrado"
            )
        except Exception as e:
            db.rollback()
            logger.exception(f"Failed to create patient: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Error al crear el paciente"
            )

        db.refresh(patient)
        logger.info(f"Created patient {patient.id} for professional {professional_id}")
        return patient

    @staticmethod
    def list_patients(db: Session, user: UserContext) -> List[Patient]:
        """Admins see every patient; professionals those assigned to or created by them."""
        query = db.query(Patient).options(joinedload(Patient.user))
        if not user.is_admin():
            query = query.filter(or_(
                Patient.assigned_professional_id == user.professional_id,
                Patient.created_by_professional_id == user.professional_id,
            ))
        return query.order_by(Patient.created_at.desc(), Patient.id.desc()).all()

    @staticmethod
    def get_patient_for_user(db: Session, patient_id: int, user: UserContext) -> Patient:
        """
        Get a patient visible to the caller.

        Raises:
            HTTPException: 404 if the patient does not exist or belongs to
                another professional
        """
        patient = db.query(Patient).filter(Patient.id == patient_id).first()
        if patient and not user.is_admin() and user.professional_id not in (
            patient.assigned_professional_id, patient.created_by_professional_id
        ):
            patient = None
        if not patient:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Paciente no encontrado"
            )
        return patient

    @staticmethod
    def add_diary_note(
        db: Session,
        patient_id: int,
        user: UserContext,
        text: Optional[str],
        author: Optional[str] = None,
    ) -> DiaryNote:
        if not text or not text.strip():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="El texto de la nota es requerido"
            )
        patient = PatientService.get_patient_for_user(db, patient_id, user)

        note = DiaryNote(
            patient_id=patient.id,
            created_by_professional_id=user.professional_id,
            author=author or user.full_name,
            text=text.strip(),
        )
        db.add(note)
        db.commit()
        db.refresh(note)
        logger.info(f"Added diary note {note.id} to patient {patient.id}")
        return note

    @staticmethod
    def list_diary_notes(db: Session, patient_id: int, user: UserContext) -> List[DiaryNote]:
        patient = PatientService.get_patient_for_user(db, patient_id, user)
        return db.query(DiaryNote).filter(
            DiaryNote.patient_id == patient.id
        ).order_by(DiaryNote.created_at.asc(), DiaryNote.id.asc()).all()

    @staticmethod
    def get_professional_statistics(db: Session, professional_id: int) -> Dict[str, int]:
        """Patient counters derived from the patients table."""
        base = db.query(Patient).filter(Patient.assigned_professional_id == professional_id)
        total = base.count()
        active = base.filter(Patient.is_active.is_(True)).count()
        return {
            "totalPatients": total,
            "activePatients": active,
            "inactivePatients": total - active,
        }
