# pyright: reportMissingTypeStubs=false
"""
Patient management API endpoints for professionals.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy.orm import Session

from api.responses import envelope, PatientResponse, DiaryNoteResponse
from auth.dependencies import require_professional, require_professional_or_admin, UserContext
from core.database import get_db
from services.patient_service import PatientService

logger = logging.getLogger(__name__)

router = APIRouter()


class CreatePatientRequest(BaseModel):
    """Request model for a professional creating a patient directly."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None  # Synthesized from name and phone when omitted
    password: Optional[str] = None  # Random when omitted
    phone: Optional[str] = None
    date_of_birth: Optional[str] = None
    gender: Optional[str] = None
    address: Optional[Dict[str, Any]] = None
    emergency_contact: Optional[Dict[str, Any]] = None
    medical_history: Optional[Dict[str, List[str]]] = None
    psychological_history: Optional[Dict[str, Any]] = None
    insurance: Optional[Dict[str, Any]] = None


class DiaryNoteRequest(BaseModel):
    text: Optional[str] = None
    author: Optional[str] = None


@router.get("", summary="List patients")
async def list_patients(
    db: Session = Depends(get_db),
    current_user: UserContext = Depends(require_professional_or_admin)
) -> Dict[str, Any]:
    patients = PatientService.list_patients(db, current_user)
    return envelope(data=[PatientResponse.model_validate(p).dump() for p in patients])


@router.post("", summary="Create a patient", status_code=status.HTTP_201_CREATED)
async def create_patient(
    request: CreatePatientRequest,
    db: Session = Depends(get_db),
    current_user: UserContext = Depends(require_professional)
) -> Dict[str, Any]:
    assert current_user.professional_id is not None
    try:
        patient = PatientService.create_patient_for_professional(
            db,
            current_user.professional_id,
            **request.model_dump(),
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.exception(f"Failed to create patient: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error al crear el paciente"
        )
    return envelope(data=PatientResponse.model_validate(patient).dump(), message="Paciente creado exitosamente")


@router.get("/{patient_id}/diary-notes", summary="List a patient's diary notes")
async def list_diary_notes(
    patient_id: int,
    db: Session = Depends(get_db),
    current_user: UserContext = Depends(require_professional_or_admin)
) -> Dict[str, Any]:
    notes = PatientService.list_diary_notes(db, patient_id, current_user)
    return envelope(data=[DiaryNoteResponse.model_validate(n).dump() for n in notes])


@router.post("/{patient_id}/diary-notes", summary="Add a diary note", status_code=status.HTTP_201_CREATED)
async def add_diary_note(
    patient_id: int,
    request: DiaryNoteRequest,
    db: Session = Depends(get_db),
    current_user: UserContext = Depends(require_professional_or_admin)
) -> Dict[str, Any]:
    note = PatientService.add_diary_note(db, patient_id, current_user, request.text, request.author)
    return envelope(data=DiaryNoteResponse.model_validate(note).dump(), message="Nota agregada")
