# pyright: reportMissingTypeStubs=false
"""
Invitation API endpoints.

All routes require a professional except GET /verify/{code}, which is
public so a patient can check a code before registering.
"""

import logging
import math
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy.orm import Session

from api.responses import envelope, InvitationResponse, InvitationDetailResponse
from auth.dependencies import require_professional, UserContext
from core.database import get_db
from models import Professional
from services.delivery_gateway import DeliveryGateway, get_delivery_gateway
from services.invitation_service import InvitationService, IssuanceResult

logger = logging.getLogger(__name__)

router = APIRouter()


# ===== Request Models =====

class SendInvitationRequest(BaseModel):
    """
    Request model for issuing an invitation.

    The patient can be named with patientName or with firstName/lastName
    (nombre/apellido are accepted too). The remaining fields are intake
    data that prefill the patient's profile on registration.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    patient_name: Optional[str] = None
    first_name: Optional[str] = Field(None, validation_alias=AliasChoices("firstName", "first_name", "nombre"))
    last_name: Optional[str] = Field(None, validation_alias=AliasChoices("lastName", "last_name", "apellido"))
    patient_email: Optional[str] = None
    invitation_email: Optional[str] = None
    patient_phone: Optional[str] = None
    phone: Optional[str] = None
    channels: Optional[List[str]] = None  # Defaults to ["EMAIL"]
    custom_message: Optional[str] = None
    expiration_days: Optional[int] = None

    date_of_birth: Optional[str] = None
    gender: Optional[str] = None
    address: Optional[Any] = None
    emergency_contact: Optional[Any] = None
    emergency_phone: Optional[str] = None
    medical_history: Optional[Any] = None
    allergies: Optional[Any] = None
    current_medications: Optional[Any] = None


class ResendInvitationRequest(BaseModel):
    channels: Optional[List[str]] = None  # Defaults to the channels chosen at issuance


# ===== Helpers =====

def _get_professional(db: Session, current_user: UserContext) -> Professional:
    professional = db.query(Professional).filter(Professional.id == current_user.professional_id).first()
    if not professional:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Perfil profesional no encontrado"
        )
    return professional


def _issuance_payload(result: IssuanceResult) -> Dict[str, Any]:
    invitation = InvitationResponse.model_validate(result.invitation).dump()
    invitation["registrationUrl"] = result.registration_url
    return {
        "code": result.invitation.code,
        "invitation": invitation,
        "registrationUrl": result.registration_url,
        "deliveryResults": result.deliveries,
    }


# ===== Public =====

@router.get("/verify/{code}", summary="Verify an invitation code (public)")
async def verify_invitation(
    code: str,
    db: Session = Depends(get_db)
) -> Dict[str, Any]:
    """
    Check that a code can still be redeemed.

    Expired codes are marked as such and reported like unknown codes.
    """
    invitation = InvitationService.find_valid_by_code(db, code)
    if not invitation:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Código de invitación inválido o expirado"
        )
    return envelope(data=InvitationService.get_public_view(invitation))


# ===== Professional =====

@router.post("/send", summary="Issue and send an invitation", status_code=status.HTTP_201_CREATED)
async def send_invitation(
    request: SendInvitationRequest,
    db: Session = Depends(get_db),
    current_user: UserContext = Depends(require_professional),
    gateway: DeliveryGateway = Depends(get_delivery_gateway)
) -> Dict[str, Any]:
    """
    Issue an invitation and deliver it over the selected channels.

    Responds 201 whenever the invitation is stored, including when every
    channel failed; that case carries a warning.
    """
    professional = _get_professional(db, current_user)
    intake = request.model_dump(include={
        "date_of_birth", "gender", "address", "emergency_contact", "emergency_phone",
        "medical_history", "allergies", "current_medications",
    })

    result = await InvitationService.issue_invitation(
        db,
        professional,
        gateway,
        patient_name=request.patient_name,
        first_name=request.first_name,
        last_name=request.last_name,
        patient_email=request.invitation_email or request.patient_email,
        patient_phone=request.phone or request.patient_phone,
        channels=request.channels,
        custom_message=request.custom_message,
        expiration_days=request.expiration_days,
        intake=intake,
    )

    message = (
        "Código de invitación creado, pero no se pudo enviar. El paciente puede usar el código para registrarse."
        if result.warning else "Invitación enviada exitosamente"
    )
    return envelope(data=_issuance_payload(result), message=message, warning=result.warning)


@router.get("", summary="List the caller's invitations")
async def list_invitations(
    status_filter: Optional[str] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: UserContext = Depends(require_professional)
) -> Dict[str, Any]:
    assert current_user.professional_id is not None
    invitations, total = InvitationService.list_invitations(
        db, current_user.professional_id, status_filter=status_filter, page=page, limit=limit
    )
    return envelope(data={
        "invitations": [InvitationResponse.model_validate(i).dump() for i in invitations],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": math.ceil(total / limit) if total else 0,
        },
    })


@router.get("/stats", summary="Invitation counts per status")
async def get_invitation_stats(
    db: Session = Depends(get_db),
    current_user: UserContext = Depends(require_professional)
) -> Dict[str, Any]:
    assert current_user.professional_id is not None
    return envelope(data=InvitationService.get_invitation_stats(db, current_user.professional_id))


@router.get("/{invitation_id}", summary="Get an invitation with its delivery log")
async def get_invitation(
    invitation_id: int,
    db: Session = Depends(get_db),
    current_user: UserContext = Depends(require_professional)
) -> Dict[str, Any]:
    assert current_user.professional_id is not None
    invitation = InvitationService.get_invitation(db, invitation_id, current_user.professional_id)
    return envelope(data=InvitationDetailResponse.model_validate(invitation).dump())


@router.put("/{invitation_id}/cancel", summary="Cancel a pending invitation")
async def cancel_invitation(
    invitation_id: int,
    db: Session = Depends(get_db),
    current_user: UserContext = Depends(require_professional)
) -> Dict[str, Any]:
    assert current_user.professional_id is not None
    InvitationService.cancel_invitation(db, invitation_id, current_user.professional_id)
    return envelope(message="Invitación cancelada exitosamente")


@router.post("/{invitation_id}/resend", summary="Resend a pending invitation")
async def resend_invitation(
    invitation_id: int,
    request: Optional[ResendInvitationRequest] = None,
    db: Session = Depends(get_db),
    current_user: UserContext = Depends(require_professional),
    gateway: DeliveryGateway = Depends(get_delivery_gateway)
) -> Dict[str, Any]:
    professional = _get_professional(db, current_user)
    result = await InvitationService.resend_invitation(
        db,
        invitation_id,
        professional,
        gateway,
        channels=request.channels if request else None,
    )
    return envelope(
        data={"deliveryResults": result.deliveries},
        message="Invitación reenviada",
        warning=result.warning,
    )
