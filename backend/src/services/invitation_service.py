"""
Invitation service: code issuance, lazy expiry and lifecycle operations.

An invitation is persisted before any message goes out and is kept even
when every delivery channel fails; each attempt is appended to the
invitation's log. Expiry is evaluated on read: a pending invitation past
its expires_at is flipped to 'expired' the first time it is looked up.
"""

import logging
import math
import secrets
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from fastapi import HTTPException, status
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload, selectinload

from core.config import INVITATION_EXPIRATION_DAYS, INVITATION_CODE_MAX_ATTEMPTS
from core.constants import (
    INVITATION_CODE_LENGTH,
    INVITATION_CODE_ALPHABET,
    INVITATION_CHANNELS,
    INVITATION_STATUSES,
    PHONE_CHANNELS,
)
from models import Invitation, InvitationLog, Professional
from services.delivery_gateway import DeliveryGateway
from services.message_templates import invitation_content, registration_url
from shared_types.delivery import DeliveryResult
from utils.datetime_utils import utc_now, add_days, ensure_utc

logger = logging.getLogger(__name__)

# Intake fields copied verbatim into the invitation snapshot
INTAKE_FIELDS = (
    "date_of_birth",
    "gender",
    "address",
    "emergency_contact",
    "emergency_phone",
    "medical_history",
    "allergies",
    "current_medications",
)


@dataclass
class IssuanceResult:
    """Outcome of issuing or resending an invitation."""
    invitation: Invitation
    deliveries: List[Dict[str, Any]] = field(default_factory=list)
    warning: Optional[str] = None

    @property
    def any_delivered(self) -> bool:
        return any(delivery.get("success") for delivery in self.deliveries)

    @property
    def registration_url(self) -> str:
        return registration_url(self.invitation.code)


class InvitationService:
    """
    Service class for invitation operations.

    Delivery goes through a DeliveryGateway passed in by the caller, so the
    HTTP layer can inject a test double.
    """

    @staticmethod
    def generate_invitation_code(db: Session, max_attempts: Optional[int] = None) -> str:
        """
        Generate an invitation code not used by any existing invitation.

        Codes are 8 characters from A-Z0-9, drawn with the secrets module.

        Raises:
            HTTPException: 409 if every attempt collided
        """
        attempts = max_attempts or INVITATION_CODE_MAX_ATTEMPTS
        for _ in range(attempts):
            code = "".join(secrets.choice(INVITATION_CODE_ALPHABET) for _ in range(INVITATION_CODE_LENGTH))
            exists = db.query(Invitation.id).filter(Invitation.code == code).first()
            if not exists:
                return code

        logger.error(f"Could not generate a unique invitation code after {attempts} attempts")
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="No se pudo generar un código de invitación único, intente nuevamente"
        )

    @staticmethod
    def normalize_channels(channels: Optional[List[str]]) -> List[str]:
        """Upper-case, deduplicate and validate delivery channels."""
        if channels is None:
            return ["EMAIL"]

        normalized: List[str] = []
        for channel in channels:
            value = str(channel or "").strip().upper()
            if value not in INVITATION_CHANNELS:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Canal de envío inválido: {channel}"
                )
            if value not in normalized:
                normalized.append(value)
        return normalized

    @staticmethod
    def _destination(invitation: Invitation, channel: str) -> Optional[str]:
        if channel in PHONE_CHANNELS:
            return invitation.patient_phone
        return invitation.patient_email

    @staticmethod
    async def _deliver(
        invitation: Invitation,
        channels: List[str],
        professional_name: str,
        gateway: DeliveryGateway,
        expiration_days: int,
        skip_missing_destination: bool = False,
    ) -> List[Dict[str, Any]]:
        """
        Send the invitation over each channel and log every attempt.

        Returns a list of per-channel result dicts.
        """
        deliveries: List[Dict[str, Any]] = []
        for channel in channels:
            destination = InvitationService._destination(invitation, channel)
            if not destination and skip_missing_destination:
                logger.info(f"Skipping {channel} for invitation {invitation.id}: no destination")
                continue

            content = invitation_content(
                channel,
                invitation.patient_name,
                invitation.code,
                professional_name,
                invitation.custom_message,
                expiration_days,
            )
            result: DeliveryResult = await gateway.send(channel, destination, content)

            invitation.logs.append(InvitationLog(
                channel=channel,
                status="sent" if result.success else "failed",
                provider_id=result.provider_message_id,
                provider_status=result.provider_status,
                error_message=result.error,
                error_code=result.code,
                sent_at=utc_now(),
            ))
            deliveries.append({"channel": channel, **result.to_dict()})

        return deliveries

    @staticmethod
    def _split_name(patient_name: str) -> Tuple[str, str]:
        parts = patient_name.strip().split()
        if not parts:
            return "", ""
        return parts[0], " ".join(parts[1:])

    @staticmethod
    async def issue_invitation(
        db: Session,
        professional: Professional,
        gateway: DeliveryGateway,
        patient_name: Optional[str] = None,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
        patient_email: Optional[str] = None,
        patient_phone: Optional[str] = None,
        channels: Optional[List[str]] = None,
        custom_message: Optional[str] = None,
        expiration_days: Optional[int] = None,
        intake: Optional[Dict[str, Any]] = None,
    ) -> IssuanceResult:
        """
        Issue an invitation and fan it out over the selected channels.

        The record is committed even if every channel fails; in that case
        the result carries a warning.

        Raises:
            HTTPException: 400 on missing name/email, missing phone for a
                phone channel, unknown channel or non-positive expiration
        """
        first_name = (first_name or "").strip()
        last_name = (last_name or "").strip()
        display_name = (patient_name or "").strip() or f"{first_name} {last_name}".strip()
        if not display_name:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="El nombre del paciente es requerido (patientName o nombre/apellido)"
            )

        email = (patient_email or "").strip().lower()
        if not email:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="El email del paciente es requerido"
            )

        selected = InvitationService.normalize_channels(channels)
        phone = (patient_phone or "").strip() or None
        if any(channel in PHONE_CHANNELS for channel in selected) and not phone:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="El número de teléfono es requerido para envío por SMS o WhatsApp"
            )

        days = INVITATION_EXPIRATION_DAYS if expiration_days is None else expiration_days
        if days < 1:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Los días de expiración deben ser al menos 1"
            )

        if not first_name and not last_name:
            first_name, last_name = InvitationService._split_name(display_name)

        intake = intake or {}
        snapshot: Dict[str, Any] = {
            "first_name": first_name,
            "last_name": last_name,
            "phone": phone,
            "invitation_email": email,
        }
        for key in INTAKE_FIELDS:
            if intake.get(key) is not None:
                snapshot[key] = intake[key]

        now = utc_now()
        invitation = Invitation(
            code=InvitationService.generate_invitation_code(db),
            professional_id=professional.id,
            patient_name=display_name,
            patient_email=email,
            patient_phone=phone,
            patient_data=snapshot,
            custom_message=custom_message,
            channels=selected,
            status="pending",
            expires_at=add_days(now, days),
        )
        db.add(invitation)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.warning("Invitation code collided on insert")
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="No se pudo generar un código de invitación único, intente nuevamente"
            )
        db.refresh(invitation)

        deliveries = await InvitationService._deliver(
            invitation, selected, professional.display_name, gateway, days
        )
        db.commit()

        result = IssuanceResult(invitation=invitation, deliveries=deliveries)
        if not result.any_delivered:
            result.warning = (
                "Invitación creada pero no se pudo enviar por ningún canal "
                "(verifica números verificados en Twilio)"
            )
            logger.warning(f"Invitation {invitation.id} created but no channel delivered")

        logger.info(
            f"Issued invitation {invitation.id} for professional {professional.id} "
            f"via {selected}, delivered={result.any_delivered}"
        )
        return result

    @staticmethod
    def find_valid_by_code(db: Session, code: str, now: Optional[datetime] = None) -> Optional[Invitation]:
        """
        Look up a redeemable invitation by code.

        Only pending invitations match. A pending invitation past its
        expiry is flipped to 'expired' (committed) and None is returned.
        """
        normalized = (code or "").strip().upper()
        if not normalized:
            return None

        invitation = db.query(Invitation).options(
            joinedload(Invitation.professional).joinedload(Professional.user)
        ).filter(
            Invitation.code == normalized,
            Invitation.status == "pending",
        ).first()
        if not invitation:
            return None

        if invitation.is_expired(now or utc_now()):
            InvitationService._mark_expired(db, invitation)
            return None

        return invitation

    @staticmethod
    def claim_for_registration(db: Session, invitation: Invitation, now: Optional[datetime] = None) -> bool:
        """
        Flip a pending invitation to 'registered' inside the caller's transaction.

        The update is conditional on the row still being pending, so of two
        concurrent redemptions only one changes a row. Returns False for the
        loser. The caller commits or rolls back.
        """
        used_at = now or utc_now()
        claimed = db.query(Invitation).filter(
            Invitation.id == invitation.id,
            Invitation.status == "pending",
        ).update(
            {"status": "registered", "used_at": used_at, "updated_at": used_at},
            synchronize_session=False,
        )
        if claimed != 1:
            return False

        invitation.status = "registered"
        invitation.used_at = used_at
        return True

    @staticmethod
    def _mark_expired(db: Session, invitation: Invitation) -> None:
        invitation.status = "expired"
        db.commit()
        logger.info(f"Invitation {invitation.id} expired on access")

    @staticmethod
    def get_public_view(invitation: Invitation) -> Dict[str, Any]:
        """Sanitized invitation data for the public verification route."""
        professional_user = invitation.professional.user if invitation.professional else None
        expires_at = ensure_utc(invitation.expires_at)
        return {
            "code": invitation.code,
            "patientName": invitation.patient_name,
            "professionalName": professional_user.full_name if professional_user else None,
            "professionalEmail": professional_user.email if professional_user else None,
            "expiresAt": expires_at.isoformat() if expires_at else None,
            "patientData": invitation.patient_data or None,
        }

    @staticmethod
    def _get_owned_pending(db: Session, invitation_id: int, professional_id: int) -> Invitation:
        invitation = db.query(Invitation).filter(
            Invitation.id == invitation_id,
            Invitation.professional_id == professional_id,
            Invitation.status == "pending",
        ).first()
        if not invitation:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Invitación no encontrada o ya no está pendiente"
            )
        return invitation

    @staticmethod
    def cancel_invitation(db: Session, invitation_id: int, professional_id: int) -> Invitation:
        """Cancel a pending invitation owned by the professional."""
        invitation = InvitationService._get_owned_pending(db, invitation_id, professional_id)
        invitation.status = "cancelled"
        db.commit()
        logger.info(f"Invitation {invitation_id} cancelled by professional {professional_id}")
        return invitation

    @staticmethod
    async def resend_invitation(
        db: Session,
        invitation_id: int,
        professional: Professional,
        gateway: DeliveryGateway,
        channels: Optional[List[str]] = None,
    ) -> IssuanceResult:
        """
        Resend a pending, unexpired invitation.

        Channels default to the ones chosen at issuance. Channels without a
        destination on file are skipped. Expiry is not extended.

        Raises:
            HTTPException: 404 if not pending/owned, 400 if expired
        """
        invitation = InvitationService._get_owned_pending(db, invitation_id, professional.id)

        if invitation.is_expired(utc_now()):
            InvitationService._mark_expired(db, invitation)
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="La invitación ha expirado"
            )

        selected = InvitationService.normalize_channels(channels) if channels else list(invitation.channels or [])
        expires_at = ensure_utc(invitation.expires_at)
        assert expires_at is not None
        remaining_days = max(1, math.ceil((expires_at - utc_now()).total_seconds() / 86400))

        deliveries = await InvitationService._deliver(
            invitation,
            selected,
            professional.display_name,
            gateway,
            remaining_days,
            skip_missing_destination=True,
        )
        db.commit()

        result = IssuanceResult(invitation=invitation, deliveries=deliveries)
        if not result.any_delivered:
            result.warning = "No se pudo reenviar la invitación por ningún canal"
        logger.info(f"Resent invitation {invitation_id} via {[d['channel'] for d in deliveries]}")
        return result

    @staticmethod
    def list_invitations(
        db: Session,
        professional_id: int,
        status_filter: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
    ) -> Tuple[List[Invitation], int]:
        """
        List a professional's invitations, newest first.

        Returns:
            Tuple of (page items, total matching count)
        """
        if status_filter and status_filter not in INVITATION_STATUSES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Estado inválido: {status_filter}"
            )

        query = db.query(Invitation).filter(Invitation.professional_id == professional_id)
        if status_filter:
            query = query.filter(Invitation.status == status_filter)

        total = query.count()
        items = query.order_by(Invitation.created_at.desc(), Invitation.id.desc()).offset(
            (page - 1) * limit
        ).limit(limit).all()
        return items, total

    @staticmethod
    def get_invitation(db: Session, invitation_id: int, professional_id: int) -> Invitation:
        invitation = db.query(Invitation).options(selectinload(Invitation.logs)).filter(
            Invitation.id == invitation_id,
            Invitation.professional_id == professional_id,
        ).first()
        if not invitation:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Invitación no encontrada"
            )
        return invitation

    @staticmethod
    def get_invitation_stats(db: Session, professional_id: int) -> Dict[str, int]:
        """Invitation counts per status for a professional, plus total."""
        rows = db.query(Invitation.status, func.count(Invitation.id)).filter(
            Invitation.professional_id == professional_id
        ).group_by(Invitation.status).all()

        stats = {"total": 0, **{invitation_status: 0 for invitation_status in INVITATION_STATUSES}}
        for invitation_status, count in rows:
            stats[invitation_status] = count
            stats["total"] += count
        return stats

    @staticmethod
    def expire_stale_invitations(db: Session, now: Optional[datetime] = None) -> int:
        """
        Flip every overdue pending invitation to 'expired'.

        Housekeeping only: validity checks never depend on this sweep.

        Returns:
            Number of invitations expired
        """
        cutoff = now or utc_now()
        count = db.query(Invitation).filter(
            Invitation.status == "pending",
            Invitation.expires_at < cutoff,
        ).update(
            {Invitation.status: "expired", Invitation.updated_at: cutoff},
            synchronize_session=False,
        )
        db.commit()
        if count:
            logger.info(f"Expired {count} stale invitations")
        return count
