"""
Invitation models for code-based patient onboarding.

A professional issues an invitation carrying a short shareable code and a
snapshot of the patient's intake data. The code grants a single
registration before it expires. Every delivery attempt is recorded in an
append-only log.
"""

from typing import Optional, Any, Dict, List
from datetime import datetime
from sqlalchemy import String, Text, TIMESTAMP, JSON, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base
from utils.datetime_utils import utc_now, ensure_utc


class Invitation(Base):
    """
    Invitation record.

    Status transitions: 'pending' -> 'registered' (redeemed), 'expired'
    (observed past expires_at on read) or 'cancelled' (by the professional).
    All three targets are terminal.
    """

    __tablename__ = "invitations"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    code: Mapped[str] = mapped_column(String(16), unique=True)
    """8-character uppercase alphanumeric code, unique across all invitations ever issued."""

    professional_id: Mapped[int] = mapped_column(ForeignKey("professionals.id"))

    patient_name: Mapped[str] = mapped_column(String(255))
    patient_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    patient_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    patient_data: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    """
    Snapshot of the intake data used to prefill registration:
    first_name, last_name, phone, date_of_birth, gender, address,
    emergency_contact, emergency_phone, medical_history, allergies,
    current_medications, invitation_email.
    """

    custom_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    channels: Mapped[List[str]] = mapped_column(JSON, default=list)
    """Delivery channels selected at issuance ('SMS', 'EMAIL', 'WHATSAPP')."""

    status: Mapped[str] = mapped_column(String(20), default="pending")
    expires_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    used_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    # Relationships
    professional = relationship("Professional", back_populates="invitations")
    logs = relationship(
        "InvitationLog",
        back_populates="invitation",
        cascade="all, delete-orphan",
        order_by="InvitationLog.id",
    )

    __table_args__ = (
        Index('idx_invitations_professional', 'professional_id'),
        Index('idx_invitations_status', 'status'),
        # Sweep of overdue pending invitations
        Index('idx_invitations_expires_status', 'expires_at', 'status'),
    )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """Check whether the expiry timestamp has passed."""
        expires_at = ensure_utc(self.expires_at)
        assert expires_at is not None
        return (now or utc_now()) > expires_at

    def __repr__(self) -> str:
        return f"<Invitation(id={self.id}, code='{self.code}', status='{self.status}')>"


class InvitationLog(Base):
    """One delivery attempt of an invitation over one channel. Never edited."""

    __tablename__ = "invitation_logs"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    invitation_id: Mapped[int] = mapped_column(ForeignKey("invitations.id"), index=True)

    channel: Mapped[str] = mapped_column(String(20))
    status: Mapped[str] = mapped_column(String(20))
    """One of 'sent', 'delivered', 'failed', 'bounced'."""

    provider_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    """Provider message id (SMS/WhatsApp SID or email message id)."""

    provider_status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    error_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    sent_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False, default=utc_now)

    invitation = relationship("Invitation", back_populates="logs")
