"""
Patient model representing individuals who receive therapy.

Each patient profile belongs to exactly one user identity (1:1) and
references the professional assigned to them. Profiles are created either
by redeeming an invitation or directly by a professional.
"""

from sqlalchemy import String, ForeignKey, TIMESTAMP, Date, JSON, Boolean, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship
from datetime import datetime, date
from typing import Optional, Any, Dict, List

from core.database import Base


class Patient(Base):
    """
    Patient profile with intake data.

    The nested JSON columns mirror the intake form sections: personal
    address, emergency contact, medical history, psychological history,
    insurance and consents.
    """

    __tablename__ = "patients"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), unique=True)
    """Identity that owns this profile."""

    assigned_professional_id: Mapped[int] = mapped_column(ForeignKey("professionals.id"))
    """Professional responsible for this patient (the inviting professional for invitation-created profiles)."""

    created_by_professional_id: Mapped[int] = mapped_column(ForeignKey("professionals.id"))
    """Professional who created the profile, directly or through an invitation."""

    source: Mapped[str] = mapped_column(String(20), default="invitation", nullable=False)
    """How the profile was created: 'invitation' or 'professional'."""

    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    date_of_birth: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    gender: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    """Valid values: 'male', 'female', 'other'."""

    address: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    emergency_contact: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    medical_history: Mapped[Dict[str, List[str]]] = mapped_column(JSON, default=dict)
    """Lists keyed by allergies, current_medications, medical_conditions, previous_surgeries."""

    psychological_history: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    insurance: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    consents: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    # Relationships
    user = relationship("User", back_populates="patient_profile", foreign_keys=[user_id])
    assigned_professional = relationship("Professional", foreign_keys=[assigned_professional_id])
    created_by = relationship("Professional", foreign_keys=[created_by_professional_id])
    diary_notes = relationship(
        "DiaryNote",
        back_populates="patient",
        cascade="all, delete-orphan",
        order_by="DiaryNote.created_at",
    )

    __table_args__ = (
        Index('idx_patients_assigned_professional', 'assigned_professional_id'),
        Index('idx_patients_created_by', 'created_by_professional_id'),
    )
