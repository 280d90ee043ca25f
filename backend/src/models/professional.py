"""
Professional profile model.

A professional is the therapist who owns a weekly schedule, issues
invitations and is assigned to patients.
"""

from typing import Optional, Any, Dict
from datetime import datetime
from sqlalchemy import String, TIMESTAMP, Boolean, JSON, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class Professional(Base):
    """Therapist profile attached 1:1 to a User with role 'professional'."""

    __tablename__ = "professionals"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), unique=True)

    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    specialty: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    license_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    office_address: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    """Street, city, state, postal code of the practice."""

    fees: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict)
    """Consultation fees keyed by session kind (individual, couple, family)."""

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    # Relationships
    user = relationship("User", back_populates="professional_profile")
    schedule_template = relationship(
        "ScheduleTemplate", back_populates="professional", uselist=False, cascade="all, delete-orphan"
    )
    invitations = relationship("Invitation", back_populates="professional")

    @property
    def display_name(self) -> str:
        """Name shown to patients in messages."""
        return self.user.full_name if self.user else ""

    def __repr__(self) -> str:
        return f"<Professional(id={self.id}, user_id={self.user_id})>"
