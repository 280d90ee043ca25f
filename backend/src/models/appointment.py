"""
Appointment model representing booked sessions between a patient and a professional.

The effective conflict key is (professional_id, date, time). It is not
enforced by a database constraint: availability is computed at read time
and reservation conflicts are handled by the booking service.
"""

from datetime import date as date_type, datetime
from typing import Optional
from sqlalchemy import String, ForeignKey, Index, TIMESTAMP, Boolean, Date, Integer, Numeric, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class Appointment(Base):
    """
    Appointment entity for a single slot on a professional's calendar.

    Lifecycle: created as 'reserved' by a patient (or 'scheduled' when a
    professional books it), then 'confirmed' and 'completed', or
    'cancelled'. Completed and cancelled are terminal and never block a
    slot.
    """

    __tablename__ = "appointments"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    professional_id: Mapped[int] = mapped_column(ForeignKey("professionals.id"))
    """Professional whose slot is booked."""

    patient_id: Mapped[int] = mapped_column(ForeignKey("users.id"))
    """User id of the patient who holds the appointment."""

    patient_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    """Patient display name captured at booking time."""

    date: Mapped[date_type] = mapped_column(Date)
    """Calendar date of the session (date-only, UTC day)."""

    time: Mapped[str] = mapped_column(String(5))
    """Slot label "HH:MM" matching an entry of the professional's schedule template."""

    type: Mapped[str] = mapped_column(String(20))
    """One of 'consultation', 'followup', 'therapy', 'emergency'."""

    status: Mapped[str] = mapped_column(String(20), default="reserved")
    """One of 'reserved', 'scheduled', 'confirmed', 'completed', 'cancelled'."""

    duration: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    """Session length in minutes."""

    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    is_video_call: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    payment_status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)
    """One of 'pending', 'completed', 'refunded'."""

    amount: Mapped[Optional[float]] = mapped_column(Numeric(10, 2, asdecimal=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    # Relationships
    professional = relationship("Professional")
    patient = relationship("User")

    __table_args__ = (
        # Slot lookups: all appointments of a professional on a day
        Index('idx_appointments_professional_date', 'professional_id', 'date'),
        Index('idx_appointments_patient', 'patient_id'),
        Index('idx_appointments_status', 'status'),
    )

    def __repr__(self) -> str:
        return f"<Appointment(id={self.id}, professional_id={self.professional_id}, {self.date} {self.time}, status='{self.status}')>"
