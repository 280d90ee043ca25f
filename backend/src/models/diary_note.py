"""
Diary note model for free-text session notes kept by professionals.
"""

from datetime import datetime
from typing import Optional
from sqlalchemy import String, Text, TIMESTAMP, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class DiaryNote(Base):
    """A note appended to a patient's diary. Notes are never edited."""

    __tablename__ = "patient_diary_notes"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    patient_id: Mapped[int] = mapped_column(ForeignKey("patients.id"), index=True)
    created_by_professional_id: Mapped[Optional[int]] = mapped_column(ForeignKey("professionals.id"), nullable=True)
    author: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    text: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)

    patient = relationship("Patient", back_populates="diary_notes")
