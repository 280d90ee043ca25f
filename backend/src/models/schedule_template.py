"""
Weekly schedule template model.

Stores the recurring slots a professional offers, as a mapping from
day-of-week key ("0"=Sunday .. "6"=Saturday) to an ordered list of
"HH:MM" labels. The template is replaced wholesale on every update.
"""

from datetime import datetime
from typing import Dict, List, Optional
from sqlalchemy import TIMESTAMP, JSON, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base


class ScheduleTemplate(Base):
    """
    Recurring weekly availability for a single professional.

    No row exists until the professional saves a schedule for the first
    time. Readers fall back to the default template in that case; the
    fallback is never written back.
    """

    __tablename__ = "schedule_templates"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)

    professional_id: Mapped[int] = mapped_column(ForeignKey("professionals.id"), unique=True)

    slots: Mapped[Dict[str, List[str]]] = mapped_column(JSON, default=dict)
    """
    Day key -> ordered time labels, e.g. {"1": ["09:00", "09:30"], "2": ["10:00"]}.
    Labels are kept in the order given and are not deduplicated.
    """

    created_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    # Relationships
    professional = relationship("Professional", back_populates="schedule_template")

    def __repr__(self) -> str:
        return f"<ScheduleTemplate(professional_id={self.professional_id}, days={sorted((self.slots or {}).keys())})>"
