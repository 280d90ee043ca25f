"""
Availability service: weekly schedule templates and slot resolution.

The schedule store reads and replaces a professional's recurring weekly
template. The slot resolver combines that template with the active
appointments on a date to mark each time label as available or taken.
"""

import copy
import logging
from datetime import date as date_type
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from core.constants import (
    DEFAULT_WEEKLY_SCHEDULE,
    SCHEDULE_DAY_KEYS,
    ACTIVE_APPOINTMENT_STATUSES,
    ROLE_PATIENT,
    ROLE_PROFESSIONAL,
    ROLE_ADMIN,
)
from models import Appointment, Patient, Professional, ScheduleTemplate
from shared_types.availability import SlotData
from utils.datetime_utils import parse_date_string, day_of_week_index, is_valid_time_label

logger = logging.getLogger(__name__)


class AvailabilityService:
    """
    Service class for availability operations.

    Contains the schedule store and the slot resolver shared by the
    availability and appointment endpoints.
    """

    @staticmethod
    def default_schedule() -> Dict[str, List[str]]:
        """Return a fresh copy of the default weekly schedule (Mon-Fri)."""
        return copy.deepcopy(DEFAULT_WEEKLY_SCHEDULE)

    @staticmethod
    def get_schedule(db: Session, professional_id: int) -> Dict[str, List[str]]:
        """
        Get a professional's weekly schedule.

        Falls back to the default schedule when no template has been saved
        or the saved template is empty. The fallback is not persisted.

        Args:
            db: Database session
            professional_id: Professional ID

        Returns:
            Mapping of day key ("0"=Sunday .. "6"=Saturday) to time labels
        """
        template = db.query(ScheduleTemplate).filter(
            ScheduleTemplate.professional_id == professional_id
        ).first()

        if not template or not template.slots:
            return AvailabilityService.default_schedule()

        return copy.deepcopy(template.slots)

    @staticmethod
    def validate_schedule(slots: Any) -> Dict[str, List[str]]:
        """
        Validate a weekly schedule payload.

        Keys must be day indexes "0".."6" and every label a 24h "HH:MM"
        string. Label order and duplicates are kept as given.

        Raises:
            HTTPException: 400 if the payload is malformed
        """
        if not isinstance(slots, dict):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="El horario debe ser un objeto con los días de la semana"
            )

        validated: Dict[str, List[str]] = {}
        for raw_key, labels in slots.items():
            key = str(raw_key)
            if key not in SCHEDULE_DAY_KEYS:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Día inválido: {raw_key} (use 0=domingo .. 6=sábado)"
                )
            if not isinstance(labels, list):
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Los horarios del día {key} deben ser una lista"
                )
            for label in labels:
                if not is_valid_time_label(label):
                    raise HTTPException(
                        status_code=status.HTTP_400_BAD_REQUEST,
                        detail=f"Horario inválido: {label} (formato HH:MM)"
                    )
            validated[key] = list(labels)

        return validated

    @staticmethod
    def replace_schedule(db: Session, professional_id: int, slots: Any) -> Dict[str, List[str]]:
        """
        Replace a professional's weekly schedule wholesale.

        Days omitted from the payload have no slots afterwards.

        Args:
            db: Database session
            professional_id: Professional ID
            slots: New day key -> labels mapping

        Returns:
            The stored schedule
        """
        validated = AvailabilityService.validate_schedule(slots)

        template = db.query(ScheduleTemplate).filter(
            ScheduleTemplate.professional_id == professional_id
        ).first()

        if template:
            template.slots = validated
        else:
            template = ScheduleTemplate(professional_id=professional_id, slots=validated)
            db.add(template)

        db.commit()
        db.refresh(template)

        logger.info(f"Updated schedule for professional {professional_id}: days={sorted(validated.keys())}")
        return copy.deepcopy(template.slots)

    @staticmethod
    def get_booked_times(db: Session, professional_id: int, requested_date: date_type) -> List[str]:
        """Time labels held by active appointments of a professional on a date."""
        rows = db.query(Appointment.time).filter(
            Appointment.professional_id == professional_id,
            Appointment.date == requested_date,
            Appointment.status.in_(ACTIVE_APPOINTMENT_STATUSES),
        ).all()
        return [row[0] for row in rows]

    @staticmethod
    def resolve_slots(db: Session, professional_id: int, requested_date: date_type) -> List[SlotData]:
        """
        Resolve the slots of a professional on a calendar date.

        Returns one entry per label in the template's stored order. A label
        is unavailable when any reserved, scheduled or confirmed appointment
        holds it. A day absent from the template yields an empty list.
        """
        schedule = AvailabilityService.get_schedule(db, professional_id)
        day_labels = schedule.get(str(day_of_week_index(requested_date))) or []
        if not day_labels:
            return []

        booked = set(AvailabilityService.get_booked_times(db, professional_id, requested_date))
        return [
            SlotData(time=label, available=label not in booked, professional_id=professional_id)
            for label in day_labels
        ]

    @staticmethod
    def get_available_slots(db: Session, professional_id: int, date: str) -> List[Dict[str, Any]]:
        """
        Slot resolver entry point for the HTTP layer.

        Args:
            db: Database session
            professional_id: Professional ID
            date: Calendar date string (YYYY-MM-DD)

        Returns:
            List of {time, available, professionalId} dicts

        Raises:
            HTTPException: 400 on a malformed date, 404 on unknown professional
        """
        try:
            requested_date = parse_date_string(date)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Formato de fecha inválido (use YYYY-MM-DD)"
            )

        professional = db.query(Professional).filter(Professional.id == professional_id).first()
        if not professional:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Profesional no encontrado"
            )

        slots = AvailabilityService.resolve_slots(db, professional_id, requested_date)
        return [slot.to_dict() for slot in slots]

    @staticmethod
    def resolve_professional_for_user(
        db: Session,
        role: str,
        user_id: int,
        own_professional_id: Optional[int],
        requested_professional_id: Optional[int] = None,
    ) -> int:
        """
        Decide which professional's calendar a caller is asking about.

        An explicit professional ID wins. Otherwise patients use their
        assigned professional and professionals their own profile.

        Raises:
            HTTPException: 400 when no professional can be determined
        """
        if requested_professional_id is not None:
            return requested_professional_id

        if role == ROLE_PATIENT:
            patient = db.query(Patient).filter(Patient.user_id == user_id).first()
            if not patient or not patient.assigned_professional_id:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="No tienes un profesional asignado"
                )
            return patient.assigned_professional_id

        if role in (ROLE_PROFESSIONAL, ROLE_ADMIN) and own_professional_id is not None:
            return own_professional_id

        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Se requiere el parámetro professionalId"
        )
