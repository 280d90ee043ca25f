# pyright: reportMissingTypeStubs=false
"""
Appointment API endpoints: slot resolution, booking and status transitions.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy.orm import Session

from api.responses import envelope, serialize_appointment
from auth.dependencies import (
    require_authenticated, require_patient, require_professional_or_admin, UserContext
)
from core.database import get_db
from services.appointment_service import AppointmentService
from services.availability_service import AvailabilityService

logger = logging.getLogger(__name__)

router = APIRouter()


# ===== Request Models =====

class _CamelRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ReserveAppointmentRequest(_CamelRequest):
    """Request model for a patient reserving a slot."""
    date: str  # YYYY-MM-DD
    time: str  # HH:MM
    type: str = "consultation"
    professional_id: Optional[int] = None  # Defaults to the assigned professional
    duration: Optional[int] = None
    reason: Optional[str] = None
    notes: Optional[str] = None
    is_video_call: bool = False


class CreateAppointmentRequest(ReserveAppointmentRequest):
    """Request model for a professional booking on their calendar."""
    patient_id: int  # User ID of the patient
    status: str = "scheduled"
    amount: Optional[float] = None


class UpdateAppointmentRequest(_CamelRequest):
    type: Optional[str] = None
    duration: Optional[int] = None
    reason: Optional[str] = None
    notes: Optional[str] = None
    is_video_call: Optional[bool] = None
    payment_status: Optional[str] = None
    amount: Optional[float] = None
    status: Optional[str] = None
    cancellation_reason: Optional[str] = None


class CancelAppointmentRequest(_CamelRequest):
    reason: Optional[str] = None


class CompleteAppointmentRequest(_CamelRequest):
    notes: Optional[str] = None


class RescheduleAppointmentRequest(_CamelRequest):
    date: str
    time: str


# ===== Slots =====

@router.get("/available-slots", summary="Resolve a professional's slots for a date")
async def get_available_slots(
    date: Optional[str] = Query(None, description="Calendar date (YYYY-MM-DD)"),
    professional_id: Optional[int] = Query(None, alias="professionalId"),
    db: Session = Depends(get_db),
    current_user: UserContext = Depends(require_authenticated)
) -> Dict[str, Any]:
    """
    List every slot of the day with its availability.

    Without professionalId, patients get their assigned professional and
    professionals their own calendar.
    """
    if not date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="La fecha es requerida"
        )

    target_professional_id = AvailabilityService.resolve_professional_for_user(
        db,
        role=current_user.role,
        user_id=current_user.user_id,
        own_professional_id=current_user.professional_id,
        requested_professional_id=professional_id,
    )
    slots = AvailabilityService.get_available_slots(db, target_professional_id, date)
    return envelope(data=slots)


# ===== Booking =====

@router.post("/reserve", summary="Reserve a slot (patient)", status_code=status.HTTP_201_CREATED)
async def reserve_appointment(
    request: ReserveAppointmentRequest,
    db: Session = Depends(get_db),
    current_user: UserContext = Depends(require_patient)
) -> Dict[str, Any]:
    appointment = AppointmentService.reserve_appointment(
        db,
        current_user,
        date=request.date,
        time=request.time,
        type=request.type,
        professional_id=request.professional_id,
        duration=request.duration,
        reason=request.reason,
        notes=request.notes,
        is_video_call=request.is_video_call,
    )
    return envelope(data=serialize_appointment(appointment), message="Cita reservada exitosamente")


@router.post("", summary="Create an appointment (professional)", status_code=status.HTTP_201_CREATED)
async def create_appointment(
    request: CreateAppointmentRequest,
    db: Session = Depends(get_db),
    current_user: UserContext = Depends(require_professional_or_admin)
) -> Dict[str, Any]:
    appointment = AppointmentService.create_appointment(
        db,
        current_user,
        patient_id=request.patient_id,
        date=request.date,
        time=request.time,
        type=request.type,
        professional_id=request.professional_id,
        status_value=request.status,
        duration=request.duration,
        reason=request.reason,
        notes=request.notes,
        is_video_call=request.is_video_call,
        amount=request.amount,
    )
    return envelope(data=serialize_appointment(appointment), message="Cita creada exitosamente")


# ===== Queries =====

@router.get("", summary="List appointments visible to the caller")
async def list_appointments(
    professional_id: Optional[int] = Query(None, alias="professionalId"),
    patient_id: Optional[int] = Query(None, alias="patientId"),
    status_filter: Optional[str] = Query(None, alias="status"),
    date: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    current_user: UserContext = Depends(require_authenticated)
) -> Dict[str, Any]:
    appointments = AppointmentService.list_appointments(
        db, current_user,
        professional_id=professional_id,
        patient_id=patient_id,
        status_filter=status_filter,
        date=date,
    )
    return envelope(data=[serialize_appointment(a) for a in appointments])


@router.get("/upcoming", summary="Upcoming active appointments")
async def list_upcoming_appointments(
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: UserContext = Depends(require_authenticated)
) -> Dict[str, Any]:
    appointments = AppointmentService.list_upcoming(db, current_user, limit=limit)
    return envelope(data=[serialize_appointment(a) for a in appointments])


@router.get("/statistics", summary="Appointment counts per status")
async def get_appointment_statistics(
    db: Session = Depends(get_db),
    current_user: UserContext = Depends(require_authenticated)
) -> Dict[str, Any]:
    return envelope(data=AppointmentService.get_statistics(db, current_user))


@router.get("/{appointment_id}", summary="Get an appointment")
async def get_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    current_user: UserContext = Depends(require_authenticated)
) -> Dict[str, Any]:
    appointment = AppointmentService.get_appointment(db, appointment_id, current_user)
    return envelope(data=serialize_appointment(appointment))


# ===== Updates and transitions =====

@router.put("/{appointment_id}", summary="Update appointment details")
async def update_appointment(
    appointment_id: int,
    request: UpdateAppointmentRequest,
    db: Session = Depends(get_db),
    current_user: UserContext = Depends(require_professional_or_admin)
) -> Dict[str, Any]:
    appointment = AppointmentService.update_appointment(
        db, appointment_id, current_user, request.model_dump(exclude_unset=True)
    )
    return envelope(data=serialize_appointment(appointment), message="Cita actualizada")


@router.put("/{appointment_id}/cancel", summary="Cancel an appointment")
async def cancel_appointment(
    appointment_id: int,
    request: Optional[CancelAppointmentRequest] = None,
    db: Session = Depends(get_db),
    current_user: UserContext = Depends(require_authenticated)
) -> Dict[str, Any]:
    appointment = AppointmentService.cancel_appointment(
        db, appointment_id, current_user, reason=request.reason if request else None
    )
    return envelope(data=serialize_appointment(appointment), message="Cita cancelada exitosamente")


@router.put("/{appointment_id}/confirm", summary="Confirm an appointment")
async def confirm_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    current_user: UserContext = Depends(require_professional_or_admin)
) -> Dict[str, Any]:
    appointment = AppointmentService.confirm_appointment(db, appointment_id, current_user)
    return envelope(data=serialize_appointment(appointment), message="Cita confirmada")


@router.put("/{appointment_id}/complete", summary="Mark an appointment as completed")
async def complete_appointment(
    appointment_id: int,
    request: Optional[CompleteAppointmentRequest] = None,
    db: Session = Depends(get_db),
    current_user: UserContext = Depends(require_professional_or_admin)
) -> Dict[str, Any]:
    appointment = AppointmentService.complete_appointment(
        db, appointment_id, current_user, notes=request.notes if request else None
    )
    return envelope(data=serialize_appointment(appointment), message="Cita completada")


@router.put("/{appointment_id}/reschedule", summary="Move an appointment to another slot")
async def reschedule_appointment(
    appointment_id: int,
    request: RescheduleAppointmentRequest,
    db: Session = Depends(get_db),
    current_user: UserContext = Depends(require_authenticated)
) -> Dict[str, Any]:
    appointment = AppointmentService.reschedule_appointment(
        db, appointment_id, current_user, date=request.date, time=request.time
    )
    return envelope(data=serialize_appointment(appointment), message="Cita reprogramada")


@router.delete("/{appointment_id}", summary="Delete an appointment")
async def delete_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    current_user: UserContext = Depends(require_professional_or_admin)
) -> Dict[str, Any]:
    AppointmentService.delete_appointment(db, appointment_id, current_user)
    return envelope(message="Cita eliminada")
