"""
Appointment service: booking ledger and status transitions.

Reservations run in one of two modes (RESERVATION_MODE):

- atomic: the professional row is locked, the (professional, date, time)
  slot is checked for an active appointment and the new row is inserted in
  the same transaction. A taken slot is rejected with 409.
- legacy: the appointment is inserted without any check. Availability is
  advisory only and two concurrent reservations of one free slot can both
  succeed.
"""

import logging
from datetime import date as date_type
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, status
from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from auth.dependencies import UserContext
from core.config import RESERVATION_MODE
from core.constants import (
    APPOINTMENT_TYPES,
    APPOINTMENT_STATUSES,
    ACTIVE_APPOINTMENT_STATUSES,
    TERMINAL_APPOINTMENT_STATUSES,
    PAYMENT_STATUSES,
    RESERVATION_MODE_ATOMIC,
    RESERVATION_MODE_LEGACY,
)
from models import Appointment, Patient, Professional, User
from utils.datetime_utils import parse_date_string, is_valid_time_label, utc_now

logger = logging.getLogger(__name__)

# Fields a professional may change through a partial update
UPDATABLE_FIELDS = (
    "type", "duration", "reason", "notes", "is_video_call",
    "payment_status", "amount",
)


class AppointmentService:
    """
    Service class for appointment operations.

    Every method takes the caller's UserContext where ownership matters:
    patients only see their own appointments and professionals only the
    appointments on their own calendar. Admins see everything.
    """

    # ===== Validation helpers =====

    @staticmethod
    def _parse_date(value: Any) -> date_type:
        if isinstance(value, date_type):
            return value
        try:
            return parse_date_string(str(value or ""))
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Formato de fecha inválido (use YYYY-MM-DD)"
            )

    @staticmethod
    def _validate_time(value: str) -> str:
        if not is_valid_time_label(value):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Formato de hora inválido (use HH:MM)"
            )
        return value

    @staticmethod
    def _validate_type(value: str) -> str:
        if value not in APPOINTMENT_TYPES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Tipo de cita inválido: {value}"
            )
        return value

    @staticmethod
    def _resolve_mode(mode: Optional[str]) -> str:
        resolved = (mode or RESERVATION_MODE or RESERVATION_MODE_ATOMIC).lower()
        if resolved not in (RESERVATION_MODE_ATOMIC, RESERVATION_MODE_LEGACY):
            logger.warning(f"Unknown reservation mode '{resolved}', using atomic")
            return RESERVATION_MODE_ATOMIC
        return resolved

    @staticmethod
    def _ensure_not_terminal(appointment: Appointment) -> None:
        if appointment.status in TERMINAL_APPOINTMENT_STATUSES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"La cita ya está {'cancelada' if appointment.status == 'cancelled' else 'completada'}"
            )

    @staticmethod
    def has_active_conflict(
        db: Session,
        professional_id: int,
        appointment_date: date_type,
        time: str,
        exclude_appointment_id: Optional[int] = None,
    ) -> bool:
        """Check whether an active appointment already holds the slot."""
        query = db.query(Appointment.id).filter(
            Appointment.professional_id == professional_id,
            Appointment.date == appointment_date,
            Appointment.time == time,
            Appointment.status.in_(ACTIVE_APPOINTMENT_STATUSES),
        )
        if exclude_appointment_id is not None:
            query = query.filter(Appointment.id != exclude_appointment_id)
        return query.first() is not None

    @staticmethod
    def _lock_professional(db: Session, professional_id: int) -> Professional:
        """
        Lock the professional row for the rest of the transaction.

        Concurrent reservations on the same calendar queue behind this lock,
        which makes check-then-insert atomic per professional.
        """
        professional = db.query(Professional).filter(
            Professional.id == professional_id
        ).with_for_update().first()
        if not professional:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Profesional no encontrado"
            )
        return professional

    @staticmethod
    def _insert(
        db: Session,
        appointment: Appointment,
        mode: str,
    ) -> Appointment:
        """Insert an appointment honoring the reservation mode."""
        try:
            if mode == RESERVATION_MODE_ATOMIC:
                AppointmentService._lock_professional(db, appointment.professional_id)
                if AppointmentService.has_active_conflict(
                    db, appointment.professional_id, appointment.date, appointment.time
                ):
                    raise HTTPException(
                        status_code=status.HTTP_409_CONFLICT,
                        detail="El horario seleccionado ya no está disponible"
                    )
            else:
                professional = db.query(Professional).filter(
                    Professional.id == appointment.professional_id
                ).first()
                if not professional:
                    raise HTTPException(
                        status_code=status.HTTP_404_NOT_FOUND,
                        detail="Profesional no encontrado"
                    )

            db.add(appointment)
            db.commit()
        except HTTPException:
            db.rollback()
            raise
        except Exception as e:
            db.rollback()
            logger.exception(f"Failed to create appointment: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Error al crear la cita"
            )

        db.refresh(appointment)
        return appointment

    # ===== Booking =====

    @staticmethod
    def reserve_appointment(
        db: Session,
        user: UserContext,
        date: Any,
        time: str,
        type: str = "consultation",
        professional_id: Optional[int] = None,
        duration: Optional[int] = None,
        reason: Optional[str] = None,
        notes: Optional[str] = None,
        is_video_call: bool = False,
        mode: Optional[str] = None,
    ) -> Appointment:
        """
        Reserve a slot for the calling patient.

        The professional defaults to the patient's assigned professional.

        Raises:
            HTTPException: 400 without an assigned professional or on invalid
                input, 404 for an unknown professional, 409 when the slot is
                taken (atomic mode only)
        """
        patient = db.query(Patient).filter(Patient.user_id == user.user_id).first()
        if not patient or not patient.assigned_professional_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="No tienes un profesional asignado. Contacta al administrador."
            )

        appointment = Appointment(
            professional_id=professional_id or patient.assigned_professional_id,
            patient_id=user.user_id,
            patient_name=user.full_name,
            date=AppointmentService._parse_date(date),
            time=AppointmentService._validate_time(time),
            type=AppointmentService._validate_type(type),
            status="reserved",
            duration=duration,
            reason=reason,
            notes=notes,
            is_video_call=bool(is_video_call),
            payment_status="pending",
        )

        resolved_mode = AppointmentService._resolve_mode(mode)
        appointment = AppointmentService._insert(db, appointment, resolved_mode)
        logger.info(
            f"Reserved appointment {appointment.id} for patient {user.user_id} with professional "
            f"{appointment.professional_id} on {appointment.date} {appointment.time} ({resolved_mode})"
        )
        return appointment

    @staticmethod
    def create_appointment(
        db: Session,
        user: UserContext,
        patient_id: int,
        date: Any,
        time: str,
        type: str = "consultation",
        professional_id: Optional[int] = None,
        status_value: str = "scheduled",
        duration: Optional[int] = None,
        reason: Optional[str] = None,
        notes: Optional[str] = None,
        is_video_call: bool = False,
        amount: Optional[float] = None,
        mode: Optional[str] = None,
    ) -> Appointment:
        """
        Create an appointment directly on a professional's calendar.

        Professionals book on their own calendar; admins must name the
        professional.
        """
        target_professional_id = professional_id if user.is_admin() else user.professional_id
        if target_professional_id is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Se requiere el profesional de la cita"
            )

        if status_value not in ACTIVE_APPOINTMENT_STATUSES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Estado inicial inválido: {status_value}"
            )

        patient_user = db.query(User).filter(User.id == patient_id).first()
        if not patient_user:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Paciente no encontrado"
            )

        appointment = Appointment(
            professional_id=target_professional_id,
            patient_id=patient_user.id,
            patient_name=patient_user.full_name,
            date=AppointmentService._parse_date(date),
            time=AppointmentService._validate_time(time),
            type=AppointmentService._validate_type(type),
            status=status_value,
            duration=duration,
            reason=reason,
            notes=notes,
            is_video_call=bool(is_video_call),
            payment_status="pending",
            amount=amount,
        )

        appointment = AppointmentService._insert(db, appointment, AppointmentService._resolve_mode(mode))
        logger.info(f"Created appointment {appointment.id} for professional {target_professional_id}")
        return appointment

    # ===== Queries =====

    @staticmethod
    def _scope(query, user: UserContext):
        """Restrict a query to the appointments the caller may see."""
        if user.is_admin():
            return query
        if user.is_professional():
            return query.filter(Appointment.professional_id == user.professional_id)
        return query.filter(Appointment.patient_id == user.user_id)

    @staticmethod
    def _scoped_query(db: Session, user: UserContext):
        query = db.query(Appointment).options(
            joinedload(Appointment.professional).joinedload(Professional.user),
            joinedload(Appointment.patient),
        )
        return AppointmentService._scope(query, user)

    @staticmethod
    def list_appointments(
        db: Session,
        user: UserContext,
        professional_id: Optional[int] = None,
        patient_id: Optional[int] = None,
        status_filter: Optional[str] = None,
        date: Optional[str] = None,
    ) -> List[Appointment]:
        """List the caller's appointments, newest date first."""
        query = AppointmentService._scoped_query(db, user)

        if professional_id is not None:
            query = query.filter(Appointment.professional_id == professional_id)
        if patient_id is not None:
            query = query.filter(Appointment.patient_id == patient_id)
        if status_filter:
            if status_filter not in APPOINTMENT_STATUSES:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Estado inválido: {status_filter}"
                )
            query = query.filter(Appointment.status == status_filter)
        if date:
            query = query.filter(Appointment.date == AppointmentService._parse_date(date))

        return query.order_by(Appointment.date.desc(), Appointment.time.desc(), Appointment.id.desc()).all()

    @staticmethod
    def list_upcoming(db: Session, user: UserContext, limit: int = 10) -> List[Appointment]:
        """Active appointments from today onward, soonest first."""
        today = utc_now().date()
        return AppointmentService._scoped_query(db, user).filter(
            Appointment.date >= today,
            Appointment.status.in_(ACTIVE_APPOINTMENT_STATUSES),
        ).order_by(Appointment.date.asc(), Appointment.time.asc(), Appointment.id.asc()).limit(limit).all()

    @staticmethod
    def get_appointment(db: Session, appointment_id: int, user: UserContext) -> Appointment:
        """
        Get an appointment visible to the caller.

        Raises:
            HTTPException: 404 if missing or not visible to the caller
        """
        appointment = AppointmentService._scoped_query(db, user).filter(
            Appointment.id == appointment_id
        ).first()
        if not appointment:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Cita no encontrada"
            )
        return appointment

    @staticmethod
    def get_statistics(db: Session, user: UserContext) -> Dict[str, int]:
        """Counts per status plus the number of upcoming active appointments."""
        base = AppointmentService._scope(
            db.query(Appointment.status, func.count(Appointment.id)), user
        ).group_by(Appointment.status)
        counts = {appointment_status: 0 for appointment_status in APPOINTMENT_STATUSES}
        for appointment_status, count in base.all():
            counts[appointment_status] = count

        today = utc_now().date()
        upcoming = AppointmentService._scope(db.query(Appointment), user).filter(
            Appointment.date >= today,
            Appointment.status.in_(ACTIVE_APPOINTMENT_STATUSES),
        ).count()

        return {
            "total": sum(counts.values()),
            **counts,
            "upcoming": upcoming,
        }

    # ===== Updates and transitions =====

    @staticmethod
    def update_appointment(
        db: Session,
        appointment_id: int,
        user: UserContext,
        updates: Dict[str, Any],
    ) -> Appointment:
        """
        Partially update an appointment.

        Date and time changes go through reschedule_appointment. A status
        change obeys the same rules as the transition endpoints: cancelled
        and completed appointments cannot leave their status.
        """
        appointment = AppointmentService.get_appointment(db, appointment_id, user)

        new_status = updates.get("status")
        if new_status is not None and new_status != appointment.status:
            if new_status not in APPOINTMENT_STATUSES:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Estado inválido: {new_status}"
                )
            AppointmentService._ensure_not_terminal(appointment)

        for field, value in updates.items():
            if field not in UPDATABLE_FIELDS:
                continue
            if field == "type":
                AppointmentService._validate_type(value)
            elif field == "payment_status" and value not in PAYMENT_STATUSES:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Estado de pago inválido: {value}"
                )
            setattr(appointment, field, value)

        if new_status is not None and new_status != appointment.status:
            appointment.status = new_status
            if new_status == "cancelled" and updates.get("cancellation_reason"):
                appointment.cancellation_reason = updates["cancellation_reason"]

        db.commit()
        db.refresh(appointment)
        logger.info(f"Updated appointment {appointment_id}: {sorted(k for k in updates if k in UPDATABLE_FIELDS or k == 'status')}")
        return appointment

    @staticmethod
    def _transition(
        db: Session,
        appointment_id: int,
        user: UserContext,
        new_status: str,
        **fields: Any,
    ) -> Appointment:
        appointment = AppointmentService.get_appointment(db, appointment_id, user)
        AppointmentService._ensure_not_terminal(appointment)

        appointment.status = new_status
        for field, value in fields.items():
            if value is not None:
                setattr(appointment, field, value)

        db.commit()
        db.refresh(appointment)
        logger.info(f"Appointment {appointment_id} -> {new_status} by user {user.user_id}")
        return appointment

    @staticmethod
    def cancel_appointment(
        db: Session, appointment_id: int, user: UserContext, reason: Optional[str] = None
    ) -> Appointment:
        """Cancel an active appointment. Cancelled slots become free again."""
        return AppointmentService._transition(
            db, appointment_id, user, "cancelled", cancellation_reason=reason
        )

    @staticmethod
    def confirm_appointment(db: Session, appointment_id: int, user: UserContext) -> Appointment:
        return AppointmentService._transition(db, appointment_id, user, "confirmed")

    @staticmethod
    def complete_appointment(
        db: Session, appointment_id: int, user: UserContext, notes: Optional[str] = None
    ) -> Appointment:
        return AppointmentService._transition(db, appointment_id, user, "completed", notes=notes)

    @staticmethod
    def reschedule_appointment(
        db: Session,
        appointment_id: int,
        user: UserContext,
        date: Any,
        time: str,
        mode: Optional[str] = None,
    ) -> Appointment:
        """
        Move an active appointment to another date and time.

        In atomic mode the target slot is checked (ignoring this
        appointment) under the professional lock.
        """
        appointment = AppointmentService.get_appointment(db, appointment_id, user)
        AppointmentService._ensure_not_terminal(appointment)

        new_date = AppointmentService._parse_date(date)
        new_time = AppointmentService._validate_time(time)

        try:
            if AppointmentService._resolve_mode(mode) == RESERVATION_MODE_ATOMIC:
                AppointmentService._lock_professional(db, appointment.professional_id)
                if AppointmentService.has_active_conflict(
                    db, appointment.professional_id, new_date, new_time,
                    exclude_appointment_id=appointment.id,
                ):
                    raise HTTPException(
                        status_code=status.HTTP_409_CONFLICT,
                        detail="El horario seleccionado ya no está disponible"
                    )

            appointment.date = new_date
            appointment.time = new_time
            db.commit()
        except HTTPException:
            db.rollback()
            raise

        db.refresh(appointment)
        logger.info(f"Rescheduled appointment {appointment_id} to {new_date} {new_time}")
        return appointment

    @staticmethod
    def delete_appointment(db: Session, appointment_id: int, user: UserContext) -> None:
        appointment = AppointmentService.get_appointment(db, appointment_id, user)
        db.delete(appointment)
        db.commit()
        logger.info(f"Deleted appointment {appointment_id} by user {user.user_id}")
