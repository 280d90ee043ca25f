"""
Unit tests for the schedule store and slot resolver.
"""

import pytest
from datetime import date

from fastapi import HTTPException

from models import Appointment, ScheduleTemplate
from services.availability_service import AvailabilityService
from tests.utils import create_patient, create_professional

MONDAY = date(2025, 1, 6)
SATURDAY = date(2025, 1, 11)
SUNDAY = date(2025, 1, 5)


def _book(db, professional, patient_user, day, time, status="reserved"):
    appointment = Appointment(
        professional_id=professional.id,
        patient_id=patient_user.id,
        patient_name=patient_user.full_name,
        date=day,
        time=time,
        type="consultation",
        status=status,
    )
    db.add(appointment)
    db.commit()
    return appointment


class TestScheduleStore:
    """Test reading and replacing weekly schedules."""

    def test_default_schedule_when_none_saved(self, db_session):
        _, professional = create_professional(db_session)

        schedule = AvailabilityService.get_schedule(db_session, professional.id)

        assert set(schedule.keys()) == {"1", "2", "3", "4", "5"}
        assert schedule["1"][0] == "09:00"
        assert schedule["1"][-1] == "15:30"
        assert "12:00" not in schedule["1"]
        assert "13:00" not in schedule["1"]
        assert len(schedule["1"]) == 10

    def test_default_is_not_persisted(self, db_session):
        _, professional = create_professional(db_session)

        AvailabilityService.get_schedule(db_session, professional.id)

        assert db_session.query(ScheduleTemplate).count() == 0

    def test_default_copies_are_independent(self, db_session):
        _, professional = create_professional(db_session)

        first = AvailabilityService.get_schedule(db_session, professional.id)
        first["1"].append("20:00")

        assert "20:00" not in AvailabilityService.get_schedule(db_session, professional.id)["1"]

    def test_replace_is_wholesale(self, db_session):
        """Days missing from the new schedule lose their slots."""
        _, professional = create_professional(db_session)

        AvailabilityService.replace_schedule(db_session, professional.id, {"1": ["09:00"], "2": ["10:00"]})
        stored = AvailabilityService.replace_schedule(db_session, professional.id, {"3": ["11:00"]})

        assert stored == {"3": ["11:00"]}
        assert AvailabilityService.get_schedule(db_session, professional.id) == {"3": ["11:00"]}
        assert db_session.query(ScheduleTemplate).count() == 1

    def test_empty_saved_schedule_falls_back_to_default(self, db_session):
        _, professional = create_professional(db_session)

        AvailabilityService.replace_schedule(db_session, professional.id, {})

        assert "1" in AvailabilityService.get_schedule(db_session, professional.id)

    @pytest.mark.parametrize("payload", [
        ["09:00"],
        {"7": ["09:00"]},
        {"monday": ["09:00"]},
        {"1": "09:00"},
        {"1": ["9:00"]},
        {"1": ["25:00"]},
    ])
    def test_invalid_schedule_rejected(self, db_session, payload):
        _, professional = create_professional(db_session)

        with pytest.raises(HTTPException) as exc_info:
            AvailabilityService.replace_schedule(db_session, professional.id, payload)

        assert exc_info.value.status_code == 400
        assert db_session.query(ScheduleTemplate).count() == 0


class TestSlotResolver:
    """Test availability computed from the template and active appointments."""

    def test_default_monday_all_available(self, db_session):
        _, professional = create_professional(db_session)

        slots = AvailabilityService.resolve_slots(db_session, professional.id, MONDAY)

        assert [slot.time for slot in slots] == AvailabilityService.default_schedule()["1"]
        assert all(slot.available for slot in slots)
        assert all(slot.professional_id == professional.id for slot in slots)

    @pytest.mark.parametrize("day", [SATURDAY, SUNDAY])
    def test_default_weekend_is_empty(self, db_session, day):
        _, professional = create_professional(db_session)

        assert AvailabilityService.resolve_slots(db_session, professional.id, day) == []

    @pytest.mark.parametrize("status,available", [
        ("reserved", False),
        ("scheduled", False),
        ("confirmed", False),
        ("completed", True),
        ("cancelled", True),
    ])
    def test_only_active_appointments_block(self, db_session, status, available):
        _, professional = create_professional(db_session)
        patient_user, _ = create_patient(db_session, professional)
        AvailabilityService.replace_schedule(db_session, professional.id, {"1": ["09:00", "09:30"]})
        _book(db_session, professional, patient_user, MONDAY, "09:00", status=status)

        slots = AvailabilityService.resolve_slots(db_session, professional.id, MONDAY)

        assert [slot.to_dict() for slot in slots] == [
            {"time": "09:00", "available": available, "professionalId": professional.id},
            {"time": "09:30", "available": True, "professionalId": professional.id},
        ]

    def test_other_professionals_and_dates_do_not_block(self, db_session):
        _, professional = create_professional(db_session)
        _, other = create_professional(db_session, email="other@example.com")
        patient_user, _ = create_patient(db_session, professional)
        _book(db_session, other, patient_user, MONDAY, "09:00")
        _book(db_session, professional, patient_user, date(2025, 1, 13), "09:00")

        slots = AvailabilityService.resolve_slots(db_session, professional.id, MONDAY)

        assert slots[0].time == "09:00"
        assert slots[0].available is True

    def test_duplicate_labels_preserved_in_order(self, db_session):
        _, professional = create_professional(db_session)
        patient_user, _ = create_patient(db_session, professional)
        AvailabilityService.replace_schedule(db_session, professional.id, {"1": ["10:00", "09:00", "10:00"]})
        _book(db_session, professional, patient_user, MONDAY, "10:00")

        slots = AvailabilityService.resolve_slots(db_session, professional.id, MONDAY)

        assert [(slot.time, slot.available) for slot in slots] == [
            ("10:00", False), ("09:00", True), ("10:00", False),
        ]

    def test_get_available_slots_invalid_date(self, db_session):
        _, professional = create_professional(db_session)

        with pytest.raises(HTTPException) as exc_info:
            AvailabilityService.get_available_slots(db_session, professional.id, "not-a-date")

        assert exc_info.value.status_code == 400

    def test_get_available_slots_unknown_professional(self, db_session):
        with pytest.raises(HTTPException) as exc_info:
            AvailabilityService.get_available_slots(db_session, 999, "2025-01-06")

        assert exc_info.value.status_code == 404


class TestResolveProfessionalForUser:
    def test_explicit_professional_wins(self, db_session):
        assert AvailabilityService.resolve_professional_for_user(
            db_session, "patient", 1, None, requested_professional_id=5
        ) == 5

    def test_patient_uses_assigned_professional(self, db_session):
        _, professional = create_professional(db_session)
        patient_user, _ = create_patient(db_session, professional)

        assert AvailabilityService.resolve_professional_for_user(
            db_session, "patient", patient_user.id, None
        ) == professional.id

    def test_patient_without_assignment(self, db_session):
        with pytest.raises(HTTPException) as exc_info:
            AvailabilityService.resolve_professional_for_user(db_session, "patient", 12345, None)

        assert exc_info.value.status_code == 400

    def test_professional_uses_own_calendar(self, db_session):
        assert AvailabilityService.resolve_professional_for_user(db_session, "professional", 1, 9) == 9
