"""
Unit tests for invitation redemption, professional sign-up and login.
"""

import pytest
from datetime import date, timedelta
from unittest.mock import patch

from fastapi import HTTPException

from models import Invitation, Patient, User
from services.invitation_service import InvitationService
from services.jwt_service import jwt_service
from services.registration_service import RegistrationService
from tests.utils import FakeDeliveryGateway, create_professional
from utils.datetime_utils import utc_now


async def _invite(db_session, professional, gateway, **overrides):
    kwargs = {
        "first_name": "Ana",
        "last_name": "López",
        "patient_email": "ana@example.com",
        "patient_phone": "+525512345678",
        "channels": ["EMAIL"],
        "intake": {
            "date_of_birth": "1990-05-17",
            "gender": "female",
            "address": "Av. Reforma 123",
            "emergency_contact": "Pedro López",
            "emergency_phone": "+525598765432",
            "allergies": "polen, nueces",
            "current_medications": ["sertralina"],
            "medical_history": "asma",
        },
    }
    kwargs.update(overrides)
    result = await InvitationService.issue_invitation(db_session, professional, gateway, **kwargs)
    return result.invitation


class TestRegisterPatientWithInvitation:
    """Test redemption of an invitation code into a patient account."""

    @pytest.mark.asyncio
    async def test_redeem_creates_user_profile_and_marks_used(self, db_session):
        _, professional = create_professional(db_session)
        gateway = FakeDeliveryGateway()
        invitation = await _invite(db_session, professional, gateway)

        result = await RegistrationService.register_patient_with_invitation(
            db_session, invitation.code, "secret123", gateway, consents={"privacy": True}
        )

        user = result.user
        assert user.email == "ana@example.com"
        assert user.role == "patient"
        assert user.is_registered is True
        assert jwt_service.verify_password("secret123", user.password_hash)

        patient = result.patient
        assert patient.assigned_professional_id == professional.id
        assert patient.created_by_professional_id == professional.id
        assert patient.source == "invitation"
        assert patient.date_of_birth == date(1990, 5, 17)
        assert patient.address == {"street": "Av. Reforma 123"}
        assert patient.emergency_contact == {"name": "Pedro López", "phone": "+525598765432"}
        assert patient.medical_history["allergies"] == ["polen", "nueces"]
        assert patient.medical_history["current_medications"] == ["sertralina"]
        assert patient.medical_history["medical_conditions"] == ["asma"]
        assert patient.consents == {"privacy": True}

        db_session.refresh(invitation)
        assert invitation.status == "registered"
        assert invitation.used_at is not None

        payload = jwt_service.verify_token(result.token)
        assert payload is not None
        assert payload.sub == str(user.id)

    @pytest.mark.asyncio
    async def test_welcome_email_sent_after_commit(self, db_session):
        _, professional = create_professional(db_session)
        gateway = FakeDeliveryGateway()
        invitation = await _invite(db_session, professional, gateway)

        await RegistrationService.register_patient_with_invitation(db_session, invitation.code, "secret123", gateway)

        channel, destination, content = gateway.sent[-1]
        assert channel == "EMAIL"
        assert destination == "ana@example.com"
        assert "Bienvenido" in content.subject

    @pytest.mark.asyncio
    async def test_welcome_email_failure_does_not_fail_registration(self, db_session):
        _, professional = create_professional(db_session)
        invitation = await _invite(db_session, professional, FakeDeliveryGateway())
        failing = FakeDeliveryGateway(fail_channels={"EMAIL"})

        result = await RegistrationService.register_patient_with_invitation(
            db_session, invitation.code, "secret123", failing
        )

        assert result.user.id is not None
        assert db_session.query(Patient).count() == 1

    @pytest.mark.asyncio
    async def test_code_redeems_only_once(self, db_session):
        _, professional = create_professional(db_session)
        gateway = FakeDeliveryGateway()
        invitation = await _invite(db_session, professional, gateway)
        await RegistrationService.register_patient_with_invitation(db_session, invitation.code, "secret123", gateway)

        with pytest.raises(HTTPException) as exc_info:
            await RegistrationService.register_patient_with_invitation(
                db_session, invitation.code, "another123", gateway
            )

        assert exc_info.value.status_code == 400
        assert db_session.query(User).filter(User.role == "patient").count() == 1

    @pytest.mark.asyncio
    async def test_expired_code_rejected_and_flipped(self, db_session):
        _, professional = create_professional(db_session)
        gateway = FakeDeliveryGateway()
        invitation = await _invite(db_session, professional, gateway, expiration_days=7)

        with patch("services.invitation_service.utc_now", return_value=utc_now() + timedelta(days=8)):
            with pytest.raises(HTTPException) as exc_info:
                await RegistrationService.register_patient_with_invitation(
                    db_session, invitation.code, "secret123", gateway
                )

        assert exc_info.value.status_code == 400
        db_session.refresh(invitation)
        assert invitation.status == "expired"
        assert db_session.query(User).filter(User.email == "ana@example.com").first() is None

    @pytest.mark.asyncio
    async def test_failure_rolls_back_everything(self, db_session):
        """A failure after the user row is flushed leaves no trace."""
        _, professional = create_professional(db_session)
        gateway = FakeDeliveryGateway()
        invitation = await _invite(db_session, professional, gateway)

        with patch.object(RegistrationService, "_upsert_patient_profile", side_effect=RuntimeError("disk full")):
            with pytest.raises(HTTPException) as exc_info:
                await RegistrationService.register_patient_with_invitation(
                    db_session, invitation.code, "secret123", gateway
                )

        assert exc_info.value.status_code == 500
        db_session.expire_all()
        assert db_session.query(User).filter(User.email == "ana@example.com").first() is None
        assert db_session.query(Patient).count() == 0
        assert db_session.get(Invitation, invitation.id).status == "pending"

    @pytest.mark.asyncio
    async def test_existing_registered_email_conflicts(self, db_session):
        _, professional = create_professional(db_session)
        gateway = FakeDeliveryGateway()
        invitation = await _invite(db_session, professional, gateway, patient_email="therapist@example.com")

        with pytest.raises(HTTPException) as exc_info:
            await RegistrationService.register_patient_with_invitation(
                db_session, invitation.code, "secret123", gateway
            )

        assert exc_info.value.status_code == 409
        db_session.refresh(invitation)
        assert invitation.status == "pending"

    @pytest.mark.asyncio
    async def test_existing_unregistered_user_is_completed(self, db_session):
        """A patient created directly by the professional can later redeem an invitation."""
        _, professional = create_professional(db_session)
        gateway = FakeDeliveryGateway()
        placeholder = User(
            email="ana@example.com", first_name="Ana", last_name="L", role="patient",
            is_registered=False, is_active=True,
        )
        db_session.add(placeholder)
        db_session.commit()
        invitation = await _invite(db_session, professional, gateway)

        result = await RegistrationService.register_patient_with_invitation(
            db_session, invitation.code, "secret123", gateway
        )

        assert result.user.id == placeholder.id
        assert result.user.is_registered is True
        assert result.user.last_name == "López"
        assert db_session.query(User).filter(User.email == "ana@example.com").count() == 1

    @pytest.mark.asyncio
    async def test_concurrent_redemption_after_lookup_is_rejected(self, db_session):
        """The code is consumed by another request between this one's lookup and its writes."""
        _, professional = create_professional(db_session)
        gateway = FakeDeliveryGateway()
        placeholder = User(
            email="ana@example.com", first_name="Ana", last_name="L", role="patient",
            is_registered=False, is_active=True,
        )
        db_session.add(placeholder)
        db_session.commit()
        invitation = await _invite(db_session, professional, gateway)
        find_valid_by_code = InvitationService.find_valid_by_code

        def lookup_then_redeemed_elsewhere(db, code):
            found = find_valid_by_code(db, code)
            db.query(Invitation).filter(Invitation.id == found.id).update(
                {"status": "registered", "used_at": utc_now()}, synchronize_session=False
            )
            db.commit()
            return found

        with patch(
            "services.registration_service.InvitationService.find_valid_by_code",
            side_effect=lookup_then_redeemed_elsewhere,
        ):
            with pytest.raises(HTTPException) as exc_info:
                await RegistrationService.register_patient_with_invitation(
                    db_session, invitation.code, "other-secret", gateway
                )

        assert exc_info.value.status_code == 400
        assert exc_info.value.detail == "Código de invitación inválido o expirado"
        db_session.expire_all()
        user = db_session.get(User, placeholder.id)
        assert user.is_registered is False
        assert user.password_hash is None
        assert db_session.query(Patient).count() == 0
        assert gateway.channels_sent() == ["EMAIL"]

    @pytest.mark.asyncio
    async def test_claim_only_succeeds_for_pending(self, db_session):
        _, professional = create_professional(db_session)
        invitation = await _invite(db_session, professional, FakeDeliveryGateway())

        assert InvitationService.claim_for_registration(db_session, invitation) is True
        db_session.commit()
        assert InvitationService.claim_for_registration(db_session, invitation) is False

        db_session.expire_all()
        stored = db_session.get(Invitation, invitation.id)
        assert stored.status == "registered"
        assert stored.used_at is not None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("code,password", [("", "secret123"), ("ABCD1234", ""), ("ABCD1234", "123")])
    async def test_missing_input(self, db_session, code, password):
        with pytest.raises(HTTPException) as exc_info:
            await RegistrationService.register_patient_with_invitation(
                db_session, code, password, FakeDeliveryGateway()
            )

        assert exc_info.value.status_code == 400


class TestProfessionalAccounts:
    def test_register_professional(self, db_session):
        result = RegistrationService.register_professional(
            db_session, " New@Example.com ", "secret123", "Carlos", "Ruiz", specialty="Terapia familiar"
        )

        assert result.user.email == "new@example.com"
        assert result.user.role == "professional"
        assert result.professional.specialty == "Terapia familiar"
        assert jwt_service.verify_token(result.token).professional_id == result.professional.id

    def test_register_duplicate_email(self, db_session):
        create_professional(db_session)

        with pytest.raises(HTTPException) as exc_info:
            RegistrationService.register_professional(
                db_session, "therapist@example.com", "secret123", "Otra", "Persona"
            )

        assert exc_info.value.status_code == 409

    def test_login(self, db_session):
        _, professional = create_professional(db_session)

        result = RegistrationService.login(db_session, "THERAPIST@example.com", "secret123")

        assert result.professional.id == professional.id
        assert jwt_service.verify_token(result.token).role == "professional"

    @pytest.mark.parametrize("email,password", [
        ("therapist@example.com", "wrong-password"),
        ("unknown@example.com", "secret123"),
        (None, None),
    ])
    def test_login_bad_credentials(self, db_session, email, password):
        create_professional(db_session)

        with pytest.raises(HTTPException) as exc_info:
            RegistrationService.login(db_session, email, password)

        assert exc_info.value.status_code == 401

    def test_login_inactive_user(self, db_session):
        user, _ = create_professional(db_session)
        user.is_active = False
        db_session.commit()

        with pytest.raises(HTTPException) as exc_info:
            RegistrationService.login(db_session, "therapist@example.com", "secret123")

        assert exc_info.value.status_code == 403
