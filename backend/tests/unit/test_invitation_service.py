"""
Unit tests for invitation issuance, lookup and lifecycle operations.
"""

import pytest
from datetime import timedelta
from unittest.mock import patch

from fastapi import HTTPException

from models import Invitation
from services.invitation_service import InvitationService
from tests.utils import FakeDeliveryGateway, create_professional
from utils.datetime_utils import utc_now, ensure_utc


async def _issue(db_session, professional, gateway, **overrides):
    kwargs = {
        "first_name": "Ana",
        "last_name": "López",
        "patient_email": "Ana@Example.com",
        "patient_phone": "+525512345678",
        "channels": ["EMAIL"],
    }
    kwargs.update(overrides)
    return await InvitationService.issue_invitation(db_session, professional, gateway, **kwargs)


class TestGenerateInvitationCode:
    def test_code_format(self, db_session):
        code = InvitationService.generate_invitation_code(db_session)

        assert len(code) == 8
        assert code.isalnum()
        assert code == code.upper()

    @pytest.mark.asyncio
    async def test_collisions_are_retried(self, db_session):
        _, professional = create_professional(db_session)
        result = await _issue(db_session, professional, FakeDeliveryGateway())
        taken = result.invitation.code

        with patch("services.invitation_service.secrets.choice", side_effect=list(taken) + list("ZZZZZZZZ")):
            code = InvitationService.generate_invitation_code(db_session)

        assert code == "ZZZZZZZZ"

    @pytest.mark.asyncio
    async def test_exhausted_attempts_conflict(self, db_session):
        _, professional = create_professional(db_session)
        result = await _issue(db_session, professional, FakeDeliveryGateway())
        taken = result.invitation.code

        with patch("services.invitation_service.secrets.choice", side_effect=list(taken) * 3):
            with pytest.raises(HTTPException) as exc_info:
                InvitationService.generate_invitation_code(db_session, max_attempts=3)

        assert exc_info.value.status_code == 409


class TestNormalizeChannels:
    def test_default_is_email(self):
        assert InvitationService.normalize_channels(None) == ["EMAIL"]

    def test_upper_cases_and_deduplicates(self):
        assert InvitationService.normalize_channels(["sms", "EMAIL", "Sms"]) == ["SMS", "EMAIL"]

    def test_empty_list_stays_empty(self):
        assert InvitationService.normalize_channels([]) == []

    def test_unknown_channel(self):
        with pytest.raises(HTTPException) as exc_info:
            InvitationService.normalize_channels(["FAX"])

        assert exc_info.value.status_code == 400


class TestIssueInvitation:
    """Test issuance and per-channel delivery logging."""

    @pytest.mark.asyncio
    async def test_issue_persists_snapshot_and_logs(self, db_session):
        _, professional = create_professional(db_session)
        gateway = FakeDeliveryGateway()

        result = await _issue(
            db_session, professional, gateway,
            channels=["EMAIL", "SMS"],
            custom_message="Nos vemos pronto",
            intake={"date_of_birth": "1990-05-17", "allergies": "polen, nueces", "gender": None},
        )

        invitation = result.invitation
        assert invitation.status == "pending"
        assert invitation.patient_name == "Ana López"
        assert invitation.patient_email == "ana@example.com"
        assert invitation.channels == ["EMAIL", "SMS"]
        assert invitation.patient_data["first_name"] == "Ana"
        assert invitation.patient_data["invitation_email"] == "ana@example.com"
        assert invitation.patient_data["allergies"] == "polen, nueces"
        assert "gender" not in invitation.patient_data

        expires_in = ensure_utc(invitation.expires_at) - utc_now()
        assert timedelta(days=6, hours=23) < expires_in <= timedelta(days=7)

        assert [log.channel for log in invitation.logs] == ["EMAIL", "SMS"]
        assert all(log.status == "sent" for log in invitation.logs)
        assert result.any_delivered is True
        assert result.warning is None
        assert result.registration_url.endswith(f"/register/{invitation.code}")

        assert gateway.sent[0][1] == "ana@example.com"
        assert gateway.sent[1][1] == "+525512345678"
        assert invitation.code in gateway.sent[0][2].body
        assert "Nos vemos pronto" in gateway.sent[1][2].body

    @pytest.mark.asyncio
    async def test_all_channels_failing_still_creates(self, db_session):
        """The invitation is kept with a warning when nothing was delivered."""
        _, professional = create_professional(db_session)
        gateway = FakeDeliveryGateway(fail_channels={"EMAIL"})
        gateway.fail_error = "Connection refused"

        result = await _issue(db_session, professional, gateway)

        assert result.invitation.id is not None
        assert result.invitation.status == "pending"
        assert result.warning is not None
        assert result.deliveries == [{"channel": "EMAIL", "success": False, "error": "Connection refused"}]
        log = result.invitation.logs[0]
        assert log.status == "failed"
        assert log.error_message == "Connection refused"

    @pytest.mark.asyncio
    async def test_provider_error_code_is_logged(self, db_session):
        _, professional = create_professional(db_session)
        gateway = FakeDeliveryGateway(fail_channels={"SMS"})
        gateway.fail_error = "The number is unverified"
        gateway.fail_code = "21608"

        result = await _issue(db_session, professional, gateway, channels=["SMS", "EMAIL"])

        sms_log, email_log = result.invitation.logs
        assert sms_log.status == "failed"
        assert sms_log.error_code == "21608"
        assert email_log.status == "sent"
        assert result.warning is None

    @pytest.mark.asyncio
    async def test_empty_channel_list_creates_with_warning(self, db_session):
        _, professional = create_professional(db_session)
        gateway = FakeDeliveryGateway()

        result = await _issue(db_session, professional, gateway, channels=[])

        assert result.invitation.id is not None
        assert result.invitation.logs == []
        assert gateway.sent == []
        assert result.warning is not None

    @pytest.mark.asyncio
    async def test_patient_name_is_split(self, db_session):
        _, professional = create_professional(db_session)

        result = await _issue(
            db_session, professional, FakeDeliveryGateway(),
            first_name=None, last_name=None, patient_name="María José Ruiz",
        )

        assert result.invitation.patient_data["first_name"] == "María"
        assert result.invitation.patient_data["last_name"] == "José Ruiz"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("overrides", [
        {"first_name": None, "last_name": None},
        {"patient_email": "  "},
        {"channels": ["SMS"], "patient_phone": None},
        {"channels": ["WHATSAPP"], "patient_phone": ""},
        {"expiration_days": 0},
        {"channels": ["PIGEON"]},
    ])
    async def test_validation_errors(self, db_session, overrides):
        _, professional = create_professional(db_session)

        with pytest.raises(HTTPException) as exc_info:
            await _issue(db_session, professional, FakeDeliveryGateway(), **overrides)

        assert exc_info.value.status_code == 400
        assert db_session.query(Invitation).count() == 0


class TestFindValidByCode:
    """Test lookup with lazy expiry."""

    @pytest.mark.asyncio
    async def test_lookup_is_case_insensitive(self, db_session):
        _, professional = create_professional(db_session)
        result = await _issue(db_session, professional, FakeDeliveryGateway())

        found = InvitationService.find_valid_by_code(db_session, f"  {result.invitation.code.lower()} ")

        assert found is not None
        assert found.id == result.invitation.id

    def test_unknown_code(self, db_session):
        assert InvitationService.find_valid_by_code(db_session, "NOPE0000") is None
        assert InvitationService.find_valid_by_code(db_session, "") is None

    @pytest.mark.asyncio
    async def test_expired_invitation_flips_once(self, db_session):
        _, professional = create_professional(db_session)
        result = await _issue(db_session, professional, FakeDeliveryGateway(), expiration_days=7)
        later = utc_now() + timedelta(days=8)

        with patch.object(InvitationService, "_mark_expired", wraps=InvitationService._mark_expired) as mark:
            assert InvitationService.find_valid_by_code(db_session, result.invitation.code, now=later) is None
            assert InvitationService.find_valid_by_code(db_session, result.invitation.code, now=later) is None

        assert mark.call_count == 1
        db_session.refresh(result.invitation)
        assert result.invitation.status == "expired"

    @pytest.mark.asyncio
    async def test_cancelled_invitation_not_found(self, db_session):
        _, professional = create_professional(db_session)
        result = await _issue(db_session, professional, FakeDeliveryGateway())
        InvitationService.cancel_invitation(db_session, result.invitation.id, professional.id)

        assert InvitationService.find_valid_by_code(db_session, result.invitation.code) is None

    @pytest.mark.asyncio
    async def test_public_view(self, db_session):
        _, professional = create_professional(db_session)
        result = await _issue(db_session, professional, FakeDeliveryGateway())

        view = InvitationService.get_public_view(result.invitation)

        assert view["code"] == result.invitation.code
        assert view["patientName"] == "Ana López"
        assert view["professionalName"] == "Laura Méndez"
        assert view["professionalEmail"] == "therapist@example.com"
        assert view["patientData"]["first_name"] == "Ana"


class TestCancelAndResend:
    @pytest.mark.asyncio
    async def test_cancel_only_pending_and_owned(self, db_session):
        _, professional = create_professional(db_session)
        _, other = create_professional(db_session, email="other@example.com")
        result = await _issue(db_session, professional, FakeDeliveryGateway())

        with pytest.raises(HTTPException) as exc_info:
            InvitationService.cancel_invitation(db_session, result.invitation.id, other.id)
        assert exc_info.value.status_code == 404

        InvitationService.cancel_invitation(db_session, result.invitation.id, professional.id)
        assert result.invitation.status == "cancelled"

        with pytest.raises(HTTPException) as exc_info:
            InvitationService.cancel_invitation(db_session, result.invitation.id, professional.id)
        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_resend_uses_original_channels(self, db_session):
        _, professional = create_professional(db_session)
        gateway = FakeDeliveryGateway()
        result = await _issue(db_session, professional, gateway, channels=["SMS", "EMAIL"])
        original_expiry = result.invitation.expires_at

        resent = await InvitationService.resend_invitation(db_session, result.invitation.id, professional, gateway)

        assert [d["channel"] for d in resent.deliveries] == ["SMS", "EMAIL"]
        assert len(resent.invitation.logs) == 4
        assert resent.invitation.expires_at == original_expiry

    @pytest.mark.asyncio
    async def test_resend_skips_channels_without_destination(self, db_session):
        _, professional = create_professional(db_session)
        gateway = FakeDeliveryGateway()
        result = await _issue(db_session, professional, gateway, patient_phone=None)

        resent = await InvitationService.resend_invitation(
            db_session, result.invitation.id, professional, gateway, channels=["sms", "email"]
        )

        assert [d["channel"] for d in resent.deliveries] == ["EMAIL"]

    @pytest.mark.asyncio
    async def test_resend_expired(self, db_session):
        _, professional = create_professional(db_session)
        gateway = FakeDeliveryGateway()
        result = await _issue(db_session, professional, gateway, expiration_days=1)

        with patch("services.invitation_service.utc_now", return_value=utc_now() + timedelta(days=2)):
            with pytest.raises(HTTPException) as exc_info:
                await InvitationService.resend_invitation(db_session, result.invitation.id, professional, gateway)

        assert exc_info.value.status_code == 400
        assert result.invitation.status == "expired"


class TestListingAndHousekeeping:
    @pytest.mark.asyncio
    async def test_stats_and_listing(self, db_session):
        _, professional = create_professional(db_session)
        gateway = FakeDeliveryGateway()
        first = await _issue(db_session, professional, gateway)
        await _issue(db_session, professional, gateway, patient_email="otro@example.com")
        InvitationService.cancel_invitation(db_session, first.invitation.id, professional.id)

        stats = InvitationService.get_invitation_stats(db_session, professional.id)
        assert stats == {"total": 2, "pending": 1, "registered": 0, "expired": 0, "cancelled": 1}

        items, total = InvitationService.list_invitations(db_session, professional.id, status_filter="pending")
        assert total == 1
        assert items[0].patient_email == "otro@example.com"

        items, total = InvitationService.list_invitations(db_session, professional.id, page=2, limit=1)
        assert total == 2
        assert len(items) == 1

    def test_list_rejects_unknown_status(self, db_session):
        with pytest.raises(HTTPException) as exc_info:
            InvitationService.list_invitations(db_session, 1, status_filter="lost")

        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_get_invitation_includes_logs(self, db_session):
        _, professional = create_professional(db_session)
        result = await _issue(db_session, professional, FakeDeliveryGateway(), channels=["EMAIL", "SMS"])

        invitation = InvitationService.get_invitation(db_session, result.invitation.id, professional.id)

        assert len(invitation.logs) == 2

    @pytest.mark.asyncio
    async def test_sweep_expires_only_overdue_pending(self, db_session):
        _, professional = create_professional(db_session)
        gateway = FakeDeliveryGateway()
        short = await _issue(db_session, professional, gateway, expiration_days=1)
        long = await _issue(db_session, professional, gateway, patient_email="b@example.com", expiration_days=30)
        cancelled = await _issue(db_session, professional, gateway, patient_email="c@example.com", expiration_days=1)
        InvitationService.cancel_invitation(db_session, cancelled.invitation.id, professional.id)

        count = InvitationService.expire_stale_invitations(db_session, now=utc_now() + timedelta(days=2))

        assert count == 1
        db_session.expire_all()
        assert db_session.get(Invitation, short.invitation.id).status == "expired"
        assert db_session.get(Invitation, long.invitation.id).status == "pending"
        assert db_session.get(Invitation, cancelled.invitation.id).status == "cancelled"
