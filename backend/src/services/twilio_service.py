"""
Twilio service for SMS, WhatsApp and phone verification (OTP).

Uses the Twilio REST API directly over httpx. Every public method returns
a DeliveryResult; provider and transport errors are captured, never raised.
"""

import logging
from typing import Any, Dict, Optional

import httpx

from core.config import (
    TWILIO_ACCOUNT_SID,
    TWILIO_AUTH_TOKEN,
    TWILIO_PHONE_NUMBER,
    TWILIO_WHATSAPP_NUMBER,
    TWILIO_VERIFY_SERVICE_SID,
    DEFAULT_PHONE_COUNTRY_CODE,
    DELIVERY_TIMEOUT_SECONDS,
)
from shared_types.delivery import DeliveryResult
from utils.phone_validator import format_e164, last_digits

logger = logging.getLogger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"
TWILIO_VERIFY_BASE = "https://verify.twilio.com/v2"

OTP_CHANNELS = ("sms", "whatsapp", "call")


class TwilioService:
    """Thin async client around the Twilio Messages and Verify APIs."""

    provider = "twilio"

    def __init__(
        self,
        account_sid: Optional[str] = None,
        auth_token: Optional[str] = None,
        phone_number: Optional[str] = None,
        whatsapp_number: Optional[str] = None,
        verify_service_sid: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.account_sid = account_sid if account_sid is not None else TWILIO_ACCOUNT_SID
        self.auth_token = auth_token if auth_token is not None else TWILIO_AUTH_TOKEN
        self.phone_number = phone_number if phone_number is not None else TWILIO_PHONE_NUMBER
        self.whatsapp_number = whatsapp_number if whatsapp_number is not None else TWILIO_WHATSAPP_NUMBER
        self.verify_service_sid = (
            verify_service_sid if verify_service_sid is not None else TWILIO_VERIFY_SERVICE_SID
        )
        self.timeout = timeout if timeout is not None else DELIVERY_TIMEOUT_SECONDS

    @property
    def is_configured(self) -> bool:
        return bool(self.account_sid and self.auth_token)

    def format_phone_number(self, phone: str) -> str:
        """Normalize a phone number to E.164 using the default country code."""
        return format_e164(phone, DEFAULT_PHONE_COUNTRY_CODE)

    async def send_sms(self, to: str, body: str) -> DeliveryResult:
        """Send a plain SMS message."""
        if not self.is_configured or not self.phone_number:
            return DeliveryResult.failure("Servicio de SMS no configurado", provider=self.provider)
        try:
            destination = self.format_phone_number(to)
        except ValueError as e:
            return DeliveryResult.failure(str(e), provider=self.provider)

        return await self._create_message(
            to=destination,
            from_=self.phone_number,
            body=body,
            label="SMS",
        )

    async def send_whatsapp(self, to: str, body: str) -> DeliveryResult:
        """Send a WhatsApp message through the Twilio WhatsApp sender."""
        if not self.is_configured or not self.whatsapp_number:
            return DeliveryResult.failure("Servicio de WhatsApp no configurado", provider=self.provider)
        try:
            destination = f"whatsapp:{self.format_phone_number(to)}"
        except ValueError as e:
            return DeliveryResult.failure(str(e), provider=self.provider)

        sender = self.whatsapp_number
        if not sender.startswith("whatsapp:"):
            sender = f"whatsapp:{sender}"

        return await self._create_message(
            to=destination,
            from_=sender,
            body=body,
            label="WhatsApp",
        )

    async def send_verification(self, phone: str, channel: str = "sms") -> DeliveryResult:
        """Start a Verify OTP challenge for the phone number (Spanish locale)."""
        if not self.is_configured or not self.verify_service_sid:
            return DeliveryResult.failure("Servicio de verificación no configurado", provider=self.provider)
        if channel not in OTP_CHANNELS:
            return DeliveryResult.failure(f"Canal de verificación inválido: {channel}", provider=self.provider)
        try:
            destination = self.format_phone_number(phone)
        except ValueError as e:
            return DeliveryResult.failure(str(e), provider=self.provider)

        url = f"{TWILIO_VERIFY_BASE}/Services/{self.verify_service_sid}/Verifications"
        data = {"To": destination, "Channel": channel, "Locale": "es"}
        payload = await self._post(url, data, label="Verify")
        if isinstance(payload, DeliveryResult):
            return payload

        logger.info(f"OTP sent via {channel} to ***{last_digits(destination)}")
        return DeliveryResult(
            success=True,
            provider_message_id=payload.get("sid"),
            provider_status=payload.get("status"),
            to=destination,
            provider=self.provider,
        )

    async def check_verification(self, phone: str, code: str) -> DeliveryResult:
        """Check an OTP code. success is True only when Twilio reports 'approved'."""
        if not self.is_configured or not self.verify_service_sid:
            return DeliveryResult.failure("Servicio de verificación no configurado", provider=self.provider)
        try:
            destination = self.format_phone_number(phone)
        except ValueError as e:
            return DeliveryResult.failure(str(e), provider=self.provider)

        url = f"{TWILIO_VERIFY_BASE}/Services/{self.verify_service_sid}/VerificationCheck"
        payload = await self._post(url, {"To": destination, "Code": code}, label="VerificationCheck")
        if isinstance(payload, DeliveryResult):
            return payload

        verification_status = payload.get("status")
        approved = verification_status == "approved"
        return DeliveryResult(
            success=approved,
            provider_message_id=payload.get("sid"),
            provider_status=verification_status,
            error=None if approved else "Código de verificación inválido",
            to=destination,
            provider=self.provider,
        )

    async def _create_message(self, to: str, from_: str, body: str, label: str) -> DeliveryResult:
        url = f"{TWILIO_API_BASE}/Accounts/{self.account_sid}/Messages.json"
        payload = await self._post(url, {"To": to, "From": from_, "Body": body}, label=label)
        if isinstance(payload, DeliveryResult):
            return payload

        logger.info(f"{label} sent to ***{last_digits(to)}: {payload.get('sid')}")
        return DeliveryResult(
            success=True,
            provider_message_id=payload.get("sid"),
            provider_status=payload.get("status"),
            to=to,
            provider=self.provider,
        )

    async def _post(self, url: str, data: Dict[str, str], label: str) -> Dict[str, Any] | DeliveryResult:
        """POST form data to Twilio; returns the JSON body or a failure result."""
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(url, data=data, auth=(self.account_sid, self.auth_token))
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            error, code = _extract_twilio_error(e.response)
            logger.warning(f"Twilio {label} request failed ({e.response.status_code}): {error} [code={code}]")
            return DeliveryResult.failure(error, code=code, provider=self.provider)
        except httpx.HTTPError as e:
            logger.warning(f"Twilio {label} transport error: {e}")
            return DeliveryResult.failure(f"Error de conexión con Twilio: {e}", provider=self.provider)
        except ValueError as e:
            logger.warning(f"Twilio {label} returned an unreadable response: {e}")
            return DeliveryResult.failure("Respuesta inválida de Twilio", provider=self.provider)


def _extract_twilio_error(response: httpx.Response) -> tuple[str, Optional[Any]]:
    """Pull message/code out of a Twilio error body, e.g. {"code": 21608, "message": "..."}."""
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}", None
    if not isinstance(body, dict):
        return f"HTTP {response.status_code}", None
    return body.get("message") or f"HTTP {response.status_code}", body.get("code")
