"""
Delivery gateway: single entry point for outbound notifications.

send() never raises. Provider failures, unconfigured providers and
unexpected exceptions all come back as DeliveryResult(success=False), so
callers can log the attempt and carry on.
"""

import logging
from typing import Optional

from core.constants import INVITATION_CHANNELS
from services.email_service import EmailService
from services.twilio_service import TwilioService
from shared_types.delivery import DeliveryResult, MessageContent

logger = logging.getLogger(__name__)


class DeliveryGateway:
    """Route a message to the provider for its channel."""

    def __init__(
        self,
        twilio: Optional[TwilioService] = None,
        email: Optional[EmailService] = None,
    ):
        self.twilio = twilio or TwilioService()
        self.email = email or EmailService()

    async def send(self, channel: str, destination: Optional[str], content: MessageContent) -> DeliveryResult:
        """
        Deliver content over one channel.

        Args:
            channel: 'SMS', 'EMAIL' or 'WHATSAPP'
            destination: Phone number or email address
            content: Message payload

        Returns:
            DeliveryResult describing the outcome
        """
        channel = (channel or "").upper()
        if channel not in INVITATION_CHANNELS:
            return DeliveryResult.failure(f"Canal no soportado: {channel}")
        if not destination:
            return DeliveryResult.failure(f"Destino requerido para {channel}")

        try:
            if channel == "SMS":
                result = await self.twilio.send_sms(destination, content.body)
            elif channel == "WHATSAPP":
                result = await self.twilio.send_whatsapp(destination, content.body)
            else:
                result = await self.email.send_email(
                    destination,
                    content.subject or "",
                    content.body,
                    content.html,
                )
        except Exception as e:
            logger.exception(f"Unexpected error delivering {channel} message: {e}")
            return DeliveryResult.failure(str(e) or type(e).__name__)

        if result.success:
            logger.info(f"{channel} delivery succeeded: {result.provider_message_id}")
        else:
            logger.warning(f"{channel} delivery failed: {result.error} [code={result.code}]")
        return result

    async def send_otp(self, phone: str, channel: str = "sms") -> DeliveryResult:
        """Start a phone verification challenge."""
        try:
            return await self.twilio.send_verification(phone, channel)
        except Exception as e:
            logger.exception(f"Unexpected error sending OTP: {e}")
            return DeliveryResult.failure(str(e) or type(e).__name__)

    async def verify_otp(self, phone: str, code: str) -> DeliveryResult:
        """Check a phone verification code."""
        try:
            return await self.twilio.check_verification(phone, code)
        except Exception as e:
            logger.exception(f"Unexpected error verifying OTP: {e}")
            return DeliveryResult.failure(str(e) or type(e).__name__)


_delivery_gateway: Optional[DeliveryGateway] = None


def get_delivery_gateway() -> DeliveryGateway:
    """FastAPI dependency returning the process-wide gateway."""
    global _delivery_gateway
    if _delivery_gateway is None:
        _delivery_gateway = DeliveryGateway()
    return _delivery_gateway
