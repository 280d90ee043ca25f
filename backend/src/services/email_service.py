"""
Transactional email service backed by the SendGrid v3 API.

Returns DeliveryResult for every send; provider and transport errors are
captured, never raised.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from core.config import SENDGRID_API_KEY, EMAIL_FROM, DELIVERY_TIMEOUT_SECONDS
from shared_types.delivery import DeliveryResult

logger = logging.getLogger(__name__)

SENDGRID_SEND_URL = "https://api.sendgrid.com/v3/mail/send"


class EmailService:
    """Send plain-text + HTML emails through SendGrid."""

    provider = "sendgrid"

    def __init__(
        self,
        api_key: Optional[str] = None,
        from_email: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.api_key = api_key if api_key is not None else SENDGRID_API_KEY
        self.from_email = from_email or EMAIL_FROM
        self.timeout = timeout if timeout is not None else DELIVERY_TIMEOUT_SECONDS

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def send_email(self, to: str, subject: str, text: str, html: Optional[str] = None) -> DeliveryResult:
        """
        Send a single email.

        Args:
            to: Recipient address
            subject: Subject line
            text: Plain-text body
            html: Optional HTML body

        Returns:
            DeliveryResult with the SendGrid message id on success
        """
        if not self.is_configured:
            return DeliveryResult.failure("Servicio de email no configurado", provider=self.provider)
        if not to or "@" not in to:
            return DeliveryResult.failure("Dirección de email inválida", provider=self.provider)

        content: List[Dict[str, str]] = [{"type": "text/plain", "value": text}]
        if html:
            content.append({"type": "text/html", "value": html})

        payload: Dict[str, Any] = {
            "personalizations": [{"to": [{"email": to}]}],
            "from": {"email": self.from_email},
            "subject": subject,
            "content": content,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    SENDGRID_SEND_URL,
                    json=payload,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            error, code = _extract_sendgrid_error(e.response)
            logger.warning(f"SendGrid send failed ({e.response.status_code}): {error}")
            return DeliveryResult.failure(error, code=code, provider=self.provider)
        except httpx.HTTPError as e:
            logger.warning(f"SendGrid transport error: {e}")
            return DeliveryResult.failure(f"Error de conexión con el servicio de email: {e}", provider=self.provider)

        message_id = response.headers.get("X-Message-Id")
        logger.info(f"Email sent: {message_id}")
        return DeliveryResult(
            success=True,
            provider_message_id=message_id,
            provider_status="sent",
            to=to,
            provider=self.provider,
        )


def _extract_sendgrid_error(response: httpx.Response) -> tuple[str, Optional[Any]]:
    """SendGrid errors look like {"errors": [{"message": ..., "field": ...}]}."""
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}", response.status_code
    errors = body.get("errors") if isinstance(body, dict) else None
    if errors and isinstance(errors, list) and isinstance(errors[0], dict):
        return errors[0].get("message") or f"HTTP {response.status_code}", response.status_code
    return f"HTTP {response.status_code}", response.status_code
