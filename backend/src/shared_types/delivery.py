"""
Shared types for outbound message delivery.

The delivery gateway and the provider services return DeliveryResult
instead of raising, so callers can record failures without aborting.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass
class DeliveryResult:
    """
    Outcome of a single provider call.

    error/code carry the provider's message and machine-readable error code
    unchanged (e.g. Twilio 21608 "number not verified") so clients can
    branch on them.
    """
    success: bool
    provider_message_id: Optional[str] = None
    provider_status: Optional[str] = None
    error: Optional[str] = None
    code: Optional[str] = None
    to: Optional[str] = None
    provider: Optional[str] = None

    @classmethod
    def failure(cls, error: str, code: Optional[Any] = None, provider: Optional[str] = None) -> "DeliveryResult":
        """Build a failed result."""
        return cls(
            success=False,
            error=error,
            code=str(code) if code is not None else None,
            provider=provider,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camelCase shape returned by the API."""
        result: Dict[str, Any] = {"success": self.success}
        if self.provider_message_id is not None:
            result["messageId"] = self.provider_message_id
        if self.provider_status is not None:
            result["status"] = self.provider_status
        if self.to is not None:
            result["to"] = self.to
        if self.error is not None:
            result["error"] = self.error
        if self.code is not None:
            result["code"] = self.code
        return result


@dataclass
class MessageContent:
    """
    Channel-agnostic message payload.

    SMS and WhatsApp only use body. Email uses subject, body as the plain
    text part and html when present.
    """
    body: str
    subject: Optional[str] = None
    html: Optional[str] = None
