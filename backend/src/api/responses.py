"""
Shared response models for API endpoints.

Models serialize ORM objects into the camelCase JSON the frontend
expects. Every endpoint wraps its payload in the standard envelope
{success, message?, data?, warning?}.
"""

from datetime import datetime, date
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model reading ORM attributes and dumping camelCase keys."""
    model_config = ConfigDict(from_attributes=True, alias_generator=to_camel, populate_by_name=True)

    def dump(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class UserResponse(CamelModel):
    """Response model for user identity."""
    id: int
    email: str
    first_name: str
    last_name: str
    role: str
    is_registered: bool
    is_active: bool


class ProfessionalResponse(CamelModel):
    id: int
    user_id: int
    phone: Optional[str] = None
    specialty: Optional[str] = None
    license_number: Optional[str] = None
    is_active: bool


class PatientResponse(CamelModel):
    """Response model for a patient profile."""
    id: int
    user_id: int
    assigned_professional_id: int
    created_by_professional_id: int
    source: str
    phone: Optional[str] = None
    date_of_birth: Optional[date] = None  # Serialized as YYYY-MM-DD
    gender: Optional[str] = None
    address: Dict[str, Any] = {}
    emergency_contact: Dict[str, Any] = {}
    medical_history: Dict[str, Any] = {}
    psychological_history: Dict[str, Any] = {}
    insurance: Dict[str, Any] = {}
    consents: Dict[str, Any] = {}
    is_active: bool
    created_at: datetime
    user: Optional[UserResponse] = None


class DiaryNoteResponse(CamelModel):
    id: int
    patient_id: int
    created_by_professional_id: Optional[int] = None
    author: Optional[str] = None
    text: str
    created_at: datetime


class AppointmentResponse(CamelModel):
    """Response model for an appointment."""
    id: int
    professional_id: int
    patient_id: int
    patient_name: Optional[str] = None
    professional_name: Optional[str] = None
    date: date  # Serialized as YYYY-MM-DD
    time: str
    type: str
    status: str
    duration: Optional[int] = None
    reason: Optional[str] = None
    notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    is_video_call: bool
    payment_status: str
    amount: Optional[float] = None
    created_at: datetime
    updated_at: datetime


class InvitationLogResponse(CamelModel):
    id: int
    channel: str
    status: str
    provider_id: Optional[str] = None
    provider_status: Optional[str] = None
    error_message: Optional[str] = None
    error_code: Optional[str] = None
    sent_at: datetime


class InvitationResponse(CamelModel):
    """Response model for an invitation (logs omitted in listings)."""
    id: int
    code: str
    professional_id: int
    patient_name: str
    patient_email: Optional[str] = None
    patient_phone: Optional[str] = None
    patient_data: Dict[str, Any] = {}
    custom_message: Optional[str] = None
    channels: List[str] = []
    status: str
    expires_at: datetime
    used_at: Optional[datetime] = None
    created_at: datetime


class InvitationDetailResponse(InvitationResponse):
    logs: List[InvitationLogResponse] = []


def serialize_appointment(appointment: Any) -> Dict[str, Any]:
    """Appointment dict including the professional's display name when loaded."""
    data = AppointmentResponse.model_validate(appointment).dump()
    professional = getattr(appointment, "professional", None)
    if professional is not None and professional.user is not None:
        data["professionalName"] = professional.user.full_name
    return data


def envelope(
    data: Any = None,
    message: Optional[str] = None,
    **extra: Any,
) -> Dict[str, Any]:
    """Build a success envelope, omitting empty keys."""
    body: Dict[str, Any] = {"success": True}
    if message is not None:
        body["message"] = message
    if data is not None:
        body["data"] = data
    for key, value in extra.items():
        if value is not None:
            body[key] = value
    return body
