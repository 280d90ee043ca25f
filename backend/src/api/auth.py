# pyright: reportMissingTypeStubs=false
"""
Authentication API endpoints.

Handles professional sign-up, patient registration through an invitation
code, password login, the caller's profile and phone verification codes.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy.orm import Session

from api.responses import envelope, UserResponse, ProfessionalResponse, PatientResponse
from auth.dependencies import require_authenticated, UserContext
from core.database import get_db
from services.delivery_gateway import DeliveryGateway, get_delivery_gateway
from services.registration_service import RegistrationService, RegistrationResult

logger = logging.getLogger(__name__)

router = APIRouter()


# ===== Request Models =====

class _CamelRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RegisterProfessionalRequest(_CamelRequest):
    email: Optional[str] = None
    password: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    specialty: Optional[str] = None
    license_number: Optional[str] = None


class RegisterPatientRequest(_CamelRequest):
    """Invitation redemption: the code plus the password the patient chose."""
    code: Optional[str] = None
    password: Optional[str] = None
    consents: Optional[Dict[str, Any]] = None


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class SendOtpRequest(BaseModel):
    phone: str
    channel: str = "sms"  # "sms", "whatsapp" or "call"


class VerifyOtpRequest(BaseModel):
    phone: str
    code: str


# ===== Helpers =====

def _auth_payload(result: RegistrationResult) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "token": result.token,
        "user": UserResponse.model_validate(result.user).dump(),
    }
    if result.professional is not None:
        data["professional"] = ProfessionalResponse.model_validate(result.professional).dump()
    if result.patient is not None:
        data["patient"] = PatientResponse.model_validate(result.patient).dump()
    return data


def _provider_failure(message: str, error: Optional[str], code: Optional[str]) -> HTTPException:
    """502 carrying the provider's error text and code through to the client."""
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail={"message": message, "error": error, "code": code},
    )


# ===== Registration and login =====

@router.post("/register", summary="Register a professional account", status_code=status.HTTP_201_CREATED)
async def register_professional(
    request: RegisterProfessionalRequest,
    db: Session = Depends(get_db)
) -> Dict[str, Any]:
    result = RegistrationService.register_professional(
        db,
        email=request.email,
        password=request.password,
        first_name=request.first_name,
        last_name=request.last_name,
        phone=request.phone,
        specialty=request.specialty,
        license_number=request.license_number,
    )
    return envelope(data=_auth_payload(result), message="Usuario registrado exitosamente")


@router.post("/register/patient", summary="Register a patient with an invitation code",
             status_code=status.HTTP_201_CREATED)
async def register_patient(
    request: RegisterPatientRequest,
    db: Session = Depends(get_db),
    gateway: DeliveryGateway = Depends(get_delivery_gateway)
) -> Dict[str, Any]:
    """
    Redeem an invitation code.

    Creates the account and patient profile from the invitation's intake
    data and returns an access token.
    """
    result = await RegistrationService.register_patient_with_invitation(
        db,
        code=request.code,
        password=request.password,
        gateway=gateway,
        consents=request.consents,
    )
    return envelope(data=_auth_payload(result), message="Registro completado exitosamente")


@router.post("/login", summary="Log in with email and password")
async def login(
    request: LoginRequest,
    db: Session = Depends(get_db)
) -> Dict[str, Any]:
    result = RegistrationService.login(db, request.email, request.password)
    return envelope(data=_auth_payload(result), message="Inicio de sesión exitoso")


@router.get("/profile", summary="Get the caller's profile")
async def get_profile(
    db: Session = Depends(get_db),
    current_user: UserContext = Depends(require_authenticated)
) -> Dict[str, Any]:
    user, professional, patient = RegistrationService.get_profile(db, current_user.user_id)
    data: Dict[str, Any] = {"user": UserResponse.model_validate(user).dump()}
    if professional is not None:
        data["professional"] = ProfessionalResponse.model_validate(professional).dump()
    if patient is not None:
        data["patient"] = PatientResponse.model_validate(patient).dump()
    return envelope(data=data)


# ===== Phone verification =====

@router.post("/send-otp", summary="Send a phone verification code")
async def send_otp(
    request: SendOtpRequest,
    gateway: DeliveryGateway = Depends(get_delivery_gateway)
) -> Dict[str, Any]:
    """
    Send an OTP through the verification provider.

    Provider failures are returned as 502 with the provider's error and
    code, e.g. code 21608 for an unverified trial number.
    """
    result = await gateway.send_otp(request.phone, request.channel.lower())
    if not result.success:
        raise _provider_failure("Error al enviar el código de verificación", result.error, result.code)
    return envelope(
        data={"status": result.provider_status, "to": result.to},
        message="Código de verificación enviado",
    )


@router.post("/verify-otp", summary="Check a phone verification code")
async def verify_otp(
    request: VerifyOtpRequest,
    gateway: DeliveryGateway = Depends(get_delivery_gateway)
) -> Dict[str, Any]:
    result = await gateway.verify_otp(request.phone, request.code)
    if result.success:
        return envelope(data={"status": result.provider_status, "valid": True}, message="Teléfono verificado")

    if result.provider_status:
        # Provider answered but rejected the code
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Código de verificación inválido"
        )
    raise _provider_failure("Error al verificar el código", result.error, result.code)
