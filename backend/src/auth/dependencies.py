# pyright: reportMissingTypeStubs=false
"""
Authentication and authorization dependencies for FastAPI.

Provides dependency injection functions for user authentication and
role-based access control.
"""

import logging
from typing import Optional
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from core.constants import ROLE_ADMIN, ROLE_PATIENT, ROLE_PROFESSIONAL
from core.database import get_db
from services.jwt_service import jwt_service, TokenPayload
from models import User, Professional

logger = logging.getLogger(__name__)


class UserContext:
    """Authenticated user context extracted from JWT token."""

    def __init__(
        self,
        user_id: int,
        email: str,
        role: str,
        first_name: str = "",
        last_name: str = "",
        professional_id: Optional[int] = None
    ):
        self.user_id = user_id
        self.email = email
        self.role = role  # "patient", "professional" or "admin"
        self.first_name = first_name
        self.last_name = last_name
        self.professional_id = professional_id  # Professional profile id (professionals only)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def is_admin(self) -> bool:
        """Check if user is an admin."""
        return self.role == ROLE_ADMIN

    def is_professional(self) -> bool:
        return self.role == ROLE_PROFESSIONAL

    def is_patient(self) -> bool:
        return self.role == ROLE_PATIENT

    def __repr__(self) -> str:
        return f"UserContext(user_id={self.user_id}, email='{self.email}', role='{self.role}')"


# HTTP Bearer token security scheme
security = HTTPBearer(auto_error=False)


def get_token_payload(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Optional[TokenPayload]:
    """Extract and validate JWT token payload."""
    if not credentials:
        return None

    return jwt_service.verify_token(credentials.credentials)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    payload: Optional[TokenPayload] = Depends(get_token_payload),
    db: Session = Depends(get_db)
) -> UserContext:
    """Get authenticated user context from JWT token."""
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token de acceso requerido"
        )

    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token inválido o expirado"
        )

    try:
        user_id = int(payload.sub)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token inválido o expirado"
        )

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Usuario no encontrado"
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Usuario desactivado"
        )

    professional_id: Optional[int] = None
    if user.role == ROLE_PROFESSIONAL:
        # Resolve from the database rather than trusting the token claim
        professional = db.query(Professional).filter(Professional.user_id == user.id).first()
        professional_id = professional.id if professional else None

    return UserContext(
        user_id=user.id,
        email=user.email,
        role=user.role,
        first_name=user.first_name,
        last_name=user.last_name,
        professional_id=professional_id
    )


# Role-based authorization dependencies
def require_authenticated(user: UserContext = Depends(get_current_user)) -> UserContext:
    """Require any authenticated user."""
    return user


def require_professional(user: UserContext = Depends(get_current_user)) -> UserContext:
    """Require a professional with a profile."""
    if not user.is_professional() or user.professional_id is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Acceso denegado: se requiere rol professional"
        )
    return user


def require_professional_or_admin(user: UserContext = Depends(get_current_user)) -> UserContext:
    """Require professional or admin role."""
    if not (user.is_professional() or user.is_admin()):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Acceso denegado: se requiere rol professional o admin"
        )
    return user


def require_patient(user: UserContext = Depends(get_current_user)) -> UserContext:
    """Require patient role."""
    if not user.is_patient():
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Acceso denegado: se requiere rol patient"
        )
    return user
