"""
JWT Service for access tokens and password hashing.

Provides session token creation/validation and bcrypt password hashing.
Given credentials, the application produces an opaque signed token; given a
token, it recovers the identity claims or fails.
"""

import bcrypt
import jwt
import hashlib
from datetime import datetime, timedelta, timezone
from typing import Optional
from pydantic import BaseModel

from core.config import JWT_SECRET_KEY, JWT_ACCESS_TOKEN_EXPIRE_MINUTES


class TokenPayload(BaseModel):
    """Payload structure for JWT tokens."""
    sub: str  # User id
    email: str
    role: str  # "patient", "professional" or "admin"
    professional_id: Optional[int] = None  # Set for professionals
    first_name: str = ""
    last_name: str = ""
    iat: Optional[int] = None  # Set by JWT service
    exp: Optional[int] = None  # Set by JWT service


class JWTService:
    """Service for JWT token and password operations."""

    ALGORITHM = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES = JWT_ACCESS_TOKEN_EXPIRE_MINUTES

    @classmethod
    def create_access_token(cls, payload: TokenPayload, expires_delta: Optional[timedelta] = None) -> str:
        """Create a JWT access token."""
        to_encode = payload.model_dump(exclude={"iat", "exp"})
        now = datetime.now(timezone.utc)
        expire = now + (expires_delta or timedelta(minutes=cls.ACCESS_TOKEN_EXPIRE_MINUTES))
        to_encode.update({"exp": expire, "iat": now})
        return jwt.encode(to_encode, cls._get_secret_key(), algorithm=cls.ALGORITHM)

    @classmethod
    def verify_token(cls, token: str) -> Optional[TokenPayload]:
        """Verify and decode a JWT token. Returns None if invalid or expired."""
        try:
            payload = jwt.decode(token, cls._get_secret_key(), algorithms=[cls.ALGORITHM])
            return TokenPayload(**payload)
        except jwt.ExpiredSignatureError:
            return None
        except jwt.InvalidTokenError:
            return None
        except ValueError:
            # Decoded claims don't match TokenPayload
            return None

    @classmethod
    def hash_password(cls, password: str) -> str:
        """
        Create a bcrypt hash of a password.

        The password is pre-hashed with SHA-256 to stay within bcrypt's
        72-byte input limit.
        """
        digest = hashlib.sha256(password.encode('utf-8')).digest()
        return bcrypt.hashpw(digest, bcrypt.gensalt()).decode('utf-8')

    @classmethod
    def verify_password(cls, password: str, hashed_password: Optional[str]) -> bool:
        """Verify a password against its hash."""
        if not hashed_password:
            return False
        try:
            digest = hashlib.sha256(password.encode('utf-8')).digest()
            return bcrypt.checkpw(digest, hashed_password.encode('utf-8'))
        except ValueError:
            return False

    @classmethod
    def _get_secret_key(cls) -> str:
        """Get the JWT secret key."""
        return JWT_SECRET_KEY


# Global instance
jwt_service = JWTService()
