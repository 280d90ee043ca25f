"""
Tests for JWT service functionality.
"""

from datetime import timedelta

import jwt

from core.config import JWT_SECRET_KEY
from services.jwt_service import jwt_service, TokenPayload


class TestJWTService:
    """Test token creation, validation and password hashing."""

    def _payload(self, **overrides) -> TokenPayload:
        data = {
            "sub": "42",
            "email": "therapist@example.com",
            "role": "professional",
            "professional_id": 7,
            "first_name": "Laura",
            "last_name": "Méndez",
        }
        data.update(overrides)
        return TokenPayload(**data)

    def test_create_access_token(self):
        """Test creating a JWT access token."""
        token = jwt_service.create_access_token(self._payload())
        assert isinstance(token, str)
        assert len(token) > 0

    def test_verify_token_valid(self):
        """Test verifying a valid JWT token returns the identity claims."""
        payload = self._payload()

        token = jwt_service.create_access_token(payload)
        verified = jwt_service.verify_token(token)

        assert verified is not None
        assert verified.sub == "42"
        assert verified.email == payload.email
        assert verified.role == "professional"
        assert verified.professional_id == 7
        assert verified.iat is not None
        assert verified.exp is not None

    def test_verify_token_expired(self):
        """Test an expired token is rejected."""
        token = jwt_service.create_access_token(self._payload(), expires_delta=timedelta(seconds=-10))
        assert jwt_service.verify_token(token) is None

    def test_verify_token_invalid(self):
        assert jwt_service.verify_token("invalid.jwt.token") is None

    def test_verify_token_wrong_secret(self):
        """Test a token signed with another key is rejected."""
        token = jwt.encode({"sub": "1", "email": "x@example.com", "role": "patient"}, "other-secret", algorithm="HS256")
        assert jwt_service.verify_token(token) is None

    def test_verify_token_missing_claims(self):
        """Test a correctly signed token without identity claims is rejected."""
        token = jwt.encode({"foo": "bar"}, JWT_SECRET_KEY, algorithm="HS256")
        assert jwt_service.verify_token(token) is None

    def test_hash_and_verify_password(self):
        hashed = jwt_service.hash_password("secret123")

        assert hashed != "secret123"
        assert jwt_service.verify_password("secret123", hashed) is True
        assert jwt_service.verify_password("wrong", hashed) is False

    def test_long_password_is_not_truncated(self):
        """Passwords longer than 72 bytes still differ in their tail."""
        base = "a" * 80
        hashed = jwt_service.hash_password(base + "1")
        assert jwt_service.verify_password(base + "2", hashed) is False

    def test_verify_password_without_hash(self):
        assert jwt_service.verify_password("anything", None) is False
        assert jwt_service.verify_password("anything", "not-a-bcrypt-hash") is False
