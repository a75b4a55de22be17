"""Tests for access token verification."""

from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest
from jose import JWTError, jwt

from src.auth.schemas import AuthenticatedUser
from src.auth.security import decode_access_token
from src.config import get_settings
from tests.factories import make_access_token


class TestDecodeAccessToken:
    """Tests for decode_access_token."""

    def test_valid_token(self) -> None:
        """A signed access token decodes to its claims."""
        user_id = uuid4()
        payload = decode_access_token(make_access_token(user_id, role="student"))

        assert payload["sub"] == str(user_id)
        assert payload["role"] == "student"
        assert payload["type"] == "access"

    def test_wrong_type_rejected(self) -> None:
        """Refresh tokens cannot be used as access tokens."""
        with pytest.raises(JWTError):
            decode_access_token(make_access_token(type="refresh"))

    def test_missing_role_rejected(self) -> None:
        """The role claim is required."""
        with pytest.raises(JWTError):
            decode_access_token(make_access_token(role=""))

    def test_expired_token_rejected(self) -> None:
        """Expired tokens fail verification."""
        past = datetime.now(UTC) - timedelta(hours=1)
        token = make_access_token(iat=past - timedelta(minutes=15), exp=past)

        with pytest.raises(JWTError):
            decode_access_token(token)

    def test_wrong_key_rejected(self) -> None:
        """Tokens signed with another key fail verification."""
        settings = get_settings()
        token = jwt.encode(
            {"sub": str(uuid4()), "role": "student", "type": "access"},
            "another-secret-key-with-enough-length!!",
            algorithm=settings.auth_algorithm,
        )

        with pytest.raises(JWTError):
            decode_access_token(token)


class TestAuthenticatedUser:
    """Tests for AuthenticatedUser.from_token_payload."""

    def test_from_payload(self) -> None:
        """Identity fields are read from the claims."""
        user_id = uuid4()
        payload = decode_access_token(make_access_token(user_id, role="teacher"))

        user = AuthenticatedUser.from_token_payload(payload)

        assert user.id == user_id
        assert user.role == "teacher"
        assert user.email == "estudiante@example.com"
        assert user.issued_at is not None
