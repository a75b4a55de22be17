"""Pydantic schemas for the authenticated principal."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel


class AuthenticatedUser(BaseModel):
    """User identity read from a verified access token."""

    id: UUID
    role: str
    email: str | None = None
    issued_at: datetime | None = None

    @classmethod
    def from_token_payload(cls, payload: dict[str, Any]) -> "AuthenticatedUser":
        """Create from a decoded access token payload."""
        return cls(
            id=payload["sub"],
            role=payload["role"],
            email=payload.get("email"),
            issued_at=payload.get("iat"),
        )
