"""Access token verification.

Tokens are signed by the identity service with a shared key. Validates:
- JWT signature and expiration
- Token type separation (only access tokens are accepted)
"""

from typing import Any

from jose import JWTError, jwt

from src.config.settings import get_settings


REQUIRED_CLAIMS = ("sub", "role")


def decode_access_token(token: str) -> dict[str, Any]:
    """Decode and validate an access token.

    Args:
        token: JWT string

    Returns:
        Decoded payload dictionary

    Raises:
        JWTError: If token is invalid, expired, of the wrong type or
            missing a required claim
    """
    settings = get_settings()

    payload = jwt.decode(
        token,
        settings.auth_secret_key,
        algorithms=[settings.auth_algorithm],
    )

    if payload.get("type") != "access":
        msg = "Invalid token type: expected 'access'"
        raise JWTError(msg)

    missing = [claim for claim in REQUIRED_CLAIMS if not payload.get(claim)]
    if missing:
        msg = f"Access token missing claims: {', '.join(missing)}"
        raise JWTError(msg)

    return payload
