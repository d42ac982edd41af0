"""Credential checks for the automation endpoints."""

import secrets
from typing import Any

from jose import JWTError, jwt

from src.automata.core.config import get_settings


def decode_token(token: str) -> dict[str, Any] | None:
    """Decode and validate JWT token. Returns None on any error."""
    settings = get_settings()
    if not settings.jwt_secret_key:
        return None
    try:
        return jwt.decode(  # type: ignore[no-any-return]
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError:
        return None


def is_service_key(token: str) -> bool:
    """Constant-time comparison against the configured service credential."""
    expected = get_settings().automation_service_key
    if not expected:
        return False
    return secrets.compare_digest(token.encode(), expected.encode())
