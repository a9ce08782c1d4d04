"""
JWT helpers for the Portal de Trámites.

Access tokens are issued by the identity provider that owns user accounts;
this service verifies them with python-jose and reads the ``sub`` claim as
the acting user id.  ``create_access_token`` exists for service-to-service
calls and tests.  All configuration is sourced from the settings singleton.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt

from portal.config import get_settings

logger = logging.getLogger(__name__)


def create_access_token(data: dict[str, Any]) -> str:
    """Create a signed JWT access token.

    The payload is a copy of *data* augmented with ``exp`` and ``iat``
    claims.  The ``sub`` claim must be set by the caller to the user id.

    Args:
        data: Claims to embed in the token payload.

    Returns:
        A compact JWT string signed with ``JWT_ALGORITHM``.
    """
    settings = get_settings()
    payload = data.copy()
    now = datetime.now(timezone.utc)
    payload["exp"] = now + timedelta(minutes=settings.JWT_EXPIRATION_MINUTES)
    payload["iat"] = now

    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def verify_token(token: str) -> dict[str, Any]:
    """Decode and verify a JWT access token.

    Raises:
        ValueError: If the token is invalid, expired, or cannot be decoded.
                    Callers map this to an HTTP 401 response.
    """
    settings = get_settings()
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
        return payload
    except JWTError as exc:
        logger.debug("JWT verification failed: %s", exc)
        raise ValueError("Token inválido o expirado") from exc
