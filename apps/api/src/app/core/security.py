"""
Token utilities.

Access tokens are HS256 JWTs issued by the identity service and carrying
``sub`` (user id), ``email``, ``role`` and ``type`` claims.
"""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

import jwt

from app.core.config import settings

logger = logging.getLogger(__name__)


def create_access_token(
    subject: int | str,
    email: str,
    role: str,
    expires_delta: timedelta | None = None,
) -> str:
    now = datetime.now(UTC)
    expire = now + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    payload = {
        "sub": str(subject),
        "email": email,
        "role": role,
        "type": "access",
        "iat": now,
        "exp": expire,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict[str, Any] | None:
    """
    Verify a token's signature and expiry.

    Returns:
        The claims, or None if the token is invalid or expired
    """
    try:
        return jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError:
        logger.debug("Token expired")
    except jwt.InvalidTokenError as e:
        logger.debug(f"Invalid token: {e}")
    return None
