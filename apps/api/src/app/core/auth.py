"""
Authentication and Authorization

FastAPI dependencies that turn a Bearer token into the current user.

SECURITY NOTE:
- Development test tokens are ONLY accepted when PYTHON_ENV=development
- Production environments MUST set PYTHON_ENV=production
"""

import logging
import os
from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.config import settings
from app.core.security import decode_token
from app.modules.users.models import UserRole

logger = logging.getLogger(__name__)

security = HTTPBearer(
    auto_error=True,
    description="JWT Bearer token for authentication",
)


@dataclass
class CurrentUser:
    """
    The authenticated caller, populated from JWT claims.

    Attributes:
        id: User id
        email: User's email address
        role: "admin" or "parent"
    """

    id: int
    email: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    def __str__(self) -> str:
        return f"CurrentUser(id={self.id}, email={self.email}, role={self.role})"


def _is_dev_mode_safe() -> bool:
    """True only if every environment check agrees this is a development instance."""
    env_var = os.getenv("PYTHON_ENV", "").lower()

    is_safe = (
        settings.is_development
        and not settings.is_production
        and env_var not in ("production", "staging")
    )
    if is_safe:
        logger.warning("SECURITY: Development auth mode is ENABLED. This MUST NOT be used in production!")
    return is_safe


_DEVELOPMENT_MODE = _is_dev_mode_safe()

# Test tokens accepted in development mode
_DEV_USERS = {
    "dev-admin-token": CurrentUser(id=1, email="admin@admissions.dev", role=UserRole.ADMIN.value),
    "dev-parent-token": CurrentUser(id=2, email="parent@admissions.dev", role=UserRole.PARENT.value),
}


def _unauthorized(error: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": error, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


def validate_token(token: str) -> CurrentUser:
    """
    Validate a token and build the user from its claims.

    Raises:
        HTTPException 401: If the token is invalid, expired, not an access
            token, or has malformed claims
    """
    if _DEVELOPMENT_MODE and token in _DEV_USERS:
        logger.debug("Development mode: Using test token")
        return _DEV_USERS[token]

    payload = decode_token(token)
    if payload is None:
        logger.warning("Invalid or expired JWT token")
        raise _unauthorized("INVALID_TOKEN", "Invalid or expired authentication token.")

    if payload.get("type", "access") != "access":
        logger.warning(f"Invalid token type: {payload.get('type')}")
        raise _unauthorized("INVALID_TOKEN_TYPE", "This endpoint requires an access token.")

    try:
        user_id = int(payload["sub"])
        role = UserRole(payload.get("role", UserRole.PARENT.value))
    except (ValueError, KeyError) as e:
        logger.warning(f"Invalid token claims: {e}")
        raise _unauthorized("INVALID_TOKEN_CLAIMS", "Token contains invalid or missing claims.") from e

    return CurrentUser(id=user_id, email=payload.get("email", ""), role=role.value)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> CurrentUser:
    """
    FastAPI dependency returning the authenticated user.

    Usage:
        @router.get("/endpoint")
        async def endpoint(user: CurrentUser = Depends(get_current_user)):
            ...
    """
    user = validate_token(credentials.credentials)
    logger.debug(f"Authenticated user: {user.id} ({user.role})")
    return user


__all__ = [
    "CurrentUser",
    "get_current_user",
]
