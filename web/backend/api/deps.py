"""API dependencies for the web backend."""
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from web.backend.core.config import get_web_settings
from web.backend.core.errors import E, error_body
from web.backend.core.ip_policy import normalize_role_name
from web.backend.core.security import decode_token

logger = logging.getLogger(__name__)
security = HTTPBearer(auto_error=False)


@dataclass
class CurrentUser:
    """Authenticated user resolved from the access token."""

    id: int
    email: str
    role: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role is not None and self.role == normalize_role_name(get_web_settings().admin_role)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> CurrentUser:
    """Dependency for verifying user authentication."""
    if not credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=error_body(E.TOKEN_REQUIRED),
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = decode_token(credentials.credentials)
    if not payload or payload.get("type") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=error_body(E.INVALID_TOKEN),
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=error_body(E.INVALID_TOKEN, "Invalid token subject"),
            headers={"WWW-Authenticate": "Bearer"},
        )

    return CurrentUser(
        id=user_id,
        email=payload.get("email", ""),
        role=normalize_role_name(payload.get("role")),
    )


def require_admin():
    """Dependency that requires the configured admin role."""
    async def _check(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if not user.is_admin:
            logger.warning("Admin access denied: %s (%s)", user.email, user.role)
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=error_body(E.FORBIDDEN, "Admin access required"),
            )
        return user
    return _check
