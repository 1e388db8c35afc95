"""Security utilities: password hashing and JWT tokens."""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
from jose import JWTError, jwt

from web.backend.core.config import get_web_settings

logger = logging.getLogger(__name__)


def hash_password(password: str) -> str:
    """Hash a password with bcrypt."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    """Check a password against a stored bcrypt hash."""
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError as e:
        logger.error("bcrypt verification failed: %s", e)
        return False


def create_access_token(
    user_id: int,
    email: str,
    role: Optional[str] = None,
) -> str:
    """
    Create JWT access token.

    Args:
        user_id: Authenticated user id (stored as token subject)
        email: User email
        role: Role name at login time (informational)

    Returns:
        Encoded JWT token
    """
    settings = get_web_settings()
    now = datetime.now(timezone.utc)
    expire = now + timedelta(minutes=settings.jwt_expire_minutes)

    payload = {
        "sub": str(user_id),
        "email": email,
        "role": role,
        "exp": int(expire.timestamp()),
        "iat": int(now.timestamp()),
        "type": "access",
    }

    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Decode and validate JWT token.

    Returns:
        Token payload if valid, None otherwise
    """
    settings = get_web_settings()

    try:
        return jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm]
        )
    except JWTError as e:
        logger.debug("Token decode error: %s", e)
        return None


def user_id_from_token(token: Optional[str]) -> Optional[int]:
    """Return the user id of a valid access token, or None."""
    if not token:
        return None
    payload = decode_token(token)
    if not payload or payload.get("type") != "access":
        return None
    try:
        return int(payload.get("sub"))
    except (TypeError, ValueError):
        return None
