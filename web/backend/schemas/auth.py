"""Auth schemas for the web backend API."""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class LoginRequest(BaseModel):
    """Email/password login request."""

    email: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1, max_length=200)


class UserInfo(BaseModel):
    """Public user data (never includes the password hash)."""

    id: int
    name: Optional[str] = None
    email: str
    role: Optional[str] = None
    role_id: Optional[int] = None
    ip_exempt: bool = False
    ip_restricted: bool = False
    allowed_ips: list[str] = []
    last_login_ip: Optional[str] = None
    last_login_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, user: dict) -> "UserInfo":
        """Convert a users row (joined with role name) to the response model."""
        return cls(
            id=user["id"],
            name=user.get("name"),
            email=user["email"],
            role=user.get("role_name"),
            role_id=user.get("role_id"),
            ip_exempt=bool(user.get("ip_exempt")),
            ip_restricted=bool(user.get("ip_restricted")),
            allowed_ips=list(user.get("allowed_ips") or []),
            last_login_ip=user.get("last_login_ip"),
            last_login_at=user.get("last_login_at"),
        )


class TokenResponse(BaseModel):
    """JWT token response."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds
    user: UserInfo


class ClientIPResponse(BaseModel):
    """Address the server resolved for the caller."""

    client_ip: str
