"""IP restriction schemas."""
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator


class IPRestrictionItem(BaseModel):
    """Role restriction row or one entry of a user allow-list."""

    id: str
    type: Literal["role", "user"]
    role_id: Optional[int] = None
    role_name: Optional[str] = None
    user_id: Optional[int] = None
    user_name: Optional[str] = None
    user_email: Optional[str] = None
    ip_address: str
    description: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class IPRestrictionCreate(BaseModel):
    """Add a pattern to a role (new restriction row) or to a user's allow-list."""

    type: Literal["role", "user"]
    role_id: Optional[int] = None
    user_id: Optional[int] = None
    ip_address: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)

    @field_validator("ip_address")
    @classmethod
    def strip_ip(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("IP address required")
        return v


class IPRestrictionToggle(BaseModel):
    is_active: bool


class UserIPAccessUpdate(BaseModel):
    """User-level IP access settings. Omitted fields are left unchanged."""

    ip_exempt: Optional[bool] = None
    ip_restricted: Optional[bool] = None
    allowed_ips: Optional[List[str]] = None

    @field_validator("allowed_ips")
    @classmethod
    def clean_ips(cls, v: Optional[List[str]]) -> Optional[List[str]]:
        if v is None:
            return v
        return [ip.strip() for ip in v if ip and ip.strip()]


class IPCheckRequest(BaseModel):
    """Evaluate the policy for a user and address without making a request as them."""

    user_id: int
    ip_address: str = Field(..., min_length=1, max_length=100)


class IPCheckResponse(BaseModel):
    allowed: bool
    outcome: str
    reason: Optional[str] = None
    client_ip: str
