"""Schemas for the web backend API."""
from web.backend.schemas.common import SuccessResponse
from web.backend.schemas.auth import (
    LoginRequest,
    TokenResponse,
    UserInfo,
    ClientIPResponse,
)
from web.backend.schemas.ip_restriction import (
    IPRestrictionItem,
    IPRestrictionCreate,
    IPRestrictionToggle,
    UserIPAccessUpdate,
    IPCheckRequest,
    IPCheckResponse,
)

__all__ = [
    "SuccessResponse",
    "LoginRequest",
    "TokenResponse",
    "UserInfo",
    "ClientIPResponse",
    "IPRestrictionItem",
    "IPRestrictionCreate",
    "IPRestrictionToggle",
    "UserIPAccessUpdate",
    "IPCheckRequest",
    "IPCheckResponse",
]
