"""Structured error codes for API responses.

Usage:
    from web.backend.core.errors import api_error, E

    raise api_error(404, E.USER_NOT_FOUND)
    raise api_error(400, E.INVALID_RESTRICTION_ID, "Invalid user id")
"""
from enum import Enum
from typing import Optional

from fastapi import HTTPException

from web.backend.core.client_ip import display_ip
from web.backend.core.ip_policy import Decision, Outcome


class ErrorCode(str, Enum):
    """All API error codes. Frontend maps these to translations."""

    # ── Auth ──────────────────────────────────────────────────
    TOKEN_REQUIRED = "TOKEN_REQUIRED"
    INVALID_TOKEN = "INVALID_TOKEN"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    FORBIDDEN = "FORBIDDEN"

    # ── IP access ─────────────────────────────────────────────
    IP_ACCESS_DENIED = "IP_ACCESS_DENIED"
    IP_UNKNOWN_ADDRESS = "IP_UNKNOWN_ADDRESS"

    # ── IP restrictions admin ─────────────────────────────────
    USER_NOT_FOUND = "USER_NOT_FOUND"
    ROLE_NOT_FOUND = "ROLE_NOT_FOUND"
    RESTRICTION_NOT_FOUND = "RESTRICTION_NOT_FOUND"
    INVALID_RESTRICTION_ID = "INVALID_RESTRICTION_ID"
    INVALID_RESTRICTION_TARGET = "INVALID_RESTRICTION_TARGET"
    INDEX_OUT_OF_RANGE = "INDEX_OUT_OF_RANGE"
    RESTRICTION_CREATE_FAILED = "RESTRICTION_CREATE_FAILED"
    RESTRICTION_UPDATE_FAILED = "RESTRICTION_UPDATE_FAILED"
    RESTRICTION_DELETE_FAILED = "RESTRICTION_DELETE_FAILED"

    # ── Generic ───────────────────────────────────────────────
    DB_UNAVAILABLE = "DB_UNAVAILABLE"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# Shorthand alias
E = ErrorCode

# Default human-readable messages per code (English fallback)
_DEFAULT_MESSAGES: dict[str, str] = {
    E.TOKEN_REQUIRED: "Missing Authorization header",
    E.INVALID_TOKEN: "Invalid or expired token",
    E.INVALID_CREDENTIALS: "Invalid credentials",
    E.FORBIDDEN: "Access denied",
    E.IP_ACCESS_DENIED: "Access denied from this IP address",
    E.IP_UNKNOWN_ADDRESS: "Access denied: unknown client IP",
    E.USER_NOT_FOUND: "User not found",
    E.ROLE_NOT_FOUND: "Role not found",
    E.RESTRICTION_NOT_FOUND: "Restriction not found",
    E.INVALID_RESTRICTION_ID: "Invalid restriction id",
    E.INVALID_RESTRICTION_TARGET: "Invalid type or missing ID",
    E.INDEX_OUT_OF_RANGE: "Index out of range",
    E.RESTRICTION_CREATE_FAILED: "Failed to create IP restriction",
    E.RESTRICTION_UPDATE_FAILED: "Failed to update IP restriction",
    E.RESTRICTION_DELETE_FAILED: "Failed to delete IP restriction",
    E.DB_UNAVAILABLE: "Database not available",
    E.INTERNAL_ERROR: "Internal error",
}


def error_body(code: ErrorCode, detail: Optional[str] = None, **extra) -> dict:
    """Build the ``{"detail": ..., "code": ...}`` body shared by all errors."""
    body = {"detail": detail or _DEFAULT_MESSAGES.get(code, code.value), "code": code.value}
    body.update(extra)
    return body


def api_error(
    status_code: int,
    code: ErrorCode,
    detail: str | None = None,
) -> HTTPException:
    """Create an HTTPException with a structured error code.

    Args:
        status_code: HTTP status code (400, 404, 500, etc.)
        code: ErrorCode enum value
        detail: Human-readable message. If None, uses default for the code.

    Returns:
        HTTPException with JSON body {"detail": {"detail": "...", "code": "ERROR_CODE"}}
    """
    return HTTPException(status_code=status_code, detail=error_body(code, detail))


# Every IP denial maps to 403 at both call sites. Users only learn whether the
# address was unknown; user/role/evaluation-error causes stay in the logs.
IP_DENIED_STATUS = 403


def ip_denied_body(decision: Decision) -> dict:
    """Client-facing body for a denied decision (echoes the resolved address)."""
    code = E.IP_UNKNOWN_ADDRESS if decision.outcome is Outcome.DENY_UNKNOWN_ADDRESS else E.IP_ACCESS_DENIED
    return error_body(code, client_ip=display_ip(decision.address))


def ip_denied_error(decision: Decision) -> HTTPException:
    return HTTPException(status_code=IP_DENIED_STATUS, detail=ip_denied_body(decision))
