"""IP restriction management API endpoints (admin only).

Role restrictions are rows in ``ip_restrictions``; user restrictions live in
``users.allowed_ips`` and are exposed as virtual rows with ids of the form
``user-<userId>-<index>``.
"""
import logging
from typing import Tuple

from fastapi import APIRouter, Depends

from web.backend.api.deps import CurrentUser, require_admin
from web.backend.core import ip_store
from web.backend.core.client_ip import display_ip, normalize_address
from web.backend.core.errors import E, api_error
from web.backend.core.ip_gate import check_ip_access
from web.backend.schemas.auth import UserInfo
from web.backend.schemas.common import SuccessResponse
from web.backend.schemas.ip_restriction import (
    IPCheckRequest,
    IPCheckResponse,
    IPRestrictionCreate,
    IPRestrictionItem,
    IPRestrictionToggle,
    UserIPAccessUpdate,
)

logger = logging.getLogger(__name__)
router = APIRouter()


def _parse_user_row_id(restriction_id: str) -> Tuple[int, int]:
    """'user-<userId>-<index>' -> (user_id, index)."""
    parts = restriction_id.split("-")
    if len(parts) < 3:
        raise api_error(400, E.INVALID_RESTRICTION_ID, "Invalid user-ip id format")
    try:
        return int(parts[1]), int(parts[2])
    except ValueError:
        raise api_error(400, E.INVALID_RESTRICTION_ID, "Invalid user id or index")


def _ensure_db() -> None:
    """503 when the pool is down, so store misses below mean a missing row."""
    if not ip_store.is_available():
        raise api_error(503, E.DB_UNAVAILABLE)


def _parse_numeric_id(restriction_id: str) -> int:
    try:
        return int(restriction_id)
    except ValueError:
        raise api_error(400, E.INVALID_RESTRICTION_ID)


@router.get("", response_model=list[IPRestrictionItem])
async def list_restrictions(admin: CurrentUser = Depends(require_admin())):
    """List role restrictions and expanded user allow-lists."""
    _ensure_db()
    return [IPRestrictionItem(**r) for r in await ip_store.list_ip_restrictions()]


@router.post("", response_model=IPRestrictionItem, status_code=201)
async def create_restriction(
    data: IPRestrictionCreate,
    admin: CurrentUser = Depends(require_admin()),
):
    """Add a role restriction row or append to a user's allow-list."""
    _ensure_db()
    if data.type == "role" and data.role_id is not None:
        role = await ip_store.get_role_by_id(data.role_id)
        if not role:
            raise api_error(404, E.ROLE_NOT_FOUND)
        row = await ip_store.create_role_restriction(data.role_id, data.ip_address, data.description)
        if not row:
            raise api_error(500, E.RESTRICTION_CREATE_FAILED)
        logger.info("IP restriction %s added to role %s by %s", data.ip_address, role["name"], admin.email)
        return IPRestrictionItem(
            id=str(row["id"]),
            type="role",
            role_id=row["role_id"],
            role_name=role["name"],
            ip_address=row["ip_address"],
            description=row.get("description"),
            is_active=row["is_active"],
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    if data.type == "user" and data.user_id is not None:
        user = await ip_store.get_user_by_id(data.user_id)
        if not user:
            raise api_error(404, E.USER_NOT_FOUND)
        if not await ip_store.add_user_allowed_ip(data.user_id, data.ip_address):
            raise api_error(500, E.RESTRICTION_CREATE_FAILED)
        index = len(user.get("allowed_ips") or [])
        logger.info("IP %s added to allow-list of %s by %s", data.ip_address, user["email"], admin.email)
        return IPRestrictionItem(
            id=f"user-{data.user_id}-{index}",
            type="user",
            user_id=data.user_id,
            user_name=user.get("name"),
            user_email=user["email"],
            ip_address=data.ip_address,
            is_active=True,
        )

    raise api_error(400, E.INVALID_RESTRICTION_TARGET)


@router.patch("/{restriction_id}", response_model=SuccessResponse)
async def toggle_restriction(
    restriction_id: str,
    data: IPRestrictionToggle,
    admin: CurrentUser = Depends(require_admin()),
):
    """Enable/disable a role restriction row, or a user's whole allow-list."""
    _ensure_db()
    if restriction_id.startswith("user-"):
        try:
            user_id = int(restriction_id.split("-")[1])
        except ValueError:
            raise api_error(400, E.INVALID_RESTRICTION_ID, "Invalid user id")
        if not await ip_store.set_user_restricted(user_id, data.is_active):
            raise api_error(404, E.USER_NOT_FOUND)
    else:
        numeric_id = _parse_numeric_id(restriction_id)
        if not await ip_store.set_role_restriction_active(numeric_id, data.is_active):
            raise api_error(404, E.RESTRICTION_NOT_FOUND)

    logger.info("IP restriction %s set active=%s by %s", restriction_id, data.is_active, admin.email)
    return SuccessResponse(message=f"Restriction {restriction_id} updated")


@router.delete("/{restriction_id}", response_model=SuccessResponse)
async def delete_restriction(
    restriction_id: str,
    admin: CurrentUser = Depends(require_admin()),
):
    """Delete a role restriction row or one entry of a user's allow-list."""
    _ensure_db()
    if restriction_id.startswith("user-"):
        user_id, index = _parse_user_row_id(restriction_id)
        user = await ip_store.get_user_by_id(user_id)
        if not user:
            raise api_error(404, E.USER_NOT_FOUND)
        if index < 0 or index >= len(user.get("allowed_ips") or []):
            raise api_error(400, E.INDEX_OUT_OF_RANGE)
        if await ip_store.delete_user_allowed_ip(user_id, index) is None:
            raise api_error(500, E.RESTRICTION_DELETE_FAILED)
    else:
        numeric_id = _parse_numeric_id(restriction_id)
        if not await ip_store.delete_role_restriction(numeric_id):
            raise api_error(404, E.RESTRICTION_NOT_FOUND)

    logger.info("IP restriction %s deleted by %s", restriction_id, admin.email)
    return SuccessResponse(message=f"Restriction {restriction_id} deleted")


@router.put("/users/{user_id}", response_model=UserInfo)
async def update_user_access(
    user_id: int,
    data: UserIPAccessUpdate,
    admin: CurrentUser = Depends(require_admin()),
):
    """Set a user's exemption flag, restriction flag and allow-list."""
    _ensure_db()
    if not await ip_store.get_user_by_id(user_id):
        raise api_error(404, E.USER_NOT_FOUND)
    user = await ip_store.update_user_ip_access(
        user_id,
        ip_exempt=data.ip_exempt,
        ip_restricted=data.ip_restricted,
        allowed_ips=data.allowed_ips,
    )
    if not user:
        raise api_error(500, E.RESTRICTION_UPDATE_FAILED)
    logger.info("IP access of %s updated by %s", user["email"], admin.email)
    return UserInfo.from_row(user)


@router.post("/check", response_model=IPCheckResponse)
async def check_access(
    data: IPCheckRequest,
    admin: CurrentUser = Depends(require_admin()),
):
    """Show what the policy would decide for a user connecting from an address."""
    address = normalize_address(data.ip_address.strip())
    decision = await check_ip_access(address, data.user_id)
    return IPCheckResponse(
        allowed=decision.allowed,
        outcome=decision.outcome.value,
        reason=decision.reason,
        client_ip=display_ip(decision.address or address),
    )
