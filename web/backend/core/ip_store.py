"""IP restriction store — database operations for users, roles and ip_restrictions.

Provides:
- Subject snapshots for the policy engine (read fresh on every decision)
- Account lookups for the login flow
- Restriction record management for the admin API

``load_subject`` raises ``SubjectLoadError`` on any retrieval failure so that
callers can fail closed. The remaining helpers log and return an empty value.
"""
import logging
from typing import Any, Dict, List, Optional

from web.backend.core.ip_policy import RoleSnapshot, Subject

logger = logging.getLogger(__name__)


class SubjectLoadError(Exception):
    """Restriction state could not be read from the database."""


def _get_db():
    from shared.database import db_service
    return db_service


def is_available() -> bool:
    """True when the connection pool is up."""
    return _get_db().is_connected


def build_subject(user: Dict[str, Any], restrictions: List[Dict[str, Any]]) -> Subject:
    """Flatten a joined user/role row plus active role restrictions into a Subject."""
    role = None
    if user.get("role_id") is not None:
        role = RoleSnapshot(
            name=user.get("role_name"),
            restricted=bool(user.get("role_ip_restricted")),
            allowed_ips=tuple(user.get("role_allowed_ips") or ()),
            restriction_patterns=tuple(r["ip_address"] for r in restrictions if r.get("ip_address")),
        )
    return Subject(
        user_id=user["id"],
        email=user.get("email"),
        exempt=bool(user.get("ip_exempt")),
        restricted=bool(user.get("ip_restricted")),
        allowed_ips=tuple(user.get("allowed_ips") or ()),
        role=role,
    )


# ── Policy subject ──────────────────────────────────────────────

async def load_subject(user_id: int) -> Optional[Subject]:
    """Load the restriction snapshot for a user. None if the user does not exist."""
    db = _get_db()
    if not db.is_connected:
        raise SubjectLoadError("database not connected")
    try:
        async with db.acquire() as conn:
            user = await conn.fetchrow(
                """
                SELECT u.id, u.email, u.ip_exempt, u.ip_restricted, u.allowed_ips,
                       u.role_id, r.name AS role_name,
                       r.ip_restricted AS role_ip_restricted,
                       r.allowed_ips AS role_allowed_ips
                FROM users u
                LEFT JOIN roles r ON r.id = u.role_id
                WHERE u.id = $1
                """,
                user_id,
            )
            if not user:
                return None
            restrictions = []
            if user["role_id"] is not None:
                restrictions = await conn.fetch(
                    """
                    SELECT ip_address FROM ip_restrictions
                    WHERE role_id = $1 AND is_active = TRUE
                    ORDER BY created_at DESC
                    """,
                    user["role_id"],
                )
    except Exception as e:
        raise SubjectLoadError(str(e)) from e
    return build_subject(dict(user), [dict(r) for r in restrictions])


# ── Accounts ────────────────────────────────────────────────────

_USER_SELECT = """
    SELECT u.*, r.name AS role_name
    FROM users u
    LEFT JOIN roles r ON r.id = u.role_id
"""


async def get_user_by_email(email: str) -> Optional[dict]:
    """Fetch user with role name by email (case-insensitive).

    Unlike the other helpers this raises on database errors: the login flow
    has to tell "no such user" apart from "store unavailable".
    """
    db = _get_db()
    if not db.is_connected:
        raise SubjectLoadError("database not connected")
    async with db.acquire() as conn:
        row = await conn.fetchrow(
            _USER_SELECT + " WHERE LOWER(u.email) = LOWER($1)",
            email,
        )
        return dict(row) if row else None


async def get_user_by_id(user_id: int) -> Optional[dict]:
    """Fetch user with role name by ID."""
    try:
        db = _get_db()
        if not db.is_connected:
            return None
        async with db.acquire() as conn:
            row = await conn.fetchrow(_USER_SELECT + " WHERE u.id = $1", user_id)
            return dict(row) if row else None
    except Exception as e:
        logger.error("get_user_by_id failed: %s", e)
        return None


async def get_role_by_id(role_id: int) -> Optional[dict]:
    """Fetch role by ID."""
    try:
        db = _get_db()
        if not db.is_connected:
            return None
        async with db.acquire() as conn:
            row = await conn.fetchrow("SELECT * FROM roles WHERE id = $1", role_id)
            return dict(row) if row else None
    except Exception as e:
        logger.error("get_role_by_id failed: %s", e)
        return None


async def record_login(user_id: int, ip: Optional[str]) -> bool:
    """Store last login IP and time."""
    try:
        db = _get_db()
        if not db.is_connected:
            return False
        async with db.acquire() as conn:
            await conn.execute(
                "UPDATE users SET last_login_ip = $2, last_login_at = NOW() WHERE id = $1",
                user_id, ip,
            )
            return True
    except Exception as e:
        logger.error("record_login failed: %s", e)
        return False


# ── Restriction records ─────────────────────────────────────────

async def list_ip_restrictions() -> List[dict]:
    """Role restriction rows followed by user allow-list entries (one row per IP)."""
    try:
        db = _get_db()
        if not db.is_connected:
            return []
        async with db.acquire() as conn:
            role_rows = await conn.fetch(
                """
                SELECT ir.*, r.name AS role_name
                FROM ip_restrictions ir
                JOIN roles r ON r.id = ir.role_id
                ORDER BY ir.created_at DESC
                """
            )
            user_rows = await conn.fetch(
                """
                SELECT id, name, email, allowed_ips, ip_restricted, created_at, updated_at
                FROM users
                WHERE ip_restricted = TRUE AND cardinality(allowed_ips) > 0
                ORDER BY id
                """
            )
    except Exception as e:
        logger.error("list_ip_restrictions failed: %s", e)
        return []

    result = [
        {
            "id": str(r["id"]),
            "type": "role",
            "role_id": r["role_id"],
            "role_name": r["role_name"],
            "ip_address": r["ip_address"],
            "description": r["description"],
            "is_active": r["is_active"],
            "created_at": r["created_at"],
            "updated_at": r["updated_at"],
        }
        for r in role_rows
    ]
    for u in user_rows:
        for idx, ip in enumerate(u["allowed_ips"] or []):
            result.append({
                "id": f"user-{u['id']}-{idx}",
                "type": "user",
                "user_id": u["id"],
                "user_name": u["name"],
                "user_email": u["email"],
                "ip_address": ip,
                "description": None,
                "is_active": u["ip_restricted"],
                "created_at": u["created_at"],
                "updated_at": u["updated_at"],
            })
    return result


async def create_role_restriction(
    role_id: int,
    ip_address: str,
    description: Optional[str] = None,
) -> Optional[dict]:
    """Insert an active role restriction and mark the role as restricted."""
    try:
        db = _get_db()
        if not db.is_connected:
            return None
        async with db.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    """
                    INSERT INTO ip_restrictions (role_id, ip_address, description, is_active)
                    VALUES ($1, $2, $3, TRUE)
                    RETURNING *
                    """,
                    role_id, ip_address, description,
                )
                await conn.execute(
                    "UPDATE roles SET ip_restricted = TRUE WHERE id = $1", role_id,
                )
            return dict(row) if row else None
    except Exception as e:
        logger.error("create_role_restriction failed: %s", e)
        return None


async def add_user_allowed_ip(user_id: int, ip_address: str) -> bool:
    """Append an address to the user's allow-list and enable user-level restriction."""
    try:
        db = _get_db()
        if not db.is_connected:
            return False
        async with db.acquire() as conn:
            result = await conn.execute(
                """
                UPDATE users
                SET allowed_ips = array_append(allowed_ips, $2),
                    ip_restricted = TRUE,
                    updated_at = NOW()
                WHERE id = $1
                """,
                user_id, ip_address,
            )
            return result == "UPDATE 1"
    except Exception as e:
        logger.error("add_user_allowed_ip failed: %s", e)
        return False


async def set_role_restriction_active(restriction_id: int, is_active: bool) -> Optional[dict]:
    """Toggle a role restriction row."""
    try:
        db = _get_db()
        if not db.is_connected:
            return None
        async with db.acquire() as conn:
            row = await conn.fetchrow(
                """
                UPDATE ip_restrictions SET is_active = $2, updated_at = NOW()
                WHERE id = $1
                RETURNING *
                """,
                restriction_id, is_active,
            )
            return dict(row) if row else None
    except Exception as e:
        logger.error("set_role_restriction_active failed: %s", e)
        return None


async def set_user_restricted(user_id: int, restricted: bool) -> bool:
    """Switch user-level restriction on or off."""
    try:
        db = _get_db()
        if not db.is_connected:
            return False
        async with db.acquire() as conn:
            result = await conn.execute(
                "UPDATE users SET ip_restricted = $2, updated_at = NOW() WHERE id = $1",
                user_id, restricted,
            )
            return result == "UPDATE 1"
    except Exception as e:
        logger.error("set_user_restricted failed: %s", e)
        return False


async def delete_role_restriction(restriction_id: int) -> Optional[dict]:
    """Delete a role restriction row.

    Clears the role's restricted flag once it has no active rows left.
    Returns the deleted row, or None if it did not exist.
    """
    try:
        db = _get_db()
        if not db.is_connected:
            return None
        async with db.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    "DELETE FROM ip_restrictions WHERE id = $1 RETURNING *",
                    restriction_id,
                )
                if not row:
                    return None
                remaining = await conn.fetchval(
                    "SELECT COUNT(*) FROM ip_restrictions WHERE role_id = $1 AND is_active = TRUE",
                    row["role_id"],
                )
                if remaining == 0:
                    await conn.execute(
                        "UPDATE roles SET ip_restricted = FALSE WHERE id = $1",
                        row["role_id"],
                    )
            return dict(row)
    except Exception as e:
        logger.error("delete_role_restriction failed: %s", e)
        return None


async def delete_user_allowed_ip(user_id: int, index: int) -> Optional[List[str]]:
    """Remove the allow-list entry at ``index``. Returns the remaining list.

    Dropping the last entry also clears user-level restriction.
    The caller validates the index against ``get_user_by_id``.
    """
    try:
        db = _get_db()
        if not db.is_connected:
            return None
        async with db.acquire() as conn:
            async with conn.transaction():
                row = await conn.fetchrow(
                    "SELECT allowed_ips, ip_restricted FROM users WHERE id = $1 FOR UPDATE",
                    user_id,
                )
                if not row:
                    return None
                ips = list(row["allowed_ips"] or [])
                if index < 0 or index >= len(ips):
                    return None
                ips.pop(index)
                restricted = row["ip_restricted"] if ips else False
                await conn.execute(
                    """
                    UPDATE users SET allowed_ips = $2, ip_restricted = $3, updated_at = NOW()
                    WHERE id = $1
                    """,
                    user_id, ips, restricted,
                )
            return ips
    except Exception as e:
        logger.error("delete_user_allowed_ip failed: %s", e)
        return None


async def update_user_ip_access(
    user_id: int,
    ip_exempt: Optional[bool] = None,
    ip_restricted: Optional[bool] = None,
    allowed_ips: Optional[List[str]] = None,
) -> Optional[dict]:
    """Update the user's IP access fields. Only non-None fields are written."""
    fields = {
        "ip_exempt": ip_exempt,
        "ip_restricted": ip_restricted,
        "allowed_ips": allowed_ips,
    }
    updates = {k: v for k, v in fields.items() if v is not None}
    if not updates:
        return await get_user_by_id(user_id)

    set_parts = []
    values: list = [user_id]
    for i, (col, val) in enumerate(updates.items(), start=2):
        set_parts.append(f"{col} = ${i}")
        values.append(val)
    set_parts.append("updated_at = NOW()")

    try:
        db = _get_db()
        if not db.is_connected:
            return None
        async with db.acquire() as conn:
            row = await conn.fetchrow(
                f"UPDATE users SET {', '.join(set_parts)} WHERE id = $1 RETURNING id",
                *values,
            )
            if not row:
                return None
    except Exception as e:
        logger.error("update_user_ip_access failed: %s", e)
        return None
    return await get_user_by_id(user_id)
