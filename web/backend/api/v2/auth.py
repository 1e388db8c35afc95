"""Auth API endpoints."""
import logging

from fastapi import APIRouter, Depends, Request

from web.backend.api.deps import CurrentUser, get_current_user
from web.backend.core import ip_store
from web.backend.core.client_ip import display_ip, get_client_ip
from web.backend.core.config import get_web_settings
from web.backend.core.errors import E, api_error, ip_denied_error
from web.backend.core.ip_gate import check_ip_access
from web.backend.core.rate_limit import RATE_AUTH, limiter
from web.backend.core.security import create_access_token, verify_password
from web.backend.schemas.auth import ClientIPResponse, LoginRequest, TokenResponse, UserInfo

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/login", response_model=TokenResponse)
@limiter.limit(RATE_AUTH)
async def login(request: Request, data: LoginRequest):
    """
    Authenticate with email and password.

    The IP policy is applied to the account after the password is verified,
    so an unknown email and a wrong password look the same to the caller.
    """
    settings = get_web_settings()
    client_ip = get_client_ip(request)
    logger.info("Login attempt for '%s' from %s", data.email, display_ip(client_ip))

    try:
        user = await ip_store.get_user_by_email(data.email)
    except Exception as e:
        logger.error("Login lookup failed for '%s': %s", data.email, e)
        raise api_error(500, E.INTERNAL_ERROR, "Server error during login")

    if not user or not verify_password(data.password, user.get("password_hash")):
        logger.warning("Login failed for '%s' from %s", data.email, display_ip(client_ip))
        raise api_error(401, E.INVALID_CREDENTIALS)

    decision = await check_ip_access(client_ip, user["id"])
    if not decision.allowed:
        logger.warning(
            "Login denied for '%s' from %s (%s)",
            data.email, display_ip(client_ip), decision.outcome.value,
        )
        raise ip_denied_error(decision)

    await ip_store.record_login(user["id"], client_ip)
    user["last_login_ip"] = client_ip

    token = create_access_token(user["id"], user["email"], user.get("role_name"))
    logger.info("Login successful for '%s' from %s", data.email, client_ip)

    return TokenResponse(
        access_token=token,
        expires_in=settings.jwt_expire_minutes * 60,
        user=UserInfo.from_row(user),
    )


@router.get("/me", response_model=UserInfo)
async def get_me(current: CurrentUser = Depends(get_current_user)):
    """Get the current user with IP access settings."""
    user = await ip_store.get_user_by_id(current.id)
    if not user:
        raise api_error(404, E.USER_NOT_FOUND)
    return UserInfo.from_row(user)


@router.get("/client-ip", response_model=ClientIPResponse)
async def get_my_ip(request: Request):
    """Address the server sees for this request (for self-diagnosis)."""
    return ClientIPResponse(client_ip=display_ip(get_client_ip(request)))
