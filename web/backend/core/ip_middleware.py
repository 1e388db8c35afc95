"""IP restriction middleware: enforces the IP policy on every API request.

Resolves the client address, identifies the caller from the bearer token
(if any) and runs the shared IP check. Requests without a valid token pass
through: the route's own auth dependency rejects them, and the login
endpoint applies the policy itself after verifying the password.
"""
import logging
from typing import Optional

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from web.backend.core.client_ip import display_ip, get_client_ip
from web.backend.core.errors import IP_DENIED_STATUS, ip_denied_body
from web.backend.core.ip_gate import check_ip_access
from web.backend.core.security import user_id_from_token

logger = logging.getLogger(__name__)

# Paths that never go through the IP check
_SKIP_PATHS = {
    "/",
    "/api/v2/health",
    "/api/v2/auth/login",
    "/api/docs",
    "/api/redoc",
    "/api/openapi.json",
}


def _bearer_token(request: Request) -> Optional[str]:
    header = request.headers.get("authorization")
    if not header:
        return None
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class IPRestrictionMiddleware(BaseHTTPMiddleware):
    """Deny requests whose client address is not allowed for the caller."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in _SKIP_PATHS or request.method == "OPTIONS":
            return await call_next(request)

        client_ip = get_client_ip(request)
        structlog.contextvars.bind_contextvars(client_ip=display_ip(client_ip))
        try:
            user_id = user_id_from_token(_bearer_token(request))
            decision = await check_ip_access(client_ip, user_id)
            if not decision.allowed:
                logger.warning(
                    "Request blocked: %s %s (%s)",
                    request.method, request.url.path, decision.outcome.value,
                )
                return JSONResponse(
                    status_code=IP_DENIED_STATUS,
                    content={"detail": ip_denied_body(decision)},
                )
            return await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("client_ip")
