"""Rate limiting configuration for the web backend.

Keyed on the transport peer. Proxy headers are set by the client and
rotating them must not buy a fresh budget.
"""
import logging

from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from web.backend.core.client_ip import normalize_address
from web.backend.core.config import get_web_settings

logger = logging.getLogger(__name__)


def peer_address_key(request: Request) -> str:
    return normalize_address(get_remote_address(request))


limiter = Limiter(
    key_func=peer_address_key,
    default_limits=["200/minute"],
    enabled=get_web_settings().rate_limit_enabled,
)

# ── Per-endpoint rate limit presets ──────────────────────────

RATE_AUTH = "5/minute"  # login
