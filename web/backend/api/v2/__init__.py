"""API v2 routers."""
from web.backend.api.v2 import auth, ip_restrictions

__all__ = ["auth", "ip_restrictions"]
