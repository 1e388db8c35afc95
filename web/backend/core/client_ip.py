"""Client address resolution from proxy headers and the transport peer.

Precedence: first X-Forwarded-For entry, then X-Real-IP, then the socket peer.
The chosen value has IPv4-mapped IPv6 (``::ffff:a.b.c.d``) and ``::1`` rewritten
to their IPv4 forms; nothing else is canonicalized.
"""
from typing import Mapping, Optional

from fastapi import Request
from starlette.datastructures import Headers

_MAPPED_PREFIX = "::ffff:"
UNKNOWN = "unknown"


def normalize_address(ip: str) -> str:
    """Rewrite IPv4-mapped IPv6 and ::1 to their IPv4 forms."""
    if ip.startswith(_MAPPED_PREFIX):
        return ip[len(_MAPPED_PREFIX):]
    if ip == "::1":
        return "127.0.0.1"
    return ip


def resolve_client_address(
    headers: Optional[Mapping[str, str]],
    peer: Optional[str] = None,
) -> Optional[str]:
    """Return the best-effort client address, or None when nothing is available.

    ``headers`` may be a Starlette ``Headers`` or any mapping; lookups are
    case-insensitive either way.
    """
    if not isinstance(headers, Headers):
        headers = Headers(headers=dict(headers or {}))

    forwarded = headers.get("x-forwarded-for")
    if forwarded and forwarded.strip():
        parts = [p.strip() for p in forwarded.split(",") if p.strip()]
        if parts:
            # First entry is the original client
            return normalize_address(parts[0])

    real_ip = headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return normalize_address(real_ip.strip())

    if peer:
        return normalize_address(peer)
    return None


def get_client_ip(request: Request) -> Optional[str]:
    """Resolve the client address of a FastAPI/Starlette request."""
    peer = request.client.host if request.client else None
    return resolve_client_address(request.headers, peer)


def display_ip(address: Optional[str]) -> str:
    """Printable form of a resolved address for logs and responses."""
    return address or UNKNOWN
