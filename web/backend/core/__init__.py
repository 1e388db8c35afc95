"""Core module for the web backend."""
from web.backend.core.config import get_web_settings, WebSettings
from web.backend.core.ip_policy import (
    Decision,
    Outcome,
    PolicyEngine,
    Subject,
    RoleSnapshot,
    normalize_pattern,
    ip_matches,
    ip_matches_any,
)

__all__ = [
    "get_web_settings",
    "WebSettings",
    "Decision",
    "Outcome",
    "PolicyEngine",
    "Subject",
    "RoleSnapshot",
    "normalize_pattern",
    "ip_matches",
    "ip_matches_any",
]
