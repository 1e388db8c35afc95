"""IP access policy: pattern normalization, matching and the layered decision.

Patterns come in three forms:
- exact address (``10.0.0.1``), compared as a string
- CIDR (``10.0.0.0/8``), checked for containment
- trailing wildcard (``192.168.1.*``), rewritten to CIDR first

Decision order (first hit wins):
unknown address -> deny; no subject -> allow; exempt user -> allow;
default ranges -> allow; non-empty user whitelist -> authoritative;
role whitelist -> allow or deny when the role is restricted; otherwise allow.
"""
import ipaddress
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)


# ── Normalization & matching ────────────────────────────────────

def normalize_pattern(raw: Optional[str]) -> Optional[str]:
    """Normalize a restriction pattern to CIDR or exact-literal form.

    Wildcards are resolved with a single left-to-right scan: the prefix length
    counts literal octets before the first ``*`` only, so ``10.*.20.*`` becomes
    ``10.0.20.0/8``. Kept as-is for compatibility with stored patterns.
    """
    if raw is None:
        return None
    p = str(raw).strip()

    if len(p) >= 2 and p[0] == p[-1] and p[0] in ("'", '"'):
        p = p[1:-1].strip()

    if not p:
        return None

    if "/" in p:
        return p

    if "*" in p:
        parts = [x.strip() for x in p.split(".")]
        base = []
        for i in range(4):
            part = parts[i] if i < len(parts) else "*"
            base.append("0" if part == "*" else part)

        literal = 0
        for part in parts:
            if part == "*":
                break
            literal += 1

        prefix = min(32, literal * 8)
        return f"{'.'.join(base)}/{prefix}"

    return p


def ip_matches(addr: Optional[str], pattern: Optional[str]) -> bool:
    """Check a single address against a single pattern. Fails closed."""
    if not addr or not pattern:
        return False
    norm = normalize_pattern(pattern)
    if not norm:
        return False
    try:
        if "/" in norm:
            return ipaddress.ip_address(addr) in ipaddress.ip_network(norm, strict=False)
        return addr == norm
    except ValueError:
        logger.debug("Unparseable address or pattern (%s vs %s), using exact match", addr, norm)
        return addr == norm


def ip_matches_any(addr: Optional[str], patterns: Optional[Iterable[str]]) -> bool:
    """True if the address matches at least one pattern."""
    if not addr or not patterns:
        return False
    return any(ip_matches(addr, p) for p in patterns)


# ── Subject snapshot ────────────────────────────────────────────

def normalize_role_name(name: Optional[str]) -> Optional[str]:
    """'Team Lead' / 'team_lead' / ' TEAM  lead ' -> 'team_lead'."""
    if name is None:
        return None
    return re.sub(r"\s+", "_", name.strip().lower())


@dataclass(frozen=True)
class RoleSnapshot:
    """Flattened role restriction state."""

    name: Optional[str] = None
    restricted: bool = False
    allowed_ips: Tuple[str, ...] = ()
    restriction_patterns: Tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "name", normalize_role_name(self.name))
        object.__setattr__(self, "allowed_ips", tuple(self.allowed_ips or ()))
        object.__setattr__(self, "restriction_patterns", tuple(self.restriction_patterns or ()))

    @property
    def patterns(self) -> Tuple[str, ...]:
        """Legacy role patterns first, then active restriction records."""
        return self.allowed_ips + self.restriction_patterns


@dataclass(frozen=True)
class Subject:
    """Read-only snapshot of a user's (and their role's) IP restriction state."""

    user_id: Optional[int] = None
    email: Optional[str] = None
    exempt: bool = False
    restricted: bool = False
    allowed_ips: Tuple[str, ...] = ()
    role: Optional[RoleSnapshot] = None

    def __post_init__(self):
        object.__setattr__(self, "allowed_ips", tuple(self.allowed_ips or ()))

    @property
    def label(self) -> str:
        return self.email or f"user#{self.user_id}"


# ── Decision ────────────────────────────────────────────────────

class Outcome(str, Enum):
    ALLOW = "allow"
    DENY_UNKNOWN_ADDRESS = "deny_unknown_address"
    DENY_USER_POLICY = "deny_user_policy"
    DENY_ROLE_POLICY = "deny_role_policy"
    DENY_EVALUATION_ERROR = "deny_evaluation_error"


@dataclass(frozen=True)
class Decision:
    """Result of a single policy evaluation."""

    outcome: Outcome
    address: Optional[str] = None
    reason: Optional[str] = None

    @property
    def allowed(self) -> bool:
        return self.outcome is Outcome.ALLOW

    @classmethod
    def allow(cls, address: Optional[str], reason: Optional[str] = None) -> "Decision":
        return cls(Outcome.ALLOW, address, reason)


class PolicyEngine:
    """Stateless evaluator; safe to share across concurrent requests."""

    def __init__(self, default_allowed: Sequence[str] = ()):
        self._default_allowed: Tuple[str, ...] = tuple(default_allowed)

    @property
    def default_allowed(self) -> Tuple[str, ...]:
        return self._default_allowed

    def evaluate(self, address: Optional[str], subject: Optional[Subject]) -> Decision:
        if not address:
            return Decision(
                Outcome.DENY_UNKNOWN_ADDRESS, None,
                "Cannot determine client IP",
            )

        # Identity not resolved yet (e.g. before password check)
        if subject is None:
            return Decision.allow(address, "unauthenticated")

        if subject.exempt:
            return Decision.allow(address, "user exempt")

        if ip_matches_any(address, self._default_allowed):
            return Decision.allow(address, "default allowed range")

        if subject.restricted and subject.allowed_ips:
            if ip_matches_any(address, subject.allowed_ips):
                return Decision.allow(address, "user whitelist")
            return Decision(
                Outcome.DENY_USER_POLICY, address,
                f"{address} not in whitelist of {subject.label}",
            )

        role = subject.role
        if role is not None:
            patterns = role.patterns
            if ip_matches_any(address, patterns):
                return Decision.allow(address, "role whitelist")
            if role.restricted and patterns:
                return Decision(
                    Outcome.DENY_ROLE_POLICY, address,
                    f"{address} not in whitelist of role {role.name}",
                )

        return Decision.allow(address, "no restriction applies")

    @staticmethod
    def evaluation_error(address: Optional[str], detail: str) -> Decision:
        """Fail-closed decision for a subject that could not be loaded."""
        return Decision(Outcome.DENY_EVALUATION_ERROR, address, detail)


_engine: Optional[PolicyEngine] = None


def get_policy_engine() -> PolicyEngine:
    """Engine built from WEB_DEFAULT_ALLOWED_IPS (cached)."""
    global _engine
    if _engine is None:
        from web.backend.core.config import get_web_settings
        _engine = PolicyEngine(get_web_settings().default_allowed_ips)
    return _engine


def reset_policy_engine() -> None:
    """Drop the cached engine (call after settings change)."""
    global _engine
    _engine = None
