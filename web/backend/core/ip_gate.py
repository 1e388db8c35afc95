"""Shared entry point for IP access checks (login + request middleware).

Loads the caller's restriction state fresh from the store and evaluates it.
Retrieval failures are turned into a deny decision, never an allow.
"""
import logging
from typing import Optional

from web.backend.core import ip_store
from web.backend.core.client_ip import display_ip
from web.backend.core.ip_policy import Decision, Outcome, PolicyEngine, get_policy_engine

logger = logging.getLogger(__name__)


async def check_ip_access(
    address: Optional[str],
    user_id: Optional[int],
    engine: Optional[PolicyEngine] = None,
) -> Decision:
    """Decide whether ``address`` may proceed for ``user_id`` (None = not authenticated)."""
    engine = engine or get_policy_engine()

    if not address or user_id is None:
        decision = engine.evaluate(address, None)
        if not decision.allowed:
            logger.warning("IP DENY (unknown address) user=%s", user_id)
        return decision

    try:
        subject = await ip_store.load_subject(user_id)
    except Exception as e:
        logger.error("IP check failed for user %s from %s: %s", user_id, address, e)
        return engine.evaluation_error(address, f"restriction state unavailable: {e}")

    if subject is None:
        logger.error("IP check: user %s not found (address %s)", user_id, address)
        return engine.evaluation_error(address, "user not found")

    decision = engine.evaluate(address, subject)
    log_decision(decision, subject.label)
    return decision


def log_decision(decision: Decision, who: str) -> None:
    if decision.outcome is Outcome.ALLOW:
        logger.debug("IP ALLOW %s for %s (%s)", display_ip(decision.address), who, decision.reason)
    elif decision.outcome is Outcome.DENY_USER_POLICY:
        logger.warning("IP DENY (user whitelist) %s for %s", decision.address, who)
    elif decision.outcome is Outcome.DENY_ROLE_POLICY:
        logger.warning("IP DENY (role whitelist) %s for %s: %s", decision.address, who, decision.reason)
    else:
        logger.warning("IP DENY (%s) %s for %s", decision.outcome.value, display_ip(decision.address), who)
