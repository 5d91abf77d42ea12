"""
Entitlement Gate

Decides whether a user may start a new Solo Prep session. Premium tiers are
unlimited; trial users consume ``trialSessionsRemaining`` through a
decrement-if-positive inside a Firestore transaction, so concurrent requests
can never both spend the last trial session.
"""
import logging
import os
from dataclasses import dataclass

from app.errors import EntitlementDenied
from app.firebase import run_in_transaction
from app.services.plans import effective_status, is_premium
from app.services.session_store import user_ref, now_utc
from app.services.ops_logger import log_entitlement_denied

logger = logging.getLogger("app.entitlements")

SOLO_PREP_TRIAL_LIMIT = int(os.environ.get("SOLO_PREP_TRIAL_LIMIT", "1"))


@dataclass
class EntitlementDecision:
    allowed: bool
    reason: str
    subscription_status: str
    trial_sessions_remaining: int


def _remaining(data: dict) -> int:
    remaining = data.get("trialSessionsRemaining")
    if remaining is None:
        return SOLO_PREP_TRIAL_LIMIT
    return max(0, int(remaining))


def _check_and_consume(transaction, ref) -> EntitlementDecision:
    snapshot = ref.get(transaction=transaction)
    data = (snapshot.to_dict() or {}) if snapshot.exists else {}
    status = effective_status(data)
    remaining = _remaining(data)

    if is_premium(status):
        return EntitlementDecision(True, "premium", status, remaining)

    if status == "trial":
        if remaining > 0:
            now = now_utc()
            payload = {"trialSessionsRemaining": remaining - 1, "updatedAt": now}
            if not snapshot.exists:
                payload.update({"subscriptionStatus": "trial", "createdAt": now})
            transaction.set(ref, payload, merge=True)
            return EntitlementDecision(True, "trial", status, remaining - 1)
        return EntitlementDecision(False, "trial_exhausted", status, 0)

    return EntitlementDecision(False, "subscription_required", status, remaining)


def authorize_session_creation(user_id: str, transaction=None) -> EntitlementDecision:
    """
    Checks (and for trial users, consumes) the right to create one session.

    Args:
        user_id: authenticated uid
        transaction: optional outer transaction; when given, the decrement
            commits together with whatever else the caller writes.
    """
    ref = user_ref(user_id)
    if transaction is not None:
        decision = _check_and_consume(transaction, ref)
    else:
        decision = run_in_transaction(_check_and_consume, ref)

    if not decision.allowed:
        logger.info(f"[Entitlement] Denied {user_id}: {decision.reason}")
    return decision


def require_premium(user_id: str) -> str:
    snapshot = user_ref(user_id).get()
    data = (snapshot.to_dict() or {}) if snapshot.exists else {}
    status = effective_status(data)
    if not is_premium(status):
        log_entitlement_denied(user_id, "premium_required")
        raise EntitlementDenied("premium_required", "This feature requires a premium subscription.")
    return status


def get_trial_status(user_id: str) -> dict:
    snapshot = user_ref(user_id).get()
    data = (snapshot.to_dict() or {}) if snapshot.exists else {}
    status = effective_status(data)
    remaining = _remaining(data)
    return {
        "subscriptionStatus": status,
        "isPremium": is_premium(status),
        "remainingTrials": remaining,
        "usedSessions": max(0, SOLO_PREP_TRIAL_LIMIT - remaining),
    }
