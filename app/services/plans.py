from __future__ import annotations

from datetime import datetime, timezone

PREMIUM_STATUSES = {"premium_monthly", "premium_annual"}
KNOWN_STATUSES = PREMIUM_STATUSES | {"trial", "free"}


def is_premium(status: str | None) -> bool:
    return status in PREMIUM_STATUSES


def effective_status(user_data: dict, now: datetime | None = None) -> str:
    """
    Resolves the subscription status that entitlement checks should use.
    A premium tier whose ``subscriptionExpiresAt`` has passed counts as free.
    Unknown or missing statuses default to trial (new users start on a trial).
    """
    status = user_data.get("subscriptionStatus") or "trial"
    if status not in KNOWN_STATUSES:
        return "free"

    if status in PREMIUM_STATUSES:
        expires_at = user_data.get("subscriptionExpiresAt")
        if expires_at is not None:
            now = now or datetime.now(timezone.utc)
            if expires_at.tzinfo is None:
                expires_at = expires_at.replace(tzinfo=timezone.utc)
            if expires_at <= now:
                return "free"
    return status
