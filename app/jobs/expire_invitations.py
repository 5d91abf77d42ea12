import logging
import os
from datetime import datetime, timezone

from app.firebase import db, run_in_transaction
from app.services.session_store import INVITATION_TOKENS, as_utc, joint_ref
from app.util_models import InvitationStatus


logger = logging.getLogger("app.expire_invitations")

EXPIRABLE = {InvitationStatus.PENDING.value, InvitationStatus.ACCEPTED.value}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _expire_token(transaction, token_doc_ref, now: datetime):
    """Returns ``(expired, removed)`` for one token document."""
    token_snap = token_doc_ref.get(transaction=transaction)
    if not token_snap.exists:
        return False, False
    data = token_snap.to_dict() or {}
    expires_at = data.get("expiresAt")
    if expires_at is None or as_utc(expires_at) > now:
        return False, False

    joint_id = data.get("jointUnpackSessionId")
    joint_snap = joint_ref(joint_id).get(transaction=transaction) if joint_id else None

    expired = False
    if joint_snap is not None and joint_snap.exists:
        invitation = (joint_snap.to_dict() or {}).get("invitation") or {}
        if invitation.get("token") == token_doc_ref.id and invitation.get("status") in EXPIRABLE:
            transaction.update(joint_ref(joint_id), {
                "invitation.status": InvitationStatus.EXPIRED.value,
                "updatedAt": now,
            })
            expired = True
    transaction.delete(token_doc_ref)
    return expired, True


def expire_invitations() -> dict:
    """
    Marks pending/accepted invitations past ``expiresAt`` as expired and removes
    their token documents. Completed invitations keep their status.
    """
    limit = int(os.environ.get("INVITATION_REAPER_LIMIT", "200"))
    expired_count = 0
    removed_tokens = 0

    while True:
        now = _now()
        query = (
            db.collection(INVITATION_TOKENS)
            .where("expiresAt", "<=", now)
            .limit(limit)
        )
        docs = list(query.stream())
        if not docs:
            break

        for doc in docs:
            expired, removed = run_in_transaction(_expire_token, doc.reference, now)
            expired_count += int(expired)
            removed_tokens += int(removed)

        if len(docs) < limit:
            break

    return {"expired": expired_count, "tokensRemoved": removed_tokens}


def main() -> None:
    logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO"))
    result = expire_invitations()
    logger.info("Invitation expiry completed. expired=%s tokensRemoved=%s", result["expired"], result["tokensRemoved"])


if __name__ == "__main__":
    main()
