"""
Invitation & Guest Access Gateway

Guests have no account; possession of a live invitation token is their only
credential. Unknown, mismatched and expired tokens all fail with the same
``InvalidOrExpired`` so a caller cannot tell which check failed.

Expiry is enforced lazily: the transaction that notices an expired token also
marks a pending/accepted invitation as expired. That write has to commit, so
the transaction returns ``None`` and the error is raised after it.
"""
import logging
import re

from app.errors import InvalidOrExpired, InvalidState
from app.firebase import run_in_transaction
from app.services.ops_logger import EventType, ops_logger
from app.services.prompt_library import invitee_prompts
from app.services.session_store import (
    as_utc,
    joint_ref,
    load_owned_joint,
    now_utc,
    snapshot_to_dict,
    token_ref,
    upsert_entry,
)
from app.util_models import InvitationStatus

logger = logging.getLogger("app.invitations")

_TOKEN_RE = re.compile(r"^[A-Za-z0-9_\-]{16,128}$")

EXPIRABLE = {InvitationStatus.PENDING.value, InvitationStatus.ACCEPTED.value}


def is_expired(invitation: dict, now) -> bool:
    expires_at = invitation.get("expiresAt")
    if expires_at is None:
        return True
    return not now < as_utc(expires_at)


def load_live_invitation(transaction, token: str, session_id: str | None = None):
    """
    Returns ``(joint, expired_now)``. ``joint`` is None when the token does not
    grant access; ``expired_now`` is True when this call marked it expired.
    """
    if not token or not _TOKEN_RE.match(token):
        return None, False

    token_snap = token_ref(token).get(transaction=transaction)
    if not token_snap.exists:
        return None, False
    joint_id = (token_snap.to_dict() or {}).get("jointUnpackSessionId")
    if not joint_id or (session_id is not None and joint_id != session_id):
        return None, False

    joint_snap = joint_ref(joint_id).get(transaction=transaction)
    if not joint_snap.exists:
        return None, False
    joint = snapshot_to_dict(joint_snap)
    invitation = joint.get("invitation") or {}
    if invitation.get("token") != token:
        return None, False

    now = now_utc()
    status = invitation.get("status")
    if is_expired(invitation, now):
        if status in EXPIRABLE:
            transaction.update(joint_ref(joint_id), {
                "invitation.status": InvitationStatus.EXPIRED.value,
                "updatedAt": now,
            })
            return None, True
        return None, False
    if status == InvitationStatus.EXPIRED.value:
        return None, False
    return joint, False


def log_invitation_expired(session_id: str | None = None):
    logger.info(f"[Invitation] Marked invitation expired (session={session_id})")
    ops_logger.info(EventType.INVITATION_EXPIRED, joint_session_id=session_id)


def resolve_invitation(token: str) -> dict:
    """
    Validates a token and returns the guest-safe projection of its session.
    The first successful resolution moves the invitation from pending to accepted.
    """

    def txn_resolve(transaction):
        joint, expired_now = load_live_invitation(transaction, token)
        if joint is None:
            return None, expired_now, False
        accepted_now = False
        if joint["invitation"].get("status") == InvitationStatus.PENDING.value:
            now = now_utc()
            transaction.update(joint_ref(joint["id"]), {
                "invitation.status": InvitationStatus.ACCEPTED.value,
                "invitation.acceptedAt": now,
                "updatedAt": now,
            })
            accepted_now = True
        return joint, expired_now, accepted_now

    joint, expired_now, accepted_now = run_in_transaction(txn_resolve)
    if expired_now:
        log_invitation_expired()
    if joint is None:
        raise InvalidOrExpired()

    if accepted_now:
        logger.info(f"[Invitation] Accepted for {joint['id']}")
        ops_logger.info(EventType.INVITATION_ACCEPTED, joint_session_id=joint["id"])

    return {
        "sessionId": joint["id"],
        "relationshipType": joint.get("relationshipType"),
        "topic": joint.get("conversationTopic"),
    }


def authorize_guest(session_id: str, token: str) -> dict:
    """Capability check for session-scoped guest calls. Returns the joint session document."""

    def txn_authorize(transaction):
        return load_live_invitation(transaction, token, session_id)

    joint, expired_now = run_in_transaction(txn_authorize)
    if expired_now:
        log_invitation_expired(session_id)
    if joint is None:
        raise InvalidOrExpired()
    return joint


def get_guest_prompts(session_id: str, token: str) -> dict:
    joint = authorize_guest(session_id, token)
    return {
        "sessionId": session_id,
        "prompts": invitee_prompts(joint.get("relationshipType"), joint.get("conversationTopic")),
    }


def submit_guest_response(
    session_id: str,
    token: str,
    prompt_id: str,
    response: str,
    prompt_text: str | None = None,
) -> dict:
    """
    Upserts one invitee response by ``prompt_id``. Any submission completes the
    invitation. Responses are frozen once the invitee has opted in to reveal.
    """

    def txn_submit(transaction):
        joint, expired_now = load_live_invitation(transaction, token, session_id)
        if joint is None:
            return None, expired_now
        if (joint.get("revealStatus") or {}).get("inviteeReady"):
            raise InvalidState("Responses can no longer be changed after confirming reveal")

        now = now_utc()
        entries = upsert_entry(joint.get("inviteeResponses"), prompt_id, response, prompt_text, now)
        payload = {
            "inviteeResponses": entries,
            "invitation.status": InvitationStatus.COMPLETED.value,
            "updatedAt": now,
        }
        if not joint["invitation"].get("completedAt"):
            payload["invitation.completedAt"] = now
        transaction.update(joint_ref(session_id), payload)
        return joint, False

    joint, expired_now = run_in_transaction(txn_submit)
    if expired_now:
        log_invitation_expired(session_id)
    if joint is None:
        raise InvalidOrExpired()

    ops_logger.info(EventType.INVITEE_RESPONDED, joint_session_id=session_id, props={"promptId": prompt_id})
    return {
        "sessionId": session_id,
        "promptId": prompt_id,
        "invitationStatus": InvitationStatus.COMPLETED.value,
    }


def get_invitee_status(joint_session_id: str, requester_id: str) -> dict:
    """Owner view of the invitation lifecycle. Never includes invitee content."""
    ref = joint_ref(joint_session_id)

    def txn_status(transaction):
        joint = load_owned_joint(joint_session_id, requester_id, transaction=transaction)
        invitation = joint.get("invitation") or {}
        now = now_utc()
        expired_now = False
        if invitation.get("status") in EXPIRABLE and is_expired(invitation, now):
            transaction.update(ref, {"invitation.status": InvitationStatus.EXPIRED.value, "updatedAt": now})
            invitation["status"] = InvitationStatus.EXPIRED.value
            expired_now = True
        return joint, expired_now

    joint, expired_now = run_in_transaction(txn_status)
    if expired_now:
        log_invitation_expired(joint_session_id)

    invitation = joint.get("invitation") or {}
    reveal = joint.get("revealStatus") or {}
    return {
        "status": invitation.get("status"),
        "expiresAt": invitation.get("expiresAt"),
        "revealStatus": {
            "initiatorReady": bool(reveal.get("initiatorReady")),
            "inviteeReady": bool(reveal.get("inviteeReady")),
        },
    }
