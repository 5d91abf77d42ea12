"""
Conversion Service

Turns a completed Solo Prep session into a Joint Unpack session with a
single-use invitation token. Everything happens in one transaction that first
re-reads the solo session, so concurrent conversions of the same session
produce exactly one joint session.
"""
import logging
import os
import secrets
from datetime import timedelta
from typing import Tuple

from app.errors import InvalidState, NotFound
from app.firebase import db, run_in_transaction
from app.services.ops_logger import EventType, ops_logger
from app.services.session_store import (
    JOINT_UNPACK_SESSIONS,
    load_owned_joint,
    load_owned_solo,
    now_utc,
    joint_ref,
    snapshot_to_dict,
    solo_ref,
    token_ref,
)
from app.util_models import InvitationStatus, SoloPrepStatus

logger = logging.getLogger("app.conversion")

INVITE_TOKEN_TTL_HOURS = int(os.environ.get("INVITE_TOKEN_TTL_HOURS", "24"))
INVITE_BASE_URL = os.environ.get("INVITE_BASE_URL", "https://parity.app").rstrip("/")


def generate_invitation_token() -> str:
    return secrets.token_urlsafe(32)


def invitation_link(token: str) -> str:
    return f"{INVITE_BASE_URL}/join/{token}"


def _convert(transaction, solo_prep_session_id: str, requester_id: str, joint_doc_ref, token: str):
    solo = load_owned_solo(solo_prep_session_id, requester_id, transaction=transaction)
    status = solo.get("status")

    if status == SoloPrepStatus.CONVERTED.value:
        existing_id = solo.get("jointUnpackSessionId")
        existing = joint_ref(existing_id).get(transaction=transaction) if existing_id else None
        if existing is None or not existing.exists:
            # Converted but the joint doc is gone; nothing sensible to return.
            raise NotFound()
        return snapshot_to_dict(existing), False

    if status != SoloPrepStatus.COMPLETED.value:
        raise InvalidState("Generate a briefing before inviting the other party")

    now = now_utc()
    expires_at = now + timedelta(hours=INVITE_TOKEN_TTL_HOURS)
    joint = {
        "soloPrepSessionId": solo_prep_session_id,
        "initiatorUserId": requester_id,
        "relationshipType": solo.get("relationshipType"),
        "conversationTopic": solo.get("conversationTopic"),
        "invitation": {
            "token": token,
            "expiresAt": expires_at,
            "status": InvitationStatus.PENDING.value,
            "acceptedAt": None,
            "completedAt": None,
        },
        "inviteeResponses": [],
        "revealStatus": {"initiatorReady": False, "inviteeReady": False},
        "generatedAgenda": None,
        "createdAt": now,
        "updatedAt": now,
    }

    transaction.create(joint_doc_ref, joint)
    transaction.create(token_ref(token), {
        "jointUnpackSessionId": joint_doc_ref.id,
        "expiresAt": expires_at,
        "createdAt": now,
    })
    transaction.update(solo_ref(solo_prep_session_id), {
        "status": SoloPrepStatus.CONVERTED.value,
        "jointUnpackSessionId": joint_doc_ref.id,
        "updatedAt": now,
    })
    return {**joint, "id": joint_doc_ref.id}, True


def convert_to_joint(solo_prep_session_id: str, requester_id: str) -> Tuple[dict, bool]:
    """
    Converts a completed Solo Prep session.

    Returns:
        (joint_session, created). ``created`` is False when the session had
        already been converted and the existing joint session is returned.
    """
    joint_doc_ref = db.collection(JOINT_UNPACK_SESSIONS).document()
    token = generate_invitation_token()

    joint, created = run_in_transaction(_convert, solo_prep_session_id, requester_id, joint_doc_ref, token)

    if created:
        logger.info(f"[Conversion] {solo_prep_session_id} -> {joint['id']} for {requester_id}")
        ops_logger.info(
            EventType.SESSION_CONVERTED,
            uid=requester_id,
            session_id=solo_prep_session_id,
            joint_session_id=joint["id"],
        )
    else:
        logger.info(f"[Conversion] {solo_prep_session_id} already converted to {joint['id']}")
    return joint, created


def get_invitation(joint_session_id: str, requester_id: str) -> dict:
    """Shareable invitation for the owner. Always the token minted at conversion."""
    joint = load_owned_joint(joint_session_id, requester_id)
    invitation = joint.get("invitation") or {}
    return {
        "invitationLink": invitation_link(invitation["token"]),
        "token": invitation["token"],
        "expiresAt": invitation["expiresAt"],
        "status": invitation.get("status", InvitationStatus.PENDING.value),
    }


def _delete_joint(transaction, joint_session_id: str, requester_id: str):
    joint = load_owned_joint(joint_session_id, requester_id, transaction=transaction)
    solo_id = joint.get("soloPrepSessionId")
    solo_snap = solo_ref(solo_id).get(transaction=transaction) if solo_id else None

    token = (joint.get("invitation") or {}).get("token")
    if token:
        transaction.delete(token_ref(token))
    transaction.delete(joint_ref(joint_session_id))
    # The solo session stays converted; only its pointer is cleared.
    if solo_snap is not None and solo_snap.exists:
        transaction.update(solo_ref(solo_id), {"jointUnpackSessionId": None, "updatedAt": now_utc()})
    return solo_id


def delete_joint_session(joint_session_id: str, requester_id: str) -> None:
    """
    Deletes a Joint Unpack session and its invitation token for the initiator.
    The token stops resolving in the same commit.
    """
    solo_id = run_in_transaction(_delete_joint, joint_session_id, requester_id)
    logger.info(f"[Conversion] Deleted joint {joint_session_id} (solo={solo_id})")
    ops_logger.info(
        EventType.JOINT_SESSION_DELETE,
        uid=requester_id,
        session_id=solo_id,
        joint_session_id=joint_session_id,
    )
