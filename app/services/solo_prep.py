"""
Solo Prep Session Manager

Owns creation, journal upserts and briefing generation for single-party
sessions. Status only moves forward: in-progress -> completed -> converted.
Converted sessions are immutable.
"""
import json
import logging
from typing import List

from google.cloud import firestore

from app.errors import EntitlementDenied, InvalidState, NotFound, UpstreamFailure
from app.firebase import db, run_in_transaction
from app.services import content_generator
from app.services.entitlements import authorize_session_creation
from app.services.ops_logger import EventType, ops_logger, log_entitlement_denied, log_llm_failure
from app.services.prompt_library import solo_prompts
from app.services.session_store import (
    SOLO_PREP_SESSIONS,
    load_owned_solo,
    now_utc,
    solo_ref,
    joint_ref,
    token_ref,
    upsert_entry,
    user_ref,
)
from app.util_models import SoloPrepStatus

logger = logging.getLogger("app.solo_prep")

HISTORY_LIMIT = 5


def _ensure_mutable(session: dict):
    if session.get("status") == SoloPrepStatus.CONVERTED.value:
        raise InvalidState("Session has been converted and can no longer be changed")


def create_session(user_id: str, context: dict) -> dict:
    """
    Creates a Solo Prep session after Entitlement Gate approval.
    The trial decrement and the session document commit in one transaction.
    """
    ref = db.collection(SOLO_PREP_SESSIONS).document()
    now = now_utc()
    data = {
        "ownerUserId": user_id,
        "relationshipType": context["relationshipType"],
        "conversationTopic": context["conversationTopic"],
        "conversationData": context.get("conversationData") or {},
        "journalEntries": [],
        "status": SoloPrepStatus.IN_PROGRESS.value,
        "generatedBriefing": None,
        "jointUnpackSessionId": None,
        "createdAt": now,
        "updatedAt": now,
    }

    def txn_create(transaction):
        decision = authorize_session_creation(user_id, transaction=transaction)
        if decision.allowed:
            transaction.set(ref, data)
        return decision

    decision = run_in_transaction(txn_create)
    if not decision.allowed:
        log_entitlement_denied(user_id, decision.reason)
        raise EntitlementDenied(decision.reason)

    logger.info(f"[SoloPrep] Created {ref.id} for {user_id} ({decision.reason})")
    ops_logger.info(EventType.SESSION_CREATE, uid=user_id, session_id=ref.id, props={"entitlement": decision.reason})
    return {**data, "id": ref.id}


def get_session(session_id: str, requester_id: str) -> dict:
    return load_owned_solo(session_id, requester_id)


def list_sessions(requester_id: str) -> List[dict]:
    query = (
        db.collection(SOLO_PREP_SESSIONS)
        .where("ownerUserId", "==", requester_id)
        .order_by("createdAt", direction=firestore.Query.DESCENDING)
    )
    sessions = []
    for doc in query.stream():
        data = doc.to_dict() or {}
        data["id"] = doc.id
        sessions.append(data)
    return sessions


def append_journal_entry(
    session_id: str,
    requester_id: str,
    prompt_id: str,
    response: str,
    prompt_text: str | None = None,
) -> dict:
    """Upserts one journal entry by ``prompt_id``. Safe to retry."""
    ref = solo_ref(session_id)

    def txn_upsert(transaction):
        session = load_owned_solo(session_id, requester_id, transaction=transaction)
        _ensure_mutable(session)
        now = now_utc()
        entries = upsert_entry(session.get("journalEntries"), prompt_id, response, prompt_text, now)
        transaction.update(ref, {"journalEntries": entries, "updatedAt": now})
        session.update({"journalEntries": entries, "updatedAt": now})
        return session

    return run_in_transaction(txn_upsert)


def _profile_for(user_id: str) -> dict:
    snapshot = user_ref(user_id).get()
    data = (snapshot.to_dict() or {}) if snapshot.exists else {}
    return {
        "name": data.get("displayName"),
        "communicationStyle": data.get("communicationStyle") or "collaborative",
        "experienceLevel": "experienced" if (data.get("trialSessionsRemaining") or 0) < 1 else "new",
    }


async def request_briefing(session_id: str, requester_id: str) -> dict:
    """
    Generates the strategy briefing and marks the session completed.
    Nothing is written unless generation succeeds, so failed calls can be retried.
    """
    session = load_owned_solo(session_id, requester_id)
    _ensure_mutable(session)
    entries = session.get("journalEntries") or []

    try:
        briefing = await content_generator.generate_briefing(
            entries,
            session["relationshipType"],
            session["conversationTopic"],
            _profile_for(requester_id),
        )
    except UpstreamFailure as e:
        log_llm_failure("briefing", uid=requester_id, session_id=session_id, error_message=e.message,
                        parse_error=e.parse_error)
        raise

    generated = {
        "content": briefing,
        "generatedAt": now_utc(),
        "model": content_generator.model_name(),
    }
    ref = solo_ref(session_id)

    def txn_store(transaction):
        current = load_owned_solo(session_id, requester_id, transaction=transaction)
        # The session may have been converted while the generator was running.
        _ensure_mutable(current)
        transaction.update(ref, {
            "generatedBriefing": generated,
            "status": SoloPrepStatus.COMPLETED.value,
            "updatedAt": generated["generatedAt"],
        })
        current.update({
            "generatedBriefing": generated,
            "status": SoloPrepStatus.COMPLETED.value,
            "updatedAt": generated["generatedAt"],
        })
        return current

    stored = run_in_transaction(txn_store)
    logger.info(f"[SoloPrep] Briefing stored for {session_id}")
    ops_logger.info(EventType.BRIEFING_GENERATED, uid=requester_id, session_id=session_id)
    return stored


def get_briefing(session_id: str, requester_id: str) -> dict:
    session = load_owned_solo(session_id, requester_id)
    briefing = session.get("generatedBriefing")
    if not briefing:
        raise NotFound("Briefing not found or not generated")
    return briefing


async def get_prompts(session_id: str, requester_id: str) -> dict:
    """
    Personalized journaling prompts for the session. Falls back to the
    built-in prompt set when the Content Generator is unavailable.
    """
    session = load_owned_solo(session_id, requester_id)

    history = []
    for other in list_sessions(requester_id):
        if other["id"] == session_id:
            continue
        history.append({
            "relationshipType": other.get("relationshipType"),
            "topic": other.get("conversationTopic"),
            "entries": len(other.get("journalEntries") or []),
        })
        if len(history) >= HISTORY_LIMIT:
            break

    ai_generated = True
    try:
        prompts = await content_generator.generate_prompts(
            session["relationshipType"],
            session["conversationTopic"],
            json.dumps(session.get("conversationData") or {}, default=str),
            history,
        )
    except UpstreamFailure as e:
        logger.warning(f"[SoloPrep] Prompt generation failed for {session_id}, using built-in prompts: {e.message}")
        log_llm_failure("prompts", uid=requester_id, session_id=session_id, error_message=e.message,
                        parse_error=e.parse_error)
        prompts = solo_prompts(session["relationshipType"], session["conversationTopic"])
        ai_generated = False

    return {
        "sessionId": session_id,
        "relationshipType": session["relationshipType"],
        "conversationTopic": session["conversationTopic"],
        "prompts": prompts,
        "journalEntries": session.get("journalEntries") or [],
        "aiGenerated": ai_generated,
    }


def _delete_aggregate(transaction, session_id: str, requester_id: str):
    # A conversion committed before this read is cascaded with the rest.
    session = load_owned_solo(session_id, requester_id, transaction=transaction)
    joint_id = session.get("jointUnpackSessionId")
    token = None
    joint_exists = False
    if joint_id:
        joint_snap = joint_ref(joint_id).get(transaction=transaction)
        joint_exists = joint_snap.exists
        if joint_exists:
            token = ((joint_snap.to_dict() or {}).get("invitation") or {}).get("token")

    if token:
        transaction.delete(token_ref(token))
    if joint_exists:
        transaction.delete(joint_ref(joint_id))
    transaction.delete(solo_ref(session_id))
    return joint_id


def delete_session(session_id: str, requester_id: str) -> None:
    """Deletes the session aggregate: the solo session, its joint session and the invitation token."""
    joint_id = run_in_transaction(_delete_aggregate, session_id, requester_id)
    logger.info(f"[SoloPrep] Deleted {session_id} (joint={joint_id})")
    ops_logger.info(EventType.SESSION_DELETE, uid=requester_id, session_id=session_id, joint_session_id=joint_id)
