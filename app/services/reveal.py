"""
Mutual Reveal Coordinator

Neither party sees the other's responses until both have opted in. The
readiness flags only ever go from False to True.
"""
import logging

from app.errors import InvalidOrExpired, NotFound, NotReady, UpstreamFailure
from app.firebase import run_in_transaction
from app.services import content_generator
from app.services.invitations import load_live_invitation, log_invitation_expired
from app.services.ops_logger import EventType, ops_logger, log_llm_failure
from app.services.session_store import joint_ref, load_owned_joint, load_owned_solo, now_utc
from app.util_models import RevealParty

logger = logging.getLogger("app.reveal")

FLAG_FOR_PARTY = {
    RevealParty.INITIATOR: "initiatorReady",
    RevealParty.INVITEE: "inviteeReady",
}


def _reveal_state(session_id: str, reveal: dict) -> dict:
    initiator_ready = bool(reveal.get("initiatorReady"))
    invitee_ready = bool(reveal.get("inviteeReady"))
    revealed = initiator_ready and invitee_ready
    if revealed:
        message = "Both parties are ready. Responses are now visible."
    else:
        message = "Waiting for the other party to be ready."
    return {
        "sessionId": session_id,
        "initiatorReady": initiator_ready,
        "inviteeReady": invitee_ready,
        "revealed": revealed,
        "message": message,
    }


def set_ready(session_id: str, party: RevealParty, credential: str) -> dict:
    """
    Records one party's consent to reveal.

    Args:
        party: initiator or invitee
        credential: the initiator's uid, or the invitee's invitation token
    """
    party = RevealParty(party)
    flag = FLAG_FOR_PARTY[party]
    ref = joint_ref(session_id)

    def txn_ready(transaction):
        if party == RevealParty.INITIATOR:
            joint, expired_now = load_owned_joint(session_id, credential, transaction=transaction), False
        else:
            joint, expired_now = load_live_invitation(transaction, credential, session_id)
            if joint is None:
                return None, expired_now, False

        reveal = dict(joint.get("revealStatus") or {})
        changed = False
        if not reveal.get(flag):
            transaction.update(ref, {f"revealStatus.{flag}": True, "updatedAt": now_utc()})
            reveal[flag] = True
            changed = True
        return reveal, expired_now, changed

    reveal, expired_now, changed = run_in_transaction(txn_ready)
    if expired_now:
        log_invitation_expired(session_id)
    if reveal is None:
        raise InvalidOrExpired()

    state = _reveal_state(session_id, reveal)
    if changed:
        logger.info(f"[Reveal] {party.value} ready on {session_id} (revealed={state['revealed']})")
        ops_logger.info(
            EventType.REVEAL_READY,
            uid=credential if party == RevealParty.INITIATOR else None,
            joint_session_id=session_id,
            props={"party": party.value, "revealed": state["revealed"]},
        )
    return state


def _load_revealed(session_id: str, requester_id: str) -> dict:
    joint = load_owned_joint(session_id, requester_id)
    reveal = joint.get("revealStatus") or {}
    if not (reveal.get("initiatorReady") and reveal.get("inviteeReady")):
        raise NotReady()
    return joint


def _initiator_entries(joint: dict, requester_id: str) -> list:
    try:
        solo = load_owned_solo(joint.get("soloPrepSessionId"), requester_id)
    except NotFound:
        return []
    return solo.get("journalEntries") or []


def get_mutual_responses(session_id: str, requester_id: str) -> dict:
    joint = _load_revealed(session_id, requester_id)
    return {
        "sessionId": session_id,
        "initiatorResponses": _initiator_entries(joint, requester_id),
        "inviteeResponses": joint.get("inviteeResponses") or [],
    }


async def generate_agenda(session_id: str, requester_id: str) -> dict:
    """Builds the shared agenda from both parties' responses. Regenerating overwrites."""
    joint = _load_revealed(session_id, requester_id)

    try:
        agenda = await content_generator.generate_agenda(
            _initiator_entries(joint, requester_id),
            joint.get("inviteeResponses") or [],
        )
    except UpstreamFailure as e:
        log_llm_failure("agenda", uid=requester_id, joint_session_id=session_id, error_message=e.message,
                        parse_error=e.parse_error)
        raise

    generated = {
        "content": agenda,
        "generatedAt": now_utc(),
        "model": content_generator.model_name(),
    }
    joint_ref(session_id).update({"generatedAgenda": generated, "updatedAt": generated["generatedAt"]})

    logger.info(f"[Reveal] Agenda stored for {session_id}")
    ops_logger.info(EventType.AGENDA_GENERATED, uid=requester_id, joint_session_id=session_id)
    return generated


def get_agenda(session_id: str, requester_id: str) -> dict:
    joint = _load_revealed(session_id, requester_id)
    agenda = joint.get("generatedAgenda")
    if not agenda:
        raise NotFound("Agenda not generated yet")
    return agenda
