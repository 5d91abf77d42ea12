"""Collection layout and ownership-scoped loading for session documents."""
from datetime import datetime, timezone

from app.errors import NotFound
from app.firebase import db

USERS = "users"
SOLO_PREP_SESSIONS = "soloPrepSessions"
JOINT_UNPACK_SESSIONS = "jointUnpackSessions"
INVITATION_TOKENS = "invitationTokens"


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def user_ref(user_id: str):
    return db.collection(USERS).document(user_id)


def solo_ref(session_id: str):
    return db.collection(SOLO_PREP_SESSIONS).document(session_id)


def joint_ref(session_id: str):
    return db.collection(JOINT_UNPACK_SESSIONS).document(session_id)


def token_ref(token: str):
    return db.collection(INVITATION_TOKENS).document(token)


def snapshot_to_dict(snapshot) -> dict:
    data = snapshot.to_dict() or {}
    data["id"] = snapshot.id
    return data


def load_owned(ref, requester_id: str, owner_field: str, transaction=None) -> dict:
    """
    Loads a document only if ``requester_id`` owns it.
    A missing document and a foreign one raise the same ``NotFound``.
    """
    snapshot = ref.get(transaction=transaction) if transaction is not None else ref.get()
    if not snapshot.exists:
        raise NotFound()
    data = snapshot_to_dict(snapshot)
    if not requester_id or data.get(owner_field) != requester_id:
        raise NotFound()
    return data


def load_owned_solo(session_id: str, requester_id: str, transaction=None) -> dict:
    return load_owned(solo_ref(session_id), requester_id, "ownerUserId", transaction)


def load_owned_joint(session_id: str, requester_id: str, transaction=None) -> dict:
    return load_owned(joint_ref(session_id), requester_id, "initiatorUserId", transaction)


def upsert_entry(entries: list, prompt_id: str, response: str, prompt_text: str | None, now: datetime) -> list:
    """Replaces the entry keyed by ``prompt_id`` in place, or appends it. Returns a new list."""
    updated = []
    found = False
    for entry in entries or []:
        if entry.get("promptId") == prompt_id:
            entry = {
                **entry,
                "response": response,
                "promptText": prompt_text if prompt_text is not None else entry.get("promptText"),
                "updatedAt": now,
            }
            found = True
        updated.append(entry)
    if not found:
        updated.append({
            "promptId": prompt_id,
            "promptText": prompt_text,
            "response": response,
            "updatedAt": now,
        })
    return updated
