from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

import pytest

from app.errors import InvalidOrExpired, InvalidState, NotFound
from app.firebase import db
from app.services import conversion, invitations, solo_prep
from app.services.session_store import (
    INVITATION_TOKENS,
    JOINT_UNPACK_SESSIONS,
    as_utc,
    solo_ref,
    token_ref,
)


def _joint_count():
    return len(list(db.collection(JOINT_UNPACK_SESSIONS).stream()))


class TestConvertToJoint:

    def test_creates_joint_session_with_pending_invitation(self, premium_user, completed_session):
        joint, created = conversion.convert_to_joint(completed_session, premium_user)

        assert created is True
        assert joint["soloPrepSessionId"] == completed_session
        assert joint["initiatorUserId"] == premium_user
        assert joint["invitation"]["status"] == "pending"
        assert joint["revealStatus"] == {"initiatorReady": False, "inviteeReady": False}
        assert joint["inviteeResponses"] == []

        ttl = as_utc(joint["invitation"]["expiresAt"]) - as_utc(joint["createdAt"])
        assert ttl == timedelta(hours=conversion.INVITE_TOKEN_TTL_HOURS)

        solo = solo_ref(completed_session).get().to_dict()
        assert solo["status"] == "converted"
        assert solo["jointUnpackSessionId"] == joint["id"]

        token_doc = token_ref(joint["invitation"]["token"]).get().to_dict()
        assert token_doc["jointUnpackSessionId"] == joint["id"]

    def test_second_call_returns_existing_session(self, premium_user, completed_session):
        first, _ = conversion.convert_to_joint(completed_session, premium_user)
        second, created = conversion.convert_to_joint(completed_session, premium_user)

        assert created is False
        assert second["id"] == first["id"]
        assert second["invitation"]["token"] == first["invitation"]["token"]
        assert _joint_count() == 1
        assert len(list(db.collection(INVITATION_TOKENS).stream())) == 1

    def test_in_progress_session_cannot_convert(self, premium_user):
        session = solo_prep.create_session(premium_user, {
            "relationshipType": "friend",
            "conversationTopic": "borrowed money",
        })
        with pytest.raises(InvalidState):
            conversion.convert_to_joint(session["id"], premium_user)
        assert _joint_count() == 0

    def test_foreign_session_is_not_found(self, completed_session, seed_user):
        other = seed_user("other_uid", status="premium_monthly")
        with pytest.raises(NotFound):
            conversion.convert_to_joint(completed_session, other)
        assert solo_ref(completed_session).get().to_dict()["status"] == "completed"


class TestConcurrentConversion:

    def test_racing_conversions_produce_one_joint_session(self, premium_user, completed_session):
        def convert(_):
            joint, created = conversion.convert_to_joint(completed_session, premium_user)
            return joint["id"], created

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(convert, range(12)))

        assert len({joint_id for joint_id, _ in results}) == 1
        assert [created for _, created in results].count(True) == 1
        assert _joint_count() == 1


class TestInvitationLink:

    def test_link_uses_token_minted_at_conversion(self, premium_user, joint_session):
        joint_id, token = joint_session
        first = conversion.get_invitation(joint_id, premium_user)
        second = conversion.get_invitation(joint_id, premium_user)

        assert first["token"] == token
        assert second["token"] == token
        assert first["invitationLink"] == f"{conversion.INVITE_BASE_URL}/join/{token}"
        assert first["status"] == "pending"

    def test_link_hidden_from_other_users(self, joint_session, seed_user):
        joint_id, _ = joint_session
        other = seed_user("other_uid", status="premium_monthly")
        with pytest.raises(NotFound):
            conversion.get_invitation(joint_id, other)

    def test_tokens_are_unguessable(self):
        tokens = {conversion.generate_invitation_token() for _ in range(50)}
        assert len(tokens) == 50
        assert all(len(t) >= 43 for t in tokens)


class TestDeleteJointSession:

    def test_delete_revokes_invitation(self, premium_user, joint_session):
        joint_id, token = joint_session

        conversion.delete_joint_session(joint_id, premium_user)

        assert _joint_count() == 0
        assert not token_ref(token).get().exists
        with pytest.raises(InvalidOrExpired):
            invitations.resolve_invitation(token)
        with pytest.raises(NotFound):
            conversion.get_invitation(joint_id, premium_user)
        with pytest.raises(NotFound):
            invitations.get_invitee_status(joint_id, premium_user)
        with pytest.raises(NotFound):
            conversion.delete_joint_session(joint_id, premium_user)

    def test_solo_session_stays_converted(self, premium_user, completed_session, joint_session):
        joint_id, _ = joint_session

        conversion.delete_joint_session(joint_id, premium_user)

        solo = solo_ref(completed_session).get().to_dict()
        assert solo["status"] == "converted"
        assert solo["jointUnpackSessionId"] is None
        solo_prep.delete_session(completed_session, premium_user)
        assert not solo_ref(completed_session).get().exists

    def test_other_user_cannot_delete(self, joint_session, seed_user):
        joint_id, token = joint_session
        other = seed_user("other_uid", status="premium_monthly")

        with pytest.raises(NotFound):
            conversion.delete_joint_session(joint_id, other)
        assert _joint_count() == 1
        assert invitations.resolve_invitation(token)["sessionId"] == joint_id
