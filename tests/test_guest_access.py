"""
Guest gateway tests. A token is the guest's only credential, so every failure
mode must look the same from the outside.
"""
from datetime import timedelta

import pytest

from app.errors import InvalidOrExpired, InvalidState
from app.services import invitations, reveal
from app.services.session_store import joint_ref, now_utc
from app.util_models import RevealParty


def _expire(joint_id):
    joint_ref(joint_id).update({"invitation.expiresAt": now_utc() - timedelta(seconds=1)})


def _invitation(joint_id):
    return joint_ref(joint_id).get().to_dict()["invitation"]


class TestResolveInvitation:

    def test_valid_token_returns_projection_only(self, joint_session):
        joint_id, token = joint_session
        result = invitations.resolve_invitation(token)

        assert result == {
            "sessionId": joint_id,
            "relationshipType": "romantic partner",
            "topic": "household chores",
        }
        invitation = _invitation(joint_id)
        assert invitation["status"] == "accepted"
        assert invitation["acceptedAt"] is not None

    def test_repeated_access_keeps_first_acceptance(self, joint_session):
        joint_id, token = joint_session
        invitations.resolve_invitation(token)
        accepted_at = _invitation(joint_id)["acceptedAt"]
        invitations.resolve_invitation(token)
        assert _invitation(joint_id)["acceptedAt"] == accepted_at

    @pytest.mark.parametrize("token", ["", "short", "x" * 43, "../../etc/passwd", "a/b" * 10])
    def test_unknown_or_malformed_tokens(self, joint_session, token):
        with pytest.raises(InvalidOrExpired):
            invitations.resolve_invitation(token)

    def test_expired_token_is_rejected_and_marked(self, joint_session):
        joint_id, token = joint_session
        _expire(joint_id)

        with pytest.raises(InvalidOrExpired) as expired:
            invitations.resolve_invitation(token)
        assert _invitation(joint_id)["status"] == "expired"

        with pytest.raises(InvalidOrExpired) as unknown:
            invitations.resolve_invitation("y" * 43)
        assert expired.value.to_detail() == unknown.value.to_detail()

    def test_expiry_boundary_is_exclusive(self, joint_session):
        joint_id, token = joint_session
        now = now_utc()
        joint_ref(joint_id).update({"invitation.expiresAt": now})
        with pytest.raises(InvalidOrExpired):
            invitations.resolve_invitation(token)


class TestGuestSessionAccess:

    def test_token_for_other_session_is_rejected(self, joint_session):
        _, token = joint_session
        with pytest.raises(InvalidOrExpired):
            invitations.authorize_guest("some-other-session", token)

    def test_guest_prompts_are_invitee_tagged(self, joint_session):
        joint_id, token = joint_session
        result = invitations.get_guest_prompts(joint_id, token)
        assert [p["promptId"] for p in result["prompts"]] == ["p1", "p2", "p3", "p4"]
        assert all(p["for"] == "invitee" for p in result["prompts"])
        assert "household chores" in result["prompts"][0]["text"]

    def test_guest_flow_completes_invitation(self, premium_user, joint_session):
        joint_id, token = joint_session
        invitations.resolve_invitation(token)
        ack = invitations.submit_guest_response(joint_id, token, "p1", "I feel unappreciated.")
        invitations.submit_guest_response(joint_id, token, "p1", "I feel unappreciated sometimes.")
        invitations.submit_guest_response(joint_id, token, "p2", "Tired.")

        assert ack["invitationStatus"] == "completed"
        stored = joint_ref(joint_id).get().to_dict()
        assert [r["promptId"] for r in stored["inviteeResponses"]] == ["p1", "p2"]
        assert stored["inviteeResponses"][0]["response"] == "I feel unappreciated sometimes."
        assert stored["invitation"]["status"] == "completed"

        status = invitations.get_invitee_status(joint_id, premium_user)
        assert status["status"] == "completed"
        assert "inviteeResponses" not in status

    def test_expired_token_cannot_submit(self, joint_session):
        joint_id, token = joint_session
        _expire(joint_id)
        with pytest.raises(InvalidOrExpired):
            invitations.submit_guest_response(joint_id, token, "p1", "too late")
        assert joint_ref(joint_id).get().to_dict()["inviteeResponses"] == []

    def test_responses_frozen_after_reveal_opt_in(self, joint_session):
        joint_id, token = joint_session
        invitations.submit_guest_response(joint_id, token, "p1", "original")
        reveal.set_ready(joint_id, RevealParty.INVITEE, token)

        with pytest.raises(InvalidState):
            invitations.submit_guest_response(joint_id, token, "p1", "changed my mind")
        assert joint_ref(joint_id).get().to_dict()["inviteeResponses"][0]["response"] == "original"


class TestInviteeStatus:

    def test_owner_sees_expiry(self, premium_user, joint_session):
        joint_id, _ = joint_session
        _expire(joint_id)
        status = invitations.get_invitee_status(joint_id, premium_user)
        assert status["status"] == "expired"
        assert status["revealStatus"] == {"initiatorReady": False, "inviteeReady": False}

    def test_completed_invitation_never_expires(self, premium_user, joint_session):
        joint_id, token = joint_session
        invitations.submit_guest_response(joint_id, token, "p1", "done")
        _expire(joint_id)
        assert invitations.get_invitee_status(joint_id, premium_user)["status"] == "completed"
