import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from app.errors import InvalidOrExpired, NotFound, NotReady, UpstreamFailure
from app.services import invitations, reveal
from app.services.session_store import joint_ref
from app.util_models import RevealParty


@pytest.fixture
def answered_session(joint_session):
    joint_id, token = joint_session
    invitations.resolve_invitation(token)
    invitations.submit_guest_response(joint_id, token, "p1", "I want us to split chores fairly.")
    return joint_id, token


class TestSetReady:

    def test_single_party_does_not_reveal(self, premium_user, answered_session):
        joint_id, _ = answered_session
        state = reveal.set_ready(joint_id, RevealParty.INITIATOR, premium_user)
        assert state["initiatorReady"] is True
        assert state["inviteeReady"] is False
        assert state["revealed"] is False

        with pytest.raises(NotReady) as exc_info:
            reveal.get_mutual_responses(joint_id, premium_user)
        assert exc_info.value.to_detail()["retryable"] is True

    def test_set_ready_is_idempotent(self, premium_user, answered_session):
        joint_id, _ = answered_session
        first = reveal.set_ready(joint_id, RevealParty.INITIATOR, premium_user)
        updated_at = joint_ref(joint_id).get().to_dict()["updatedAt"]
        second = reveal.set_ready(joint_id, RevealParty.INITIATOR, premium_user)

        assert first == second
        assert joint_ref(joint_id).get().to_dict()["updatedAt"] == updated_at

    def test_invitee_needs_live_token(self, answered_session):
        joint_id, _ = answered_session
        with pytest.raises(InvalidOrExpired):
            reveal.set_ready(joint_id, RevealParty.INVITEE, "z" * 43)
        assert joint_ref(joint_id).get().to_dict()["revealStatus"]["inviteeReady"] is False

    def test_initiator_flag_requires_ownership(self, answered_session, seed_user):
        joint_id, _ = answered_session
        other = seed_user("other_uid", status="premium_monthly")
        with pytest.raises(NotFound):
            reveal.set_ready(joint_id, RevealParty.INITIATOR, other)


class TestMutualReveal:

    def test_order_of_opt_in_does_not_matter(self, premium_user, answered_session):
        joint_id, token = answered_session
        invitee_state = reveal.set_ready(joint_id, RevealParty.INVITEE, token)
        assert invitee_state["revealed"] is False

        initiator_state = reveal.set_ready(joint_id, RevealParty.INITIATOR, premium_user)
        assert initiator_state["revealed"] is True

        responses = reveal.get_mutual_responses(joint_id, premium_user)
        assert [e["promptId"] for e in responses["initiatorResponses"]] == ["s1"]
        assert [e["promptId"] for e in responses["inviteeResponses"]] == ["p1"]

    def test_other_user_cannot_read_revealed_responses(self, premium_user, answered_session, seed_user):
        joint_id, token = answered_session
        reveal.set_ready(joint_id, RevealParty.INVITEE, token)
        reveal.set_ready(joint_id, RevealParty.INITIATOR, premium_user)

        other = seed_user("other_uid", status="premium_monthly")
        with pytest.raises(NotFound):
            reveal.get_mutual_responses(joint_id, other)


class TestAgenda:

    def _reveal(self, joint_id, token, uid):
        reveal.set_ready(joint_id, RevealParty.INVITEE, token)
        reveal.set_ready(joint_id, RevealParty.INITIATOR, uid)

    def test_agenda_blocked_until_revealed(self, premium_user, answered_session):
        joint_id, _ = answered_session
        with pytest.raises(NotReady):
            asyncio.run(reveal.generate_agenda(joint_id, premium_user))
        with pytest.raises(NotReady):
            reveal.get_agenda(joint_id, premium_user)

    def test_agenda_generated_and_stored(self, premium_user, answered_session):
        joint_id, token = answered_session
        self._reveal(joint_id, token, premium_user)

        with pytest.raises(NotFound):
            reveal.get_agenda(joint_id, premium_user)

        generated = asyncio.run(reveal.generate_agenda(joint_id, premium_user))
        assert generated["content"]["agendaItems"]
        assert reveal.get_agenda(joint_id, premium_user)["content"] == generated["content"]

    def test_generator_failure_keeps_previous_agenda(self, premium_user, answered_session):
        joint_id, token = answered_session
        self._reveal(joint_id, token, premium_user)
        first = asyncio.run(reveal.generate_agenda(joint_id, premium_user))

        with patch("app.services.content_generator.generate_agenda", new=AsyncMock(side_effect=UpstreamFailure())):
            with pytest.raises(UpstreamFailure):
                asyncio.run(reveal.generate_agenda(joint_id, premium_user))

        assert reveal.get_agenda(joint_id, premium_user)["content"] == first["content"]

    def test_generator_receives_both_sides(self, premium_user, answered_session):
        joint_id, token = answered_session
        self._reveal(joint_id, token, premium_user)

        mock_generate = AsyncMock(return_value={"agendaItems": [{"title": "Chores"}]})
        with patch("app.services.content_generator.generate_agenda", new=mock_generate):
            asyncio.run(reveal.generate_agenda(joint_id, premium_user))

        initiator_entries, invitee_entries = mock_generate.call_args.args
        assert initiator_entries[0]["response"] == "I feel I do most of the dishes."
        assert invitee_entries[0]["response"] == "I want us to split chores fairly."
