"""
Entitlement Gate tests: trial consumption, premium bypass, expiry and the
concurrent last-trial race.
"""
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest

from app.errors import EntitlementDenied
from app.firebase import db
from app.services import solo_prep
from app.services.entitlements import authorize_session_creation, get_trial_status, require_premium
from app.services.plans import effective_status
from app.services.session_store import SOLO_PREP_SESSIONS, user_ref

CONTEXT = {"relationshipType": "friend", "conversationTopic": "a missed birthday"}


def _remaining(uid):
    return user_ref(uid).get().to_dict()["trialSessionsRemaining"]


class TestEffectiveStatus:

    def test_missing_status_is_trial(self):
        assert effective_status({}) == "trial"

    def test_unknown_status_is_free(self):
        assert effective_status({"subscriptionStatus": "gold"}) == "free"

    def test_expired_premium_is_free(self):
        past = datetime.now(timezone.utc) - timedelta(days=1)
        data = {"subscriptionStatus": "premium_annual", "subscriptionExpiresAt": past}
        assert effective_status(data) == "free"

    def test_active_premium(self):
        future = datetime.now(timezone.utc) + timedelta(days=30)
        data = {"subscriptionStatus": "premium_monthly", "subscriptionExpiresAt": future}
        assert effective_status(data) == "premium_monthly"


class TestAuthorizeSessionCreation:

    def test_trial_user_consumes_one_session(self, seed_user):
        uid = seed_user("trial_uid", remaining=1)
        decision = authorize_session_creation(uid)
        assert decision.allowed
        assert decision.reason == "trial"
        assert _remaining(uid) == 0

    def test_trial_exhausted(self, seed_user):
        uid = seed_user("trial_uid", remaining=0)
        decision = authorize_session_creation(uid)
        assert not decision.allowed
        assert decision.reason == "trial_exhausted"
        assert _remaining(uid) == 0

    def test_premium_never_decrements(self, seed_user):
        uid = seed_user("premium_uid", status="premium_annual", remaining=3)
        for _ in range(5):
            assert authorize_session_creation(uid).allowed
        assert _remaining(uid) == 3

    def test_free_user_requires_subscription(self, seed_user):
        uid = seed_user("free_uid", status="free", remaining=2)
        decision = authorize_session_creation(uid)
        assert not decision.allowed
        assert decision.reason == "subscription_required"
        assert _remaining(uid) == 2

    def test_new_user_starts_with_default_trial(self):
        decision = authorize_session_creation("brand_new_uid")
        assert decision.allowed
        data = user_ref("brand_new_uid").get().to_dict()
        assert data["subscriptionStatus"] == "trial"
        assert data["trialSessionsRemaining"] == 0


class TestTrialScenario:
    """Trial user with one session left creates one, then is asked to upgrade."""

    def test_second_session_denied_with_upgrade_path(self, seed_user):
        uid = seed_user("trial_uid", remaining=1)

        first = solo_prep.create_session(uid, CONTEXT)
        assert first["status"] == "in-progress"
        assert _remaining(uid) == 0

        with pytest.raises(EntitlementDenied) as exc_info:
            solo_prep.create_session(uid, CONTEXT)
        assert exc_info.value.reason == "trial_exhausted"
        assert exc_info.value.to_detail()["upgradePath"] == "/subscriptions"

        sessions = list(db.collection(SOLO_PREP_SESSIONS).where("ownerUserId", "==", uid).stream())
        assert len(sessions) == 1

    def test_trial_status_reports_usage(self, seed_user):
        uid = seed_user("trial_uid", remaining=1)
        solo_prep.create_session(uid, CONTEXT)
        status = get_trial_status(uid)
        assert status == {
            "subscriptionStatus": "trial",
            "isPremium": False,
            "remainingTrials": 0,
            "usedSessions": 1,
        }


class TestConcurrentTrialConsumption:

    def test_last_trial_session_is_granted_once(self, seed_user):
        uid = seed_user("racer_uid", remaining=1)

        def attempt(_):
            try:
                solo_prep.create_session(uid, CONTEXT)
                return True
            except EntitlementDenied:
                return False

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(attempt, range(16)))

        assert results.count(True) == 1
        assert _remaining(uid) == 0
        sessions = list(db.collection(SOLO_PREP_SESSIONS).where("ownerUserId", "==", uid).stream())
        assert len(sessions) == 1


class TestRequirePremium:

    def test_premium_passes(self, seed_user):
        uid = seed_user("premium_uid", status="premium_monthly")
        assert require_premium(uid) == "premium_monthly"

    def test_trial_is_denied(self, seed_user):
        uid = seed_user("trial_uid")
        with pytest.raises(EntitlementDenied) as exc_info:
            require_premium(uid)
        assert exc_info.value.reason == "premium_required"
        assert exc_info.value.status_code == 402
