import asyncio
import os

# Set Test Environment BEFORE importing app
os.environ["USE_MOCK_DB"] = "1"  # in-memory Firestore
os.environ["USE_MOCK_LLM"] = "1"
os.environ.setdefault("GCP_PROJECT", "test-project")

import pytest
from fastapi.testclient import TestClient

from app.main import app
from app.dependencies import get_current_user, CurrentUser
from app.firebase import db
from app.services import conversion, solo_prep
from app.services.session_store import user_ref


@pytest.fixture(autouse=True)
def clean_db():
    db.reset()
    yield
    db.reset()


def _seed_user(uid: str, status: str = "trial", remaining: int = 1, **extra) -> str:
    user_ref(uid).set({
        "subscriptionStatus": status,
        "trialSessionsRemaining": remaining,
        **extra,
    })
    return uid


@pytest.fixture
def seed_user():
    return _seed_user


class AuthAs:
    """Switches the authenticated uid for TestClient requests."""

    def __init__(self):
        self.uid = None

    def __call__(self, uid: str):
        self.uid = uid

    def current_user(self) -> CurrentUser:
        return CurrentUser(uid=self.uid, provider="password", email=f"{self.uid}@example.com")


@pytest.fixture
def login():
    auth_as = AuthAs()
    app.dependency_overrides[get_current_user] = auth_as.current_user
    yield auth_as
    app.dependency_overrides.pop(get_current_user, None)


@pytest.fixture
def client(login):
    return TestClient(app)


@pytest.fixture
def premium_user():
    return _seed_user("premium_uid", status="premium_monthly", remaining=0, displayName="Alex")


@pytest.fixture
def completed_session(premium_user):
    """A premium user's Solo Prep session with one journal entry and a briefing."""
    session = solo_prep.create_session(premium_user, {
        "relationshipType": "romantic partner",
        "conversationTopic": "household chores",
    })
    solo_prep.append_journal_entry(session["id"], premium_user, "s1", "I feel I do most of the dishes.")
    asyncio.run(solo_prep.request_briefing(session["id"], premium_user))
    return session["id"]


@pytest.fixture
def joint_session(completed_session, premium_user):
    """Converted session: (joint session id, invitation token)."""
    joint, _ = conversion.convert_to_joint(completed_session, premium_user)
    return joint["id"], joint["invitation"]["token"]
