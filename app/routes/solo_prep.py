from typing import List

from fastapi import APIRouter, Depends

from app.dependencies import get_current_user, CurrentUser
from app.feature_gate import require_feature, FeatureName
from app.services import solo_prep
from app.services.entitlements import get_trial_status
from app.util_models import (
    CreateSoloPrepSessionRequest,
    JournalEntryRequest,
    SoloPrepSessionResponse,
    BriefingResponse,
    PromptListResponse,
    TrialStatusResponse,
)

router = APIRouter(
    prefix="/solo-prep",
    tags=["solo-prep"],
    dependencies=[Depends(require_feature(FeatureName.SOLO_PREP))],
)


def _briefing_response(session_id: str, briefing: dict) -> BriefingResponse:
    return BriefingResponse(
        sessionId=session_id,
        briefing=briefing.get("content") or {},
        generatedAt=briefing["generatedAt"],
        model=briefing.get("model"),
    )


@router.post("/sessions", response_model=SoloPrepSessionResponse, status_code=201)
async def create_session(
    req: CreateSoloPrepSessionRequest,
    current_user: CurrentUser = Depends(get_current_user),
):
    """Starts a Solo Prep session. Trial users spend one trial session; 402 when none are left."""
    return solo_prep.create_session(current_user.uid, req.model_dump())


@router.get("/sessions/history", response_model=List[SoloPrepSessionResponse])
async def list_sessions(current_user: CurrentUser = Depends(get_current_user)):
    return solo_prep.list_sessions(current_user.uid)


@router.get("/trial-status", response_model=TrialStatusResponse)
async def trial_status(current_user: CurrentUser = Depends(get_current_user)):
    return get_trial_status(current_user.uid)


@router.get("/sessions/{session_id}", response_model=SoloPrepSessionResponse)
async def get_session(session_id: str, current_user: CurrentUser = Depends(get_current_user)):
    return solo_prep.get_session(session_id, current_user.uid)


@router.get("/sessions/{session_id}/prompts", response_model=PromptListResponse)
async def get_prompts(session_id: str, current_user: CurrentUser = Depends(get_current_user)):
    return await solo_prep.get_prompts(session_id, current_user.uid)


@router.put("/sessions/{session_id}/journal", response_model=SoloPrepSessionResponse)
async def save_journal_entry(
    session_id: str,
    req: JournalEntryRequest,
    current_user: CurrentUser = Depends(get_current_user),
):
    """Upserts one journal entry keyed by promptId. Resending the same entry is harmless."""
    return solo_prep.append_journal_entry(
        session_id,
        current_user.uid,
        req.promptId,
        req.response,
        req.promptText,
    )


@router.post(
    "/sessions/{session_id}/generate-briefing",
    response_model=BriefingResponse,
    dependencies=[Depends(require_feature(FeatureName.CONTENT_GENERATION))],
)
async def generate_briefing(session_id: str, current_user: CurrentUser = Depends(get_current_user)):
    session = await solo_prep.request_briefing(session_id, current_user.uid)
    return _briefing_response(session_id, session["generatedBriefing"])


@router.get("/sessions/{session_id}/briefing", response_model=BriefingResponse)
async def get_briefing(session_id: str, current_user: CurrentUser = Depends(get_current_user)):
    return _briefing_response(session_id, solo_prep.get_briefing(session_id, current_user.uid))


@router.delete("/sessions/{session_id}", status_code=204)
async def delete_session(session_id: str, current_user: CurrentUser = Depends(get_current_user)):
    """Deletes the session together with any Joint Unpack session created from it."""
    solo_prep.delete_session(session_id, current_user.uid)
