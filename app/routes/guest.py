"""
Guest routes for the invited party. No account is involved: the invitation
token is the only credential, sent in the body for the first access and in
the X-Invitation-Token header afterwards.
"""
from fastapi import APIRouter, Depends

from app.dependencies import get_invitation_token
from app.feature_gate import require_feature, FeatureName
from app.services import invitations, reveal
from app.util_models import (
    GuestAccessRequest,
    GuestAccessResponse,
    GuestPromptsResponse,
    GuestResponseRequest,
    GuestResponseAck,
    RevealStateResponse,
    RevealParty,
)

router = APIRouter(
    prefix="/joint-unpack/guest",
    tags=["guest"],
    dependencies=[
        Depends(require_feature(FeatureName.JOINT_UNPACK)),
        Depends(require_feature(FeatureName.GUEST_ACCESS)),
    ],
)


@router.post("/access", response_model=GuestAccessResponse)
async def access(req: GuestAccessRequest):
    return invitations.resolve_invitation(req.invitationToken.strip())


@router.get("/sessions/{session_id}/prompts", response_model=GuestPromptsResponse)
async def prompts(session_id: str, token: str = Depends(get_invitation_token)):
    return invitations.get_guest_prompts(session_id, token)


@router.post("/sessions/{session_id}/response", response_model=GuestResponseAck)
async def submit_response(
    session_id: str,
    req: GuestResponseRequest,
    token: str = Depends(get_invitation_token),
):
    return invitations.submit_guest_response(session_id, token, req.promptId, req.response, req.promptText)


@router.post("/sessions/{session_id}/ready-to-reveal", response_model=RevealStateResponse)
async def invitee_ready(session_id: str, token: str = Depends(get_invitation_token)):
    return reveal.set_ready(session_id, RevealParty.INVITEE, token)
