from fastapi import APIRouter, Depends, Response, status

from app.dependencies import get_current_user, get_premium_user, CurrentUser
from app.feature_gate import require_feature, FeatureName
from app.services import conversion, invitations, reveal
from app.util_models import (
    JointUnpackSessionResponse,
    InvitationLinkResponse,
    InviteeStatusResponse,
    RevealStateResponse,
    MutualResponsesResponse,
    AgendaResponse,
    RevealParty,
)

router = APIRouter(
    prefix="/joint-unpack",
    tags=["joint-unpack"],
    dependencies=[Depends(require_feature(FeatureName.JOINT_UNPACK))],
)


def _joint_response(joint: dict) -> JointUnpackSessionResponse:
    # Invitee responses are never part of the owner's session view.
    invitation = joint.get("invitation") or {}
    return JointUnpackSessionResponse(
        id=joint["id"],
        soloPrepSessionId=joint["soloPrepSessionId"],
        initiatorUserId=joint["initiatorUserId"],
        relationshipType=joint.get("relationshipType") or "",
        conversationTopic=joint.get("conversationTopic") or "",
        invitation={
            "token": invitation.get("token"),
            "expiresAt": invitation.get("expiresAt"),
            "status": invitation.get("status"),
        },
        revealStatus=joint.get("revealStatus") or {},
        hasAgenda=bool(joint.get("generatedAgenda")),
        createdAt=joint.get("createdAt"),
    )


def _agenda_response(session_id: str, agenda: dict) -> AgendaResponse:
    return AgendaResponse(
        sessionId=session_id,
        agenda=agenda.get("content") or {},
        generatedAt=agenda["generatedAt"],
        model=agenda.get("model"),
    )


@router.post("/from-solo-prep/{solo_prep_session_id}", response_model=JointUnpackSessionResponse)
async def convert_solo_prep(
    solo_prep_session_id: str,
    response: Response,
    current_user: CurrentUser = Depends(get_premium_user),
):
    """
    Converts a completed Solo Prep session. Answers 201 when a new Joint Unpack
    session was created and 200 when the existing one is returned.
    """
    joint, created = conversion.convert_to_joint(solo_prep_session_id, current_user.uid)
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    return _joint_response(joint)


@router.post("/sessions/{session_id}/invite", response_model=InvitationLinkResponse)
async def get_invitation_link(session_id: str, current_user: CurrentUser = Depends(get_premium_user)):
    return conversion.get_invitation(session_id, current_user.uid)


@router.get("/sessions/{session_id}/invitee-status", response_model=InviteeStatusResponse)
async def invitee_status(session_id: str, current_user: CurrentUser = Depends(get_current_user)):
    return invitations.get_invitee_status(session_id, current_user.uid)


@router.post("/sessions/{session_id}/ready-to-reveal", response_model=RevealStateResponse)
async def initiator_ready(session_id: str, current_user: CurrentUser = Depends(get_current_user)):
    return reveal.set_ready(session_id, RevealParty.INITIATOR, current_user.uid)


@router.get("/sessions/{session_id}/mutual-responses", response_model=MutualResponsesResponse)
async def mutual_responses(session_id: str, current_user: CurrentUser = Depends(get_current_user)):
    """Both parties' responses. 403 with retryable=true until both have opted in."""
    return reveal.get_mutual_responses(session_id, current_user.uid)


@router.post(
    "/sessions/{session_id}/agenda",
    response_model=AgendaResponse,
    dependencies=[Depends(require_feature(FeatureName.CONTENT_GENERATION))],
)
async def generate_agenda(session_id: str, current_user: CurrentUser = Depends(get_current_user)):
    agenda = await reveal.generate_agenda(session_id, current_user.uid)
    return _agenda_response(session_id, agenda)


@router.get("/sessions/{session_id}/agenda", response_model=AgendaResponse)
async def get_agenda(session_id: str, current_user: CurrentUser = Depends(get_current_user)):
    return _agenda_response(session_id, reveal.get_agenda(session_id, current_user.uid))


@router.delete("/sessions/{session_id}", status_code=204)
async def delete_session(session_id: str, current_user: CurrentUser = Depends(get_current_user)):
    """Deletes the Joint Unpack session and revokes its invitation. The Solo Prep session stays converted."""
    conversion.delete_joint_session(session_id, current_user.uid)
