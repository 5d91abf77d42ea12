from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Any, Dict
from datetime import datetime

# --- Enums ---

class SubscriptionStatus(str, Enum):
    TRIAL = "trial"
    PREMIUM_MONTHLY = "premium_monthly"
    PREMIUM_ANNUAL = "premium_annual"
    FREE = "free"


class SoloPrepStatus(str, Enum):
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CONVERTED = "converted"


class InvitationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    COMPLETED = "completed"
    EXPIRED = "expired"


class RevealParty(str, Enum):
    INITIATOR = "initiator"
    INVITEE = "invitee"


# Prompt ids are used as upsert keys; keep them to a safe charset.
PROMPT_ID_PATTERN = r"^[A-Za-z0-9_\-]{1,64}$"


# --- Solo Prep ---

class CreateSoloPrepSessionRequest(BaseModel):
    relationshipType: str = Field(..., min_length=1, max_length=100)
    conversationTopic: str = Field(..., min_length=1, max_length=500)
    conversationData: Dict[str, Any] = Field(default_factory=dict)


class JournalEntryRequest(BaseModel):
    promptId: str = Field(..., pattern=PROMPT_ID_PATTERN)
    response: str = Field(..., max_length=20000)
    promptText: Optional[str] = None


class JournalEntry(BaseModel):
    promptId: str
    promptText: Optional[str] = None
    response: str
    updatedAt: Optional[datetime] = None


class GeneratedContent(BaseModel):
    content: Dict[str, Any]
    generatedAt: datetime
    model: Optional[str] = None


class SoloPrepSessionResponse(BaseModel):
    id: str
    ownerUserId: str
    relationshipType: str
    conversationTopic: str
    conversationData: Dict[str, Any] = {}
    journalEntries: List[JournalEntry] = []
    status: SoloPrepStatus
    generatedBriefing: Optional[GeneratedContent] = None
    jointUnpackSessionId: Optional[str] = None
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None


class BriefingResponse(BaseModel):
    sessionId: str
    briefing: Dict[str, Any]
    generatedAt: datetime
    model: Optional[str] = None


class PromptItem(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    promptId: str
    text: str
    audience: str = Field("solo", alias="for")


class PromptListResponse(BaseModel):
    sessionId: str
    relationshipType: str
    conversationTopic: str
    prompts: List[PromptItem]
    journalEntries: List[JournalEntry] = []
    aiGenerated: bool = False


class TrialStatusResponse(BaseModel):
    subscriptionStatus: SubscriptionStatus
    isPremium: bool
    remainingTrials: int
    usedSessions: int


# --- Joint Unpack ---

class RevealStatus(BaseModel):
    initiatorReady: bool = False
    inviteeReady: bool = False

    @property
    def revealed(self) -> bool:
        return self.initiatorReady and self.inviteeReady


class InvitationInfo(BaseModel):
    token: str
    expiresAt: datetime
    status: InvitationStatus


class JointUnpackSessionResponse(BaseModel):
    """Initiator view. Invitee responses are only exposed through the reveal endpoints."""
    id: str
    soloPrepSessionId: str
    initiatorUserId: str
    relationshipType: str
    conversationTopic: str
    invitation: InvitationInfo
    revealStatus: RevealStatus
    hasAgenda: bool = False
    createdAt: Optional[datetime] = None


class InvitationLinkResponse(BaseModel):
    invitationLink: str
    token: str
    expiresAt: datetime
    status: InvitationStatus


class InviteeStatusResponse(BaseModel):
    status: InvitationStatus
    expiresAt: datetime
    revealStatus: RevealStatus


class RevealStateResponse(BaseModel):
    sessionId: str
    initiatorReady: bool
    inviteeReady: bool
    revealed: bool
    message: str


class MutualResponsesResponse(BaseModel):
    sessionId: str
    initiatorResponses: List[JournalEntry]
    inviteeResponses: List[JournalEntry]


class AgendaResponse(BaseModel):
    sessionId: str
    agenda: Dict[str, Any]
    generatedAt: datetime
    model: Optional[str] = None


# --- Guest ---

class GuestAccessRequest(BaseModel):
    invitationToken: str = Field(..., min_length=1, max_length=256)


class GuestAccessResponse(BaseModel):
    sessionId: str
    relationshipType: str
    topic: str


class GuestPromptsResponse(BaseModel):
    sessionId: str
    prompts: List[PromptItem]


class GuestResponseRequest(BaseModel):
    promptId: str = Field(..., pattern=PROMPT_ID_PATTERN)
    response: str = Field(..., max_length=20000)
    promptText: Optional[str] = None


class GuestResponseAck(BaseModel):
    sessionId: str
    promptId: str
    invitationStatus: InvitationStatus
    message: str = "Response saved."
