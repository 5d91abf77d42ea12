"""
Content Generator

Produces coaching prompts, strategy briefings and conversation agendas with
Vertex AI (Gemini). Every public function raises ``UpstreamFailure`` on any
model or parsing error; callers never change session state before these
calls return.
"""
import os
import json
import re
import logging
from typing import List, Any

from app.errors import UpstreamFailure

PROJECT_ID = os.environ.get("GOOGLE_CLOUD_PROJECT") or os.environ.get("GCP_PROJECT")
VERTEX_REGION = os.environ.get("VERTEX_REGION", "us-central1")
GEMINI_MODEL_NAME = os.environ.get("GEMINI_MODEL_NAME", "gemini-2.0-flash-lite")
USE_MOCK_LLM = os.environ.get("USE_MOCK_LLM", os.environ.get("USE_MOCK_DB", "0")) == "1"
MOCK_MODEL_NAME = "mock-coach"

MAX_ENTRY_CHARS = 4000

logger = logging.getLogger("app.content_generator")


def model_name() -> str:
    return MOCK_MODEL_NAME if USE_MOCK_LLM else GEMINI_MODEL_NAME


def _clean_json_response(raw: str) -> str:
    """
    Extracts the JSON payload from a model response.
    - strips code fences (```json ... ```)
    - drops leading/trailing chatter around the outermost braces
    """
    text = raw.strip()

    if "```json" in text:
        start = text.find("```json") + 7
        end = text.rfind("```")
        if end > start:
            text = text[start:end].strip()
    elif "```" in text:
        start = text.find("```") + 3
        end = text.rfind("```")
        if end > start:
            text = text[start:end].strip()

    first = min((i for i in (text.find("{"), text.find("[")) if i != -1), default=-1)
    last = max(text.rfind("}"), text.rfind("]"))
    if first != -1 and last > first:
        text = text[first:last + 1]

    return text


def _parse_json(raw: str) -> Any:
    text = raw.strip()

    # Attempt 1: Direct parse
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    # Attempt 2: Clean and retry
    cleaned = _clean_json_response(text)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.warning(f"JSON parse failed after cleanup: {e}. Raw length={len(raw)}")

    # Attempt 3: Remove trailing commas before } or ]
    fixed = re.sub(r',\s*([}\]])', r'\1', cleaned)
    try:
        return json.loads(fixed)
    except json.JSONDecodeError as e:
        logger.error(f"JSON parse failed after all retries: {e}")
        raise UpstreamFailure("Content generator returned an unreadable response", parse_error=True) from e


_vertex_initialized = False
_model: Any = None


def _ensure_model():
    global _vertex_initialized, _model
    if _vertex_initialized and _model:
        return

    # Lazy import so startup does not depend on Vertex AI credentials
    import vertexai
    from vertexai.generative_models import GenerativeModel

    if not PROJECT_ID:
        raise RuntimeError("GOOGLE_CLOUD_PROJECT/GCP_PROJECT is not set for Vertex AI")
    vertexai.init(project=PROJECT_ID, location=VERTEX_REGION)
    _model = GenerativeModel(GEMINI_MODEL_NAME)
    _vertex_initialized = True


async def _generate_json(prompt: str, *, temperature: float, max_output_tokens: int = 2048) -> Any:
    try:
        _ensure_model()
        from vertexai.generative_models import GenerationConfig

        resp = await _model.generate_content_async(
            prompt,
            generation_config=GenerationConfig(
                temperature=temperature,
                max_output_tokens=max_output_tokens,
                response_mime_type="application/json",
            ),
        )
        text = (resp.text or "").strip()
    except Exception as e:
        logger.error(f"[ContentGenerator] Vertex call failed: {e}")
        raise UpstreamFailure() from e

    if not text:
        raise UpstreamFailure("Content generator returned an empty response", parse_error=True)
    return _parse_json(text)


def _format_entries(entries: List[dict]) -> str:
    lines = []
    for entry in entries or []:
        question = entry.get("promptText") or entry.get("promptId")
        answer = (entry.get("response") or "")[:MAX_ENTRY_CHARS]
        lines.append(f"- Q: {question}\n  A: {answer}")
    return "\n".join(lines) or "(no entries)"


# ---------- Prompts ---------- #

def _build_prompts_prompt(relationship_type: str, topic: str, context: str, history: List[dict]) -> str:
    history_lines = "\n".join(
        f"- {h.get('relationshipType')} / {h.get('topic')} ({h.get('entries', 0)} entries)" for h in history or []
    ) or "(none)"
    return f"""You are a communication coach helping someone prepare for a difficult conversation.

Relationship: {relationship_type}
Topic: {topic}
Context from the intake conversation (JSON): {context}
Previous preparation sessions:
{history_lines}

Write 4 to 6 reflective journaling prompts that help this person clarify their feelings,
their needs and how the other person may see the situation.

Return JSON only, in this shape:
[{{"promptId": "s1", "text": "..."}}, ...]
"""


async def generate_prompts(relationship_type: str, topic: str, context: str, history: List[dict]) -> List[dict]:
    if USE_MOCK_LLM:
        from app.services.prompt_library import solo_prompts
        return solo_prompts(relationship_type, topic)

    data = await _generate_json(_build_prompts_prompt(relationship_type, topic, context, history), temperature=0.7)
    if not isinstance(data, list):
        raise UpstreamFailure("Content generator returned prompts in an unexpected shape", parse_error=True)

    prompts = []
    for i, item in enumerate(data, start=1):
        if not isinstance(item, dict) or not item.get("text"):
            continue
        prompt_id = re.sub(r"[^A-Za-z0-9_\-]", "", str(item.get("promptId") or f"s{i}"))[:64] or f"s{i}"
        prompts.append({"promptId": prompt_id, "text": item["text"], "for": "solo"})
    if not prompts:
        raise UpstreamFailure("Content generator returned no prompts", parse_error=True)
    return prompts


# ---------- Briefing ---------- #

def _build_briefing_prompt(entries: List[dict], relationship_type: str, topic: str, profile: dict) -> str:
    return f"""You are a communication coach. Using the private journal below, write a strategy
briefing that prepares this person for a conversation with their {relationship_type} about "{topic}".

Person: {profile.get("name") or "the user"}
Preferred communication style: {profile.get("communicationStyle", "collaborative")}
Experience level: {profile.get("experienceLevel", "new")}

=== Journal ===
{_format_entries(entries)}

Return JSON only, in this shape:
{{
  "summary": "2-3 sentences",
  "keyInsights": ["..."],
  "openingStatements": ["..."],
  "thingsToAvoid": ["..."],
  "nextSteps": ["..."]
}}
"""


async def generate_briefing(entries: List[dict], relationship_type: str, topic: str, profile: dict) -> dict:
    if USE_MOCK_LLM:
        return {
            "summary": f"Mock briefing for a conversation with your {relationship_type} about {topic}.",
            "keyInsights": [f"You wrote {len(entries)} journal entries."],
            "openingStatements": ["I'd like to talk about something that matters to me."],
            "thingsToAvoid": ["Assuming intent"],
            "nextSteps": ["Pick a calm moment to talk."],
        }

    data = await _generate_json(
        _build_briefing_prompt(entries, relationship_type, topic, profile),
        temperature=0.6,
    )
    if not isinstance(data, dict) or not data:
        raise UpstreamFailure("Content generator returned an empty briefing", parse_error=True)
    return data


# ---------- Agenda ---------- #

def _build_agenda_prompt(initiator_entries: List[dict], invitee_entries: List[dict]) -> str:
    return f"""You are a neutral mediator. Two people each answered reflection prompts before a
conversation. Both have agreed to share their answers. Build a shared agenda that covers
common ground first, then the points where they differ, with a fair amount of time for each.

=== Person A ===
{_format_entries(initiator_entries)}

=== Person B ===
{_format_entries(invitee_entries)}

Return JSON only, in this shape:
{{
  "commonGround": ["..."],
  "differences": ["..."],
  "agendaItems": [{{"title": "...", "goal": "...", "suggestedMinutes": 10}}],
  "groundRules": ["..."]
}}
"""


async def generate_agenda(initiator_entries: List[dict], invitee_entries: List[dict]) -> dict:
    if USE_MOCK_LLM:
        return {
            "commonGround": ["Both of you want this conversation to go well."],
            "differences": [],
            "agendaItems": [
                {"title": "Open with shared goals", "goal": "Start from agreement", "suggestedMinutes": 5},
                {
                    "title": "Walk through each perspective",
                    "goal": f"{len(initiator_entries)} + {len(invitee_entries)} responses to cover",
                    "suggestedMinutes": 15,
                },
            ],
            "groundRules": ["Take turns", "Summarize before responding"],
        }

    data = await _generate_json(_build_agenda_prompt(initiator_entries, invitee_entries), temperature=0.4)
    if not isinstance(data, dict) or not data:
        raise UpstreamFailure("Content generator returned an empty agenda", parse_error=True)
    return data
