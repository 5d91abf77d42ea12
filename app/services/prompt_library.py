"""Built-in prompt sets used when the Content Generator is unavailable, and for invitees."""
from typing import List

_SOLO_PROMPTS = {
    "romantic partner": [
        "What are your main concerns about {topic} in your relationship?",
        "How do you think your partner feels about {topic}?",
        "What outcome are you hoping for from this conversation about {topic}?",
        "What's the best way to approach this topic with your partner?",
    ],
    "family member": [
        "What are your main concerns about {topic} with your family?",
        "How do you think your family member feels about {topic}?",
        "What outcome are you hoping for from this conversation?",
        "What's the best way to approach this topic with your family?",
    ],
    "friend": [
        "What are your main concerns about {topic} with your friend?",
        "How do you think your friend feels about {topic}?",
        "What outcome are you hoping for from this conversation?",
        "What's the best way to approach this topic with your friend?",
    ],
}

_INVITEE_PROMPTS = [
    "What is the core issue around {topic} from your perspective?",
    "How does this situation make you feel?",
    "What outcome are you hoping for?",
    "How do you believe the other person sees this situation?",
]


def solo_prompts(relationship_type: str, topic: str) -> List[dict]:
    templates = _SOLO_PROMPTS.get((relationship_type or "").lower(), _SOLO_PROMPTS["friend"])
    return [
        {"promptId": f"s{i}", "text": text.format(topic=topic), "for": "solo"}
        for i, text in enumerate(templates, start=1)
    ]


def invitee_prompts(relationship_type: str, topic: str) -> List[dict]:
    # Ids are stable (p1..p4) so guest responses upsert against the same keys.
    return [
        {"promptId": f"p{i}", "text": text.format(topic=topic), "for": "invitee"}
        for i, text in enumerate(_INVITEE_PROMPTS, start=1)
    ]
