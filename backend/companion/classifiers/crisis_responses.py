"""
Crisis resources, response templates and tone guidelines per safety level
"""
from typing import Dict, List, Optional, Sequence

from companion.classifiers.types import CrisisResource, SafetyLevel

CRISIS_RESOURCES: List[CrisisResource] = [
    CrisisResource(
        name="National Suicide Prevention Lifeline",
        phone="988",
        available="24/7",
        description="Free and confidential support for people in distress",
    ),
    CrisisResource(
        name="Crisis Text Line",
        phone="Text HOME to 741741",
        available="24/7",
        description="Free, 24/7 support for those in crisis via text",
    ),
    CrisisResource(
        name="Emergency Services",
        phone="911",
        available="24/7",
        description="For immediate medical or safety emergencies",
    ),
]

_CONCERN_TEMPLATE = (
    "I hear that you're going through a tough time right now. It's okay to feel this way, "
    "and I'm here to help.\n\n"
    "Would you like to talk more about what's going on? Sometimes it helps to share what "
    "you're experiencing."
)

_CRISIS_TEMPLATE = (
    "I'm very concerned about what you're sharing with me. Your safety and well-being are "
    "the top priority right now.\n\n"
    "**Please reach out to a crisis professional immediately:**\n\n"
    "{resources}\n\n"
    "If you're in immediate danger, please call 911 or go to your nearest emergency room.\n\n"
    "I'm here to support you, but I'm not equipped to provide the immediate help you need. "
    "These trained professionals are available 24/7.\n\n"
    "Would you like to talk about what led you here, or would you prefer to focus on "
    "connecting with one of these resources first?"
)

TONE_GUIDELINES: Dict[SafetyLevel, Dict[str, object]] = {
    SafetyLevel.SAFE: {
        "instructions": "Respond naturally and helpfully to the user's message.",
        "avoid": [],
        "emphasize": ["helpfulness", "clarity"],
    },
    SafetyLevel.CONCERN: {
        "instructions": (
            "Respond with extra empathy and gentleness. Acknowledge the user's feelings "
            "and offer support."
        ),
        "avoid": ["dismissiveness", "toxic positivity", "minimizing feelings"],
        "emphasize": ["empathy", "validation", "support", "gentle guidance"],
    },
    SafetyLevel.CRISIS: {
        "instructions": "Prioritize immediate safety. Direct to crisis resources. Be calm, clear, and urgent.",
        "avoid": ["casual tone", "advice-giving", "problem-solving without resources"],
        "emphasize": ["urgency", "safety", "professional help", "crisis resources"],
    },
}


def format_crisis_resources(resources: Sequence[CrisisResource]) -> str:
    """Render resources as a markdown list"""
    blocks = []
    for resource in resources:
        blocks.append(
            f"**{resource.name}**\n"
            f"- Phone: {resource.phone}\n"
            f"- Available: {resource.available}\n"
            f"- {resource.description}"
        )
    return "\n\n".join(blocks)


def build_crisis_response(level: SafetyLevel, resources: Optional[Sequence[CrisisResource]] = None) -> str:
    """
    Fixed response for a safety level.

    CRISIS always lists resources, falling back to the configured set when
    none are passed. SAFE has no template and returns an empty string.
    """
    if level == SafetyLevel.CRISIS:
        return _CRISIS_TEMPLATE.format(resources=format_crisis_resources(resources or CRISIS_RESOURCES))
    if level == SafetyLevel.CONCERN:
        return _CONCERN_TEMPLATE
    return ""


def tone_instructions(level: SafetyLevel) -> str:
    """System-prompt paragraph describing tone for a safety level"""
    guideline = TONE_GUIDELINES[level]
    lines = [f"Tone: {guideline['instructions']}"]
    if guideline["avoid"]:
        lines.append("Avoid: " + ", ".join(guideline["avoid"]))
    if guideline["emphasize"]:
        lines.append("Emphasize: " + ", ".join(guideline["emphasize"]))
    return "\n".join(lines)
