"""
Health domain: symptoms, mood, sleep, exercise and health concerns
"""
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from companion.core.logging_config import LoggingConfig
from companion.core.state import ConversationState, SteeringHints
from companion.domains.base import LLMExtractor
from companion.domains.registry import DomainDefinition
from companion.utils.datetime_utils import hours_between, parse_iso, utc_now

logger = LoggingConfig.get_logger(__name__)

HEALTH_DOMAIN = "health"

_LOCATION_SYMPTOMS = ("pain", "ache", "soreness", "tenderness", "discomfort", "cramp", "tension", "stiffness")


class Symptom(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    severity: Optional[float] = Field(default=None, ge=1, le=10)
    duration: Optional[str] = None
    body_part: Optional[str] = None


class Mood(BaseModel):
    model_config = ConfigDict(extra="ignore")

    level: Optional[float] = Field(default=None, ge=1, le=10)
    emotion: Optional[str] = None
    triggers: Optional[List[str]] = None


class Sleep(BaseModel):
    model_config = ConfigDict(extra="ignore")

    hours: Optional[float] = None
    quality: Optional[Literal["poor", "fair", "good", "excellent"]] = None
    issues: Optional[List[str]] = None


class Exercise(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: Optional[str] = None
    duration: Optional[float] = Field(default=None, description="Minutes")
    intensity: Optional[Literal["light", "moderate", "vigorous"]] = None


class HealthData(BaseModel):
    """Health extraction payload"""
    model_config = ConfigDict(extra="ignore")

    symptoms: Optional[List[Symptom]] = None
    mood: Optional[Mood] = None
    sleep: Optional[Sleep] = None
    exercise: Optional[Exercise] = None
    concerns: Optional[List[str]] = None
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)


def health_severity(data: dict) -> str:
    """'severe', 'moderate' or 'normal' from symptom severity and mood level"""
    severities = [s.get("severity") for s in data.get("symptoms") or [] if s.get("severity") is not None]
    worst = max(severities) if severities else 0
    mood_level = (data.get("mood") or {}).get("level")
    if worst >= 8 or (mood_level is not None and mood_level <= 3):
        return "severe"
    if worst >= 5:
        return "moderate"
    return "normal"


class HealthExtractor(LLMExtractor):
    domain_id = HEALTH_DOMAIN
    data_model = HealthData
    instructions = """Extract health information from the user's message.

Fields:
- symptoms: [{"name", "severity" (1-10), "duration", "body_part"}]
- mood: {"level" (1-10), "emotion", "triggers": [...]}
- sleep: {"hours", "quality" (poor|fair|good|excellent), "issues": [...]}
- exercise: {"type", "duration" (minutes), "intensity" (light|moderate|vigorous)}
- concerns: health worries mentioned, as short phrases

Only include what the user actually said about their own health."""


class SymptomExplorationStrategy:
    """Follow-up questions about reported symptoms, low mood or poor sleep"""

    strategy_id = "health_symptom_exploration"
    priority = 1.0

    def should_apply(self, state: ConversationState) -> bool:
        latest = state.latest_extraction(HEALTH_DOMAIN)
        if latest is None:
            return False
        data = latest.data
        mood_level = (data.get("mood") or {}).get("level")
        return bool(
            data.get("symptoms")
            or (mood_level is not None and mood_level <= 3)
            or (data.get("sleep") or {}).get("quality") == "poor"
        )

    def build_questions(self, data: dict) -> List[str]:
        questions: List[str] = []
        for symptom in data.get("symptoms") or []:
            name = symptom.get("name", "symptoms")
            severity = symptom.get("severity") or 0
            if not symptom.get("duration"):
                questions.append(f"How long have you been experiencing {name}?")
            if severity >= 7:
                questions.append(f"Have you considered seeing a healthcare provider about your {name}?")
            elif severity >= 5:
                questions.append(f"What have you tried to manage your {name}?")
            if not symptom.get("body_part") and any(s in name.lower() for s in _LOCATION_SYMPTOMS):
                questions.append(f"Where exactly are you feeling the {name}?")

        mood = data.get("mood") or {}
        if mood.get("level") is not None and mood["level"] <= 3:
            if not mood.get("triggers"):
                questions.append("Is there something specific that's troubling you?")
            questions.append("Have you been able to talk to someone about how you're feeling?")
            if mood["level"] <= 2:
                questions.append("Have you considered reaching out to a mental health professional?")

        sleep = data.get("sleep") or {}
        if sleep.get("quality") == "poor":
            if not sleep.get("issues"):
                questions.append("What seems to be affecting your sleep?")
            questions.append("What's your bedtime routine like?")
        return questions

    @staticmethod
    def _rank(question: str) -> int:
        if any(w in question for w in ("healthcare", "doctor", "professional")):
            return 0
        if question.startswith("How long"):
            return 1
        if any(w in question for w in ("helps", "relieve", "manage")):
            return 2
        return 3

    async def generate_hints(self, state: ConversationState) -> SteeringHints:
        data = state.latest_extraction(HEALTH_DOMAIN).data
        severity = health_severity(data)
        questions = sorted(self.build_questions(data), key=self._rank)
        return SteeringHints(
            type="symptom_exploration",
            suggestions=questions[:3],
            context={
                "symptoms": [s.get("name") for s in data.get("symptoms") or []],
                "severity": severity,
                "exploration_depth": "urgent" if severity == "severe" else "detailed",
            },
            priority=self.priority,
        )


class WellnessCheckStrategy:
    """Routine check-in on the health areas the user has not mentioned recently"""

    strategy_id = "health_wellness_check"
    priority = 0.7
    interval_hours = 24.0

    def should_apply(self, state: ConversationState) -> bool:
        last_steering = (state.domain_context.get(HEALTH_DOMAIN) or {}).get("last_steering") or {}
        last_check = parse_iso(last_steering.get(self.strategy_id))
        if last_check is None:
            return True
        return hours_between(last_check, utc_now()) >= self.interval_hours

    async def generate_hints(self, state: ConversationState) -> SteeringHints:
        latest = state.latest_extraction(HEALTH_DOMAIN)
        data = latest.data if latest else {}
        missing = [area for area in ("sleep", "mood", "exercise", "symptoms") if not data.get(area)]

        questions = []
        if "sleep" in missing:
            questions.append("How have you been sleeping lately?")
        if "mood" in missing:
            questions.append("How would you rate your mood today?")
        if "exercise" in missing:
            questions.append("Have you had a chance to be active today?")

        previous = state.extractions.get(HEALTH_DOMAIN, [])[:-1]
        for record in reversed(previous):
            symptoms = record.data.get("symptoms") or []
            if symptoms:
                questions.append(f"How is your {symptoms[0].get('name', 'symptom')} now?")
                break

        return SteeringHints(
            type="wellness_check",
            suggestions=questions[:3],
            context={"missing_data": missing, "check_type": "routine"},
            priority=self.priority,
        )


def health_domain(llm, confidence_threshold: float = 0.6) -> DomainDefinition:
    return DomainDefinition(
        id=HEALTH_DOMAIN,
        name="Health & Wellness",
        description="Physical symptoms, mood, sleep, exercise and other health concerns",
        extractor=HealthExtractor(llm),
        strategies=(SymptomExplorationStrategy(), WellnessCheckStrategy()),
        priority=1.0,
        confidence_threshold=confidence_threshold,
    )
