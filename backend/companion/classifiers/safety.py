"""
Safety classifier: detects crisis situations and safety concerns
"""
from typing import List, Sequence

from companion.classifiers.base import clamp_confidence, request_json
from companion.classifiers.crisis_responses import CRISIS_RESOURCES
from companion.classifiers.types import SafetyLevel, SafetyResult
from companion.core.llm_client import TaskType
from companion.core.logging_config import LoggingConfig
from companion.core.metrics import classification_fallbacks_total
from companion.core.result import Result

logger = LoggingConfig.get_logger(__name__)

_DEFAULT_TONES = {
    SafetyLevel.SAFE: "normal",
    SafetyLevel.CONCERN: "empathetic",
    SafetyLevel.CRISIS: "urgent",
}

SAFETY_SYSTEM_PROMPT = """You are a safety classifier for a supportive conversational assistant.
Classify the user's latest message into one safety level:
- safe: ordinary conversation, no risk indicators
- concern: emotional distress, stress, hopelessness or worrying statements without immediate danger
- crisis: self-harm or suicide ideation, intent to harm others, abuse, or a medical emergency

Judge meaning, not keywords ("killing it at the gym" is safe).

Recent user messages:
{recent}

Return JSON:
{{"level": "safe|concern|crisis", "confidence": 0.0-1.0, "signals": ["short phrases that drove the decision"],
  "suggestedTone": "normal|empathetic|urgent", "requiresHumanEscalation": true|false}}"""


def safety_fallback() -> SafetyResult:
    """Conservative result used when classification fails"""
    return SafetyResult(
        level=SafetyLevel.CONCERN,
        confidence=0.5,
        signals=["classification_error"],
        suggested_tone="empathetic",
        requires_human_escalation=False,
    )


def parse_safety_payload(payload: dict) -> SafetyResult:
    """Map the model's JSON onto a SafetyResult; raises ValueError on an unknown level"""
    if not isinstance(payload, dict):
        raise TypeError(f"safety payload must be an object, got {type(payload).__name__}")
    level = SafetyLevel(str(payload.get("level", "")).lower())
    tone = payload.get("suggestedTone") or payload.get("suggested_tone")
    if tone not in ("normal", "empathetic", "urgent"):
        tone = _DEFAULT_TONES[level]
    signals = payload.get("signals") or []
    if not isinstance(signals, list):
        signals = [str(signals)]
    return SafetyResult(
        level=level,
        confidence=clamp_confidence(payload.get("confidence")),
        signals=[str(s) for s in signals],
        suggested_tone=tone,
        requires_human_escalation=bool(
            payload.get("requiresHumanEscalation", payload.get("requires_human_escalation", level == SafetyLevel.CRISIS))
        ),
        crisis_resources=list(CRISIS_RESOURCES) if level == SafetyLevel.CRISIS else None,
    )


class SafetyClassifier:
    """LLM-backed safety classifier with a conservative fallback"""

    name = "safety"

    def __init__(self, llm):
        self.llm = llm

    async def classify(self, message: str, recent_user_messages: Sequence[str] = ()) -> Result[SafetyResult]:
        """
        Classify the safety level of a message

        Args:
            message: Current user message
            recent_user_messages: Previous user messages (last 3 are used)

        Returns:
            Result whose value is always usable; a failure carries the CONCERN fallback
        """
        recent: List[str] = list(recent_user_messages)[-3:]
        prompt = SAFETY_SYSTEM_PROMPT.format(
            recent="\n".join(f"- {m[:200]}" for m in recent) or "(none)"
        )
        try:
            payload = await request_json(self.llm, prompt, message, TaskType.SAFETY_CLASSIFICATION, max_tokens=200)
            result = parse_safety_payload(payload)
        except Exception as e:
            logger.warning(f"Safety classification failed, using fallback: {e}", exc_info=True)
            classification_fallbacks_total.labels(classifier=self.name).inc()
            return Result.failure(str(e), value=safety_fallback())

        logger.info(
            "Safety classification complete",
            extra={"safety_level": result.level.value, "confidence": result.confidence, "signals": result.signals}
        )
        return Result.success(result)
