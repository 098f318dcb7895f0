"""
Intent classifier: detects what the user wants and which mode should answer
"""
from typing import Dict, Mapping, Sequence

from companion.classifiers.base import clamp_confidence, format_history, request_json
from companion.classifiers.types import (EntityType, ExtractedEntity,
                                         IntentResult, IntentType)
from companion.core.llm_client import TaskType
from companion.core.logging_config import LoggingConfig
from companion.core.metrics import classification_fallbacks_total
from companion.core.result import Result
from companion.core.state import ChatTurn, ConversationMode

logger = LoggingConfig.get_logger(__name__)

DEFAULT_MODE = ConversationMode.SMALLTALK.value

INTENT_SYSTEM_PROMPT = """You are an intent classifier for a conversational assistant.
Identify the user's intent and the response mode that should handle it.

Available modes:
{modes}

Intents: {intents}

Current mode: {current_mode}

Recent conversation:
{history}

Return JSON:
{{"intent": "<intent>", "suggestedMode": "<mode id>", "confidence": 0.0-1.0,
  "entities": [{{"type": "topic|emotion|goal|health_concern", "value": "...", "confidence": 0.0-1.0}}],
  "reasoning": "brief explanation"}}"""


def intent_fallback() -> IntentResult:
    """Result used when classification fails: unclear intent, casual mode"""
    return IntentResult(
        intent=IntentType.UNCLEAR,
        suggested_mode=DEFAULT_MODE,
        confidence=0.0,
        entities=[],
        reasoning="classification_error",
    )


def parse_entities(raw) -> list:
    """Keep well-formed entities of known type"""
    entities = []
    for item in raw or []:
        if not isinstance(item, dict) or not item.get("value"):
            continue
        try:
            entity_type = EntityType(str(item.get("type", "")).lower())
        except ValueError:
            continue
        entities.append(ExtractedEntity(
            type=entity_type,
            value=str(item["value"]),
            confidence=clamp_confidence(item.get("confidence"), default=0.8),
        ))
    return entities


def parse_intent_payload(payload: dict, known_modes: Mapping[str, str]) -> IntentResult:
    """Map the model's JSON onto an IntentResult; unknown modes become the default mode"""
    if not isinstance(payload, dict):
        raise TypeError(f"intent payload must be an object, got {type(payload).__name__}")
    try:
        intent = IntentType(str(payload.get("intent", "")).lower())
    except ValueError:
        intent = IntentType.UNCLEAR
    mode = str(payload.get("suggestedMode") or payload.get("suggested_mode") or "").lower()
    if mode not in known_modes:
        mode = DEFAULT_MODE
    return IntentResult(
        intent=intent,
        suggested_mode=mode,
        confidence=clamp_confidence(payload.get("confidence")),
        entities=parse_entities(payload.get("entities")),
        reasoning=str(payload.get("reasoning") or ""),
    )


def describe_modes(modes: Mapping[str, str]) -> str:
    return "\n".join(f"- {mode_id}: {description}" for mode_id, description in modes.items())


class IntentClassifier:
    """LLM-backed intent classifier over a dynamic set of modes"""

    name = "intent"

    def __init__(self, llm, modes: Mapping[str, str]):
        self.llm = llm
        self.modes: Dict[str, str] = dict(modes)

    async def classify(
        self,
        message: str,
        recent_messages: Sequence[ChatTurn] = (),
        current_mode: str = DEFAULT_MODE,
    ) -> Result[IntentResult]:
        """
        Classify intent and suggested mode

        Args:
            message: Current user message
            recent_messages: Prior turns (last 5 are used)
            current_mode: Mode of the previous turn

        Returns:
            Result whose value is always usable; a failure carries the UNCLEAR fallback
        """
        prompt = INTENT_SYSTEM_PROMPT.format(
            modes=describe_modes(self.modes),
            intents=", ".join(i.value for i in IntentType),
            current_mode=current_mode,
            history=format_history(recent_messages, 5),
        )
        try:
            payload = await request_json(self.llm, prompt, message, TaskType.INTENT_CLASSIFICATION)
            result = parse_intent_payload(payload, self.modes)
        except Exception as e:
            logger.warning(f"Intent classification failed, using fallback: {e}", exc_info=True)
            classification_fallbacks_total.labels(classifier=self.name).inc()
            return Result.failure(str(e), value=intent_fallback())

        logger.info(
            "Intent classification complete",
            extra={
                "intent": result.intent.value,
                "suggested_mode": result.suggested_mode,
                "confidence": result.confidence,
                "entities": len(result.entities),
            }
        )
        return Result.success(result)
