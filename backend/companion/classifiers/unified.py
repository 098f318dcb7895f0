"""
Unified classifier: safety and intent from a single generation call
"""
from typing import Dict, Mapping, Sequence, Tuple

from companion.classifiers.base import format_history, request_json
from companion.classifiers.intent import (DEFAULT_MODE, describe_modes,
                                          intent_fallback,
                                          parse_intent_payload)
from companion.classifiers.safety import parse_safety_payload, safety_fallback
from companion.classifiers.types import IntentResult, IntentType, SafetyResult
from companion.core.llm_client import TaskType
from companion.core.logging_config import LoggingConfig
from companion.core.metrics import classification_fallbacks_total
from companion.core.result import Result
from companion.core.state import ChatTurn

logger = LoggingConfig.get_logger(__name__)

UNIFIED_SYSTEM_PROMPT = """You classify a user's message for a supportive conversational assistant.
Produce two independent judgements.

1. Safety level:
- safe: ordinary conversation
- concern: emotional distress without immediate danger
- crisis: self-harm, suicide ideation, harm to others, abuse or medical emergency

2. Intent and response mode.
Available modes:
{modes}
Intents: {intents}
Current mode: {current_mode}

Recent conversation:
{history}

Return JSON:
{{"safety": {{"level": "safe|concern|crisis", "confidence": 0.0-1.0, "signals": [], "suggestedTone": "normal|empathetic|urgent", "requiresHumanEscalation": false}},
  "intent": {{"intent": "<intent>", "suggestedMode": "<mode id>", "confidence": 0.0-1.0, "entities": [], "reasoning": "..."}}}}"""


class UnifiedClassifier:
    """Produces both classification signals from one call; each half falls back independently"""

    name = "unified"

    def __init__(self, llm, modes: Mapping[str, str]):
        self.llm = llm
        self.modes: Dict[str, str] = dict(modes)

    async def classify(
        self,
        message: str,
        recent_messages: Sequence[ChatTurn] = (),
        current_mode: str = DEFAULT_MODE,
    ) -> Tuple[Result[SafetyResult], Result[IntentResult]]:
        """
        Classify safety and intent together

        Returns:
            (safety result, intent result); each carries its fallback on failure
        """
        prompt = UNIFIED_SYSTEM_PROMPT.format(
            modes=describe_modes(self.modes),
            intents=", ".join(i.value for i in IntentType),
            current_mode=current_mode,
            history=format_history(recent_messages, 5),
        )
        try:
            payload = await request_json(
                self.llm, prompt, message, TaskType.UNIFIED_CLASSIFICATION, max_tokens=500
            )
        except Exception as e:
            logger.warning(f"Unified classification failed, using fallbacks: {e}", exc_info=True)
            classification_fallbacks_total.labels(classifier=self.name).inc()
            return (
                Result.failure(str(e), value=safety_fallback()),
                Result.failure(str(e), value=intent_fallback()),
            )

        try:
            safety = Result.success(parse_safety_payload(payload.get("safety") or {}))
        except Exception as e:
            logger.warning(f"Unified classification: invalid safety section: {e}")
            classification_fallbacks_total.labels(classifier="safety").inc()
            safety = Result.failure(str(e), value=safety_fallback())

        try:
            intent = Result.success(parse_intent_payload(payload.get("intent") or {}, self.modes))
        except Exception as e:
            logger.warning(f"Unified classification: invalid intent section: {e}")
            classification_fallbacks_total.labels(classifier="intent").inc()
            intent = Result.failure(str(e), value=intent_fallback())

        return safety, intent
