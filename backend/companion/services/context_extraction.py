"""
Rule-based context extraction from the safety and intent signals
"""
from datetime import datetime
from typing import List, Optional

from companion.classifiers.types import EntityType, IntentResult, SafetyLevel, SafetyResult
from companion.core.logging_config import LoggingConfig
from companion.core.state import ContextElement, ContextType
from companion.utils.datetime_utils import utc_now

logger = LoggingConfig.get_logger(__name__)

EMOTIONAL_KEYWORDS = ("stressed", "anxious", "worried", "overwhelmed", "sad", "angry", "frustrated")


def _element(key: str, value: str, context_type: ContextType, weight: float, now: datetime) -> ContextElement:
    return ContextElement(
        key=key,
        value=value,
        context_type=context_type,
        weight=weight,
        created_at=now,
        last_accessed_at=now,
    )


def crisis_elements(safety: SafetyResult, now: datetime) -> List[ContextElement]:
    if safety.level != SafetyLevel.CRISIS:
        return []
    elements = [_element("emotional_state", "crisis", ContextType.CRISIS, 1.0, now)]
    if safety.signals:
        elements.append(_element("safety_signals", ", ".join(safety.signals), ContextType.CRISIS, 1.0, now))
    logger.warning("Crisis context extracted", extra={"signals": safety.signals})
    return elements


def emotional_elements(safety: SafetyResult, now: datetime) -> List[ContextElement]:
    if safety.level != SafetyLevel.CONCERN:
        return []
    elements = [_element("emotion:distressed", "distressed", ContextType.EMOTIONAL, 0.8, now)]
    seen = set()
    for signal in safety.signals:
        lowered = signal.lower()
        for keyword in EMOTIONAL_KEYWORDS:
            if keyword in lowered and keyword not in seen:
                seen.add(keyword)
                elements.append(_element(f"emotion:{keyword}", keyword, ContextType.EMOTIONAL, 0.8, now))
    return elements


def topic_elements(intent: IntentResult, now: datetime) -> List[ContextElement]:
    elements = []
    for entity in intent.entities:
        if entity.type != EntityType.TOPIC:
            continue
        key = "topic:" + "_".join(entity.value.lower().split())
        elements.append(_element(key, entity.value, ContextType.TOPIC, entity.confidence or 0.8, now))
    if intent.suggested_mode:
        elements.append(_element("conversation_domain", intent.suggested_mode, ContextType.TOPIC, 0.7, now))
    return elements


def extract_context_elements(
    safety: SafetyResult,
    intent: IntentResult,
    now: Optional[datetime] = None,
) -> List[ContextElement]:
    """
    New context elements observed in this turn

    Crisis and emotional elements come from the safety signal, topic elements
    from the intent's topic entities and suggested mode.
    """
    now = now or utc_now()
    return crisis_elements(safety, now) + emotional_elements(safety, now) + topic_elements(intent, now)
