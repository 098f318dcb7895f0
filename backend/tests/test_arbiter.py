"""
Tests for safety/intent arbitration and global context extraction
"""
import pytest

from companion.classifiers import Arbiter
from companion.classifiers.crisis_responses import CRISIS_RESOURCES, build_crisis_response
from companion.classifiers.types import (EntityType, ExtractedEntity,
                                         IntentResult, IntentType,
                                         SafetyLevel, SafetyResult)
from companion.core.state import ContextType
from companion.services.context_extraction import extract_context_elements


def _safety(level, signals=()):
    return SafetyResult(level=level, confidence=0.9, signals=list(signals))


def _intent(mode="consult", confidence=0.85, entities=()):
    return IntentResult(
        intent=IntentType.SEEK_ADVICE,
        suggested_mode=mode,
        confidence=confidence,
        entities=list(entities),
    )


@pytest.mark.parametrize("mode,confidence", [("consult", 0.99), ("smalltalk", 0.1), ("track_progress", 0.5)])
def test_crisis_always_urgent_with_three_resources(mode, confidence):
    """Test crisis forces urgent tone and resources regardless of intent"""
    decision = Arbiter().arbitrate(_safety(SafetyLevel.CRISIS, ["self-harm"]), _intent(mode, confidence))

    assert decision.safety_context.is_crisis is True
    assert decision.safety_context.tone == "urgent"
    assert len(decision.safety_context.crisis_resources) == 3
    assert decision.final_mode == mode
    assert decision.override_reason
    assert decision.confidence == 1.0


def test_concern_keeps_mode_and_softens_tone():
    """Test concern keeps the suggested mode with an empathetic tone"""
    decision = Arbiter().arbitrate(_safety(SafetyLevel.CONCERN), _intent("smalltalk", 0.7))

    assert decision.final_mode == "smalltalk"
    assert decision.safety_context.tone == "empathetic"
    assert decision.safety_context.is_crisis is False
    assert decision.confidence == 0.7


def test_safe_uses_suggested_mode():
    """Test safe messages follow the intent with a normal tone"""
    decision = Arbiter().arbitrate(_safety(SafetyLevel.SAFE), _intent("consult"))

    assert decision.final_mode == "consult"
    assert decision.safety_context.tone == "normal"
    assert decision.safety_context.crisis_resources is None
    assert decision.override_reason is None


def test_crisis_response_lists_every_resource():
    """Test the crisis template contains all configured resources"""
    response = build_crisis_response(SafetyLevel.CRISIS, CRISIS_RESOURCES)

    for resource in CRISIS_RESOURCES:
        assert resource.name in response
        assert resource.phone in response


def test_crisis_context_elements():
    """Test crisis produces full-weight crisis elements"""
    elements = extract_context_elements(_safety(SafetyLevel.CRISIS, ["hopeless", "plan"]), _intent())
    by_key = {e.key: e for e in elements}

    assert by_key["emotional_state"].value == "crisis"
    assert by_key["emotional_state"].weight == 1.0
    assert by_key["emotional_state"].context_type == ContextType.CRISIS
    assert by_key["safety_signals"].value == "hopeless, plan"


def test_concern_context_elements_pick_up_emotion_keywords():
    """Test concern yields distressed plus one element per emotion keyword"""
    elements = extract_context_elements(
        _safety(SafetyLevel.CONCERN, ["feeling stressed about work", "Anxious at night"]),
        _intent(),
    )
    keys = {e.key for e in elements}

    assert {"emotion:distressed", "emotion:stressed", "emotion:anxious"} <= keys
    assert all(e.context_type == ContextType.EMOTIONAL for e in elements if e.key.startswith("emotion:"))


def test_topic_entities_become_topic_elements():
    """Test topic entities and the suggested mode become topic elements"""
    entities = [
        ExtractedEntity(type=EntityType.TOPIC, value="Job Interview", confidence=0.9),
        ExtractedEntity(type=EntityType.EMOTION, value="nervous", confidence=0.9),
    ]
    elements = extract_context_elements(_safety(SafetyLevel.SAFE), _intent("consult", entities=entities))
    by_key = {e.key: e for e in elements}

    assert by_key["topic:job_interview"].weight == 0.9
    assert by_key["conversation_domain"].value == "consult"
    assert by_key["conversation_domain"].weight == 0.7
    assert "topic:nervous" not in by_key
