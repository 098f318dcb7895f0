"""
Tests for the safety, intent, unified and domain relevance classifiers
"""
import pytest

from companion.classifiers import IntentClassifier, SafetyClassifier, UnifiedClassifier
from companion.classifiers.domain_relevance import DomainRelevanceClassifier
from companion.classifiers.types import EntityType, IntentType, SafetyLevel
from companion.core.exceptions import LLMError
from companion.core.llm_client import TaskType
from companion.core.state import ChatTurn, ConversationState
from companion.domains.registry import DomainDefinition, DomainRegistry
from conftest import FakeLLM

MODES = {
    "smalltalk": "Casual conversation",
    "consult": "Advice and questions",
    "track_progress": "Goals and progress",
}


@pytest.mark.asyncio
async def test_safety_crisis_includes_resources():
    """Test a crisis classification carries the configured resources"""
    llm = FakeLLM({TaskType.SAFETY_CLASSIFICATION: {
        "level": "crisis", "confidence": 0.95, "signals": ["wants to end life"],
    }})
    result = await SafetyClassifier(llm).classify("I don't want to live anymore", ["bad day", "worse today"])

    assert result.ok
    assert result.value.level == SafetyLevel.CRISIS
    assert result.value.suggested_tone == "urgent"
    assert len(result.value.crisis_resources) == 3


@pytest.mark.asyncio
async def test_safety_fallback_on_malformed_json():
    """Test a non-JSON answer falls back to CONCERN"""
    llm = FakeLLM({TaskType.SAFETY_CLASSIFICATION: "I think this is fine"})
    result = await SafetyClassifier(llm).classify("hello")

    assert not result.ok
    assert result.value.level == SafetyLevel.CONCERN
    assert result.value.suggested_tone == "empathetic"
    assert result.value.signals == ["classification_error"]


@pytest.mark.asyncio
async def test_safety_fallback_on_llm_error():
    """Test a collaborator failure never propagates"""
    llm = FakeLLM({TaskType.SAFETY_CLASSIFICATION: LLMError("connection refused")})
    result = await SafetyClassifier(llm).classify("hello")

    assert result.error
    assert result.value.level == SafetyLevel.CONCERN


@pytest.mark.asyncio
async def test_safety_prompt_uses_last_three_user_messages():
    """Test only the last three prior user messages reach the prompt"""
    llm = FakeLLM({TaskType.SAFETY_CLASSIFICATION: {"level": "safe", "confidence": 0.9}})
    await SafetyClassifier(llm).classify("now", ["one", "two", "three", "four"])

    system_prompt = llm.calls[0][1][0]["content"]
    assert "- two" in system_prompt and "- four" in system_prompt
    assert "- one" not in system_prompt


@pytest.mark.asyncio
async def test_intent_parses_entities_and_mode():
    """Test intent, mode and known entity types are parsed"""
    llm = FakeLLM({TaskType.INTENT_CLASSIFICATION: {
        "intent": "seek_advice",
        "suggestedMode": "CONSULT",
        "confidence": 0.8,
        "entities": [
            {"type": "topic", "value": "career", "confidence": 0.9},
            {"type": "unknown", "value": "x"},
            {"type": "emotion"},
        ],
    }})
    result = await IntentClassifier(llm, MODES).classify(
        "Should I change jobs?", [ChatTurn(role="user", content="hi")], "smalltalk"
    )

    assert result.ok
    assert result.value.intent == IntentType.SEEK_ADVICE
    assert result.value.suggested_mode == "consult"
    assert [(e.type, e.value) for e in result.value.entities] == [(EntityType.TOPIC, "career")]


@pytest.mark.asyncio
async def test_intent_unknown_mode_maps_to_default():
    """Test an unregistered mode becomes smalltalk"""
    llm = FakeLLM({TaskType.INTENT_CLASSIFICATION: {"intent": "greeting", "suggestedMode": "poetry", "confidence": 0.7}})
    result = await IntentClassifier(llm, MODES).classify("hey")

    assert result.value.suggested_mode == "smalltalk"


@pytest.mark.asyncio
async def test_intent_fallback_on_failure():
    """Test a failed intent call yields UNCLEAR in the default mode"""
    llm = FakeLLM({TaskType.INTENT_CLASSIFICATION: LLMError("timeout")})
    result = await IntentClassifier(llm, MODES).classify("hey")

    assert not result.ok
    assert result.value.intent == IntentType.UNCLEAR
    assert result.value.suggested_mode == "smalltalk"
    assert result.value.confidence == 0.0


@pytest.mark.asyncio
async def test_intent_prompt_lists_registered_modes():
    """Test modes are discovered from the mapping passed in"""
    llm = FakeLLM({TaskType.INTENT_CLASSIFICATION: {"intent": "greeting", "suggestedMode": "smalltalk"}})
    await IntentClassifier(llm, {**MODES, "journal": "Reflective journaling"}).classify("hi")

    assert "- journal: Reflective journaling" in llm.calls[0][1][0]["content"]


@pytest.mark.asyncio
async def test_unified_classifier_returns_both_signals():
    """Test one unified call produces safety and intent"""
    llm = FakeLLM({TaskType.UNIFIED_CLASSIFICATION: {
        "safety": {"level": "concern", "confidence": 0.7, "signals": ["stressed"]},
        "intent": {"intent": "share_problem", "suggestedMode": "consult", "confidence": 0.8},
    }})
    safety, intent = await UnifiedClassifier(llm, MODES).classify("Work is crushing me")

    assert safety.value.level == SafetyLevel.CONCERN
    assert intent.value.suggested_mode == "consult"
    assert len(llm.calls) == 1


@pytest.mark.asyncio
async def test_unified_classifier_falls_back_per_section():
    """Test an invalid safety section falls back without losing the intent"""
    llm = FakeLLM({TaskType.UNIFIED_CLASSIFICATION: {
        "safety": {"level": "purple"},
        "intent": {"intent": "greeting", "suggestedMode": "smalltalk", "confidence": 0.9},
    }})
    safety, intent = await UnifiedClassifier(llm, MODES).classify("hi")

    assert not safety.ok
    assert safety.value.level == SafetyLevel.CONCERN
    assert intent.ok
    assert intent.value.intent == IntentType.GREETING


@pytest.mark.asyncio
async def test_unified_classifier_non_object_sections_fall_back():
    """Test string and list sections fall back instead of raising"""
    llm = FakeLLM({TaskType.UNIFIED_CLASSIFICATION: {"safety": "safe", "intent": ["greeting"]}})
    safety, intent = await UnifiedClassifier(llm, MODES).classify("hi")

    assert not safety.ok
    assert safety.value.level == SafetyLevel.CONCERN
    assert not intent.ok
    assert intent.value.intent == IntentType.UNCLEAR
    assert intent.value.reasoning == "classification_error"


def _registry():
    return DomainRegistry.build(
        [
            DomainDefinition(id="goal", name="Goals", description="goals", priority=1.5),
            DomainDefinition(id="health", name="Health", description="health", priority=1.0),
            DomainDefinition(id="finance", name="Finance", description="money", priority=0.8),
        ],
        disabled=["finance"],
    )


@pytest.mark.asyncio
async def test_domain_relevance_keeps_only_enabled_registered_domains():
    """Test unknown and disabled ids are dropped, priority order kept"""
    llm = FakeLLM({TaskType.DOMAIN_RELEVANCE: {"domains": ["health", "finance", "astrology", "GOAL"]}})
    state = ConversationState(conversation_id="c1")

    relevant = await DomainRelevanceClassifier(llm, _registry()).classify("I slept badly and missed my goal", state)

    assert [d.id for d in relevant] == ["goal", "health"]


@pytest.mark.asyncio
async def test_domain_relevance_failure_returns_empty():
    """Test relevance failure means no domains"""
    llm = FakeLLM({TaskType.DOMAIN_RELEVANCE: LLMError("boom")})
    relevant = await DomainRelevanceClassifier(llm, _registry()).classify("hi", ConversationState(conversation_id="c1"))

    assert relevant == []
