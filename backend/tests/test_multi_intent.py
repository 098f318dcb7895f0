"""
Tests for multi-intent detection
"""
import pytest

from companion.core.exceptions import LLMError
from companion.core.llm_client import TaskType
from companion.orchestrator import MultiIntentDetector
from conftest import FakeLLM

MODES = {
    "smalltalk": "Casual conversation and greetings",
    "consult": "Advice and questions",
    "track_progress": "Goals and progress",
    "meta": "Questions about the assistant",
}


@pytest.mark.asyncio
async def test_greeting_plus_goal_requires_orchestration():
    """Test a greeting with a goal request yields both modes"""
    llm = FakeLLM({TaskType.MULTI_INTENT: {
        "intents": [
            {"mode": "smalltalk", "confidence": 0.7, "trigger": "Hi"},
            {"mode": "track_progress", "confidence": 0.92, "trigger": "set a goal to read 12 books"},
        ],
        "compositionStrategy": "sequential",
    }})
    result = await MultiIntentDetector(llm, MODES).detect(
        "Hi, I want to set a goal to read 12 books this year", current_mode="smalltalk"
    )

    assert result.primary.mode == "track_progress"
    assert [s.mode for s in result.secondary] == ["smalltalk"]
    assert set(result.modes) == {"smalltalk", "track_progress"}
    assert result.requires_orchestration is True
    assert result.composition_strategy == "sequential"


@pytest.mark.asyncio
async def test_single_intent_never_requires_orchestration():
    """Test one intent means no orchestration"""
    llm = FakeLLM({TaskType.MULTI_INTENT: {"intents": [{"mode": "consult", "confidence": 0.9}], "requiresOrchestration": True}})
    result = await MultiIntentDetector(llm, MODES).detect("How do I save money?")

    assert result.primary.mode == "consult"
    assert result.secondary == []
    assert result.requires_orchestration is False


@pytest.mark.asyncio
async def test_weak_secondary_does_not_require_orchestration():
    """Test a secondary at trivial confidence does not trigger orchestration"""
    llm = FakeLLM({TaskType.MULTI_INTENT: {"intents": [
        {"mode": "consult", "confidence": 0.9},
        {"mode": "smalltalk", "confidence": 0.3},
    ]}})
    result = await MultiIntentDetector(llm, MODES).detect("hi, how do I budget?")

    assert [s.mode for s in result.secondary] == ["smalltalk"]
    assert result.requires_orchestration is False


@pytest.mark.asyncio
async def test_unknown_modes_dropped_and_case_normalized():
    """Test modes outside the registry are ignored and duplicates keep the best confidence"""
    llm = FakeLLM({TaskType.MULTI_INTENT: {"intents": [
        {"mode": "SMALLTALK", "confidence": 0.6},
        {"mode": "astrology", "confidence": 0.99},
        {"mode": "smalltalk", "confidence": 0.8},
        {"mode": "meta", "confidence": 0.7},
    ], "compositionStrategy": "chaotic"}})
    result = await MultiIntentDetector(llm, MODES).detect("hello, what are you?")

    assert result.primary.mode == "smalltalk"
    assert result.primary.confidence == 0.8
    assert [s.mode for s in result.secondary] == ["meta"]
    assert result.composition_strategy == "sequential"


@pytest.mark.asyncio
async def test_failure_falls_back_to_current_mode():
    """Test detection failure yields a single low-confidence primary"""
    llm = FakeLLM({TaskType.MULTI_INTENT: LLMError("down")})
    result = await MultiIntentDetector(llm, MODES).detect("hello", current_mode="consult")

    assert result.primary.mode == "consult"
    assert result.primary.confidence == 0.5
    assert result.secondary == []
    assert result.requires_orchestration is False


@pytest.mark.asyncio
async def test_no_usable_intents_falls_back_to_default():
    """Test an empty intent list falls back to the default mode"""
    llm = FakeLLM({TaskType.MULTI_INTENT: {"intents": []}})
    result = await MultiIntentDetector(llm, MODES).detect("...", current_mode="unknown_mode")

    assert result.primary.mode == "smalltalk"
    assert result.requires_orchestration is False


@pytest.mark.asyncio
async def test_prompt_lists_registered_modes():
    """Test the prompt is built from the modes passed in"""
    llm = FakeLLM({TaskType.MULTI_INTENT: {"intents": []}})
    await MultiIntentDetector(llm, MODES).detect("hi")

    task_type, messages, options = llm.calls[0]
    assert options.json_output is True
    assert options.temperature == 0.3
    for mode, description in MODES.items():
        assert f"- {mode}: {description}" in messages[0]["content"]
