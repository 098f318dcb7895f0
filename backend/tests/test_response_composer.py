"""
Tests for response composition and conflict detection
"""
from unittest.mock import AsyncMock, Mock

import pytest

from companion.core.exceptions import LLMError
from companion.core.llm_client import TaskType
from companion.orchestrator import ModeSegment, ResponseComposer

OVERLAP_A = (
    "Regular exercise improves sleep quality and overall energy levels. "
    "Try walking outside every morning before breakfast for thirty minutes."
)
OVERLAP_B = (
    "Walking outside every morning improves sleep quality and energy levels. "
    "Regular exercise before breakfast helps your overall wellbeing too."
)
DISTINCT_A = (
    "Budgeting works best when you write down every purchase for a month and then "
    "group the spending into needs and wants."
)
DISTINCT_B = (
    "Congratulations on starting the reading challenge! Picking shorter novels "
    "first can build momentum quickly, honestly."
)


def _segment(mode, content, priority=1.0):
    return ModeSegment(mode=mode, content=content, priority=priority)


def _llm(reply="Combined reply"):
    llm = Mock()
    llm.generate = AsyncMock(return_value=reply)
    return llm


@pytest.mark.asyncio
async def test_single_segment_returned_unchanged():
    """Test one response is returned verbatim"""
    llm = _llm()
    composed = await ResponseComposer(llm).compose("hi", [_segment("smalltalk", "  Hello!  ")], "smalltalk")

    assert composed == "  Hello!  "
    llm.generate.assert_not_called()


@pytest.mark.asyncio
async def test_no_conflict_concatenates_without_llm():
    """Test distinct responses are joined primary first without a generation call"""
    llm = _llm()
    segments = [_segment("consult", DISTINCT_A), _segment("track_progress", DISTINCT_B, 0.7)]

    composed = await ResponseComposer(llm).compose("msg", segments, "consult", "sequential")

    assert composed == DISTINCT_A + "\n\n" + DISTINCT_B
    llm.generate.assert_not_called()


@pytest.mark.asyncio
async def test_short_responses_never_conflict():
    """Test responses under the minimum length are concatenated"""
    llm = _llm()
    segments = [_segment("smalltalk", "Hi there, lovely morning!"), _segment("consult", OVERLAP_A)]

    composed = await ResponseComposer(llm).compose("msg", segments, "smalltalk")

    assert composed.startswith("Hi there, lovely morning!\n\n")
    llm.generate.assert_not_called()


@pytest.mark.asyncio
async def test_conflict_uses_llm_blend():
    """Test overlapping long responses are merged by the model"""
    llm = _llm("Exercise in the morning helps sleep and energy.")
    segments = [_segment("consult", OVERLAP_A), _segment("track_progress", OVERLAP_B, 0.7)]

    composed = await ResponseComposer(llm).compose("msg", segments, "consult")

    assert composed == "Exercise in the morning helps sleep and energy."
    llm.generate.assert_awaited_once()
    messages, options = llm.generate.call_args.args
    assert options.task_type == TaskType.COMPOSITION
    assert "Primary mode: consult" in messages[0]["content"]


@pytest.mark.asyncio
async def test_blended_strategy_uses_llm_without_conflict():
    """Test an explicit blended strategy always composes with the model"""
    llm = _llm()
    segments = [_segment("consult", DISTINCT_A), _segment("track_progress", DISTINCT_B)]

    composed = await ResponseComposer(llm).compose("msg", segments, "consult", "blended")

    assert composed == "Combined reply"
    llm.generate.assert_awaited_once()


@pytest.mark.asyncio
async def test_blend_failure_returns_primary():
    """Test a failed blend falls back to the primary response verbatim"""
    llm = Mock()
    llm.generate = AsyncMock(side_effect=LLMError("timeout"))
    segments = [_segment("track_progress", OVERLAP_B), _segment("consult", OVERLAP_A)]

    composed = await ResponseComposer(llm).compose("msg", segments, "consult")

    assert composed == OVERLAP_A


def test_detect_conflict_threshold():
    """Test conflict requires more than the configured shared-word count"""
    segments = [_segment("a", OVERLAP_A), _segment("b", OVERLAP_B)]

    assert ResponseComposer(None).detect_conflict(segments) is True
    assert ResponseComposer(None, conflict_word_count=50).detect_conflict(segments) is False
    assert ResponseComposer(None).detect_conflict([_segment("a", DISTINCT_A), _segment("b", DISTINCT_B)]) is False
