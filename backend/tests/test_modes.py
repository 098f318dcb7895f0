"""
Tests for mode handlers and the mode registry
"""
from datetime import timedelta

import pytest

from companion.classifiers import Arbiter
from companion.classifiers.types import (ClassificationContext, IntentResult,
                                         IntentType, SafetyLevel, SafetyResult)
from companion.core.llm_client import TaskType
from companion.core.state import ContextElement, ConversationState, ExtractionRecord, SteeringHints
from companion.modes import build_mode_registry
from companion.modes.base import HandlerContext
from companion.modes.registry import ModeRegistry
from companion.modes.smalltalk import SmalltalkHandler
from companion.modes.track_progress import TrackProgressHandler
from companion.services.goal_service import GOAL_DOMAIN, GoalService
from companion.utils.datetime_utils import utc_now
from conftest import FakeLLM


def _classification(level=SafetyLevel.SAFE, mode="smalltalk"):
    decision = Arbiter().arbitrate(
        SafetyResult(level=level, confidence=0.9),
        IntentResult(intent=IntentType.CASUAL_CHAT, suggested_mode=mode, confidence=0.8),
    )
    return ClassificationContext(decision=decision)


def _context(state=None, classification=None, message="hello", turn_started_at=None):
    return HandlerContext(
        conversation_id="conv-1",
        user_id="user-1",
        message=message,
        state=state or ConversationState(conversation_id="conv-1"),
        classification=classification or _classification(),
        turn_started_at=turn_started_at or utc_now(),
    )


@pytest.mark.asyncio
async def test_crisis_turn_skips_generation():
    """Test every handler answers a crisis with the fixed resources and no model call"""
    llm = FakeLLM()
    handler = SmalltalkHandler(llm)

    result = await handler.handle(_context(classification=_classification(SafetyLevel.CRISIS)))

    assert "988" in result.response
    assert "741741" in result.response
    assert "911" in result.response
    assert result.state_updates == {"crisis_response_sent": True}
    assert llm.calls == []


@pytest.mark.asyncio
async def test_system_prompt_includes_memory_and_hints():
    """Test remembered context and steering suggestions reach the prompt"""
    llm = FakeLLM(default_text="  Hi again!  ")
    state = ConversationState(
        conversation_id="conv-1",
        context_elements=[ContextElement(key="topic_sleep", value="sleep", weight=0.8)],
        steering_hints=SteeringHints(type="health_tracking", suggestions=["How did you sleep?"]),
    )

    result = await SmalltalkHandler(llm).handle(_context(state=state))

    assert result.response == "Hi again!"
    task_type, messages, options = llm.calls[0]
    assert task_type == TaskType.RESPONSE
    system_prompt = messages[0]["content"]
    assert "topic_sleep: sleep" in system_prompt
    assert "- How did you sleep?" in system_prompt
    assert messages[-1] == {"role": "user", "content": "hello"}


@pytest.mark.asyncio
async def test_track_progress_creates_goal_from_this_turn(session_factory):
    """Test a set_goal extraction from the current turn creates the goal"""
    now = utc_now()
    state = ConversationState(
        conversation_id="conv-1",
        extractions={GOAL_DOMAIN: [ExtractionRecord(
            domain_id=GOAL_DOMAIN,
            data={"action": "set_goal", "goal_title": "Read 12 books", "target_value": 12, "progress_unit": "books"},
            confidence=0.9,
            timestamp=now,
        )]},
    )
    llm = FakeLLM()
    handler = TrackProgressHandler(llm, GoalService(session_factory))

    result = await handler.handle(_context(state=state, turn_started_at=now, message="set a goal to read 12 books"))

    assert result.response.startswith('Goal created: "Read 12 books"')
    assert result.state_updates == {"last_goal_action": "set_goal", "goal_action_success": True}
    assert llm.calls == []


@pytest.mark.asyncio
async def test_track_progress_ignores_stale_extraction(session_factory):
    """Test an extraction from an earlier turn is not acted on again"""
    now = utc_now()
    state = ConversationState(
        conversation_id="conv-1",
        extractions={GOAL_DOMAIN: [ExtractionRecord(
            domain_id=GOAL_DOMAIN,
            data={"action": "set_goal", "goal_title": "Read 12 books"},
            confidence=0.9,
            timestamp=now - timedelta(minutes=5),
        )]},
    )
    llm = FakeLLM(default_text="How is your reading going?")
    service = GoalService(session_factory)

    result = await TrackProgressHandler(llm, service).handle(_context(state=state, turn_started_at=now))

    assert result.response == "How is your reading going?"
    assert service.get_goals("user-1").data["goals"] == []


def test_registry_resolves_unknown_mode_to_default(session_factory):
    """Test unknown modes dispatch to the default handler"""
    registry = build_mode_registry(FakeLLM(), GoalService(session_factory))

    assert set(registry.ids()) == {"smalltalk", "consult", "meta", "track_progress"}
    assert registry.resolve("astrology").mode == "smalltalk"
    assert registry.resolve("consult").mode == "consult"
    assert "meta" in registry
    assert registry.describe()["track_progress"] == TrackProgressHandler.description


def test_registry_rejects_duplicates_and_missing_default():
    """Test registry construction validates its handlers"""
    llm = FakeLLM()
    with pytest.raises(ValueError):
        ModeRegistry([SmalltalkHandler(llm), SmalltalkHandler(llm)])
    with pytest.raises(ValueError):
        ModeRegistry([SmalltalkHandler(llm)], default_mode="consult")
