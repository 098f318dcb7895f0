"""
Tests for the enrichment coordinator groups
"""
from unittest.mock import AsyncMock, Mock

import pytest

from companion.classifiers.types import IntentResult, IntentType, SafetyLevel, SafetyResult
from companion.core.state import ConversationState, ExtractionRecord, SteeringHints
from companion.domains.registry import DomainDefinition, DomainRegistry
from companion.models.domain_extraction import DomainExtraction
from companion.services.enrichment_coordinator import EnrichmentCoordinator, merge_hints
from companion.services.memory_decay import MemoryDecayEngine
from companion.utils.datetime_utils import utc_now


class StaticStrategy:
    def __init__(self, strategy_id, hints=None, applies=True, error=None):
        self.strategy_id = strategy_id
        self.priority = hints.priority if hints else 0.5
        self.hints = hints or SteeringHints(type=strategy_id, suggestions=[strategy_id])
        self.applies = applies
        self.error = error
        self.calls = 0

    def should_apply(self, state):
        return self.applies

    async def generate_hints(self, state):
        self.calls += 1
        if self.error:
            raise self.error
        return self.hints


def _extractor(domain_id, confidence=0.9, data=None, error=None):
    extractor = Mock()
    extractor.domain_id = domain_id

    async def extract(message, context):
        if error:
            raise error
        return ExtractionRecord(domain_id=domain_id, data=data or {"seen": message}, confidence=confidence, timestamp=context.now)

    extractor.extract = AsyncMock(side_effect=extract)
    return extractor


def _coordinator(domains, relevant_ids, session_factory=None):
    registry = DomainRegistry.build(domains)
    relevance = Mock()
    relevance.classify = AsyncMock(return_value=[registry.get(d) for d in relevant_ids])
    return EnrichmentCoordinator(registry, relevance, MemoryDecayEngine(), session_factory=session_factory)


def _signals():
    safety = SafetyResult(level=SafetyLevel.SAFE, confidence=0.9)
    intent = IntentResult(intent=IntentType.SEEK_ADVICE, suggested_mode="consult", confidence=0.8)
    return safety, intent


def _state():
    return ConversationState(conversation_id="conv-1", user_id="user-1")


@pytest.mark.asyncio
async def test_no_relevant_domains_skips_extraction():
    """Test group 1 still merges context when no domain is relevant"""
    extractor = _extractor("health")
    coordinator = _coordinator([DomainDefinition(id="health", name="Health", description="", extractor=extractor)], [])

    state = await coordinator.enrich("hello", _state(), *_signals())

    extractor.extract.assert_not_called()
    assert state.find_element("conversation_domain").value == "consult"
    assert state.extractions == {}
    assert state.steering_hints is None


@pytest.mark.asyncio
async def test_threshold_filters_low_confidence_extractions():
    """Test an extraction below its domain threshold is discarded"""
    strategy = StaticStrategy("health_tip")
    coordinator = _coordinator(
        [
            DomainDefinition(id="health", name="Health", description="", extractor=_extractor("health", 0.55),
                             strategies=(strategy,), confidence_threshold=0.6),
            DomainDefinition(id="finance", name="Finance", description="", extractor=_extractor("finance", 0.55)),
        ],
        ["health", "finance"],
    )

    state = await coordinator.enrich("I spent too much and feel ill", _state(), *_signals())

    assert list(state.extractions) == ["finance"]
    assert strategy.calls == 0
    assert state.metadata["active_domains"] == ["health", "finance"]
    assert state.domain_context["health"]["extraction_count"] == 1
    assert state.domain_context["finance"]["active"] is True


@pytest.mark.asyncio
async def test_failing_extractor_does_not_fail_group():
    """Test one extractor raising leaves the others' results intact"""
    coordinator = _coordinator(
        [
            DomainDefinition(id="health", name="Health", description="", extractor=_extractor("health", error=RuntimeError("bad"))),
            DomainDefinition(id="goal", name="Goals", description="", extractor=_extractor("goal")),
        ],
        ["health", "goal"],
    )

    state = await coordinator.enrich("msg", _state(), *_signals())

    assert list(state.extractions) == ["goal"]


@pytest.mark.asyncio
async def test_extraction_timestamp_is_turn_time():
    """Test accepted extractions are stamped with the turn time"""
    now = utc_now()
    coordinator = _coordinator(
        [DomainDefinition(id="goal", name="Goals", description="", extractor=_extractor("goal"))], ["goal"]
    )

    state = await coordinator.enrich("msg", _state(), *_signals(), now=now)

    assert state.latest_extraction("goal").timestamp == now


@pytest.mark.asyncio
async def test_strategies_run_for_accepted_domains_only():
    """Test steering runs for domains with accepted extractions and records bookkeeping"""
    now = utc_now()
    goal_strategy = StaticStrategy("goal_setting", SteeringHints(type="goal_setting", suggestions=["Set a date?"], priority=0.9))
    failing = StaticStrategy("broken", error=RuntimeError("oops"))
    skipped = StaticStrategy("skipped", applies=False)
    idle_strategy = StaticStrategy("finance_tip")
    coordinator = _coordinator(
        [
            DomainDefinition(id="goal", name="Goals", description="", extractor=_extractor("goal"),
                             strategies=(goal_strategy, failing, skipped)),
            DomainDefinition(id="finance", name="Finance", description="", extractor=_extractor("finance"),
                             strategies=(idle_strategy,)),
        ],
        ["goal"],
    )

    state = await coordinator.enrich("msg", _state(), *_signals(), now=now)

    assert state.steering_hints.suggestions == ["Set a date?"]
    assert state.metadata["steering_applied"] == ["goal_setting"]
    assert state.domain_context["goal"]["last_steering"] == {"goal_setting": now.isoformat()}
    assert idle_strategy.calls == 0
    assert skipped.calls == 0


@pytest.mark.asyncio
async def test_extraction_history_is_capped():
    """Test per-domain history keeps the most recent records"""
    coordinator = _coordinator(
        [DomainDefinition(id="goal", name="Goals", description="", extractor=_extractor("goal"))], ["goal"]
    )
    coordinator.history_limit = 2
    state = _state()
    for i in range(3):
        state = await coordinator.enrich(f"message {i}", state, *_signals())

    assert [r.data["seen"] for r in state.extractions["goal"]] == ["message 1", "message 2"]
    assert state.domain_context["goal"]["extraction_count"] == 3


@pytest.mark.asyncio
async def test_accepted_extractions_are_stored(session_factory):
    """Test accepted extractions are written to the database"""
    coordinator = _coordinator(
        [DomainDefinition(id="goal", name="Goals", description="", extractor=_extractor("goal", data={"action": "view_goals"}))],
        ["goal"],
        session_factory=session_factory,
    )

    await coordinator.enrich("show my goals", _state(), *_signals())

    with session_factory() as db:
        rows = db.query(DomainExtraction).all()
        assert len(rows) == 1
        assert rows[0].domain_id == "goal"
        assert rows[0].user_id == "user-1"
        assert rows[0].data == {"action": "view_goals"}


def test_merge_hints_dedupes_and_caps():
    """Test merged hints are ranked, deduplicated and capped"""
    merged = merge_hints([
        SteeringHints(type="low", suggestions=["Drink water"], priority=0.1),
        SteeringHints(type="high", suggestions=["How long has it hurt?", "Seen a doctor?"], priority=1.0),
        SteeringHints(type="mid", suggestions=["seen a doctor? ", "Track your sleep", "Stretch daily"], priority=0.7),
    ])

    assert merged.type == "merged"
    assert merged.priority == 1.0
    assert merged.suggestions == ["How long has it hurt?", "Seen a doctor?", "Track your sleep"]


def test_merge_hints_single_and_empty():
    """Test a single bundle keeps its type and no bundles merge to None"""
    single = merge_hints([SteeringHints(type="wellness_check", suggestions=["Sleep ok?"], priority=0.7)])

    assert single.type == "wellness_check"
    assert merge_hints([]) is None
