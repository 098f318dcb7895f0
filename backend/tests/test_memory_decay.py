"""
Tests for memory decay and reinforcement
"""
from datetime import timedelta

import pytest

from companion.core.state import ContextElement, ContextType, ConversationGoal, ConversationState
from companion.services.memory_decay import DecayConfig, MemoryDecayEngine
from companion.utils.datetime_utils import utc_now


def _element(key="topic:work", weight=1.0, context_type=ContextType.TOPIC, age_hours=0.0, now=None):
    now = now or utc_now()
    accessed = now - timedelta(hours=age_hours)
    return ContextElement(
        key=key,
        value=key.split(":")[-1],
        weight=weight,
        context_type=context_type,
        created_at=accessed,
        last_accessed_at=accessed,
    )


def _state(elements=(), goals=()):
    return ConversationState(conversation_id="conv-1", context_elements=list(elements), goals=list(goals))


def test_weight_halves_after_one_half_life():
    """Test a topic element loses half its weight after 24 hours"""
    now = utc_now()
    engine = MemoryDecayEngine()
    state = engine.apply_decay(_state([_element(age_hours=24, now=now)]), now)

    assert len(state.context_elements) == 1
    assert state.context_elements[0].weight == pytest.approx(0.5)


def test_half_life_depends_on_context_type():
    """Test crisis context decays slower than topic context"""
    now = utc_now()
    engine = MemoryDecayEngine()
    state = engine.apply_decay(_state([
        _element("emotional_state", context_type=ContextType.CRISIS, age_hours=24, now=now),
        _element("topic:work", context_type=ContextType.TOPIC, age_hours=24, now=now),
    ]), now)

    crisis = state.find_element("emotional_state")
    topic = state.find_element("topic:work")
    assert crisis.weight == pytest.approx(0.5 ** (24 / 72))
    assert crisis.weight > topic.weight


def test_decay_is_monotonic():
    """Test weight never increases as time passes"""
    now = utc_now()
    engine = MemoryDecayEngine()
    element = _element(weight=0.9, age_hours=1, now=now)

    weights = [
        engine.apply_decay(_state([element]), now + timedelta(hours=h)).context_elements[0].weight
        for h in (0, 1, 5, 12, 20)
    ]
    assert weights == sorted(weights, reverse=True)


def test_future_timestamp_does_not_increase_weight():
    """Test an element accessed in the future keeps its weight"""
    now = utc_now()
    engine = MemoryDecayEngine()
    element = _element(weight=0.6, age_hours=-5, now=now)

    state = engine.apply_decay(_state([element]), now)
    assert state.context_elements[0].weight == pytest.approx(0.6)


def test_elements_at_or_below_floor_are_pruned():
    """Test elements decayed to the weight floor are removed"""
    now = utc_now()
    engine = MemoryDecayEngine()
    state = engine.apply_decay(_state([
        _element("topic:old", weight=0.2, age_hours=48, now=now),
        _element("topic:fresh", weight=0.9, age_hours=1, now=now),
    ]), now)

    assert [e.key for e in state.context_elements] == ["topic:fresh"]
    assert all(e.weight > 0.1 for e in state.context_elements)


def test_decay_returns_new_state():
    """Test the input snapshot is left untouched"""
    now = utc_now()
    engine = MemoryDecayEngine()
    original = _state([_element(age_hours=24, now=now)])

    decayed = engine.apply_decay(original, now)

    assert decayed is not original
    assert original.context_elements[0].weight == 1.0


def test_active_goals_expire():
    """Test active goals older than the expiry window are dropped, others kept"""
    now = utc_now()
    engine = MemoryDecayEngine(DecayConfig(goal_expiry_days=7))
    goals = [
        ConversationGoal(id="old", description="old goal", created_at=now - timedelta(days=8)),
        ConversationGoal(id="new", description="new goal", created_at=now - timedelta(days=2)),
        ConversationGoal(id="done", description="done goal", status="completed", created_at=now - timedelta(days=30)),
    ]

    state = engine.apply_decay(_state(goals=goals), now)
    assert sorted(g.id for g in state.goals) == ["done", "new"]


def test_reinforce_multiplies_weight():
    """Test reinforcement boosts weight by 1.2 and resets the decay clock"""
    now = utc_now()
    engine = MemoryDecayEngine()
    element = _element(weight=0.5, age_hours=10, now=now)

    reinforced = engine.reinforce(element, "new value", now)

    assert reinforced.weight == pytest.approx(0.6)
    assert reinforced.value == "new value"
    assert reinforced.last_accessed_at == now


def test_reinforce_is_capped_at_one():
    """Test repeated reinforcement never exceeds 1.0"""
    engine = MemoryDecayEngine()
    element = _element(weight=0.9)
    for _ in range(10):
        element = engine.reinforce(element, element.value)
        assert element.weight <= 1.0
    assert element.weight == 1.0


def test_merge_reinforces_existing_and_appends_new():
    """Test merge reinforces known keys in place and appends unseen keys"""
    now = utc_now()
    engine = MemoryDecayEngine()
    existing = [_element("topic:work", weight=0.5, now=now), _element("topic:family", weight=0.4, now=now)]
    observed = [_element("topic:work", weight=0.8, now=now), _element("topic:travel", weight=0.8, now=now)]

    merged = engine.merge(existing, observed, now)

    assert [e.key for e in merged] == ["topic:work", "topic:family", "topic:travel"]
    assert merged[0].weight == pytest.approx(0.6)
    assert merged[1].weight == pytest.approx(0.4)
    assert merged[2].weight == pytest.approx(0.8)


def test_is_stale():
    """Test staleness uses the configured threshold in minutes"""
    now = utc_now()
    engine = MemoryDecayEngine(DecayConfig(stale_threshold_minutes=30))

    assert engine.is_stale(now - timedelta(minutes=45), now)
    assert not engine.is_stale(now - timedelta(minutes=10), now)


def test_config_from_settings(settings):
    """Test decay configuration is read from settings"""
    config = DecayConfig.from_settings(settings)

    assert config.half_life_for(ContextType.CRISIS) == settings.decay_crisis_half_life
    assert config.weight_floor == settings.decay_weight_floor
    assert config.reinforcement_factor == settings.decay_reinforcement_factor
