"""
Tests for agent clarification records
"""
from datetime import timedelta

import pytest

from companion.services.agent_state_service import AgentStateService
from companion.services.repositories import ConversationRepository
from companion.utils.datetime_utils import utc_now


@pytest.fixture
def conversation_id(db):
    conversation = ConversationRepository(db).create("user-1")
    db.commit()
    return conversation.id


def test_save_and_get_state(session_factory, conversation_id):
    """Test a saved record is returned until resolved"""
    service = AgentStateService(session_factory)
    record_id = service.save_state(conversation_id, "goal", "selection_pending", {"pending_value": 3})

    assert record_id
    assert service.get_state(conversation_id, "goal", "selection_pending") == {"pending_value": 3}
    assert service.get_state(conversation_id, "goal", "other_type") is None
    assert service.get_state(conversation_id, "health") is None


def test_resolve_state(session_factory, conversation_id):
    """Test resolving hides the record and a second resolve finds nothing"""
    service = AgentStateService(session_factory)
    service.save_state(conversation_id, "goal", "selection_pending", {"pending_value": 3})

    assert service.resolve_state(conversation_id, "goal", "selection_pending") is True
    assert service.get_state(conversation_id, "goal", "selection_pending") is None
    assert service.resolve_state(conversation_id, "goal", "selection_pending") is False


def test_oldest_pending_record_first(session_factory, conversation_id):
    """Test the oldest unresolved record is returned"""
    service = AgentStateService(session_factory)
    service.save_state(conversation_id, "goal", "selection_pending", {"n": 1})
    service.save_state(conversation_id, "goal", "selection_pending", {"n": 2})

    assert service.get_state(conversation_id, "goal", "selection_pending") == {"n": 1}
    service.resolve_state(conversation_id, "goal", "selection_pending")
    assert service.get_state(conversation_id, "goal", "selection_pending") == {"n": 2}


def test_expired_state_is_not_returned(session_factory, conversation_id):
    """Test records past their TTL are invisible"""
    service = AgentStateService(session_factory)
    service.save_state(conversation_id, "goal", "selection_pending", {"pending_value": 3}, ttl_seconds=60)

    later = utc_now() + timedelta(seconds=120)
    assert service.get_state(conversation_id, "goal", "selection_pending", now=later) is None
    assert service.get_state(conversation_id, "goal", "selection_pending") is not None


def test_cleanup_expired(session_factory, conversation_id):
    """Test cleanup deletes only expired records"""
    service = AgentStateService(session_factory)
    service.save_state(conversation_id, "goal", "short", {}, ttl_seconds=60)
    service.save_state(conversation_id, "goal", "long", {}, ttl_seconds=3600)

    removed = service.cleanup_expired(now=utc_now() + timedelta(minutes=5))

    assert removed == 1
    assert service.get_state(conversation_id, "goal", "short") is None
    assert service.get_state(conversation_id, "goal", "long") is not None
