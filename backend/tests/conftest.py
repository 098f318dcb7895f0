"""
Pytest configuration and fixtures
"""
import json
import os
from typing import Any, Dict, List, Optional

# Point settings at an isolated in-memory database before anything reads them
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["LOG_FILE_ENABLED"] = "false"
os.environ["LOG_FORMAT"] = "text"
os.environ["LLM_MAX_RETRIES"] = "1"

import pytest
from sqlalchemy.orm import Session

from companion.core.config import get_settings
from companion.core.database import Base, get_engine, get_session_local, reset_engine
from companion.core.llm_client import GenerationOptions, TaskType

get_settings.cache_clear()


@pytest.fixture(scope="function")
def db() -> Session:
    """Create a database session on a fresh schema"""
    reset_engine()
    import companion.models  # noqa: F401

    engine = get_engine()
    Base.metadata.create_all(bind=engine)
    session = get_session_local()()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        Base.metadata.drop_all(bind=engine)
        reset_engine()


@pytest.fixture(scope="function")
def session_factory(db):
    """Session factory bound to the test database"""
    return get_session_local()


@pytest.fixture
def settings():
    return get_settings()


class FakeLLM:
    """
    Scripted text-generation collaborator.

    `responses` maps a TaskType to the answer for calls of that type: a
    string, a dict (sent back as JSON), an exception instance (raised), a
    callable taking (messages, options), or a list of these consumed in
    order with the last one repeating. Unscripted JSON calls get "{}" and
    unscripted text calls get `default_text`.
    """

    def __init__(self, responses: Optional[Dict[TaskType, Any]] = None, default_text: str = "Sure, happy to help."):
        self.responses: Dict[TaskType, Any] = dict(responses or {})
        self.default_text = default_text
        self.calls: List[tuple] = []

    async def generate(self, messages, options: Optional[GenerationOptions] = None) -> str:
        options = options or GenerationOptions()
        self.calls.append((options.task_type, messages, options))

        if options.task_type not in self.responses:
            return "{}" if options.json_output else self.default_text

        answer = self.responses[options.task_type]
        if isinstance(answer, list):
            answer = answer.pop(0) if len(answer) > 1 else answer[0]
        if isinstance(answer, BaseException):
            raise answer
        if callable(answer):
            answer = answer(messages, options)
        if isinstance(answer, dict):
            return json.dumps(answer)
        return answer

    def calls_for(self, task_type: TaskType) -> List[tuple]:
        return [call for call in self.calls if call[0] == task_type]


@pytest.fixture
def fake_llm():
    return FakeLLM()
