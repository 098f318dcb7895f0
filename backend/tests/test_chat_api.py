"""
Tests for the HTTP API
"""
from unittest.mock import AsyncMock, Mock

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from companion.api.routes import chat
from companion.core.exceptions import PipelineError
from companion.services.pipeline import TurnRequest, TurnResult


@pytest.fixture
def pipeline():
    return Mock(execute=AsyncMock(return_value=TurnResult(
        response="Hi there!",
        processing_time=42,
        message_id="msg-1",
        conversation_id="conv-1",
    )))


@pytest.fixture
def client(pipeline):
    app = FastAPI()
    app.include_router(chat.router)
    app.state.pipeline = pipeline
    return TestClient(app)


def test_chat_returns_reply(client, pipeline):
    """Test a message is passed to the pipeline and its result returned"""
    response = client.post("/api/chat", json={"message": "Hello", "user_id": "user-1"})

    assert response.status_code == 200
    assert response.json() == {
        "response": "Hi there!",
        "processing_time": 42,
        "message_id": "msg-1",
        "conversation_id": "conv-1",
    }
    pipeline.execute.assert_awaited_once_with(TurnRequest(user_id="user-1", message="Hello"))


def test_chat_passes_conversation_options(client, pipeline):
    """Test conversation id and force-new flag reach the pipeline"""
    client.post("/api/chat", json={
        "message": "Hello",
        "user_id": "user-1",
        "conversation_id": "conv-9",
        "force_new_conversation": True,
    })

    request = pipeline.execute.call_args.args[0]
    assert request.conversation_id == "conv-9"
    assert request.force_new_conversation is True


def test_chat_rejects_empty_message(client, pipeline):
    """Test validation errors never reach the pipeline"""
    response = client.post("/api/chat", json={"message": "", "user_id": "user-1"})

    assert response.status_code == 422
    pipeline.execute.assert_not_called()


def test_chat_pipeline_error_names_stage(client, pipeline):
    """Test a pipeline failure is reported with its stage"""
    pipeline.execute.side_effect = PipelineError("save", RuntimeError("disk full"))

    response = client.post("/api/chat", json={"message": "Hello", "user_id": "user-1"})

    assert response.status_code == 500
    detail = response.json()["detail"]
    assert detail["stage"] == "save"
    assert detail["message"] == "disk full"


def test_health_endpoint():
    """Test the application health endpoint"""
    from main import app

    response = TestClient(app).get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_metrics_endpoint():
    """Test Prometheus metrics are exposed"""
    from main import app

    response = TestClient(app).get("/metrics")

    assert response.status_code == 200
    assert "pipeline_turns_total" in response.text
