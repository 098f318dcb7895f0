"""
Chat API route: one user message in, one reply out
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from companion.core.exceptions import PipelineError
from companion.core.logging_config import LoggingConfig
from companion.services.pipeline import TurnPipeline, TurnRequest

router = APIRouter(prefix="/api/chat", tags=["chat"])
logger = LoggingConfig.get_logger(__name__)


class ChatMessage(BaseModel):
    """Chat message model"""
    message: str = Field(..., min_length=1, description="User message")
    user_id: str = Field(..., min_length=1, description="User identifier")
    conversation_id: Optional[str] = Field(default=None, description="Conversation to continue")
    force_new_conversation: bool = Field(default=False, description="Start a new conversation")


class ChatResponse(BaseModel):
    """Chat response model"""
    response: str
    processing_time: int = Field(..., description="Processing time in milliseconds")
    message_id: str
    conversation_id: str


def get_pipeline(request: Request) -> TurnPipeline:
    """Pipeline built at application startup"""
    return request.app.state.pipeline


@router.post("", response_model=ChatResponse)
async def chat(message: ChatMessage, pipeline: TurnPipeline = Depends(get_pipeline)):
    """
    Process a user message through the turn pipeline

    Returns:
        ChatResponse with the reply and the ids of the stored message and conversation
    """
    try:
        result = await pipeline.execute(TurnRequest(
            user_id=message.user_id,
            message=message.message,
            conversation_id=message.conversation_id,
            force_new_conversation=message.force_new_conversation,
        ))
    except PipelineError as e:
        raise HTTPException(
            status_code=500,
            detail={"error": "Failed to process message", **e.to_dict()},
        )

    return ChatResponse(
        response=result.response,
        processing_time=result.processing_time,
        message_id=result.message_id,
        conversation_id=result.conversation_id,
    )
