"""
Conversation, message and per-turn state snapshot models
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict
from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, String, Text

from companion.core.database import Base


class ConversationStatus(str, Enum):
    """Conversation lifecycle status"""
    ACTIVE = "active"
    ENDED = "ended"


class MessageRole(str, Enum):
    """Message author role"""
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class Conversation(Base):
    """A user's conversation with the assistant"""
    __tablename__ = "conversations"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String(255), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=ConversationStatus.ACTIVE.value)

    started_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    last_activity_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    ended_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_conversations_user_status", "user_id", "status"),
    )

    def __repr__(self):
        return f"<Conversation(id={self.id}, user_id={self.user_id}, status={self.status})>"

    def to_dict(self) -> Dict[str, Any]:
        """Convert conversation to dictionary"""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "status": self.status,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "last_activity_at": self.last_activity_at.isoformat() if self.last_activity_at else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
        }


class Message(Base):
    """A single user or assistant message"""
    __tablename__ = "messages"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    conversation_id = Column(String(36), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(20), nullable=False)  # MessageRole enum
    content = Column(Text, nullable=False)
    timestamp = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    __table_args__ = (
        Index("idx_messages_conversation_time", "conversation_id", "timestamp"),
    )

    def __repr__(self):
        return f"<Message(id={self.id}, conversation_id={self.conversation_id}, role={self.role})>"

    def to_dict(self) -> Dict[str, Any]:
        """Convert message to dictionary"""
        return {
            "id": self.id,
            "conversation_id": self.conversation_id,
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }


class ConversationStateSnapshot(Base):
    """
    Append-only state snapshot, one row per turn.

    Rows are never updated; the latest row by created_at is the current state.
    """
    __tablename__ = "conversation_states"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    conversation_id = Column(String(36), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False)
    mode = Column(String(50), nullable=False)

    context_elements = Column(JSON, nullable=False, default=list)
    goals = Column(JSON, nullable=False, default=list)
    extractions = Column(JSON, nullable=False, default=dict)
    domain_context = Column(JSON, nullable=False, default=dict)
    state_metadata = Column("metadata", JSON, nullable=False, default=dict)

    last_activity_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    __table_args__ = (
        Index("idx_states_conversation_created", "conversation_id", "created_at"),
    )

    def __repr__(self):
        return f"<ConversationStateSnapshot(id={self.id}, conversation_id={self.conversation_id}, mode={self.mode})>"
