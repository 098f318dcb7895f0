"""
Short-lived agent clarification records
"""
from datetime import datetime, timezone
from typing import Any, Dict
from uuid import uuid4

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Index, String

from companion.core.database import Base


class AgentState(Base):
    """
    Pending follow-up a domain is waiting on (e.g. "which goal?").

    Records expire at `expires_at` and are marked resolved once the follow-up
    answer has been interpreted.
    """
    __tablename__ = "agent_states"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    conversation_id = Column(String(36), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False)
    domain_id = Column(String(50), nullable=False)
    state_type = Column(String(100), nullable=False)
    state_data = Column(JSON, nullable=False)

    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    resolved = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("idx_agent_states_conversation", "conversation_id"),
        Index("idx_agent_states_domain", "domain_id"),
        Index("idx_agent_states_expires", "expires_at"),
    )

    def __repr__(self):
        return f"<AgentState(id={self.id}, domain={self.domain_id}, type={self.state_type}, resolved={self.resolved})>"

    def to_dict(self) -> Dict[str, Any]:
        """Convert record to dictionary"""
        return {
            "id": self.id,
            "conversation_id": self.conversation_id,
            "domain_id": self.domain_id,
            "state_type": self.state_type,
            "payload": self.state_data,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "resolved": self.resolved,
        }
