"""
Stored domain extractions
"""
from datetime import datetime, timezone
from typing import Any, Dict
from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime, Float, Index, String

from companion.core.database import Base


class DomainExtraction(Base):
    """Accepted extraction persisted by the enrichment stage"""
    __tablename__ = "domain_extractions"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    conversation_id = Column(String(36), nullable=False)
    user_id = Column(String(255), nullable=False)
    domain_id = Column(String(50), nullable=False)
    data = Column(JSON, nullable=False)
    confidence = Column(Float, nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    __table_args__ = (
        Index("idx_extractions_user_domain", "user_id", "domain_id", "created_at"),
    )

    def __repr__(self):
        return f"<DomainExtraction(id={self.id}, domain={self.domain_id}, confidence={self.confidence})>"

    def to_dict(self) -> Dict[str, Any]:
        """Convert extraction to dictionary"""
        return {
            "id": self.id,
            "conversation_id": self.conversation_id,
            "user_id": self.user_id,
            "domain_id": self.domain_id,
            "data": self.data,
            "confidence": self.confidence,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
