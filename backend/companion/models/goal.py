"""
Goal and progress tracking models
"""
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict
from uuid import uuid4

from sqlalchemy import JSON, Column, DateTime, Float, ForeignKey, Index, String, Text
from sqlalchemy.orm import relationship

from companion.core.database import Base


class GoalStatus(str, Enum):
    """Goal status enumeration"""
    ACTIVE = "active"
    COMPLETED = "completed"
    ABANDONED = "abandoned"
    PAUSED = "paused"


class Goal(Base):
    """A user goal tracked across conversations"""
    __tablename__ = "goals"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String(255), nullable=False)
    conversation_id = Column(String(36), ForeignKey("conversations.id", ondelete="SET NULL"), nullable=True)

    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=False, default="general")

    target_value = Column(Float, nullable=True)
    current_value = Column(Float, nullable=False, default=0.0)
    baseline_value = Column(Float, nullable=True)
    unit = Column(String(50), nullable=True)

    status = Column(String(20), nullable=False, default=GoalStatus.ACTIVE.value)
    target_date = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    last_progress_at = Column(DateTime(timezone=True), nullable=True)

    goal_metadata = Column("metadata", JSON, nullable=True)

    entries = relationship(
        "ProgressEntry",
        back_populates="goal",
        cascade="all, delete-orphan",
        order_by="ProgressEntry.logged_at",
    )

    __table_args__ = (
        Index("idx_goals_user_status", "user_id", "status"),
    )

    def __repr__(self):
        return f"<Goal(id={self.id}, title={self.title!r}, status={self.status})>"

    def to_dict(self) -> Dict[str, Any]:
        """Convert goal to dictionary"""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "target_value": self.target_value,
            "current_value": self.current_value,
            "baseline_value": self.baseline_value,
            "unit": self.unit,
            "status": self.status,
            "target_date": self.target_date.isoformat() if self.target_date else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "last_progress_at": self.last_progress_at.isoformat() if self.last_progress_at else None,
        }


class ProgressEntry(Base):
    """A single logged progress value for a goal"""
    __tablename__ = "progress_entries"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    goal_id = Column(String(36), ForeignKey("goals.id", ondelete="CASCADE"), nullable=False, index=True)
    value = Column(Float, nullable=False)
    notes = Column(Text, nullable=True)
    source = Column(String(50), nullable=False, default="manual")
    conversation_id = Column(String(36), nullable=True)
    logged_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    goal = relationship("Goal", back_populates="entries")

    def __repr__(self):
        return f"<ProgressEntry(id={self.id}, goal_id={self.goal_id}, value={self.value})>"

    def to_dict(self) -> Dict[str, Any]:
        """Convert entry to dictionary"""
        return {
            "id": self.id,
            "goal_id": self.goal_id,
            "value": self.value,
            "notes": self.notes,
            "source": self.source,
            "logged_at": self.logged_at.isoformat() if self.logged_at else None,
        }
