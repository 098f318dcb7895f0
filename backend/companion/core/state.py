"""
Conversation state snapshot types

Every pipeline stage receives a ConversationState and returns a new one
built with `model_copy(update=...)`; snapshots are never mutated in place.
"""
from collections import Counter
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from companion.utils.datetime_utils import utc_now


class ConversationMode(str, Enum):
    """Built-in response modes; handlers may register additional mode ids"""
    SMALLTALK = "smalltalk"
    CONSULT = "consult"
    META = "meta"
    TRACK_PROGRESS = "track_progress"


class ContextType(str, Enum):
    """Context element type; determines the decay half-life"""
    CRISIS = "crisis"
    EMOTIONAL = "emotional"
    TOPIC = "topic"
    PREFERENCE = "preference"
    GENERAL = "general"


class ContextElement(BaseModel):
    """A decaying, reinforceable memory fact"""
    model_config = ConfigDict(frozen=True)

    key: str
    value: str
    weight: float = Field(ge=0.0, le=1.0)
    context_type: ContextType = ContextType.GENERAL
    created_at: datetime = Field(default_factory=utc_now)
    last_accessed_at: datetime = Field(default_factory=utc_now)


class ConversationGoal(BaseModel):
    """Goal as tracked inside the conversation state"""
    model_config = ConfigDict(frozen=True)

    id: str
    description: str
    status: Literal["active", "completed", "abandoned"] = "active"
    created_at: datetime = Field(default_factory=utc_now)
    completed_at: Optional[datetime] = None


class ExtractionRecord(BaseModel):
    """Accepted output of a domain extractor"""
    model_config = ConfigDict(frozen=True)

    domain_id: str
    data: Dict[str, Any] = Field(default_factory=dict)
    confidence: float = Field(ge=0.0, le=1.0)
    timestamp: datetime = Field(default_factory=utc_now)


class SteeringHints(BaseModel):
    """Suggestion bundle produced by steering strategies"""
    model_config = ConfigDict(frozen=True)

    type: str = "none"
    suggestions: List[str] = Field(default_factory=list)
    context: Dict[str, Any] = Field(default_factory=dict)
    priority: float = 0.0


class ChatTurn(BaseModel):
    """A prior message as seen by classifiers, extractors and handlers"""
    model_config = ConfigDict(frozen=True)

    role: str
    content: str

    def as_message(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


class ConversationState(BaseModel):
    """Immutable per-turn snapshot of conversation state"""
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    conversation_id: str
    user_id: Optional[str] = None
    mode: str = ConversationMode.SMALLTALK.value
    context_elements: List[ContextElement] = Field(default_factory=list)
    goals: List[ConversationGoal] = Field(default_factory=list)
    extractions: Dict[str, List[ExtractionRecord]] = Field(default_factory=dict)
    domain_context: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    steering_hints: Optional[SteeringHints] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    last_activity_at: datetime = Field(default_factory=utc_now)
    created_at: datetime = Field(default_factory=utc_now)

    def active_goals(self) -> List[ConversationGoal]:
        return [g for g in self.goals if g.status == "active"]

    def latest_extraction(self, domain_id: str) -> Optional[ExtractionRecord]:
        """Most recent extraction for a domain, if any"""
        records = self.extractions.get(domain_id) or []
        return records[-1] if records else None

    def context_by_type(self) -> Dict[str, int]:
        """Count context elements per type, for logging"""
        return dict(Counter(e.context_type.value for e in self.context_elements))

    def find_element(self, key: str) -> Optional[ContextElement]:
        for element in self.context_elements:
            if element.key == key:
                return element
        return None
