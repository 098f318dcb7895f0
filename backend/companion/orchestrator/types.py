"""
Multi-intent and orchestration types
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

CompositionStrategy = Literal["sequential", "blended", "prioritized"]

ContentType = Literal["greeting", "information", "advice", "analytics", "acknowledgment", "question"]

MODE_CONTENT_TYPES: Dict[str, ContentType] = {
    "smalltalk": "greeting",
    "consult": "advice",
    "track_progress": "analytics",
    "meta": "information",
}


class ModeScore(BaseModel):
    model_config = ConfigDict(frozen=True)

    mode: str
    confidence: float = Field(ge=0.0, le=1.0)


class MultiIntentResult(BaseModel):
    """Primary and secondary modes detected in one message"""
    model_config = ConfigDict(frozen=True)

    primary: ModeScore
    secondary: List[ModeScore] = Field(default_factory=list)
    requires_orchestration: bool = False
    composition_strategy: Optional[CompositionStrategy] = None

    @property
    def modes(self) -> List[str]:
        return [self.primary.mode] + [s.mode for s in self.secondary]


@dataclass
class ModeSegment:
    """One handler's contribution before composition"""
    mode: str
    content: str
    priority: float
    content_type: ContentType = "information"
    confidence: float = 0.0
    state_updates: Dict[str, Any] = field(default_factory=dict)


@dataclass
class OrchestratedResponse:
    response: str
    primary_mode: str
    modes_used: List[str] = field(default_factory=list)
    state_updates: Dict[str, Any] = field(default_factory=dict)
    outcome: str = "single"
