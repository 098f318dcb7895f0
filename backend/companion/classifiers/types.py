"""
Safety, intent and arbitration types
"""
from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from companion.utils.datetime_utils import utc_now

Tone = Literal["normal", "empathetic", "urgent"]


class SafetyLevel(str, Enum):
    """Safety level of a message"""
    SAFE = "safe"
    CONCERN = "concern"
    CRISIS = "crisis"


class IntentType(str, Enum):
    """User intent"""
    # consult
    SEEK_ADVICE = "seek_advice"
    ASK_QUESTION = "ask_question"
    SHARE_PROBLEM = "share_problem"
    # smalltalk
    GREETING = "greeting"
    CASUAL_CHAT = "casual_chat"
    FAREWELL = "farewell"
    # meta
    HOW_WORKS = "how_works"
    ABOUT_SYSTEM = "about_system"
    HELP = "help"
    # track_progress
    SET_GOAL = "set_goal"
    LOG_PROGRESS = "log_progress"
    CHECK_PROGRESS = "check_progress"
    UNCLEAR = "unclear"


class EntityType(str, Enum):
    """Entity kinds extracted alongside the intent"""
    TOPIC = "topic"
    EMOTION = "emotion"
    GOAL = "goal"
    HEALTH_CONCERN = "health_concern"


class CrisisResource(BaseModel):
    """A crisis hotline or service"""
    model_config = ConfigDict(frozen=True)

    name: str
    phone: str
    available: str
    description: str


class SafetyResult(BaseModel):
    """Safety classification signal"""
    model_config = ConfigDict(frozen=True)

    level: SafetyLevel
    confidence: float = Field(ge=0.0, le=1.0)
    signals: List[str] = Field(default_factory=list)
    suggested_tone: Optional[Tone] = None
    requires_human_escalation: bool = False
    crisis_resources: Optional[List[CrisisResource]] = None
    timestamp: datetime = Field(default_factory=utc_now)


class ExtractedEntity(BaseModel):
    """Entity mentioned in the message"""
    model_config = ConfigDict(frozen=True)

    type: EntityType
    value: str
    confidence: float = Field(default=0.8, ge=0.0, le=1.0)


class IntentResult(BaseModel):
    """Intent classification signal"""
    model_config = ConfigDict(frozen=True)

    intent: IntentType
    suggested_mode: str
    confidence: float = Field(ge=0.0, le=1.0)
    entities: List[ExtractedEntity] = Field(default_factory=list)
    reasoning: str = ""
    timestamp: datetime = Field(default_factory=utc_now)


class SafetyContext(BaseModel):
    """Tone and crisis flags handed to mode handlers"""
    model_config = ConfigDict(frozen=True)

    level: SafetyLevel
    tone: Tone
    is_crisis: bool
    crisis_resources: Optional[List[CrisisResource]] = None


class ArbiterDecision(BaseModel):
    """Final mode and safety context for a turn"""
    model_config = ConfigDict(frozen=True)

    final_mode: str
    final_intent: IntentType
    safety_context: SafetyContext
    override_reason: Optional[str] = None
    confidence: float = Field(ge=0.0, le=1.0)
    timestamp: datetime = Field(default_factory=utc_now)


class ClassificationContext(BaseModel):
    """Classification output passed to mode handlers"""
    model_config = ConfigDict(frozen=True)

    decision: ArbiterDecision
    safety_signals: List[str] = Field(default_factory=list)
    entities: List[ExtractedEntity] = Field(default_factory=list)
