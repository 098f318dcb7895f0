"""
SQLAlchemy models
"""
from companion.core.database import Base  # noqa: F401
from companion.models.agent_state import AgentState  # noqa: F401
from companion.models.conversation import (Conversation,  # noqa: F401
                                           ConversationStateSnapshot,
                                           ConversationStatus, Message,
                                           MessageRole)
from companion.models.domain_extraction import DomainExtraction  # noqa: F401
from companion.models.goal import Goal, GoalStatus, ProgressEntry  # noqa: F401
