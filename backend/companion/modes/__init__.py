"""
Conversation mode handlers
"""
from companion.modes.base import HandlerContext, HandlerResult, ModeHandler
from companion.modes.consult import ConsultHandler
from companion.modes.meta import MetaHandler
from companion.modes.registry import ModeRegistry
from companion.modes.smalltalk import SmalltalkHandler
from companion.modes.track_progress import TrackProgressHandler
from companion.services.goal_service import GoalService

__all__ = [
    "HandlerContext",
    "HandlerResult",
    "ModeHandler",
    "ModeRegistry",
    "build_mode_registry",
]


def build_mode_registry(llm, goal_service: GoalService) -> ModeRegistry:
    return ModeRegistry([
        SmalltalkHandler(llm),
        ConsultHandler(llm),
        MetaHandler(llm),
        TrackProgressHandler(llm, goal_service),
    ])
