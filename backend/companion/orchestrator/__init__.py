from companion.orchestrator.multi_intent import MultiIntentDetector
from companion.orchestrator.response_composer import ResponseComposer
from companion.orchestrator.response_orchestrator import GENERIC_REPLY, ResponseOrchestrator
from companion.orchestrator.types import (
    ModeScore,
    ModeSegment,
    MultiIntentResult,
    OrchestratedResponse,
)

__all__ = [
    "GENERIC_REPLY",
    "ModeScore",
    "ModeSegment",
    "MultiIntentDetector",
    "MultiIntentResult",
    "OrchestratedResponse",
    "ResponseComposer",
    "ResponseOrchestrator",
]
