"""
Mode handler contracts and the shared LLM response flow
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Tuple, runtime_checkable

from companion.classifiers.crisis_responses import build_crisis_response, tone_instructions
from companion.classifiers.types import ClassificationContext, SafetyLevel
from companion.core.llm_client import GenerationOptions, TaskType
from companion.core.logging_config import LoggingConfig
from companion.core.state import ChatTurn, ConversationState
from companion.utils.datetime_utils import utc_now

logger = LoggingConfig.get_logger(__name__)

MAX_CONTEXT_ELEMENTS = 5


@dataclass(frozen=True)
class HandlerContext:
    """Everything a mode handler may read for one turn"""
    conversation_id: str
    user_id: str
    message: str
    state: ConversationState
    recent_messages: Tuple[ChatTurn, ...] = ()
    current_mode: str = "smalltalk"
    classification: Optional[ClassificationContext] = None
    turn_started_at: datetime = field(default_factory=utc_now)

    @property
    def is_crisis(self) -> bool:
        return bool(self.classification and self.classification.decision.safety_context.is_crisis)

    @property
    def safety_level(self) -> SafetyLevel:
        if self.classification is None:
            return SafetyLevel.SAFE
        return self.classification.decision.safety_context.level


@dataclass
class HandlerResult:
    response: str
    new_mode: Optional[str] = None
    state_updates: Dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class ModeHandler(Protocol):
    """A response generator for one conversation mode"""
    mode: str
    description: str

    async def handle(self, context: HandlerContext) -> HandlerResult:
        ...


def crisis_result(context: HandlerContext) -> HandlerResult:
    """Fixed crisis response listing the arbitrated resources"""
    resources = context.classification.decision.safety_context.crisis_resources
    return HandlerResult(
        response=build_crisis_response(SafetyLevel.CRISIS, resources),
        state_updates={"crisis_response_sent": True},
    )


def describe_memory(state: ConversationState, limit: int = MAX_CONTEXT_ELEMENTS) -> str:
    """Strongest context elements as prompt lines"""
    elements = sorted(state.context_elements, key=lambda e: e.weight, reverse=True)[:limit]
    return "\n".join(f"- {e.key}: {e.value} (weight {e.weight:.2f})" for e in elements)


class LLMModeHandler:
    """
    Generates a reply from a mode-specific system prompt.

    The system prompt is extended with tone guidelines for the turn's safety
    level, the strongest remembered context and any steering suggestions.
    Crisis turns never reach the model.
    """

    mode: str = ""
    description: str = ""
    system_prompt: str = ""
    temperature: float = 0.7
    max_tokens: int = 500

    def __init__(self, llm):
        self.llm = llm

    def build_system_prompt(self, context: HandlerContext) -> str:
        sections = [self.system_prompt.strip(), tone_instructions(context.safety_level)]

        memory = describe_memory(context.state)
        if memory:
            sections.append(f"What you remember about this conversation:\n{memory}")

        hints = context.state.steering_hints
        if hints and hints.suggestions:
            suggestions = "\n".join(f"- {s}" for s in hints.suggestions)
            sections.append(
                "If it fits naturally, you may weave in one of these follow-ups:\n" + suggestions
            )
        return "\n\n".join(sections)

    def build_messages(self, context: HandlerContext) -> List[Dict[str, str]]:
        messages = [{"role": "system", "content": self.build_system_prompt(context)}]
        messages.extend(turn.as_message() for turn in context.recent_messages)
        messages.append({"role": "user", "content": context.message})
        return messages

    def build_state_updates(self, context: HandlerContext) -> Dict[str, Any]:
        return {}

    async def generate(self, context: HandlerContext) -> str:
        return await self.llm.generate(
            self.build_messages(context),
            GenerationOptions(
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                task_type=TaskType.RESPONSE,
            ),
        )

    async def handle(self, context: HandlerContext) -> HandlerResult:
        if context.is_crisis:
            logger.warning("Crisis turn, sending fixed crisis response", extra={"mode": self.mode})
            return crisis_result(context)

        response = await self.generate(context)
        logger.debug("Message handled", extra={"mode": self.mode, "response_chars": len(response)})
        return HandlerResult(response=response.strip(), state_updates=self.build_state_updates(context))
