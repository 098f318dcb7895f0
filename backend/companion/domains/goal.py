"""
Goal domain: goal setting, progress reports and goal-selection follow-ups
"""
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from companion.classifiers.base import clamp_confidence, format_history, request_json
from companion.core.llm_client import TaskType
from companion.core.logging_config import LoggingConfig
from companion.core.state import ConversationState, ExtractionRecord, SteeringHints
from companion.domains.base import LLMExtractor
from companion.domains.registry import DomainDefinition, ExtractionContext
from companion.services.agent_state_service import AgentStateService
from companion.services.goal_service import GOAL_DOMAIN, SELECTION_PENDING
from companion.utils.datetime_utils import utc_now

logger = LoggingConfig.get_logger(__name__)

GoalAction = Literal[
    "set_goal",
    "log_progress",
    "view_goals",
    "check_progress",
    "update_goal",
    "goal_selected",
    "clarification_response",
]

MIN_ACTION_CONFIDENCE = 0.3


class GoalData(BaseModel):
    """Goal extraction payload"""
    model_config = ConfigDict(extra="ignore")

    action: Optional[GoalAction] = None
    goal_id: Optional[str] = None
    goal_title: Optional[str] = None
    goal_category: Optional[str] = None
    progress_value: Optional[float] = None
    progress_notes: Optional[str] = None
    progress_unit: Optional[str] = None
    target_value: Optional[float] = None
    target_date: Optional[str] = None
    baseline_value: Optional[float] = None
    selection: Optional[Union[int, str]] = None
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)


GOAL_INSTRUCTIONS = """Extract goal and progress tracking information from the user's message.

{active_goals}Determine the action CAREFULLY:
- set_goal: the user explicitly wants to CREATE a new goal ("Set a goal to...", "I want to set a goal...",
  "My goal is...", or a direct statement like "I want to read 12 books this year")
- log_progress: the user reports progress ("I finished 3 books", "I exercised 30 minutes")
- view_goals: the user wants to see their goals ("Show my goals")
- check_progress: the user wants analytics or asks how tracking works ("How am I doing?")
- update_goal: the user wants to change an existing goal ("Change my reading goal to 15 books")

Rules:
1. If the user is ASKING A QUESTION about goals or tracking, do not use set_goal.
2. Only use set_goal when the user clearly intends to create a goal right now.
3. When in doubt, prefer check_progress or null over set_goal.

Fields: action, goal_title, target_value, progress_unit, goal_category, target_date (ISO date),
baseline_value, progress_value, progress_notes, goal_id, confidence.

Examples:
- "I want to set a goal to read 12 books this year" ->
  {{"action": "set_goal", "goal_title": "Read 12 books this year", "target_value": 12, "progress_unit": "books", "confidence": 0.95}}
- "I finished reading 3 books" -> {{"action": "log_progress", "progress_value": 3, "progress_unit": "books", "confidence": 0.9}}
- "Show me my goals" -> {{"action": "view_goals", "confidence": 0.95}}
- "Can you help me track my reading?" -> {{"action": null, "confidence": 0}}

If the message is not about goals or progress, return {{"action": null, "confidence": 0}}."""

SELECTION_PROMPT = """The user was asked which goal a progress report belongs to:
{options}

Progress to log: {pending_value}

Recent conversation:
{history}

Decide whether the user's reply answers this goal-selection question. Accept a number ("1"),
a position ("the second one") or a keyword from a goal title ("books").
Return JSON: {{"is_selection": true|false, "selected_index": <1-based index or null>,
"confidence": 0.0-1.0, "reasoning": "brief explanation"}}"""


def format_goal_options(goals: List[Dict[str, Any]]) -> str:
    return "\n".join(f"{i}. {g.get('title', '')}" for i, g in enumerate(goals, start=1))


class GoalExtractor(LLMExtractor):
    """
    Extracts goal actions, checking for a pending goal-selection answer first.

    A pending selection is a clarification record saved by the goal service
    when a progress report matched several goals equally well.
    """

    domain_id = GOAL_DOMAIN
    data_model = GoalData

    def __init__(self, llm, agent_states: Optional[AgentStateService] = None):
        super().__init__(llm)
        self.agent_states = agent_states

    def build_prompt(self, context: ExtractionContext) -> str:
        goals = (context.domain_context or {}).get("active_goals") or []
        active = ""
        if goals:
            active = "Active goals:\n" + "\n".join(
                f"{i}. {g.get('title')} ({g.get('current_value') or 0}/{g.get('target_value') or '?'} {g.get('unit') or ''})"
                for i, g in enumerate(goals, start=1)
            ) + "\n\n"
        return (
            GOAL_INSTRUCTIONS.format(active_goals=active)
            + f"\n\nRecent conversation:\n{format_history(context.recent_messages, 3)}"
        )

    def is_empty(self, data: Dict[str, Any]) -> bool:
        return not data.get("action")

    async def extract(self, message: str, context: ExtractionContext) -> Optional[ExtractionRecord]:
        selection = await self.check_selection_response(message, context)
        if selection is not None:
            return selection

        record = await super().extract(message, context)
        if record is not None and record.confidence < MIN_ACTION_CONFIDENCE:
            logger.debug("Goal action below minimum confidence", extra={"confidence": record.confidence})
            return None
        if record is not None:
            logger.info(
                "Goal data extracted",
                extra={"action": record.data.get("action"), "confidence": record.confidence}
            )
        return record

    async def check_selection_response(self, message: str, context: ExtractionContext) -> Optional[ExtractionRecord]:
        """Interpret the message as an answer to a pending goal-selection question, if one exists"""
        if self.agent_states is None:
            return None
        pending = self.agent_states.get_state(context.conversation_id, GOAL_DOMAIN, SELECTION_PENDING)
        if not pending:
            return None

        goals = pending.get("goals") or []
        prompt = SELECTION_PROMPT.format(
            options=format_goal_options(goals),
            pending_value=pending.get("pending_value"),
            history=format_history(context.recent_messages, 2, max_chars=100),
        )
        try:
            payload = await request_json(
                self.llm, prompt, message, TaskType.GOAL_SELECTION, max_tokens=200, temperature=0.2
            )
        except Exception as e:
            logger.warning(f"Goal selection parsing failed: {e}", exc_info=True)
            return None

        index = payload.get("selected_index")
        if not payload.get("is_selection") or not isinstance(index, int) or isinstance(index, bool) or not 1 <= index <= len(goals):
            return None

        selected = goals[index - 1]
        confidence = clamp_confidence(payload.get("confidence"), default=0.9)
        data = GoalData(
            action="goal_selected",
            goal_id=selected.get("id"),
            selection=index,
            progress_value=pending.get("pending_value"),
            confidence=confidence,
        ).model_dump(exclude_none=True)
        data.pop("confidence", None)

        self.agent_states.resolve_state(context.conversation_id, GOAL_DOMAIN, SELECTION_PENDING)
        logger.info("Goal selection resolved", extra={"selected_index": index, "goal_id": selected.get("id")})
        return ExtractionRecord(
            domain_id=self.domain_id,
            data=data,
            confidence=confidence,
            timestamp=context.now or utc_now(),
        )


class GoalSettingStrategy:
    """Nudges new goals toward measurable targets, deadlines and milestones"""

    strategy_id = "goal_setting"
    priority = 0.9

    def should_apply(self, state: ConversationState) -> bool:
        latest = state.latest_extraction(GOAL_DOMAIN)
        return latest is not None and latest.data.get("action") == "set_goal"

    async def generate_hints(self, state: ConversationState) -> SteeringHints:
        data = state.latest_extraction(GOAL_DOMAIN).data
        suggestions = []
        if data.get("target_value") is None:
            suggestions.append("What number would tell you this goal is done?")
        if not data.get("target_date"):
            suggestions.append("Is there a date you'd like to reach this goal by?")
        suggestions.append("Would it help to break this goal into smaller milestones?")
        return SteeringHints(
            type="goal_setting",
            suggestions=suggestions,
            context={"goal_title": data.get("goal_title")},
            priority=self.priority,
        )


class GoalSelectionStrategy:
    """
    Keeps a pending goal-selection question in view.

    Applies while a selection record is open for the conversation; it adds no
    suggestions so handlers wait for the user's answer.
    """

    strategy_id = "goal_selection"
    priority = 2.0

    def __init__(self, agent_states: Optional[AgentStateService] = None):
        self.agent_states = agent_states

    def _pending(self, state: ConversationState) -> Optional[Dict[str, Any]]:
        if self.agent_states is None:
            return None
        return self.agent_states.get_state(state.conversation_id, GOAL_DOMAIN, SELECTION_PENDING)

    def should_apply(self, state: ConversationState) -> bool:
        return self._pending(state) is not None

    async def generate_hints(self, state: ConversationState) -> SteeringHints:
        pending = self._pending(state) or {}
        return SteeringHints(
            type="goal_selection_pending",
            suggestions=[],
            context={
                "options": pending.get("goals") or [],
                "pending_value": pending.get("pending_value"),
            },
            priority=self.priority,
        )


def goal_domain(llm, agent_states: Optional[AgentStateService] = None, confidence_threshold: float = 0.5) -> DomainDefinition:
    return DomainDefinition(
        id=GOAL_DOMAIN,
        name="Goal Management",
        description="Goal setting, progress updates, goal reviews and answers to goal-selection questions",
        extractor=GoalExtractor(llm, agent_states),
        strategies=(GoalSelectionStrategy(agent_states), GoalSettingStrategy()),
        priority=1.5,
        confidence_threshold=confidence_threshold,
    )
