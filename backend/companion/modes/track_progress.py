"""
Track-progress mode: acts on goal extractions through the goal service
"""
from typing import Any, Dict, Optional

from companion.core.logging_config import LoggingConfig
from companion.modes.base import HandlerContext, HandlerResult, LLMModeHandler, crisis_result
from companion.services.goal_service import GOAL_DOMAIN, GoalOperationResult, GoalService

logger = LoggingConfig.get_logger(__name__)


class TrackProgressHandler(LLMModeHandler):
    """
    Executes the goal action extracted this turn.

    Without a goal extraction from the current turn, the handler answers
    conversationally from its system prompt.
    """

    mode = "track_progress"
    description = "Setting goals, logging progress, reviewing goals and progress analytics"
    temperature = 0.6
    max_tokens = 400
    system_prompt = """You are a supportive goal coach in TRACK PROGRESS mode.

Your role:
- Help the user set clear, measurable goals
- Celebrate progress, however small
- Help the user reflect on what is working and what is not
- Focus on making goals actionable and measurable

If the user wants to create a goal or log progress but details are missing, ask for them."""

    def __init__(self, llm, goal_service: GoalService):
        super().__init__(llm)
        self.goal_service = goal_service

    def current_goal_data(self, context: HandlerContext) -> Optional[Dict[str, Any]]:
        """Goal extraction accepted during this turn, if any"""
        latest = context.state.latest_extraction(GOAL_DOMAIN)
        if latest is None or latest.timestamp < context.turn_started_at:
            return None
        return latest.data

    def process(self, data: Dict[str, Any], context: HandlerContext) -> Optional[GoalOperationResult]:
        """Dispatch a goal action; None means the action needs a conversational answer"""
        user_id = context.user_id
        action = data.get("action")
        goal_id = data.get("goal_id")
        value = data.get("progress_value")

        if action == "set_goal":
            return self.goal_service.create_goal(user_id, data, conversation_id=context.conversation_id)
        if action in ("log_progress", "goal_selected"):
            if value is None:
                return None
            if goal_id:
                return self.goal_service.log_progress(
                    user_id, goal_id, value, notes=data.get("progress_notes"), conversation_id=context.conversation_id
                )
            return self.goal_service.select_goal_for_progress(
                user_id, context.message, value, conversation_id=context.conversation_id
            )
        if action == "view_goals":
            return self.goal_service.get_goals(user_id, "active")
        if action == "check_progress":
            return self.goal_service.analyze_progress(user_id, goal_id)
        if action == "update_goal" and goal_id:
            updates = {
                "title": data.get("goal_title"),
                "target_value": data.get("target_value"),
                "target_date": data.get("target_date"),
                "unit": data.get("progress_unit"),
                "category": data.get("goal_category"),
            }
            return self.goal_service.update_goal(user_id, goal_id, updates)
        return None

    async def handle(self, context: HandlerContext) -> HandlerResult:
        if context.is_crisis:
            return crisis_result(context)

        data = self.current_goal_data(context)
        if data:
            result = self.process(data, context)
            if result is not None:
                logger.info(
                    "Goal action processed",
                    extra={"action": data.get("action"), "success": result.success}
                )
                return HandlerResult(
                    response=result.message,
                    state_updates={"last_goal_action": data.get("action"), "goal_action_success": result.success},
                )

        return await super().handle(context)
