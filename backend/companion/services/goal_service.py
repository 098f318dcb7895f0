"""
Goal management: creation, progress logging, selection and analytics
"""
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from companion.core.logging_config import LoggingConfig
from companion.models.goal import Goal, GoalStatus, ProgressEntry
from companion.services.agent_state_service import AgentStateService
from companion.services.repositories import GoalRepository, ProgressRepository
from companion.utils.datetime_utils import ensure_utc, parse_iso, utc_now

logger = LoggingConfig.get_logger(__name__)

GOAL_DOMAIN = "goal"
SELECTION_PENDING = "selection_pending"

_UPDATABLE_FIELDS = ("title", "description", "category", "target_value", "unit", "target_date", "status")


@dataclass
class GoalOperationResult:
    """Outcome of a goal operation with a user-facing message"""
    success: bool
    message: str
    data: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None


@dataclass
class GoalAnalytics:
    goal_id: str
    title: str
    progress: float
    progress_percentage: int
    days_active: int
    average_per_day: float
    estimated_completion: Optional[datetime] = None
    recent_values: List[Tuple[datetime, float]] = field(default_factory=list)


def _words(text: str, min_length: int = 3) -> List[str]:
    return [w for w in re.split(r"\s+", text.lower().strip()) if len(w) >= min_length]


def _fmt_number(value: Optional[float]) -> str:
    if value is None:
        return "?"
    return str(int(value)) if float(value).is_integer() else f"{value:g}"


def progress_bar(current: float, target: float) -> str:
    percentage = min(100, round((current / target) * 100)) if target else 0
    filled = round(percentage / 10)
    return "[" + "#" * filled + "-" * (10 - filled) + "]"


class GoalService:
    """
    Goal operations used by the progress-tracking mode.

    Every operation opens its own session from `session_factory`. Database
    failures are logged and reported as an unsuccessful result so the
    handler can still answer the user.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        agent_states: Optional[AgentStateService] = None,
        similarity_threshold: float = 0.8,
    ):
        self.session_factory = session_factory
        self.agent_states = agent_states
        self.similarity_threshold = similarity_threshold

    def create_goal(self, user_id: str, goal_data: Dict[str, Any], conversation_id: Optional[str] = None) -> GoalOperationResult:
        """
        Create a goal unless a similar active goal already exists

        Args:
            user_id: Goal owner
            goal_data: Goal extraction payload (goal_title, target_value, ...)
            conversation_id: Conversation the goal was set in

        Returns:
            GoalOperationResult; on duplicate, success is False and data holds the existing goal
        """
        title = (goal_data.get("goal_title") or "").strip() or "Untitled Goal"
        try:
            with self.session_factory() as db:
                goals = GoalRepository(db)
                similar = self.find_similar_goal(title, goals.active_for_user(user_id))
                if similar is not None:
                    return GoalOperationResult(
                        success=False,
                        message=f'You already have a similar goal: "{similar.title}". Would you like to update it instead?',
                        data={"existing_goal": similar.to_dict()},
                    )

                baseline = goal_data.get("baseline_value")
                goal = goals.create(
                    user_id,
                    title,
                    category=goal_data.get("goal_category") or "general",
                    target_value=goal_data.get("target_value"),
                    current_value=baseline or 0.0,
                    baseline_value=baseline,
                    unit=goal_data.get("progress_unit"),
                    target_date=parse_iso(goal_data.get("target_date")),
                    conversation_id=conversation_id,
                )
                db.commit()
                logger.info("Goal created", extra={"goal_id": goal.id, "user_id": user_id})
                return GoalOperationResult(
                    success=True,
                    message=self._format_created(goal),
                    data={"goal": goal.to_dict()},
                )
        except SQLAlchemyError as e:
            logger.error(f"Failed to create goal: {e}", extra={"user_id": user_id}, exc_info=True)
            return GoalOperationResult(False, "Failed to create goal. Please try again.", error=str(e))

    def log_progress(
        self,
        user_id: str,
        goal_id: str,
        value: float,
        notes: Optional[str] = None,
        conversation_id: Optional[str] = None,
    ) -> GoalOperationResult:
        """Add a progress entry; completes the goal when the target is reached"""
        try:
            with self.session_factory() as db:
                goal = GoalRepository(db).get(goal_id)
                if goal is None or goal.user_id != user_id:
                    return GoalOperationResult(False, "Goal not found or access denied.")

                entry = ProgressRepository(db).create(goal.id, value, notes=notes, conversation_id=conversation_id)
                now = utc_now()
                goal.current_value = (goal.current_value or 0.0) + value
                goal.last_progress_at = now
                achieved = bool(goal.target_value) and goal.current_value >= goal.target_value
                if achieved:
                    goal.status = GoalStatus.COMPLETED.value
                    goal.completed_at = now
                db.commit()

                logger.info(
                    "Progress logged",
                    extra={"goal_id": goal.id, "value": value, "current_value": goal.current_value, "achieved": achieved}
                )
                message = self._format_achieved(goal) if achieved else self._format_progress(goal, value)
                return GoalOperationResult(
                    success=True,
                    message=message,
                    data={"goal": goal.to_dict(), "entry": entry.to_dict(), "achieved": achieved},
                )
        except SQLAlchemyError as e:
            logger.error(f"Failed to log progress: {e}", extra={"goal_id": goal_id}, exc_info=True)
            return GoalOperationResult(False, "Failed to log progress. Please try again.", error=str(e))

    def select_goal_for_progress(
        self,
        user_id: str,
        message: str,
        value: float,
        conversation_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> GoalOperationResult:
        """
        Pick the goal a progress report refers to and log it.

        When several goals tie for the best relevance score, nothing is logged:
        the result asks the user to choose and, when a conversation id is
        given, a clarification record is saved for the next turn.
        """
        try:
            with self.session_factory() as db:
                active = GoalRepository(db).active_for_user(user_id)
                options = [goal.to_dict() for goal in active]
                scored = self.score_goals(message, active, now)
        except SQLAlchemyError as e:
            logger.error(f"Failed to load goals: {e}", extra={"user_id": user_id}, exc_info=True)
            return GoalOperationResult(False, "Failed to process progress. Please try again.", error=str(e))

        if not scored:
            return GoalOperationResult(
                success=False,
                message="You don't have any active goals. Would you like to create one?",
                data={"needs_goal_creation": True},
            )

        top_score = scored[0][1]
        top_ids = [goal.id for goal, score in scored if score == top_score]
        if len(top_ids) > 1:
            candidates = [o for o in options if o["id"] in top_ids]
            candidates.sort(key=lambda o: top_ids.index(o["id"]))
            if self.agent_states is not None and conversation_id:
                self.agent_states.save_state(
                    conversation_id,
                    GOAL_DOMAIN,
                    SELECTION_PENDING,
                    {
                        "goals": [
                            {"index": i + 1, "id": o["id"], "title": o["title"],
                             "current_value": o["current_value"], "target_value": o["target_value"],
                             "unit": o["unit"]}
                            for i, o in enumerate(candidates)
                        ],
                        "pending_value": value,
                        "original_message": message,
                        "user_id": user_id,
                    },
                )
            return GoalOperationResult(
                success=False,
                message=self._format_selection_prompt(candidates, value),
                data={"needs_clarification": True, "goals": candidates, "pending_value": value},
            )

        return self.log_progress(user_id, top_ids[0], value, conversation_id=conversation_id)

    def get_goals(self, user_id: str, status_filter: str = "active") -> GoalOperationResult:
        """List goals: 'active', 'completed' or 'all'"""
        try:
            with self.session_factory() as db:
                repo = GoalRepository(db)
                if status_filter == "active":
                    goals = repo.active_for_user(user_id)
                else:
                    goals = repo.all_for_user(user_id)
                    if status_filter == "completed":
                        goals = [g for g in goals if g.status == GoalStatus.COMPLETED.value]
                rows = [g.to_dict() for g in goals]
        except SQLAlchemyError as e:
            logger.error(f"Failed to get goals: {e}", extra={"user_id": user_id}, exc_info=True)
            return GoalOperationResult(False, "Failed to retrieve goals. Please try again.", error=str(e))

        if not rows:
            return GoalOperationResult(True, self._format_no_goals(status_filter), data={"goals": []})
        return GoalOperationResult(True, self._format_goal_list(rows, status_filter), data={"goals": rows})

    def analyze_progress(self, user_id: str, goal_id: Optional[str] = None, now: Optional[datetime] = None) -> GoalOperationResult:
        """Progress analytics for one goal or all active goals"""
        now = now or utc_now()
        try:
            with self.session_factory() as db:
                repo = GoalRepository(db)
                if goal_id:
                    goal = repo.get(goal_id)
                    goals = [goal] if goal is not None and goal.user_id == user_id else []
                else:
                    goals = repo.active_for_user(user_id)
                progress = ProgressRepository(db)
                analytics = [self.calculate_analytics(g, progress.for_goal(g.id), now) for g in goals]
        except SQLAlchemyError as e:
            logger.error(f"Failed to analyze progress: {e}", extra={"user_id": user_id}, exc_info=True)
            return GoalOperationResult(False, "Failed to analyze progress. Please try again.", error=str(e))

        if not analytics:
            return GoalOperationResult(False, "No goals found to analyze.")
        return GoalOperationResult(True, self._format_analytics(analytics), data={"analytics": analytics})

    def update_goal(self, user_id: str, goal_id: str, updates: Dict[str, Any]) -> GoalOperationResult:
        """Apply field updates to a goal owned by the user"""
        try:
            with self.session_factory() as db:
                goal = GoalRepository(db).get(goal_id)
                if goal is None or goal.user_id != user_id:
                    return GoalOperationResult(False, "Goal not found or access denied.")
                for key, value in updates.items():
                    if key in _UPDATABLE_FIELDS and value is not None:
                        if key == "target_date" and isinstance(value, str):
                            value = parse_iso(value)
                        setattr(goal, key, value)
                db.commit()
                return GoalOperationResult(
                    True,
                    f'Goal "{goal.title}" has been updated successfully.',
                    data={"goal": goal.to_dict()},
                )
        except SQLAlchemyError as e:
            logger.error(f"Failed to update goal: {e}", extra={"goal_id": goal_id}, exc_info=True)
            return GoalOperationResult(False, "Failed to update goal. Please try again.", error=str(e))

    def complete_goal(self, user_id: str, goal_id: str) -> GoalOperationResult:
        """Mark a goal completed"""
        try:
            with self.session_factory() as db:
                goal = GoalRepository(db).get(goal_id)
                if goal is None or goal.user_id != user_id:
                    return GoalOperationResult(False, "Goal not found or access denied.")
                goal.status = GoalStatus.COMPLETED.value
                goal.completed_at = utc_now()
                db.commit()
                return GoalOperationResult(True, f'Goal "{goal.title}" has been completed!', data={"goal": goal.to_dict()})
        except SQLAlchemyError as e:
            logger.error(f"Failed to complete goal: {e}", extra={"goal_id": goal_id}, exc_info=True)
            return GoalOperationResult(False, "Failed to complete goal. Please try again.", error=str(e))

    # Matching and scoring

    def find_similar_goal(self, title: str, existing: List[Goal]) -> Optional[Goal]:
        """Exact title match, or at least 80% of the title's words overlapping a goal's words"""
        normalized = title.lower().strip()
        if not normalized:
            return None
        for goal in existing:
            if goal.title.lower().strip() == normalized:
                return goal

        title_words = _words(normalized)
        for goal in existing:
            goal_words = _words(goal.title)
            matching = [w for w in title_words if any(g in w or w in g for g in goal_words)]
            if len(matching) / max(len(title_words), 1) >= self.similarity_threshold:
                return goal
        return None

    def score_goals(self, message: str, goals: List[Goal], now: Optional[datetime] = None) -> List[Tuple[Goal, int]]:
        """Score goals by keyword overlap with the message and recent activity, best first"""
        now = now or utc_now()
        lower = message.lower()
        scored = []
        for goal in goals:
            score = sum(10 for word in _words(goal.title) if word in lower)
            last_activity = ensure_utc(goal.last_progress_at or goal.created_at)
            days_since = (now - last_activity).days if last_activity else 999
            if days_since < 7:
                score += 5
            if days_since < 3:
                score += 5
            if goal.status == GoalStatus.COMPLETED.value:
                score -= 3
            scored.append((goal, score))
        scored.sort(key=lambda pair: pair[1], reverse=True)
        return scored

    def calculate_analytics(self, goal: Goal, entries: List[ProgressEntry], now: datetime) -> GoalAnalytics:
        created = ensure_utc(goal.created_at) or now
        days_active = max(1, (now - created).days)
        current = goal.current_value or 0.0
        target = goal.target_value or 100.0
        per_day = current / days_active

        estimated = None
        if per_day > 0 and target > current:
            estimated = now + timedelta(days=(target - current) / per_day)

        return GoalAnalytics(
            goal_id=goal.id,
            title=goal.title,
            progress=current,
            progress_percentage=round(current / target * 100),
            days_active=days_active,
            average_per_day=per_day,
            estimated_completion=estimated,
            recent_values=[(ensure_utc(e.logged_at), e.value) for e in entries[-3:]],
        )

    # Formatting

    def _format_created(self, goal: Goal) -> str:
        parts = [f'Goal created: "{goal.title}"']
        if goal.target_value:
            parts.append(f"Target: {_fmt_number(goal.target_value)}{' ' + goal.unit if goal.unit else ''}")
        if goal.target_date:
            parts.append(f"Deadline: {ensure_utc(goal.target_date).date().isoformat()}")
        parts.append("\nStart logging your progress to track your journey!")
        return "\n".join(parts)

    def _format_progress(self, goal: Goal, value: float) -> str:
        unit = f" {goal.unit}" if goal.unit else ""
        target = f"/{_fmt_number(goal.target_value)}" if goal.target_value else ""
        percentage = round(goal.current_value / goal.target_value * 100) if goal.target_value else 0
        return (
            f'Progress logged for "{goal.title}"\n'
            f"Added: {_fmt_number(value)}{unit}\n"
            f"Current: {_fmt_number(goal.current_value)}{target}{unit}\n"
            f"{progress_bar(goal.current_value, goal.target_value or 100)} {percentage}%"
        )

    def _format_achieved(self, goal: Goal) -> str:
        unit = f" {goal.unit}" if goal.unit else ""
        return (
            "Congratulations! You've achieved your goal!\n"
            f'"{goal.title}"\n'
            f"Final: {_fmt_number(goal.current_value)}{unit}\n"
            f"Target: {_fmt_number(goal.target_value)}{unit}"
        )

    def _format_selection_prompt(self, goals: List[Dict[str, Any]], pending_value: float) -> str:
        lines = ["Which goal is this progress for?"]
        for index, goal in enumerate(goals, start=1):
            lines.append(
                f"{index}. {goal['title']} ({_fmt_number(goal['current_value'] or 0)}/"
                f"{_fmt_number(goal['target_value'])} {goal['unit'] or ''})".rstrip()
            )
        lines.append(f"\nProgress to log: {_fmt_number(pending_value)}")
        lines.append("Please respond with the number or a keyword from the goal.")
        return "\n".join(lines)

    def _format_goal_list(self, goals: List[Dict[str, Any]], status_filter: str) -> str:
        header = {
            "active": "Your Active Goals:",
            "completed": "Your Completed Goals:",
        }.get(status_filter, "All Your Goals:")
        lines = [header, ""]
        for index, goal in enumerate(goals, start=1):
            current = goal["current_value"] or 0
            lines.append(f"{index}. {goal['title']}")
            lines.append(f"   Progress: {_fmt_number(current)}/{_fmt_number(goal['target_value'])} {goal['unit'] or ''}".rstrip())
            if goal["target_value"]:
                percentage = round(current / goal["target_value"] * 100)
                lines.append(f"   {progress_bar(current, goal['target_value'])} {percentage}%")
            lines.append("")
        return "\n".join(lines).rstrip()

    def _format_no_goals(self, status_filter: str) -> str:
        if status_filter == "active":
            return "You don't have any active goals yet. Would you like to set one?"
        if status_filter == "completed":
            return "You haven't completed any goals yet. Keep working on your active goals!"
        return "You don't have any goals yet. Let's create your first goal!"

    def _format_analytics(self, analytics: List[GoalAnalytics]) -> str:
        lines = ["Progress Analytics:", ""]
        for item in analytics:
            lines.append(item.title)
            lines.append(f"   Progress: {_fmt_number(item.progress)} ({item.progress_percentage}%)")
            lines.append(f"   Active for: {item.days_active} days")
            lines.append(f"   Average/day: {item.average_per_day:.2f}")
            if item.estimated_completion:
                lines.append(f"   Est. completion: {item.estimated_completion.date().isoformat()}")
            if item.recent_values:
                lines.append("   Recent activity:")
                for logged_at, value in item.recent_values:
                    lines.append(f"     - {logged_at.date().isoformat()}: +{_fmt_number(value)}")
            lines.append("")
        return "\n".join(lines).rstrip()
