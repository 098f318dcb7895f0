"""
Memory decay and reinforcement for conversation context elements
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from companion.core.config import Settings
from companion.core.logging_config import LoggingConfig
from companion.core.state import ContextElement, ContextType, ConversationState
from companion.utils.datetime_utils import ensure_utc, hours_between, utc_now

logger = LoggingConfig.get_logger(__name__)


DEFAULT_HALF_LIVES: Dict[str, float] = {
    ContextType.CRISIS.value: 72.0,
    ContextType.EMOTIONAL.value: 48.0,
    ContextType.TOPIC.value: 24.0,
    ContextType.PREFERENCE.value: 168.0,
    ContextType.GENERAL.value: 24.0,
}


@dataclass(frozen=True)
class DecayConfig:
    """Decay parameters; half-lives are in hours"""
    half_lives: Dict[str, float] = field(default_factory=lambda: dict(DEFAULT_HALF_LIVES))
    weight_floor: float = 0.1
    reinforcement_factor: float = 1.2
    goal_expiry_days: float = 7.0
    stale_threshold_minutes: int = 30

    @classmethod
    def from_settings(cls, settings: Settings) -> "DecayConfig":
        return cls(
            half_lives=settings.half_lives,
            weight_floor=settings.decay_weight_floor,
            reinforcement_factor=settings.decay_reinforcement_factor,
            goal_expiry_days=settings.goal_expiry_days,
            stale_threshold_minutes=settings.stale_threshold_minutes,
        )

    def half_life_for(self, context_type: ContextType) -> float:
        return self.half_lives.get(context_type.value, self.half_lives[ContextType.GENERAL.value])


class MemoryDecayEngine:
    """
    Applies time-based decay and retrieval reinforcement to context elements.

    Decay is exponential per element, measured from the element's
    last_accessed_at with a half-life chosen by its context type. Elements
    whose weight falls to the floor or below are pruned. Reinforcement is the
    only operation that increases a weight, and it is capped at 1.0.
    """

    def __init__(self, config: Optional[DecayConfig] = None):
        self.config = config or DecayConfig()

    def decay_factor(self, element: ContextElement, now: datetime) -> float:
        """0.5 ** (age_hours / half_life); future timestamps do not increase weight"""
        age_hours = max(0.0, hours_between(element.last_accessed_at, now))
        return 0.5 ** (age_hours / self.config.half_life_for(element.context_type))

    def decay_elements(self, elements: Iterable[ContextElement], now: datetime) -> List[ContextElement]:
        """Decay every element and drop those at or below the weight floor"""
        decayed = []
        for element in elements:
            new_weight = element.weight * self.decay_factor(element, now)
            if new_weight <= self.config.weight_floor:
                logger.debug(
                    "Context element pruned",
                    extra={"key": element.key, "context_type": element.context_type.value, "weight": round(new_weight, 4)}
                )
                continue
            decayed.append(element.model_copy(update={"weight": new_weight}))
        return decayed

    def apply_decay(self, state: ConversationState, now: Optional[datetime] = None) -> ConversationState:
        """
        Return a new state with decayed context elements and expired goals removed

        Args:
            state: Snapshot loaded for this turn
            now: Evaluation time (defaults to current UTC time)

        Returns:
            New ConversationState; the input is left untouched
        """
        now = ensure_utc(now) if now else utc_now()

        elements = self.decay_elements(state.context_elements, now)

        goals = [
            goal for goal in state.goals
            if goal.status != "active"
            or hours_between(goal.created_at, now) / 24.0 < self.config.goal_expiry_days
        ]

        removed_elements = len(state.context_elements) - len(elements)
        expired_goals = len(state.goals) - len(goals)
        if removed_elements or expired_goals:
            logger.info(
                "Decay applied",
                extra={
                    "conversation_id": state.conversation_id,
                    "elements_removed": removed_elements,
                    "goals_expired": expired_goals,
                }
            )

        return state.model_copy(update={"context_elements": elements, "goals": goals})

    def reinforce(self, element: ContextElement, observed_value: str, now: Optional[datetime] = None) -> ContextElement:
        """Boost weight by the reinforcement factor (capped at 1.0), overwrite value and reset the decay clock"""
        new_weight = min(1.0, element.weight * self.config.reinforcement_factor)
        return element.model_copy(update={
            "value": observed_value,
            "weight": new_weight,
            "last_accessed_at": now or utc_now(),
        })

    def merge(
        self,
        existing: Iterable[ContextElement],
        observed: Iterable[ContextElement],
        now: Optional[datetime] = None,
    ) -> List[ContextElement]:
        """
        Merge newly observed elements into existing ones by key.

        A key already present is reinforced with the observed value; a new key
        is appended as observed. Order of existing elements is preserved.
        """
        merged = list(existing)
        index = {element.key: i for i, element in enumerate(merged)}
        for element in observed:
            position = index.get(element.key)
            if position is None:
                index[element.key] = len(merged)
                merged.append(element)
                continue
            previous = merged[position]
            merged[position] = self.reinforce(previous, element.value, now)
            logger.debug(
                "Context element reinforced",
                extra={
                    "key": element.key,
                    "old_weight": round(previous.weight, 3),
                    "new_weight": round(merged[position].weight, 3),
                }
            )
        return merged

    def is_stale(self, last_activity_at: datetime, now: Optional[datetime] = None) -> bool:
        """True when there has been no activity for longer than the stale threshold"""
        now = now or utc_now()
        return hours_between(last_activity_at, now) * 60.0 > self.config.stale_threshold_minutes
