"""
Multi-intent detection over the registered modes
"""
from typing import Dict, List, Mapping, Optional, Sequence

from companion.classifiers.base import clamp_confidence, format_history, request_json
from companion.core.llm_client import TaskType
from companion.core.logging_config import LoggingConfig
from companion.core.metrics import classification_fallbacks_total
from companion.core.state import ChatTurn
from companion.orchestrator.types import ModeScore, MultiIntentResult

logger = LoggingConfig.get_logger(__name__)

MIN_SECONDARY_CONFIDENCE = 0.5
FALLBACK_CONFIDENCE = 0.5
_STRATEGIES = ("sequential", "blended", "prioritized")

MULTI_INTENT_PROMPT = """You are a multi-intent classifier for a conversational assistant.
Detect ALL intents in the user's message and map each to a conversation mode.

Available modes:
{modes}

Current mode: {current_mode}

Recent conversation:
{history}

A message may carry several intents, for example a greeting plus a request for advice,
or small talk plus setting a goal.

Return JSON:
{{"intents": [{{"mode": "<one of: {mode_ids}>", "confidence": 0.0-1.0, "trigger": "part of the message"}}],
  "compositionStrategy": "sequential|blended|prioritized",
  "reasoning": "brief explanation"}}

Strategies: sequential = address intents one after another; blended = intents are intertwined;
prioritized = one intent clearly matters most."""


class MultiIntentDetector:
    """
    Detects primary and secondary modes for a message.

    The mode list comes from `modes` (id to description), normally the mode
    registry's `describe()`, so new modes need no change here.
    """

    name = "multi_intent"

    def __init__(self, llm, modes: Mapping[str, str], default_mode: str = "smalltalk"):
        self.llm = llm
        self.modes: Dict[str, str] = dict(modes)
        self.default_mode = default_mode

    def fallback(self, current_mode: Optional[str] = None) -> MultiIntentResult:
        """Single primary mode at low confidence"""
        mode = current_mode if current_mode in self.modes else self.default_mode
        return MultiIntentResult(
            primary=ModeScore(mode=mode, confidence=FALLBACK_CONFIDENCE),
            secondary=[],
            requires_orchestration=False,
        )

    def _normalize_mode(self, raw) -> Optional[str]:
        mode = str(raw or "").strip().lower()
        return mode if mode in self.modes else None

    def to_result(self, payload: dict, current_mode: Optional[str] = None) -> MultiIntentResult:
        """
        Map the model's JSON onto a MultiIntentResult.

        Unknown modes are dropped and repeated modes keep their highest
        confidence. Orchestration is required only when a secondary mode has
        confidence above MIN_SECONDARY_CONFIDENCE.
        """
        best: Dict[str, float] = {}
        for item in payload.get("intents") or []:
            if not isinstance(item, dict):
                continue
            mode = self._normalize_mode(item.get("mode"))
            if mode is None:
                continue
            confidence = clamp_confidence(item.get("confidence"), default=0.3)
            best[mode] = max(confidence, best.get(mode, 0.0))

        if not best:
            return self.fallback(current_mode)

        ranked: List[ModeScore] = [
            ModeScore(mode=mode, confidence=confidence)
            for mode, confidence in sorted(best.items(), key=lambda kv: kv[1], reverse=True)
        ]
        primary, secondary = ranked[0], ranked[1:]
        strategy = payload.get("compositionStrategy") or payload.get("composition_strategy")
        return MultiIntentResult(
            primary=primary,
            secondary=secondary,
            requires_orchestration=any(s.confidence > MIN_SECONDARY_CONFIDENCE for s in secondary),
            composition_strategy=strategy if strategy in _STRATEGIES else "sequential",
        )

    async def detect(
        self,
        message: str,
        recent_messages: Sequence[ChatTurn] = (),
        current_mode: Optional[str] = None,
    ) -> MultiIntentResult:
        """
        Detect the modes a message calls for

        Args:
            message: Current user message
            recent_messages: Prior turns (last 3 are used)
            current_mode: Mode of the previous turn

        Returns:
            MultiIntentResult; the single-mode fallback on any failure
        """
        prompt = MULTI_INTENT_PROMPT.format(
            modes="\n".join(f"- {mode}: {description}" for mode, description in self.modes.items()),
            mode_ids="|".join(self.modes),
            current_mode=current_mode or self.default_mode,
            history=format_history(recent_messages, 3),
        )
        try:
            payload = await request_json(self.llm, prompt, message, TaskType.MULTI_INTENT, max_tokens=500)
            result = self.to_result(payload, current_mode)
        except Exception as e:
            logger.warning(f"Multi-intent detection failed, using single mode: {e}", exc_info=True)
            classification_fallbacks_total.labels(classifier=self.name).inc()
            return self.fallback(current_mode)

        logger.info(
            "Multi-intent detection complete",
            extra={
                "primary_mode": result.primary.mode,
                "secondary_modes": [s.mode for s in result.secondary],
                "requires_orchestration": result.requires_orchestration,
                "composition_strategy": result.composition_strategy,
            }
        )
        return result
