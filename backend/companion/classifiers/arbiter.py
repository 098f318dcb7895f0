"""
Arbitration between safety and intent signals
"""
from companion.classifiers.crisis_responses import CRISIS_RESOURCES
from companion.classifiers.types import (ArbiterDecision, IntentResult,
                                         SafetyContext, SafetyLevel,
                                         SafetyResult)
from companion.core.logging_config import LoggingConfig

logger = LoggingConfig.get_logger(__name__)


class Arbiter:
    """
    Deterministic priority rule turning two signals into one decision.

    Safety never changes the selected mode; it only sets tone and crisis
    flags. Handlers read `safety_context.is_crisis` and answer with the fixed
    crisis response.
    """

    def __init__(self, crisis_resources=None):
        self.crisis_resources = list(crisis_resources or CRISIS_RESOURCES)

    def arbitrate(self, safety: SafetyResult, intent: IntentResult) -> ArbiterDecision:
        """
        Apply the rules in order: CRISIS, then CONCERN, then SAFE

        Args:
            safety: Safety classification result
            intent: Intent classification result

        Returns:
            ArbiterDecision for this turn
        """
        if safety.level == SafetyLevel.CRISIS:
            decision = ArbiterDecision(
                final_mode=intent.suggested_mode,
                final_intent=intent.intent,
                safety_context=SafetyContext(
                    level=SafetyLevel.CRISIS,
                    tone="urgent",
                    is_crisis=True,
                    crisis_resources=list(self.crisis_resources),
                ),
                override_reason=(
                    "Crisis detected: mode kept as suggested, tone forced to urgent "
                    f"(signals: {', '.join(safety.signals) or 'none'})"
                ),
                confidence=1.0,
            )
            logger.warning(
                "Arbiter: crisis override applied",
                extra={"final_mode": decision.final_mode, "signals": safety.signals}
            )
            return decision

        if safety.level == SafetyLevel.CONCERN:
            return ArbiterDecision(
                final_mode=intent.suggested_mode,
                final_intent=intent.intent,
                safety_context=SafetyContext(level=SafetyLevel.CONCERN, tone="empathetic", is_crisis=False),
                confidence=intent.confidence,
            )

        return ArbiterDecision(
            final_mode=intent.suggested_mode,
            final_intent=intent.intent,
            safety_context=SafetyContext(level=SafetyLevel.SAFE, tone="normal", is_crisis=False),
            confidence=intent.confidence,
        )
