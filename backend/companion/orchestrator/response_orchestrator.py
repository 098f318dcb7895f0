"""
Runs one or more mode handlers for a turn and composes their replies
"""
import asyncio
from dataclasses import replace
from typing import Any, Dict, List, Optional

from companion.core.logging_config import LoggingConfig
from companion.core.metrics import handler_failures_total, orchestrations_total
from companion.core.result import Result
from companion.modes.base import HandlerContext, HandlerResult
from companion.modes.registry import ModeRegistry
from companion.orchestrator.response_composer import ResponseComposer
from companion.orchestrator.types import (
    MODE_CONTENT_TYPES,
    ModeScore,
    ModeSegment,
    MultiIntentResult,
    OrchestratedResponse,
)

logger = LoggingConfig.get_logger(__name__)

GENERIC_REPLY = (
    "I'm sorry, I'm having trouble putting together a reply right now. "
    "Could you say that again in a moment?"
)


class ResponseOrchestrator:
    """
    Per-turn state machine over the mode handlers.

    Single-intent turns run one handler and return its output verbatim.
    Multi-intent turns run the primary handler first, then the secondary
    handlers that clear `secondary_threshold` concurrently, each bounded by
    `handler_timeout_seconds`. A timed-out handler task is cancelled, which
    cancels its in-flight generation request. Failed and timed-out
    secondaries are dropped. Unexpected errors degrade to the primary
    handler alone and then to GENERIC_REPLY.
    """

    def __init__(
        self,
        modes: ModeRegistry,
        composer: ResponseComposer,
        secondary_threshold: float = 0.6,
        max_secondary: int = 2,
        long_response_chars: int = 300,
        handler_timeout_seconds: float = 15.0,
    ):
        self.modes = modes
        self.composer = composer
        self.secondary_threshold = secondary_threshold
        self.max_secondary = max_secondary
        self.long_response_chars = long_response_chars
        self.handler_timeout_seconds = handler_timeout_seconds

    @classmethod
    def from_settings(cls, modes: ModeRegistry, composer: ResponseComposer, settings) -> "ResponseOrchestrator":
        return cls(
            modes,
            composer,
            secondary_threshold=settings.orchestrator_secondary_threshold,
            max_secondary=settings.orchestrator_max_secondary,
            long_response_chars=settings.orchestrator_long_response_chars,
            handler_timeout_seconds=settings.orchestrator_handler_timeout_seconds,
        )

    async def orchestrate(self, context: HandlerContext, intents: MultiIntentResult) -> OrchestratedResponse:
        """
        Produce the reply for a turn

        Args:
            context: Handler context for the turn
            intents: Detected primary and secondary modes

        Returns:
            OrchestratedResponse; never raises for handler failures
        """
        primary_mode = self.modes.resolve(intents.primary.mode).mode

        if not intents.requires_orchestration:
            return await self._single(context, primary_mode, outcome="single")

        try:
            return await self._orchestrate(context, intents, primary_mode)
        except Exception as e:
            logger.error(
                f"Orchestration failed, falling back to primary handler: {e}",
                exc_info=True,
                extra={"primary_mode": primary_mode}
            )
            return await self._single(context, primary_mode, outcome="fallback")

    async def _single(self, context: HandlerContext, mode: str, outcome: str) -> OrchestratedResponse:
        try:
            result = await self.modes.resolve(mode).handle(replace(context, current_mode=mode))
        except Exception as e:
            logger.error(f"Handler '{mode}' failed, sending generic reply: {e}", exc_info=True)
            handler_failures_total.labels(mode=mode, reason="error").inc()
            orchestrations_total.labels(outcome="generic").inc()
            return OrchestratedResponse(response=GENERIC_REPLY, primary_mode=mode, modes_used=[], outcome="generic")

        orchestrations_total.labels(outcome=outcome).inc()
        return OrchestratedResponse(
            response=result.response,
            primary_mode=result.new_mode or mode,
            modes_used=[mode],
            state_updates=dict(result.state_updates),
            outcome=outcome,
        )

    def select_secondary(self, intents: MultiIntentResult, primary_mode: str) -> List[ModeScore]:
        """Secondaries above the threshold with a registered handler, highest confidence first"""
        selected = []
        for score in sorted(intents.secondary, key=lambda s: s.confidence, reverse=True):
            if score.confidence <= self.secondary_threshold:
                continue
            if score.mode == primary_mode or score.mode not in self.modes:
                continue
            selected.append(score)
        return selected[:self.max_secondary]

    async def _orchestrate(
        self,
        context: HandlerContext,
        intents: MultiIntentResult,
        primary_mode: str,
    ) -> OrchestratedResponse:
        primary = await self.modes.resolve(primary_mode).handle(replace(context, current_mode=primary_mode))
        primary_segment = self._segment(primary_mode, primary, intents.primary.confidence, priority=1.0)

        secondary = self.select_secondary(intents, primary_mode)
        if len(primary.response) > self.long_response_chars or not secondary:
            logger.debug(
                "Returning primary response alone",
                extra={"primary_mode": primary_mode, "response_chars": len(primary.response), "secondary": len(secondary)}
            )
            orchestrations_total.labels(outcome="primary_only").inc()
            return OrchestratedResponse(
                response=primary.response,
                primary_mode=primary_mode,
                modes_used=[primary_mode],
                state_updates=dict(primary.state_updates),
                outcome="primary_only",
            )

        outcomes = await asyncio.gather(*(self._run_secondary(context, score) for score in secondary))

        segments = [primary_segment]
        for score, outcome in zip(secondary, outcomes):
            if outcome.ok:
                segments.append(self._segment(score.mode, outcome.value, score.confidence, priority=score.confidence))
        segments = [s for s in segments if s.content.strip()]
        if not segments:
            raise RuntimeError("No handler produced a response")

        response = await self.composer.compose(
            context.message, segments, primary_mode, intents.composition_strategy
        )

        state_updates: Dict[str, Any] = {}
        for segment in segments:
            state_updates.update(segment.state_updates)

        modes_used = [s.mode for s in segments]
        logger.info(
            "Multi-intent response composed",
            extra={
                "primary_mode": primary_mode,
                "modes_used": modes_used,
                "dropped": len(secondary) + 1 - len(segments),
            }
        )
        orchestrations_total.labels(outcome="composed").inc()
        return OrchestratedResponse(
            response=response,
            primary_mode=primary_mode,
            modes_used=modes_used,
            state_updates=state_updates,
            outcome="composed",
        )

    async def _run_secondary(self, context: HandlerContext, score: ModeScore) -> Result[HandlerResult]:
        handler = self.modes.resolve(score.mode)
        try:
            result = await asyncio.wait_for(
                handler.handle(replace(context, current_mode=score.mode)),
                timeout=self.handler_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Secondary handler timed out",
                extra={"mode": score.mode, "timeout_seconds": self.handler_timeout_seconds}
            )
            handler_failures_total.labels(mode=score.mode, reason="timeout").inc()
            return Result.failure("timeout")
        except Exception as e:
            logger.warning(f"Secondary handler '{score.mode}' failed: {e}", exc_info=True)
            handler_failures_total.labels(mode=score.mode, reason="error").inc()
            return Result.failure(str(e))
        return Result.success(result)

    @staticmethod
    def _segment(mode: str, result: HandlerResult, confidence: float, priority: float) -> ModeSegment:
        return ModeSegment(
            mode=mode,
            content=result.response,
            priority=priority,
            content_type=MODE_CONTENT_TYPES.get(mode, "information"),
            confidence=confidence,
            state_updates=dict(result.state_updates),
        )
