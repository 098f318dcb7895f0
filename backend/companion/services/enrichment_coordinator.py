"""
Domain enrichment: global context, domain extraction and steering in three ordered groups
"""
import asyncio
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from companion.classifiers.domain_relevance import DomainRelevanceClassifier
from companion.classifiers.types import IntentResult, SafetyResult
from companion.core.logging_config import LoggingConfig
from companion.core.metrics import domain_extractions_total
from companion.core.state import (ChatTurn, ContextElement, ConversationState,
                                  ExtractionRecord, SteeringHints)
from companion.domains.registry import (DomainDefinition, DomainRegistry,
                                        ExtractionContext, SteeringStrategy)
from companion.services.context_extraction import extract_context_elements
from companion.services.memory_decay import MemoryDecayEngine
from companion.services.repositories import ExtractionRepository
from companion.utils.datetime_utils import utc_now

logger = LoggingConfig.get_logger(__name__)

MAX_MERGED_HINT_SETS = 3


def merge_hints(hints: Sequence[SteeringHints], max_suggestions: int = 3) -> Optional[SteeringHints]:
    """
    Merge hint bundles from several strategies into one.

    Bundles are ranked by priority; suggestions from the top three are
    deduplicated case-insensitively after trimming and capped at
    `max_suggestions`. Context mappings are merged in rank order.
    """
    if not hints:
        return None
    ranked = sorted(hints, key=lambda h: h.priority, reverse=True)
    suggestions: List[str] = []
    seen = set()
    context: Dict = {}
    for hint in ranked[:MAX_MERGED_HINT_SETS]:
        for suggestion in hint.suggestions:
            normalized = suggestion.strip().lower()
            if normalized and normalized not in seen:
                seen.add(normalized)
                suggestions.append(suggestion.strip())
        context.update(hint.context)
    return SteeringHints(
        type="merged" if len(ranked) > 1 else ranked[0].type,
        suggestions=suggestions[:max_suggestions],
        context=context,
        priority=ranked[0].priority,
    )


class EnrichmentCoordinator:
    """
    Runs the three enrichment groups for one turn.

    Group 1 runs global context extraction and domain relevance detection
    concurrently. Group 2 runs the extractor of every relevant domain
    concurrently and keeps results that meet the domain's threshold. Group 3
    runs the steering strategies of domains that produced an accepted
    extraction. A group finishes only when all of its members have. A
    failing extractor or strategy contributes nothing.
    """

    def __init__(
        self,
        registry: DomainRegistry,
        relevance: DomainRelevanceClassifier,
        decay_engine: MemoryDecayEngine,
        session_factory: Optional[Callable[[], Session]] = None,
        max_suggestions: int = 3,
        history_limit: int = 5,
    ):
        self.registry = registry
        self.relevance = relevance
        self.decay_engine = decay_engine
        self.session_factory = session_factory
        self.max_suggestions = max_suggestions
        self.history_limit = history_limit

    async def enrich(
        self,
        message: str,
        state: ConversationState,
        safety: SafetyResult,
        intent: IntentResult,
        recent_messages: Sequence[ChatTurn] = (),
        now: Optional[datetime] = None,
    ) -> ConversationState:
        """
        Enrich the state with context elements, domain extractions and steering hints

        Args:
            message: Current user message
            state: Decayed state for this turn
            safety: Safety classification result
            intent: Intent classification result
            recent_messages: Prior turns
            now: Evaluation time

        Returns:
            New ConversationState
        """
        now = now or utc_now()

        # Group 1
        observed, relevant = await asyncio.gather(
            self._global_context(safety, intent, now),
            self.relevance.classify(message, state, recent_messages),
        )
        state = state.model_copy(update={
            "context_elements": self.decay_engine.merge(state.context_elements, observed, now),
        })

        if not relevant:
            logger.debug("No relevant domains, skipping extraction and steering")
            return state

        # Group 2
        accepted = await self._extract_all(message, state, relevant, recent_messages, now)
        state = self._apply_extractions(state, relevant, accepted, now)
        self._store(state, accepted)

        if not accepted:
            return state

        # Group 3
        applied, hints = await self._steer_all(state, [record.domain_id for record in accepted])
        merged = merge_hints(hints, self.max_suggestions)
        if merged is None:
            return state

        domain_context = {k: dict(v) for k, v in state.domain_context.items()}
        for domain_id, strategy_id in applied:
            ctx = domain_context.setdefault(domain_id, {})
            ctx["last_steering"] = {**(ctx.get("last_steering") or {}), strategy_id: now.isoformat()}

        logger.info(
            "Steering hints generated",
            extra={"strategies": [s for _, s in applied], "suggestions": len(merged.suggestions)}
        )
        return state.model_copy(update={
            "steering_hints": merged,
            "domain_context": domain_context,
            "metadata": {**state.metadata, "steering_applied": [s for _, s in applied]},
        })

    async def _global_context(self, safety: SafetyResult, intent: IntentResult, now: datetime) -> List[ContextElement]:
        return extract_context_elements(safety, intent, now)

    async def _extract_one(
        self,
        domain: DomainDefinition,
        message: str,
        context: ExtractionContext,
    ) -> Optional[ExtractionRecord]:
        if domain.extractor is None:
            logger.warning("No extractor registered for domain", extra={"domain_id": domain.id})
            return None
        try:
            record = await domain.extractor.extract(message, context)
        except Exception as e:
            logger.warning(f"Extractor failed: {e}", extra={"domain_id": domain.id}, exc_info=True)
            domain_extractions_total.labels(domain=domain.id, outcome="error").inc()
            return None

        if record is None:
            domain_extractions_total.labels(domain=domain.id, outcome="empty").inc()
            return None
        if record.confidence < domain.confidence_threshold:
            logger.debug(
                "Extraction below confidence threshold",
                extra={"domain_id": domain.id, "confidence": record.confidence, "threshold": domain.confidence_threshold}
            )
            domain_extractions_total.labels(domain=domain.id, outcome="rejected").inc()
            return None

        domain_extractions_total.labels(domain=domain.id, outcome="accepted").inc()
        if record.domain_id != domain.id:
            record = record.model_copy(update={"domain_id": domain.id})
        return record

    async def _extract_all(
        self,
        message: str,
        state: ConversationState,
        domains: List[DomainDefinition],
        recent_messages: Sequence[ChatTurn],
        now: datetime,
    ) -> List[ExtractionRecord]:
        tasks = [
            self._extract_one(
                domain,
                message,
                ExtractionContext(
                    conversation_id=state.conversation_id,
                    user_id=state.user_id or "",
                    recent_messages=tuple(list(recent_messages)[-5:]),
                    domain_context=dict(state.domain_context.get(domain.id) or {}),
                    now=now,
                ),
            )
            for domain in domains
        ]
        results = await asyncio.gather(*tasks)
        accepted = [record for record in results if record is not None]
        logger.info(
            "Domain extraction complete",
            extra={
                "relevant_domains": [d.id for d in domains],
                "accepted_domains": [r.domain_id for r in accepted],
            }
        )
        return accepted

    def _apply_extractions(
        self,
        state: ConversationState,
        relevant: List[DomainDefinition],
        accepted: List[ExtractionRecord],
        now: datetime,
    ) -> ConversationState:
        extractions = {k: list(v) for k, v in state.extractions.items()}
        for record in accepted:
            history = extractions.setdefault(record.domain_id, [])
            history.append(record)
            extractions[record.domain_id] = history[-self.history_limit:]

        domain_context = {k: dict(v) for k, v in state.domain_context.items()}
        for domain in relevant:
            ctx = domain_context.setdefault(domain.id, {})
            ctx["last_extraction"] = now.isoformat()
            ctx["extraction_count"] = int(ctx.get("extraction_count") or 0) + 1
            ctx["active"] = True

        return state.model_copy(update={
            "extractions": extractions,
            "domain_context": domain_context,
            "metadata": {**state.metadata, "active_domains": [d.id for d in relevant]},
        })

    def _store(self, state: ConversationState, accepted: List[ExtractionRecord]):
        """Persist accepted extractions; storage failure is logged and does not fail the turn"""
        if not accepted or self.session_factory is None:
            return
        try:
            with self.session_factory() as db:
                repo = ExtractionRepository(db)
                for record in accepted:
                    repo.create(state.conversation_id, state.user_id or "", record)
                db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to store extractions: {e}", extra={"domains": [r.domain_id for r in accepted]}, exc_info=True)

    async def _run_strategy(
        self,
        domain_id: str,
        strategy: SteeringStrategy,
        state: ConversationState,
    ) -> Optional[Tuple[str, str, SteeringHints]]:
        try:
            if not strategy.should_apply(state):
                return None
            hints = await strategy.generate_hints(state)
        except Exception as e:
            logger.warning(
                f"Steering strategy failed: {e}",
                extra={"domain_id": domain_id, "strategy_id": strategy.strategy_id},
                exc_info=True
            )
            return None
        return domain_id, strategy.strategy_id, hints

    async def _steer_all(
        self,
        state: ConversationState,
        domain_ids: List[str],
    ) -> Tuple[List[Tuple[str, str]], List[SteeringHints]]:
        tasks = [
            self._run_strategy(domain_id, strategy, state)
            for domain_id in dict.fromkeys(domain_ids)
            for strategy in self.registry.strategies_for(domain_id)
        ]
        results = [r for r in await asyncio.gather(*tasks) if r is not None]
        return [(d, s) for d, s, _ in results], [h for _, _, h in results]
