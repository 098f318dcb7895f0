"""
Turn pipeline: load, decay, classify, arbitrate, enrich, respond, save
"""
import time
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from sqlalchemy.orm import Session

from companion.classifiers import Arbiter, IntentClassifier, SafetyClassifier, UnifiedClassifier
from companion.classifiers.domain_relevance import DomainRelevanceClassifier
from companion.classifiers.types import ClassificationContext, IntentResult, SafetyResult
from companion.core.config import Settings, get_settings
from companion.core.exceptions import PipelineError
from companion.core.logging_config import LoggingConfig
from companion.core.metrics import pipeline_errors_total, pipeline_stage_duration_seconds, pipeline_turns_total
from companion.core.state import ChatTurn, ConversationGoal, ConversationState
from companion.domains import DomainRegistry, build_domain_registry
from companion.models.conversation import MessageRole
from companion.modes import HandlerContext, ModeRegistry, build_mode_registry
from companion.orchestrator import (
    ModeScore,
    MultiIntentDetector,
    MultiIntentResult,
    OrchestratedResponse,
    ResponseComposer,
    ResponseOrchestrator,
)
from companion.services.agent_state_service import AgentStateService
from companion.services.enrichment_coordinator import EnrichmentCoordinator
from companion.services.goal_service import GOAL_DOMAIN, GoalService
from companion.services.memory_decay import DecayConfig, MemoryDecayEngine
from companion.services.repositories import (
    ConversationRepository,
    ExtractionRepository,
    GoalRepository,
    MessageRepository,
    StateRepository,
)
from companion.utils.datetime_utils import utc_now

logger = LoggingConfig.get_logger(__name__)

# Metadata describing only the turn that wrote it; dropped when the next turn loads
TURN_METADATA_KEYS = frozenset({
    "active_domains",
    "consult_topics",
    "crisis_response_sent",
    "goal_action_success",
    "last_goal_action",
    "steering_applied",
})


@dataclass(frozen=True)
class TurnRequest:
    user_id: str
    message: str
    conversation_id: Optional[str] = None
    force_new_conversation: bool = False


@dataclass(frozen=True)
class TurnResult:
    response: str
    processing_time: int  # milliseconds
    message_id: str
    conversation_id: str


@dataclass(frozen=True)
class LoadedTurn:
    conversation_id: str
    state: ConversationState
    recent_messages: Tuple[ChatTurn, ...]
    is_new: bool = False


class TurnPipeline:
    """
    Turns one inbound message into one reply.

    Stages run strictly in order. Classification, extraction and handler
    failures are absorbed by their components. Anything else that escapes a
    stage is wrapped in PipelineError carrying the stage name and propagated.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        decay_engine: MemoryDecayEngine,
        arbiter: Arbiter,
        modes: ModeRegistry,
        orchestrator: ResponseOrchestrator,
        safety: Optional[SafetyClassifier] = None,
        intent: Optional[IntentClassifier] = None,
        unified: Optional[UnifiedClassifier] = None,
        enrichment: Optional[EnrichmentCoordinator] = None,
        multi_intent: Optional[MultiIntentDetector] = None,
        message_limit: int = 10,
        domain_history_limit: int = 0,
    ):
        if unified is None and (safety is None or intent is None):
            raise ValueError("Either a unified classifier or both safety and intent classifiers are required")
        self.session_factory = session_factory
        self.decay_engine = decay_engine
        self.arbiter = arbiter
        self.modes = modes
        self.orchestrator = orchestrator
        self.safety = safety
        self.intent = intent
        self.unified = unified
        self.enrichment = enrichment
        self.multi_intent = multi_intent
        self.message_limit = message_limit
        self.domain_history_limit = domain_history_limit

    @contextmanager
    def _stage(self, name: str) -> Iterator[None]:
        """Time a stage and wrap escaping errors in PipelineError"""
        started = time.time()
        try:
            with LoggingConfig.context(stage=name):
                yield
        except PipelineError:
            raise
        except Exception as e:
            pipeline_errors_total.labels(stage=name).inc()
            raise PipelineError(name, e) from e
        finally:
            pipeline_stage_duration_seconds.labels(stage=name).observe(time.time() - started)

    async def execute(self, request: TurnRequest) -> TurnResult:
        """
        Process one user message

        Args:
            request: Inbound turn

        Returns:
            TurnResult with the reply, processing time in ms and the stored assistant message id

        Raises:
            PipelineError: on infrastructure failure, naming the failing stage
        """
        started = time.time()
        now = utc_now()
        try:
            with LoggingConfig.context(user_id=request.user_id):
                result = await self._run(request, now, started)
        except PipelineError as e:
            pipeline_turns_total.labels(status="failed").inc()
            logger.error(
                f"Turn failed in stage '{e.stage}': {e.cause}",
                exc_info=True,
                extra={"stage": e.stage, "error_type": type(e.cause).__name__}
            )
            raise
        pipeline_turns_total.labels(status="success").inc()
        return result

    async def _run(self, request: TurnRequest, now: datetime, started: float) -> TurnResult:
        with self._stage("load"):
            loaded = self.load(request, now)

        with LoggingConfig.context(conversation_id=loaded.conversation_id):
            with self._stage("decay"):
                state = self.decay(loaded, now)

            with self._stage("classification"):
                safety, intent = await self.classify(request.message, loaded.recent_messages, state.mode)
                decision = self.arbiter.arbitrate(safety, intent)
                classification = ClassificationContext(
                    decision=decision,
                    safety_signals=list(safety.signals),
                    entities=list(intent.entities),
                )

            with self._stage("enrichment"):
                if self.enrichment is not None:
                    state = await self.enrichment.enrich(
                        request.message, state, safety, intent, loaded.recent_messages, now
                    )

            with self._stage("respond"):
                intents = await self.detect_intents(request.message, loaded.recent_messages, state, classification)
                context = HandlerContext(
                    conversation_id=loaded.conversation_id,
                    user_id=request.user_id,
                    message=request.message,
                    state=state,
                    recent_messages=loaded.recent_messages,
                    current_mode=intents.primary.mode,
                    classification=classification,
                    turn_started_at=now,
                )
                outcome = await self.orchestrator.orchestrate(context, intents)

            with self._stage("save"):
                message_id = self.save(loaded.conversation_id, request.message, state, outcome)

            processing_time = int((time.time() - started) * 1000)
            logger.info(
                "Turn complete",
                extra={
                    "final_mode": outcome.primary_mode,
                    "modes_used": outcome.modes_used,
                    "orchestration": outcome.outcome,
                    "safety_level": decision.safety_context.level.value,
                    "processing_time_ms": processing_time,
                }
            )
            return TurnResult(
                response=outcome.response,
                processing_time=processing_time,
                message_id=message_id,
                conversation_id=loaded.conversation_id,
            )

    def load(self, request: TurnRequest, now: datetime) -> LoadedTurn:
        """
        Find or create the conversation and load its latest state

        An explicit conversation id is honored only when it exists and belongs
        to the user; otherwise the user's active conversation is resumed, and
        a new one is created when there is none or a new one is forced.
        """
        with self.session_factory() as db:
            conversations = ConversationRepository(db)
            conversation = None
            if request.force_new_conversation:
                active = conversations.find_active_by_user(request.user_id)
                if active is not None:
                    conversations.end(active)
            elif request.conversation_id:
                conversation = conversations.get(request.conversation_id)
                if conversation is not None and conversation.user_id != request.user_id:
                    logger.warning(
                        "Conversation belongs to another user, starting a new one",
                        extra={"requested_conversation_id": request.conversation_id}
                    )
                    conversation = None
            else:
                conversation = conversations.find_active_by_user(request.user_id)

            is_new = conversation is None
            if conversation is None:
                conversation = conversations.create(request.user_id)
                logger.info("Created new conversation", extra={"conversation_id": conversation.id})
            else:
                conversations.touch(conversation, now)

            recent = tuple(
                ChatTurn(role=m.role, content=m.content)
                for m in MessageRepository(db).recent(conversation.id, self.message_limit)
            )
            state = StateRepository(db).latest(conversation.id)
            if state is None:
                state = ConversationState(conversation_id=conversation.id, user_id=request.user_id, created_at=now)
            else:
                state = state.model_copy(update={
                    "metadata": {k: v for k, v in state.metadata.items() if k not in TURN_METADATA_KEYS},
                })

            state = self._attach_goals(db, state, request.user_id)
            state = self._attach_history(db, state, request.user_id)
            conversation_id = conversation.id
            db.commit()

        logger.info(
            "Conversation loaded",
            extra={
                "conversation_id": conversation_id,
                "is_new": is_new,
                "messages_loaded": len(recent),
                "current_mode": state.mode,
                "context_elements": len(state.context_elements),
            }
        )
        return LoadedTurn(conversation_id=conversation_id, state=state, recent_messages=recent, is_new=is_new)

    def _attach_goals(self, db: Session, state: ConversationState, user_id: str) -> ConversationState:
        """Mirror the user's active goals into the state so decay can expire them"""
        goals = GoalRepository(db).active_for_user(user_id)
        goal_context = dict(state.domain_context.get(GOAL_DOMAIN) or {})
        goal_context["active_goals"] = [
            {
                "id": g.id,
                "title": g.title,
                "current_value": g.current_value,
                "target_value": g.target_value,
                "unit": g.unit,
            }
            for g in goals
        ]
        return state.model_copy(update={
            "goals": [
                ConversationGoal(id=g.id, description=g.title, status="active", created_at=g.created_at)
                for g in goals
            ],
            "domain_context": {**state.domain_context, GOAL_DOMAIN: goal_context},
        })

    @staticmethod
    def _drop_expired_goals(state: ConversationState) -> ConversationState:
        """Keep only goals that survived decay in the goal domain context"""
        goal_context = state.domain_context.get(GOAL_DOMAIN)
        if not goal_context or "active_goals" not in goal_context:
            return state
        live = {g.id for g in state.active_goals()}
        visible = [g for g in goal_context["active_goals"] if g.get("id") in live]
        if len(visible) == len(goal_context["active_goals"]):
            return state
        return state.model_copy(update={
            "domain_context": {**state.domain_context, GOAL_DOMAIN: {**goal_context, "active_goals": visible}},
        })

    def _attach_history(self, db: Session, state: ConversationState, user_id: str) -> ConversationState:
        """Seed extractions from storage for domains this conversation has not seen yet"""
        if not self.domain_history_limit or self.enrichment is None:
            return state
        repository = ExtractionRepository(db)
        extractions: Dict[str, list] = dict(state.extractions)
        for domain in self.enrichment.registry.active_domains():
            if extractions.get(domain.id):
                continue
            history = repository.recent(user_id, domain.id, self.domain_history_limit)
            if history:
                extractions[domain.id] = history
        return state.model_copy(update={"extractions": extractions})

    def decay(self, loaded: LoadedTurn, now: datetime) -> ConversationState:
        state = self._drop_expired_goals(self.decay_engine.apply_decay(loaded.state, now))
        logger.debug(
            "Decay stage complete",
            extra={
                "elements_before": len(loaded.state.context_elements),
                "elements_after": len(state.context_elements),
                "goals_before": len(loaded.state.goals),
                "goals_after": len(state.goals),
                "stale": not loaded.is_new and self.decay_engine.is_stale(loaded.state.last_activity_at, now),
            }
        )
        return state

    async def classify(
        self,
        message: str,
        recent_messages: Tuple[ChatTurn, ...],
        current_mode: str,
    ) -> Tuple[SafetyResult, IntentResult]:
        """Safety then intent, or both from one unified call"""
        if self.unified is not None:
            safety_result, intent_result = await self.unified.classify(message, recent_messages, current_mode)
            return safety_result.value, intent_result.value

        recent_user = [t.content for t in recent_messages if t.role == MessageRole.USER.value]
        safety_result = await self.safety.classify(message, recent_user)
        intent_result = await self.intent.classify(message, recent_messages, current_mode)
        return safety_result.value, intent_result.value

    async def detect_intents(
        self,
        message: str,
        recent_messages: Tuple[ChatTurn, ...],
        state: ConversationState,
        classification: ClassificationContext,
    ) -> MultiIntentResult:
        """
        Modes to answer with

        The arbitrated mode answers alone on crisis turns, when multi-intent
        detection is off, or when detection finds a single intent.
        """
        decision = classification.decision
        single = MultiIntentResult(primary=ModeScore(mode=decision.final_mode, confidence=decision.confidence))
        if decision.safety_context.is_crisis or self.multi_intent is None:
            return single

        intents = await self.multi_intent.detect(message, recent_messages, state.mode)
        return intents if intents.requires_orchestration else single

    def save(self, conversation_id: str, message: str, state: ConversationState, outcome: OrchestratedResponse) -> str:
        """Store both messages and append the new state snapshot; returns the assistant message id"""
        saved_at = utc_now()
        snapshot = state.model_copy(update={
            "mode": outcome.primary_mode,
            "metadata": {
                **state.metadata,
                **outcome.state_updates,
                "modes_used": outcome.modes_used,
                "orchestration": outcome.outcome,
            },
            "last_activity_at": saved_at,
        })

        with self.session_factory() as db:
            messages = MessageRepository(db)
            messages.create(conversation_id, MessageRole.USER, message)
            assistant = messages.create(conversation_id, MessageRole.ASSISTANT, outcome.response)
            StateRepository(db).append(snapshot)
            conversations = ConversationRepository(db)
            conversation = conversations.get(conversation_id)
            if conversation is not None:
                conversations.touch(conversation, saved_at)
            message_id = assistant.id
            db.commit()

        logger.info(
            "State snapshot saved",
            extra={
                "old_mode": state.mode,
                "new_mode": snapshot.mode,
                "context_by_type": snapshot.context_by_type(),
            }
        )
        return message_id


def build_pipeline(
    llm,
    session_factory: Callable[[], Session],
    settings: Optional[Settings] = None,
) -> TurnPipeline:
    """Wire the pipeline and its collaborators from settings"""
    settings = settings or get_settings()

    agent_states = AgentStateService(session_factory, default_ttl_seconds=settings.agent_state_default_ttl_seconds)
    goal_service = GoalService(session_factory, agent_states)
    modes = build_mode_registry(llm, goal_service)
    decay_engine = MemoryDecayEngine(DecayConfig.from_settings(settings))

    enrichment = None
    if settings.domains_enabled:
        registry: DomainRegistry = build_domain_registry(llm, agent_states, settings)
        enrichment = EnrichmentCoordinator(
            registry,
            DomainRelevanceClassifier(llm, registry),
            decay_engine,
            session_factory=session_factory,
            max_suggestions=settings.steering_max_suggestions,
            history_limit=settings.domain_history_limit,
        )

    classifiers: Dict[str, object] = {}
    if settings.use_unified_classifier:
        classifiers["unified"] = UnifiedClassifier(llm, modes.describe())
    else:
        classifiers["safety"] = SafetyClassifier(llm)
        classifiers["intent"] = IntentClassifier(llm, modes.describe())

    composer = ResponseComposer(
        llm,
        min_response_chars=settings.composer_min_response_chars,
        significant_word_length=settings.composer_significant_word_length,
        conflict_word_count=settings.composer_conflict_word_count,
    )
    multi_intent: Optional[MultiIntentDetector] = None
    if settings.orchestrator_enabled:
        multi_intent = MultiIntentDetector(llm, modes.describe(), default_mode=modes.default_mode)

    enabled: List[str] = [name for name, on in (
        ("domains", enrichment is not None),
        ("orchestrator", multi_intent is not None),
        ("unified_classifier", settings.use_unified_classifier),
    ) if on]
    logger.info("Pipeline built", extra={"modes": modes.ids(), "features": enabled})

    return TurnPipeline(
        session_factory,
        decay_engine,
        Arbiter(),
        modes,
        ResponseOrchestrator.from_settings(modes, composer, settings),
        enrichment=enrichment,
        multi_intent=multi_intent,
        message_limit=settings.context_message_limit,
        domain_history_limit=settings.domain_history_limit if settings.domain_history_enabled else 0,
        **classifiers,
    )
