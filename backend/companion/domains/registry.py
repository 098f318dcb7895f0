"""
Domain registry: the immutable set of topic domains known to the pipeline

Built once at startup and passed explicitly to the enrichment coordinator and
the domain relevance classifier. Nothing mutates it after construction, so
concurrent enrichment branches share it without locking.
"""
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import (Any, Dict, Iterable, List, Mapping, Optional, Protocol,
                    Sequence, Tuple, runtime_checkable)

from companion.core.state import (ChatTurn, ConversationState,
                                  ExtractionRecord, SteeringHints)


@dataclass(frozen=True)
class ExtractionContext:
    """What an extractor may look at besides the message"""
    conversation_id: str
    user_id: str
    recent_messages: Tuple[ChatTurn, ...] = ()
    domain_context: Mapping[str, Any] = field(default_factory=dict)
    now: Optional[datetime] = None


@runtime_checkable
class Extractor(Protocol):
    """Pulls structured domain data out of a message"""
    domain_id: str

    async def extract(self, message: str, context: ExtractionContext) -> Optional[ExtractionRecord]:
        ...


@runtime_checkable
class SteeringStrategy(Protocol):
    """Produces proactive suggestions from the enriched state"""
    strategy_id: str
    priority: float

    def should_apply(self, state: ConversationState) -> bool:
        ...

    async def generate_hints(self, state: ConversationState) -> SteeringHints:
        ...


@dataclass(frozen=True)
class DomainDefinition:
    """A pluggable topic domain with its extractor and steering strategies"""
    id: str
    name: str
    description: str
    extractor: Optional[Extractor] = None
    strategies: Tuple[SteeringStrategy, ...] = ()
    priority: float = 1.0
    enabled: bool = True
    confidence_threshold: float = 0.5


@dataclass(frozen=True)
class DomainRegistry:
    """Read-only lookup of domain definitions keyed by domain id"""
    domains: Tuple[DomainDefinition, ...] = ()
    _index: Mapping[str, DomainDefinition] = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self):
        index: Dict[str, DomainDefinition] = {}
        for domain in self.domains:
            if domain.id in index:
                raise ValueError(f"Duplicate domain id: {domain.id}")
            index[domain.id] = domain
        object.__setattr__(self, "_index", index)

    @classmethod
    def build(
        cls,
        definitions: Iterable[DomainDefinition],
        disabled: Sequence[str] = (),
        threshold_overrides: Optional[Mapping[str, float]] = None,
    ) -> "DomainRegistry":
        """
        Build a registry, applying configuration overrides

        Args:
            definitions: Domain definitions to register
            disabled: Domain ids to register but mark disabled
            threshold_overrides: Per-domain confidence thresholds

        Returns:
            New DomainRegistry
        """
        overrides = dict(threshold_overrides or {})
        prepared: List[DomainDefinition] = []
        for definition in definitions:
            changes: Dict[str, Any] = {}
            if definition.id in disabled:
                changes["enabled"] = False
            if definition.id in overrides:
                changes["confidence_threshold"] = overrides[definition.id]
            prepared.append(replace(definition, **changes) if changes else definition)
        return cls(domains=tuple(prepared))

    def get(self, domain_id: str) -> Optional[DomainDefinition]:
        return self._index.get(domain_id)

    def active_domains(self) -> List[DomainDefinition]:
        """Enabled domains, highest priority first"""
        return sorted((d for d in self.domains if d.enabled), key=lambda d: d.priority, reverse=True)

    def strategies_for(self, domain_id: str) -> Tuple[SteeringStrategy, ...]:
        domain = self.get(domain_id)
        return domain.strategies if domain else ()

    def ids(self) -> List[str]:
        return [d.id for d in self.domains]
