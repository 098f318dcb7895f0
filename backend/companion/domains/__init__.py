"""
Topic domains and the registry that holds them
"""
from typing import Optional

from companion.core.config import Settings, get_settings
from companion.core.logging_config import LoggingConfig
from companion.domains.finance import finance_domain
from companion.domains.goal import goal_domain
from companion.domains.health import health_domain
from companion.domains.registry import (DomainDefinition, DomainRegistry,
                                        ExtractionContext, Extractor,
                                        SteeringStrategy)
from companion.services.agent_state_service import AgentStateService

logger = LoggingConfig.get_logger(__name__)

__all__ = [
    "DomainDefinition",
    "DomainRegistry",
    "ExtractionContext",
    "Extractor",
    "SteeringStrategy",
    "build_domain_registry",
]


def build_domain_registry(
    llm,
    agent_states: Optional[AgentStateService] = None,
    settings: Optional[Settings] = None,
) -> DomainRegistry:
    """
    Build the registry of shipped domains

    Health keeps its stricter 0.6 acceptance threshold; the other domains use
    the configured default.
    """
    settings = settings or get_settings()
    default_threshold = settings.domain_default_confidence_threshold
    registry = DomainRegistry.build(
        [
            health_domain(llm, confidence_threshold=max(0.6, default_threshold)),
            goal_domain(llm, agent_states, confidence_threshold=default_threshold),
            finance_domain(llm, confidence_threshold=default_threshold),
        ],
        disabled=settings.disabled_domains_list,
    )
    logger.info(
        "Domain registry built",
        extra={"domains": registry.ids(), "active": [d.id for d in registry.active_domains()]}
    )
    return registry
