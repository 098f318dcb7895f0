"""
Domain relevance detection: which registered domains apply to a message
"""
from typing import List, Sequence

from companion.classifiers.base import format_history, request_json
from companion.core.llm_client import TaskType
from companion.core.logging_config import LoggingConfig
from companion.core.state import ChatTurn, ConversationState
from companion.domains.registry import DomainDefinition, DomainRegistry

logger = LoggingConfig.get_logger(__name__)

DOMAIN_SYSTEM_PROMPT = """You are a domain classifier. Decide which knowledge domains contain
extractable information in the user's latest message.

Available domains:
{domains}

Currently active domains: {active}

Recent conversation:
{history}

Be selective: include a domain only if this specific message carries information for it.
Return JSON: {{"domains": ["<domain id>", ...]}}. Return {{"domains": []}} if none apply."""


class DomainRelevanceClassifier:
    """Maps a message to the subset of enabled registered domains it is relevant to"""

    name = "domain_relevance"

    def __init__(self, llm, registry: DomainRegistry):
        self.llm = llm
        self.registry = registry

    async def classify(
        self,
        message: str,
        state: ConversationState,
        recent_messages: Sequence[ChatTurn] = (),
    ) -> List[DomainDefinition]:
        """
        Return relevant domains in registry priority order; [] on failure or when none apply
        """
        domains = self.registry.active_domains()
        if not domains or not message.strip():
            return []

        prompt = DOMAIN_SYSTEM_PROMPT.format(
            domains="\n".join(f"- {d.id}: {d.description}" for d in domains),
            active=", ".join(state.metadata.get("active_domains") or []) or "none",
            history=format_history(recent_messages, 3, max_chars=100),
        )
        try:
            payload = await request_json(
                self.llm, prompt, message, TaskType.DOMAIN_RELEVANCE, max_tokens=100
            )
        except Exception as e:
            logger.warning(f"Domain relevance classification failed: {e}", exc_info=True)
            return []

        requested = payload.get("domains") or []
        if not isinstance(requested, list):
            requested = []
        wanted = {str(domain_id).lower() for domain_id in requested}
        relevant = [d for d in domains if d.id in wanted]

        logger.debug(
            "Domain relevance classification complete",
            extra={
                "available_domains": [d.id for d in domains],
                "relevant_domains": [d.id for d in relevant],
            }
        )
        return relevant
