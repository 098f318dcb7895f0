"""
Agent clarification records: short-lived follow-ups a domain is waiting on
"""
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from sqlalchemy.orm import Session

from companion.core.logging_config import LoggingConfig
from companion.services.repositories import AgentStateRepository

logger = LoggingConfig.get_logger(__name__)

DEFAULT_TTL_SECONDS = 300


class AgentStateService:
    """
    Save, look up and resolve TTL-bounded clarification records.

    Each operation opens its own session from `session_factory` and commits
    before returning, so a record saved while handling one turn is visible to
    the extractor on the next.
    """

    def __init__(self, session_factory: Callable[[], Session], default_ttl_seconds: int = DEFAULT_TTL_SECONDS):
        self.session_factory = session_factory
        self.default_ttl_seconds = default_ttl_seconds

    def save_state(
        self,
        conversation_id: str,
        domain_id: str,
        state_type: str,
        payload: Dict[str, Any],
        ttl_seconds: Optional[int] = None,
    ) -> str:
        """
        Save a clarification record

        Args:
            conversation_id: Conversation the follow-up belongs to
            domain_id: Domain waiting on the answer
            state_type: Kind of follow-up (e.g. "selection_pending")
            payload: JSON-serializable data needed to interpret the answer
            ttl_seconds: Lifetime; defaults to the service default

        Returns:
            Record id
        """
        ttl = ttl_seconds or self.default_ttl_seconds
        with self.session_factory() as db:
            record = AgentStateRepository(db).save(conversation_id, domain_id, state_type, payload, ttl)
            record_id = record.id
            db.commit()

        logger.info(
            "Agent state saved",
            extra={"state_id": record_id, "domain_id": domain_id, "state_type": state_type, "ttl": ttl}
        )
        return record_id

    def get_state(
        self,
        conversation_id: str,
        domain_id: str,
        state_type: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Optional[Dict[str, Any]]:
        """Payload of the oldest unresolved, unexpired record, or None"""
        with self.session_factory() as db:
            record = AgentStateRepository(db).find_pending(conversation_id, domain_id, state_type, now)
            return dict(record.state_data) if record else None

    def resolve_state(self, conversation_id: str, domain_id: str, state_type: Optional[str] = None) -> bool:
        """Mark the pending record resolved; False if there was none"""
        with self.session_factory() as db:
            repo = AgentStateRepository(db)
            record = repo.find_pending(conversation_id, domain_id, state_type)
            if record is None:
                return False
            repo.resolve(record)
            db.commit()
            logger.info(
                "Agent state resolved",
                extra={"state_id": record.id, "domain_id": domain_id, "state_type": record.state_type}
            )
            return True

    def cleanup_expired(self, now: Optional[datetime] = None) -> int:
        """Delete expired records; returns how many were removed"""
        with self.session_factory() as db:
            removed = AgentStateRepository(db).delete_expired(now)
            db.commit()
        if removed:
            logger.info("Expired agent states removed", extra={"count": removed})
        return removed
