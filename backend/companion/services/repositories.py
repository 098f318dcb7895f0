"""
Repositories over the SQLAlchemy models

Each repository wraps a Session. Callers own the session lifecycle and commit
boundaries; repositories flush so generated ids are available immediately.
"""
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from companion.core.state import (ContextElement, ConversationGoal,
                                  ConversationState, ExtractionRecord)
from companion.models.agent_state import AgentState
from companion.models.conversation import (Conversation,
                                           ConversationStateSnapshot,
                                           ConversationStatus, Message,
                                           MessageRole)
from companion.models.domain_extraction import DomainExtraction
from companion.models.goal import Goal, GoalStatus, ProgressEntry
from companion.utils.datetime_utils import ensure_utc, utc_now


class ConversationRepository:
    """Conversation lookup and lifecycle"""

    def __init__(self, db: Session):
        self.db = db

    def create(self, user_id: str) -> Conversation:
        conversation = Conversation(user_id=user_id, status=ConversationStatus.ACTIVE.value)
        self.db.add(conversation)
        self.db.flush()
        return conversation

    def get(self, conversation_id: str) -> Optional[Conversation]:
        return self.db.query(Conversation).filter(Conversation.id == conversation_id).first()

    def find_active_by_user(self, user_id: str) -> Optional[Conversation]:
        """Most recently active conversation for a user"""
        return (
            self.db.query(Conversation)
            .filter(Conversation.user_id == user_id, Conversation.status == ConversationStatus.ACTIVE.value)
            .order_by(Conversation.last_activity_at.desc())
            .first()
        )

    def touch(self, conversation: Conversation, when: Optional[datetime] = None):
        conversation.last_activity_at = when or utc_now()

    def end(self, conversation: Conversation):
        conversation.status = ConversationStatus.ENDED.value
        conversation.ended_at = utc_now()


class MessageRepository:
    """Message persistence"""

    def __init__(self, db: Session):
        self.db = db

    def create(self, conversation_id: str, role: MessageRole, content: str) -> Message:
        message = Message(conversation_id=conversation_id, role=role.value, content=content)
        self.db.add(message)
        self.db.flush()
        return message

    def recent(self, conversation_id: str, limit: int = 10) -> List[Message]:
        """Last `limit` messages in chronological order"""
        rows = (
            self.db.query(Message)
            .filter(Message.conversation_id == conversation_id)
            .order_by(Message.timestamp.desc())
            .limit(limit)
            .all()
        )
        return list(reversed(rows))


def _dump_list(items) -> List[Dict[str, Any]]:
    return [item.model_dump(mode="json") for item in items]


class StateRepository:
    """
    Append-only conversation state snapshots.

    `append` always inserts a new row; the current state is the latest row.
    """

    def __init__(self, db: Session):
        self.db = db

    def latest(self, conversation_id: str) -> Optional[ConversationState]:
        row = (
            self.db.query(ConversationStateSnapshot)
            .filter(ConversationStateSnapshot.conversation_id == conversation_id)
            .order_by(ConversationStateSnapshot.created_at.desc())
            .first()
        )
        return self.to_state(row) if row else None

    def append(self, state: ConversationState) -> ConversationState:
        """Insert a new snapshot row and return the state carrying its id"""
        row = ConversationStateSnapshot(
            conversation_id=state.conversation_id,
            mode=state.mode,
            context_elements=_dump_list(state.context_elements),
            goals=_dump_list(state.goals),
            extractions={
                domain_id: _dump_list(records)
                for domain_id, records in state.extractions.items()
            },
            domain_context=state.domain_context,
            state_metadata={
                **state.metadata,
                "user_id": state.user_id,
                "steering_hints": state.steering_hints.model_dump(mode="json") if state.steering_hints else None,
            },
            last_activity_at=state.last_activity_at,
            created_at=utc_now(),
        )
        self.db.add(row)
        self.db.flush()
        return state.model_copy(update={"id": row.id})

    def count(self, conversation_id: str) -> int:
        return (
            self.db.query(ConversationStateSnapshot)
            .filter(ConversationStateSnapshot.conversation_id == conversation_id)
            .count()
        )

    @staticmethod
    def to_state(row: ConversationStateSnapshot) -> ConversationState:
        """Rebuild the immutable snapshot from a stored row"""
        metadata = dict(row.state_metadata or {})
        user_id = metadata.pop("user_id", None)
        metadata.pop("steering_hints", None)
        return ConversationState(
            id=row.id,
            conversation_id=row.conversation_id,
            user_id=user_id,
            mode=row.mode,
            context_elements=[ContextElement.model_validate(e) for e in row.context_elements or []],
            goals=[ConversationGoal.model_validate(g) for g in row.goals or []],
            extractions={
                domain_id: [ExtractionRecord.model_validate(r) for r in records]
                for domain_id, records in (row.extractions or {}).items()
            },
            domain_context=dict(row.domain_context or {}),
            metadata=metadata,
            last_activity_at=ensure_utc(row.last_activity_at),
            created_at=ensure_utc(row.created_at),
        )


class GoalRepository:
    """Goal persistence"""

    def __init__(self, db: Session):
        self.db = db

    def create(self, user_id: str, title: str, **fields) -> Goal:
        goal = Goal(user_id=user_id, title=title, **fields)
        self.db.add(goal)
        self.db.flush()
        return goal

    def get(self, goal_id: str) -> Optional[Goal]:
        return self.db.query(Goal).filter(Goal.id == goal_id).first()

    def active_for_user(self, user_id: str) -> List[Goal]:
        return (
            self.db.query(Goal)
            .filter(Goal.user_id == user_id, Goal.status == GoalStatus.ACTIVE.value)
            .order_by(Goal.created_at.asc())
            .all()
        )

    def all_for_user(self, user_id: str) -> List[Goal]:
        return (
            self.db.query(Goal)
            .filter(Goal.user_id == user_id)
            .order_by(Goal.created_at.asc())
            .all()
        )


class ProgressRepository:
    """Progress entry persistence"""

    def __init__(self, db: Session):
        self.db = db

    def create(self, goal_id: str, value: float, notes: Optional[str] = None,
               source: str = "conversation", conversation_id: Optional[str] = None) -> ProgressEntry:
        entry = ProgressEntry(
            goal_id=goal_id,
            value=value,
            notes=notes,
            source=source,
            conversation_id=conversation_id,
        )
        self.db.add(entry)
        self.db.flush()
        return entry

    def for_goal(self, goal_id: str, limit: Optional[int] = None) -> List[ProgressEntry]:
        """Entries for a goal, oldest first"""
        query = (
            self.db.query(ProgressEntry)
            .filter(ProgressEntry.goal_id == goal_id)
            .order_by(ProgressEntry.logged_at.asc())
        )
        if limit:
            query = query.limit(limit)
        return query.all()


class AgentStateRepository:
    """Agent clarification records"""

    def __init__(self, db: Session):
        self.db = db

    def save(self, conversation_id: str, domain_id: str, state_type: str,
             data: Dict[str, Any], ttl_seconds: int) -> AgentState:
        now = utc_now()
        record = AgentState(
            conversation_id=conversation_id,
            domain_id=domain_id,
            state_type=state_type,
            state_data=data,
            created_at=now,
            expires_at=now + timedelta(seconds=ttl_seconds),
            resolved=False,
        )
        self.db.add(record)
        self.db.flush()
        return record

    def find_pending(self, conversation_id: str, domain_id: str,
                     state_type: Optional[str] = None, now: Optional[datetime] = None) -> Optional[AgentState]:
        """Oldest unresolved, unexpired record"""
        now = now or utc_now()
        query = self.db.query(AgentState).filter(
            AgentState.conversation_id == conversation_id,
            AgentState.domain_id == domain_id,
            AgentState.resolved.is_(False),
        )
        if state_type:
            query = query.filter(AgentState.state_type == state_type)
        for record in query.order_by(AgentState.created_at.asc()).all():
            if ensure_utc(record.expires_at) > now:
                return record
        return None

    def resolve(self, record: AgentState):
        record.resolved = True

    def delete_expired(self, now: Optional[datetime] = None) -> int:
        now = now or utc_now()
        expired = [
            record for record in self.db.query(AgentState).all()
            if ensure_utc(record.expires_at) <= now
        ]
        for record in expired:
            self.db.delete(record)
        return len(expired)


class ExtractionRepository:
    """Storage for accepted domain extractions"""

    def __init__(self, db: Session):
        self.db = db

    def create(self, conversation_id: str, user_id: str, record: ExtractionRecord) -> DomainExtraction:
        row = DomainExtraction(
            conversation_id=conversation_id,
            user_id=user_id,
            domain_id=record.domain_id,
            data=record.data,
            confidence=record.confidence,
            created_at=record.timestamp,
        )
        self.db.add(row)
        self.db.flush()
        return row

    def recent(self, user_id: str, domain_id: str, limit: int = 5) -> List[ExtractionRecord]:
        """Latest extractions for a user and domain, oldest first"""
        rows = (
            self.db.query(DomainExtraction)
            .filter(DomainExtraction.user_id == user_id, DomainExtraction.domain_id == domain_id)
            .order_by(DomainExtraction.created_at.desc())
            .limit(limit)
            .all()
        )
        return [
            ExtractionRecord(
                domain_id=row.domain_id,
                data=row.data or {},
                confidence=row.confidence,
                timestamp=ensure_utc(row.created_at),
            )
            for row in reversed(rows)
        ]
