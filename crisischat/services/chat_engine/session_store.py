"""Session Store: owns chat sessions and their message sequences.

All mutations of one session run under that session's re-entrant lock, so
concurrent appends never interleave and updated_at never regresses.
Unrelated sessions never wait on each other. Callers only ever receive
frozen snapshots.
"""
import dataclasses
import logging
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterator, List, Optional

from crisischat.shared.errors import (
    InvalidStatusTransition,
    MessageNotFound,
    SessionNotFound,
    StoreInvariantViolation,
)
from crisischat.shared.models import (
    ChatMessage,
    ChatParticipant,
    ChatSession,
    CrisisLevel,
    MessagePayload,
    MessageStatus,
    SessionStatus,
    TextPayload,
    utcnow,
)
from crisischat.shared.utils import IdGenerator, hash_pii
from .config import AggregationPolicy

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MessageDraft:
    """Message content before the store assigns identity and timestamp."""
    sender_id: str
    sender: ChatParticipant
    content: str
    crisis_level: CrisisLevel
    payload: MessagePayload = field(default_factory=TextPayload)
    status: MessageStatus = MessageStatus.SENT
    is_encrypted: bool = False
    reply_to_id: Optional[str] = None


class SessionStore(ABC):
    """Abstract session store.

    Implementations must keep per-session mutations linearizable and
    return snapshots, never live references.
    """

    @abstractmethod
    def create_session(
        self,
        owner_id: Optional[str] = None,
        anonymous: bool = True,
        language: Optional[str] = None,
    ) -> ChatSession:
        """Allocate a fresh session: status ACTIVE, level LOW, priority 1."""
        pass

    @abstractmethod
    def get_session(self, session_id: str) -> Optional[ChatSession]:
        """Snapshot of a session, or None if it does not exist."""
        pass

    @abstractmethod
    def append_message(self, session_id: str, draft: MessageDraft) -> ChatMessage:
        """Append a message to the end of a session's sequence.

        Raises:
            SessionNotFound: If the session does not exist
        """
        pass

    @abstractmethod
    def update_aggregate_crisis_level(
        self,
        session_id: str,
        candidate: CrisisLevel,
    ) -> ChatSession:
        """Apply the aggregation policy and recompute priority."""
        pass

    @abstractmethod
    def set_status(self, session_id: str, status: SessionStatus) -> ChatSession:
        pass

    @abstractmethod
    def add_participant(self, session_id: str, participant: ChatParticipant) -> ChatSession:
        """Register a participant once; repeated ids are ignored."""
        pass

    @abstractmethod
    def get_message(self, message_id: str) -> Optional[ChatMessage]:
        pass

    @abstractmethod
    def message_session_id(self, message_id: str) -> Optional[str]:
        """Session owning a message, without taking that session's scope."""
        pass

    @abstractmethod
    def update_message_status(
        self,
        message_id: str,
        new_status: MessageStatus,
    ) -> ChatMessage:
        """Move a message's delivery status forward.

        Raises:
            MessageNotFound: If the message does not exist
            InvalidStatusTransition: If the move would go backward
        """
        pass

    @abstractmethod
    def delete_message(self, session_id: str, message_id: str) -> bool:
        """Remove a message. Returns False (no-op) if it is not there."""
        pass

    @abstractmethod
    def session_scope(self, session_id: str):
        """Context manager holding the session's mutation scope.

        Store calls made inside the scope for the same session join it.
        """
        pass


@dataclass
class _SessionState:
    """Mutable session record. Never leaves the store."""
    session_id: str
    owner_id: Optional[str]
    is_anonymous: bool
    language: str
    created_at: datetime
    updated_at: datetime
    status: SessionStatus = SessionStatus.ACTIVE
    crisis_level: CrisisLevel = CrisisLevel.LOW
    priority: int = CrisisLevel.LOW.priority
    participants: List[ChatParticipant] = field(default_factory=list)
    messages: List[ChatMessage] = field(default_factory=list)
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    def touch(self) -> datetime:
        # Clock skew must not move updated_at backward
        self.updated_at = max(utcnow(), self.updated_at)
        return self.updated_at

    def snapshot(self) -> ChatSession:
        return ChatSession(
            session_id=self.session_id,
            owner_id=self.owner_id,
            is_anonymous=self.is_anonymous,
            status=self.status,
            crisis_level=self.crisis_level,
            priority=self.priority,
            created_at=self.created_at,
            updated_at=self.updated_at,
            language=self.language,
            participants=tuple(self.participants),
            messages=tuple(self.messages),
        )

    def index_of(self, message_id: str) -> Optional[int]:
        for position, message in enumerate(self.messages):
            if message.message_id == message_id:
                return position
        return None


class InMemorySessionStore(SessionStore):
    """Process-local session store.

    Features:
    - Per-session RLock; the registry lock only guards dictionary access
    - Message index keyed by message id (references, does not own)
    - Injected IdGenerator; a duplicate id is a fatal invariant violation

    Limitations:
    - Sessions are lost on restart
    - No eviction; sessions live until the process ends
    """

    def __init__(
        self,
        id_generator: Optional[IdGenerator] = None,
        aggregation_policy: AggregationPolicy = AggregationPolicy.MONOTONIC,
        default_language: str = "en",
    ):
        """Initialize the store.

        Args:
            id_generator: Source of session and message identifiers
            aggregation_policy: How aggregate crisis level reacts to new levels
            default_language: Language tag for sessions created without one
        """
        self.id_generator = id_generator or IdGenerator()
        self.aggregation_policy = aggregation_policy
        self.default_language = default_language
        self._sessions: Dict[str, _SessionState] = {}
        self._message_index: Dict[str, str] = {}
        self._registry_lock = threading.Lock()

        logger.info(
            "SESSION_STORE_INITIALIZED",
            extra={
                "store": type(self).__name__,
                "aggregation_policy": aggregation_policy.value,
            }
        )

    def _require(self, session_id: str) -> _SessionState:
        with self._registry_lock:
            state = self._sessions.get(session_id)
        if state is None:
            raise SessionNotFound(session_id)
        return state

    @contextmanager
    def session_scope(self, session_id: str) -> Iterator[None]:
        state = self._require(session_id)
        with state.lock:
            yield

    def create_session(
        self,
        owner_id: Optional[str] = None,
        anonymous: bool = True,
        language: Optional[str] = None,
    ) -> ChatSession:
        owner_id_hash = hash_pii(owner_id)
        session_id = self.id_generator.next_id("chat")
        now = utcnow()
        state = _SessionState(
            session_id=session_id,
            owner_id=owner_id,
            is_anonymous=anonymous,
            language=language or self.default_language,
            created_at=now,
            updated_at=now,
        )

        with self._registry_lock:
            if session_id in self._sessions:
                logger.critical(
                    "SESSION_ID_COLLISION",
                    extra={"session_id": session_id, "action": "ABORT"}
                )
                raise StoreInvariantViolation(f"Session id issued twice: {session_id}")
            self._sessions[session_id] = state

        logger.info(
            "SESSION_CREATED",
            extra={
                "session_id": session_id,
                "owner_id_hash": owner_id_hash,
                "is_anonymous": anonymous,
                "language": state.language,
            }
        )
        return state.snapshot()

    def get_session(self, session_id: str) -> Optional[ChatSession]:
        with self._registry_lock:
            state = self._sessions.get(session_id)
        if state is None:
            return None
        with state.lock:
            return state.snapshot()

    def append_message(self, session_id: str, draft: MessageDraft) -> ChatMessage:
        state = self._require(session_id)
        with state.lock:
            message_id = self.id_generator.next_id("msg")
            message = ChatMessage(
                message_id=message_id,
                session_id=session_id,
                sender_id=draft.sender_id,
                sender=draft.sender,
                content=draft.content,
                crisis_level=draft.crisis_level,
                payload=draft.payload,
                status=draft.status,
                is_encrypted=draft.is_encrypted,
                reply_to_id=draft.reply_to_id,
                timestamp=max(utcnow(), state.updated_at),
            )

            with self._registry_lock:
                if message_id in self._message_index:
                    logger.critical(
                        "MESSAGE_ID_COLLISION",
                        extra={"message_id": message_id, "session_id": session_id}
                    )
                    raise StoreInvariantViolation(f"Message id issued twice: {message_id}")
                self._message_index[message_id] = session_id

            expected_length = len(state.messages) + 1
            state.messages.append(message)
            if len(state.messages) != expected_length:
                raise StoreInvariantViolation(
                    f"Message sequence of {session_id} changed during append"
                )
            state.touch()

            logger.info(
                "MESSAGE_APPENDED",
                extra={
                    "session_id": session_id,
                    "message_id": message_id,
                    "sequence_length": len(state.messages),
                    "crisis_level": message.crisis_level.value,
                }
            )
            return message

    def update_aggregate_crisis_level(
        self,
        session_id: str,
        candidate: CrisisLevel,
    ) -> ChatSession:
        state = self._require(session_id)
        with state.lock:
            previous = state.crisis_level
            if self.aggregation_policy == AggregationPolicy.MONOTONIC:
                state.crisis_level = previous.max(candidate)
            elif candidate != CrisisLevel.LOW:
                state.crisis_level = candidate
            state.priority = state.crisis_level.priority
            state.touch()

            if state.crisis_level != previous:
                logger.warning(
                    "SESSION_CRISIS_LEVEL_CHANGED",
                    extra={
                        "session_id": session_id,
                        "previous_level": previous.value,
                        "crisis_level": state.crisis_level.value,
                        "priority": state.priority,
                    }
                )
            return state.snapshot()

    def set_status(self, session_id: str, status: SessionStatus) -> ChatSession:
        state = self._require(session_id)
        with state.lock:
            previous = state.status
            state.status = status
            state.touch()
            if previous != status:
                logger.info(
                    "SESSION_STATUS_CHANGED",
                    extra={
                        "session_id": session_id,
                        "previous_status": previous.value,
                        "status": status.value,
                    }
                )
            return state.snapshot()

    def add_participant(self, session_id: str, participant: ChatParticipant) -> ChatSession:
        state = self._require(session_id)
        with state.lock:
            known = {p.participant_id for p in state.participants}
            if participant.participant_id not in known:
                state.participants.append(participant)
                state.touch()
                logger.info(
                    "SESSION_PARTICIPANT_ADDED",
                    extra={
                        "session_id": session_id,
                        "participant_type": participant.participant_type.value,
                        "participant_count": len(state.participants),
                    }
                )
            return state.snapshot()

    def _owning_state(self, message_id: str) -> Optional[_SessionState]:
        with self._registry_lock:
            session_id = self._message_index.get(message_id)
            if session_id is None:
                return None
            return self._sessions.get(session_id)

    def message_session_id(self, message_id: str) -> Optional[str]:
        with self._registry_lock:
            return self._message_index.get(message_id)

    def get_message(self, message_id: str) -> Optional[ChatMessage]:
        state = self._owning_state(message_id)
        if state is None:
            return None
        with state.lock:
            position = state.index_of(message_id)
            return None if position is None else state.messages[position]

    def update_message_status(
        self,
        message_id: str,
        new_status: MessageStatus,
    ) -> ChatMessage:
        state = self._owning_state(message_id)
        if state is None:
            raise MessageNotFound(message_id)
        with state.lock:
            position = state.index_of(message_id)
            if position is None:
                # Deleted between the index lookup and taking the lock
                raise MessageNotFound(message_id)

            current = state.messages[position]
            if not current.status.can_transition_to(new_status):
                raise InvalidStatusTransition(
                    f"Cannot move message {message_id} from "
                    f"{current.status.value} to {new_status.value}"
                )
            if current.status == new_status:
                return current

            updated = dataclasses.replace(current, status=new_status)
            state.messages[position] = updated
            state.touch()

            logger.info(
                "MESSAGE_STATUS_UPDATED",
                extra={
                    "session_id": state.session_id,
                    "message_id": message_id,
                    "previous_status": current.status.value,
                    "status": new_status.value,
                }
            )
            return updated

    def delete_message(self, session_id: str, message_id: str) -> bool:
        with self._registry_lock:
            state = self._sessions.get(session_id)
        if state is None:
            return False

        with state.lock:
            with self._registry_lock:
                if self._message_index.get(message_id) != session_id:
                    return False
                del self._message_index[message_id]

            position = state.index_of(message_id)
            if position is None:
                logger.critical(
                    "MESSAGE_INDEX_CORRUPTED",
                    extra={"session_id": session_id, "message_id": message_id}
                )
                raise StoreInvariantViolation(
                    f"Indexed message {message_id} missing from session {session_id}"
                )
            del state.messages[position]
            state.touch()

            logger.info(
                "MESSAGE_DELETED",
                extra={
                    "session_id": session_id,
                    "message_id": message_id,
                    "sequence_length": len(state.messages),
                }
            )
            return True

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._sessions)
