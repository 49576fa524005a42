"""Chat engine facade - the operations transport adapters call.

Wires the Session Store, Crisis Classifier, Escalation Trigger and
Access Control Guard together. Every read and mutation that names an
existing session or message goes through the guard first.
"""
import logging
from typing import List, Optional, Union

from crisischat.shared.errors import InvalidInput, MessageNotFound, SessionNotFound
from crisischat.shared.models import (
    ChatMessage,
    ChatSession,
    CrisisLevel,
    EscalationSource,
    MessageStatus,
    SessionSummary,
)
from crisischat.shared.utils import IdGenerator, hash_pii, is_pii_salt_configured
from crisischat.services.crisis_classifier import CrisisClassifier
from .access import AccessControlGuard
from .config import ChatEngineConfig
from .escalation import Escalation, EscalationTrigger
from .ingestion import IngestRequest, IngestResult, MessageIngestionPipeline
from .notifier import EscalationNotifier
from .session_store import InMemorySessionStore, SessionStore
from .specialists import SpecialistDirectory

logger = logging.getLogger(__name__)


def _parse_enum(enum_cls, value, field_name: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        raise InvalidInput(f"Unknown {field_name}: {value!r}") from None


class ChatEngine:
    """Crisis-aware chat engine.

    This is the one object a transport layer needs. Collaborators are
    injectable so the in-memory store can be swapped for a persistent one.
    """

    def __init__(
        self,
        notifier: EscalationNotifier,
        config: Optional[ChatEngineConfig] = None,
        store: Optional[SessionStore] = None,
        classifier: Optional[CrisisClassifier] = None,
        guard: Optional[AccessControlGuard] = None,
        specialists: Optional[SpecialistDirectory] = None,
        id_generator: Optional[IdGenerator] = None,
    ):
        """Initialize engine with dependencies.

        Args:
            notifier: Hand-off to the emergency notification service
            config: Engine configuration
            store: Session store (defaults to InMemorySessionStore)
            classifier: Crisis classifier (defaults to the built-in lexicon)
            guard: Access control guard
            specialists: Optional specialist directory for escalations
            id_generator: Shared identifier source

        Raises:
            RuntimeError: If configure_pii_salt() has not been called
        """
        if not is_pii_salt_configured():
            logger.critical(
                "CHAT_ENGINE_INIT_FAILED",
                extra={"reason": "PII salt not configured", "action": "call configure_pii_salt()"}
            )
            raise RuntimeError("PII salt not configured. Call configure_pii_salt() before building ChatEngine.")

        self.config = config or ChatEngineConfig()
        self.id_generator = id_generator or IdGenerator()
        self.store = store or InMemorySessionStore(
            id_generator=self.id_generator,
            aggregation_policy=self.config.aggregation_policy,
            default_language=self.config.default_language,
        )
        self.classifier = classifier or CrisisClassifier(
            lexicon_version=self.config.lexicon_version,
        )
        self.guard = guard or AccessControlGuard()
        self.notifier = notifier
        self.escalation_trigger = EscalationTrigger(
            store=self.store,
            notifier=notifier,
            specialists=specialists,
            high_sets_emergency=self.config.high_sets_emergency,
            excerpt_length=self.config.excerpt_length,
            id_generator=self.id_generator,
        )
        self.pipeline = MessageIngestionPipeline(
            store=self.store,
            classifier=self.classifier,
            escalation_trigger=self.escalation_trigger,
            id_generator=self.id_generator,
        )

        logger.info(
            "CHAT_ENGINE_INITIALIZED",
            extra={
                "aggregation_policy": self.config.aggregation_policy.value,
                "high_sets_emergency": self.config.high_sets_emergency,
                "lexicon_version": self.config.lexicon_version,
            }
        )

    def ingest(self, request: IngestRequest) -> IngestResult:
        return self.pipeline.ingest(request)

    def _session_for(self, session_id: str, actor_id: Optional[str]) -> ChatSession:
        session = self.store.get_session(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        self.guard.require_session(actor_id, session)
        return session

    def _message_for(self, message_id: str, actor_id: Optional[str]) -> ChatMessage:
        message = self.store.get_message(message_id)
        if message is None:
            raise MessageNotFound(message_id)
        session = self.store.get_session(message.session_id)
        if session is None:
            raise SessionNotFound(message.session_id)
        self.guard.require_message(actor_id, message, session)
        return message

    def get_session(self, session_id: str, actor_id: Optional[str] = None) -> ChatSession:
        """Snapshot of a session the actor may read.

        Raises:
            SessionNotFound: Unknown session
            Unauthorized: Actor is not the registered owner
        """
        return self._session_for(session_id, actor_id)

    def session_summary(self, session_id: str, actor_id: Optional[str] = None) -> SessionSummary:
        return self._session_for(session_id, actor_id).summary()

    def list_messages(self, session_id: str, actor_id: Optional[str] = None) -> List[ChatMessage]:
        """Messages of a session in arrival order."""
        return list(self._session_for(session_id, actor_id).messages)

    def get_message(self, message_id: str, actor_id: Optional[str] = None) -> ChatMessage:
        """Raises MessageNotFound or Unauthorized."""
        return self._message_for(message_id, actor_id)

    def update_status(
        self,
        message_id: str,
        new_status: Union[MessageStatus, str],
        actor_id: Optional[str] = None,
    ) -> ChatMessage:
        """Move a message's delivery status forward.

        Raises:
            InvalidInput: Unknown status value
            MessageNotFound: Unknown message
            Unauthorized: Actor may not touch this message
            InvalidStatusTransition: Status would move backward
        """
        status = _parse_enum(MessageStatus, new_status, "message status")
        self._message_for(message_id, actor_id)
        return self.store.update_message_status(message_id, status)

    def delete_message(self, message_id: str, actor_id: Optional[str] = None) -> bool:
        """Delete a message. Unknown or already-deleted ids are a no-op.

        Returns:
            True if a message was removed, False if there was nothing to remove

        Raises:
            Unauthorized: Message exists but actor may not delete it
        """
        message = self.store.get_message(message_id)
        if message is None:
            logger.info(
                "MESSAGE_DELETE_NOOP",
                extra={"message_id": message_id, "actor_id_hash": hash_pii(actor_id)}
            )
            return False
        session = self.store.get_session(message.session_id)
        if session is None:
            return False
        self.guard.require_message(actor_id, message, session)
        return self.store.delete_message(message.session_id, message_id)

    def escalate_manually(
        self,
        session_id: str,
        level: Union[CrisisLevel, str],
        reason: str,
        actor_id: Optional[str] = None,
    ) -> Escalation:
        """Escalate a session on request of a participant or specialist.

        Raises the session's aggregate crisis level under the store policy
        before escalating.
        """
        level = _parse_enum(CrisisLevel, level, "crisis level")
        if not reason or not reason.strip():
            raise InvalidInput("reason is required")
        self._session_for(session_id, actor_id)

        actor_id_hash = hash_pii(actor_id)
        with self.store.session_scope(session_id):
            self.store.update_aggregate_crisis_level(session_id, level)
            escalation = self.escalation_trigger.escalate(
                session_id=session_id,
                level=level,
                excerpt_source=reason,
                reason=reason.strip(),
                triggered_by=EscalationSource.MANUAL,
            )

        logger.warning(
            "MANUAL_ESCALATION_REQUESTED",
            extra={
                "session_id": session_id,
                "crisis_level": level.value,
                "actor_id_hash": actor_id_hash,
                "escalation_id": escalation.record.escalation_id,
            }
        )
        return escalation

    def shutdown(self) -> None:
        self.notifier.shutdown(wait=True)
