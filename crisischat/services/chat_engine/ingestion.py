"""Message Ingestion Pipeline - validate, classify, append, escalate.

Every accepted message runs the same fixed sequence inside its session's
mutation scope:

1. Validate input (before any state changes)
2. Resolve or create the session
3. Classify content
4. Append the message
5. Raise the session's aggregate crisis level
6. Escalate if the message is HIGH or CRITICAL

Step 6 sits in a finally block behind step 4: once a crisis message is
recorded, its escalation runs even if a later step fails.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Union

from crisischat.shared.errors import InvalidInput
from crisischat.shared.models import (
    ChatMessage,
    ChatParticipant,
    MessageStatus,
    MessageType,
    ParticipantType,
    SessionSummary,
    build_payload,
)
from crisischat.shared.utils import IdGenerator, hash_pii, hash_text_for_audit
from crisischat.services.crisis_classifier import CrisisClassifier
from .escalation import Escalation, EscalationTrigger
from .session_store import MessageDraft, SessionStore

logger = logging.getLogger(__name__)

ANONYMOUS_ID_PREFIX = "anon"


@dataclass(frozen=True)
class IngestRequest:
    """Inbound message as delivered by the transport layer."""
    content: str
    sender_name: str
    session_id: Optional[str] = None
    sender_id: Optional[str] = None
    is_anonymous: bool = True
    message_type: Union[MessageType, str] = MessageType.TEXT
    reply_to_id: Optional[str] = None
    metadata: Optional[Mapping[str, Any]] = None
    language: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "IngestRequest":
        """Build from a JSON body using the transport's camelCase keys."""
        return cls(
            content=data.get("content") or "",
            sender_name=data.get("senderName") or "",
            session_id=data.get("sessionId"),
            sender_id=data.get("userId") or data.get("senderId"),
            is_anonymous=bool(data.get("isAnonymous", True)),
            message_type=data.get("messageType") or MessageType.TEXT,
            reply_to_id=data.get("replyToId"),
            metadata=data.get("metadata"),
            language=data.get("language"),
        )


@dataclass(frozen=True)
class IngestResult:
    """Created message, resulting session summary and any escalation."""
    message: ChatMessage
    session: SessionSummary
    escalation: Optional[Escalation] = None

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "message": self.message.to_dict(),
            "session": {
                "id": self.session.session_id,
                "crisis_level": self.session.crisis_level.value,
                "priority": self.session.priority,
                "status": self.session.status.value,
            },
        }
        if self.escalation is not None:
            result["escalation"] = self.escalation.to_dict()
        return result


def parse_message_type(value: Union[MessageType, str]) -> MessageType:
    if isinstance(value, MessageType):
        return value
    try:
        return MessageType(value)
    except ValueError:
        raise InvalidInput(f"Unknown message type: {value!r}") from None


class MessageIngestionPipeline:
    """Turns inbound messages into stored, classified, escalated messages."""

    def __init__(
        self,
        store: SessionStore,
        classifier: CrisisClassifier,
        escalation_trigger: EscalationTrigger,
        id_generator: Optional[IdGenerator] = None,
    ):
        self.store = store
        self.classifier = classifier
        self.escalation_trigger = escalation_trigger
        self.id_generator = id_generator or IdGenerator()

    def _validate(self, request: IngestRequest):
        if not request.content or not request.content.strip():
            logger.warning("INGEST_REJECTED", extra={"reason": "missing_content"})
            raise InvalidInput("content is required")
        if not request.sender_name or not request.sender_name.strip():
            logger.warning("INGEST_REJECTED", extra={"reason": "missing_sender_name"})
            raise InvalidInput("senderName is required")
        if request.reply_to_id and not request.session_id:
            raise InvalidInput("replyToId requires an existing sessionId")

        message_type = parse_message_type(request.message_type)
        return build_payload(message_type, request.metadata)

    def _check_reply_target(self, session_id: str, reply_to_id: Optional[str]) -> None:
        if reply_to_id and self.store.message_session_id(reply_to_id) != session_id:
            raise InvalidInput(f"replyToId {reply_to_id} is not a message in this session")

    def _anonymous_sender_id(self, session_id: str, sender_name: str) -> str:
        """Reuse the id an anonymous sender already has in this session.

        Must be called inside the session scope.
        """
        session = self.store.get_session(session_id)
        for participant in session.participants:
            if (
                participant.participant_type == ParticipantType.USER
                and participant.name == sender_name
                and participant.participant_id.startswith(f"{ANONYMOUS_ID_PREFIX}_")
            ):
                return participant.participant_id
        return self.id_generator.next_id(ANONYMOUS_ID_PREFIX)

    def ingest(self, request: IngestRequest) -> IngestResult:
        """Ingest one message.

        Args:
            request: Inbound message

        Returns:
            IngestResult with the created message and session summary

        Raises:
            InvalidInput: Missing content or senderName, bad type/metadata
            SessionNotFound: sessionId given but unknown

        Logs:
            - MESSAGE_INGESTED: After the message is stored
        """
        payload = self._validate(request)
        classification = self.classifier.explain(request.content)
        level = classification.level
        # Hashed up front so a PII misconfiguration fails before any write
        sender_id_hash = hash_pii(request.sender_id)
        text_hash = hash_text_for_audit(request.content)

        if request.session_id:
            session_id = request.session_id
            # Index-only lookup: never takes another session's lock
            self._check_reply_target(session_id, request.reply_to_id)
        else:
            session = self.store.create_session(
                owner_id=request.sender_id,
                anonymous=request.is_anonymous,
                language=request.language,
            )
            session_id = session.session_id

        sender_name = request.sender_name.strip()

        # Entering the scope raises SessionNotFound before anything is written
        with self.store.session_scope(session_id):
            # Re-checked under the scope: the target may have been deleted
            self._check_reply_target(session_id, request.reply_to_id)

            sender = ChatParticipant(
                participant_id=request.sender_id or self._anonymous_sender_id(session_id, sender_name),
                name=sender_name,
                participant_type=ParticipantType.USER,
                is_online=True,
            )
            self.store.add_participant(session_id, sender)
            message = self.store.append_message(
                session_id,
                MessageDraft(
                    sender_id=sender.participant_id,
                    sender=sender,
                    content=request.content,
                    crisis_level=level,
                    payload=payload,
                    status=MessageStatus.SENT,
                    # Encryption happens at the transport layer
                    is_encrypted=False,
                    reply_to_id=request.reply_to_id,
                ),
            )

            escalation: Optional[Escalation] = None
            try:
                self.store.update_aggregate_crisis_level(session_id, level)
            finally:
                if level.requires_escalation:
                    escalation = self.escalation_trigger.escalate(
                        session_id=session_id,
                        level=level,
                        excerpt_source=request.content,
                        message_id=message.message_id,
                    )

            session = self.store.get_session(session_id)

        logger.info(
            "MESSAGE_INGESTED",
            extra={
                "session_id": session_id,
                "message_id": message.message_id,
                "sender_id_hash": sender_id_hash,
                "text_hash": text_hash,
                "text_length": len(request.content),
                "message_type": message.message_type.value,
                "crisis_level": level.value,
                "matched_phrases": len(classification.matched_phrases),
                "session_crisis_level": session.crisis_level.value,
                "priority": session.priority,
                "escalated": escalation is not None,
            }
        )

        return IngestResult(message=message, session=session.summary(), escalation=escalation)
