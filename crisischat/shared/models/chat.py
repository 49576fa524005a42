"""Chat session, message and escalation domain models.

This file defines the core enums and data structures for crisis-aware chat.
Everything handed to a caller is a frozen snapshot; the Session Store is the
only place session state is mutated.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from ..errors import InvalidInput


def utcnow() -> datetime:
    """Timezone-aware UTC timestamp used for every model field."""
    return datetime.now(timezone.utc)


class CrisisLevel(Enum):
    """Crisis classification levels for chat messages and sessions.

    Ordered by severity. Priority is a fixed function of the level.
    """
    LOW = "low"              # No crisis language detected
    MEDIUM = "medium"        # Fear or a request for help
    HIGH = "high"            # Abuse, violence or self-harm disclosure
    CRITICAL = "critical"    # Suicidal language: emergency path

    @property
    def rank(self) -> int:
        return _LEVEL_RANK[self]

    @property
    def priority(self) -> int:
        """Session priority derived from this level."""
        return _LEVEL_PRIORITY[self]

    @property
    def requires_escalation(self) -> bool:
        return self in (CrisisLevel.HIGH, CrisisLevel.CRITICAL)

    def max(self, other: "CrisisLevel") -> "CrisisLevel":
        return self if self.rank >= other.rank else other


_LEVEL_RANK = {
    CrisisLevel.LOW: 0,
    CrisisLevel.MEDIUM: 1,
    CrisisLevel.HIGH: 2,
    CrisisLevel.CRITICAL: 3,
}

_LEVEL_PRIORITY = {
    CrisisLevel.LOW: 1,
    CrisisLevel.MEDIUM: 4,
    CrisisLevel.HIGH: 7,
    CrisisLevel.CRITICAL: 10,
}


class MessageStatus(Enum):
    """Delivery status of a message.

    Forward-only state machine: sending -> sent -> delivered -> read.
    Skipping ahead is allowed, moving backward is not.
    """
    SENDING = "sending"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"

    def can_transition_to(self, new_status: "MessageStatus") -> bool:
        order = list(MessageStatus)
        return order.index(new_status) >= order.index(self)


class MessageType(Enum):
    """Message kinds. Each kind carries its own payload type."""
    TEXT = "text"
    FILE = "file"
    SYSTEM = "system"
    EMERGENCY = "emergency"


class SessionStatus(Enum):
    """Chat session lifecycle status."""
    ACTIVE = "active"
    TRANSFERRED = "transferred"
    CLOSED = "closed"
    EMERGENCY = "emergency"


class ParticipantType(Enum):
    USER = "user"
    SPECIALIST = "specialist"
    SYSTEM = "system"


@dataclass(frozen=True)
class ChatParticipant:
    """Sender descriptor attached to every message."""
    participant_id: str
    name: str
    participant_type: ParticipantType = ParticipantType.USER
    is_online: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.participant_id,
            "name": self.name,
            "type": self.participant_type.value,
            "is_online": self.is_online,
        }


@dataclass(frozen=True)
class TextPayload:
    """Plain text message. No extra fields."""
    kind = MessageType.TEXT

    def to_dict(self) -> Dict[str, Any]:
        return {}


@dataclass(frozen=True)
class FilePayload:
    """File attachment reference. The file itself lives outside this core."""
    file_name: str
    file_size: Optional[int] = None
    file_type: Optional[str] = None
    mime_type: Optional[str] = None
    kind = MessageType.FILE

    def __post_init__(self):
        if not self.file_name:
            raise InvalidInput("File messages require a file_name")
        if self.file_size is not None and self.file_size < 0:
            raise InvalidInput(f"File size must be non-negative, got {self.file_size}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file_name": self.file_name,
            "file_size": self.file_size,
            "file_type": self.file_type,
            "mime_type": self.mime_type,
        }


@dataclass(frozen=True)
class SystemPayload:
    """Generated notice such as a participant joining."""
    action: str = "notice"
    kind = MessageType.SYSTEM

    def to_dict(self) -> Dict[str, Any]:
        return {"action": self.action}


@dataclass(frozen=True)
class EmergencyPayload:
    """User-raised emergency message (panic button)."""
    location: Optional[str] = None
    callback_phone: Optional[str] = None
    kind = MessageType.EMERGENCY

    def to_dict(self) -> Dict[str, Any]:
        return {"location": self.location, "callback_phone": self.callback_phone}


MessagePayload = Union[TextPayload, FilePayload, SystemPayload, EmergencyPayload]

# Accepted metadata keys per message type, mapped to payload field names.
# Both the camelCase wire spelling and the snake_case spelling are accepted.
_PAYLOAD_FIELDS = {
    MessageType.TEXT: (TextPayload, {}),
    MessageType.FILE: (FilePayload, {
        "fileName": "file_name", "file_name": "file_name",
        "fileSize": "file_size", "file_size": "file_size",
        "fileType": "file_type", "file_type": "file_type",
        "mimeType": "mime_type", "mime_type": "mime_type",
    }),
    MessageType.SYSTEM: (SystemPayload, {"action": "action"}),
    MessageType.EMERGENCY: (EmergencyPayload, {
        "location": "location",
        "callbackPhone": "callback_phone", "callback_phone": "callback_phone",
    }),
}


def build_payload(
    message_type: MessageType,
    metadata: Optional[Mapping[str, Any]] = None,
) -> MessagePayload:
    """Build the closed payload variant for a message type.

    Raises:
        InvalidInput: If metadata carries keys the message type does not define
    """
    payload_cls, allowed = _PAYLOAD_FIELDS[message_type]
    metadata = metadata or {}
    unknown = sorted(set(metadata) - set(allowed))
    if unknown:
        raise InvalidInput(
            f"Metadata fields {unknown} are not valid for {message_type.value} messages"
        )
    return payload_cls(**{allowed[key]: value for key, value in metadata.items()})


@dataclass(frozen=True)
class ChatMessage:
    """A single accepted chat message.

    Identity and session binding never change. Crisis level is computed once
    at ingestion; only the delivery status is ever replaced.
    """
    message_id: str
    session_id: str
    sender_id: str
    sender: ChatParticipant
    content: str
    crisis_level: CrisisLevel
    payload: MessagePayload = field(default_factory=TextPayload)
    status: MessageStatus = MessageStatus.SENT
    is_encrypted: bool = False
    reply_to_id: Optional[str] = None
    timestamp: datetime = field(default_factory=utcnow)

    @property
    def message_type(self) -> MessageType:
        return self.payload.kind

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "id": self.message_id,
            "session_id": self.session_id,
            "sender_id": self.sender_id,
            "sender": self.sender.to_dict(),
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
            "status": self.status.value,
            "message_type": self.message_type.value,
            "crisis_level": self.crisis_level.value,
            "is_encrypted": self.is_encrypted,
            "reply_to_id": self.reply_to_id,
            "metadata": self.payload.to_dict(),
        }


@dataclass(frozen=True)
class SessionSummary:
    """Compact session view returned alongside every ingested message."""
    session_id: str
    crisis_level: CrisisLevel
    priority: int
    status: SessionStatus
    created_at: datetime
    updated_at: datetime
    message_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.session_id,
            "crisis_level": self.crisis_level.value,
            "priority": self.priority,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "message_count": self.message_count,
        }


@dataclass(frozen=True)
class ChatSession:
    """Point-in-time snapshot of a chat session.

    Returned by the Session Store. Holding one never lets a caller
    mutate the stored session.
    """
    session_id: str
    owner_id: Optional[str]
    is_anonymous: bool
    status: SessionStatus
    crisis_level: CrisisLevel
    priority: int
    created_at: datetime
    updated_at: datetime
    language: str = "en"
    participants: Tuple[ChatParticipant, ...] = ()
    messages: Tuple[ChatMessage, ...] = ()

    @property
    def message_count(self) -> int:
        return len(self.messages)

    @property
    def has_registered_owner(self) -> bool:
        """True when a non-anonymous owner controls access."""
        return self.owner_id is not None and not self.is_anonymous

    def summary(self) -> SessionSummary:
        return SessionSummary(
            session_id=self.session_id,
            crisis_level=self.crisis_level,
            priority=self.priority,
            status=self.status,
            created_at=self.created_at,
            updated_at=self.updated_at,
            message_count=self.message_count,
        )

    def to_dict(self, include_messages: bool = True) -> Dict[str, Any]:
        result = {
            "id": self.session_id,
            "owner_id": self.owner_id,
            "is_anonymous": self.is_anonymous,
            "status": self.status.value,
            "crisis_level": self.crisis_level.value,
            "priority": self.priority,
            "language": self.language,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "participants": [p.to_dict() for p in self.participants],
        }
        if include_messages:
            result["messages"] = [m.to_dict() for m in self.messages]
        return result


class EscalationSource(Enum):
    """What raised an escalation."""
    KEYWORD = "keyword"
    MANUAL = "manual"


class EscalationStatus(Enum):
    PENDING = "pending"
    CONTACTED = "contacted"
    RESOLVED = "resolved"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class EmergencyServices:
    """Emergency channels an escalation asks the external service to engage."""
    police: bool = False
    ambulance: bool = False
    crisis_team: bool = False

    @classmethod
    def for_level(cls, level: CrisisLevel) -> "EmergencyServices":
        """Police is never flagged automatically; a human decides that."""
        if level == CrisisLevel.CRITICAL:
            return cls(ambulance=True, crisis_team=True)
        if level == CrisisLevel.HIGH:
            return cls(crisis_team=True)
        return cls()

    def to_dict(self) -> Dict[str, bool]:
        return {
            "police": self.police,
            "ambulance": self.ambulance,
            "crisis_team": self.crisis_team,
        }


@dataclass(frozen=True)
class EscalationRecord:
    """Immutable escalation handed to the emergency notification service.

    Carries a bounded excerpt, never the full message content.
    """
    escalation_id: str
    session_id: str
    crisis_level: CrisisLevel
    reason: str
    excerpt: str
    session_status: SessionStatus
    triggered_by: EscalationSource = EscalationSource.KEYWORD
    message_id: Optional[str] = None
    emergency_services: EmergencyServices = field(default_factory=EmergencyServices)
    status: EscalationStatus = EscalationStatus.PENDING
    assigned_specialist_id: Optional[str] = None
    timestamp: datetime = field(default_factory=utcnow)

    def to_kinesis_payload(self) -> Dict[str, Any]:
        """Convert to Kinesis record payload."""
        return {
            "event_id": self.escalation_id,
            "event_type": "chat.crisis.escalated",
            "timestamp": self.timestamp.isoformat(),
            "source": "chat-engine",
            "data": {
                "session_id": self.session_id,
                "message_id": self.message_id,
                "crisis_level": self.crisis_level.value,
                "reason": self.reason,
                "excerpt": self.excerpt,
                "triggered_by": self.triggered_by.value,
                "session_status": self.session_status.value,
                "emergency_services": self.emergency_services.to_dict(),
                "status": self.status.value,
                "assigned_specialist_id": self.assigned_specialist_id,
            },
        }
