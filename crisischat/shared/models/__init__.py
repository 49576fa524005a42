"""Shared domain models for the crisis chat engine."""
from .chat import (
    CrisisLevel,
    MessageStatus,
    MessageType,
    SessionStatus,
    ParticipantType,
    ChatParticipant,
    TextPayload,
    FilePayload,
    SystemPayload,
    EmergencyPayload,
    MessagePayload,
    build_payload,
    ChatMessage,
    ChatSession,
    SessionSummary,
    EscalationSource,
    EscalationStatus,
    EmergencyServices,
    EscalationRecord,
    utcnow,
)

__all__ = [
    "CrisisLevel",
    "MessageStatus",
    "MessageType",
    "SessionStatus",
    "ParticipantType",
    "ChatParticipant",
    "TextPayload",
    "FilePayload",
    "SystemPayload",
    "EmergencyPayload",
    "MessagePayload",
    "build_payload",
    "ChatMessage",
    "ChatSession",
    "SessionSummary",
    "EscalationSource",
    "EscalationStatus",
    "EmergencyServices",
    "EscalationRecord",
    "utcnow",
]
