"""Chat Engine: crisis-aware chat sessions.

Every inbound message is classified before it is stored, and every HIGH
or CRITICAL message escalates its session before ingest returns.

Components:
- session_store.py: SessionStore interface and InMemorySessionStore
- ingestion.py: MessageIngestionPipeline (validate, classify, append, escalate)
- escalation.py: EscalationTrigger and the status policy
- notifier.py: EscalationNotifier (Kinesis hand-off to emergency services)
- access.py: AccessControlGuard
- specialists.py: SpecialistDirectory for routing escalations
- engine.py: ChatEngine facade
- http_handler.py: Flask endpoints

Usage:
    import os
    from crisischat.shared.utils import configure_pii_salt
    from crisischat.services.chat_engine import ChatEngine, EscalationNotifier, IngestRequest
    configure_pii_salt(os.environ["PII_HASH_SALT"])
    engine = ChatEngine(notifier=EscalationNotifier())
    result = engine.ingest(IngestRequest(content="I am scared", sender_name="Anon1"))
"""

from .access import AccessControlGuard
from .config import HIGH_SETS_EMERGENCY, AggregationPolicy, ChatEngineConfig
from .engine import ChatEngine
from .escalation import Escalation, EscalationTrigger
from .ingestion import IngestRequest, IngestResult, MessageIngestionPipeline
from .notifier import DispatchStatus, DispatchTicket, EscalationNotifier
from .session_store import InMemorySessionStore, MessageDraft, SessionStore
from .specialists import Specialist, SpecialistDirectory

__all__ = [
    "AccessControlGuard",
    "HIGH_SETS_EMERGENCY",
    "AggregationPolicy",
    "ChatEngineConfig",
    "ChatEngine",
    "Escalation",
    "EscalationTrigger",
    "IngestRequest",
    "IngestResult",
    "MessageIngestionPipeline",
    "DispatchStatus",
    "DispatchTicket",
    "EscalationNotifier",
    "InMemorySessionStore",
    "MessageDraft",
    "SessionStore",
    "Specialist",
    "SpecialistDirectory",
]
