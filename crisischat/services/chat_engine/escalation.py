"""Escalation Trigger - moves a session onto the crisis path.

Invoked synchronously by the ingestion pipeline for every HIGH or
CRITICAL message, and by manual escalation. The external hand-off is
queued before escalate() returns but never waited on.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from crisischat.shared.errors import SessionNotFound
from crisischat.shared.models import (
    CrisisLevel,
    EmergencyServices,
    EscalationRecord,
    EscalationSource,
    SessionStatus,
)
from crisischat.shared.utils import IdGenerator, bounded_excerpt
from .notifier import DispatchTicket, EscalationNotifier
from .session_store import SessionStore
from .specialists import SpecialistDirectory

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Escalation:
    """An escalation record plus the handle on its hand-off."""
    record: EscalationRecord
    ticket: DispatchTicket

    def to_dict(self) -> dict:
        return {
            "escalation_id": self.record.escalation_id,
            "crisis_level": self.record.crisis_level.value,
            "session_status": self.record.session_status.value,
            "triggered_by": self.record.triggered_by.value,
            "emergency_services": self.record.emergency_services.to_dict(),
            "assigned_specialist_id": self.record.assigned_specialist_id,
            "dispatch_status": self.ticket.status.value,
        }


class EscalationTrigger:
    """Applies the escalation status policy and emits EscalationRecords.

    Status policy:
    - CRITICAL always sets the session to EMERGENCY
    - HIGH sets EMERGENCY only when high_sets_emergency is True
    - Status is never downgraded by an escalation
    """

    def __init__(
        self,
        store: SessionStore,
        notifier: EscalationNotifier,
        specialists: Optional[SpecialistDirectory] = None,
        high_sets_emergency: bool = False,
        excerpt_length: int = 100,
        id_generator: Optional[IdGenerator] = None,
    ):
        """Initialize trigger with dependencies.

        Args:
            store: Session store owning session status
            notifier: Hand-off to the emergency notification service
            specialists: Optional directory for specialist assignment
            high_sets_emergency: Escalation status policy for HIGH
            excerpt_length: Maximum characters of content in a record
            id_generator: Source of escalation identifiers
        """
        self.store = store
        self.notifier = notifier
        self.specialists = specialists
        self.high_sets_emergency = high_sets_emergency
        self.excerpt_length = excerpt_length
        self.id_generator = id_generator or IdGenerator()

        logger.info(
            "ESCALATION_TRIGGER_INITIALIZED",
            extra={
                "high_sets_emergency": high_sets_emergency,
                "specialist_routing": specialists is not None,
                "excerpt_length": excerpt_length,
            }
        )

    def target_status(self, level: CrisisLevel, current: SessionStatus) -> SessionStatus:
        if level == CrisisLevel.CRITICAL:
            return SessionStatus.EMERGENCY
        if level == CrisisLevel.HIGH and self.high_sets_emergency:
            return SessionStatus.EMERGENCY
        return current

    def escalate(
        self,
        session_id: str,
        level: CrisisLevel,
        excerpt_source: str,
        reason: str = "Message content analysis",
        message_id: Optional[str] = None,
        triggered_by: EscalationSource = EscalationSource.KEYWORD,
    ) -> Escalation:
        """Escalate a session and hand the record to the notifier.

        Args:
            session_id: Session being escalated (must exist)
            level: Crisis level that triggered the escalation
            excerpt_source: Text the bounded excerpt is cut from
            reason: Human-readable trigger reason
            message_id: Triggering message, if any
            triggered_by: Keyword detection or manual escalation

        Returns:
            Escalation with the record and its dispatch ticket

        Logs:
            - CRISIS_ESCALATION_TRIGGERED: Always (critical)
        """
        with self.store.session_scope(session_id):
            session = self.store.get_session(session_id)
            if session is None:
                raise SessionNotFound(session_id)

            status = self.target_status(level, session.status)
            # Always written so updated_at moves even when status stays
            session = self.store.set_status(session_id, status)

            specialist_id = None
            if self.specialists is not None:
                specialist = self.specialists.assign(level)
                if specialist is not None:
                    session = self.store.add_participant(session_id, specialist.as_participant())
                    specialist_id = specialist.specialist_id

            record = EscalationRecord(
                escalation_id=self.id_generator.next_id("esc"),
                session_id=session_id,
                crisis_level=level,
                reason=reason,
                excerpt=bounded_excerpt(excerpt_source, self.excerpt_length),
                session_status=session.status,
                triggered_by=triggered_by,
                message_id=message_id,
                emergency_services=EmergencyServices.for_level(level),
                assigned_specialist_id=specialist_id,
            )

            logger.critical(
                "CRISIS_ESCALATION_TRIGGERED",
                extra={
                    "escalation_id": record.escalation_id,
                    "session_id": session_id,
                    "message_id": message_id,
                    "crisis_level": level.value,
                    "session_status": session.status.value,
                    "priority": session.priority,
                    "triggered_by": triggered_by.value,
                    "assigned_specialist_id": specialist_id,
                    "action": "EMERGENCY_NOTIFICATION_DISPATCHED",
                }
            )

            # Queued inside the session scope so per-session order holds
            ticket = self.notifier.dispatch(record)

        return Escalation(record=record, ticket=ticket)
