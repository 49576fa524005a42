"""Access Control Guard for sessions and messages.

Rules:
- A session with a registered owner is readable by that owner only.
- A session without an owner is capability-scoped: holding its id is
  enough to read it.
- A message is readable by its sender, by the registered non-anonymous
  owner of its session, or by any holder of a capability-scoped session.

Denials raise Unauthorized, which stays distinct from not-found errors.
"""
import logging
from typing import Optional

from crisischat.shared.errors import Unauthorized
from crisischat.shared.models import ChatMessage, ChatSession
from crisischat.shared.utils import hash_pii

logger = logging.getLogger(__name__)


class AccessControlGuard:
    """Decides whether an actor may read or mutate a session or message.

    The guard never authenticates; actor ids come from the identity provider.
    An actor id of None means an unauthenticated caller.
    """

    def can_access_session(self, actor_id: Optional[str], session: ChatSession) -> bool:
        if session.owner_id is None:
            return True
        return actor_id is not None and actor_id == session.owner_id

    def can_access_message(
        self,
        actor_id: Optional[str],
        message: ChatMessage,
        session: ChatSession,
    ) -> bool:
        if actor_id is not None and actor_id == message.sender_id:
            return True
        if session.owner_id is None:
            return True
        return (
            session.has_registered_owner
            and actor_id is not None
            and actor_id == session.owner_id
        )

    def require_session(self, actor_id: Optional[str], session: ChatSession) -> None:
        """Raise Unauthorized unless the actor may access the session."""
        if not self.can_access_session(actor_id, session):
            logger.warning(
                "SESSION_ACCESS_DENIED",
                extra={
                    "session_id": session.session_id,
                    "actor_id_hash": hash_pii(actor_id),
                }
            )
            raise Unauthorized("session", session.session_id)

    def require_message(
        self,
        actor_id: Optional[str],
        message: ChatMessage,
        session: ChatSession,
    ) -> None:
        """Raise Unauthorized unless the actor may access the message."""
        if not self.can_access_message(actor_id, message, session):
            logger.warning(
                "MESSAGE_ACCESS_DENIED",
                extra={
                    "session_id": session.session_id,
                    "message_id": message.message_id,
                    "actor_id_hash": hash_pii(actor_id),
                }
            )
            raise Unauthorized("message", message.message_id)
