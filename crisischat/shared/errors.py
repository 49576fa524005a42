"""Error taxonomy for the chat engine.

Every recoverable failure is a ChatEngineError subclass so transport
adapters can map it to a user-facing response. StoreInvariantViolation
sits outside that hierarchy: it signals a store bug and must never be
caught by a generic ChatEngineError handler.
"""


class ChatEngineError(Exception):
    """Base exception for recoverable chat engine errors."""
    pass


class InvalidInput(ChatEngineError):
    """Required field missing or malformed. Caller may resubmit."""
    pass


class InvalidStatusTransition(InvalidInput):
    """Delivery status update would move a message backward."""
    pass


class SessionNotFound(ChatEngineError):
    """Referenced session identifier does not exist."""

    def __init__(self, session_id: str):
        super().__init__(f"Chat session not found: {session_id}")
        self.session_id = session_id


class MessageNotFound(ChatEngineError):
    """Referenced message identifier does not exist."""

    def __init__(self, message_id: str):
        super().__init__(f"Message not found: {message_id}")
        self.message_id = message_id


class Unauthorized(ChatEngineError):
    """Actor may not read or mutate the requested session or message."""

    def __init__(self, resource: str, resource_id: str):
        super().__init__(f"Unauthorized access to {resource}: {resource_id}")
        self.resource = resource
        self.resource_id = resource_id


class NotificationDispatchFailed(ChatEngineError):
    """Escalation hand-off was not acknowledged within its timeout.

    The message and session state are already committed when this is
    reported; an operator must follow up on the escalation.
    """

    def __init__(self, escalation_id: str, reason: str):
        super().__init__(f"Escalation {escalation_id} dispatch failed: {reason}")
        self.escalation_id = escalation_id
        self.reason = reason


class StoreInvariantViolation(RuntimeError):
    """Fatal: identifier collision or corrupted message sequence."""
    pass
