"""Chat engine HTTP handler - thin JSON adapter over ChatEngine.

Translates request bodies into engine calls and engine errors into
status codes. All crisis logic lives in the engine.

Endpoints:
- GET /health, GET /ready
- POST /chat/messages - Ingest a message
- GET /chat/messages?sessionId=|messageId=&userId= - Read session or message
- PUT /chat/messages - Update delivery status
- DELETE /chat/messages?messageId=&userId= - Delete a message (idempotent)
- POST /chat/sessions/<id>/escalate - Manual escalation
"""
import logging
import os

from flask import Flask, jsonify, request

from crisischat.shared.errors import (
    ChatEngineError,
    InvalidInput,
    MessageNotFound,
    SessionNotFound,
    StoreInvariantViolation,
    Unauthorized,
)
from crisischat.shared.utils import configure_pii_salt
from .config import AggregationPolicy, ChatEngineConfig
from .engine import ChatEngine
from .ingestion import IngestRequest
from .notifier import EscalationNotifier

logger = logging.getLogger(__name__)


_STATUS_BY_ERROR = (
    (InvalidInput, 400),
    (Unauthorized, 403),
    (SessionNotFound, 404),
    (MessageNotFound, 404),
)


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def build_engine_from_env() -> ChatEngine:
    """Build an engine configured from environment variables."""
    config = ChatEngineConfig(
        aggregation_policy=AggregationPolicy(
            os.getenv("CRISIS_AGGREGATION_POLICY", AggregationPolicy.MONOTONIC.value)
        ),
        high_sets_emergency=_env_flag("HIGH_SETS_EMERGENCY", "false"),
        notification_timeout_seconds=float(os.getenv("NOTIFICATION_TIMEOUT_SECONDS", "5.0")),
    )
    notifier = EscalationNotifier(
        stream_name=os.getenv("KINESIS_STREAM_NAME", "crisis-chat-escalations"),
        enabled=_env_flag("ESCALATION_PUBLISHING_ENABLED", "true"),
        timeout_seconds=config.notification_timeout_seconds,
        workers=config.dispatch_workers,
    )
    return ChatEngine(notifier=notifier, config=config)


def create_app(engine: ChatEngine) -> Flask:
    """Create the Flask app serving one engine."""
    app = Flask(__name__)
    app.config["CHAT_ENGINE"] = engine

    @app.errorhandler(ChatEngineError)
    def handle_engine_error(error: ChatEngineError):
        for error_cls, status in _STATUS_BY_ERROR:
            if isinstance(error, error_cls):
                return jsonify({"error": str(error), "kind": type(error).__name__}), status
        logger.error(
            "CHAT_ENGINE_ERROR",
            extra={"error": str(error), "error_type": type(error).__name__}
        )
        return jsonify({"error": "Internal server error"}), 500

    @app.errorhandler(StoreInvariantViolation)
    def handle_invariant_violation(error: StoreInvariantViolation):
        logger.critical(
            "STORE_INVARIANT_VIOLATION",
            extra={"error": str(error), "action": "REQUEST_ABORTED"}
        )
        return jsonify({"error": "Internal server error"}), 500

    @app.route("/health", methods=["GET"])
    def health():
        """Health check endpoint."""
        return jsonify({
            "status": "healthy",
            "service": "chat-engine",
            "lexicon_version": engine.config.lexicon_version,
        }), 200

    @app.route("/ready", methods=["GET"])
    def ready():
        """Readiness check."""
        if engine.notifier is None:
            return jsonify({"status": "not_ready", "reason": "notifier_not_initialized"}), 503
        return jsonify({"status": "ready"}), 200

    @app.route("/chat/messages", methods=["POST"])
    def create_message():
        """Ingest a chat message.

        Request Body:
            {
                "content": "...",
                "senderName": "Anon1",
                "sessionId": "chat_..." (optional),
                "userId": "user_123" (optional),
                "isAnonymous": true,
                "messageType": "text" | "file" | "system" | "emergency",
                "replyToId": "msg_..." (optional),
                "metadata": {...} (optional)
            }

        Response (201):
            {"message": {...}, "session": {"id", "crisis_level", "priority", "status"}}
        """
        data = request.get_json(silent=True)
        if not data:
            raise InvalidInput("Request body required")
        result = engine.ingest(IngestRequest.from_dict(data))
        return jsonify(result.to_dict()), 201

    @app.route("/chat/messages", methods=["GET"])
    def read_messages():
        """Read one message (messageId) or a whole session (sessionId)."""
        session_id = request.args.get("sessionId")
        message_id = request.args.get("messageId")
        user_id = request.args.get("userId")

        if message_id:
            message = engine.get_message(message_id, actor_id=user_id)
            return jsonify({"message": message.to_dict()}), 200

        if session_id:
            session = engine.get_session(session_id, actor_id=user_id)
            return jsonify({
                "session": session.summary().to_dict(),
                "messages": [m.to_dict() for m in session.messages],
            }), 200

        raise InvalidInput("sessionId or messageId parameter required")

    @app.route("/chat/messages", methods=["PUT"])
    def update_message_status():
        """Update delivery status: {"messageId", "status", "userId"}."""
        data = request.get_json(silent=True) or {}
        message_id = data.get("messageId")
        status = data.get("status")
        if not message_id or not status:
            raise InvalidInput("messageId and status are required")
        message = engine.update_status(message_id, status, actor_id=data.get("userId"))
        return jsonify({"message": message.to_dict()}), 200

    @app.route("/chat/messages", methods=["DELETE"])
    def delete_message():
        """Delete a message; unknown ids succeed as a no-op."""
        message_id = request.args.get("messageId")
        if not message_id:
            raise InvalidInput("messageId parameter required")
        deleted = engine.delete_message(message_id, actor_id=request.args.get("userId"))
        return jsonify({"success": True, "deleted": deleted}), 200

    @app.route("/chat/sessions/<session_id>/escalate", methods=["POST"])
    def escalate_session(session_id: str):
        """Manual escalation: {"crisisLevel", "reason", "userId"}."""
        data = request.get_json(silent=True) or {}
        escalation = engine.escalate_manually(
            session_id,
            level=data.get("crisisLevel") or "high",
            reason=data.get("reason") or "",
            actor_id=data.get("userId"),
        )
        return jsonify(escalation.to_dict()), 201

    return app


def create_default_app() -> Flask:
    """App factory for WSGI servers, configured from the environment."""
    configure_pii_salt(
        os.getenv("PII_HASH_SALT", "default_dev_salt_change_in_production_32chars")
    )
    return create_app(build_engine_from_env())
