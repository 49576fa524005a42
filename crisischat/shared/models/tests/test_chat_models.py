"""Tests for chat domain models."""
import pytest

from crisischat.shared.errors import InvalidInput
from crisischat.shared.models import (
    ChatMessage,
    ChatParticipant,
    CrisisLevel,
    EmergencyPayload,
    EmergencyServices,
    FilePayload,
    MessageStatus,
    MessageType,
    SystemPayload,
    TextPayload,
    build_payload,
)


class TestCrisisLevel:

    def test_priority_mapping(self):
        assert [level.priority for level in CrisisLevel] == [1, 4, 7, 10]

    def test_requires_escalation(self):
        assert CrisisLevel.HIGH.requires_escalation
        assert CrisisLevel.CRITICAL.requires_escalation
        assert not CrisisLevel.MEDIUM.requires_escalation
        assert not CrisisLevel.LOW.requires_escalation

    def test_max(self):
        assert CrisisLevel.HIGH.max(CrisisLevel.LOW) == CrisisLevel.HIGH
        assert CrisisLevel.MEDIUM.max(CrisisLevel.CRITICAL) == CrisisLevel.CRITICAL


class TestMessageStatus:

    @pytest.mark.parametrize("current,new,allowed", [
        (MessageStatus.SENDING, MessageStatus.SENT, True),
        (MessageStatus.SENT, MessageStatus.READ, True),
        (MessageStatus.READ, MessageStatus.READ, True),
        (MessageStatus.READ, MessageStatus.DELIVERED, False),
        (MessageStatus.DELIVERED, MessageStatus.SENDING, False),
    ])
    def test_forward_only(self, current, new, allowed):
        assert current.can_transition_to(new) is allowed


class TestBuildPayload:

    def test_text_without_metadata(self):
        assert build_payload(MessageType.TEXT) == TextPayload()

    def test_file_camel_case_keys(self):
        payload = build_payload(MessageType.FILE, {"fileName": "a.pdf", "fileSize": 10})
        assert payload == FilePayload(file_name="a.pdf", file_size=10)

    def test_file_snake_case_keys(self):
        payload = build_payload(MessageType.FILE, {"file_name": "a.pdf", "mime_type": "application/pdf"})
        assert payload.mime_type == "application/pdf"

    def test_file_requires_name(self):
        with pytest.raises(InvalidInput):
            build_payload(MessageType.FILE, {})

    def test_negative_file_size_rejected(self):
        with pytest.raises(InvalidInput):
            build_payload(MessageType.FILE, {"fileName": "a.pdf", "fileSize": -1})

    def test_unknown_keys_rejected(self):
        with pytest.raises(InvalidInput):
            build_payload(MessageType.TEXT, {"color": "red"})

    def test_system_and_emergency(self):
        assert build_payload(MessageType.SYSTEM, {"action": "joined"}) == SystemPayload(action="joined")
        emergency = build_payload(MessageType.EMERGENCY, {"callbackPhone": "555-0100"})
        assert emergency == EmergencyPayload(callback_phone="555-0100")


class TestChatMessage:

    def test_message_type_follows_payload(self):
        message = ChatMessage(
            message_id="msg_1",
            session_id="chat_1",
            sender_id="user_1",
            sender=ChatParticipant("user_1", "Jane"),
            content="see attached",
            crisis_level=CrisisLevel.LOW,
            payload=FilePayload(file_name="a.pdf"),
        )

        assert message.message_type == MessageType.FILE
        data = message.to_dict()
        assert data["message_type"] == "file"
        assert data["metadata"]["file_name"] == "a.pdf"
        assert data["sender"]["name"] == "Jane"


class TestEmergencyServices:

    def test_police_never_automatic(self):
        for level in CrisisLevel:
            assert EmergencyServices.for_level(level).police is False

    def test_low_and_medium_engage_nothing(self):
        assert EmergencyServices.for_level(CrisisLevel.MEDIUM) == EmergencyServices()
