"""Tests for InMemorySessionStore.

Covers lifecycle defaults, the aggregation policies, snapshot isolation,
idempotent delete, the status state machine and per-session ordering
under concurrent appends.
"""
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock

import pytest

from crisischat.shared.errors import (
    InvalidStatusTransition,
    MessageNotFound,
    SessionNotFound,
    StoreInvariantViolation,
)
from crisischat.shared.models import (
    ChatParticipant,
    CrisisLevel,
    MessageStatus,
    ParticipantType,
    SessionStatus,
)
from crisischat.shared.utils import IdGenerator
from crisischat.services.chat_engine import (
    AggregationPolicy,
    InMemorySessionStore,
    MessageDraft,
)


def make_draft(content: str = "hello", level: CrisisLevel = CrisisLevel.LOW, sender_id: str = "user_1"):
    return MessageDraft(
        sender_id=sender_id,
        sender=ChatParticipant(participant_id=sender_id, name="Test User"),
        content=content,
        crisis_level=level,
    )


class TestCreateSession:
    """Tests for session creation."""

    def test_new_session_defaults(self, store):
        session = store.create_session(owner_id="user_1", anonymous=False)

        assert session.status == SessionStatus.ACTIVE
        assert session.crisis_level == CrisisLevel.LOW
        assert session.priority == 1
        assert session.owner_id == "user_1"
        assert session.is_anonymous is False
        assert session.language == "en"
        assert session.messages == ()
        assert session.updated_at >= session.created_at

    def test_anonymous_session_has_no_owner(self, store):
        session = store.create_session()

        assert session.owner_id is None
        assert session.is_anonymous is True

    def test_ids_are_unique(self, store):
        ids = {store.create_session().session_id for _ in range(200)}
        assert len(ids) == 200

    def test_id_collision_is_fatal(self):
        ids = MagicMock(spec=IdGenerator)
        ids.next_id.return_value = "chat_duplicate"
        store = InMemorySessionStore(id_generator=ids)
        store.create_session()

        with pytest.raises(StoreInvariantViolation):
            store.create_session()

    def test_get_unknown_session_returns_none(self, store):
        assert store.get_session("chat_missing") is None


class TestAppendMessage:
    """Tests for appending to a session."""

    def test_append_assigns_identity(self, store):
        session = store.create_session()
        message = store.append_message(session.session_id, make_draft("first"))

        assert message.message_id.startswith("msg_")
        assert message.session_id == session.session_id
        assert message.status == MessageStatus.SENT
        assert store.get_message(message.message_id) == message

    def test_append_preserves_order(self, store):
        session = store.create_session()
        for i in range(5):
            store.append_message(session.session_id, make_draft(f"message {i}"))

        contents = [m.content for m in store.get_session(session.session_id).messages]
        assert contents == [f"message {i}" for i in range(5)]

    def test_append_updates_timestamp(self, store):
        session = store.create_session()
        store.append_message(session.session_id, make_draft())

        updated = store.get_session(session.session_id)
        assert updated.updated_at >= session.updated_at

    def test_append_to_missing_session_raises(self, store):
        with pytest.raises(SessionNotFound):
            store.append_message("chat_missing", make_draft())

    def test_snapshot_is_isolated(self, store):
        """A snapshot taken earlier does not see later appends."""
        session = store.create_session()
        before = store.get_session(session.session_id)
        store.append_message(session.session_id, make_draft())

        assert before.message_count == 0
        assert store.get_session(session.session_id).message_count == 1

    def test_snapshot_cannot_be_mutated(self, store):
        session = store.create_session()
        with pytest.raises(Exception):  # FrozenInstanceError
            session.status = SessionStatus.CLOSED


class TestConcurrentAppends:
    """Per-session linearizability."""

    def test_concurrent_appends_keep_every_message(self, store):
        session = store.create_session()
        count = 100

        with ThreadPoolExecutor(max_workers=16) as pool:
            list(pool.map(
                lambda i: store.append_message(session.session_id, make_draft(f"m{i}")),
                range(count),
            ))

        messages = store.get_session(session.session_id).messages
        assert len(messages) == count
        assert len({m.message_id for m in messages}) == count
        assert {m.content for m in messages} == {f"m{i}" for i in range(count)}

    def test_timestamps_never_regress(self, store):
        session = store.create_session()
        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(
                lambda i: store.append_message(session.session_id, make_draft()),
                range(50),
            ))

        stamps = [m.timestamp for m in store.get_session(session.session_id).messages]
        assert stamps == sorted(stamps)


class TestAggregateCrisisLevel:
    """Aggregation policy and derived priority."""

    def test_priority_follows_level(self, store):
        session = store.create_session()
        expected = {
            CrisisLevel.MEDIUM: 4,
            CrisisLevel.HIGH: 7,
            CrisisLevel.CRITICAL: 10,
        }
        for level, priority in expected.items():
            updated = store.update_aggregate_crisis_level(session.session_id, level)
            assert updated.priority == priority

    def test_low_does_not_change_priority(self, store):
        session = store.create_session()
        updated = store.update_aggregate_crisis_level(session.session_id, CrisisLevel.LOW)

        assert updated.crisis_level == CrisisLevel.LOW
        assert updated.priority == 1

    def test_monotonic_never_downgrades(self, store):
        session = store.create_session()
        store.update_aggregate_crisis_level(session.session_id, CrisisLevel.HIGH)

        after_low = store.update_aggregate_crisis_level(session.session_id, CrisisLevel.LOW)
        after_medium = store.update_aggregate_crisis_level(session.session_id, CrisisLevel.MEDIUM)

        assert after_low.crisis_level == CrisisLevel.HIGH
        assert after_medium.crisis_level == CrisisLevel.HIGH
        assert after_medium.priority == 7

    def test_follow_latest_overwrites_with_non_low(self):
        store = InMemorySessionStore(aggregation_policy=AggregationPolicy.FOLLOW_LATEST)
        session = store.create_session()
        store.update_aggregate_crisis_level(session.session_id, CrisisLevel.HIGH)

        after_low = store.update_aggregate_crisis_level(session.session_id, CrisisLevel.LOW)
        after_medium = store.update_aggregate_crisis_level(session.session_id, CrisisLevel.MEDIUM)

        assert after_low.crisis_level == CrisisLevel.HIGH
        assert after_medium.crisis_level == CrisisLevel.MEDIUM
        assert after_medium.priority == 4

    def test_missing_session_raises(self, store):
        with pytest.raises(SessionNotFound):
            store.update_aggregate_crisis_level("chat_missing", CrisisLevel.HIGH)


class TestDeleteMessage:
    """Delete is idempotent."""

    def test_delete_removes_from_sequence(self, store):
        session = store.create_session()
        keep = store.append_message(session.session_id, make_draft("keep"))
        drop = store.append_message(session.session_id, make_draft("drop"))

        assert store.delete_message(session.session_id, drop.message_id) is True

        remaining = store.get_session(session.session_id).messages
        assert [m.message_id for m in remaining] == [keep.message_id]
        assert store.get_message(drop.message_id) is None

    def test_delete_twice_is_noop(self, store):
        session = store.create_session()
        message = store.append_message(session.session_id, make_draft())

        assert store.delete_message(session.session_id, message.message_id) is True
        assert store.delete_message(session.session_id, message.message_id) is False

    def test_delete_unknown_is_noop(self, store):
        session = store.create_session()
        assert store.delete_message(session.session_id, "msg_missing") is False
        assert store.delete_message("chat_missing", "msg_missing") is False

    def test_delete_from_wrong_session_is_noop(self, store):
        first = store.create_session()
        second = store.create_session()
        message = store.append_message(first.session_id, make_draft())

        assert store.delete_message(second.session_id, message.message_id) is False
        assert store.get_message(message.message_id) is not None


class TestMessageStatus:
    """Forward-only delivery status."""

    def test_forward_transition(self, store):
        session = store.create_session()
        message = store.append_message(session.session_id, make_draft())

        delivered = store.update_message_status(message.message_id, MessageStatus.DELIVERED)
        read = store.update_message_status(message.message_id, MessageStatus.READ)

        assert delivered.status == MessageStatus.DELIVERED
        assert read.status == MessageStatus.READ
        assert store.get_session(session.session_id).messages[0].status == MessageStatus.READ

    def test_skip_forward_allowed(self, store):
        session = store.create_session()
        message = store.append_message(session.session_id, make_draft())

        assert store.update_message_status(message.message_id, MessageStatus.READ).status == MessageStatus.READ

    def test_backward_transition_rejected(self, store):
        session = store.create_session()
        message = store.append_message(session.session_id, make_draft())
        store.update_message_status(message.message_id, MessageStatus.READ)

        with pytest.raises(InvalidStatusTransition):
            store.update_message_status(message.message_id, MessageStatus.DELIVERED)

    def test_same_status_is_noop(self, store):
        session = store.create_session()
        message = store.append_message(session.session_id, make_draft())

        assert store.update_message_status(message.message_id, MessageStatus.SENT) == message

    def test_unknown_message_raises(self, store):
        with pytest.raises(MessageNotFound):
            store.update_message_status("msg_missing", MessageStatus.READ)

    def test_message_identity_unchanged(self, store):
        session = store.create_session()
        message = store.append_message(session.session_id, make_draft())
        updated = store.update_message_status(message.message_id, MessageStatus.DELIVERED)

        assert updated.message_id == message.message_id
        assert updated.session_id == message.session_id
        assert updated.crisis_level == message.crisis_level


class TestParticipantsAndStatus:
    """Participant registration and status changes."""

    def test_participant_added_once(self, store):
        session = store.create_session()
        participant = ChatParticipant("spec_1", "Dr. Example", ParticipantType.SPECIALIST)

        store.add_participant(session.session_id, participant)
        updated = store.add_participant(session.session_id, participant)

        assert updated.participants == (participant,)

    def test_set_status(self, store):
        session = store.create_session()
        updated = store.set_status(session.session_id, SessionStatus.EMERGENCY)

        assert updated.status == SessionStatus.EMERGENCY
        assert updated.updated_at >= session.updated_at

    def test_session_scope_unknown_raises(self, store):
        with pytest.raises(SessionNotFound):
            with store.session_scope("chat_missing"):
                pass

    def test_message_session_id(self, store):
        session = store.create_session()
        message = store.append_message(session.session_id, make_draft())

        assert store.message_session_id(message.message_id) == session.session_id
        assert store.message_session_id("msg_missing") is None

    def test_message_session_id_ignores_session_scope(self, store):
        """Index lookups never wait on a session held by another thread."""
        session = store.create_session()
        message = store.append_message(session.session_id, make_draft())

        with store.session_scope(session.session_id):
            with ThreadPoolExecutor(max_workers=1) as pool:
                future = pool.submit(store.message_session_id, message.message_id)
                assert future.result(timeout=5) == session.session_id
