"""Shared fixtures for chat engine tests."""
from unittest.mock import MagicMock

import pytest

from crisischat.shared.utils import IdGenerator, configure_pii_salt
from crisischat.services.chat_engine import (
    ChatEngine,
    ChatEngineConfig,
    EscalationNotifier,
    InMemorySessionStore,
)


@pytest.fixture(autouse=True)
def setup_pii_salt():
    """Configure PII salt before each test."""
    configure_pii_salt("test_salt_that_is_at_least_32_characters_long")


@pytest.fixture
def kinesis():
    """Kinesis client double that acknowledges every record."""
    client = MagicMock()
    client.put_record.return_value = {
        "ShardId": "shardId-000000000000",
        "SequenceNumber": "49590338271490256608559692538361571095921575989136588898",
    }
    return client


@pytest.fixture
def notifier(kinesis):
    """Enabled notifier wired to the Kinesis double."""
    notifier = EscalationNotifier(stream_name="test-stream", enabled=True, timeout_seconds=2.0)
    notifier._kinesis_client = kinesis
    yield notifier
    notifier.shutdown(wait=True)


@pytest.fixture
def store():
    return InMemorySessionStore(id_generator=IdGenerator())


@pytest.fixture
def engine(notifier):
    """Engine with default policies (monotonic, HIGH keeps status)."""
    return ChatEngine(notifier=notifier, config=ChatEngineConfig())
