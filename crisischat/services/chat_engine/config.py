"""Chat engine configuration and escalation policies."""
from dataclasses import dataclass
from enum import Enum

from crisischat.services.crisis_classifier import LEXICON_VERSION


class AggregationPolicy(Enum):
    """How a session's aggregate crisis level reacts to a new message level.

    MONOTONIC: never decreases. A session that saw HIGH stays at least HIGH.
    FOLLOW_LATEST: any non-LOW message overwrites the aggregate, LOW leaves it.
    """
    MONOTONIC = "monotonic"
    FOLLOW_LATEST = "follow_latest"


# Whether a HIGH escalation also moves the session to EMERGENCY status.
# CRITICAL always does. Set explicitly per deployment.
HIGH_SETS_EMERGENCY = False


@dataclass(frozen=True)
class ChatEngineConfig:
    """Configuration for session, ingestion and escalation behavior."""

    aggregation_policy: AggregationPolicy = AggregationPolicy.MONOTONIC

    high_sets_emergency: bool = HIGH_SETS_EMERGENCY

    # Escalation records never carry more than this many characters of content
    excerpt_length: int = 100

    # Bound on waiting for the notification service to acknowledge (seconds)
    notification_timeout_seconds: float = 5.0

    # Single-thread dispatch queues, sharded by session id
    dispatch_workers: int = 4

    default_language: str = "en"

    lexicon_version: str = LEXICON_VERSION

    def __post_init__(self):
        if self.excerpt_length <= 0:
            raise ValueError(f"excerpt_length must be positive, got {self.excerpt_length}")
        if self.notification_timeout_seconds <= 0:
            raise ValueError(
                f"notification_timeout_seconds must be positive, "
                f"got {self.notification_timeout_seconds}"
            )
        if self.dispatch_workers < 1:
            raise ValueError(f"dispatch_workers must be at least 1, got {self.dispatch_workers}")
