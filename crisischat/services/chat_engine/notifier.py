"""Escalation notifier - hands escalation records to the emergency service.

Publishes escalation events to a Kinesis stream consumed by specialist
routing and emergency-services integration.

Failure Handling:
    - Dispatch never blocks the ingesting caller on delivery
    - Every failure (disabled publishing, no client, error, timeout) is
      logged at CRITICAL and reported on the DispatchTicket
    - Message and session state are never rolled back by a failed dispatch
"""
import json
import logging
import os
import threading
import zlib
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from enum import Enum
from typing import Callable, List, Optional

from crisischat.shared.errors import NotificationDispatchFailed
from crisischat.shared.models import EscalationRecord

logger = logging.getLogger(__name__)


FailureCallback = Callable[[EscalationRecord, NotificationDispatchFailed], None]


class DispatchStatus(Enum):
    PENDING = "pending"
    ACKNOWLEDGED = "acknowledged"
    FAILED = "failed"


class DispatchTicket:
    """Handle on one escalation hand-off.

    The caller gets this back immediately; wait() is optional and bounded.
    """

    def __init__(
        self,
        escalation_id: str,
        future: Future,
        timeout_seconds: float,
        on_timeout: Optional[Callable[[NotificationDispatchFailed], None]] = None,
    ):
        self.escalation_id = escalation_id
        self.timeout_seconds = timeout_seconds
        self._future = future
        self._on_timeout = on_timeout

    @property
    def status(self) -> DispatchStatus:
        if not self._future.done():
            return DispatchStatus.PENDING
        if self._future.exception() is not None:
            return DispatchStatus.FAILED
        return DispatchStatus.ACKNOWLEDGED

    @property
    def error(self) -> Optional[NotificationDispatchFailed]:
        if not self._future.done():
            return None
        return self._future.exception()

    def wait(self) -> None:
        """Block until acknowledged, at most timeout_seconds.

        Raises:
            NotificationDispatchFailed: On failure or if no acknowledgement
                arrives in time
        """
        try:
            self._future.result(timeout=self.timeout_seconds)
        except FutureTimeoutError:
            error = NotificationDispatchFailed(
                self.escalation_id,
                f"not acknowledged within {self.timeout_seconds}s",
            )
            logger.critical(
                "ESCALATION_DISPATCH_TIMEOUT",
                extra={
                    "escalation_id": self.escalation_id,
                    "timeout_seconds": self.timeout_seconds,
                    "action": "MANUAL_REVIEW_REQUIRED",
                }
            )
            if self._on_timeout is not None:
                self._on_timeout(error)
            raise error from None

    @classmethod
    def failed(cls, escalation_id: str, error: NotificationDispatchFailed) -> "DispatchTicket":
        future: Future = Future()
        future.set_exception(error)
        return cls(escalation_id, future, timeout_seconds=0.0)


class EscalationNotifier:
    """Publishes escalation records to Kinesis.

    Dispatch queues are single-threaded executors sharded by session id,
    so escalations of one session are delivered in the order they were
    raised.
    """

    def __init__(
        self,
        stream_name: str = "crisis-chat-escalations",
        enabled: bool = True,
        region: Optional[str] = None,
        timeout_seconds: float = 5.0,
        workers: int = 4,
        on_failure: Optional[FailureCallback] = None,
    ):
        """Initialize notifier.

        Args:
            stream_name: Kinesis stream name
            enabled: Whether publishing is enabled. Disabled publishing
                still reports every escalation as a failed dispatch.
            region: AWS region (defaults to AWS_REGION env var)
            timeout_seconds: Connect/read timeout and acknowledgement bound
            workers: Number of dispatch queues
            on_failure: Operator hook called for every failed dispatch
        """
        self.stream_name = stream_name
        self.enabled = enabled
        self.region = region or os.getenv("AWS_REGION", "us-east-1")
        self.timeout_seconds = timeout_seconds
        self.on_failure = on_failure
        self._kinesis_client = None
        self._client_lock = threading.Lock()
        self._queues: List[ThreadPoolExecutor] = [
            ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"escalation-dispatch-{i}")
            for i in range(max(1, workers))
        ]

        logger.info(
            "ESCALATION_NOTIFIER_INITIALIZED",
            extra={
                "stream_name": stream_name,
                "enabled": enabled,
                "region": self.region,
                "timeout_seconds": timeout_seconds,
                "workers": len(self._queues),
            }
        )

    @property
    def kinesis_client(self):
        """Lazy initialization of Kinesis client with bounded timeouts."""
        with self._client_lock:
            if self._kinesis_client is None and self.enabled:
                try:
                    import boto3
                    from botocore.config import Config

                    self._kinesis_client = boto3.client(
                        "kinesis",
                        region_name=self.region,
                        config=Config(
                            connect_timeout=self.timeout_seconds,
                            read_timeout=self.timeout_seconds,
                            retries={"max_attempts": 0},
                        ),
                    )
                except Exception as e:
                    logger.error(
                        "KINESIS_CLIENT_INIT_FAILED",
                        extra={"error": str(e), "error_type": type(e).__name__}
                    )
            return self._kinesis_client

    def _queue_for(self, session_id: str) -> ThreadPoolExecutor:
        return self._queues[zlib.crc32(session_id.encode()) % len(self._queues)]

    def dispatch(self, record: EscalationRecord) -> DispatchTicket:
        """Queue an escalation for delivery and return without waiting.

        The record is queued (or its failure recorded) before this returns,
        so no escalation is silently skipped.
        """
        if not self.enabled:
            return self._fail_now(record, "publishing_disabled")

        try:
            future = self._queue_for(record.session_id).submit(self._publish, record)
        except RuntimeError as e:
            # Executor already shut down
            return self._fail_now(record, f"dispatch_queue_unavailable: {e}")

        future.add_done_callback(lambda done: self._report_outcome(record, done))

        logger.info(
            "ESCALATION_DISPATCH_QUEUED",
            extra={
                "escalation_id": record.escalation_id,
                "session_id": record.session_id,
                "crisis_level": record.crisis_level.value,
            }
        )
        return DispatchTicket(
            record.escalation_id,
            future,
            self.timeout_seconds,
            on_timeout=lambda error: self._record_failure(record, error),
        )

    def _publish(self, record: EscalationRecord) -> None:
        payload = record.to_kinesis_payload()
        client = self.kinesis_client
        if client is None:
            raise NotificationDispatchFailed(record.escalation_id, "kinesis_client_unavailable")

        try:
            response = client.put_record(
                StreamName=self.stream_name,
                Data=json.dumps(payload),
                PartitionKey=record.session_id,  # Same session -> same shard
            )
        except Exception as e:
            raise NotificationDispatchFailed(
                record.escalation_id, f"{type(e).__name__}: {e}"
            ) from e

        logger.critical(
            "ESCALATION_PUBLISHED",
            extra={
                "escalation_id": record.escalation_id,
                "session_id": record.session_id,
                "crisis_level": record.crisis_level.value,
                "shard_id": response.get("ShardId"),
                "sequence_number": response.get("SequenceNumber"),
            }
        )

    def _fail_now(self, record: EscalationRecord, reason: str) -> DispatchTicket:
        error = NotificationDispatchFailed(record.escalation_id, reason)
        self._record_failure(record, error)
        return DispatchTicket.failed(record.escalation_id, error)

    def _report_outcome(self, record: EscalationRecord, future: Future) -> None:
        error = future.exception()
        if error is None:
            return
        if not isinstance(error, NotificationDispatchFailed):
            error = NotificationDispatchFailed(record.escalation_id, repr(error))
        self._record_failure(record, error)

    def _record_failure(
        self,
        record: EscalationRecord,
        error: NotificationDispatchFailed,
    ) -> None:
        # A failed crisis notification is never a soft error
        logger.critical(
            "ESCALATION_DISPATCH_FAILED",
            extra={
                "escalation_id": record.escalation_id,
                "session_id": record.session_id,
                "crisis_level": record.crisis_level.value,
                "reason": error.reason,
                "action": "MANUAL_REVIEW_REQUIRED",
                "payload": json.dumps(record.to_kinesis_payload()),
            }
        )
        if self.on_failure is not None:
            try:
                self.on_failure(record, error)
            except Exception as e:
                logger.error(
                    "ESCALATION_FAILURE_HOOK_ERROR",
                    extra={
                        "escalation_id": record.escalation_id,
                        "error": str(e),
                        "error_type": type(e).__name__,
                    }
                )

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting escalations and optionally drain queued ones."""
        for queue in self._queues:
            queue.shutdown(wait=wait)
        logger.info("ESCALATION_NOTIFIER_SHUTDOWN", extra={"drained": wait})
