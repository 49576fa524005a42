"""Unique identifier generation for sessions, messages and escalations.

Identifiers combine a per-generator monotonic counter with a random UUID
fragment, so two ids from the same generator can never be equal and ids
from different processes collide only with UUID probability.
"""
import itertools
import threading
import uuid


class IdGenerator:
    """Thread-safe prefixed identifier source.

    Example:
        >>> ids = IdGenerator()
        >>> ids.next_id("chat")
        'chat_000001_3f9a0c1b2d4e'
    """

    def __init__(self, start: int = 1):
        self._counter = itertools.count(start)
        self._lock = threading.Lock()

    def next_id(self, prefix: str) -> str:
        with self._lock:
            sequence = next(self._counter)
        return f"{prefix}_{sequence:06d}_{uuid.uuid4().hex[:12]}"
