"""Crisis specialist directory and assignment scoring."""
import logging
import threading
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Optional, Tuple

from crisischat.shared.models import ChatParticipant, CrisisLevel, ParticipantType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Specialist:
    """A crisis intervention specialist who can join escalated sessions."""
    specialist_id: str
    name: str
    specialities: Tuple[str, ...] = ()
    languages: Tuple[str, ...] = ("en",)
    is_available: bool = True
    is_online: bool = True
    current_chats: int = 0
    max_concurrent_chats: int = 4
    response_time_seconds: int = 60

    @property
    def free_slots(self) -> int:
        return max(0, self.max_concurrent_chats - self.current_chats)

    @property
    def can_take_chat(self) -> bool:
        return self.is_available and self.is_online and self.free_slots > 0

    def as_participant(self) -> ChatParticipant:
        return ChatParticipant(
            participant_id=self.specialist_id,
            name=self.name,
            participant_type=ParticipantType.SPECIALIST,
            is_online=self.is_online,
        )


class SpecialistDirectory:
    """Tracks specialist availability and picks one for an escalation.

    Scoring (higher wins, earlier registration wins ties):
    - base 10
    - +5 for domestic_abuse speciality on HIGH or CRITICAL sessions
    - +max(0, 60 - average response time in seconds)
    - +2 per free chat slot
    """

    PRIORITY_SPECIALITY = "domestic_abuse"

    def __init__(self, specialists: Optional[Iterable[Specialist]] = None):
        self._specialists: Dict[str, Specialist] = {}
        self._lock = threading.Lock()
        for specialist in specialists or ():
            self._specialists[specialist.specialist_id] = specialist

    def register(self, specialist: Specialist) -> None:
        with self._lock:
            self._specialists[specialist.specialist_id] = specialist

    def get(self, specialist_id: str) -> Optional[Specialist]:
        with self._lock:
            return self._specialists.get(specialist_id)

    def set_online(self, specialist_id: str, online: bool) -> Optional[Specialist]:
        with self._lock:
            specialist = self._specialists.get(specialist_id)
            if specialist is None:
                return None
            specialist = replace(specialist, is_online=online)
            self._specialists[specialist_id] = specialist
            return specialist

    def score(self, specialist: Specialist, level: CrisisLevel) -> int:
        score = 10
        if level.requires_escalation and self.PRIORITY_SPECIALITY in specialist.specialities:
            score += 5
        score += max(0, 60 - specialist.response_time_seconds)
        score += specialist.free_slots * 2
        return score

    def find_available(self, level: CrisisLevel) -> Optional[Specialist]:
        with self._lock:
            return self._best_match(level)

    def _best_match(self, level: CrisisLevel) -> Optional[Specialist]:
        best: Optional[Specialist] = None
        best_score = -1
        for specialist in self._specialists.values():
            if not specialist.can_take_chat:
                continue
            score = self.score(specialist, level)
            if score > best_score:
                best, best_score = specialist, score
        return best

    def assign(self, level: CrisisLevel) -> Optional[Specialist]:
        """Pick the best specialist and reserve one chat slot.

        Returns:
            The updated Specialist, or None if nobody can take the chat
        """
        with self._lock:
            chosen = self._best_match(level)
            if chosen is None:
                logger.warning(
                    "SPECIALIST_UNAVAILABLE",
                    extra={"crisis_level": level.value, "directory_size": len(self._specialists)}
                )
                return None

            current = chosen.current_chats + 1
            chosen = replace(
                chosen,
                current_chats=current,
                is_available=current < chosen.max_concurrent_chats,
            )
            self._specialists[chosen.specialist_id] = chosen

        logger.info(
            "SPECIALIST_ASSIGNED",
            extra={
                "specialist_id": chosen.specialist_id,
                "crisis_level": level.value,
                "current_chats": chosen.current_chats,
                "is_available": chosen.is_available,
            }
        )
        return chosen

    def release(self, specialist_id: str) -> Optional[Specialist]:
        """Free one chat slot, making the specialist available again."""
        with self._lock:
            specialist = self._specialists.get(specialist_id)
            if specialist is None:
                return None
            specialist = replace(
                specialist,
                current_chats=max(0, specialist.current_chats - 1),
                is_available=True,
            )
            self._specialists[specialist_id] = specialist
            return specialist

    def all(self) -> List[Specialist]:
        with self._lock:
            return list(self._specialists.values())
