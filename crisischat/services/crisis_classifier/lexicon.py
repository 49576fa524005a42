"""Crisis lexicon: phrases mapped to a crisis level and confidence.

Matching is case-insensitive substring containment. When several phrases
match, the one with the highest confidence decides the level; on equal
confidence the earlier entry wins.
"""
from dataclasses import dataclass
from typing import Tuple

from crisischat.shared.models import CrisisLevel


@dataclass(frozen=True)
class LexiconEntry:
    """A single crisis phrase."""
    phrase: str
    level: CrisisLevel
    confidence: float       # 0.0 to 1.0

    def __post_init__(self):
        if not self.phrase or not self.phrase.strip():
            raise ValueError("Lexicon phrase must not be empty")
        if self.phrase != self.phrase.lower():
            raise ValueError(f"Lexicon phrase must be lowercase, got {self.phrase!r}")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Confidence must be 0.0-1.0, got {self.confidence}")


# Version tracking for audit trail
LEXICON_VERSION = "2026.10.19"

CRISIS_LEXICON: Tuple[LexiconEntry, ...] = (
    # ==========================================================================
    # SUICIDAL LANGUAGE (critical - emergency path)
    # ==========================================================================
    LexiconEntry("suicide", CrisisLevel.CRITICAL, 0.9),
    LexiconEntry("kill myself", CrisisLevel.CRITICAL, 0.95),
    LexiconEntry("end it all", CrisisLevel.CRITICAL, 0.9),

    # ==========================================================================
    # SELF-HARM, ABUSE AND VIOLENCE DISCLOSURE
    # ==========================================================================
    LexiconEntry("hurt myself", CrisisLevel.HIGH, 0.85),
    LexiconEntry("domestic violence", CrisisLevel.HIGH, 0.9),
    LexiconEntry("rape", CrisisLevel.HIGH, 0.85),
    LexiconEntry("abuse", CrisisLevel.HIGH, 0.8),
    LexiconEntry("assault", CrisisLevel.HIGH, 0.8),

    # ==========================================================================
    # FEAR AND REQUESTS FOR HELP
    # ==========================================================================
    LexiconEntry("threatened", CrisisLevel.MEDIUM, 0.7),
    LexiconEntry("scared", CrisisLevel.MEDIUM, 0.7),
    LexiconEntry("danger", CrisisLevel.MEDIUM, 0.65),
    LexiconEntry("help", CrisisLevel.MEDIUM, 0.6),
)
