"""Crisis classifier - deterministic keyword matching.

classify() is a pure function of the message text: no I/O, no clock, no
state. The ingestion pipeline depends only on that single method, so the
lexicon scan can be swapped for another strategy behind the same contract.
"""
import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence

from crisischat.shared.models import CrisisLevel
from .lexicon import CRISIS_LEXICON, LEXICON_VERSION, LexiconEntry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Classification:
    """Explainable classification result.

    Immutable - results cannot be modified after creation.
    """
    level: CrisisLevel
    confidence: float = 0.0
    matched_phrases: List[str] = field(default_factory=list)
    deciding_phrase: Optional[str] = None
    lexicon_version: str = ""


class CrisisClassifier:
    """Maps message text to a single crisis level.

    Resolution rule: among all matching phrases, the level of the
    highest-confidence match wins. Not the first match and not the
    most severe level. No match means LOW.
    """

    def __init__(
        self,
        lexicon: Optional[Iterable[LexiconEntry]] = None,
        lexicon_version: str = LEXICON_VERSION,
    ):
        """Initialize classifier.

        Args:
            lexicon: Ordered lexicon entries (defaults to CRISIS_LEXICON)
            lexicon_version: Version tag reported with every classification
        """
        self._lexicon: Sequence[LexiconEntry] = tuple(
            CRISIS_LEXICON if lexicon is None else lexicon
        )
        self.lexicon_version = lexicon_version

        logger.info(
            "CRISIS_CLASSIFIER_INITIALIZED",
            extra={
                "lexicon_version": lexicon_version,
                "phrase_count": len(self._lexicon),
            }
        )

    def classify(self, text: str) -> CrisisLevel:
        """Classify message text into a crisis level.

        Args:
            text: Raw message content

        Returns:
            CrisisLevel of the highest-confidence matching phrase, or LOW
        """
        return self.explain(text).level

    def explain(self, text: str) -> Classification:
        """Classify and report which phrases matched."""
        if not text or not text.strip():
            return Classification(
                level=CrisisLevel.LOW,
                lexicon_version=self.lexicon_version,
            )

        lowered = text.lower()
        matched: List[str] = []
        best: Optional[LexiconEntry] = None

        for entry in self._lexicon:
            if entry.phrase in lowered:
                matched.append(entry.phrase)
                # Strictly greater: on equal confidence the earlier entry stays
                if best is None or entry.confidence > best.confidence:
                    best = entry

        if best is None:
            return Classification(
                level=CrisisLevel.LOW,
                lexicon_version=self.lexicon_version,
            )

        return Classification(
            level=best.level,
            confidence=best.confidence,
            matched_phrases=matched,
            deciding_phrase=best.phrase,
            lexicon_version=self.lexicon_version,
        )


_default_classifier: Optional[CrisisClassifier] = None


def classify(text: str) -> CrisisLevel:
    """Module-level convenience using the default lexicon."""
    global _default_classifier
    if _default_classifier is None:
        _default_classifier = CrisisClassifier()
    return _default_classifier.classify(text)
