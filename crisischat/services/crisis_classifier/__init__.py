"""Crisis Classifier: deterministic crisis-level detection for chat messages.

Components:
- lexicon.py: Ordered (phrase, level, confidence) table
- classifier.py: CrisisClassifier with the pure classify() contract

Usage:
    from crisischat.services.crisis_classifier import CrisisClassifier
    classifier = CrisisClassifier()
    level = classifier.classify("I am scared, please help")
"""

from .classifier import Classification, CrisisClassifier, classify
from .lexicon import CRISIS_LEXICON, LEXICON_VERSION, LexiconEntry

__all__ = [
    "Classification",
    "CrisisClassifier",
    "classify",
    "CRISIS_LEXICON",
    "LEXICON_VERSION",
    "LexiconEntry",
]
