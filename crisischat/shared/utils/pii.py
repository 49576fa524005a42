"""PII handling for chat logs.

Sender and owner identifiers are hashed before they reach any log line.
Message content is never logged; escalations carry a bounded excerpt only.
"""
import hashlib
import logging
from typing import Optional

logger = logging.getLogger(__name__)


# Loaded from the deployment secret store at startup
_PII_SALT: Optional[str] = None

ANONYMOUS_ACTOR = "anonymous"


def configure_pii_salt(salt: str) -> None:
    """Configure the salt used to hash sender and owner identifiers.

    Must be called during application startup before any identifier is logged.

    Args:
        salt: Secret salt value, at least 32 characters

    Raises:
        ValueError: If salt is empty or too short
    """
    global _PII_SALT
    if not salt or len(salt) < 32:
        logger.critical(
            "PII_SALT_CONFIGURATION_FAILED",
            extra={"reason": "Salt too short or empty", "min_length": 32}
        )
        raise ValueError("PII salt must be at least 32 characters")

    _PII_SALT = salt
    logger.info("PII_SALT_CONFIGURED", extra={"salt_length": len(salt)})


def is_pii_salt_configured() -> bool:
    return _PII_SALT is not None


def hash_pii(value: Optional[str]) -> str:
    """Hash an identifier for safe logging.

    Anonymous (missing) identifiers map to a fixed marker instead of a hash.

    Raises:
        RuntimeError: If the PII salt has not been configured
    """
    if value is None:
        return ANONYMOUS_ACTOR
    if _PII_SALT is None:
        logger.critical(
            "PII_HASH_FAILED",
            extra={"reason": "Salt not configured", "action": "call configure_pii_salt()"}
        )
        raise RuntimeError("PII salt not configured. Call configure_pii_salt() first.")

    salted = f"{_PII_SALT}{value}"
    return hashlib.sha256(salted.encode()).hexdigest()


def hash_text_for_audit(text: str) -> str:
    """SHA-256 fingerprint of message text, for audit correlation."""
    return hashlib.sha256(text.encode()).hexdigest()


def bounded_excerpt(text: str, max_length: int = 100) -> str:
    """Truncate text for escalation records.

    Whitespace is collapsed so the excerpt stays on one line. Truncated
    excerpts end with an ellipsis marker.
    """
    if max_length <= 0:
        return ""
    collapsed = " ".join(text.split())
    if len(collapsed) <= max_length:
        return collapsed
    return collapsed[:max_length].rstrip() + "..."
