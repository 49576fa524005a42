"""Shared utilities for the crisis chat engine."""
from .ids import IdGenerator
from .pii import (
    ANONYMOUS_ACTOR,
    bounded_excerpt,
    configure_pii_salt,
    hash_pii,
    is_pii_salt_configured,
    hash_text_for_audit,
)

__all__ = [
    "IdGenerator",
    "ANONYMOUS_ACTOR",
    "bounded_excerpt",
    "configure_pii_salt",
    "hash_pii",
    "is_pii_salt_configured",
    "hash_text_for_audit",
]
