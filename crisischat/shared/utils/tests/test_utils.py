"""Tests for PII hashing, excerpts and identifier generation."""
from concurrent.futures import ThreadPoolExecutor

import pytest

from crisischat.shared.utils import (
    ANONYMOUS_ACTOR,
    IdGenerator,
    bounded_excerpt,
    configure_pii_salt,
    hash_pii,
    hash_text_for_audit,
)


@pytest.fixture(autouse=True)
def setup_pii_salt():
    """Configure PII salt before each test."""
    configure_pii_salt("test_salt_that_is_at_least_32_characters_long")


class TestHashPii:

    def test_hash_is_stable(self):
        assert hash_pii("user_1") == hash_pii("user_1")
        assert hash_pii("user_1") != hash_pii("user_2")

    def test_hash_hides_value(self):
        hashed = hash_pii("user_1")
        assert "user_1" not in hashed
        assert len(hashed) == 64

    def test_none_is_anonymous(self):
        assert hash_pii(None) == ANONYMOUS_ACTOR

    def test_short_salt_rejected(self):
        with pytest.raises(ValueError):
            configure_pii_salt("too_short")

    def test_audit_hash_is_unsalted(self):
        assert hash_text_for_audit("hello") == hash_text_for_audit("hello")


class TestBoundedExcerpt:

    def test_short_text_unchanged(self):
        assert bounded_excerpt("I am scared") == "I am scared"

    def test_long_text_truncated(self):
        excerpt = bounded_excerpt("a" * 250)
        assert excerpt == "a" * 100 + "..."

    def test_whitespace_collapsed(self):
        assert bounded_excerpt("line one\n\n  line two") == "line one line two"

    def test_custom_length(self):
        assert bounded_excerpt("abcdefgh", max_length=3) == "abc..."
        assert bounded_excerpt("abc", max_length=0) == ""


class TestIdGenerator:

    def test_prefix_and_sequence(self):
        ids = IdGenerator()
        first = ids.next_id("chat")
        second = ids.next_id("chat")

        assert first.startswith("chat_000001_")
        assert second.startswith("chat_000002_")

    def test_unique_under_concurrency(self):
        ids = IdGenerator()
        with ThreadPoolExecutor(max_workers=8) as pool:
            generated = list(pool.map(lambda _: ids.next_id("msg"), range(1000)))

        assert len(set(generated)) == 1000
