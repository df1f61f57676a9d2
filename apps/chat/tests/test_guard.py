import pytest

from apps.chat.guard import (
    BLOCK,
    CLEAN,
    RULE_BLOCKED_CONTENT,
    RULE_RATE_LIMIT,
    RULE_SUSPICIOUS_PATTERN,
    WARN,
    MessageGuard,
)
from apps.core.exceptions import ContentBlocked, ContentWarned, RateLimited


@pytest.fixture(autouse=True)
def guard_settings(settings):
    settings.CHAT_GUARD = {
        "MAX_MESSAGES": 5,
        "WINDOW_SECONDS": 60,
        "CACHE_PREFIX": "chat_guard_test",
    }


class TestClassify:
    @pytest.mark.parametrize(
        "content",
        [
            "call me 082 123 4567",
            "my number is +27821234567",
            "zero eight two one two three",
            "mail me at someone@example.com",
            "check https://example.com/bike",
            "go to www.example.org",
            "bit.ly/abc123",
        ],
    )
    def test_contact_details_are_blocked(self, content):
        result = MessageGuard.classify(content)
        assert result.severity == BLOCK
        assert result.rule == RULE_BLOCKED_CONTENT
        assert not result.allowed
        assert not result.can_override

    @pytest.mark.parametrize(
        "content",
        [
            "Can you whatsapp me instead?",
            "I'll pay upfront if you hold it",
            "IS THIS BIKE STILL AVAILABLE FOR SALE",
            "pleeeeeeease",
            "what??? really!!! wow$$$ ok",
        ],
    )
    def test_suspicious_patterns_warn(self, content):
        result = MessageGuard.classify(content)
        assert result.severity == WARN
        assert result.rule == RULE_SUSPICIOUS_PATTERN
        assert result.can_override
        assert not result.allowed

    def test_ordinary_message_is_clean(self):
        result = MessageGuard.classify("Would you take R800 for the bike?")
        assert result.severity == CLEAN
        assert result.allowed

    def test_empty_message_is_clean(self):
        assert MessageGuard.classify("   ").severity == CLEAN


class TestRateWindow:
    def test_sixth_message_in_window_is_rate_limited(self):
        now = 1_000_000.0
        for i in range(5):
            assert MessageGuard.check(7, "hello", now=now + i).allowed
            MessageGuard.record_sent(7, now=now + i)

        result = MessageGuard.check(7, "hello", now=now + 10)
        assert result.rule == RULE_RATE_LIMIT
        assert result.remaining == 0
        # Oldest send at `now` leaves the window at now + 60
        assert result.retry_after == 50
        assert isinstance(result.as_exception(), RateLimited)

    def test_window_rolls_over(self):
        now = 1_000_000.0
        for i in range(5):
            MessageGuard.record_sent(8, now=now + i)

        assert MessageGuard.check(8, "hello", now=now + 30).rate_limited
        result = MessageGuard.check(8, "hello", now=now + 61)
        assert result.allowed
        assert result.remaining == 2

    def test_rejected_messages_do_not_count(self):
        now = 1_000_000.0
        for i in range(10):
            MessageGuard.check(9, "call me 0821234567", now=now + i)
        assert MessageGuard.remaining(9, now=now + 10) == 5

    def test_senders_have_separate_windows(self):
        now = 1_000_000.0
        for i in range(5):
            MessageGuard.record_sent(10, now=now + i)
        assert MessageGuard.check(11, "hello", now=now + 5).allowed


def test_as_exception_maps_severity():
    assert isinstance(MessageGuard.classify("call 0821234567").as_exception(), ContentBlocked)
    assert isinstance(MessageGuard.classify("whatsapp me").as_exception(), ContentWarned)
