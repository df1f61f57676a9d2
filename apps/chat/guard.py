"""
Message rate and content guard for the negotiation chat.

Three checks, cheapest first:

1. a per-sender sliding window (``CHAT_GUARD["MAX_MESSAGES"]`` per
   ``CHAT_GUARD["WINDOW_SECONDS"]``), kept in the Django cache;
2. blocked content: phone numbers, email addresses and links;
3. suspicious patterns: scam or off-platform phrases, ALL CAPS, long runs
   of one character and bursts of special characters.

Blocked content can never be sent. A warning can be overridden by the
sender. A send only counts against the window once it has gone through,
see ``MessageGuard.record_sent``.
"""

import logging
import math
import re
import time
from dataclasses import dataclass
from typing import Optional

from django.conf import settings
from django.core.cache import cache

from apps.core.exceptions import ContentBlocked, ContentWarned, RateLimited

logger = logging.getLogger("chat_guard")

CLEAN = "clean"
WARN = "warn"
BLOCK = "block"

RULE_RATE_LIMIT = "rate_limit"
RULE_BLOCKED_CONTENT = "blocked_content"
RULE_SUSPICIOUS_PATTERN = "suspicious_pattern"

_DIGIT_WORD = r"(?:zero|one|two|three|four|five|six|seven|eight|nine)"

PHONE_PATTERNS = [
    # SA numbers: 0XX XXX XXXX, +27XX XXX XXXX, 27XXXXXXXXX
    re.compile(r"(?:\+?27|0)\s*[6-8]\d[\s.-]?\d{3}[\s.-]?\d{4}"),
    # Any ten digits, optionally separated
    re.compile(r"\b\d(?:[\s.-]?\d){9}\b"),
    # Digits written out: "zero eight two"
    re.compile(rf"\b{_DIGIT_WORD}[\s,]+{_DIGIT_WORD}[\s,]+{_DIGIT_WORD}", re.IGNORECASE),
]

EMAIL_PATTERNS = [
    re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}"),
    # "name at domain dot com"
    re.compile(
        r"\b\w+\s*(?:@|at)\s*\w+\s*(?:\.|dot)\s*"
        r"(?:com|co\.za|net|org|gmail|yahoo|hotmail|outlook)\b",
        re.IGNORECASE,
    ),
]

URL_PATTERNS = [
    re.compile(r"https?://[^\s<>]+", re.IGNORECASE),
    re.compile(r"www\.[^\s<>]+", re.IGNORECASE),
    re.compile(r"\b\w+\.(?:com|co\.za|net|org|io|app|me|za|africa)\b", re.IGNORECASE),
    re.compile(
        r"\b(?:bit\.ly|tinyurl|goo\.gl|t\.co|is\.gd|buff\.ly|ow\.ly|rebrand\.ly)/\w+",
        re.IGNORECASE,
    ),
]

BLOCK_RULES = (
    (
        PHONE_PATTERNS,
        "Phone number detected",
        "Phone numbers are not allowed in messages. For your safety, please keep "
        "all transactions on the platform.",
    ),
    (
        EMAIL_PATTERNS,
        "Email address detected",
        "Email addresses are not allowed in messages. For your protection, please "
        "communicate through the platform.",
    ),
    (
        URL_PATTERNS,
        "URL/link detected",
        "Links and URLs are not allowed in messages. This helps protect you from "
        "phishing and scams.",
    ),
)

SCAM_PHRASES = (
    "send money to",
    "transfer money",
    "whatsapp me",
    "whatsapp number",
    "call me on",
    "text me on",
    "sms me",
    "pay me directly",
    "pay directly",
    "outside the app",
    "off the platform",
    "off platform",
    "western union",
    "money gram",
    "moneygram",
    "bitcoin",
    "crypto wallet",
    "gift card",
    "gift voucher",
    "send gift",
    "bank transfer direct",
    "eft me",
    "eft directly",
    "pay into my account",
    "my bank details",
    "account number is",
    "branch code is",
    "deposit into",
    "send to my",
    "wire transfer",
    "cashapp",
    "cash app",
    "venmo",
    "zelle",
    "telegram me",
    "signal me",
    "dm me on",
    "inbox me on",
    "contact me outside",
    "meet me alone",
    "come alone",
    "dont tell anyone",
    "don't tell anyone",
    "keep this between us",
    "advance payment",
    "advance fee",
    "pay upfront",
    "pay before",
    "nigerian prince",
    "congratulations you won",
    "you have won",
    "claim your prize",
    "lottery winner",
    "inheritance fund",
)

REPEATED_CHARS = re.compile(r"(.)\1{5,}")
SPECIAL_CHAR_BURST = re.compile(r"[!?$#@*&^%]{3,}")


@dataclass(frozen=True)
class GuardResult:
    severity: str = CLEAN
    rule: Optional[str] = None
    user_message: Optional[str] = None
    details: Optional[str] = None
    remaining: Optional[int] = None
    retry_after: Optional[int] = None

    @property
    def allowed(self) -> bool:
        return self.severity == CLEAN

    @property
    def can_override(self) -> bool:
        return self.severity == WARN

    @property
    def rate_limited(self) -> bool:
        return self.rule == RULE_RATE_LIMIT

    def to_dict(self):
        return {
            "allowed": self.allowed,
            "severity": self.severity,
            "rule": self.rule,
            "user_message": self.user_message,
            "details": self.details,
            "can_override": self.can_override,
            "remaining": self.remaining,
            "retry_after": self.retry_after,
        }

    def as_exception(self):
        """The error a caller raises when this result stops a send."""
        details = {"guard": self.to_dict()}
        if self.rate_limited:
            return RateLimited(
                retry_after=self.retry_after,
                message=self.user_message,
                details=details,
            )
        if self.severity == BLOCK:
            return ContentBlocked(message=self.user_message, details=details)
        return ContentWarned(message=self.user_message, details=details)


class MessageGuard:
    """Advisory checks run before a chat message is stored."""

    @staticmethod
    def _config():
        return settings.CHAT_GUARD

    @classmethod
    def _cache_key(cls, sender_id) -> str:
        return f"{cls._config().get('CACHE_PREFIX', 'chat_guard')}:{sender_id}"

    @classmethod
    def _recent(cls, sender_id, now: float):
        window = cls._config()["WINDOW_SECONDS"]
        timestamps = cache.get(cls._cache_key(sender_id), [])
        return [t for t in timestamps if now - t < window]

    @classmethod
    def remaining(cls, sender_id, now: Optional[float] = None) -> int:
        now = time.time() if now is None else now
        return max(0, cls._config()["MAX_MESSAGES"] - len(cls._recent(sender_id, now)))

    @classmethod
    def record_sent(cls, sender_id, now: Optional[float] = None):
        """
        Count a message that was actually sent. The read and write are not
        atomic, so concurrent sends from one sender can overshoot the window
        by the number of requests in flight.
        """
        now = time.time() if now is None else now
        recent = cls._recent(sender_id, now)
        recent.append(now)
        cache.set(cls._cache_key(sender_id), recent, cls._config()["WINDOW_SECONDS"])

    @classmethod
    def check_rate(cls, sender_id, now: Optional[float] = None) -> GuardResult:
        now = time.time() if now is None else now
        config = cls._config()
        recent = cls._recent(sender_id, now)

        if len(recent) >= config["MAX_MESSAGES"]:
            wait = math.ceil(config["WINDOW_SECONDS"] - (now - recent[0]))
            wait = max(wait, 1)
            logger.warning(
                f"Chat rate limit hit by user {sender_id}: "
                f"{len(recent)}/{config['MAX_MESSAGES']} in {config['WINDOW_SECONDS']}s"
            )
            return GuardResult(
                severity=BLOCK,
                rule=RULE_RATE_LIMIT,
                user_message=(
                    "You're sending messages too quickly. Please wait "
                    f"{wait} second{'s' if wait != 1 else ''} before sending another message."
                ),
                details=f"{len(recent)}/{config['MAX_MESSAGES']} messages in last {config['WINDOW_SECONDS']}s",
                remaining=0,
                retry_after=wait,
            )
        return GuardResult(remaining=config["MAX_MESSAGES"] - len(recent))

    @staticmethod
    def classify(content: str) -> GuardResult:
        """Content rules only, no rate state."""
        if not content or not content.strip():
            return GuardResult()

        normalized = re.sub(r"\s+", " ", content.lower())
        for patterns, details, user_message in BLOCK_RULES:
            for pattern in patterns:
                if pattern.search(content) or pattern.search(normalized):
                    return GuardResult(
                        severity=BLOCK,
                        rule=RULE_BLOCKED_CONTENT,
                        user_message=user_message,
                        details=details,
                    )

        lowered = content.lower().strip()
        for phrase in SCAM_PHRASES:
            if phrase in lowered:
                return GuardResult(
                    severity=WARN,
                    rule=RULE_SUSPICIOUS_PATTERN,
                    user_message=(
                        "Your message contains a phrase that may indicate off-platform "
                        f'communication ("{phrase}"). For your safety, keep all '
                        "transactions on the platform where buyer and seller are protected."
                    ),
                    details=f'Scam phrase detected: "{phrase}"',
                )

        if len(content) >= 20:
            letters = re.sub(r"[^a-zA-Z]", "", content)
            if len(letters) >= 15:
                ratio = len(re.findall(r"[A-Z]", content)) / len(letters)
                if ratio > 0.8:
                    return GuardResult(
                        severity=WARN,
                        rule=RULE_SUSPICIOUS_PATTERN,
                        user_message=(
                            "Your message appears to be in ALL CAPS. This can come "
                            "across as shouting. Consider rewriting it in normal case."
                        ),
                        details=f"{round(ratio * 100)}% uppercase",
                    )

        if REPEATED_CHARS.search(content):
            return GuardResult(
                severity=WARN,
                rule=RULE_SUSPICIOUS_PATTERN,
                user_message=(
                    "Your message contains excessive repeated characters. "
                    "This may be flagged as spam."
                ),
                details="Excessive character repetition",
            )

        if len(SPECIAL_CHAR_BURST.findall(content)) >= 3:
            return GuardResult(
                severity=WARN,
                rule=RULE_SUSPICIOUS_PATTERN,
                user_message=(
                    "Your message contains many special characters. "
                    "This may be flagged as spam."
                ),
                details="Excessive special characters",
            )

        return GuardResult()

    @classmethod
    def check(cls, sender_id, content: str, now: Optional[float] = None) -> GuardResult:
        """Full pre-send check: empty content, then rate, then content."""
        if not content or not content.strip():
            return GuardResult(remaining=cls.remaining(sender_id, now))

        rate = cls.check_rate(sender_id, now)
        if rate.rate_limited:
            return rate

        result = cls.classify(content)
        if result.severity != CLEAN:
            logger.info(
                f"Message from user {sender_id} flagged {result.severity}: {result.details}"
            )
        return GuardResult(
            severity=result.severity,
            rule=result.rule,
            user_message=result.user_message,
            details=result.details,
            remaining=rate.remaining,
        )
