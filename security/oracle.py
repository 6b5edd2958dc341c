"""
security/oracle.py -- Request classification: shield, bot detection, rate limit.

The gate (security/gate.py) never decides anything itself; it builds a
RequestProfile and asks a SecurityOracle. Anything with an inspect() method
of the right shape can be an oracle, so a hosted bot-protection service, the
local implementation below, or a test fake are interchangeable.

LocalSecurityOracle checks, in order:
  1. Shield -- known attack signatures (SQL injection, XSS, path traversal)
     in the decoded path and query string.
  2. Bot    -- automated clients by User-Agent. Search engine crawlers and
     link-preview fetchers are allowed. An empty User-Agent counts as a bot.
  3. Rate   -- sliding-window limit per (role, identity) using the `limits`
     MovingWindowRateLimiter. Requests blocked by 1 or 2 do not consume quota.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Protocol
from urllib.parse import unquote_plus

from limits import RateLimitItem, parse
from limits.storage import storage_from_string
from limits.strategies import MovingWindowRateLimiter


class DecisionReason(str, Enum):
    BOT = "bot"
    SHIELD = "shield"
    RATE_LIMIT = "rate-limit"
    ERROR = "error"  # oracle failed; the gate fails closed


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    reason: DecisionReason | None = None

    @classmethod
    def allow(cls) -> "RateLimitDecision":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: DecisionReason) -> "RateLimitDecision":
        return cls(allowed=False, reason=reason)


@dataclass(frozen=True)
class RequestProfile:
    """What the oracle is allowed to see about a request."""

    identity: str  # user id for authenticated callers, client IP otherwise
    role: str  # "guest", "user" or "admin"
    ip: str
    user_agent: str
    method: str
    path: str
    query: str = ""


class SecurityOracle(Protocol):
    def inspect(self, profile: RequestProfile) -> RateLimitDecision: ...


# ---------------------------------------------------------------------------
# Signatures
# ---------------------------------------------------------------------------

_SHIELD_PATTERNS = [
    re.compile(r"\bunion\b[\s\S]*\bselect\b", re.IGNORECASE),
    re.compile(r"'\s*(or|and)\s+'?\d+'?\s*=\s*'?\d+", re.IGNORECASE),
    re.compile(r";\s*(drop|delete|truncate|alter)\s+table\b", re.IGNORECASE),
    re.compile(r"\bsleep\s*\(\s*\d+\s*\)", re.IGNORECASE),
    re.compile(r"<\s*script\b", re.IGNORECASE),
    re.compile(r"javascript\s*:", re.IGNORECASE),
    re.compile(r"\bon(error|load|mouseover)\s*=", re.IGNORECASE),
    re.compile(r"\.\./|\.\.\\"),
]

_ALLOWED_BOTS = re.compile(
    r"googlebot|bingbot|duckduckbot|yandexbot|baiduspider|applebot"
    r"|facebookexternalhit|twitterbot|slackbot|linkedinbot|discordbot",
    re.IGNORECASE,
)

_AUTOMATED_CLIENTS = re.compile(
    r"bot\b|crawler|spider|scrapy|curl/|wget/|python-requests|python-urllib|aiohttp"
    r"|go-http-client|java/|okhttp|libwww-perl|headlesschrome|phantomjs|httpclient",
    re.IGNORECASE,
)


def is_shield_violation(path: str, query: str) -> bool:
    target = unquote_plus(f"{path}?{query}" if query else path)
    return any(p.search(target) for p in _SHIELD_PATTERNS)


def is_bot(user_agent: str) -> bool:
    if not user_agent.strip():
        return True
    if _ALLOWED_BOTS.search(user_agent):
        return False
    return bool(_AUTOMATED_CLIENTS.search(user_agent))


# ---------------------------------------------------------------------------
# Local oracle
# ---------------------------------------------------------------------------


class LocalSecurityOracle:
    """In-process oracle backed by a `limits` storage.

    Usage:
        oracle = LocalSecurityOracle({"guest": "5/minute", "user": "10/minute", "admin": "20/minute"})
        oracle.inspect(profile).allowed

    Roles missing from `limits` fall back to the "guest" limit.
    storage_uri accepts any `limits` storage ("memory://", "redis://...").
    """

    def __init__(self, limits: dict[str, str], storage_uri: str = "memory://") -> None:
        if "guest" not in limits:
            raise ValueError("A 'guest' rate limit is required.")
        self._limits: dict[str, RateLimitItem] = {role: parse(value) for role, value in limits.items()}
        self._storage = storage_from_string(storage_uri)
        self._limiter = MovingWindowRateLimiter(self._storage)

    def inspect(self, profile: RequestProfile) -> RateLimitDecision:
        if is_shield_violation(profile.path, profile.query):
            return RateLimitDecision.deny(DecisionReason.SHIELD)
        if is_bot(profile.user_agent):
            return RateLimitDecision.deny(DecisionReason.BOT)

        item = self._limits.get(profile.role, self._limits["guest"])
        if not self._limiter.hit(item, profile.role, profile.identity):
            return RateLimitDecision.deny(DecisionReason.RATE_LIMIT)
        return RateLimitDecision.allow()

    def reset(self) -> None:
        """Drop every counter."""
        self._storage.reset()
