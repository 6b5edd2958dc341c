"""
security/gate.py -- Pre-route security gate.

SecurityGate.classify() turns a Starlette Request into a RequestProfile and
asks the configured oracle for a decision. api/main.py runs it as HTTP
middleware ahead of every business route and answers 403 (bot, shield,
rate-limit) or 503 (oracle failure) without reaching the route.

Identity:
  A valid session token (cookie first, then Authorization: Bearer) makes the
  caller "user:<id>" with the token's role. Anything else -- no token, an
  expired one, a forged one -- is a guest keyed by client IP. X-Forwarded-For
  is honored only from configured trusted proxies. The gate never
  rejects a request for a bad token; that is the route's job.

Failure policy:
  Fail closed. If the oracle raises, the request is rejected with reason
  "error" and the failure is logged with a stack trace. In dry-run mode the
  request goes through instead.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from starlette.requests import Request

from auth.models import Role
from auth.tokens import DEFAULT_COOKIE_NAME, TokenCodec
from core.errors import TokenError
from security.oracle import DecisionReason, RateLimitDecision, RequestProfile, SecurityOracle

logger = logging.getLogger("usergate.security")


def client_ip(request: Request, trusted_proxies: Iterable[str] = ()) -> str:
    """Address to key a guest by.

    X-Forwarded-For is only read when the socket peer is a trusted proxy.
    The header is walked right to left and the first hop that is not itself
    a trusted proxy wins, so a client cannot pick its own key by prepending
    addresses. Any other peer is keyed by its socket address.
    """
    trusted = frozenset(trusted_proxies)
    peer = request.client.host if request.client else "unknown"
    if peer not in trusted and "*" not in trusted:
        return peer
    hops = [h.strip() for h in request.headers.get("X-Forwarded-For", "").split(",") if h.strip()]
    for hop in reversed(hops):
        if hop not in trusted:
            return hop
    return peer


class SecurityGate:
    """Classify each inbound request before business logic runs.

    Args:
        oracle:       Decision source (see security/oracle.py).
        codec:        Used only to read the optional caller identity.
        enabled:      False turns the gate into a pass-through.
        dry_run:      Log rejections but let every request through.
        exempt_paths: Exact paths never classified (health checks).
        cookie_name:  Session cookie to read the identity from.
        trusted_proxies: Peers whose X-Forwarded-For header is believed.
    """

    def __init__(
        self,
        oracle: SecurityOracle,
        codec: TokenCodec,
        *,
        enabled: bool = True,
        dry_run: bool = False,
        exempt_paths: Iterable[str] = ("/health",),
        cookie_name: str = DEFAULT_COOKIE_NAME,
        trusted_proxies: Iterable[str] = (),
    ) -> None:
        self.oracle = oracle
        self.codec = codec
        self.enabled = enabled
        self.dry_run = dry_run
        self.exempt_paths = frozenset(exempt_paths)
        self.cookie_name = cookie_name
        self.trusted_proxies = frozenset(trusted_proxies)

    def applies_to(self, request: Request) -> bool:
        # CORS preflights are answered by CORSMiddleware and never classified.
        if request.method == "OPTIONS":
            return False
        return self.enabled and request.url.path not in self.exempt_paths

    def profile(self, request: Request) -> RequestProfile:
        ip = client_ip(request, self.trusted_proxies)
        identity, role = ip, Role.GUEST.value

        token = request.cookies.get(self.cookie_name)
        if not token:
            auth_header = request.headers.get("Authorization", "")
            if auth_header.startswith("Bearer "):
                token = auth_header[7:]
        if token:
            try:
                claims = self.codec.verify(token)
            except TokenError:
                pass  # treated as a guest
            else:
                identity, role = f"user:{claims.id}", claims.role

        return RequestProfile(
            identity=identity,
            role=role,
            ip=ip,
            user_agent=request.headers.get("User-Agent", ""),
            method=request.method,
            path=request.url.path,
            query=request.url.query,
        )

    def classify(self, request: Request) -> RateLimitDecision:
        """Return the decision for this request. Never raises."""
        profile = self.profile(request)
        try:
            decision = self.oracle.inspect(profile)
        except Exception:
            logger.exception(
                "Security oracle failed identity=%s role=%s path=%s dry_run=%s",
                profile.identity,
                profile.role,
                profile.path,
                self.dry_run,
            )
            return RateLimitDecision.allow() if self.dry_run else RateLimitDecision.deny(DecisionReason.ERROR)

        if not decision.allowed:
            logger.warning(
                "Request blocked reason=%s identity=%s role=%s path=%s dry_run=%s",
                decision.reason.value if decision.reason else "unknown",
                profile.identity,
                profile.role,
                profile.path,
                self.dry_run,
            )
            if self.dry_run:
                return RateLimitDecision.allow()
        return decision
