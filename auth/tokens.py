"""
auth/tokens.py -- Session token codec (JWT) and session cookie helpers.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry id, email, role and exp. The
       secret and lifetime are passed in explicitly (TokenCodec binds them
       once at startup) -- this module never reads configuration itself.

  Verification raises TokenError on any failure. TokenError.expired tells
       logs whether the token ran out or was never valid; the HTTP layer
       answers 401 the same way in both cases.

  Cookie: httpOnly (no JS access), SameSite=Strict (never sent on
       cross-site requests), Secure in production. Its max-age is configured
       separately from the token lifetime (see DESIGN.md on session lifetime).

Layer rule: no imports from api/ or security/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import ExpiredSignatureError, JWTError, jwt

from auth.models import SessionClaims
from core.errors import TokenError

_ALGORITHM = "HS256"
_REQUIRED_CLAIMS = ("id", "email", "role", "exp")

DEFAULT_COOKIE_NAME = "access_token"


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def issue_token(claims: SessionClaims, secret: str, ttl_seconds: int, now: datetime | None = None) -> str:
    """Encode a signed JWT for the given identity that expires after ttl_seconds.

    Args:
        claims:      Identity to embed. claims.expires_at is ignored.
        secret:      HS256 signing key.
        ttl_seconds: Token lifetime measured from `now`.
        now:         Issue time; defaults to the current UTC time.
    """
    issued_at = now or datetime.now(timezone.utc)
    payload = {
        "id": claims.id,
        "email": claims.email,
        "role": claims.role,
        "exp": issued_at + timedelta(seconds=ttl_seconds),
    }
    return jwt.encode(payload, secret, algorithm=_ALGORITHM)


def verify_token(token: str, secret: str) -> SessionClaims:
    """Decode and verify a JWT. Returns its claims or raises TokenError."""
    try:
        payload = jwt.decode(token, secret, algorithms=[_ALGORITHM])
    except ExpiredSignatureError as exc:
        raise TokenError("expired", expired=True) from exc
    except JWTError as exc:
        raise TokenError("invalid") from exc

    if any(name not in payload for name in _REQUIRED_CLAIMS):
        raise TokenError("missing claims")
    return SessionClaims(
        id=payload["id"],
        email=payload["email"],
        role=payload["role"],
        expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
    )


@dataclass(frozen=True)
class TokenCodec:
    """issue_token / verify_token with the secret and lifetime bound once.

    Built in the app lifespan from Settings and shared through app.state.
    """

    secret: str
    ttl_seconds: int

    def issue(self, claims: SessionClaims, now: datetime | None = None) -> str:
        return issue_token(claims, self.secret, self.ttl_seconds, now=now)

    def verify(self, token: str) -> SessionClaims:
        return verify_token(token, self.secret)


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookie(
    response,
    token: str,
    *,
    max_age: int,
    secure: bool,
    name: str = DEFAULT_COOKIE_NAME,
) -> None:
    """Write the session token as an httpOnly, SameSite=Strict cookie."""
    response.set_cookie(
        name,
        value=token,
        httponly=True,
        samesite="strict",
        secure=secure,
        max_age=max_age,
    )


def clear_session_cookie(response, *, secure: bool, name: str = DEFAULT_COOKIE_NAME) -> None:
    """Expire the session cookie. Attributes must match the ones it was set with."""
    response.delete_cookie(name, httponly=True, samesite="strict", secure=secure)
