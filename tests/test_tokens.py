"""Unit tests for auth/tokens.py -- session token issue/verify and cookie helpers.

Covers:
- verify(issue(claims)) returns the same identity while unexpired
- expired tokens raise TokenError with expired=True
- wrong secret, tampered and garbage tokens raise TokenError (not expired)
- tokens missing identity claims are rejected
- cookie helper sets HttpOnly / SameSite=Strict / Max-Age and the Secure flag
"""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.responses import JSONResponse
from jose import jwt

from auth.models import SessionClaims
from auth.tokens import TokenCodec, clear_session_cookie, issue_token, set_session_cookie, verify_token
from core.errors import TokenError

SECRET = "unit-test-secret-0123456789abcdef0123456789"
CLAIMS = SessionClaims(id=7, email="a@x.com", role="user")


def test_round_trip_returns_same_claims() -> None:
    token = issue_token(CLAIMS, SECRET, ttl_seconds=60)
    decoded = verify_token(token, SECRET)
    assert decoded == CLAIMS
    assert (decoded.id, decoded.email, decoded.role) == (7, "a@x.com", "user")


def test_expiry_claim_reflects_ttl() -> None:
    issued = datetime.now(timezone.utc).replace(microsecond=0)
    token = issue_token(CLAIMS, SECRET, ttl_seconds=86400, now=issued)
    decoded = verify_token(token, SECRET)
    assert decoded.expires_at == issued + timedelta(days=1)


def test_expired_token_is_rejected() -> None:
    two_days_ago = datetime.now(timezone.utc) - timedelta(days=2)
    token = issue_token(CLAIMS, SECRET, ttl_seconds=86400, now=two_days_ago)
    with pytest.raises(TokenError) as exc_info:
        verify_token(token, SECRET)
    assert exc_info.value.expired is True


def test_wrong_secret_is_rejected() -> None:
    token = issue_token(CLAIMS, SECRET, ttl_seconds=60)
    with pytest.raises(TokenError) as exc_info:
        verify_token(token, SECRET + "-other")
    assert exc_info.value.expired is False


def test_tampered_payload_is_rejected() -> None:
    header, _payload, signature = issue_token(CLAIMS, SECRET, ttl_seconds=60).split(".")
    forged_payload = jwt.encode(
        {"id": 1, "email": "admin@x.com", "role": "admin", "exp": datetime.now(timezone.utc) + timedelta(minutes=5)},
        "attacker-key-attacker-key-attacker-key",
        algorithm="HS256",
    ).split(".")[1]
    with pytest.raises(TokenError):
        verify_token(f"{header}.{forged_payload}.{signature}", SECRET)


@pytest.mark.parametrize("token", ["", "garbage", "a.b.c"])
def test_malformed_token_is_rejected(token: str) -> None:
    with pytest.raises(TokenError):
        verify_token(token, SECRET)


def test_token_without_identity_claims_is_rejected() -> None:
    token = jwt.encode(
        {"sub": "someone", "exp": datetime.now(timezone.utc) + timedelta(minutes=5)},
        SECRET,
        algorithm="HS256",
    )
    with pytest.raises(TokenError):
        verify_token(token, SECRET)


def test_codec_binds_secret_and_ttl() -> None:
    codec = TokenCodec(secret=SECRET, ttl_seconds=120)
    assert codec.verify(codec.issue(CLAIMS)) == CLAIMS
    with pytest.raises(TokenError):
        TokenCodec(secret=SECRET + "x", ttl_seconds=120).verify(codec.issue(CLAIMS))


def test_token_error_message_does_not_reveal_cause() -> None:
    expired = TokenError("expired", expired=True)
    invalid = TokenError("invalid")
    assert expired.message == invalid.message
    assert expired.status_code == invalid.status_code == 401


class TestSessionCookie:
    def test_cookie_attributes(self) -> None:
        resp = JSONResponse(content={})
        set_session_cookie(resp, "tok", max_age=900, secure=False)
        header = resp.headers["set-cookie"].lower()
        assert header.startswith("access_token=tok")
        assert "httponly" in header
        assert "samesite=strict" in header
        assert "max-age=900" in header
        assert "secure" not in header

    def test_secure_flag_in_production(self) -> None:
        resp = JSONResponse(content={})
        set_session_cookie(resp, "tok", max_age=900, secure=True, name="session")
        header = resp.headers["set-cookie"].lower()
        assert header.startswith("session=tok")
        assert "secure" in header

    def test_clear_cookie_expires_it(self) -> None:
        resp = JSONResponse(content={})
        clear_session_cookie(resp, secure=False)
        header = resp.headers["set-cookie"].lower()
        assert header.startswith("access_token=")
        assert "max-age=0" in header
