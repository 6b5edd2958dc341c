"""
auth/dependencies.py -- FastAPI Depends() helpers for session authentication.

Two token sources are checked in priority order:
  1. Session cookie -- set by signin/signup.
  2. Authorization: Bearer <token> header -- API clients.

get_current_claims() raises TokenError (401) when neither source holds a
valid, unexpired token.

Layer rule: no imports from api/ or security/.
  auth/dependencies.py may import from fastapi because this module is part
  of the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging

from fastapi import Request

from auth.models import SessionClaims
from auth.tokens import TokenCodec
from core.errors import TokenError

logger = logging.getLogger("usergate.auth")


def _extract_token(request: Request) -> str | None:
    cookie_name: str = request.app.state.settings.cookie_name
    token = request.cookies.get(cookie_name)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:]
    return token or None


def get_current_claims(request: Request) -> SessionClaims:
    """Require a valid session. Raises TokenError (401) otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(claims: SessionClaims = Depends(get_current_claims)): ...
    """
    token = _extract_token(request)
    if token is None:
        raise TokenError("missing")
    codec: TokenCodec = request.app.state.token_codec
    try:
        return codec.verify(token)
    except TokenError as exc:
        logger.info("Session rejected on %s: %s", request.url.path, exc.reason)
        raise
