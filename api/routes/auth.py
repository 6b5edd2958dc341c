"""
api/routes/auth.py -- Authentication REST endpoints.

Routes:
  POST /api/auth/signup    -- create account; 201 + session cookie
  POST /api/auth/signin    -- password login; 200 + session cookie
  POST /api/auth/signout   -- clears cookie; 200
  GET  /api/auth/me        -- current user (requires a valid session)

Errors are raised as core.errors.ServiceError subclasses and rendered by the
shared handler in api/main.py: 400 validation_failed, 409 email_exists,
401 bad_credentials, 401 unauthorized.

Security:
  Signin returns the same error for wrong email and wrong password; the
  Authenticator runs bcrypt in both cases.
  Cache-Control: no-store on every response that carries a session cookie.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, Request
from fastapi.responses import JSONResponse

from api.models import MessageResponse, SigninRequest, SigninResponse, SignupRequest, SignupResponse, UserResponse
from api.validation import validate_or_raise
from auth.dependencies import get_current_claims
from auth.models import PublicUser, SessionClaims
from auth.service import Authenticator
from auth.tokens import TokenCodec, clear_session_cookie, set_session_cookie
from core.config import Settings
from core.errors import TokenError

# Auth policy:
# - POST /api/auth/signup:   public
# - POST /api/auth/signin:   public
# - POST /api/auth/signout:  public -- clearing a cookie needs no prior auth
# - GET  /api/auth/me:       requires a session (get_current_claims)
router = APIRouter()


def _session_response(request: Request, user: PublicUser, content: dict, status_code: int) -> JSONResponse:
    """Build a JSON response that also starts a session for `user`."""
    settings: Settings = request.app.state.settings
    codec: TokenCodec = request.app.state.token_codec
    token = codec.issue(SessionClaims(id=user.id, email=user.email, role=user.role))
    resp = JSONResponse(status_code=status_code, content=content)
    set_session_cookie(
        resp,
        token,
        max_age=settings.cookie_max_age_seconds,
        secure=settings.secure_cookies,
        name=settings.cookie_name,
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/signup", response_model=SignupResponse, status_code=201)
def signup(request: Request, payload: Any = Body(default=None)) -> JSONResponse:
    """Register a new account and sign it in."""
    body = validate_or_raise(SignupRequest, payload)
    authenticator: Authenticator = request.app.state.authenticator
    user = authenticator.signup(
        name=body.name,
        email=body.email,
        password=body.password,
        role=body.role.value,
    )
    return _session_response(request, user, SignupResponse.from_user(user).model_dump(), 201)


@router.post("/auth/signin", response_model=SigninResponse)
def signin(request: Request, payload: Any = Body(default=None)) -> JSONResponse:
    """Authenticate with email and password; set the session cookie."""
    body = validate_or_raise(SigninRequest, payload)
    authenticator: Authenticator = request.app.state.authenticator
    user = authenticator.signin(email=body.email, password=body.password)
    return _session_response(request, user, SigninResponse.from_user(user).model_dump(), 200)


@router.post("/auth/signout", response_model=MessageResponse)
async def signout(request: Request) -> JSONResponse:
    """Clear the session cookie."""
    settings: Settings = request.app.state.settings
    resp = JSONResponse(content=MessageResponse(message="User signed out successfully").model_dump())
    clear_session_cookie(resp, secure=settings.secure_cookies, name=settings.cookie_name)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.get("/auth/me", response_model=UserResponse)
def me(request: Request, claims: SessionClaims = Depends(get_current_claims)) -> UserResponse:
    """Return the account behind the current session."""
    authenticator: Authenticator = request.app.state.authenticator
    user = authenticator.get_user(claims.id)
    if user is None:
        # Token is genuine but the account is gone.
        raise TokenError("unknown user")
    return UserResponse.from_user(user)
