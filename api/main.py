"""
api/main.py -- FastAPI application entry point for usergate.

Run with:  uvicorn asgi:app --reload
           usergate                (console script, see asgi.py)

Middleware stack (outermost to innermost):
  1. log_requests          -- one log line per request with status and latency
  2. CORSMiddleware        -- adds CORS headers for allowed browser origins
  3. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  4. security_gate         -- shield / bot / rate-limit classification, 403 or 503

Lifespan builds every stateful component from Settings and hangs it on
app.state. Components never read configuration themselves, so tests swap
them by replacing the lifespan (see tests/conftest.py).
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from api.models import ErrorDetail, ErrorResponse, FieldErrorModel, HealthResponse
from api.routes.auth import router as auth_router
from api.routes.users import router as users_router
from api.validation import format_field_errors
from auth.passwords import PasswordHasher
from auth.service import Authenticator
from auth.store import UserStore
from auth.tokens import TokenCodec
from core.config import Settings, get_settings
from core.errors import ServiceError, ValidationError
from core.logging import configure_logging
from security.gate import SecurityGate
from security.oracle import DecisionReason, LocalSecurityOracle

__version__ = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

_settings = get_settings()
configure_logging(_settings)
logger = logging.getLogger("usergate.api")


# ---------------------------------------------------------------------------
# Component wiring
# ---------------------------------------------------------------------------


def build_state(app: FastAPI, settings: Settings) -> None:
    """Construct every stateful component from settings and attach it to app.state."""
    user_store = UserStore(db_url=settings.database_url)
    codec = TokenCodec(secret=settings.jwt_secret, ttl_seconds=settings.token_expire_seconds)
    app.state.settings = settings
    app.state.user_store = user_store
    app.state.token_codec = codec
    app.state.authenticator = Authenticator(user_store, PasswordHasher(rounds=settings.bcrypt_rounds))
    app.state.security_gate = SecurityGate(
        LocalSecurityOracle(settings.rate_limits()),
        codec,
        enabled=settings.security_gate_enabled,
        dry_run=settings.security_dry_run,
        cookie_name=settings.cookie_name,
        trusted_proxies=settings.trusted_proxies,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build components on startup; dispose the DB engine on shutdown."""
    logger.info("usergate API starting up (environment=%s)", _settings.environment)
    build_state(app, _settings)
    logger.info("Auth initialized (%d users)", app.state.user_store.count_users())

    yield

    app.state.user_store.close()
    logger.info("usergate API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="usergate API",
    description="User signup, signin and listing with cookie-based JWT sessions.",
    version=__version__,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# add_middleware() and @app.middleware("http") both wrap the app, so the
# LAST one registered is the outermost. Registration order below gives,
# outermost first:
#   log_requests -> CORSMiddleware -> TrustedHostMiddleware -> security_gate
# ---------------------------------------------------------------------------


# ---------------------------------------------------------------------------
# Security gate middleware
#
# Runs ahead of every route except the exempt health check and CORS
# preflights. Rejections are answered here and never reach a handler; the
# gate itself logs them.
# ---------------------------------------------------------------------------


_GATE_MESSAGES = {
    DecisionReason.BOT: "Automated requests are not allowed.",
    DecisionReason.SHIELD: "Request blocked by security policy.",
    DecisionReason.RATE_LIMIT: "Too many requests.",
    DecisionReason.ERROR: "Security check unavailable. Try again later.",
}


@app.middleware("http")
async def security_gate(request: Request, call_next):
    gate: SecurityGate | None = getattr(request.app.state, "security_gate", None)
    if gate is None or not gate.applies_to(request):
        return await call_next(request)

    decision = gate.classify(request)
    if decision.allowed:
        return await call_next(request)

    reason = decision.reason or DecisionReason.ERROR
    status_code = 503 if reason is DecisionReason.ERROR else 403
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            error=ErrorDetail(
                code="forbidden" if status_code == 403 else "unavailable",
                message=_GATE_MESSAGES[reason],
                reason=reason.value,
            )
        ).model_dump(exclude_none=True),
    )


app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)


# ---------------------------------------------------------------------------
# Request logging middleware
# ---------------------------------------------------------------------------


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix="/api", tags=["Auth"])
app.include_router(users_router, prefix="/api", tags=["Users"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------


def _error_response(status_code: int, detail: ErrorDetail) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=detail).model_dump(exclude_none=True),
    )


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Map domain errors to their status code.

    5xx errors are logged with a stack trace and answered with a generic
    message; the raw exception never reaches the response body.
    """
    if exc.is_server_error:
        logger.error(
            "%s on %s %s: %s",
            type(exc).__name__,
            request.method,
            request.url.path,
            exc,
            exc_info=exc,
        )
        return _error_response(
            exc.status_code,
            ErrorDetail(code="internal_error", message="An unexpected error occurred."),
        )

    logger.info("%s on %s %s", type(exc).__name__, request.method, request.url.path)
    fields = None
    if isinstance(exc, ValidationError):
        fields = [FieldErrorModel(field=e.field, message=e.message) for e in exc.errors]
    return _error_response(exc.status_code, ErrorDetail(code=exc.code, message=exc.message, fields=fields))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 when the body cannot be parsed at all (e.g. malformed JSON)."""
    errors = format_field_errors(exc.errors())
    logger.info("Unparseable request on %s %s", request.method, request.url.path)
    return _error_response(
        400,
        ErrorDetail(
            code=ValidationError.code,
            message=ValidationError.message,
            fields=[FieldErrorModel(field=e.field, message=e.message) for e in errors],
        ),
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions (404, 405, ...)."""
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
    return _error_response(exc.status_code, ErrorDetail(code=f"http_{exc.status_code}", message=str(exc.detail)))


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is logged, never written to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, ErrorDetail(code="internal_error", message="An unexpected error occurred."))


# ---------------------------------------------------------------------------
# Health endpoint
#
# Exempt from the security gate: health checks from load balancers and
# monitoring systems must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/health", tags=["Health"])
async def health(request: Request) -> HealthResponse:
    """Return liveness, version and database reachability."""
    db_ok = request.app.state.user_store.ping()
    return HealthResponse(
        status="healthy" if db_ok else "degraded",
        version=__version__,
        components={"app": "ok", "database": "ok" if db_ok else "error"},
    )
