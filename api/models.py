"""
API request and response models for usergate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Request models are not bound as FastAPI body parameters; routes pass the raw
JSON to api.validation.validate() so every payload error comes back as a 400
with per-field messages.
"""

from typing import Annotated, Any, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StringConstraints, field_validator

from auth.models import PublicUser, Role

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMAIL_MAX_LENGTH = 255


def _strip(value: Any) -> Any:
    return value.strip() if isinstance(value, str) else value


def _normalize_email(value: str) -> str:
    if len(value) > EMAIL_MAX_LENGTH:
        raise ValueError(f"Email must be at most {EMAIL_MAX_LENGTH} characters")
    return value.strip().lower()


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class SignupRequest(BaseModel):
    """Request body for POST /api/auth/signup.

    Only "user" and "admin" may be requested; guest is never stored.
    """

    # Passwords are taken byte for byte; only name and email are trimmed.
    name: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=255)]
    email: EmailStr
    password: str = Field(min_length=1, max_length=128)
    role: Role = Role.USER

    @field_validator("email", mode="before")
    @classmethod
    def strip_email(cls, value: Any) -> Any:
        return _strip(value)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return _normalize_email(value)

    @field_validator("role")
    @classmethod
    def reject_guest(cls, value: Role) -> Role:
        if value is Role.GUEST:
            raise ValueError("Role must be 'user' or 'admin'")
        return value


class SigninRequest(BaseModel):
    """Request body for POST /api/auth/signin."""

    email: EmailStr
    password: str = Field(min_length=1, max_length=128)

    @field_validator("email", mode="before")
    @classmethod
    def strip_email(cls, value: Any) -> Any:
        return _strip(value)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, value: str) -> str:
        return _normalize_email(value)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class SignupResponse(BaseModel):
    """Response body for POST /api/auth/signup (201)."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    email: str
    role: str
    created_at: str

    @classmethod
    def from_user(cls, user: PublicUser) -> "SignupResponse":
        return cls(id=user.id, name=user.name, email=user.email, role=user.role, created_at=user.created_at)


class SigninResponse(BaseModel):
    """Response body for POST /api/auth/signin (200)."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    email: str
    role: str

    @classmethod
    def from_user(cls, user: PublicUser) -> "SigninResponse":
        return cls(id=user.id, name=user.name, email=user.email, role=user.role)


class UserResponse(BaseModel):
    """One user as returned by GET /api/users and GET /api/auth/me."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    name: str
    role: str
    created_at: str
    updated_at: str

    @classmethod
    def from_user(cls, user: PublicUser) -> "UserResponse":
        """Factory Method -- the mapping lives with the output model, not in routes."""
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            role=user.role,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class FieldErrorModel(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    message: str


class ErrorDetail(BaseModel):
    """Machine-readable error payload.

    fields is set for validation failures; reason for security gate rejections.
    """

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    fields: Optional[list[FieldErrorModel]] = None
    reason: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
