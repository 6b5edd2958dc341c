"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and services
do the work; these only own the shape.

Layer rule: no imports from api/ or security/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class Role(str, Enum):
    """Stored roles. Guests have no row; GUEST exists for the security gate."""

    USER = "user"
    ADMIN = "admin"
    GUEST = "guest"


@dataclass
class User:
    """A persisted identity, including the bcrypt hash.

    Never return this from a route -- project it to PublicUser first.
    """

    name: str
    email: str
    password_hash: str
    role: str = Role.USER.value
    id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(frozen=True)
class PublicUser:
    """User projection that is safe to serialize: no password hash."""

    id: int
    name: str
    email: str
    role: str
    created_at: str
    updated_at: str


@dataclass(frozen=True)
class SessionClaims:
    """Identity claims carried by a session token.

    expires_at is excluded from equality: two claim sets describe the same
    session identity regardless of when each token runs out.
    """

    id: int
    email: str
    role: str
    expires_at: datetime | None = field(default=None, compare=False)
