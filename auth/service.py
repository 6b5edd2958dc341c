"""
auth/service.py -- Authenticator: signup, signin and user read operations.

The Authenticator is the only place that combines the store and the hasher.
Routes call it with already-validated input and translate its errors
(core/errors.py) into responses through the shared exception handler.

Enumeration resistance:
  signin() raises the same InvalidCredentialsError for an unknown email and
  for a wrong password, and runs bcrypt in both cases so response time does
  not reveal which one happened.

Layer rule: no imports from api/ or security/.
"""

from __future__ import annotations

import logging

from auth.models import PublicUser, Role, User
from auth.passwords import PasswordHasher
from auth.store import UserStore
from core.errors import DuplicateUserError, InvalidCredentialsError

logger = logging.getLogger("usergate.auth")


def to_public(user: User) -> PublicUser:
    """Project a stored user to its serializable form (drops the hash)."""
    return PublicUser(
        id=user.id,
        name=user.name,
        email=user.email,
        role=user.role,
        created_at=user.created_at or "",
        updated_at=user.updated_at or "",
    )


class Authenticator:
    """Credential checks and account creation over an injected store and hasher."""

    def __init__(self, store: UserStore, hasher: PasswordHasher) -> None:
        self.store = store
        self.hasher = hasher

    def signup(self, name: str, email: str, password: str, role: str = Role.USER.value) -> PublicUser:
        """Create an account and return it without the password hash.

        The find_by_email() pre-check only saves a bcrypt round for the
        common case; the UNIQUE constraint in the store is what actually
        rejects a concurrent duplicate.
        """
        if self.store.find_by_email(email) is not None:
            logger.info("Signup rejected, email already registered: %s", email)
            raise DuplicateUserError()

        password_hash = self.hasher.hash_password(password)
        user = self.store.create_user(name=name, email=email, password_hash=password_hash, role=role)
        logger.info("User %s created successfully", user.email)
        return to_public(user)

    def signin(self, email: str, password: str) -> PublicUser:
        """Return the user for a correct email/password pair, else InvalidCredentialsError."""
        user = self.store.find_by_email(email)
        if user is None:
            # Equalize timing -- do NOT return before running bcrypt.
            self.hasher.dummy_verify(password)
            logger.info("Signin failed for %s", email)
            raise InvalidCredentialsError()

        if not self.hasher.verify_password(password, user.password_hash):
            logger.info("Signin failed for %s", email)
            raise InvalidCredentialsError()

        logger.info("User %s authenticated successfully", email)
        return to_public(user)

    def get_user(self, user_id: int) -> PublicUser | None:
        user = self.store.get_by_id(user_id)
        return to_public(user) if user is not None else None

    def list_users(self) -> list[PublicUser]:
        return [to_public(u) for u in self.store.list_users()]
