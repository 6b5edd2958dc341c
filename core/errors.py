"""
core/errors.py -- Domain error taxonomy shared by every layer.

Components raise these; api/main.py owns the single exception handler that
turns them into HTTP responses. Each class carries its own status code and
machine-readable code so the mapping lives next to the error, not in a
lookup table in the route layer.

  ValidationError          400  validation_failed
  DuplicateUserError       409  email_exists
  InvalidCredentialsError  401  bad_credentials   (same message for every cause)
  TokenError               401  unauthorized      (expired vs invalid is internal)
  HashError                500  internal_error
  StorageError             500  internal_error

5xx errors never expose their message to the client; the handler logs them
with a stack trace and answers with a generic message.

Layer rule: core/ is the kernel. No imports from api/, auth/, or security/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class FieldError:
    """One failed field in a request payload.

    field is a dotted path into the payload ("email", "tags.0"); "body" when
    the payload as a whole is wrong (not an object, not JSON).
    """

    field: str
    message: str


class ServiceError(Exception):
    """Base class for errors the HTTP layer knows how to translate."""

    status_code: int = 500
    code: str = "internal_error"
    message: str = "An unexpected error occurred."

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)

    @property
    def is_server_error(self) -> bool:
        return self.status_code >= 500


class ValidationError(ServiceError):
    status_code = 400
    code = "validation_failed"
    message = "Validation failed."

    def __init__(self, errors: list[FieldError], message: str | None = None) -> None:
        self.errors = list(errors)
        super().__init__(message)


class DuplicateUserError(ServiceError):
    status_code = 409
    code = "email_exists"
    message = "User with this email already exists."


class InvalidCredentialsError(ServiceError):
    # One message for unknown email and wrong password alike (enumeration resistance).
    status_code = 401
    code = "bad_credentials"
    message = "Invalid email or password."


class TokenError(ServiceError):
    status_code = 401
    code = "unauthorized"
    message = "Authentication required."

    def __init__(self, reason: str = "invalid", *, expired: bool = False) -> None:
        # reason and expired are for logs only; the client always sees `message`.
        self.reason = reason
        self.expired = expired
        super().__init__()


class HashError(ServiceError):
    pass


class StorageError(ServiceError):
    pass
