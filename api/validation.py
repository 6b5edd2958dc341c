"""
api/validation.py -- Structural validation of request payloads.

validate() is a pure function: no I/O, never raises. It returns a
ValidationResult that is either ok (with the parsed model) or not ok (with
one FieldError per failed field). Routes turn a failed result into
core.errors.ValidationError, which the exception handler renders as 400.

format_field_errors() is shared with the RequestValidationError handler in
api/main.py, so malformed JSON bodies produce the same error shape as
schema failures.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from core.errors import FieldError, ValidationError

ModelT = TypeVar("ModelT", bound=BaseModel)

# Location prefixes FastAPI adds that mean nothing to API clients.
_TRANSPORT_LOCS = {"body", "query", "path", "header", "cookie"}


@dataclass(frozen=True)
class ValidationResult(Generic[ModelT]):
    ok: bool
    data: ModelT | None = None
    errors: list[FieldError] = field(default_factory=list)


def format_field_errors(errors: Iterable[dict]) -> list[FieldError]:
    """Map pydantic/FastAPI error dicts to FieldErrors with dotted paths."""
    result: list[FieldError] = []
    for err in errors:
        loc = [str(part) for part in err.get("loc", ())]
        if loc and loc[0] in _TRANSPORT_LOCS:
            loc = loc[1:]
        message = str(err.get("msg", "Invalid value"))
        # pydantic prefixes messages from field validators with "Value error, ".
        message = message.removeprefix("Value error, ")
        result.append(FieldError(field=".".join(loc) or "body", message=message))
    return result


def validate(schema: type[ModelT], payload: Any) -> ValidationResult[ModelT]:
    """Validate payload against schema. Never raises."""
    try:
        data = schema.model_validate(payload)
    except PydanticValidationError as exc:
        return ValidationResult(ok=False, errors=format_field_errors(exc.errors()))
    return ValidationResult(ok=True, data=data)


def validate_or_raise(schema: type[ModelT], payload: Any) -> ModelT:
    """validate() for route handlers: the parsed model, or ValidationError."""
    result = validate(schema, payload)
    if not result.ok:
        raise ValidationError(result.errors)
    return result.data
