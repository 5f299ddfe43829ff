"""
core/errors.py -- The closed set of operation errors and their HTTP mapping.

Every failure that leaves Gatehouse is one of the OperationError subclasses
below, each carrying a default message and a fixed HTTP status. The store
translates SQLAlchemy failures into ConflictError / DatabaseError at its
boundary; the auth components raise their own refinements (PolicyViolation,
InvalidToken, TokenExpired, ...) which are still members of this set.

error_to_status() and public_message() are the single place where an
arbitrary exception becomes a protocol outcome. Messages of 5xx errors are
never shown to clients -- only logged server-side.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

from __future__ import annotations

import re

from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError as PydanticValidationError

INTERNAL_SERVER_ERROR_MESSAGE = "Internal server error"


class OperationError(Exception):
    """Base class for every error Gatehouse reports to a caller."""

    default_message = "Operation error"
    status = 500

    def __init__(self, message: str | None = None, details: object = None) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    @property
    def code(self) -> str:
        """Machine-readable kind, e.g. AuthenticationError -> "authentication_error"."""
        return _snake_case(_taxonomy_kind(type(self)).__name__)


class AuthenticationError(OperationError):
    default_message = "Not authenticated"
    status = 401


class AuthorizationError(OperationError):
    default_message = "Not authorized"
    status = 403


class ValidationError(OperationError):
    default_message = "Validation error"
    status = 400


class SemanticError(OperationError):
    default_message = "Semantic error"
    status = 400


class NotFoundError(OperationError):
    default_message = "Resource not found"
    status = 404


class ConflictError(OperationError):
    default_message = "Conflict error"
    status = 409


class DatabaseError(OperationError):
    default_message = "Database error"
    status = 500


class InternalError(OperationError):
    default_message = "Internal error"
    status = 500


class HttpMethodNotAllowedError(OperationError):
    default_message = "Method not allowed"
    status = 405


# ---------------------------------------------------------------------------
# Component refinements -- same status and code as their parent kind
# ---------------------------------------------------------------------------


class PolicyViolation(ValidationError):
    """A plaintext password does not satisfy the password policy."""

    default_message = "Password does not meet the strength requirements."


class InvalidToken(AuthenticationError):
    """No active account holds the presented password-reset or verification token."""

    default_message = "Invalid or already used token"


class ExpiredToken(AuthenticationError):
    """The presented password-reset or verification token is past its expiry."""

    default_message = "Token has expired"


class TokenExpired(AuthenticationError):
    """A session token whose exp claim has passed."""

    default_message = "Token expired"


class TokenMalformed(AuthenticationError):
    """A session token with a bad signature or an unexpected structure."""

    default_message = "Unauthorized"


TAXONOMY: tuple[type[OperationError], ...] = (
    AuthenticationError,
    AuthorizationError,
    ValidationError,
    SemanticError,
    NotFoundError,
    ConflictError,
    DatabaseError,
    InternalError,
    HttpMethodNotAllowedError,
)

# Non-taxonomy exceptions that still describe bad input rather than a server fault.
# FastAPI's RequestValidationError does not subclass pydantic's error.
_CLIENT_INPUT_ERRORS: tuple[type[BaseException], ...] = (
    TypeError,
    UnicodeError,
    PydanticValidationError,
    RequestValidationError,
)


# ---------------------------------------------------------------------------
# Mapping
# ---------------------------------------------------------------------------


def error_to_status(error: BaseException) -> int:
    """Return the HTTP status an exception surfaces as.

    Taxonomy members carry their own status. Type, encoding and schema
    validation errors become 400. Anything else is an unclassified server
    failure and becomes 500.
    """
    if isinstance(error, OperationError):
        return error.status
    if isinstance(error, _CLIENT_INPUT_ERRORS):
        return 400
    return 500


def public_message(error: BaseException, status: int | None = None) -> str:
    """Return the message that may be shown to the caller for this error."""
    status = status if status is not None else error_to_status(error)
    if status >= 500:
        return INTERNAL_SERVER_ERROR_MESSAGE
    if isinstance(error, OperationError):
        return error.message
    return str(error) or ValidationError.default_message


def error_code(error: BaseException, status: int | None = None) -> str:
    """Return the snake-case kind name used in the JSON error envelope."""
    if isinstance(error, OperationError):
        return error.code
    status = status if status is not None else error_to_status(error)
    return "validation_error" if status == 400 else "internal_error"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _taxonomy_kind(cls: type[OperationError]) -> type[OperationError]:
    for kind in TAXONOMY:
        if issubclass(cls, kind):
            return kind
    return InternalError


def _snake_case(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()
