"""
auth/errors.py -- Typed failures raised by the auth services.

Every failure is an AuthError carrying an ErrorKind. Services raise them,
nothing in auth/ retries or swallows them, and the HTTP layer maps the kind
to a status code in exactly one place (api/main.py).

Messages are public: they end up in response bodies. They must never say
WHY a credential was rejected. AuthenticationFailed and InvalidRefreshToken
therefore ignore any message passed in and always use the fixed default.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    validation_error = "validation_error"
    already_exists = "already_exists"
    authentication_failed = "authentication_failed"
    invalid_refresh_token = "invalid_refresh_token"
    concurrency_conflict = "concurrency_conflict"
    integrity_error = "integrity_error"
    not_found = "not_found"


class AuthError(Exception):
    """Base class for all auth failures."""

    kind: ErrorKind
    default_message: str = "Authentication error."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AuthError):
    """Malformed input. Raised before any side effect."""

    kind = ErrorKind.validation_error
    default_message = "Invalid input."


class AlreadyExists(AuthError):
    kind = ErrorKind.already_exists
    default_message = "The email provided is already in use. Please use another email or log in."


class AuthenticationFailed(AuthError):
    """Unknown email and wrong password are indistinguishable."""

    kind = ErrorKind.authentication_failed
    default_message = "Invalid email or password."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(None)


class InvalidRefreshToken(AuthError):
    """Not found, already rotated, expired, forged or owner mismatch."""

    kind = ErrorKind.invalid_refresh_token
    default_message = "Invalid or expired refresh token."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(None)


class ConcurrencyConflict(AuthError):
    """Another request rotated or revoked the same refresh token first."""

    kind = ErrorKind.concurrency_conflict
    default_message = "Refresh token was already used by a concurrent request."


class IntegrityError(AuthError):
    """A refresh token outlived the user it belongs to."""

    kind = ErrorKind.integrity_error
    default_message = "User associated with token not found."


class NotFound(AuthError):
    kind = ErrorKind.not_found
    default_message = "User not found."


class InvalidToken(Exception):
    """A token value failed signature or format checks.

    Raised by TokenIssuer only. Not an AuthError: services translate it into
    the failure that fits their context (InvalidRefreshToken during rotation).
    """
