"""Error taxonomy for the identity verification workflows.

Every failure surfaced to a caller carries a stable ``kind`` string; the API
layer maps kinds to HTTP status codes and never exposes anything beyond
``kind``, ``message`` and the explicit ``extra`` payload.
"""

from __future__ import annotations

from typing import Any


class AuthError(Exception):
    """Base class for failures raised by the auth workflows."""

    kind = "internal"
    default_message = "internal error"

    def __init__(self, message: str | None = None, **extra: Any) -> None:
        self.message = message or self.default_message
        self.extra = extra
        super().__init__(self.message)


class ValidationError(AuthError):
    kind = "validation_error"
    default_message = "request is invalid"


class ConflictError(AuthError):
    kind = "conflict"
    default_message = "resource already exists"


class UnauthorizedError(AuthError):
    """Bad credentials. The message never reveals which check failed."""

    kind = "unauthorized"
    default_message = "Email or password is incorrect"


class VerificationRequiredError(AuthError):
    """Correct credentials on an account whose email is not yet verified."""

    kind = "verification_required"
    default_message = "Please verify your email address first"

    def __init__(self, account_id: str, message: str | None = None) -> None:
        super().__init__(message, account_id=account_id, requires_registration_otp=True)
        self.account_id = account_id


class InvalidCodeError(AuthError):
    kind = "invalid_code"
    default_message = "The verification code is incorrect"


class CodeExpiredError(AuthError):
    kind = "code_expired"
    default_message = "The verification code has expired. Please request a new one."


class InvalidOrExpiredTokenError(AuthError):
    kind = "invalid_or_expired_token"
    default_message = "Password reset token is invalid or has expired"


class AccountNotFoundError(AuthError):
    kind = "not_found"
    default_message = "account not found"


class InternalError(AuthError):
    """Store failure not otherwise classified."""
