"""Named state transitions over the immutable :class:`Account` aggregate.

Each function checks its precondition, then returns a new account value. Nothing
here touches storage; callers persist the result through the registry.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime

from .account import Account, OtpKind
from .errors import ConflictError, VerificationRequiredError


def attach_otp(account: Account, kind: OtpKind, code: str, expires_at: datetime) -> Account:
    """Store a pending code for ``kind``, overwriting any earlier one."""
    if kind is OtpKind.registration:
        if account.email_verified:
            raise ConflictError("Email is already verified")
        return replace(account, registration_otp=code, registration_otp_expires_at=expires_at)
    if not account.email_verified:
        raise VerificationRequiredError(account.account_id)
    return replace(account, login_otp=code, login_otp_expires_at=expires_at)


def clear_otp(account: Account, kind: OtpKind) -> Account:
    if kind is OtpKind.registration:
        return replace(account, registration_otp=None, registration_otp_expires_at=None)
    return replace(account, login_otp=None, login_otp_expires_at=None)


def pending_otp(account: Account, kind: OtpKind) -> tuple[str | None, datetime | None]:
    if kind is OtpKind.registration:
        return account.registration_otp, account.registration_otp_expires_at
    return account.login_otp, account.login_otp_expires_at


def mark_email_verified(account: Account) -> Account:
    """Unverified -> LoginPending. Happens exactly once per account."""
    if account.email_verified:
        raise ConflictError("Email is already verified")
    return replace(account, email_verified=True)


def mark_login_verified(account: Account, seen_at: datetime) -> Account:
    """LoginPending -> FullyVerified. The flag is sticky; no transition clears it."""
    if not account.email_verified:
        raise VerificationRequiredError(account.account_id)
    return replace(account, login_verified=True, last_seen_at=seen_at)


def touch_last_seen(account: Account, seen_at: datetime) -> Account:
    return replace(account, last_seen_at=seen_at)


def attach_reset_token(account: Account, token_hash: str, expires_at: datetime) -> Account:
    return replace(account, reset_token_hash=token_hash, reset_token_expires_at=expires_at)


def apply_password_reset(account: Account, password_hash: str) -> Account:
    """Swap the credential and consume the outstanding reset token.

    Verification flags are carried over untouched.
    """
    return replace(
        account,
        password_hash=password_hash,
        reset_token_hash=None,
        reset_token_expires_at=None,
    )
