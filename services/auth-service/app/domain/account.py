from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class VerificationState(str, Enum):
    unverified = "unverified"
    login_pending = "login_pending"
    fully_verified = "fully_verified"


class OtpKind(str, Enum):
    """Verification flows that own a pending one-time code on the account."""

    registration = "registration"
    login = "login"


@dataclass(frozen=True, slots=True)
class Account:
    """Aggregate root for a member identity.

    Instances are immutable; every change goes through a function in
    :mod:`app.domain.transitions` that returns a new value.
    """

    account_id: str
    email: str
    handle: str
    password_hash: str
    first_name: str
    last_name: str
    created_at: datetime
    department: str = ""
    year: int | None = None
    email_verified: bool = False
    login_verified: bool = False
    registration_otp: str | None = None
    registration_otp_expires_at: datetime | None = None
    login_otp: str | None = None
    login_otp_expires_at: datetime | None = None
    reset_token_hash: str | None = None
    reset_token_expires_at: datetime | None = None
    is_active: bool = True
    last_seen_at: datetime | None = None

    @property
    def verification_state(self) -> VerificationState:
        if self.login_verified:
            return VerificationState.fully_verified
        if self.email_verified:
            return VerificationState.login_pending
        return VerificationState.unverified
