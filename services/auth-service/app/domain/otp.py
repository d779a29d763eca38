"""Issuing and checking the six-digit one-time codes attached to accounts."""

from __future__ import annotations

import secrets
from datetime import timedelta

from .account import Account, OtpKind
from .clock import Clock, utcnow
from .errors import CodeExpiredError, InvalidCodeError
from .transitions import attach_otp, clear_otp, pending_otp

OTP_DIGITS = 6


def generate_code() -> str:
    """Return a uniformly random zero-padded numeric code."""
    return f"{secrets.randbelow(10**OTP_DIGITS):0{OTP_DIGITS}d}"


class OtpManager:
    """Attach and validate per-flow one-time codes.

    Expiry is evaluated lazily: a code is valid only while ``now`` is strictly
    before the stored deadline. No background eviction exists.
    """

    def __init__(
        self,
        *,
        registration_ttl_seconds: int = 600,
        login_ttl_seconds: int = 300,
        clock: Clock = utcnow,
    ) -> None:
        self._ttls = {
            OtpKind.registration: timedelta(seconds=registration_ttl_seconds),
            OtpKind.login: timedelta(seconds=login_ttl_seconds),
        }
        self._clock = clock

    def ttl_for(self, kind: OtpKind) -> timedelta:
        return self._ttls[kind]

    def issue(
        self, kind: OtpKind, account: Account, ttl: timedelta | None = None
    ) -> tuple[Account, str]:
        """Attach a fresh code to ``account`` and return ``(updated_account, code)``."""
        code = generate_code()
        expires_at = self._clock() + (ttl if ttl is not None else self._ttls[kind])
        return attach_otp(account, kind, code, expires_at), code

    def verify(self, kind: OtpKind, account: Account, supplied_code: str) -> Account:
        """Check ``supplied_code`` and return the account with the code consumed.

        Raises
        ------
        InvalidCodeError
            No code is pending for ``kind`` or the value does not match. The
            pending code is left in place.
        CodeExpiredError
            The value matches but the deadline has passed.
        """
        code, expires_at = pending_otp(account, kind)
        if not code or not secrets.compare_digest(code.encode("utf-8"), supplied_code.encode("utf-8")):
            raise InvalidCodeError()
        if expires_at is None or self._clock() >= expires_at:
            raise CodeExpiredError()
        return clear_otp(account, kind)
