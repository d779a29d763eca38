"""Utilities for issuing and validating session JWTs and opaque reset tokens."""

from __future__ import annotations

import hashlib
import secrets
import time
from typing import Any

import jwt
from schemas import SessionClaims

from ..config import Settings

ALGORITHM = "HS256"


class SessionIssuer:
    """Mint stateless, signed bearer credentials for authenticated accounts.

    Each credential is independent: there is no refresh flow and no revocation
    list, so a token stays valid until its ``exp`` claim passes.
    """

    def __init__(self, *, secret: str, issuer: str, ttl_seconds: int) -> None:
        if not secret:
            raise ValueError("session signing secret is required")
        self._secret = secret
        self._issuer = issuer
        self._ttl_seconds = ttl_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> "SessionIssuer":
        return cls(
            secret=settings.jwt_secret,
            issuer=settings.jwt_issuer,
            ttl_seconds=settings.jwt_ttl_seconds,
        )

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    def issue(self, account_id: str) -> tuple[str, int]:
        """Create a signed JWT whose subject is ``account_id``.

        Parameters
        ----------
        account_id:
            Account identifier embedded in the ``sub`` claim; the only
            identifying claim carried by the credential.

        Returns
        -------
        tuple[str, int]
            The encoded JWT and its lifetime in seconds.
        """
        now = int(time.time())
        payload: dict[str, Any] = {
            "iss": self._issuer,
            "sub": account_id,
            "iat": now,
            "exp": now + self._ttl_seconds,
        }
        token = jwt.encode(payload, self._secret, algorithm=ALGORITHM)
        return token, self._ttl_seconds

    def decode(self, token: str) -> dict[str, Any]:
        """Verify signature, issuer and expiry, returning the claims.

        Raises
        ------
        jwt.PyJWTError
            On any signature, issuer, expiry or shape mismatch.
        """
        return jwt.decode(
            token,
            self._secret,
            algorithms=[ALGORITHM],
            issuer=self._issuer,
            options={"require": ["sub", "exp", "iat", "iss"]},
        )

    def claims(self, token: str) -> SessionClaims:
        """Return the validated claims as the shared :class:`SessionClaims` contract."""
        return SessionClaims.model_validate(self.decode(token))

    def account_id_from(self, token: str) -> str:
        """Return the account identifier carried by a valid credential."""
        return self.claims(token).account_id


def generate_reset_token() -> tuple[str, str]:
    """Generate a password reset token string and its SHA-256 hash."""
    token = secrets.token_urlsafe(32)
    return token, hash_reset_token(token)


def hash_reset_token(token: str) -> str:
    """Return the SHA-256 hex digest for a reset token string."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
