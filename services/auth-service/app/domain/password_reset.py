"""Single-use password recovery tokens."""

from __future__ import annotations

from datetime import timedelta

from .account import Account
from .clock import Clock, utcnow
from .errors import InvalidOrExpiredTokenError
from .registry import AccountRegistry
from .transitions import apply_password_reset, attach_reset_token
from ..security.passwords import hash_password
from ..security.tokens import generate_reset_token, hash_reset_token


class PasswordResetManager:
    """Issue and consume recovery tokens stored as SHA-256 digests on the account."""

    def __init__(
        self,
        registry: AccountRegistry,
        *,
        ttl_seconds: int = 3600,
        bcrypt_rounds: int = 12,
        clock: Clock = utcnow,
    ) -> None:
        self._registry = registry
        self._ttl = timedelta(seconds=ttl_seconds)
        self._bcrypt_rounds = bcrypt_rounds
        self._clock = clock

    def request_reset(self, account: Account) -> tuple[Account, str]:
        """Attach a new token to ``account`` and return it for delivery.

        A later request replaces the earlier token, so only the most recent
        link works.
        """
        token, token_hash = generate_reset_token()
        updated = attach_reset_token(account, token_hash, self._clock() + self._ttl)
        return self._registry.save(updated), token

    def consume_reset(self, token: str, new_password: str) -> Account:
        """Set a new password for the token's owner and burn the token.

        Raises
        ------
        InvalidOrExpiredTokenError
            No account holds the token, or its deadline has passed.
        """
        account = self._registry.find_by_reset_token_hash(hash_reset_token(token))
        if account is None:
            raise InvalidOrExpiredTokenError()
        expires_at = account.reset_token_expires_at
        if expires_at is None or self._clock() >= expires_at:
            raise InvalidOrExpiredTokenError()
        password_hash = hash_password(new_password, rounds=self._bcrypt_rounds)
        return self._registry.save(apply_password_reset(account, password_hash))
