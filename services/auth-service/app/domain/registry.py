"""Account registry: the persistence boundary seen by the auth workflows."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any

from .account import Account
from .clock import Clock, utcnow
from .contracts import NewAccount
from .errors import AccountNotFoundError, ConflictError
from .transitions import touch_last_seen
from ..repository import AccountRepository
from ..security.passwords import verify_password

logger = logging.getLogger(__name__)


class AccountRegistry:
    """Create, look up and persist accounts through an :class:`AccountRepository`."""

    def __init__(self, repository: AccountRepository, clock: Clock = utcnow) -> None:
        self._repository = repository
        self._clock = clock

    def create(self, candidate: NewAccount) -> Account:
        """Insert ``candidate`` or raise :class:`ConflictError`.

        The lookups below only give a friendlier message early; the store's
        unique indexes decide concurrent duplicates.
        """
        candidate = replace(
            candidate, email=candidate.email.strip().lower(), handle=candidate.handle.strip()
        )
        if self._repository.find_by_email(candidate.email) is not None:
            raise ConflictError("Email already registered")
        if self._repository.find_by_handle(candidate.handle) is not None:
            raise ConflictError("Username already taken")
        return self._repository.insert_account(candidate)

    def find_by_email(self, email: str) -> Account:
        account = self._repository.find_by_email(email.strip().lower())
        if account is None:
            raise AccountNotFoundError()
        return account

    def find_by_id(self, account_id: str) -> Account:
        account = self._repository.get_account(account_id)
        if account is None:
            raise AccountNotFoundError("Invalid account ID")
        return account

    def find_by_reset_token_hash(self, token_hash: str) -> Account | None:
        return self._repository.find_by_reset_token_hash(token_hash)

    def compare_password(self, account: Account, plaintext: str) -> bool:
        return verify_password(plaintext, account.password_hash)

    def touch_last_seen(self, account: Account) -> Account:
        return self.save(touch_last_seen(account, self._clock()))

    def save(self, account: Account) -> Account:
        """Persist the whole record and return the stored value."""
        return self._repository.update_account(account)

    def record_event(
        self, account: Account | None, event_type: str, metadata: dict[str, Any] | None = None
    ) -> None:
        account_id = account.account_id if account is not None else None
        self._repository.write_audit_event(
            account_id=account_id,
            event_type=event_type,
            actor=account_id,
            metadata=metadata,
        )
        logger.debug("audit event %s recorded for %s", event_type, account_id)
