"""Database repository for account identity data."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any

import psycopg
from psycopg import errors as pg_errors
from psycopg.rows import tuple_row
from psycopg.types.json import Json
from psycopg_pool import ConnectionPool

from .domain.account import Account
from .domain.contracts import NewAccount
from .domain.errors import ConflictError, InternalError

logger = logging.getLogger(__name__)

_ACCOUNT_COLUMNS = """
    account_id, email, handle, password_hash, first_name, last_name, department, year,
    email_verified, login_verified,
    registration_otp, registration_otp_expires_at,
    login_otp, login_otp_expires_at,
    reset_token_hash, reset_token_expires_at,
    is_active, created_at, last_seen_at
"""

_CONFLICT_MESSAGES = {
    "accounts_email_lower_key": "Email already registered",
    "accounts_handle_lower_key": "Username already taken",
}


def _is_uuid(value: str) -> bool:
    try:
        uuid.UUID(value)
    except (TypeError, ValueError):
        return False
    return True


class AccountRepository:
    """Postgres-backed account persistence.

    Uniqueness of email and handle is enforced by case-insensitive unique
    indexes (see ``migrations/001_accounts.sql``); a violation at insert time
    surfaces as :class:`ConflictError` regardless of any earlier pre-check.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        """Store the connection pool used for all database interactions."""
        self._pool = pool

    def insert_account(self, candidate: NewAccount) -> Account:
        """Persist a new, unverified account and return it."""
        account_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc)
        try:
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute(
                        f"""
                        INSERT INTO accounts (
                            account_id, email, handle, password_hash, first_name, last_name,
                            department, year, created_at, updated_at
                        )
                        VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                        RETURNING {_ACCOUNT_COLUMNS}
                        """,
                        (
                            account_id,
                            candidate.email,
                            candidate.handle,
                            candidate.password_hash,
                            candidate.first_name,
                            candidate.last_name,
                            candidate.department,
                            candidate.year,
                            now,
                            now,
                        ),
                    )
                    record = cur.fetchone()
                    conn.commit()
        except pg_errors.UniqueViolation as exc:
            constraint = exc.diag.constraint_name or ""
            raise ConflictError(_CONFLICT_MESSAGES.get(constraint, "Email or username already exists")) from exc
        except psycopg.Error as exc:
            logger.exception("account insert failed")
            raise InternalError("account store unavailable") from exc
        return self._map_record(record)

    def get_account(self, account_id: str) -> Account | None:
        """Fetch an account by identifier or return ``None``."""
        if not _is_uuid(account_id):
            return None
        return self._fetch_one("account_id = %s", (account_id,))

    def find_by_email(self, email: str) -> Account | None:
        return self._fetch_one("lower(email) = lower(%s)", (email,))

    def find_by_handle(self, handle: str) -> Account | None:
        return self._fetch_one("lower(handle) = lower(%s)", (handle,))

    def find_by_reset_token_hash(self, token_hash: str) -> Account | None:
        return self._fetch_one("reset_token_hash = %s", (token_hash,))

    def update_account(self, account: Account) -> Account:
        """Write every mutable field of ``account`` back as a single statement."""
        try:
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute(
                        f"""
                        UPDATE accounts SET
                            password_hash = %s,
                            first_name = %s,
                            last_name = %s,
                            department = %s,
                            year = %s,
                            email_verified = %s,
                            login_verified = %s,
                            registration_otp = %s,
                            registration_otp_expires_at = %s,
                            login_otp = %s,
                            login_otp_expires_at = %s,
                            reset_token_hash = %s,
                            reset_token_expires_at = %s,
                            is_active = %s,
                            last_seen_at = %s,
                            updated_at = NOW()
                        WHERE account_id = %s
                        RETURNING {_ACCOUNT_COLUMNS}
                        """,
                        (
                            account.password_hash,
                            account.first_name,
                            account.last_name,
                            account.department,
                            account.year,
                            account.email_verified,
                            account.login_verified,
                            account.registration_otp,
                            account.registration_otp_expires_at,
                            account.login_otp,
                            account.login_otp_expires_at,
                            account.reset_token_hash,
                            account.reset_token_expires_at,
                            account.is_active,
                            account.last_seen_at,
                            account.account_id,
                        ),
                    )
                    row = cur.fetchone()
                    conn.commit()
        except psycopg.Error as exc:
            logger.exception("account update failed for %s", account.account_id)
            raise InternalError("account store unavailable") from exc
        if row is None:
            raise InternalError("account disappeared during update")
        return self._map_record(row)

    def write_audit_event(
        self,
        *,
        account_id: str | None,
        event_type: str,
        actor: str | None,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """Record an audit trail entry capturing identity workflow activity."""
        try:
            with self._pool.connection() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        INSERT INTO identity_audit_log (account_id, event_type, actor, metadata)
                        VALUES (%s, %s, %s, %s)
                        """,
                        (account_id, event_type, actor, Json(metadata or {})),
                    )
                    conn.commit()
        except psycopg.Error as exc:
            logger.exception("audit write failed for %s", event_type)
            raise InternalError("account store unavailable") from exc

    def _fetch_one(self, where_sql: str, params: tuple) -> Account | None:
        try:
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    cur.execute(f"SELECT {_ACCOUNT_COLUMNS} FROM accounts WHERE {where_sql}", params)
                    row = cur.fetchone()
        except psycopg.Error as exc:
            logger.exception("account lookup failed")
            raise InternalError("account store unavailable") from exc
        if not row:
            return None
        return self._map_record(row)

    def _map_record(self, row: tuple) -> Account:
        """Convert a raw database tuple into the domain ``Account`` dataclass."""
        return Account(
            account_id=str(row[0]),
            email=row[1],
            handle=row[2],
            password_hash=row[3],
            first_name=row[4],
            last_name=row[5],
            department=row[6] or "",
            year=row[7],
            email_verified=row[8],
            login_verified=row[9],
            registration_otp=row[10],
            registration_otp_expires_at=row[11],
            login_otp=row[12],
            login_otp_expires_at=row[13],
            reset_token_hash=row[14],
            reset_token_expires_at=row[15],
            is_active=row[16],
            created_at=row[17],
            last_seen_at=row[18],
        )
