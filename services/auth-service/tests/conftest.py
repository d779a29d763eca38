from __future__ import annotations

import os

os.environ.setdefault("JWT_SECRET", "test-signing-secret")

import re
import uuid
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.api import routes
from app.api.errors import install_error_handlers
from app.domain.account import Account
from app.domain.contracts import NewAccount, RegistrationInput
from app.domain.errors import ConflictError, InternalError
from app.domain.otp import OtpManager
from app.domain.password_reset import PasswordResetManager
from app.domain.registry import AccountRegistry
from app.domain.service import AuthOrchestrator
from app.notifications import Notification, NotificationGateway
from app.security.tokens import SessionIssuer

TEST_SECRET = "test-signing-secret"
TEST_ISSUER = "network.auth"
SEVEN_DAYS = 7 * 24 * 3600


class FakeRepository:
    """In-memory repository mimicking the Postgres store, unique indexes included."""

    def __init__(self, clock) -> None:
        self._clock = clock
        self.accounts: dict[str, Account] = {}
        self.audit_log: list[dict[str, Any]] = []
        self.insert_calls = 0

    def insert_account(self, candidate: NewAccount) -> Account:
        self.insert_calls += 1
        for existing in self.accounts.values():
            if existing.email.lower() == candidate.email.lower():
                raise ConflictError("Email already registered")
            if existing.handle.lower() == candidate.handle.lower():
                raise ConflictError("Username already taken")
        account = Account(
            account_id=str(uuid.uuid4()),
            email=candidate.email,
            handle=candidate.handle,
            password_hash=candidate.password_hash,
            first_name=candidate.first_name,
            last_name=candidate.last_name,
            department=candidate.department,
            year=candidate.year,
            created_at=self._clock(),
        )
        self.accounts[account.account_id] = account
        return account

    def get_account(self, account_id: str) -> Account | None:
        return self.accounts.get(account_id)

    def find_by_email(self, email: str) -> Account | None:
        return next((a for a in self.accounts.values() if a.email.lower() == email.lower()), None)

    def find_by_handle(self, handle: str) -> Account | None:
        return next((a for a in self.accounts.values() if a.handle.lower() == handle.lower()), None)

    def find_by_reset_token_hash(self, token_hash: str) -> Account | None:
        return next((a for a in self.accounts.values() if a.reset_token_hash == token_hash), None)

    def update_account(self, account: Account) -> Account:
        if account.account_id not in self.accounts:
            raise InternalError("account disappeared during update")
        self.accounts[account.account_id] = account
        return account

    def write_audit_event(
        self,
        *,
        account_id: str | None,
        event_type: str,
        actor: str | None,
        metadata: dict | None = None,
    ) -> None:
        self.audit_log.append(
            {
                "account_id": account_id,
                "event_type": event_type,
                "actor": actor,
                "metadata": metadata or {},
            }
        )

    def events_for(self, account_id: str) -> list[str]:
        return [entry["event_type"] for entry in self.audit_log if entry["account_id"] == account_id]

    def force(self, account_id: str, **changes: Any) -> Account:
        """Bypass the domain and rewrite stored fields, e.g. to simulate admin actions."""
        account = replace(self.accounts[account_id], **changes)
        self.accounts[account_id] = account
        return account


class RecordingGateway(NotificationGateway):
    """Captures rendered notifications; can be told to fail like a dead SMTP relay."""

    def __init__(self) -> None:
        self.sent: list[Notification] = []
        self.fail = False

    def deliver(self, notification: Notification) -> None:
        if self.fail:
            raise ConnectionRefusedError("smtp relay unreachable")
        self.sent.append(notification)

    def last(self, template: str) -> Notification:
        matching = [n for n in self.sent if n.template == template]
        assert matching, f"no {template} notification sent"
        return matching[-1]

    def last_code(self, template: str) -> str:
        match = re.search(r"\b(\d{6})\b", self.last(template).text_body)
        assert match is not None
        return match.group(1)

    def last_reset_token(self) -> str:
        match = re.search(r"token=([A-Za-z0-9_\-]+)", self.last("password_reset").text_body)
        assert match is not None
        return match.group(1)


class FrozenClock:
    """Controllable clock; call it to read the time, ``advance`` to move it."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc))


@pytest.fixture
def repository(clock) -> FakeRepository:
    return FakeRepository(clock)


@pytest.fixture
def notifier() -> RecordingGateway:
    return RecordingGateway()


@pytest.fixture
def session_issuer() -> SessionIssuer:
    return SessionIssuer(secret=TEST_SECRET, issuer=TEST_ISSUER, ttl_seconds=SEVEN_DAYS)


@pytest.fixture
def registry(repository, clock) -> AccountRegistry:
    return AccountRegistry(repository, clock=clock)


@pytest.fixture
def otp_manager(clock) -> OtpManager:
    return OtpManager(registration_ttl_seconds=600, login_ttl_seconds=300, clock=clock)


@pytest.fixture
def reset_manager(registry, clock) -> PasswordResetManager:
    return PasswordResetManager(registry, ttl_seconds=3600, bcrypt_rounds=4, clock=clock)


@pytest.fixture
def service(registry, otp_manager, session_issuer, reset_manager, notifier, clock) -> AuthOrchestrator:
    return AuthOrchestrator(
        registry=registry,
        otp_manager=otp_manager,
        session_issuer=session_issuer,
        password_resets=reset_manager,
        notifier=notifier,
        frontend_url="https://app.example.test",
        bcrypt_rounds=4,
        clock=clock,
    )


def registration(**overrides: Any) -> RegistrationInput:
    data: dict[str, Any] = {
        "email": "ada@example.com",
        "handle": "ada",
        "password": "analytical-engine",
        "first_name": "Ada",
        "last_name": "Lovelace",
        "department": "Mathematics",
        "year": 2027,
    }
    data.update(overrides)
    return RegistrationInput(**data)


@pytest.fixture
def registered(service) -> Account:
    """An account that has registered but not verified its email."""
    return service.register(registration())


@pytest.fixture
def email_verified(service, registered, repository) -> Account:
    """An account in the LoginPending state."""
    code = repository.accounts[registered.account_id].registration_otp
    service.verify_registration_otp(registered.account_id, code)
    return repository.accounts[registered.account_id]


@pytest.fixture
def fully_verified(service, email_verified, repository) -> Account:
    service.login("ada@example.com", "analytical-engine")
    code = repository.accounts[email_verified.account_id].login_otp
    service.verify_login_otp(email_verified.account_id, code)
    return repository.accounts[email_verified.account_id]


@pytest.fixture
def api_client(service):
    """Provide a FastAPI test client with isolated state."""
    app = FastAPI()
    install_error_handlers(app)
    app.include_router(routes.router)
    app.state.auth_service = service

    with TestClient(app) as client:
        yield client


@pytest.fixture
def make_registration():
    """Factory for registration inputs with overridable fields."""
    return registration
