"""Domain-level request and result contracts shared by multiple layers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .account import Account


@dataclass(slots=True)
class RegistrationInput:
    """Inputs required to register an account; already shape-validated by the API."""

    email: str
    handle: str
    password: str
    first_name: str
    last_name: str
    department: str = ""
    year: int | None = None


@dataclass(slots=True)
class NewAccount:
    """Candidate record handed to the store on creation."""

    email: str
    handle: str
    password_hash: str
    first_name: str
    last_name: str
    department: str = ""
    year: int | None = None


@dataclass(slots=True)
class SessionGrant:
    """A signed session credential together with the account it was minted for."""

    token: str
    expires_in: int
    account: Account


class LoginStatus(str, Enum):
    authenticated = "authenticated"
    login_otp_required = "login_otp_required"


@dataclass(slots=True)
class LoginOutcome:
    """Result of a credential check: either a session or a pending login OTP."""

    status: LoginStatus
    account: Account
    session: SessionGrant | None = None
