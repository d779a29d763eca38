"""Shared schema exports."""

from .account import AccountView
from .session import SessionClaims

__all__ = [
    "AccountView",
    "SessionClaims",
]
