"""Bcrypt password hashing helpers."""

from __future__ import annotations

import logging

import bcrypt

logger = logging.getLogger(__name__)


def hash_password(password: str, rounds: int = 12) -> str:
    """Return the bcrypt hash for ``password`` using the given cost factor."""
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Return ``True`` when ``password`` matches; malformed hashes count as a mismatch."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError as exc:
        logger.warning("password hash could not be checked: %s", exc)
        return False
