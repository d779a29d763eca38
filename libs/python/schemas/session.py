"""Session credential contract consumed by every service that authenticates requests."""

from __future__ import annotations

from pydantic import BaseModel, Field


class SessionClaims(BaseModel):
    """Claims carried by a session JWT; ``sub`` is the account identifier."""

    sub: str = Field(..., min_length=1)
    iss: str
    iat: int
    exp: int

    @property
    def account_id(self) -> str:
        return self.sub
