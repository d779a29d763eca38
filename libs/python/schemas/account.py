"""Account-related DTOs shared across services."""

from __future__ import annotations

from datetime import datetime
from pydantic import BaseModel, EmailStr


class AccountView(BaseModel):
    """Public projection of an account; never carries credentials or pending secrets."""

    account_id: str
    email: EmailStr
    handle: str
    first_name: str
    last_name: str
    department: str = ""
    year: int | None = None
    email_verified: bool
    login_verified: bool
    is_active: bool = True
    created_at: datetime
    last_seen_at: datetime | None = None
