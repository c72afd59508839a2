from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(slots=True)
class Account:
    """Credential record stored in a single tenant's store."""

    account_id: str
    email: str
    password_hash: str = field(repr=False)
    created_at: datetime
    updated_at: datetime
    locked: bool = False


@dataclass(slots=True, frozen=True)
class ProfileView:
    """Account projection handed to callers; never carries the password hash."""

    account_id: str
    tenant_id: str
    email: str
    locked: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_account(cls, account: Account, tenant_id: str) -> "ProfileView":
        return cls(
            account_id=account.account_id,
            tenant_id=tenant_id,
            email=account.email,
            locked=account.locked,
            created_at=account.created_at,
            updated_at=account.updated_at,
        )
