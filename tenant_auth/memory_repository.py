"""In-process credential store used for local development and tests."""

from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import datetime, timezone
from threading import Lock

from .domain.account import Account
from .domain.contracts import normalize_email
from .domain.errors import DuplicateEmailError
from .security.passwords import PasswordHasher


class InMemoryCredentialStore:
    """Thread-safe account table held in process memory.

    The email index is checked and written under one lock, which plays the
    role of the unique constraint in the Postgres backend.
    """

    def __init__(self, hasher: PasswordHasher) -> None:
        self._hasher = hasher
        self._accounts: dict[str, Account] = {}
        self._by_email: dict[str, str] = {}
        self._lock = Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._accounts)

    def create(self, email: str, plaintext_password: str) -> Account:
        normalized = normalize_email(email)
        # hash outside the lock so concurrent registrations don't queue behind bcrypt
        password_hash = self._hasher.hash(plaintext_password)
        now = datetime.now(timezone.utc)
        account = Account(
            account_id=str(uuid.uuid4()),
            email=normalized,
            password_hash=password_hash,
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            if normalized in self._by_email:
                raise DuplicateEmailError()
            self._accounts[account.account_id] = account
            self._by_email[normalized] = account.account_id
        return replace(account)

    def find_by_email(self, email: str) -> Account | None:
        with self._lock:
            account_id = self._by_email.get(normalize_email(email))
            if account_id is None:
                return None
            return replace(self._accounts[account_id])

    def find_by_id(self, account_id: str) -> Account | None:
        with self._lock:
            account = self._accounts.get(account_id)
            return replace(account) if account is not None else None

    def set_locked(self, account_id: str, locked: bool) -> Account | None:
        with self._lock:
            account = self._accounts.get(account_id)
            if account is None:
                return None
            account.locked = locked
            account.updated_at = datetime.now(timezone.utc)
            return replace(account)
