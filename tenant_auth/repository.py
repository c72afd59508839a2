"""Credential storage: the per-tenant store contract and its Postgres backend."""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterator, Protocol

import psycopg
from psycopg import sql
from psycopg.rows import tuple_row
from psycopg_pool import ConnectionPool

from .domain.account import Account
from .domain.contracts import normalize_email
from .domain.errors import DuplicateEmailError, TenantUnavailableError
from .security.passwords import PasswordHasher

logger = logging.getLogger(__name__)


class CredentialStore(Protocol):
    """Account table owned by exactly one tenant."""

    def create(self, email: str, plaintext_password: str) -> Account:
        ...

    def find_by_email(self, email: str) -> Account | None:
        ...

    def find_by_id(self, account_id: str) -> Account | None:
        ...

    def set_locked(self, account_id: str, locked: bool) -> Account | None:
        ...


_DDL = (
    "CREATE SCHEMA IF NOT EXISTS {schema}",
    """
    CREATE TABLE IF NOT EXISTS {schema}.accounts (
        account_id TEXT PRIMARY KEY,
        email TEXT NOT NULL,
        password_hash TEXT NOT NULL,
        locked BOOLEAN NOT NULL DEFAULT FALSE,
        created_at TIMESTAMPTZ NOT NULL,
        updated_at TIMESTAMPTZ NOT NULL,
        CONSTRAINT accounts_email_key UNIQUE (email)
    )
    """,
)

_COLUMNS = "account_id, email, password_hash, locked, created_at, updated_at"


def schema_for_tenant(tenant_id: str) -> str:
    """Return the Postgres schema name holding a tenant's accounts.

    The id is used verbatim inside a quoted identifier, so ``Acme`` and
    ``acme`` map to different schemas.
    """
    return f"tenant_{tenant_id}"


class PostgresCredentialStore:
    """Postgres-backed account table living in a tenant-private schema."""

    def __init__(self, pool: ConnectionPool, tenant_id: str, hasher: PasswordHasher) -> None:
        """Bind the shared connection pool to one tenant's schema."""
        self._pool = pool
        self._hasher = hasher
        self.tenant_id = tenant_id
        self._schema = sql.Identifier(schema_for_tenant(tenant_id))

    @classmethod
    def open(cls, pool: ConnectionPool, tenant_id: str, *, hasher: PasswordHasher) -> "PostgresCredentialStore":
        """Create the store and provision its schema if this is the tenant's first use."""
        store = cls(pool, tenant_id, hasher)
        store.ensure_schema()
        return store

    def ensure_schema(self) -> None:
        with self._cursor() as cur:
            for statement in _DDL:
                cur.execute(sql.SQL(statement).format(schema=self._schema))
        logger.info("provisioned credential schema for tenant %s", self.tenant_id)

    @contextmanager
    def _cursor(self) -> Iterator[psycopg.Cursor]:
        """Yield a cursor inside a transaction that commits only on success."""
        try:
            with self._pool.connection() as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    yield cur
                conn.commit()
        except psycopg.Error as exc:
            logger.error("credential storage failed for tenant %s", self.tenant_id, exc_info=exc)
            raise TenantUnavailableError(self.tenant_id) from exc

    def create(self, email: str, plaintext_password: str) -> Account:
        """Insert a new account; the unique email constraint rejects duplicates."""
        normalized = normalize_email(email)
        password_hash = self._hasher.hash(plaintext_password)
        now = datetime.now(timezone.utc)
        query = sql.SQL(
            """
            INSERT INTO {schema}.accounts ({columns})
            VALUES (%s, %s, %s, FALSE, %s, %s)
            ON CONFLICT (email) DO NOTHING
            RETURNING {columns}
            """
        ).format(schema=self._schema, columns=sql.SQL(_COLUMNS))

        with self._cursor() as cur:
            cur.execute(query, (str(uuid.uuid4()), normalized, password_hash, now, now))
            row = cur.fetchone()
            if row is None:
                raise DuplicateEmailError()
        return self._map_record(row)

    def find_by_email(self, email: str) -> Account | None:
        return self._fetch_one("email", normalize_email(email))

    def find_by_id(self, account_id: str) -> Account | None:
        return self._fetch_one("account_id", account_id)

    def set_locked(self, account_id: str, locked: bool) -> Account | None:
        """Set the lock flag; repeating the same value is harmless."""
        query = sql.SQL(
            """
            UPDATE {schema}.accounts
            SET locked = %s, updated_at = %s
            WHERE account_id = %s
            RETURNING {columns}
            """
        ).format(schema=self._schema, columns=sql.SQL(_COLUMNS))
        with self._cursor() as cur:
            cur.execute(query, (locked, datetime.now(timezone.utc), account_id))
            row = cur.fetchone()
        if row is None:
            return None
        return self._map_record(row)

    def _fetch_one(self, column: str, value: str) -> Account | None:
        query = sql.SQL("SELECT {columns} FROM {schema}.accounts WHERE {column} = %s").format(
            columns=sql.SQL(_COLUMNS),
            schema=self._schema,
            column=sql.Identifier(column),
        )
        with self._cursor() as cur:
            cur.execute(query, (value,))
            row = cur.fetchone()
        if row is None:
            return None
        return self._map_record(row)

    def _map_record(self, row: tuple) -> Account:
        """Convert a raw database tuple into the domain ``Account`` dataclass."""
        return Account(
            account_id=row[0],
            email=row[1],
            password_hash=row[2],
            locked=row[3],
            created_at=row[4],
            updated_at=row[5],
        )
