"""Tenant id to credential store resolution."""

from __future__ import annotations

import logging
import re
from threading import Lock
from typing import Callable

from .domain.errors import InvalidInputError
from .repository import CredentialStore

logger = logging.getLogger(__name__)

StoreFactory = Callable[[str], CredentialStore]


class _BuildSlot:
    """Per-tenant construction lock plus the number of callers holding or awaiting it."""

    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = Lock()
        self.users = 0


# Bounded so that "tenant_<id>" still fits a 63-byte Postgres identifier.
_TENANT_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{0,47}$")


class TenantRegistry:
    """Process-lifetime cache holding one credential store per tenant.

    Construction is single-flight per tenant id: concurrent first calls for the
    same tenant wait on that tenant's lock and reuse whatever the winner built.
    A factory failure is not cached, so the next call retries.
    """

    def __init__(self, store_factory: StoreFactory) -> None:
        self._factory = store_factory
        self._stores: dict[str, CredentialStore] = {}
        self._build_slots: dict[str, _BuildSlot] = {}
        self._lock = Lock()

    def __contains__(self, tenant_id: object) -> bool:
        return tenant_id in self._stores

    def __len__(self) -> int:
        return len(self._stores)

    def resolve(self, tenant_id: str) -> CredentialStore:
        """Return the tenant's store, building it on first access.

        Raises
        ------
        InvalidInputError
            When the tenant id is empty or not a safe identifier.
        TenantUnavailableError
            When the store factory cannot reach the tenant's storage.
        """
        if not isinstance(tenant_id, str) or not _TENANT_ID_PATTERN.match(tenant_id):
            raise InvalidInputError("invalid tenant identifier")

        store = self._stores.get(tenant_id)
        if store is not None:
            return store

        with self._lock:
            slot = self._build_slots.setdefault(tenant_id, _BuildSlot())
            slot.users += 1

        try:
            with slot.lock:
                store = self._stores.get(tenant_id)
                if store is None:
                    store = self._factory(tenant_id)
                    self._stores[tenant_id] = store
                    logger.info("credential store ready for tenant %s", tenant_id)
        finally:
            # the last user retires the slot, whether the build succeeded or not
            with self._lock:
                slot.users -= 1
                if slot.users == 0:
                    del self._build_slots[tenant_id]
        return store
