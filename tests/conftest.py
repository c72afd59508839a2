"""Shared fixtures: a fast bcrypt hasher and an in-memory service stack."""

from __future__ import annotations

import pytest

from tenant_auth.domain.service import AuthService
from tenant_auth.memory_repository import InMemoryCredentialStore
from tenant_auth.security.passwords import PasswordHasher
from tenant_auth.security.tokens import TokenConfig, TokenIssuer
from tenant_auth.tenancy import TenantRegistry

TEST_SECRET = "test-secret-with-at-least-thirty-two-bytes"


@pytest.fixture
def hasher() -> PasswordHasher:
    # minimum bcrypt cost keeps the suite fast
    return PasswordHasher(rounds=4)


@pytest.fixture
def issuer() -> TokenIssuer:
    return TokenIssuer(TokenConfig(secret=TEST_SECRET))


@pytest.fixture
def registry(hasher: PasswordHasher) -> TenantRegistry:
    return TenantRegistry(lambda tenant_id: InMemoryCredentialStore(hasher))


@pytest.fixture
def service(registry: TenantRegistry, hasher: PasswordHasher, issuer: TokenIssuer) -> AuthService:
    return AuthService(registry, hasher, issuer)
