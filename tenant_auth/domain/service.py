"""Authentication workflows orchestrating tenant stores, hashing and tokens."""

from __future__ import annotations

import logging

from .account import ProfileView
from .contracts import MIN_PASSWORD_LENGTH, Credentials
from .errors import (
    AccountLockedError,
    InvalidCredentialsError,
    InvalidInputError,
    MalformedTokenError,
    NotFoundError,
)
from ..security.passwords import PasswordHasher
from ..security.tokens import IssuedToken, SessionClaims, TokenIssuer
from ..tenancy import TenantRegistry

logger = logging.getLogger(__name__)


class AuthService:
    """Register, authenticate and look up accounts within a tenant."""

    def __init__(self, registry: TenantRegistry, hasher: PasswordHasher, issuer: TokenIssuer) -> None:
        """Store the collaborators shared by every request."""
        self._registry = registry
        self._hasher = hasher
        self._issuer = issuer

    @property
    def registry(self) -> TenantRegistry:
        return self._registry

    def register(self, tenant_id: str, email: str, password: str) -> IssuedToken:
        """Create an account in the tenant's store and issue its first session token.

        Raises
        ------
        InvalidInputError
            Missing or malformed email, or a password shorter than 12 characters.
        DuplicateEmailError
            The normalised email is already registered in this tenant.
        TenantUnavailableError
            The tenant's storage cannot be reached.
        """
        store = self._registry.resolve(tenant_id)
        credentials = Credentials.parse(email, password)
        if len(credentials.password) < MIN_PASSWORD_LENGTH:
            raise InvalidInputError(f"password must be at least {MIN_PASSWORD_LENGTH} characters")

        account = store.create(credentials.email, credentials.password)
        logger.info("registered account %s in tenant %s", account.account_id, tenant_id)
        return self._issuer.issue(account.account_id, tenant_id)

    def authenticate(self, tenant_id: str, email: str, password: str) -> IssuedToken:
        """Check credentials and issue a session token.

        Unknown emails and wrong passwords raise the same
        :class:`InvalidCredentialsError` so callers cannot discover which emails have accounts.
        """
        store = self._registry.resolve(tenant_id)
        credentials = Credentials.parse(email, password)

        account = store.find_by_email(credentials.email)
        if account is None:
            self._hasher.verify(credentials.password, self._hasher.dummy_hash)
            logger.info("failed login for unknown email in tenant %s", tenant_id)
            raise InvalidCredentialsError()
        if account.locked:
            logger.info("login refused for locked account %s in tenant %s", account.account_id, tenant_id)
            raise AccountLockedError()
        if not self._hasher.verify(credentials.password, account.password_hash):
            logger.info("failed login for account %s in tenant %s", account.account_id, tenant_id)
            raise InvalidCredentialsError()

        return self._issuer.issue(account.account_id, tenant_id)

    def get_profile(self, tenant_id: str, account_id: str) -> ProfileView:
        """Return the account's profile without its password hash."""
        store = self._registry.resolve(tenant_id)
        account = store.find_by_id(account_id)
        if account is None:
            raise NotFoundError()
        return ProfileView.from_account(account, tenant_id)

    def resolve_session(self, tenant_id: str, token: str) -> SessionClaims:
        """Verify a bearer token and check it belongs to ``tenant_id``."""
        claims = self._issuer.verify(token).unwrap()
        if claims.tenant_id != tenant_id:
            raise MalformedTokenError()
        return claims

    def set_locked(self, tenant_id: str, account_id: str, locked: bool) -> ProfileView:
        """Administrative lock/unlock; there is no automatic lockout."""
        store = self._registry.resolve(tenant_id)
        account = store.set_locked(account_id, locked)
        if account is None:
            raise NotFoundError()
        logger.info(
            "account %s in tenant %s %s", account_id, tenant_id, "locked" if locked else "unlocked"
        )
        return ProfileView.from_account(account, tenant_id)
