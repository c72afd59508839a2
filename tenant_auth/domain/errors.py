"""Typed failures raised by the authentication engine.

Every message is safe to show to an API consumer: none of them carries a
password hash, a storage DSN or a driver error string.
"""

from __future__ import annotations


class ConfigurationError(Exception):
    """Startup configuration is missing or invalid."""


class AuthError(Exception):
    """Base class for recoverable authentication failures."""

    default_message = "authentication error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class InvalidInputError(AuthError):
    default_message = "invalid input"


class WeakInputError(InvalidInputError):
    default_message = "password must be at least 12 characters"


class DuplicateEmailError(AuthError):
    default_message = "email already registered"


class InvalidCredentialsError(AuthError):
    """Unknown email or wrong password; the two are never distinguished."""

    default_message = "invalid credentials"


class AccountLockedError(AuthError):
    default_message = "account is locked"


class NotFoundError(AuthError):
    default_message = "account not found"


class TenantUnavailableError(AuthError):
    """Credential storage for a tenant could not be reached."""

    default_message = "tenant storage unavailable"

    def __init__(self, tenant_id: str, message: str | None = None) -> None:
        super().__init__(message)
        self.tenant_id = tenant_id


class TokenError(AuthError):
    default_message = "invalid session token"


class ExpiredTokenError(TokenError):
    default_message = "session token expired"


class MalformedTokenError(TokenError):
    default_message = "invalid session token"
