"""Issuing and validating session JWTs."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import jwt

from ..domain.errors import ConfigurationError, ExpiredTokenError, MalformedTokenError, TokenError

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 3600
_HMAC_ALGORITHMS = frozenset({"HS256", "HS384", "HS512"})
_REQUIRED_CLAIMS = ["sub", "tid", "iat", "exp", "iss"]


@dataclass(frozen=True, slots=True)
class TokenConfig:
    """Signing configuration validated once at process start."""

    secret: str
    ttl_seconds: int = DEFAULT_TTL_SECONDS
    issuer: str = "tenant-auth"
    algorithm: str = "HS256"

    def __post_init__(self) -> None:
        if not self.secret or not self.secret.strip():
            raise ConfigurationError("JWT_SECRET must be set to a non-empty value")
        if self.ttl_seconds < 0:
            raise ConfigurationError("JWT_TTL_SECONDS must not be negative")
        if self.algorithm not in _HMAC_ALGORITHMS:
            raise ConfigurationError(f"unsupported signing algorithm {self.algorithm!r}")
        if len(self.secret.encode("utf-8")) < 32:
            logger.warning("JWT secret is shorter than 32 bytes; use a longer secret outside development")


@dataclass(frozen=True, slots=True)
class IssuedToken:
    """Encoded bearer token plus its lifetime in seconds."""

    token: str
    expires_in: int


@dataclass(frozen=True, slots=True)
class SessionClaims:
    account_id: str
    tenant_id: str
    issued_at: datetime
    expires_at: datetime


@dataclass(frozen=True, slots=True)
class TokenVerification:
    """Outcome of :meth:`TokenIssuer.verify`; exactly one field is set."""

    claims: SessionClaims | None = None
    error: TokenError | None = None

    @property
    def ok(self) -> bool:
        return self.claims is not None

    def unwrap(self) -> SessionClaims:
        """Return the claims or raise the recorded verification error."""
        if self.claims is None:
            raise self.error or MalformedTokenError()
        return self.claims


class TokenIssuer:
    """Sign and verify session tokens with a process-wide secret."""

    def __init__(self, config: TokenConfig) -> None:
        self._config = config

    @property
    def ttl_seconds(self) -> int:
        return self._config.ttl_seconds

    def issue(self, account_id: str, tenant_id: str) -> IssuedToken:
        """Create a signed JWT bound to an account within a tenant.

        Parameters
        ----------
        account_id:
            Account identifier embedded in the ``sub`` claim.
        tenant_id:
            Tenant the account belongs to, embedded in the ``tid`` claim.
        """
        now = int(time.time())
        payload: dict[str, Any] = {
            "iss": self._config.issuer,
            "sub": account_id,
            "tid": tenant_id,
            "iat": now,
            "exp": now + self._config.ttl_seconds,
        }
        token = jwt.encode(payload, self._config.secret, algorithm=self._config.algorithm)
        return IssuedToken(token=token, expires_in=self._config.ttl_seconds)

    def verify(self, token: str) -> TokenVerification:
        """Check signature, issuer and expiry without raising.

        The signature is validated before the expiry, so an expired token whose
        signature was tampered with is reported as malformed.
        """
        try:
            payload = jwt.decode(
                token,
                self._config.secret,
                algorithms=[self._config.algorithm],
                issuer=self._config.issuer,
                options={"require": _REQUIRED_CLAIMS},
            )
        except jwt.ExpiredSignatureError:
            return TokenVerification(error=ExpiredTokenError())
        except jwt.PyJWTError as exc:
            logger.debug("rejected session token: %s", exc)
            return TokenVerification(error=MalformedTokenError())

        account_id = payload["sub"]
        tenant_id = payload["tid"]
        if not isinstance(account_id, str) or not isinstance(tenant_id, str):
            return TokenVerification(error=MalformedTokenError())
        return TokenVerification(
            claims=SessionClaims(
                account_id=account_id,
                tenant_id=tenant_id,
                issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
                expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            )
        )
