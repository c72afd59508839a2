"""HTTP route definitions for the tenant authentication service."""

from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from prometheus_client import Counter
from pydantic import BaseModel

from ..domain.account import ProfileView
from ..domain.errors import (
    AccountLockedError,
    AuthError,
    DuplicateEmailError,
    InvalidCredentialsError,
    InvalidInputError,
    MalformedTokenError,
    NotFoundError,
    TenantUnavailableError,
    TokenError,
)
from ..domain.service import AuthService
from ..security.rate_limiter import RequestGate
from ..security.tokens import IssuedToken

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/auth")

AUTH_REQUESTS = Counter(
    "tenant_auth_requests",
    "Authentication requests handled, by operation and outcome.",
    ["operation", "outcome"],
)

_STATUS_BY_ERROR: tuple[tuple[type[AuthError], int], ...] = (
    (InvalidInputError, status.HTTP_400_BAD_REQUEST),
    (DuplicateEmailError, status.HTTP_409_CONFLICT),
    (InvalidCredentialsError, status.HTTP_401_UNAUTHORIZED),
    (TokenError, status.HTTP_401_UNAUTHORIZED),
    (AccountLockedError, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
)


class CredentialsRequest(BaseModel):
    """JSON body accepted by register and login.

    Both fields default to empty so that missing values reach
    ``Credentials.parse`` and are answered with a 400 like any other bad input.
    """

    email: str = ""
    password: str = ""


class TokenResponse(BaseModel):
    """Bearer token envelope returned after register or login."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    tenant_id: str

    @classmethod
    def from_issued(cls, issued: IssuedToken, tenant_id: str) -> "TokenResponse":
        return cls(access_token=issued.token, expires_in=issued.expires_in, tenant_id=tenant_id)


class ProfileResponse(BaseModel):
    """Serialised account profile; the password hash is never part of it."""

    account_id: str
    tenant_id: str
    email: str
    locked: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, profile: ProfileView) -> "ProfileResponse":
        return cls(
            account_id=profile.account_id,
            tenant_id=profile.tenant_id,
            email=profile.email,
            locked=profile.locked,
            created_at=profile.created_at,
            updated_at=profile.updated_at,
        )


def get_service(request: Request) -> AuthService:
    """Resolve the `AuthService` stored on the FastAPI application state."""
    service: AuthService = request.app.state.auth_service
    return service


def get_request_gate(request: Request) -> RequestGate:
    gate: RequestGate = request.app.state.request_gate
    return gate


def _enforce_rate_limit(gate: RequestGate, request: Request, operation: str, tenant_id: str) -> None:
    client = request.client.host if request.client else "unknown"
    if not gate.allow(f"{operation}:{tenant_id}:{client}"):
        AUTH_REQUESTS.labels(operation=operation, outcome="rate_limited").inc()
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="rate limited")


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def register(
    request: Request,
    payload: CredentialsRequest,
    tenant_id: str = Header(..., alias="X-Tenant-ID"),
    service: AuthService = Depends(get_service),
    gate: RequestGate = Depends(get_request_gate),
) -> TokenResponse:
    """Create an account in the requesting tenant and return a session token."""
    _enforce_rate_limit(gate, request, "register", tenant_id)
    try:
        issued = service.register(tenant_id, payload.email, payload.password)
    except AuthError as exc:
        raise _http_error_from_auth_error(exc, "register") from exc
    AUTH_REQUESTS.labels(operation="register", outcome="success").inc()
    return TokenResponse.from_issued(issued, tenant_id)


@router.post("/login", response_model=TokenResponse)
def login(
    request: Request,
    payload: CredentialsRequest,
    tenant_id: str = Header(..., alias="X-Tenant-ID"),
    service: AuthService = Depends(get_service),
    gate: RequestGate = Depends(get_request_gate),
) -> TokenResponse:
    """Authenticate an email/password pair and return a session token."""
    _enforce_rate_limit(gate, request, "login", tenant_id)
    try:
        issued = service.authenticate(tenant_id, payload.email, payload.password)
    except AuthError as exc:
        raise _http_error_from_auth_error(exc, "login") from exc
    AUTH_REQUESTS.labels(operation="login", outcome="success").inc()
    return TokenResponse.from_issued(issued, tenant_id)


@router.get("/me", response_model=ProfileResponse)
def me(
    request: Request,
    tenant_id: str = Header(..., alias="X-Tenant-ID"),
    authorization: str | None = Header(default=None),
    service: AuthService = Depends(get_service),
    gate: RequestGate = Depends(get_request_gate),
) -> ProfileResponse:
    """Return the profile of the account the bearer token was issued to."""
    _enforce_rate_limit(gate, request, "me", tenant_id)
    try:
        claims = service.resolve_session(tenant_id, _bearer_token(authorization))
        profile = service.get_profile(tenant_id, claims.account_id)
    except AuthError as exc:
        raise _http_error_from_auth_error(exc, "me") from exc
    AUTH_REQUESTS.labels(operation="me", outcome="success").inc()
    return ProfileResponse.from_domain(profile)


def _bearer_token(authorization: str | None) -> str:
    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise MalformedTokenError("missing bearer token")
    return token.strip()


def _http_error_from_auth_error(exc: AuthError, operation: str) -> HTTPException:
    AUTH_REQUESTS.labels(operation=operation, outcome=type(exc).__name__).inc()
    if isinstance(exc, TenantUnavailableError):
        logger.error("%s failed: storage for tenant %s unavailable", operation, exc.tenant_id, exc_info=exc)
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="service unavailable")

    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            headers = None
            if isinstance(exc, TokenError):
                headers = {"WWW-Authenticate": 'Bearer error="invalid_token"'}
            return HTTPException(status_code=status_code, detail=exc.message, headers=headers)

    logger.error("%s failed with unmapped error", operation, exc_info=exc)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="server error")
