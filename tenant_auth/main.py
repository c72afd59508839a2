"""FastAPI application wiring for the tenant authentication service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis
from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from psycopg_pool import ConnectionPool

from .api.routes import router as v1_router
from .config import Settings, get_settings
from .domain.errors import ConfigurationError
from .domain.service import AuthService
from .memory_repository import InMemoryCredentialStore
from .repository import PostgresCredentialStore
from .security.passwords import PasswordHasher
from .security.rate_limiter import FixedWindowRateLimiter, RequestGate
from .security.redis_rate_limiter import RedisFixedWindowRateLimiter
from .security.tokens import TokenIssuer
from .tenancy import StoreFactory, TenantRegistry

logger = logging.getLogger(__name__)

settings = get_settings()


def _build_request_gate(settings: Settings) -> RequestGate:
    """Instantiate the configured rate limiter backend, preferring Redis when available."""
    if settings.rate_limit_backend == "redis" and settings.redis_url:
        try:
            client = redis.from_url(settings.redis_url)
            # fail fast here so we can fall back before serving traffic
            client.ping()
            logger.info("rate limiter configured for redis backend")
            return RedisFixedWindowRateLimiter(
                client,
                max_requests=settings.rate_limit_requests,
                window_seconds=settings.rate_limit_window_seconds,
                fail_open=settings.rate_limit_fail_open,
            )
        except (redis.RedisError, ValueError) as exc:
            logger.warning("redis rate limiter unavailable, falling back to in-memory: %s", exc)

    logger.info("rate limiter using in-memory backend")
    return FixedWindowRateLimiter(
        max_requests=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )


def _build_store_factory(
    settings: Settings, hasher: PasswordHasher
) -> tuple[StoreFactory, ConnectionPool | None]:
    """Return the per-tenant store factory and the pool it borrows from, if any."""
    if settings.storage_backend == "memory":
        logger.warning("credential stores are in-memory; accounts are lost on restart")
        return (lambda tenant_id: InMemoryCredentialStore(hasher)), None
    if settings.storage_backend == "postgres":
        pool = ConnectionPool(settings.database_url, open=False)
        pool.open()

        def factory(tenant_id: str) -> PostgresCredentialStore:
            return PostgresCredentialStore.open(pool, tenant_id, hasher=hasher)

        return factory, pool
    raise ConfigurationError(f"unknown STORAGE_BACKEND {settings.storage_backend!r}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Validate configuration and build shared services for the app lifecycle."""
    current = get_settings()
    issuer = TokenIssuer(current.token_config())
    hasher = PasswordHasher(rounds=current.bcrypt_rounds)
    store_factory, pool = _build_store_factory(current, hasher)

    app.state.auth_service = AuthService(TenantRegistry(store_factory), hasher, issuer)
    app.state.request_gate = _build_request_gate(current)
    try:
        yield
    finally:
        if pool is not None:
            pool.close()


app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Authorization", "Content-Type", "X-Tenant-ID"],
    max_age=600,
)


@app.get("/healthz", tags=["health"])
def healthz() -> dict[str, str]:
    """Return a minimal readiness indicator used by orchestration systems."""
    return {"status": "ok"}


@app.get("/metrics", include_in_schema=False)
def metrics() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


app.include_router(v1_router)
