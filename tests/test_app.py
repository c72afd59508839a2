"""Application wiring: settings, startup validation and the assembled app."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from tenant_auth import main
from tenant_auth.config import Settings, get_settings
from tenant_auth.domain.errors import ConfigurationError
from tenant_auth.security.passwords import PasswordHasher
from tenant_auth.security.rate_limiter import FixedWindowRateLimiter

PASSWORD = "correcthorsebattery"


@pytest.fixture
def memory_env(monkeypatch):
    monkeypatch.setenv("STORAGE_BACKEND", "memory")
    monkeypatch.setenv("JWT_SECRET", "app-secret-with-at-least-thirty-two-bytes")
    monkeypatch.setenv("JWT_TTL_SECONDS", "120")
    monkeypatch.setenv("BCRYPT_ROUNDS", "4")
    monkeypatch.setenv("RATE_LIMIT_BACKEND", "memory")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


def test_settings_read_environment(memory_env):
    settings = get_settings()

    assert settings.storage_backend == "memory"
    assert settings.jwt_ttl_seconds == 120
    assert settings.bcrypt_rounds == 4
    assert settings.token_config().ttl_seconds == 120


def test_missing_secret_fails_at_startup(monkeypatch):
    monkeypatch.delenv("JWT_SECRET", raising=False)
    with pytest.raises(ConfigurationError):
        Settings().token_config()


def test_unknown_storage_backend_is_rejected():
    settings = Settings(storage_backend="mongo", jwt_secret="x" * 32)
    with pytest.raises(ConfigurationError):
        main._build_store_factory(settings, PasswordHasher(rounds=4))


def test_unreachable_redis_falls_back_to_memory():
    settings = Settings(rate_limit_backend="redis", redis_url="redis://127.0.0.1:1/0")
    assert isinstance(main._build_request_gate(settings), FixedWindowRateLimiter)


def test_assembled_app_serves_auth_flow(memory_env):
    with TestClient(main.app) as client:
        assert client.get("/healthz").json() == {"status": "ok"}

        registered = client.post(
            "/v1/auth/register",
            json={"email": "user@example.com", "password": PASSWORD},
            headers={"X-Tenant-ID": "acme"},
        )
        assert registered.status_code == 201
        assert registered.json()["expires_in"] == 120

        me = client.get(
            "/v1/auth/me",
            headers={"X-Tenant-ID": "acme", "Authorization": f"Bearer {registered.json()['access_token']}"},
        )
        assert me.status_code == 200
        assert me.json()["email"] == "user@example.com"

        metrics = client.get("/metrics")
        assert metrics.status_code == 200
        assert "tenant_auth_requests_total" in metrics.text
