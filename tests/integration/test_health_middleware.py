"""Probes, request ids, rate limiting and CORS."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from gamelink.middleware import rate_limit


def _fake_redis(count: int | None = None, error: Exception | None = None) -> MagicMock:
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=[count, True], side_effect=error)
    redis = MagicMock()
    redis.pipeline.return_value = pipe
    return redis


class TestProbes:
    @pytest.mark.asyncio
    async def test_health(self, client):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "healthy"}

    @pytest.mark.asyncio
    async def test_ready_reports_seeded_bank(self, client):
        body = (await client.get("/ready")).json()
        assert body["status"] == "ready"
        assert body["checks"] == {"database": "ok", "questions": "ok", "redis": "disabled"}

    @pytest.mark.asyncio
    async def test_version(self, client):
        body = (await client.get("/version")).json()
        assert set(body) == {"version", "environment"}


class TestRequestId:
    @pytest.mark.asyncio
    async def test_generated(self, client):
        resp = await client.get("/health")
        assert resp.headers["X-Request-Id"]

    @pytest.mark.asyncio
    async def test_propagated(self, client):
        resp = await client.get("/api/v1/games", headers={"X-Request-Id": "req-42"})
        assert resp.headers["X-Request-Id"] == "req-42"

    @pytest.mark.asyncio
    async def test_present_on_errors(self, client):
        resp = await client.get("/api/v1/sessions/missing", headers={"X-Request-Id": "req-43"})
        assert resp.status_code == 404
        assert resp.headers["X-Request-Id"] == "req-43"


class TestRateLimit:
    def test_client_key_prefers_partner_key(self):
        request = MagicMock()
        request.headers = {"X-Partner-Key": "acme"}
        assert rate_limit.client_key(request) == "partner:acme"

        request.headers = {}
        request.client.host = "10.0.0.1"
        assert rate_limit.client_key(request) == "ip:10.0.0.1"

    @pytest.mark.asyncio
    async def test_under_limit_sets_headers(self, client, monkeypatch):
        monkeypatch.setattr(rate_limit, "get_optional_redis", lambda: _fake_redis(1))
        resp = await client.get("/api/v1/games")
        assert resp.status_code == 200
        assert resp.headers["X-RateLimit-Limit"] == "100"
        assert resp.headers["X-RateLimit-Remaining"] == "99"

    @pytest.mark.asyncio
    async def test_over_limit_is_429(self, client, monkeypatch):
        monkeypatch.setattr(rate_limit, "get_optional_redis", lambda: _fake_redis(101))
        resp = await client.get("/api/v1/games")
        assert resp.status_code == 429
        assert resp.json()["error"] == "rate_limited"
        assert resp.headers["Retry-After"] == "60"

    @pytest.mark.asyncio
    async def test_probes_are_exempt(self, client, monkeypatch):
        monkeypatch.setattr(rate_limit, "get_optional_redis", lambda: _fake_redis(10_000))
        assert (await client.get("/health")).status_code == 200

    @pytest.mark.asyncio
    async def test_redis_failure_lets_requests_through(self, client, monkeypatch):
        failing = _fake_redis(error=RedisConnectionError("down"))
        monkeypatch.setattr(rate_limit, "get_optional_redis", lambda: failing)
        resp = await client.get("/api/v1/games")
        assert resp.status_code == 200
        assert "X-RateLimit-Limit" not in resp.headers


class TestCors:
    @pytest.mark.asyncio
    async def test_preflight_allows_partner_header(self, client):
        resp = await client.options(
            "/api/v1/games",
            headers={
                "Origin": "http://localhost:5173",
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "X-Partner-Key",
            },
        )
        assert resp.status_code == 200
        assert resp.headers["access-control-allow-origin"] == "http://localhost:5173"
