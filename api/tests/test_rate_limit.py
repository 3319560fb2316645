"""Test the Redis sliding-window rate limiter and its middleware."""

from fastapi import FastAPI
from fastapi.testclient import TestClient

from chirp import settings
from chirp.middleware import RateLimitMiddleware
from chirp.services.rate_limit import check_rate_limit, get_rate_limit_remaining


def test_allows_up_to_limit_then_blocks():
    results = [check_rate_limit("ratelimit:test", limit=3, window_seconds=60) for _ in range(4)]

    assert results == [(True, 2), (True, 1), (True, 0), (False, 0)]
    assert get_rate_limit_remaining("ratelimit:test", limit=3, window_seconds=60) == 0


def test_keys_are_independent():
    check_rate_limit("ratelimit:a", limit=1)

    assert check_rate_limit("ratelimit:a", limit=1) == (False, 0)
    assert check_rate_limit("ratelimit:b", limit=1) == (True, 0)


def test_fails_open_without_redis(monkeypatch):
    monkeypatch.setattr("chirp.services.rate_limit.get_redis_client", lambda: None)

    assert check_rate_limit("ratelimit:test", limit=1) == (True, 1)
    assert check_rate_limit("ratelimit:test", limit=1) == (True, 1)


def _limited_app() -> FastAPI:
    app = FastAPI()
    app.add_middleware(RateLimitMiddleware, max_requests=2, window_seconds=60)

    @app.get("/ping")
    def ping():
        return {"ok": True}

    @app.get("/health")
    def health():
        return {"status": "ok"}

    return app


def test_middleware_returns_429(monkeypatch):
    monkeypatch.setattr(settings, "RATE_LIMIT_ENABLED", True)
    client = TestClient(_limited_app())

    first = client.get("/ping")
    second = client.get("/ping")
    third = client.get("/ping")

    assert first.headers["X-RateLimit-Remaining"] == "1"
    assert second.status_code == 200
    assert third.status_code == 429
    assert third.json() == {"detail": "Too many requests, please try again later."}
    assert third.headers["Retry-After"] == "60"


def test_middleware_skips_health(monkeypatch):
    monkeypatch.setattr(settings, "RATE_LIMIT_ENABLED", True)
    client = TestClient(_limited_app())

    assert all(client.get("/health").status_code == 200 for _ in range(5))


def test_middleware_disabled_by_setting():
    client = TestClient(_limited_app())

    assert all(client.get("/ping").status_code == 200 for _ in range(5))


def test_forwarded_for_ignored_from_untrusted_peer(monkeypatch):
    monkeypatch.setattr(settings, "RATE_LIMIT_ENABLED", True)
    client = TestClient(_limited_app())

    statuses = [
        client.get("/ping", headers={"X-Forwarded-For": f"10.0.0.{i}"}).status_code
        for i in range(3)
    ]

    assert statuses == [200, 200, 429]


def test_forwarded_for_honoured_behind_trusted_proxy(monkeypatch):
    monkeypatch.setattr(settings, "RATE_LIMIT_ENABLED", True)
    monkeypatch.setattr(settings, "TRUSTED_PROXIES", frozenset({"testclient"}))
    client = TestClient(_limited_app())

    for _ in range(2):
        client.get("/ping", headers={"X-Forwarded-For": "203.0.113.7"})

    blocked = client.get("/ping", headers={"X-Forwarded-For": "203.0.113.7"})
    # Spoofed left-most entries do not change the resolved client
    spoofed = client.get("/ping", headers={"X-Forwarded-For": "1.2.3.4, 203.0.113.7"})
    other = client.get("/ping", headers={"X-Forwarded-For": "203.0.113.8"})

    assert blocked.status_code == 429
    assert spoofed.status_code == 429
    assert other.status_code == 200
