from __future__ import annotations

from fastapi.testclient import TestClient

from chirp.main import app
from chirp.routers import search

from conftest import auth_headers


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_redis_health(client):
    response = client.get("/health/redis")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_public_config(client):
    data = client.get("/config").json()
    assert data["max_post_length"] == 1000
    assert "image/webp" in data["allowed_image_types"]
    assert data["verification_duration_seconds"] == 120


def test_security_headers(client):
    response = client.get("/health")
    assert response.headers["X-Content-Type-Options"] == "nosniff"
    assert response.headers["X-Frame-Options"] == "DENY"
    assert "frame-ancestors 'none'" in response.headers["Content-Security-Policy"]


def test_unhandled_error_returns_500(monkeypatch):
    def explode(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(search, "_like_pattern", explode)
    failing_client = TestClient(app, raise_server_exceptions=False)

    response = failing_client.get("/api/search", params={"q": "x"})

    assert response.status_code == 500
    assert response.json() == {"detail": "Internal server error"}


class TestSearch:
    def test_users_then_posts(self, client, make_user):
        alice = make_user("alice")
        make_user("malice")
        make_user("bob")
        client.post("/api/posts", data={"content": "Alice in wonderland"}, headers=auth_headers(alice))
        client.post("/api/posts", data={"content": "nothing here"}, headers=auth_headers(alice))
        client.post("/api/posts", data={"content": "ask ALICE"}, headers=auth_headers(alice))

        results = client.get("/api/search", params={"q": "alice"}).json()["results"]

        assert [(r["type"], r.get("username") or r.get("content")) for r in results] == [
            ("user", "alice"),
            ("user", "malice"),
            ("post", "ask ALICE"),
            ("post", "Alice in wonderland"),
        ]

    def test_empty_query(self, client):
        assert client.get("/api/search").json() == {"results": []}
        assert client.get("/api/search", params={"q": "  "}).json() == {"results": []}

    def test_wildcards_are_literal(self, client, make_user):
        make_user("al_ice")
        make_user("alxice")

        results = client.get("/api/search", params={"q": "l_i"}).json()["results"]

        assert [r["username"] for r in results] == ["al_ice"]
