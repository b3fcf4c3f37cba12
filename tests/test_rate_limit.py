from fastapi.testclient import TestClient

from agnivirya.services.rate_limiter import RateLimiter


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def test_limiter_blocks_after_max_and_reopens_after_window():
    clock = FakeClock()
    limiter = RateLimiter(max_requests=2, window_seconds=60, clock=clock)

    assert limiter.hit("1.1.1.1").allowed is True
    assert limiter.hit("1.1.1.1").remaining == 0
    blocked = limiter.hit("1.1.1.1")
    assert blocked.allowed is False
    assert blocked.retry_after == 60

    # Otra IP tiene su propio contador
    assert limiter.hit("2.2.2.2").allowed is True

    clock.now += 60
    assert limiter.hit("1.1.1.1").allowed is True


def test_api_returns_429_after_limit(app_env, monkeypatch):
    monkeypatch.setenv("ENABLE_RATE_LIMITING", "true")
    monkeypatch.setenv("API_RATE_LIMIT", "2")
    from agnivirya.main import app

    headers = {"X-Forwarded-For": "9.9.9.9"}
    with TestClient(app) as client:
        assert client.get("/api/ping", headers=headers).status_code == 200
        resp = client.get("/api/ping", headers=headers)
        assert resp.status_code == 200
        assert resp.headers["RateLimit-Remaining"] == "0"

        resp = client.get("/api/health", headers=headers)
        assert resp.status_code == 429
        assert resp.json()["error"] == "Too many requests from this IP, please try again later."
        assert int(resp.headers["Retry-After"]) > 0

        # Otra IP y las páginas fuera de /api no se limitan
        assert client.get("/api/ping", headers={"X-Forwarded-For": "8.8.8.8"}).status_code == 200
        assert client.get("/download", headers=headers).status_code == 200


def test_rate_limiting_disabled_by_default_outside_production(app_env, monkeypatch):
    monkeypatch.delenv("ENABLE_RATE_LIMITING", raising=False)
    monkeypatch.setenv("API_RATE_LIMIT", "2")
    from agnivirya.main import app

    headers = {"X-Forwarded-For": "9.9.9.9"}
    with TestClient(app) as client:
        for _ in range(5):
            resp = client.get("/api/ping", headers=headers)
            assert resp.status_code == 200
    assert "RateLimit-Limit" not in resp.headers


def test_security_headers_on_every_response(client):
    for path in ("/api/health", "/download", "/api/does-not-exist"):
        resp = client.get(path)
        assert resp.headers["X-Content-Type-Options"] == "nosniff"
        assert resp.headers["X-Frame-Options"] == "SAMEORIGIN"
        assert resp.headers["Referrer-Policy"] == "no-referrer"
    # HSTS solo en producción
    assert "Strict-Transport-Security" not in resp.headers


def test_security_headers_can_be_disabled(client, monkeypatch):
    monkeypatch.setenv("ENABLE_SECURITY_HEADERS", "false")
    resp = client.get("/api/health")
    assert "X-Frame-Options" not in resp.headers
