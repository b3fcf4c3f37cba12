import json

from fastapi.testclient import TestClient


def test_lifespan_builds_services_and_saves_on_shutdown(app_env, monkeypatch):
    data_file = app_env / "visitors.json"
    monkeypatch.setenv("VISITOR_STORAGE", "file")
    monkeypatch.setenv("VISITOR_DATA_FILE", str(data_file))
    from agnivirya.main import app

    with TestClient(app) as client:
        assert app.state.cashfree_service.is_configured is True
        assert app.state.visitor_tracker.storage.name == "file"
        assert app.state.rate_limiter is None
        client.post("/api/visitors/track", headers={"X-Forwarded-For": "7.7.7.7"})

    saved = json.loads(data_file.read_text())
    assert saved["stats"]["totalVisits"] == 1
    assert [ip for ip, _ in saved["visitors"]] == ["7.7.7.7"]


def test_health_and_ping(client):
    health = client.get("/api/health").json()
    assert health["status"] == "ok"
    assert health["environment"] == "development"

    assert client.get("/api/ping").json()["pong"] is True


def test_public_config_has_no_secrets(client):
    resp = client.get("/api/config")
    assert resp.status_code == 200
    config = resp.json()
    assert config["features"]["payments"] is True
    assert config["features"]["visitorStorage"] == "memory"
    assert "test_client_secret" not in resp.text
    assert "test_client_id" not in resp.text


def test_spa_shell_embeds_initial_state(client):
    resp = client.get("/download?order_id=order_1")
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/html")
    assert "window.__INITIAL_STATE__" in resp.text
    assert '"currentUrl": "/download?order_id=order_1"' in resp.text


def test_spa_shell_escapes_script_in_url(client):
    resp = client.get("/%3C/script%3E%3Cscript%3Ealert(1)")
    assert resp.status_code == 200
    assert "</script><script>alert(1)" not in resp.text


def test_unknown_api_path_is_json_404(client):
    resp = client.get("/api/does-not-exist")
    assert resp.status_code == 404
    assert resp.headers["content-type"].startswith("application/json")
    assert resp.json()["detail"] == "API endpoint not found"


def test_download_validates_language(client):
    resp = client.get("/api/download?language=french")
    assert resp.status_code == 400

    resp = client.get("/api/download")
    assert resp.status_code == 400


def test_download_missing_file(client):
    resp = client.get("/api/download?language=hindi")
    assert resp.status_code == 404


def test_download_streams_pdf(client, app_env):
    assets = app_env / "assets"
    assets.mkdir()
    (assets / "English.pdf").write_bytes(b"%PDF-1.4 test")

    resp = client.get("/api/download?language=English")
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "application/pdf"
    assert 'filename="English.pdf"' in resp.headers["content-disposition"]
    assert resp.content == b"%PDF-1.4 test"
