import base64
import json

from fakes import FakeTransport, fail, gemini_text, ok
from fastapi.testclient import TestClient

from newsdesk.admin import app
from newsdesk.ai.research import ROTATION
from newsdesk.security.secrets import KEY_ID_ENV, MASTER_KEY_ENV


def _client(monkeypatch, token="secret"):
    if token:
        monkeypatch.setenv("ND_ADMIN_TOKEN", token)
    client = TestClient(app)
    if token:
        client.headers.update({"X-Admin-Token": token})
    return client


def _use_transport(monkeypatch, transport):
    monkeypatch.setattr("newsdesk.ai.dispatcher.post_json", transport)


def test_health_has_cors_headers(monkeypatch):
    client = _client(monkeypatch, token=None)
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["ok"] is True
    assert response.headers["Access-Control-Allow-Origin"] == "*"
    assert response.headers["Access-Control-Allow-Credentials"] == "true"


def test_proxy_research_options_preflight(monkeypatch):
    client = _client(monkeypatch, token=None)
    response = client.options("/api/proxy-research")
    assert response.status_code == 200
    assert response.content == b""
    assert "POST" in response.headers["Access-Control-Allow-Methods"]


def test_proxy_research_rejects_unlisted_endpoint(monkeypatch):
    transport = FakeTransport([])
    _use_transport(monkeypatch, transport)
    client = _client(monkeypatch, token=None)

    response = client.post(
        "/api/proxy-research",
        json={"provider": "KIMI", "query": "x", "endpoint": "https://evil.example.com/v1"},
    )

    assert response.status_code == 403
    assert response.json() == {"error": "Unauthorized endpoint provided"}
    assert transport.calls == []


def test_gemini_validate_reports_attempts(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "gem-key-123456")
    transport = FakeTransport([fail(404, "no model"), ok(gemini_text("pong"))])
    _use_transport(monkeypatch, transport)
    client = _client(monkeypatch, token=None)

    response = client.post(
        "/api/gemini",
        json={"operation": "validate", "modelCandidates": ["gemini-2.5-flash"]},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert [item["outcome"] for item in body["attempts"]] == ["failure", "success"]
    assert "gem-key-123456" not in response.text


def test_gemini_generate_without_keys_is_400(monkeypatch):
    transport = FakeTransport([])
    _use_transport(monkeypatch, transport)
    client = _client(monkeypatch, token=None)

    response = client.post("/api/gemini", json={"operation": "generate", "body": {"contents": []}})

    assert response.status_code == 400
    assert response.json()["ok"] is False
    assert transport.calls == []


def test_gemini_generate_exhausted_is_502(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "gem-key-123456")
    transport = FakeTransport([fail(500, "boom"), fail(500, "boom")])
    _use_transport(monkeypatch, transport)
    client = _client(monkeypatch, token=None)

    response = client.post(
        "/api/gemini",
        json={"body": {"contents": []}, "modelCandidates": ["gemini-2.5-flash"]},
    )

    assert response.status_code == 502
    assert len(response.json()["attempts"]) == 2


def test_gemini_rejects_invalid_payload(monkeypatch):
    client = _client(monkeypatch, token=None)
    assert client.post("/api/gemini", json={"operation": "delete"}).status_code == 400
    assert client.post("/api/gemini", json={"operation": "generate"}).status_code == 400
    assert client.post("/api/gemini", content=b"not json").status_code == 400


def test_admin_requires_token(monkeypatch):
    monkeypatch.setenv("ND_ADMIN_TOKEN", "secret")
    client = TestClient(app)
    assert client.get("/admin/agents").status_code == 401
    assert client.get("/admin/agents", headers={"X-Admin-Token": "secret"}).status_code == 200


def test_agents_crud(monkeypatch):
    client = _client(monkeypatch)

    created = client.post(
        "/admin/agents",
        json={"name": "Dana", "niche": "energy", "schedule": "6h", "perspective": 1},
    )
    assert created.status_code == 200
    agent = created.json()
    assert agent["status"] == "active"
    assert agent["perspective"] == 1

    assert client.post("/admin/agents", json={"name": "NoNiche"}).status_code == 400
    assert (
        client.post("/admin/agents", json={"name": "x", "niche": "y", "perspective": 7}).status_code
        == 400
    )

    updated = client.put(f"/admin/agents/{agent['id']}", json={"status": "paused"})
    assert updated.json()["status"] == "paused"

    schedule = client.get("/admin/agents/schedule").json()
    assert schedule[0]["id"] == agent["id"]
    assert schedule[0]["countdown"] is None

    assert client.post(f"/admin/agents/{agent['id']}/deploy").status_code == 409
    assert client.delete(f"/admin/agents/{agent['id']}").status_code == 200
    assert client.get(f"/admin/agents/{agent['id']}").status_code == 404


def test_deploy_runs_forced_agent(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "gem-key-123456")
    article = gemini_text("<h1>Grid Update</h1><p>Body</p>")
    image = {"candidates": [{"content": {"parts": [{"inlineData": {"data": "aW1n"}}]}}]}
    transport = FakeTransport([ok(article), ok(image)])
    _use_transport(monkeypatch, transport)
    client = _client(monkeypatch)
    agent = client.post("/admin/agents", json={"name": "Dana", "niche": "energy"}).json()

    response = client.post(f"/admin/agents/{agent['id']}/deploy")

    assert response.status_code == 200
    result = response.json()
    assert result["status"] == "published"
    assert result["image_attached"] is True
    assert result["slug"].startswith("grid-update-")
    assert "gemini-3-pro-preview" in transport.calls[0]["url"]
    assert "gemini-2.5-flash-image" in transport.calls[1]["url"]


def test_runtime_config_roundtrip(monkeypatch):
    client = _client(monkeypatch)
    cfg = client.get("/admin/config/runtime").json()["config"]
    cfg["worker"]["sleep_seconds"] = 60
    assert client.put("/admin/config/runtime", json={"config": cfg}).status_code == 200
    assert client.get("/admin/config/runtime").json()["config"]["worker"]["sleep_seconds"] == 60
    cfg["worker"]["bogus"] = 1
    assert client.put("/admin/config/runtime", json={"config": cfg}).status_code == 400


def test_research_endpoint(monkeypatch):
    monkeypatch.setattr(ROTATION, "counter", 0)
    monkeypatch.setenv("GEMINI_API_KEY", "gem-key-123456")
    items = [{"title": "A", "summary": "B"}]
    transport = FakeTransport([ok(gemini_text(json.dumps(items)))])
    _use_transport(monkeypatch, transport)
    client = _client(monkeypatch)

    response = client.post("/admin/research", json={"query": "energy"})

    assert response.status_code == 200
    assert response.json()["results"] == [
        {"title": "A", "summary": "B", "source": "Google Search via Gemini"}
    ]


def test_diagnostics_without_keys(monkeypatch):
    transport = FakeTransport([])
    _use_transport(monkeypatch, transport)
    client = _client(monkeypatch)

    body = client.get("/admin/diagnostics").json()

    assert body["database"]["status"] == "ok"
    assert body["keys"]["GEMINI"]["status"] == "error"
    assert body["gemini"]["status_code"] == 400
    assert transport.calls == []


def test_provider_secret_flow(monkeypatch):
    master = base64.urlsafe_b64encode(b"c" * 32).decode("utf-8")
    monkeypatch.setenv(MASTER_KEY_ENV, master)
    monkeypatch.setenv(KEY_ID_ENV, "v1")
    client = _client(monkeypatch)

    response = client.post("/admin/ai/providers/ml/secret", json={"api_key": "supersecretkey"})
    assert response.status_code == 200
    assert "supersecretkey" not in response.text

    providers = {item["id"]: item for item in client.get("/admin/ai/providers").json()}
    assert providers["ML"]["stored_key_last4"] == "tkey"
    assert providers["ML"]["key_status"] == "ok"

    assert client.delete("/admin/ai/providers/ml/secret").json() == {"status": "cleared"}
    assert client.post("/admin/ai/providers/nope/secret", json={"api_key": "x"}).status_code == 400
