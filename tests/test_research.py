import json

from fakes import FakeTransport, fail, gemini_text, ok

from newsdesk.ai.gateway import handle_proxy_research
from newsdesk.ai.registry import ProviderId, RESEARCH_ROTATION
from newsdesk.ai.research import RotationState, parse_research_content, perform_research

ITEMS = [{"title": "Rates", "summary": "Central bank holds."}]


def _chat(content):
    return 200, {"choices": [{"message": {"content": content}}]}


class RecordingProxy:
    def __init__(self, responses):
        self.responses = dict(responses)
        self.providers = []

    def __call__(self, payload):
        self.providers.append(payload["provider"])
        return self.responses[payload["provider"]]


def test_rotation_walks_providers_in_order():
    rotation = RotationState()
    picked = [rotation.next_provider() for _ in range(len(RESEARCH_ROTATION) + 1)]
    assert picked == [*RESEARCH_ROTATION, RESEARCH_ROTATION[0]]
    assert rotation.counter == len(RESEARCH_ROTATION) + 1


def test_perform_research_uses_rotation_and_labels_source():
    proxy = RecordingProxy({"GEMINI": _chat(json.dumps(ITEMS)), "KIMI": _chat(json.dumps(ITEMS))})
    rotation = RotationState()

    first = perform_research("economy", rotation=rotation, proxy=proxy)
    second = perform_research("economy", rotation=rotation, proxy=proxy)

    assert proxy.providers == ["GEMINI", "KIMI"]
    assert first[0].source == "Google Search via Gemini"
    assert second[0].source == "Moonshot Kimi"
    assert second[0].title == "Rates"


def test_non_gemini_failure_falls_back_to_gemini_once():
    proxy = RecordingProxy(
        {"ZAI": (502, {"error": "Provider API error"}), "GEMINI": _chat(json.dumps(ITEMS))}
    )
    rotation = RotationState(start=2)

    results = perform_research("climate", rotation=rotation, proxy=proxy)

    assert proxy.providers == ["ZAI", "GEMINI"]
    assert results[0].source == "Google Search via Gemini"


def test_gemini_failure_returns_empty_without_retry():
    proxy = RecordingProxy({"GEMINI": (502, {"error": "down"})})
    assert perform_research("x", rotation=RotationState(), proxy=proxy) == []
    assert proxy.providers == ["GEMINI"]


def test_fallback_failure_returns_empty():
    def broken(payload):
        raise RuntimeError("network down")

    assert perform_research("x", rotation=RotationState(start=1), proxy=broken) == []


def test_parse_research_content_strips_fence():
    content = "```json\n" + json.dumps(ITEMS) + "\n```"
    results = parse_research_content(content, "AI/ML API")
    assert [item.to_dict() for item in results] == [
        {"title": "Rates", "summary": "Central bank holds.", "source": "AI/ML API"}
    ]


def test_parse_research_content_rejects_bad_payloads():
    assert parse_research_content("not json", "x") == []
    assert parse_research_content(json.dumps({"title": "a"}), "x") == []
    assert parse_research_content(json.dumps([{"title": 1, "summary": "b"}]), "x") == []
    assert parse_research_content("", "x") == []


def test_proxy_research_rejects_unlisted_endpoint():
    transport = FakeTransport([])
    status, body = handle_proxy_research(
        {"provider": "KIMI", "query": "x", "endpoint": "https://evil.example.com/v1"},
        transport=transport,
    )
    assert status == 403
    assert body == {"error": "Unauthorized endpoint provided"}
    assert transport.calls == []


def test_proxy_research_missing_key_is_400():
    status, body = handle_proxy_research({"provider": "ZAI", "query": "x"}, transport=FakeTransport([]))
    assert status == 400
    assert "Configuration missing" in body["error"]


def test_proxy_research_unknown_provider_without_endpoint():
    status, _ = handle_proxy_research({"provider": "OTHER", "query": "x"}, transport=FakeTransport([]))
    assert status == 400


def test_proxy_research_openai_compatible_payload(monkeypatch):
    monkeypatch.setenv("ML_API_KEY", "ml-key-123456")
    raw = {"choices": [{"message": {"content": "[]"}}]}
    transport = FakeTransport([ok(raw)])

    status, body = handle_proxy_research({"provider": "ML", "query": "chips"}, transport=transport)

    assert status == 200
    assert body == raw
    payload = transport.calls[0]["payload"]
    assert payload["model"] == "gpt-4o"
    assert payload["temperature"] == 0.3
    assert payload["messages"][1] == {"role": "user", "content": "Research: chips"}
    assert transport.calls[0]["url"] == "https://api.aimlapi.com/chat/completions"


def test_proxy_research_provider_error_is_502(monkeypatch):
    monkeypatch.setenv("KIMI_API_KEY", "kimi-key-123456")
    transport = FakeTransport([fail(401, "bad key")])

    status, body = handle_proxy_research({"provider": "KIMI", "query": "x"}, transport=transport)

    assert status == 502
    assert "bad key" in body["error"]


def test_proxy_research_gemini_reshapes_to_chat(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "gem-key-123456")
    transport = FakeTransport([ok(gemini_text(json.dumps(ITEMS)))])

    status, body = handle_proxy_research(
        {"provider": ProviderId.GEMINI.value, "query": "markets"},
        transport=transport,
    )

    assert status == 200
    assert json.loads(body["choices"][0]["message"]["content"]) == ITEMS
    assert transport.calls[0]["payload"]["tools"] == [{"googleSearch": {}}]
    assert "gemini-3-flash-preview" in transport.calls[0]["url"]
