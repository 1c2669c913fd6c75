import pytest
import requests

from voiceinterview.infrastructure.llm import LLMError, VertexRestClient, extract_json_object


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload or {}
        self.text = text

    def json(self):
        return self._payload


class FakeSession:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def post(self, url, headers=None, json=None, timeout=None):
        self.calls.append({"url": url, "headers": headers, "json": json, "timeout": timeout})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def _text_payload(text):
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def _client(responses):
    session = FakeSession(responses)
    client = VertexRestClient(project="demo-project", session=session)
    client._token = "test-token"
    return client, session


def test_project_is_required():
    with pytest.raises(ValueError):
        VertexRestClient(project="")


def test_generate_content_posts_prompt():
    client, session = _client([FakeResponse(payload=_text_payload("Hello there"))])

    text = client.generate_content("Say hello", temperature=0.7, max_output_tokens=64)

    assert text == "Hello there"
    call = session.calls[0]
    assert call["url"].endswith("/publishers/google/models/gemini-2.5-flash-lite:generateContent")
    assert "projects/demo-project/locations/us-central1" in call["url"]
    assert call["headers"]["Authorization"] == "Bearer test-token"
    assert call["json"]["contents"][0]["parts"][0]["text"] == "Say hello"
    assert call["json"]["generationConfig"] == {"temperature": 0.7, "maxOutputTokens": 64}


def test_expired_token_refreshed_once(monkeypatch: pytest.MonkeyPatch):
    client, session = _client([
        FakeResponse(status_code=401, text="expired"),
        FakeResponse(payload=_text_payload("ok")),
    ])
    refreshed = []

    def _refresh():
        refreshed.append(True)
        client._token = "fresh-token"

    monkeypatch.setattr(client, "_refresh_token", _refresh)

    assert client.generate_content("prompt") == "ok"
    assert refreshed == [True]
    assert session.calls[1]["headers"]["Authorization"] == "Bearer fresh-token"


def test_http_error_raises_llm_error():
    client, _ = _client([FakeResponse(status_code=503, text="unavailable")])

    with pytest.raises(LLMError) as excinfo:
        client.generate_content("prompt")
    assert excinfo.value.status_code == 503


def test_blocked_response_raises_llm_error():
    client, _ = _client([FakeResponse(payload={"candidates": [{"finishReason": "SAFETY"}]})])

    with pytest.raises(LLMError, match="SAFETY"):
        client.generate_content("prompt")


def test_transport_error_raises_llm_error():
    client, _ = _client([requests.ConnectionError("offline")])

    with pytest.raises(LLMError):
        client.generate_content("prompt")


def test_generate_json_strips_fences():
    client, _ = _client([FakeResponse(payload=_text_payload('```json\n{"score": 7}\n```'))])

    assert client.generate_json("  rate this  ") == {"score": 7}


@pytest.mark.parametrize(
    "text,expected",
    [
        ('{"a": 1}', {"a": 1}),
        ('Here you go: {"a": {"b": 2}} hope that helps', {"a": {"b": 2}}),
        ('```\n{"a": true}\n```', {"a": True}),
    ],
)
def test_extract_json_object(text, expected):
    assert extract_json_object(text) == expected


@pytest.mark.parametrize("text", ["", "no json here", "[1, 2, 3]", "{broken: json}"])
def test_extract_json_object_rejects(text):
    with pytest.raises(LLMError):
        extract_json_object(text)
