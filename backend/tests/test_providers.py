import json
from typing import Any, Dict, List

import pytest
import requests
from botocore.exceptions import ClientError

from backend.lambdas.shared import http, providers
from backend.lambdas.shared.exceptions import (
    ConfigurationError,
    ExternalServiceError,
    ModelNotFoundError,
    SchemaValidationError,
)
from backend.lambdas.shared.prompts import KEYWORDS_SCHEMA, PromptPayload
from backend.lambdas.shared.registry import Vendor


PROMPT = PromptPayload(system="be helpful", user="write something")


class RecordingPost:
    """Replaces `post_json` and replays a canned vendor response."""

    def __init__(self, response: Dict[str, Any]) -> None:
        self.response = response
        self.calls: List[Dict[str, Any]] = []

    def __call__(self, **kwargs: Any) -> Dict[str, Any]:
        self.calls.append(kwargs)
        return self.response


@pytest.mark.parametrize(
    "value",
    ["", "   ", None, "your-openai-key", "sk-your-key-here", "api-key-here", "changeme", "PLACEHOLDER"],
)
def test_placeholder_values_count_as_missing(value):
    assert providers.is_placeholder(value) is True


def test_real_looking_key_is_not_placeholder():
    assert providers.is_placeholder("sk-proj-abc123") is False


def test_configured_vendors_reads_each_credential():
    env = {
        "OPENAI_API_KEY": "sk-live",
        "ANTHROPIC_API_KEY": "your-anthropic-key",
        "GEMINI_API_KEY": "gm-live",
        "AWS_ACCESS_KEY_ID": "AKIA",
        "AWS_SECRET_ACCESS_KEY": "secret",
    }

    assert providers.configured_vendors(env) == {Vendor.OPENAI, Vendor.GOOGLE}

    env["AWS_REGION"] = "us-east-1"
    assert Vendor.BEDROCK in providers.configured_vendors(env)


def test_configured_vendors_empty_environment():
    assert providers.configured_vendors({}) == set()


def test_resolve_unknown_model():
    with pytest.raises(ModelNotFoundError):
        providers.resolve("no-such-model", env={"OPENAI_API_KEY": "sk-live"})


def test_resolve_unconfigured_vendor():
    with pytest.raises(ConfigurationError, match="Provider openai not configured"):
        providers.resolve("gpt-4o", env={"OPENAI_API_KEY": "your-key-here"})


def test_resolve_builds_matching_adapter():
    handle = providers.resolve("gemini-pro", env={"GOOGLE_API_KEY": "g-live"}, timeout_seconds=5)

    assert handle.model_id == "gemini-pro"
    assert handle.vendor is Vendor.GOOGLE
    assert isinstance(handle.adapter, providers.GoogleAdapter)
    assert handle.adapter.api_key == "g-live"
    assert handle.adapter.timeout_seconds == 5


def test_openai_structured_request_uses_json_schema(monkeypatch: pytest.MonkeyPatch):
    fake = RecordingPost({"choices": [{"message": {"content": json.dumps({"keywords": ["a", "b"]})}}]})
    monkeypatch.setattr(providers, "post_json", fake)
    handle = providers.resolve("gpt-4o-mini", env={"OPENAI_API_KEY": "sk-live"})

    result = handle.generate(PROMPT, providers.STRUCTURED, schema=KEYWORDS_SCHEMA, schema_name="seo_keywords")

    assert result == {"keywords": ["a", "b"]}
    call = fake.calls[0]
    assert call["url"] == "https://api.openai.com/v1/chat/completions"
    assert call["headers"] == {"Authorization": "Bearer sk-live"}
    assert call["payload"]["model"] == "gpt-4o-mini"
    assert call["payload"]["response_format"]["type"] == "json_schema"
    assert call["payload"]["response_format"]["json_schema"]["name"] == "seo_keywords"
    assert call["payload"]["messages"][0] == {"role": "system", "content": "be helpful"}


def test_groq_structured_request_embeds_schema_in_prompt(monkeypatch: pytest.MonkeyPatch):
    fake = RecordingPost({"choices": [{"message": {"content": '{"keywords": ["x"]}'}}]})
    monkeypatch.setattr(providers, "post_json", fake)
    handle = providers.resolve("llama-3.1-70b", env={"GROQ_API_KEY": "gq-live"})

    handle.generate(PROMPT, providers.STRUCTURED, schema=KEYWORDS_SCHEMA)

    payload = fake.calls[0]["payload"]
    assert payload["response_format"] == {"type": "json_object"}
    assert "matches this JSON schema" in payload["messages"][-1]["content"]


def test_structured_response_that_is_not_json_raises(monkeypatch: pytest.MonkeyPatch):
    fake = RecordingPost({"choices": [{"message": {"content": "Sure! Here are keywords: a, b"}}]})
    monkeypatch.setattr(providers, "post_json", fake)
    handle = providers.resolve("mistral-small", env={"MISTRAL_API_KEY": "ms-live"})

    with pytest.raises(SchemaValidationError):
        handle.generate(PROMPT, providers.STRUCTURED, schema=KEYWORDS_SCHEMA)


def test_structured_response_violating_schema_raises(monkeypatch: pytest.MonkeyPatch):
    fake = RecordingPost({"choices": [{"message": {"content": '{"keywords": "a, b"}'}}]})
    monkeypatch.setattr(providers, "post_json", fake)
    handle = providers.resolve("grok-2", env={"XAI_API_KEY": "xai-live"})

    with pytest.raises(SchemaValidationError, match=r"\$.keywords must be of type array"):
        handle.generate(PROMPT, providers.STRUCTURED, schema=KEYWORDS_SCHEMA)


def test_anthropic_structured_uses_forced_tool_call(monkeypatch: pytest.MonkeyPatch):
    fake = RecordingPost(
        {"content": [{"type": "tool_use", "name": "seo_keywords", "input": {"keywords": ["k"]}}]}
    )
    monkeypatch.setattr(providers, "post_json", fake)
    handle = providers.resolve("claude-3-haiku", env={"ANTHROPIC_API_KEY": "sk-ant-live"})

    result = handle.generate(
        PROMPT, providers.STRUCTURED, schema=KEYWORDS_SCHEMA, schema_name="seo_keywords", max_tokens=8000
    )

    assert result == {"keywords": ["k"]}
    payload = fake.calls[0]["payload"]
    assert payload["tool_choice"] == {"type": "tool", "name": "seo_keywords"}
    assert payload["max_tokens"] == providers.ANTHROPIC_MAX_OUTPUT_TOKENS
    assert payload["system"] == "be helpful"
    assert fake.calls[0]["headers"]["anthropic-version"] == providers.ANTHROPIC_API_VERSION


def test_anthropic_text_joins_text_blocks(monkeypatch: pytest.MonkeyPatch):
    fake = RecordingPost({"content": [{"type": "text", "text": "Hello"}, {"type": "text", "text": "world"}]})
    monkeypatch.setattr(providers, "post_json", fake)
    handle = providers.resolve("claude-3-opus", env={"ANTHROPIC_API_KEY": "sk-ant-live"})

    assert handle.generate(PROMPT, providers.TEXT) == "Hello\nworld"


def test_google_structured_converts_schema(monkeypatch: pytest.MonkeyPatch):
    fake = RecordingPost({"candidates": [{"content": {"parts": [{"text": '{"keywords": ["g"]}'}]}}]})
    monkeypatch.setattr(providers, "post_json", fake)
    handle = providers.resolve("gemini-1.5-flash", env={"GOOGLE_GENERATIVE_AI_API_KEY": "g-live"})

    result = handle.generate(PROMPT, providers.STRUCTURED, schema=KEYWORDS_SCHEMA)

    assert result == {"keywords": ["g"]}
    call = fake.calls[0]
    assert call["url"].endswith("/models/gemini-1.5-flash-latest:generateContent")
    config = call["payload"]["generationConfig"]
    assert config["responseMimeType"] == "application/json"
    assert config["responseSchema"]["type"] == "OBJECT"
    assert config["responseSchema"]["properties"]["keywords"]["items"] == {"type": "STRING"}


def test_google_empty_candidates_raise(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(providers, "post_json", RecordingPost({"candidates": []}))
    handle = providers.resolve("gemini-1.5-pro", env={"GEMINI_API_KEY": "g-live"})

    with pytest.raises(ExternalServiceError):
        handle.generate(PROMPT, providers.TEXT)


def test_cohere_text_response(monkeypatch: pytest.MonkeyPatch):
    fake = RecordingPost({"message": {"content": [{"type": "text", "text": "A summary."}]}})
    monkeypatch.setattr(providers, "post_json", fake)
    handle = providers.resolve("command-r", env={"COHERE_API_KEY": "co-live"})

    assert handle.generate(PROMPT, providers.TEXT) == "A summary."
    assert fake.calls[0]["url"] == providers.COHERE_ENDPOINT


def test_bedrock_structured_reads_tool_use():
    class StubBedrock:
        def __init__(self):
            self.requests = []

        def converse(self, **kwargs):
            self.requests.append(kwargs)
            return {"output": {"message": {"content": [{"toolUse": {"input": {"keywords": ["b"]}}}]}}}

    stub = StubBedrock()
    adapter = providers.BedrockAdapter("anthropic.claude-3-haiku-20240307-v1:0", region="us-east-1", client=stub)

    result = adapter.generate_structured(PROMPT, KEYWORDS_SCHEMA, "seo_keywords", temperature=0.3, max_tokens=200)

    assert result == {"keywords": ["b"]}
    request = stub.requests[0]
    assert request["toolConfig"]["toolChoice"] == {"tool": {"name": "seo_keywords"}}
    assert request["system"] == [{"text": "be helpful"}]


def test_bedrock_client_error_is_wrapped():
    class FailingBedrock:
        def converse(self, **kwargs):
            raise ClientError({"Error": {"Code": "ThrottlingException", "Message": "slow down"}}, "Converse")

    adapter = providers.BedrockAdapter("model", region="us-east-1", client=FailingBedrock())

    with pytest.raises(ExternalServiceError, match="Bedrock invocation failed"):
        adapter.generate_text(PROMPT, temperature=0.7, max_tokens=100)


@pytest.mark.parametrize(
    "model_id, env, response, mode",
    [
        ("gpt-4o", {"OPENAI_API_KEY": "sk-live"}, {"choices": ["unexpected"]}, providers.TEXT),
        ("claude-3-haiku", {"ANTHROPIC_API_KEY": "sk-ant-live"}, {"content": ["not a block"]}, providers.STRUCTURED),
        ("claude-3-haiku", {"ANTHROPIC_API_KEY": "sk-ant-live"}, {"content": [None]}, providers.TEXT),
        ("command-r", {"COHERE_API_KEY": "co-live"}, {"message": "flat string"}, providers.TEXT),
    ],
)
def test_malformed_vendor_payload_is_external_service_error(monkeypatch, model_id, env, response, mode):
    monkeypatch.setattr(providers, "post_json", RecordingPost(response))
    handle = providers.resolve(model_id, env=env)

    with pytest.raises(ExternalServiceError, match="malformed response"):
        handle.generate(PROMPT, mode, schema=KEYWORDS_SCHEMA)


def test_handle_rejects_unknown_mode_and_missing_schema():
    handle = providers.resolve("command-r-plus", env={"COHERE_API_KEY": "co-live"})

    with pytest.raises(ValueError):
        handle.generate(PROMPT, "streaming")
    with pytest.raises(ValueError):
        handle.generate(PROMPT, providers.STRUCTURED)


class StubResponse:
    def __init__(self, status_code: int, body: Any = None, text: str = "") -> None:
        self.status_code = status_code
        self._body = body
        self.text = text

    def json(self) -> Any:
        if isinstance(self._body, Exception):
            raise self._body
        return self._body


def test_post_json_returns_body_and_sends_timeout(monkeypatch: pytest.MonkeyPatch):
    captured = {}

    def fake_post(url, **kwargs):
        captured.update(kwargs, url=url)
        return StubResponse(200, {"ok": True})

    monkeypatch.setattr(http.requests, "post", fake_post)

    data = http.post_json(service="openai", url="https://x", headers={"A": "b"}, payload={"p": 1}, timeout_seconds=7)

    assert data == {"ok": True}
    assert captured["timeout"] == 7
    assert captured["headers"] == {"Content-Type": "application/json", "A": "b"}


def test_post_json_wraps_http_errors(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(http.requests, "post", lambda url, **kwargs: StubResponse(429, text="rate limited"))

    with pytest.raises(ExternalServiceError, match="groq returned HTTP 429: rate limited"):
        http.post_json(service="groq", url="https://x", headers={}, payload={}, timeout_seconds=1)


def test_post_json_wraps_transport_errors(monkeypatch: pytest.MonkeyPatch):
    def raise_timeout(url, **kwargs):
        raise requests.Timeout("read timed out")

    monkeypatch.setattr(http.requests, "post", raise_timeout)

    with pytest.raises(ExternalServiceError, match="mistral request failed"):
        http.post_json(service="mistral", url="https://x", headers={}, payload={}, timeout_seconds=1)


def test_post_json_rejects_non_json(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(http.requests, "post", lambda url, **kwargs: StubResponse(200, ValueError("bad json")))

    with pytest.raises(ExternalServiceError, match="non-JSON"):
        http.post_json(service="cohere", url="https://x", headers={}, payload={}, timeout_seconds=1)
