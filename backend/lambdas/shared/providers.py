"""
Vendor resolution and per-vendor request adapters.

`resolve()` turns a registry model id into a `ProviderHandle` whose single
`generate()` call hides the differences between the eight vendor APIs. REST
vendors are called with `requests`; Amazon Bedrock goes through boto3's
Converse API. Credentials come from the process environment; a missing or
placeholder value leaves the vendor unconfigured.
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Set

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .exceptions import ConfigurationError, ExternalServiceError, SchemaValidationError
from .http import post_json
from .prompts import PromptPayload, schema_instruction
from .registry import ModelDescriptor, Vendor, describe


LOGGER = logging.getLogger(__name__)

STRUCTURED = "structured"
TEXT = "text"

DEFAULT_TIMEOUT_SECONDS = 60.0
ANTHROPIC_API_VERSION = "2023-06-01"
ANTHROPIC_MAX_OUTPUT_TOKENS = 4096

VENDOR_CREDENTIALS: Dict[Vendor, tuple[str, ...]] = {
    Vendor.OPENAI: ("OPENAI_API_KEY",),
    Vendor.ANTHROPIC: ("ANTHROPIC_API_KEY",),
    Vendor.GOOGLE: ("GOOGLE_GENERATIVE_AI_API_KEY", "GOOGLE_API_KEY", "GEMINI_API_KEY"),
    Vendor.XAI: ("XAI_API_KEY",),
    Vendor.GROQ: ("GROQ_API_KEY",),
    Vendor.MISTRAL: ("MISTRAL_API_KEY",),
    Vendor.COHERE: ("COHERE_API_KEY",),
}
BEDROCK_VARIABLES = ("AWS_ACCESS_KEY_ID", "AWS_SECRET_ACCESS_KEY", "AWS_REGION")

# Values shipped in .env.example files; they mean "not configured".
PLACEHOLDER_SENTINELS = {"changeme", "placeholder", "xxx", "none", "null", "todo"}

_CHAT_COMPLETIONS_ENDPOINTS: Dict[Vendor, tuple[str, str]] = {
    # vendor -> (endpoint, structured output style)
    Vendor.OPENAI: ("https://api.openai.com/v1/chat/completions", "json_schema"),
    Vendor.XAI: ("https://api.x.ai/v1/chat/completions", "json_schema"),
    Vendor.GROQ: ("https://api.groq.com/openai/v1/chat/completions", "json_object"),
    Vendor.MISTRAL: ("https://api.mistral.ai/v1/chat/completions", "json_object"),
}
ANTHROPIC_ENDPOINT = "https://api.anthropic.com/v1/messages"
GOOGLE_ENDPOINT = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
COHERE_ENDPOINT = "https://api.cohere.com/v2/chat"


def is_placeholder(value: Optional[str]) -> bool:
    text = (value or "").strip()
    if not text:
        return True
    lowered = text.lower()
    return "your-" in lowered or lowered.endswith("-here") or lowered in PLACEHOLDER_SENTINELS


def _first_credential(names: tuple[str, ...], env: Mapping[str, str]) -> Optional[str]:
    for name in names:
        value = env.get(name)
        if not is_placeholder(value):
            return value.strip()
    return None


def _bedrock_settings(env: Mapping[str, str]) -> Optional[Dict[str, str]]:
    values = {name: env.get(name) for name in BEDROCK_VARIABLES}
    if any(is_placeholder(value) for value in values.values()):
        return None
    return {name: value.strip() for name, value in values.items()}


def configured_vendors(env: Optional[Mapping[str, str]] = None) -> Set[Vendor]:
    env = os.environ if env is None else env
    vendors = {vendor for vendor, names in VENDOR_CREDENTIALS.items() if _first_credential(names, env)}
    if _bedrock_settings(env):
        vendors.add(Vendor.BEDROCK)
    return vendors


# ────────────────────────────────────────────────────────────
#  Structured output validation
# ────────────────────────────────────────────────────────────
_JSON_TYPES = {
    "object": dict,
    "array": list,
    "string": str,
    "boolean": bool,
    "integer": int,
    "number": (int, float),
}


def validate_structured_output(value: Any, schema: Dict[str, Any], path: str = "$") -> None:
    """Check type/required/items constraints; length hints are left to the normalizer."""
    expected = schema.get("type")
    python_type = _JSON_TYPES.get(expected)
    if python_type is not None:
        if not isinstance(value, python_type) or (expected in {"integer", "number"} and isinstance(value, bool)):
            raise SchemaValidationError(f"{path} must be of type {expected}")

    if expected == "object":
        for key in schema.get("required", []):
            if key not in value:
                raise SchemaValidationError(f"{path}.{key} is required")
        for key, child in (schema.get("properties") or {}).items():
            if key in value and value[key] is not None:
                validate_structured_output(value[key], child, f"{path}.{key}")
    elif expected == "array" and "items" in schema:
        for index, item in enumerate(value):
            validate_structured_output(item, schema["items"], f"{path}[{index}]")


def _load_json_object(text: str, service: str) -> Dict[str, Any]:
    try:
        parsed = json.loads(text)
    except (TypeError, json.JSONDecodeError) as exc:
        raise SchemaValidationError(f"{service} structured response is not valid JSON: {exc}") from exc
    if not isinstance(parsed, dict):
        raise SchemaValidationError(f"{service} structured response is not a JSON object")
    return parsed


# ────────────────────────────────────────────────────────────
#  Vendor adapters
# ────────────────────────────────────────────────────────────
class VendorAdapter:
    """Base class: one subclass per vendor wire format."""

    service = "vendor"

    def __init__(self, model_name: str, *, timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS) -> None:
        self.model_name = model_name
        self.timeout_seconds = timeout_seconds

    def generate_structured(
        self,
        prompt: PromptPayload,
        schema: Dict[str, Any],
        schema_name: str,
        *,
        temperature: float,
        max_tokens: int,
    ) -> Dict[str, Any]:
        raise NotImplementedError

    def generate_text(self, prompt: PromptPayload, *, temperature: float, max_tokens: int) -> str:
        raise NotImplementedError


class ChatCompletionsAdapter(VendorAdapter):
    """OpenAI-compatible chat completions (OpenAI, xAI, Groq, Mistral)."""

    def __init__(
        self,
        model_name: str,
        *,
        api_key: str,
        endpoint: str,
        service: str,
        structured_style: str = "json_schema",
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        super().__init__(model_name, timeout_seconds=timeout_seconds)
        self.api_key = api_key
        self.endpoint = endpoint
        self.service = service
        self.structured_style = structured_style

    def _payload(self, prompt: PromptPayload, temperature: float, max_tokens: int) -> Dict[str, Any]:
        messages = []
        if prompt.system:
            messages.append({"role": "system", "content": prompt.system})
        messages.append({"role": "user", "content": prompt.user})
        return {
            "model": self.model_name,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

    def _complete(self, payload: Dict[str, Any]) -> str:
        data = post_json(
            service=self.service,
            url=self.endpoint,
            headers={"Authorization": f"Bearer {self.api_key}"},
            payload=payload,
            timeout_seconds=self.timeout_seconds,
        )
        choices = data.get("choices") or []
        message = (choices[0].get("message") or {}) if choices else {}
        text = message.get("content")
        if not isinstance(text, str) or not text.strip():
            raise ExternalServiceError(f"{self.service} response missing message content")
        return text

    def generate_structured(self, prompt, schema, schema_name, *, temperature, max_tokens):
        if self.structured_style == "json_schema":
            payload = self._payload(prompt, temperature, max_tokens)
            payload["response_format"] = {
                "type": "json_schema",
                "json_schema": {"name": schema_name, "schema": schema},
            }
        else:
            payload = self._payload(prompt.with_suffix(schema_instruction(schema)), temperature, max_tokens)
            payload["response_format"] = {"type": "json_object"}
        return _load_json_object(self._complete(payload), self.service)

    def generate_text(self, prompt, *, temperature, max_tokens):
        return self._complete(self._payload(prompt, temperature, max_tokens))


class AnthropicAdapter(VendorAdapter):
    service = "anthropic"

    def __init__(self, model_name: str, *, api_key: str, timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS) -> None:
        super().__init__(model_name, timeout_seconds=timeout_seconds)
        self.api_key = api_key

    def _invoke(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return post_json(
            service=self.service,
            url=ANTHROPIC_ENDPOINT,
            headers={"x-api-key": self.api_key, "anthropic-version": ANTHROPIC_API_VERSION},
            payload=payload,
            timeout_seconds=self.timeout_seconds,
        )

    def _payload(self, prompt: PromptPayload, temperature: float, max_tokens: int) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": self.model_name,
            "max_tokens": min(max_tokens, ANTHROPIC_MAX_OUTPUT_TOKENS),
            "temperature": temperature,
            "messages": [{"role": "user", "content": [{"type": "text", "text": prompt.user}]}],
        }
        if prompt.system:
            payload["system"] = prompt.system
        return payload

    def generate_structured(self, prompt, schema, schema_name, *, temperature, max_tokens):
        payload = self._payload(prompt, temperature, max_tokens)
        payload["tools"] = [
            {
                "name": schema_name,
                "description": f"Emit the {schema_name} as structured data.",
                "input_schema": schema,
            }
        ]
        payload["tool_choice"] = {"type": "tool", "name": schema_name}
        data = self._invoke(payload)
        for block in data.get("content") or []:
            if block.get("type") == "tool_use" and isinstance(block.get("input"), dict):
                return block["input"]
        raise SchemaValidationError("anthropic response did not include the requested tool call")

    def generate_text(self, prompt, *, temperature, max_tokens):
        data = self._invoke(self._payload(prompt, temperature, max_tokens))
        segments = [block.get("text", "") for block in data.get("content") or [] if block.get("type") == "text"]
        text = "\n".join(segment for segment in segments if segment).strip()
        if not text:
            raise ExternalServiceError("anthropic response missing text content")
        return text


def _to_gemini_schema(schema: Dict[str, Any]) -> Dict[str, Any]:
    converted: Dict[str, Any] = {}
    if "type" in schema:
        converted["type"] = str(schema["type"]).upper()
    if "description" in schema:
        converted["description"] = schema["description"]
    if "properties" in schema:
        converted["properties"] = {key: _to_gemini_schema(value) for key, value in schema["properties"].items()}
    if "items" in schema:
        converted["items"] = _to_gemini_schema(schema["items"])
    if "required" in schema:
        converted["required"] = list(schema["required"])
    return converted


class GoogleAdapter(VendorAdapter):
    service = "google"

    def __init__(self, model_name: str, *, api_key: str, timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS) -> None:
        super().__init__(model_name, timeout_seconds=timeout_seconds)
        self.api_key = api_key

    def _payload(self, prompt: PromptPayload, temperature: float, max_tokens: int) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": prompt.user}]}],
            "generationConfig": {"temperature": temperature, "maxOutputTokens": max_tokens},
        }
        if prompt.system:
            payload["systemInstruction"] = {"parts": [{"text": prompt.system}]}
        return payload

    def _invoke(self, payload: Dict[str, Any]) -> str:
        data = post_json(
            service=self.service,
            url=GOOGLE_ENDPOINT.format(model=self.model_name),
            headers={"x-goog-api-key": self.api_key},
            payload=payload,
            timeout_seconds=self.timeout_seconds,
        )
        candidates = data.get("candidates") or []
        parts = ((candidates[0].get("content") or {}).get("parts") or []) if candidates else []
        text = "".join(part.get("text", "") for part in parts if isinstance(part, dict)).strip()
        if not text:
            feedback = data.get("promptFeedback") or {}
            raise ExternalServiceError(f"google response missing text content {feedback}".strip())
        return text

    def generate_structured(self, prompt, schema, schema_name, *, temperature, max_tokens):
        payload = self._payload(prompt, temperature, max_tokens)
        payload["generationConfig"]["responseMimeType"] = "application/json"
        payload["generationConfig"]["responseSchema"] = _to_gemini_schema(schema)
        return _load_json_object(self._invoke(payload), self.service)

    def generate_text(self, prompt, *, temperature, max_tokens):
        return self._invoke(self._payload(prompt, temperature, max_tokens))


class CohereAdapter(VendorAdapter):
    service = "cohere"

    def __init__(self, model_name: str, *, api_key: str, timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS) -> None:
        super().__init__(model_name, timeout_seconds=timeout_seconds)
        self.api_key = api_key

    def _payload(self, prompt: PromptPayload, temperature: float, max_tokens: int) -> Dict[str, Any]:
        messages = []
        if prompt.system:
            messages.append({"role": "system", "content": prompt.system})
        messages.append({"role": "user", "content": prompt.user})
        return {
            "model": self.model_name,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

    def _invoke(self, payload: Dict[str, Any]) -> str:
        data = post_json(
            service=self.service,
            url=COHERE_ENDPOINT,
            headers={"Authorization": f"Bearer {self.api_key}"},
            payload=payload,
            timeout_seconds=self.timeout_seconds,
        )
        content = (data.get("message") or {}).get("content") or []
        text = "".join(item.get("text", "") for item in content if item.get("type") == "text").strip()
        if not text:
            raise ExternalServiceError("cohere response missing text content")
        return text

    def generate_structured(self, prompt, schema, schema_name, *, temperature, max_tokens):
        payload = self._payload(prompt, temperature, max_tokens)
        payload["response_format"] = {"type": "json_object", "json_schema": schema}
        return _load_json_object(self._invoke(payload), self.service)

    def generate_text(self, prompt, *, temperature, max_tokens):
        return self._invoke(self._payload(prompt, temperature, max_tokens))


class BedrockAdapter(VendorAdapter):
    service = "bedrock"

    def __init__(
        self,
        model_name: str,
        *,
        region: str,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        client=None,
    ) -> None:
        super().__init__(model_name, timeout_seconds=timeout_seconds)
        self.region = region
        self._access_key_id = access_key_id
        self._secret_access_key = secret_access_key
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client(
                "bedrock-runtime",
                region_name=self.region,
                aws_access_key_id=self._access_key_id,
                aws_secret_access_key=self._secret_access_key,
                config=Config(
                    read_timeout=self.timeout_seconds,
                    connect_timeout=10,
                    retries={"total_max_attempts": 1, "mode": "standard"},
                ),
            )
        return self._client

    def _converse(self, prompt: PromptPayload, temperature: float, max_tokens: int, **extra: Any) -> Dict[str, Any]:
        request: Dict[str, Any] = {
            "modelId": self.model_name,
            "messages": [{"role": "user", "content": [{"text": prompt.user}]}],
            "inferenceConfig": {
                "maxTokens": min(max_tokens, ANTHROPIC_MAX_OUTPUT_TOKENS),
                "temperature": temperature,
            },
            **extra,
        }
        if prompt.system:
            request["system"] = [{"text": prompt.system}]
        try:
            response = self.client.converse(**request)
        except (ClientError, BotoCoreError) as exc:
            raise ExternalServiceError(f"Bedrock invocation failed: {exc}") from exc
        return ((response.get("output") or {}).get("message") or {})

    def generate_structured(self, prompt, schema, schema_name, *, temperature, max_tokens):
        message = self._converse(
            prompt,
            temperature,
            max_tokens,
            toolConfig={
                "tools": [
                    {
                        "toolSpec": {
                            "name": schema_name,
                            "description": f"Emit the {schema_name} as structured data.",
                            "inputSchema": {"json": schema},
                        }
                    }
                ],
                "toolChoice": {"tool": {"name": schema_name}},
            },
        )
        for block in message.get("content") or []:
            tool_use = block.get("toolUse")
            if tool_use and isinstance(tool_use.get("input"), dict):
                return tool_use["input"]
        raise SchemaValidationError("bedrock response did not include the requested tool call")

    def generate_text(self, prompt, *, temperature, max_tokens):
        message = self._converse(prompt, temperature, max_tokens)
        text = "\n".join(block["text"] for block in message.get("content") or [] if block.get("text")).strip()
        if not text:
            raise ExternalServiceError("bedrock response missing text content")
        return text


# ────────────────────────────────────────────────────────────
#  Resolution
# ────────────────────────────────────────────────────────────
@dataclass
class ProviderHandle:
    descriptor: ModelDescriptor
    adapter: VendorAdapter

    @property
    def model_id(self) -> str:
        return self.descriptor.id

    @property
    def vendor(self) -> Vendor:
        return self.descriptor.vendor

    def generate(
        self,
        prompt: PromptPayload,
        mode: str,
        *,
        schema: Optional[Dict[str, Any]] = None,
        schema_name: str = "response",
        temperature: float = 0.7,
        max_tokens: int = 8000,
    ) -> Any:
        """Run one vendor call; structured mode returns a dict, text mode a string."""
        if mode not in (STRUCTURED, TEXT):
            raise ValueError(f"Unsupported generation mode: {mode}")
        if mode == STRUCTURED and schema is None:
            raise ValueError("Structured generation requires a schema")

        try:
            if mode == TEXT:
                return self.adapter.generate_text(prompt, temperature=temperature, max_tokens=max_tokens)
            result = self.adapter.generate_structured(
                prompt,
                schema,
                schema_name,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except (AttributeError, TypeError, KeyError, IndexError) as exc:
            # Adapters read vendor payloads by shape; an unexpected shape is a vendor failure.
            raise ExternalServiceError(
                f"{self.adapter.service} returned a malformed response for {self.model_id}: {exc!r}"
            ) from exc
        validate_structured_output(result, schema)
        return result


def _not_configured(vendor: Vendor) -> ConfigurationError:
    return ConfigurationError(
        f"Provider {vendor.value} not configured. Please add the API key to your environment."
    )


def _build_adapter(descriptor: ModelDescriptor, env: Mapping[str, str], timeout_seconds: float) -> VendorAdapter:
    vendor = descriptor.vendor
    if vendor is Vendor.BEDROCK:
        settings = _bedrock_settings(env)
        if not settings:
            raise _not_configured(vendor)
        return BedrockAdapter(
            descriptor.vendor_model_name,
            region=settings["AWS_REGION"],
            access_key_id=settings["AWS_ACCESS_KEY_ID"],
            secret_access_key=settings["AWS_SECRET_ACCESS_KEY"],
            timeout_seconds=timeout_seconds,
        )

    api_key = _first_credential(VENDOR_CREDENTIALS[vendor], env)
    if not api_key:
        raise _not_configured(vendor)

    if vendor in _CHAT_COMPLETIONS_ENDPOINTS:
        endpoint, style = _CHAT_COMPLETIONS_ENDPOINTS[vendor]
        return ChatCompletionsAdapter(
            descriptor.vendor_model_name,
            api_key=api_key,
            endpoint=endpoint,
            service=vendor.value,
            structured_style=style,
            timeout_seconds=timeout_seconds,
        )
    if vendor is Vendor.ANTHROPIC:
        return AnthropicAdapter(descriptor.vendor_model_name, api_key=api_key, timeout_seconds=timeout_seconds)
    if vendor is Vendor.GOOGLE:
        return GoogleAdapter(descriptor.vendor_model_name, api_key=api_key, timeout_seconds=timeout_seconds)
    if vendor is Vendor.COHERE:
        return CohereAdapter(descriptor.vendor_model_name, api_key=api_key, timeout_seconds=timeout_seconds)
    raise ConfigurationError(f"Provider {vendor.value} not implemented")


def resolve(
    model_id: str,
    *,
    env: Optional[Mapping[str, str]] = None,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
) -> ProviderHandle:
    """Return a callable handle for `model_id` or raise ConfigurationError."""
    descriptor = describe(model_id)
    env = os.environ if env is None else env
    adapter = _build_adapter(descriptor, env, timeout_seconds)
    LOGGER.debug("Resolved model=%s vendor=%s", descriptor.id, descriptor.vendor.value)
    return ProviderHandle(descriptor=descriptor, adapter=adapter)


__all__ = [
    "STRUCTURED",
    "TEXT",
    "DEFAULT_TIMEOUT_SECONDS",
    "ProviderHandle",
    "VendorAdapter",
    "ChatCompletionsAdapter",
    "AnthropicAdapter",
    "GoogleAdapter",
    "CohereAdapter",
    "BedrockAdapter",
    "configured_vendors",
    "is_placeholder",
    "resolve",
    "validate_structured_output",
]
