"""
Static catalogue of the language models the generator can call.

Each entry maps a stable model identifier (the value stored on blog posts and
sent by the web client) to the vendor that hosts it and the vendor-specific
model name used on the wire.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List

from .exceptions import ModelNotFoundError


class Vendor(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"
    XAI = "xai"
    GROQ = "groq"
    MISTRAL = "mistral"
    COHERE = "cohere"
    BEDROCK = "bedrock"


@dataclass(frozen=True)
class ModelDescriptor:
    id: str
    vendor: Vendor
    vendor_model_name: str
    display_name: str
    max_context_tokens: int

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "provider": self.vendor.value,
            "model": self.vendor_model_name,
            "name": self.display_name,
            "maxTokens": self.max_context_tokens,
        }


DEFAULT_MODEL_ID = "gemini-1.5-flash"

_CATALOGUE: tuple[ModelDescriptor, ...] = (
    ModelDescriptor("gpt-4o", Vendor.OPENAI, "gpt-4o", "GPT-4o", 128000),
    ModelDescriptor("gpt-4o-mini", Vendor.OPENAI, "gpt-4o-mini", "GPT-4o Mini", 128000),
    ModelDescriptor("gpt-4-turbo", Vendor.OPENAI, "gpt-4-turbo", "GPT-4 Turbo", 128000),
    ModelDescriptor("gpt-3.5-turbo", Vendor.OPENAI, "gpt-3.5-turbo", "GPT-3.5 Turbo", 16384),
    ModelDescriptor("claude-3-opus", Vendor.ANTHROPIC, "claude-3-opus-20240229", "Claude 3 Opus", 200000),
    ModelDescriptor("claude-3-sonnet", Vendor.ANTHROPIC, "claude-3-5-sonnet-20241022", "Claude 3.5 Sonnet", 200000),
    ModelDescriptor("claude-3-haiku", Vendor.ANTHROPIC, "claude-3-haiku-20240307", "Claude 3 Haiku", 200000),
    ModelDescriptor("gemini-1.5-pro", Vendor.GOOGLE, "gemini-1.5-pro-latest", "Gemini 1.5 Pro", 1048576),
    ModelDescriptor("gemini-1.5-flash", Vendor.GOOGLE, "gemini-1.5-flash-latest", "Gemini 1.5 Flash", 1048576),
    ModelDescriptor("gemini-pro", Vendor.GOOGLE, "gemini-pro", "Gemini Pro", 32768),
    ModelDescriptor("grok-3-beta", Vendor.XAI, "grok-3-beta", "Grok 3 Beta", 65536),
    ModelDescriptor("grok-2", Vendor.XAI, "grok-2", "Grok 2", 32768),
    ModelDescriptor("llama-3.1-405b", Vendor.GROQ, "llama-3.1-405b-reasoning", "Llama 3.1 405B", 131072),
    ModelDescriptor("llama-3.1-70b", Vendor.GROQ, "llama-3.1-70b-versatile", "Llama 3.1 70B", 131072),
    ModelDescriptor("mixtral-8x7b", Vendor.GROQ, "mixtral-8x7b-32768", "Mixtral 8x7B", 32768),
    ModelDescriptor("mistral-large", Vendor.MISTRAL, "mistral-large-latest", "Mistral Large", 128000),
    ModelDescriptor("mistral-medium", Vendor.MISTRAL, "mistral-medium-latest", "Mistral Medium", 32768),
    ModelDescriptor("mistral-small", Vendor.MISTRAL, "mistral-small-latest", "Mistral Small", 32768),
    ModelDescriptor("command-r-plus", Vendor.COHERE, "command-r-plus", "Command R+", 128000),
    ModelDescriptor("command-r", Vendor.COHERE, "command-r", "Command R", 128000),
    ModelDescriptor(
        "bedrock-claude-3-haiku",
        Vendor.BEDROCK,
        "anthropic.claude-3-haiku-20240307-v1:0",
        "Claude 3 Haiku (Bedrock)",
        200000,
    ),
)

MODELS: Dict[str, ModelDescriptor] = {descriptor.id: descriptor for descriptor in _CATALOGUE}


def describe(model_id: str) -> ModelDescriptor:
    try:
        return MODELS[model_id]
    except KeyError:
        raise ModelNotFoundError(f"Model {model_id} not found") from None


def list_available(configured_vendors: Iterable[Vendor]) -> List[ModelDescriptor]:
    """Return models whose vendor is configured, grouped by vendor in catalogue order."""
    configured = {Vendor(vendor) for vendor in configured_vendors}
    vendor_order: List[Vendor] = []
    for descriptor in _CATALOGUE:
        if descriptor.vendor not in vendor_order:
            vendor_order.append(descriptor.vendor)

    available: List[ModelDescriptor] = []
    for vendor in vendor_order:
        if vendor not in configured:
            continue
        available.extend(descriptor for descriptor in _CATALOGUE if descriptor.vendor is vendor)
    return available


__all__ = ["Vendor", "ModelDescriptor", "MODELS", "DEFAULT_MODEL_ID", "describe", "list_available"]
