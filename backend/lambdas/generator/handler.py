"""
Generator Lambda (blog post generation step).

Invoked once the transcript and video metadata have been fetched. The
requested model is asked for a structured blog post; when the vendor cannot
honour the schema we retry the same model in free-text mode with an embedded
JSON instruction and let the normalizer recover the record. A model that
still yields nothing usable is abandoned in favour of the next entry of a
fixed fallback list. There is no backoff or retry within a single model.
"""
from __future__ import annotations

import json
import logging
import threading
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from backend.lambdas.shared.config import get_bool_env, get_env, get_float_env, get_int_env, get_list_env
from backend.lambdas.shared.content import BlogContent, GenerationRequest, VideoContext
from backend.lambdas.shared.exceptions import (
    ConfigurationError,
    ExternalServiceError,
    GenerationCancelled,
    GenerationError,
    NormalizationFailure,
)
from backend.lambdas.shared.normalizer import RawOutputKind, normalize_with_kind
from backend.lambdas.shared.prompts import (
    BLOG_POST_SCHEMA,
    BLOG_POST_SCHEMA_NAME,
    TEXT_MODE_JSON_INSTRUCTION,
    build_blog_prompt,
)
from backend.lambdas.shared.providers import (
    DEFAULT_TIMEOUT_SECONDS,
    STRUCTURED,
    TEXT,
    ProviderHandle,
    configured_vendors,
    resolve,
)
from backend.lambdas.shared.registry import DEFAULT_MODEL_ID, Vendor, list_available


LOGGER = logging.getLogger(__name__)
LOGGER.setLevel(logging.INFO)

DEFAULT_FALLBACK_MODELS: Tuple[str, ...] = ("gemini-1.5-flash", "gpt-3.5-turbo", "claude-3-haiku")


@dataclass
class GeneratorSettings:
    default_model: str = DEFAULT_MODEL_ID
    fallback_models: Tuple[str, ...] = DEFAULT_FALLBACK_MODELS
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    temperature: float = 0.7
    max_tokens: int = 4096
    # Raise immediately when the requested model itself is not configured.
    strict_model_selection: bool = False
    # Prose shorter than this counts as a model failure (0 accepts any prose).
    min_prose_chars: int = 0

    @classmethod
    def from_env(cls) -> "GeneratorSettings":
        return cls(
            default_model=get_env("DEFAULT_AI_MODEL", DEFAULT_MODEL_ID),
            fallback_models=get_list_env("GENERATION_FALLBACK_MODELS", DEFAULT_FALLBACK_MODELS),
            timeout_seconds=get_float_env("GENERATION_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS),
            temperature=get_float_env("GENERATION_TEMPERATURE", 0.7),
            max_tokens=get_int_env("GENERATION_MAX_TOKENS", 4096),
            strict_model_selection=get_bool_env("GENERATION_STRICT_MODEL", False),
            min_prose_chars=get_int_env("GENERATION_MIN_PROSE_CHARS", 0),
        )


@dataclass
class GenerationAttempt:
    model_id: str
    reason: str


@dataclass
class GenerationOutcome:
    content: BlogContent
    model_id: str
    vendor: Vendor
    mode: str
    raw_kind: RawOutputKind
    attempts: List[GenerationAttempt] = field(default_factory=list)

    @property
    def used_fallback(self) -> bool:
        return bool(self.attempts)


def candidate_models(requested: str, settings: GeneratorSettings) -> List[str]:
    """Requested model first, then the fallback list in order without repeats."""
    ordered: List[str] = []
    for model_id in (requested, *settings.fallback_models):
        if model_id and model_id not in ordered:
            ordered.append(model_id)
    return ordered


def _check_cancelled(cancel_event: Optional[threading.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise GenerationCancelled("Blog post generation cancelled by caller")


def _generate_with_handle(
    handle: ProviderHandle,
    request: GenerationRequest,
    settings: GeneratorSettings,
    cancel_event: Optional[threading.Event],
) -> Tuple[BlogContent, str, RawOutputKind]:
    prompt = build_blog_prompt(request)

    try:
        structured = handle.generate(
            prompt,
            STRUCTURED,
            schema=BLOG_POST_SCHEMA,
            schema_name=BLOG_POST_SCHEMA_NAME,
            temperature=settings.temperature,
            max_tokens=settings.max_tokens,
        )
    except ExternalServiceError as exc:
        LOGGER.warning("Structured output failed for %s, trying text generation: %s", handle.model_id, exc)
    else:
        try:
            content, kind = normalize_with_kind(structured, request.video_title)
            return content, STRUCTURED, kind
        except NormalizationFailure as exc:
            LOGGER.warning("Structured output from %s was empty, trying text generation: %s", handle.model_id, exc)

    _check_cancelled(cancel_event)
    text = handle.generate(
        prompt.with_suffix(TEXT_MODE_JSON_INSTRUCTION),
        TEXT,
        temperature=settings.temperature,
        max_tokens=settings.max_tokens,
    )
    content, kind = normalize_with_kind(text, request.video_title)
    if kind is RawOutputKind.PROSE and len(content.content.strip()) < settings.min_prose_chars:
        raise NormalizationFailure(
            f"Prose response shorter than {settings.min_prose_chars} characters"
        )
    return content, TEXT, kind


def run_generation(
    request: GenerationRequest,
    settings: Optional[GeneratorSettings] = None,
    *,
    cancel_event: Optional[threading.Event] = None,
    env: Optional[Mapping[str, str]] = None,
) -> GenerationOutcome:
    """Generate a blog post, walking the fallback list until a model succeeds."""
    settings = settings or GeneratorSettings.from_env()
    requested = request.model_id or settings.default_model
    attempts: List[GenerationAttempt] = []

    for index, model_id in enumerate(candidate_models(requested, settings)):
        _check_cancelled(cancel_event)
        if index:
            LOGGER.info("Trying fallback model: %s", model_id)

        try:
            handle = resolve(model_id, env=env, timeout_seconds=settings.timeout_seconds)
        except ConfigurationError as exc:
            if index == 0 and settings.strict_model_selection:
                raise
            LOGGER.warning("Skipping model %s: %s", model_id, exc)
            attempts.append(GenerationAttempt(model_id=model_id, reason=str(exc)))
            continue

        try:
            content, mode, kind = _generate_with_handle(handle, request, settings, cancel_event)
        except (ExternalServiceError, NormalizationFailure) as exc:
            LOGGER.warning("Model %s failed to produce a blog post: %s", model_id, exc)
            attempts.append(GenerationAttempt(model_id=model_id, reason=str(exc)))
            continue

        if attempts:
            LOGGER.info(
                "Blog post generated by fallback model %s after %d failed attempt(s)",
                model_id,
                len(attempts),
            )
        return GenerationOutcome(
            content=content,
            model_id=model_id,
            vendor=handle.vendor,
            mode=mode,
            raw_kind=kind,
            attempts=attempts,
        )

    raise GenerationError("AI generation failed for every candidate model", attempts)


def generate_blog_post(
    request: GenerationRequest,
    settings: Optional[GeneratorSettings] = None,
    *,
    cancel_event: Optional[threading.Event] = None,
) -> BlogContent:
    return run_generation(request, settings, cancel_event=cancel_event).content


def request_from_event(event: Dict[str, Any]) -> GenerationRequest:
    video = event.get("video") or {}
    comments = [
        comment if isinstance(comment, dict) else {"text": str(comment)}
        for comment in event.get("comments") or []
    ]
    return GenerationRequest(
        transcript=event["transcript"],
        video_title=(video.get("title") or event.get("video_title") or "").strip(),
        video_description=(video.get("description") or "").strip(),
        context=VideoContext(
            comments=comments,
            tags=list(video.get("tags") or []),
            language=event.get("language") or "en",
        ),
        model_id=event.get("model_id"),
    )


def list_models(event: Optional[Dict[str, Any]] = None, context: Any = None) -> Dict[str, Any]:
    available = list_available(configured_vendors())
    return {"models": [descriptor.to_dict() for descriptor in available]}


def handle(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    if not (event.get("transcript") or "").strip():
        raise ValueError("Event missing transcript")

    request = request_from_event(event)
    settings = GeneratorSettings.from_env()
    requested = request.model_id or settings.default_model
    LOGGER.info("Generator invoked for video=%s model=%s", (event.get("video") or {}).get("id"), requested)

    outcome = run_generation(request, settings)
    llm_meta: Dict[str, Any] = {
        "provider": outcome.vendor.value,
        "model_id": outcome.model_id,
        "mode": outcome.mode,
        "raw_kind": outcome.raw_kind.value,
        "attempts": [asdict(attempt) for attempt in outcome.attempts],
    }
    if outcome.model_id != requested and outcome.attempts:
        llm_meta["fallback_origin"] = {
            "model_id": requested,
            "error": outcome.attempts[0].reason,
        }

    return {
        **event,
        "generated_content": outcome.content.to_dict(),
        "llm": llm_meta,
    }


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    if isinstance(event, str):
        event = json.loads(event)
    return handle(event, context)
