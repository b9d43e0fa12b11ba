"""
Enrichment Lambda (SEO keywords / short summary step).

Runs after the generator step. Keywords are a non-critical enhancement: any
failure is logged and an empty list is returned. A missing short summary is
more visible to users, so `generate_summary` walks the fallback models and
raises when none of them can answer.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Iterable, List, Mapping, Optional

from backend.lambdas.generator.handler import GenerationAttempt, GeneratorSettings, candidate_models
from backend.lambdas.shared.content import Section
from backend.lambdas.shared.exceptions import ConfigurationError, ExternalServiceError, GenerationError
from backend.lambdas.shared.normalizer import strip_code_fence
from backend.lambdas.shared.prompts import (
    KEYWORDS_SCHEMA,
    KEYWORDS_SCHEMA_NAME,
    build_improve_prompt,
    build_keywords_prompt,
    build_summary_prompt,
)
from backend.lambdas.shared.providers import STRUCTURED, TEXT, resolve


LOGGER = logging.getLogger(__name__)
LOGGER.setLevel(logging.INFO)

KEYWORD_LIMIT = 15
DEFAULT_SUMMARY_LENGTH = 200
_ANCHOR_RE = re.compile(r"[^a-z0-9]+")


def _parse_keywords(raw: Any) -> List[str]:
    value: Any = None
    if isinstance(raw, dict):
        value = raw.get("keywords")
    elif isinstance(raw, str):
        text = raw.strip()
        if text.startswith("```"):
            text = strip_code_fence(text)
        value = json.loads(text)
        if isinstance(value, dict):
            value = value.get("keywords")
    if not isinstance(value, list):
        raise ValueError("Keyword response is not a list")

    keywords: List[str] = []
    seen: set[str] = set()
    for item in value:
        if not isinstance(item, (str, int, float)):
            continue
        keyword = str(item).strip()
        if keyword and keyword.lower() not in seen:
            keywords.append(keyword)
            seen.add(keyword.lower())
    return keywords[:KEYWORD_LIMIT]


def extract_keywords(
    content: str,
    model_id: Optional[str] = None,
    *,
    settings: Optional[GeneratorSettings] = None,
    env: Optional[Mapping[str, str]] = None,
) -> List[str]:
    """Return 10-15 SEO keywords, or [] when anything goes wrong."""
    try:
        settings = settings or GeneratorSettings.from_env()
        handle = resolve(model_id or settings.default_model, env=env, timeout_seconds=settings.timeout_seconds)
        try:
            raw = handle.generate(
                build_keywords_prompt(content),
                STRUCTURED,
                schema=KEYWORDS_SCHEMA,
                schema_name=KEYWORDS_SCHEMA_NAME,
                temperature=0.3,
                max_tokens=200,
            )
        except ExternalServiceError as exc:
            LOGGER.warning("Structured keyword extraction failed, trying text generation: %s", exc)
            raw = handle.generate(
                build_keywords_prompt(content, as_json_array=True),
                TEXT,
                temperature=0.3,
                max_tokens=200,
            )
        return _parse_keywords(raw)
    except Exception as exc:  # noqa: BLE001 - keywords must never fail the pipeline
        LOGGER.warning("Keyword extraction failed: %s", exc)
        return []


def truncate_text(text: str, max_length: int) -> str:
    clean = (text or "").strip()
    if max_length <= 0:
        return ""
    if len(clean) <= max_length:
        return clean
    return clean[: max_length - 1].rstrip() + "…"


def _clean_summary(raw: str) -> str:
    text = (raw or "").strip()
    if text.startswith("```"):
        text = strip_code_fence(text)
    if text.startswith("{"):
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, dict) and isinstance(parsed.get("summary"), str):
            text = parsed["summary"].strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in {'"', "'"}:
        text = text[1:-1].strip()
    return text


def generate_summary(
    content: str,
    max_length: int = DEFAULT_SUMMARY_LENGTH,
    model_id: Optional[str] = None,
    *,
    settings: Optional[GeneratorSettings] = None,
    env: Optional[Mapping[str, str]] = None,
) -> str:
    """Summarise `content` in at most `max_length` characters."""
    settings = settings or GeneratorSettings.from_env()
    attempts: List[GenerationAttempt] = []
    resolved_any = False

    for candidate in candidate_models(model_id or settings.default_model, settings):
        try:
            handle = resolve(candidate, env=env, timeout_seconds=settings.timeout_seconds)
        except ConfigurationError as exc:
            attempts.append(GenerationAttempt(model_id=candidate, reason=str(exc)))
            continue

        resolved_any = True
        try:
            text = handle.generate(
                build_summary_prompt(content, max_length),
                TEXT,
                temperature=0.5,
                max_tokens=max(100, max_length // 2),
            )
        except ExternalServiceError as exc:
            LOGGER.warning("Summary generation failed for %s: %s", candidate, exc)
            attempts.append(GenerationAttempt(model_id=candidate, reason=str(exc)))
            continue

        summary = _clean_summary(text)
        if summary:
            return truncate_text(summary, max_length)
        attempts.append(GenerationAttempt(model_id=candidate, reason="empty summary"))

    if not resolved_any:
        raise ConfigurationError("No configured model is available for summary generation")
    raise GenerationError("Summary generation failed", attempts)


def improve_content(
    content: str,
    instructions: str,
    model_id: Optional[str] = None,
    *,
    settings: Optional[GeneratorSettings] = None,
    env: Optional[Mapping[str, str]] = None,
) -> str:
    settings = settings or GeneratorSettings.from_env()
    model_id = model_id or settings.default_model
    try:
        handle = resolve(model_id, env=env, timeout_seconds=settings.timeout_seconds)
        return handle.generate(
            build_improve_prompt(content, instructions),
            TEXT,
            temperature=0.7,
            max_tokens=3000,
        )
    except (ConfigurationError, ExternalServiceError) as exc:
        raise GenerationError(f"Content improvement failed: {exc}") from exc


def generate_table_of_contents(sections: Iterable[Any]) -> str:
    entries = []
    for section in sections or []:
        heading = section.heading if isinstance(section, Section) else (section or {}).get("heading")
        if heading:
            entries.append(heading)
    if not entries:
        return ""

    lines = ["## Table of Contents", ""]
    for index, heading in enumerate(entries, start=1):
        anchor = _ANCHOR_RE.sub("-", heading.lower())
        lines.append(f"{index}. [{heading}](#{anchor})")
    return "\n".join(lines) + "\n\n"


def handle(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    generated = event.get("generated_content") or {}
    content = generated.get("content")
    if not content:
        raise ValueError("Event missing generated_content.content")

    model_id = (event.get("llm") or {}).get("model_id") or event.get("model_id")
    LOGGER.info("Enrichment invoked for video=%s model=%s", (event.get("video") or {}).get("id"), model_id)

    result = {
        **event,
        "keywords": extract_keywords(content, model_id),
        "table_of_contents": generate_table_of_contents(generated.get("sections") or []),
    }
    if event.get("generate_summary_short"):
        max_length = int(event.get("summary_max_length") or DEFAULT_SUMMARY_LENGTH)
        result["summary_short"] = generate_summary(content, max_length, model_id)
    return result


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    if isinstance(event, str):
        event = json.loads(event)
    return handle(event, context)
