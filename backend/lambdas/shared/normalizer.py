"""
Coerce raw model output into the canonical `BlogContent` record.

Models return either an already-structured object or a string that may hold
fenced JSON, a bare JSON object, JSON that was stringified twice, or plain
prose. The string encodings are tried in a fixed order (see
`STRING_STRATEGIES`); the first one that parses to an object with non-empty
`content` wins. Prose is the terminal fallback. The repair job reuses the same
strategies on stored records.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from .content import BlogContent, Section
from .exceptions import NormalizationFailure


LOGGER = logging.getLogger(__name__)

GENERIC_TAGS = ("youtube", "video", "blog", "content", "tutorial")
DEFAULT_FALLBACK_TITLE = "Untitled video"

OPENING_FENCE_RE = re.compile(r"^```[A-Za-z0-9_+-]*[ \t]*")
ESCAPED_TITLE_MARKER = '\\"title\\"'
ESCAPED_CONTENT_MARKER = '\\"content\\"'


class RawOutputKind(str, Enum):
    OBJECT = "object"
    FENCED_JSON = "fenced_json"
    JSON_OBJECT = "json_object"
    ESCAPED_JSON = "escaped_json"
    PROSE = "prose"
    EMPTY = "empty"


@dataclass(frozen=True)
class ParseStrategy:
    kind: RawOutputKind
    matches: Callable[[str], bool]
    parse: Callable[[str], Dict[str, Any]]


def _loads_object(text: str) -> Dict[str, Any]:
    # strict=False tolerates literal newlines inside strings (common after unescaping).
    parsed = json.loads(text, strict=False)
    if not isinstance(parsed, dict):
        raise ValueError(f"expected a JSON object, got {type(parsed).__name__}")
    return parsed


def extract_balanced_object(text: str) -> Optional[str]:
    """Return the first brace-balanced `{...}` span, ignoring braces inside strings."""
    start = text.find("{")
    if start < 0:
        return None
    depth = 0
    in_string = False
    escaped = False
    for idx in range(start, len(text)):
        char = text[idx]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : idx + 1]
    return None


def _loads_with_recovery(text: str) -> Dict[str, Any]:
    try:
        return _loads_object(text)
    except ValueError:
        candidate = extract_balanced_object(text)
        if candidate is None or candidate == text:
            raise
        return _loads_object(candidate)


def strip_code_fence(text: str) -> str:
    body = OPENING_FENCE_RE.sub("", text.strip(), count=1)
    closing = body.rfind("```")
    if closing >= 0:
        body = body[:closing]
    return body.strip()


def _is_fenced(text: str) -> bool:
    # A markdown post that opens with a code sample is not a wrapped payload.
    return text.startswith("```") and strip_code_fence(text).startswith("{")


def _parse_fenced(text: str) -> Dict[str, Any]:
    return _loads_with_recovery(strip_code_fence(text))


def _looks_like_json_object(text: str) -> bool:
    return text.startswith("{") and ('"title"' in text or '"content"' in text)


def _parse_json_object(text: str) -> Dict[str, Any]:
    return _loads_with_recovery(text)


def _has_escaped_markers(text: str) -> bool:
    return ESCAPED_TITLE_MARKER in text and ESCAPED_CONTENT_MARKER in text


def _decode_string_literal(text: str) -> Optional[str]:
    literal = text if text.startswith('"') and text.endswith('"') and len(text) > 1 else f'"{text}"'
    try:
        decoded = json.loads(literal, strict=False)
    except ValueError:
        return None
    return decoded if isinstance(decoded, str) else None


def _parse_escaped(text: str) -> Dict[str, Any]:
    # The object was serialised as a JSON string literal (with or without the outer quotes).
    decoded = _decode_string_literal(text)
    if decoded is not None:
        try:
            return _loads_with_recovery(decoded.strip())
        except ValueError:
            pass
    unescaped = text.replace('\\"', '"').replace("\\n", "\n")
    return _loads_with_recovery(unescaped)


STRING_STRATEGIES: Tuple[ParseStrategy, ...] = (
    ParseStrategy(RawOutputKind.FENCED_JSON, _is_fenced, _parse_fenced),
    ParseStrategy(RawOutputKind.JSON_OBJECT, _looks_like_json_object, _parse_json_object),
    ParseStrategy(RawOutputKind.ESCAPED_JSON, _has_escaped_markers, _parse_escaped),
)


def _string(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _string_list(value: Any) -> List[str]:
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if not isinstance(value, list):
        return []
    # Valid string items are kept verbatim; anything else is dropped.
    return [item for item in value if isinstance(item, str)]


def _sections(value: Any) -> List[Section]:
    if not isinstance(value, list):
        return []
    return [
        Section(heading=_string(item.get("heading")), content=_string(item.get("content")))
        for item in value
        if isinstance(item, dict)
    ]


def fallback_heading(fallback_title: str) -> str:
    return f"{(fallback_title or DEFAULT_FALLBACK_TITLE).strip()} - Blog Post"


def has_content(data: Dict[str, Any]) -> bool:
    return bool(_string(data.get("content")).strip())


def coerce_record(data: Dict[str, Any], fallback_title: str) -> BlogContent:
    """Map a parsed object onto BlogContent, defaulting optional fields."""
    content = _string(data.get("content"))
    if not content.strip():
        raise NormalizationFailure("Model output is missing blog content")
    title = _string(data.get("title"))
    if not title.strip():
        title = fallback_heading(fallback_title)
    return BlogContent(
        title=title,
        content=content,
        summary=_string(data.get("summary")),
        sections=_sections(data.get("sections")),
        tags=_string_list(data.get("tags")),
        meta_description=_string(data.get("metaDescription") or data.get("meta_description")),
        key_takeaways=_string_list(data.get("keyTakeaways") or data.get("key_takeaways")),
    )


def prose_fallback(text: str, fallback_title: str) -> BlogContent:
    title = (fallback_title or DEFAULT_FALLBACK_TITLE).strip()
    return BlogContent(
        title=fallback_heading(title),
        content=text,
        summary=f'This blog post is based on the YouTube video "{title}"',
        sections=[],
        tags=list(GENERIC_TAGS),
        meta_description=f"Read about {title} in this comprehensive blog post.",
        key_takeaways=[],
    )


def matching_strategies(text: str) -> List[ParseStrategy]:
    stripped = (text or "").strip()
    return [strategy for strategy in STRING_STRATEGIES if stripped and strategy.matches(stripped)]


def recover_structured(text: str) -> Optional[Tuple[RawOutputKind, Dict[str, Any]]]:
    """
    Run the string strategies in order.

    Returns None when no strategy recognises the text (i.e. it is not a
    malformed structured payload). Raises NormalizationFailure when at least
    one strategy matched but none produced an object with content.
    """
    stripped = (text or "").strip()
    candidates = matching_strategies(stripped)
    if not candidates:
        return None

    errors: List[str] = []
    for strategy in candidates:
        try:
            parsed = strategy.parse(stripped)
        except ValueError as exc:
            errors.append(f"{strategy.kind.value}: {exc}")
            continue
        if has_content(parsed):
            return strategy.kind, parsed
        errors.append(f"{strategy.kind.value}: parsed object has no content")
    raise NormalizationFailure("; ".join(errors))


def classify(raw: Any) -> RawOutputKind:
    if isinstance(raw, dict):
        return RawOutputKind.OBJECT
    if not isinstance(raw, str) or not raw.strip():
        return RawOutputKind.EMPTY
    candidates = matching_strategies(raw)
    return candidates[0].kind if candidates else RawOutputKind.PROSE


def normalize_with_kind(raw: Any, fallback_title: str) -> Tuple[BlogContent, RawOutputKind]:
    if isinstance(raw, dict):
        if not _string(raw.get("title")).strip() and not has_content(raw):
            raise NormalizationFailure("Model output object has neither title nor content")
        return coerce_record(raw, fallback_title), RawOutputKind.OBJECT

    if not isinstance(raw, str):
        raise NormalizationFailure(f"Unsupported model output type {type(raw).__name__}")

    text = raw.strip()
    if not text:
        raise NormalizationFailure("Model returned an empty response")

    try:
        recovered = recover_structured(text)
    except NormalizationFailure as exc:
        LOGGER.warning("Structured parsing failed, treating response as prose: %s", exc)
        recovered = None

    if recovered is not None:
        kind, parsed = recovered
        return coerce_record(parsed, fallback_title), kind
    return prose_fallback(text, fallback_title), RawOutputKind.PROSE


def normalize(raw: Any, fallback_title: str) -> BlogContent:
    content, _kind = normalize_with_kind(raw, fallback_title)
    return content


__all__ = [
    "GENERIC_TAGS",
    "RawOutputKind",
    "ParseStrategy",
    "STRING_STRATEGIES",
    "classify",
    "coerce_record",
    "extract_balanced_object",
    "fallback_heading",
    "matching_strategies",
    "normalize",
    "normalize_with_kind",
    "prose_fallback",
    "recover_structured",
    "strip_code_fence",
]
