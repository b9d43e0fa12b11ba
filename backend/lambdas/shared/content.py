"""
Data shapes exchanged between the generator, enrichment and repair steps.

`BlogContent` is the canonical record persisted on a blog post. It serialises
with the camelCase keys the web client and stored documents use
(`metaDescription`, `keyTakeaways`).
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List

META_DESCRIPTION_LIMIT = 160


@dataclass
class Section:
    heading: str
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"heading": self.heading, "content": self.content}


@dataclass
class BlogContent:
    title: str
    content: str
    summary: str = ""
    sections: List[Section] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    meta_description: str = ""
    key_takeaways: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.meta_description = truncate_meta_description(self.meta_description)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "content": self.content,
            "summary": self.summary,
            "sections": [section.to_dict() for section in self.sections],
            "tags": list(self.tags),
            "metaDescription": self.meta_description,
            "keyTakeaways": list(self.key_takeaways),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BlogContent":
        return cls(
            title=data.get("title") or "",
            content=data.get("content") or "",
            summary=data.get("summary") or "",
            sections=[
                Section(heading=item.get("heading", ""), content=item.get("content", ""))
                for item in data.get("sections") or []
                if isinstance(item, dict)
            ],
            tags=list(data.get("tags") or []),
            meta_description=data.get("metaDescription") or data.get("meta_description") or "",
            key_takeaways=list(data.get("keyTakeaways") or data.get("key_takeaways") or []),
        )


@dataclass
class VideoContext:
    comments: List[Dict[str, str]] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    language: str = "en"


@dataclass
class GenerationRequest:
    transcript: str
    video_title: str
    video_description: str = ""
    context: VideoContext = field(default_factory=VideoContext)
    model_id: str | None = None


def truncate_meta_description(value: Any) -> str:
    text = str(value or "").strip()
    if len(text) <= META_DESCRIPTION_LIMIT:
        return text
    return text[:META_DESCRIPTION_LIMIT]


__all__ = [
    "META_DESCRIPTION_LIMIT",
    "Section",
    "BlogContent",
    "VideoContext",
    "GenerationRequest",
    "truncate_meta_description",
]
