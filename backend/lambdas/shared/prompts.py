"""
Prompt templates and output schemas shared by the generator and enrichment steps.
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict

from .content import GenerationRequest


@dataclass
class PromptPayload:
    system: str
    user: str

    def with_suffix(self, suffix: str) -> "PromptPayload":
        return PromptPayload(system=self.system, user=f"{self.user.rstrip()}\n\n{suffix}")


BLOG_POST_SCHEMA_NAME = "blog_post"

BLOG_POST_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "title": {"type": "string", "description": "An engaging, SEO-friendly blog post title"},
        "content": {"type": "string", "description": "Full blog post content in markdown format"},
        "summary": {"type": "string", "description": "A brief 2-3 sentence summary of the blog post"},
        "sections": {
            "type": "array",
            "description": "Main sections of the blog post",
            "items": {
                "type": "object",
                "properties": {
                    "heading": {"type": "string"},
                    "content": {"type": "string"},
                },
                "required": ["heading", "content"],
            },
        },
        "tags": {
            "type": "array",
            "description": "5-7 relevant tags for the blog post",
            "items": {"type": "string"},
        },
        "metaDescription": {"type": "string", "description": "Meta description for SEO (150-160 characters)"},
        "keyTakeaways": {
            "type": "array",
            "description": "Key takeaways from the content",
            "items": {"type": "string"},
        },
    },
    "required": ["title", "content", "summary", "sections", "tags", "metaDescription", "keyTakeaways"],
}

KEYWORDS_SCHEMA_NAME = "seo_keywords"

KEYWORDS_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "keywords": {
            "type": "array",
            "description": "10-15 relevant keywords for SEO",
            "items": {"type": "string"},
        },
    },
    "required": ["keywords"],
}

BLOG_SYSTEM_PROMPT = (
    "You are a professional content writer who creates comprehensive, detailed, and engaging blog posts "
    "from video transcripts.\n"
    "Your writing should be thorough, informative, and maintain the original video's key messages while "
    "significantly expanding on them with detailed explanations, examples, and insights.\n"
    "Always structure content with proper headings, paragraphs, and formatting to create substantial, "
    "in-depth articles.\n"
    "Use markdown formatting for the content field - including proper headers (##, ###), bold text "
    "(**text**), bullet points, numbered lists, and links where appropriate."
)

BLOG_GUIDELINES = """Please create a comprehensive blog post with:
1. An engaging, SEO-friendly title (different from the video title)
2. A compelling introduction that hooks the reader and provides context
3. Well-organized sections with clear H2 and H3 headings that dive deep into each topic
4. Detailed explanations with examples, practical applications, and actionable insights
5. Key takeaways or summary points with detailed explanations
6. A conclusion with actionable next steps and a call-to-action
7. 5-7 relevant tags for the blog post
8. A meta description (150-160 characters) for SEO

Important guidelines:
- Create substantial paragraphs with detailed explanations
- Include relevant quotes from the transcript using blockquotes (> quote)
- Maintain a conversational yet professional tone throughout
- Ensure the content is valuable even without watching the video"""

TEXT_MODE_JSON_INSTRUCTION = (
    "IMPORTANT: Return your response as a valid JSON object with the following structure:\n"
    "{\n"
    '  "title": "Blog post title",\n'
    '  "content": "Full blog post content in markdown format",\n'
    '  "summary": "Brief summary",\n'
    '  "sections": [{"heading": "Section heading", "content": "Section content"}],\n'
    '  "tags": ["tag1", "tag2", "tag3", "tag4", "tag5"],\n'
    '  "metaDescription": "Meta description (max 160 chars)",\n'
    '  "keyTakeaways": ["takeaway1", "takeaway2", "takeaway3"]\n'
    "}"
)

MAX_CONTEXT_COMMENTS = 3


def build_blog_prompt(request: GenerationRequest) -> PromptPayload:
    """Render the system/user prompt pair for a blog post generation."""
    context = request.context
    lines = [
        "Convert the following YouTube video transcript into a comprehensive, detailed, and well-structured "
        "blog post that thoroughly covers the topic.",
        "",
        f"Video Title: {request.video_title}",
        f"Video Description: {request.video_description}",
    ]
    if context.tags:
        lines.append(f"Video Tags: {', '.join(context.tags)}")
    comments = [
        (comment.get("text") or "").strip()
        for comment in context.comments[:MAX_CONTEXT_COMMENTS]
        if isinstance(comment, dict)
    ]
    comments = [text for text in comments if text]
    if comments:
        lines.append("")
        lines.append("Top Comments for context:")
        lines.extend(f'- "{text}"' for text in comments)
    if context.language and context.language != "en":
        lines.append(f"Write the blog post in the language with code: {context.language}")
    lines.append("")
    lines.append(f"Transcript: {request.transcript}")
    lines.append("")
    lines.append(BLOG_GUIDELINES)
    return PromptPayload(system=BLOG_SYSTEM_PROMPT, user="\n".join(lines))


def build_keywords_prompt(content: str, *, as_json_array: bool = False) -> PromptPayload:
    instruction = "Extract 10-15 relevant keywords from this blog post for SEO"
    if as_json_array:
        instruction += ". Return as a JSON array of strings"
    return PromptPayload(system="", user=f"{instruction}:\n\n{content}")


def build_summary_prompt(content: str, max_length: int) -> PromptPayload:
    return PromptPayload(
        system="",
        user=f"Summarize this blog post in {max_length} characters or less:\n\n{content}",
    )


def build_improve_prompt(content: str, instructions: str) -> PromptPayload:
    return PromptPayload(
        system=(
            "You are a professional editor who improves blog post content while maintaining the original "
            "message and structure."
        ),
        user=(
            f"Improve the following blog post based on these instructions: {instructions}\n\n"
            f"Content to improve:\n{content}\n\n"
            "Return the improved content in the same format."
        ),
    )


def schema_instruction(schema: Dict[str, Any]) -> str:
    """Plain-text schema hint for vendors that only offer a generic JSON mode."""
    return "Respond with a single JSON object that matches this JSON schema:\n" + json.dumps(schema, indent=2)


__all__ = [
    "PromptPayload",
    "BLOG_POST_SCHEMA",
    "BLOG_POST_SCHEMA_NAME",
    "KEYWORDS_SCHEMA",
    "KEYWORDS_SCHEMA_NAME",
    "TEXT_MODE_JSON_INSTRUCTION",
    "build_blog_prompt",
    "build_keywords_prompt",
    "build_summary_prompt",
    "build_improve_prompt",
    "schema_instruction",
]
