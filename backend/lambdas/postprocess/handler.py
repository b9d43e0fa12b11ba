"""
Postprocess Lambda (Store step).

Takes the generated blog post from the previous Step Functions state and
persists it to DynamoDB. Once the record is written the repair job is run for
that single post so that any raw JSON that slipped through normalisation is
cleaned up straight away.
"""
from __future__ import annotations

import json
import logging
import math
import os
import re
import time
from decimal import Decimal
from typing import Any, Dict

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from backend.lambdas.repair.handler import post_key, repair_after_generation
from backend.lambdas.shared.exceptions import ConfigurationError


LOGGER = logging.getLogger(__name__)
LOGGER.setLevel(logging.INFO)

TABLE_NAME = os.getenv("BLOG_TABLE_NAME", "")
REGION = os.getenv("AWS_REGION", "us-east-1")
WORDS_PER_MINUTE = 200
MAX_TITLE_LENGTH = 200
MAX_ERROR_LENGTH = 500

dynamodb = boto3.resource("dynamodb", region_name=REGION)

_WORD_RE = re.compile(r"\S+")


def _table():
    if not TABLE_NAME:
        raise ConfigurationError("BLOG_TABLE_NAME must be configured")
    return dynamodb.Table(TABLE_NAME)


def _truncate_title(title: str, max_length: int = MAX_TITLE_LENGTH) -> str:
    clean_title = (title or "").strip()
    if len(clean_title) <= max_length:
        return clean_title
    return clean_title[: max_length - 1].rstrip() + "…"


def _sanitize_for_dynamodb(value: Any) -> Any:
    """
    Recursively convert floats to Decimal for DynamoDB compatibility.
    DynamoDB disallows native float so we coerce via string to preserve precision.
    """
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: _sanitize_for_dynamodb(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_sanitize_for_dynamodb(v) for v in value]
    return value


def _coerce_int(value: Any) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def count_words(text: str) -> int:
    return len(_WORD_RE.findall(text or ""))


def reading_time_minutes(word_count: int) -> int:
    return math.ceil(word_count / WORDS_PER_MINUTE) if word_count > 0 else 0


def _load_existing_item(table, post_id: str) -> Dict[str, Any]:
    try:
        response = table.get_item(Key=post_key(post_id))
        return response.get("Item") or {}
    except (ClientError, BotoCoreError) as exc:
        LOGGER.debug("Failed to load existing blog post for merge: %s", exc)
        return {}


def put_blog_post(payload: Dict[str, Any]) -> Dict[str, Any]:
    table = _table()
    post_id = payload["post_id"]
    generated = dict(payload.get("generated_content") or {})
    if not (generated.get("content") or "").strip():
        raise ValueError("Payload missing generated_content.content")

    keywords = payload.get("keywords")
    if keywords:
        generated["keywords"] = list(keywords)

    existing_item = _load_existing_item(table, post_id)
    now = int(time.time())
    video = payload.get("video") or {}
    word_count = count_words(generated["content"])

    item: Dict[str, Any] = {
        **post_key(post_id),
        "video_id": video.get("id") or payload.get("video_id"),
        "video_title": _truncate_title(video.get("title") or generated.get("title") or ""),
        "status": "completed",
        "generated_content": generated,
        "word_count": word_count,
        "reading_time": reading_time_minutes(word_count),
        "ai_model": (payload.get("llm") or {}).get("model_id") or payload.get("model_id"),
        "created_at": _coerce_int(existing_item.get("created_at")) or now,
        "updated_at": now,
    }
    if payload.get("user_id"):
        item["user_id"] = payload["user_id"]

    table.put_item(Item=_sanitize_for_dynamodb(item))
    LOGGER.debug("Blog post persisted post=%s words=%d", post_id, word_count)
    return item


def mark_failed(post_id: str, reason: str) -> None:
    table = _table()
    table.update_item(
        Key=post_key(post_id),
        UpdateExpression="SET #status = :status, #error = :error, updated_at = :now",
        ExpressionAttributeNames={"#status": "status", "#error": "error"},
        ExpressionAttributeValues={
            ":status": "failed",
            ":error": (reason or "")[:MAX_ERROR_LENGTH],
            ":now": int(time.time()),
        },
    )
    LOGGER.warning("Blog post %s marked as failed: %s", post_id, reason)


def handle(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    post_id = event.get("post_id")
    if not post_id:
        raise ValueError("Event missing post_id")

    # Step Functions routes the generator's caught error here.
    error = event.get("error")
    if error:
        reason = (error.get("Cause") or error.get("Error")) if isinstance(error, dict) else str(error)
        mark_failed(post_id, reason or "Generation failed")
        return {"status": "failed", "post_id": post_id, "blog_table": TABLE_NAME}

    LOGGER.info("Persisting blog post id=%s", post_id)
    item = put_blog_post(event)
    repaired = repair_after_generation(post_id, table=_table())
    return {
        "status": "stored",
        "post_id": post_id,
        "blog_table": TABLE_NAME,
        "word_count": item["word_count"],
        "repaired": repaired,
    }


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    if isinstance(event, str):
        event = json.loads(event)
    return handle(event, context)
