"""
Repair Lambda (stored content clean-up).

Older generations sometimes persisted the model's raw JSON, fenced or
double-escaped, as the blog post body. This job finds those records and
rewrites `generated_content` in place using the same parsing strategies the
generator applies to live responses. Running it again changes nothing: a
repaired body no longer matches any of the malformed-content predicates.
"""
from __future__ import annotations

import json
import logging
import os
import time
from typing import Any, Dict, Iterator, Optional, Tuple

import boto3
from boto3.dynamodb.conditions import Attr
from botocore.exceptions import BotoCoreError, ClientError

from backend.lambdas.shared.exceptions import ConfigurationError, NormalizationFailure
from backend.lambdas.shared.normalizer import RawOutputKind, coerce_record, recover_structured


LOGGER = logging.getLogger(__name__)
LOGGER.setLevel(logging.INFO)

TABLE_NAME = os.getenv("BLOG_TABLE_NAME", "")
REGION = os.getenv("AWS_REGION", "us-east-1")
CONTENT_SORT_KEY = "CONTENT"
SCAN_PAGE_SIZE = 50
MAX_UNWRAP_DEPTH = 3

dynamodb = boto3.resource("dynamodb", region_name=REGION)


def post_key(post_id: str) -> Dict[str, str]:
    return {"pk": f"POST#{post_id}", "sk": CONTENT_SORT_KEY}


def _post_id(item: Dict[str, Any]) -> str:
    return str(item.get("pk", "")).removeprefix("POST#")


def _table(table=None):
    if table is not None:
        return table
    if not TABLE_NAME:
        raise ConfigurationError("BLOG_TABLE_NAME must be configured")
    return dynamodb.Table(TABLE_NAME)


def _iter_records(table, record_id: Optional[str]) -> Iterator[Dict[str, Any]]:
    if record_id:
        item = table.get_item(Key=post_key(record_id)).get("Item")
        if item:
            LOGGER.info("Processing specific post: %s", record_id)
            yield item
        else:
            LOGGER.warning("Blog post %s not found", record_id)
        return

    last_evaluated_key: Optional[Dict[str, Any]] = None
    while True:
        scan_kwargs: Dict[str, Any] = {
            "Limit": SCAN_PAGE_SIZE,
            "FilterExpression": Attr("sk").eq(CONTENT_SORT_KEY),
        }
        if last_evaluated_key:
            scan_kwargs["ExclusiveStartKey"] = last_evaluated_key

        try:
            response = table.scan(**scan_kwargs)
        except (ClientError, BotoCoreError) as exc:
            LOGGER.error("Failed to scan blog posts: %s", exc)
            raise

        yield from response.get("Items", [])

        last_evaluated_key = response.get("LastEvaluatedKey")
        if not last_evaluated_key:
            break


def merge_repaired_fields(existing: Dict[str, Any], parsed: Dict[str, Any]) -> Dict[str, Any]:
    """Overlay what the parse yielded; never blank out a field the record already has."""
    record = coerce_record(parsed, existing.get("title") or "")
    merged = dict(existing)
    merged["content"] = record.content

    if isinstance(parsed.get("title"), str) and parsed["title"].strip() and not existing.get("title"):
        merged["title"] = record.title
    if record.summary.strip() and not existing.get("summary"):
        merged["summary"] = record.summary
    if record.tags:
        merged["tags"] = record.tags
    if record.sections:
        merged["sections"] = [section.to_dict() for section in record.sections]
    if record.key_takeaways:
        merged["keyTakeaways"] = record.key_takeaways
    if record.meta_description:
        merged["metaDescription"] = record.meta_description
    return merged


def repair_record(item: Dict[str, Any]) -> Optional[Tuple[Dict[str, Any], RawOutputKind]]:
    """
    Return the repaired `generated_content` and the encoding it was stored in,
    or None when the record does not need repair. Raises NormalizationFailure
    when the content looks malformed but cannot be parsed.
    """
    generated = item.get("generated_content")
    if not isinstance(generated, dict) or not isinstance(generated.get("content"), str):
        return None

    recovered = recover_structured(generated["content"])
    if recovered is None:
        return None

    kind, parsed = recovered
    merged = merge_repaired_fields(generated, parsed)

    # Bodies that were wrapped more than once are unwrapped in the same pass.
    for _ in range(MAX_UNWRAP_DEPTH - 1):
        try:
            nested = recover_structured(merged["content"])
        except NormalizationFailure as exc:
            LOGGER.debug("Stopped unwrapping nested content: %s", exc)
            break
        if nested is None:
            break
        unwrapped = merge_repaired_fields(merged, nested[1])
        if unwrapped == merged:
            break
        merged = unwrapped

    if merged == generated:
        return None
    return merged, kind


def repair(record_id: Optional[str] = None, *, table=None) -> int:
    """Repair one post (when `record_id` is given) or every stored post; return the number modified."""
    table = _table(table)
    fixed = 0

    for item in _iter_records(table, record_id):
        post_id = _post_id(item)
        try:
            repaired = repair_record(item)
            if repaired is None:
                continue
            merged, kind = repaired
            table.update_item(
                Key={"pk": item["pk"], "sk": item["sk"]},
                UpdateExpression="SET generated_content = :content, updated_at = :now",
                ExpressionAttributeValues={
                    ":content": merged,
                    ":now": int(time.time()),
                },
            )
        except NormalizationFailure as exc:
            LOGGER.warning("Failed to parse stored content for post %s: %s", post_id, exc)
            continue
        except (ClientError, BotoCoreError) as exc:
            LOGGER.warning("Failed to update post %s: %s", post_id, exc)
            continue
        except Exception:  # noqa: BLE001 - one bad record must not stop the batch
            LOGGER.exception("Unexpected error repairing post %s", post_id)
            continue

        fixed += 1
        LOGGER.info("Repaired %s content for post %s", kind.value, post_id)

    LOGGER.info("Fixed %d blog posts", fixed)
    return fixed


def repair_after_generation(post_id: str, *, table=None) -> int:
    """Best-effort clean-up right after a post is stored; never raises."""
    try:
        return repair(post_id, table=table)
    except Exception as exc:  # noqa: BLE001 - must not fail the processing job
        LOGGER.exception("Post-generation repair failed for post %s: %s", post_id, exc)
        return 0


def handle(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    post_id = (event.get("post_id") or "").strip() or None
    LOGGER.info("Repair invoked for post=%s", post_id or "*")
    repaired = repair(post_id)
    return {"status": "repaired", "post_id": post_id, "repaired": repaired}


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    if isinstance(event, str):
        event = json.loads(event)
    return handle(event, context)
