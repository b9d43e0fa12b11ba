#!/usr/bin/env python3
"""
Blog content repair helper.

Rewrites stored blog posts whose body still holds the model's raw JSON
(fenced, bare or double-escaped). Run without arguments to sweep the whole
table, or pass --post-id to repair a single post. Safe to run repeatedly.
"""
from __future__ import annotations

import argparse
import json
import sys

from backend.lambdas.repair import handler as repair_handler
from backend.lambdas.shared.exceptions import ConfigurationError
from backend.lambdas.shared.logging import configure_cli_logging


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Repair malformed generated blog content.")
    parser.add_argument(
        "--post-id",
        help="Repair only this post (default: scan every stored post).",
    )
    parser.add_argument(
        "--table",
        help="DynamoDB table name (default: $BLOG_TABLE_NAME).",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the result as a compact JSON line.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging.",
    )
    args = parser.parse_args(argv)

    logger = configure_cli_logging(args.verbose)
    table = repair_handler.dynamodb.Table(args.table) if args.table else None

    try:
        fixed = repair_handler.repair(args.post_id, table=table)
    except ConfigurationError as exc:
        logger.error("%s", exc)
        return 1

    if args.json:
        print(json.dumps({"post_id": args.post_id, "repaired": fixed}, ensure_ascii=False))
    else:
        print(f"Fixed {fixed} blog post(s)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
