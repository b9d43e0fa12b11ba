"""
Test-wide configuration and shared fixtures.

Ensures the repository root (and Lambda packages) are importable without
duplicated sys.path tweaks inside each test module, and provides an in-memory
stand-in for the DynamoDB blog table.
"""
from __future__ import annotations

import copy
import pathlib
import sys
from typing import Any, Dict, Iterable, Optional, Set

import pytest
from botocore.exceptions import ClientError


REPO_ROOT = pathlib.Path(__file__).resolve().parents[2]
LAMBDA_ROOT = REPO_ROOT / "backend" / "lambdas"

for target in (REPO_ROOT, LAMBDA_ROOT):
    target_str = str(target)
    if target_str not in sys.path:
        sys.path.insert(0, target_str)


class StubTable:
    def __init__(self, items: Iterable[Dict[str, Any]] = ()) -> None:
        self.items: Dict[tuple[str, str], Dict[str, Any]] = {}
        self.updates: list[Dict[str, Any]] = []
        self.scans: list[Dict[str, Any]] = []
        self.fail_updates_for: Set[str] = set()
        for item in items:
            self.put_item(Item=item)

    def get_item(self, Key: Dict[str, str]) -> Dict[str, Any]:  # noqa: N803
        item = self.items.get((Key["pk"], Key["sk"]))
        return {"Item": copy.deepcopy(item)} if item is not None else {}

    def put_item(self, Item: Dict[str, Any]) -> None:  # noqa: N803
        self.items[(Item["pk"], Item["sk"])] = copy.deepcopy(Item)

    def scan(self, **kwargs: Any) -> Dict[str, Any]:
        self.scans.append(kwargs)
        keys = sorted(self.items)
        start = 0
        start_key: Optional[Dict[str, str]] = kwargs.get("ExclusiveStartKey")
        if start_key:
            start = keys.index((start_key["pk"], start_key["sk"])) + 1
        limit = kwargs.get("Limit") or len(keys)
        page = keys[start : start + limit]

        response: Dict[str, Any] = {
            "Items": [copy.deepcopy(self.items[key]) for key in page if key[1] == "CONTENT"],
        }
        if page and start + limit < len(keys):
            response["LastEvaluatedKey"] = {"pk": page[-1][0], "sk": page[-1][1]}
        return response

    def update_item(
        self,
        Key: Dict[str, str],  # noqa: N803
        UpdateExpression: str,  # noqa: N803
        ExpressionAttributeValues: Dict[str, Any],  # noqa: N803
        ExpressionAttributeNames: Optional[Dict[str, str]] = None,  # noqa: N803
    ) -> None:
        if Key["pk"] in self.fail_updates_for:
            raise ClientError(
                {"Error": {"Code": "ProvisionedThroughputExceededException", "Message": "slow down"}},
                "UpdateItem",
            )
        names = ExpressionAttributeNames or {}
        item = self.items.setdefault((Key["pk"], Key["sk"]), dict(Key))
        assignments = UpdateExpression.removeprefix("SET ").split(",")
        for assignment in assignments:
            name, placeholder = (part.strip() for part in assignment.split("="))
            item[names.get(name, name)] = copy.deepcopy(ExpressionAttributeValues[placeholder])
        self.updates.append({"Key": Key, "UpdateExpression": UpdateExpression})


class StubDynamo:
    def __init__(self, table: StubTable) -> None:
        self.table = table
        self.requested: list[str] = []

    def Table(self, name: str) -> StubTable:  # noqa: N802
        self.requested.append(name)
        return self.table


@pytest.fixture
def stub_table() -> StubTable:
    return StubTable()
