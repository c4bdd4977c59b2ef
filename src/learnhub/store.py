"""DynamoDB adapter shared by every resource table."""

from __future__ import annotations

from typing import Any, Dict, Iterable, Mapping

from .pagination import Page
from .records import compact, to_dynamo, to_json_safe


def equals_filter(**pairs: Any) -> Any:
    """AND together ``Attr(name).eq(value)`` for every non-empty pair."""
    from boto3.dynamodb.conditions import Attr

    condition = None
    for name, value in pairs.items():
        if value is None or value == "":
            continue
        clause = Attr(name).eq(value)
        condition = clause if condition is None else condition & clause
    return condition


def contains_filter(name: str, value: str) -> Any:
    from boto3.dynamodb.conditions import Attr

    return Attr(name).contains(value)


def combine_filters(*conditions: Any) -> Any:
    combined = None
    for condition in conditions:
        if condition is None:
            continue
        combined = condition if combined is None else combined & condition
    return combined


def range_condition(name: str, start: Any = None, end: Any = None, *, on_key: bool = False) -> Any:
    """``BETWEEN``, ``>=`` or ``<=`` on ``name`` for whichever bounds are given."""
    from boto3.dynamodb.conditions import Attr, Key

    field = Key(name) if on_key else Attr(name)
    if start and end:
        return field.between(start, end)
    if start:
        return field.gte(start)
    if end:
        return field.lte(end)
    return None


class DynamoDbResourceStore:
    """Single-table adapter keyed by one string attribute."""

    def __init__(self, table: Any, key_name: str) -> None:
        self._table = table
        self.key_name = key_name

    def get(self, key_value: str) -> dict[str, Any] | None:
        response = self._table.get_item(Key={self.key_name: key_value})
        item = response.get("Item")
        if not isinstance(item, dict):
            return None
        return to_json_safe(item)

    def put(self, item: Mapping[str, Any]) -> dict[str, Any]:
        stored = compact(item)
        self._table.put_item(Item=to_dynamo(stored))
        return stored

    def delete(self, key_value: str) -> None:
        self._table.delete_item(Key={self.key_name: key_value})

    def delete_many(self, key_values: Iterable[str]) -> int:
        deleted = 0
        with self._table.batch_writer() as batch:
            for key_value in key_values:
                batch.delete_item(Key={self.key_name: key_value})
                deleted += 1
        return deleted

    def update(self, key_value: str, changes: Mapping[str, Any]) -> dict[str, Any]:
        """Apply ``SET``/``REMOVE`` for ``changes`` and return the updated item."""
        set_clauses: list[str] = []
        remove_clauses: list[str] = []
        names: Dict[str, str] = {}
        values: Dict[str, Any] = {}
        for index, (field, value) in enumerate(changes.items()):
            name_ref = f"#f{index}"
            names[name_ref] = field
            if value is None:
                remove_clauses.append(name_ref)
                continue
            value_ref = f":v{index}"
            values[value_ref] = to_dynamo(value)
            set_clauses.append(f"{name_ref} = {value_ref}")

        expression_parts = []
        if set_clauses:
            expression_parts.append("SET " + ", ".join(set_clauses))
        if remove_clauses:
            expression_parts.append("REMOVE " + ", ".join(remove_clauses))
        if not expression_parts:
            raise ValueError("update requires at least one change")

        kwargs: Dict[str, Any] = {
            "Key": {self.key_name: key_value},
            "UpdateExpression": " ".join(expression_parts),
            "ExpressionAttributeNames": names,
            "ReturnValues": "ALL_NEW",
        }
        if values:
            kwargs["ExpressionAttributeValues"] = values
        response = self._table.update_item(**kwargs)
        return to_json_safe(response.get("Attributes", {}))

    def scan_page(
        self,
        *,
        limit: int | None = None,
        start_key: Mapping[str, Any] | None = None,
        filter_expression: Any = None,
    ) -> Page:
        kwargs: Dict[str, Any] = {}
        if limit is not None:
            kwargs["Limit"] = limit
        if start_key:
            kwargs["ExclusiveStartKey"] = dict(start_key)
        if filter_expression is not None:
            kwargs["FilterExpression"] = filter_expression
        response = self._table.scan(**kwargs)
        return Page(
            items=[to_json_safe(row) for row in response.get("Items", [])],
            last_key=response.get("LastEvaluatedKey"),
        )

    def scan_all(self, *, filter_expression: Any = None) -> list[dict[str, Any]]:
        rows: list[dict[str, Any]] = []
        start_key: Mapping[str, Any] | None = None
        while True:
            page = self.scan_page(start_key=start_key, filter_expression=filter_expression)
            rows.extend(page.items)
            if not page.last_key:
                return rows
            start_key = page.last_key

    def query_page(
        self,
        index_name: str,
        key_name: str,
        key_value: Any,
        *,
        limit: int | None = None,
        start_key: Mapping[str, Any] | None = None,
        filter_expression: Any = None,
        scan_forward: bool = True,
        sort_key: tuple[str, Any] | None = None,
        sort_condition: Any = None,
    ) -> Page:
        from boto3.dynamodb.conditions import Key

        key_condition = Key(key_name).eq(key_value)
        if sort_key is not None:
            key_condition = key_condition & Key(sort_key[0]).eq(sort_key[1])
        if sort_condition is not None:
            key_condition = key_condition & sort_condition
        kwargs: Dict[str, Any] = {
            "IndexName": index_name,
            "KeyConditionExpression": key_condition,
        }
        if limit is not None:
            kwargs["Limit"] = limit
        if start_key:
            kwargs["ExclusiveStartKey"] = dict(start_key)
        if filter_expression is not None:
            kwargs["FilterExpression"] = filter_expression
        if not scan_forward:
            kwargs["ScanIndexForward"] = False
        response = self._table.query(**kwargs)
        return Page(
            items=[to_json_safe(row) for row in response.get("Items", [])],
            last_key=response.get("LastEvaluatedKey"),
        )

    def query_all(
        self,
        index_name: str,
        key_name: str,
        key_value: Any,
        *,
        filter_expression: Any = None,
    ) -> list[dict[str, Any]]:
        rows: list[dict[str, Any]] = []
        start_key: Mapping[str, Any] | None = None
        while True:
            page = self.query_page(
                index_name,
                key_name,
                key_value,
                start_key=start_key,
                filter_expression=filter_expression,
            )
            rows.extend(page.items)
            if not page.last_key:
                return rows
            start_key = page.last_key
