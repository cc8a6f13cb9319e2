"""
DynamoDB record store for synced Stripe entities.

Knows nothing about billing semantics: it offers natural-key point lookups,
conditional writes and secondary-index range scans. Uniqueness of the
natural key comes from the table hash key plus ``attribute_not_exists``
conditions, so concurrent inserts of the same key cannot both succeed.
"""

import logging
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, Optional

from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

from .aws_clients import get_dynamodb
from .config import SyncConfig
from .constants import THROTTLING_ERRORS
from .entities import EntitySpec, get_entity
from .retry import DYNAMODB_RETRY_CONFIG, retry_call

logger = logging.getLogger(__name__)

_STORE_RETRY_CONFIG = replace(DYNAMODB_RETRY_CONFIG, retryable_exceptions=(ClientError,))


def is_conditional_check_failure(error: ClientError) -> bool:
    return error.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException"


def _is_throttled(error: Exception) -> bool:
    return (
        isinstance(error, ClientError)
        and error.response.get("Error", {}).get("Code", "") in THROTTLING_ERRORS
    )


def to_dynamo(value: Any) -> Any:
    """Recursively convert floats to Decimals for DynamoDB compatibility."""
    if isinstance(value, bool):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: to_dynamo(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_dynamo(v) for v in value]
    return value


def from_dynamo(value: Any) -> Any:
    """Recursively convert DynamoDB Decimals back to int/float."""
    if isinstance(value, Decimal):
        if value % 1 == 0:
            return int(value)
        return float(value)
    if isinstance(value, dict):
        return {k: from_dynamo(v) for k, v in value.items()}
    if isinstance(value, list):
        return [from_dynamo(v) for v in value]
    return value


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class RecordStore:
    """Access patterns over the five entity tables."""

    def __init__(self, config: SyncConfig, dynamodb=None):
        self.config = config
        self._dynamodb = dynamodb

    def _table(self, spec: EntitySpec):
        dynamodb = self._dynamodb or get_dynamodb()
        return dynamodb.Table(spec.table_name(self.config))

    def _call(self, func, **kwargs):
        return retry_call(func, config=_STORE_RETRY_CONFIG, should_retry=_is_throttled, **kwargs)

    def get(self, entity: str, natural_key: str) -> Optional[dict]:
        """Unique point lookup by natural key."""
        spec = get_entity(entity)
        response = self._call(
            self._table(spec).get_item,
            Key={spec.key_attribute: natural_key},
            ConsistentRead=True,
        )
        item = response.get("Item")
        return from_dynamo(item) if item else None

    def put_if_absent(self, entity: str, natural_key: str, fields: dict) -> Optional[dict]:
        """
        Insert a new record unless one already exists for the natural key.

        None values are dropped so unset optional fields stay absent.

        Returns:
            The stored record, or None if the key was already taken
        """
        spec = get_entity(entity)
        item = {k: v for k, v in fields.items() if v is not None}
        item[spec.key_attribute] = natural_key
        item["record_id"] = str(uuid.uuid4())
        item["created_at"] = utc_now_iso()

        try:
            self._call(
                self._table(spec).put_item,
                Item=to_dynamo(item),
                ConditionExpression="attribute_not_exists(#pk)",
                ExpressionAttributeNames={"#pk": spec.key_attribute},
            )
        except ClientError as e:
            if is_conditional_check_failure(e):
                return None
            raise
        return item

    def update(
        self,
        entity: str,
        natural_key: str,
        set_fields: Optional[dict] = None,
        remove_fields: Iterable[str] = (),
        only_if_unset: Iterable[str] = (),
    ) -> Optional[dict]:
        """
        Patch an existing record in place.

        Only the attributes named in set_fields/remove_fields are touched.
        The write never creates a record.

        Args:
            entity: Entity type
            natural_key: Stripe identifier of the record
            set_fields: Attributes to set
            remove_fields: Attributes to remove
            only_if_unset: Attributes that must currently be absent for the
                patch to apply (write-once fields)

        Returns:
            The record after the patch, or None when the record is absent or
            an only_if_unset attribute is already present
        """
        spec = get_entity(entity)
        set_fields = {k: v for k, v in (set_fields or {}).items() if k != spec.key_attribute}
        remove_fields = [f for f in remove_fields if f != spec.key_attribute and f not in set_fields]

        names = {"#pk": spec.key_attribute}
        values = {}
        set_clauses = []
        remove_clauses = []
        for i, (attribute, value) in enumerate(set_fields.items()):
            names[f"#s{i}"] = attribute
            values[f":s{i}"] = to_dynamo(value)
            set_clauses.append(f"#s{i} = :s{i}")
        for i, attribute in enumerate(remove_fields):
            names[f"#r{i}"] = attribute
            remove_clauses.append(f"#r{i}")

        conditions = ["attribute_exists(#pk)"]
        for i, attribute in enumerate(only_if_unset):
            names[f"#u{i}"] = attribute
            conditions.append(f"attribute_not_exists(#u{i})")

        if not set_clauses and not remove_clauses:
            return self.get(entity, natural_key)

        expression = []
        if set_clauses:
            expression.append("SET " + ", ".join(set_clauses))
        if remove_clauses:
            expression.append("REMOVE " + ", ".join(remove_clauses))

        kwargs = {
            "Key": {spec.key_attribute: natural_key},
            "UpdateExpression": " ".join(expression),
            "ConditionExpression": " AND ".join(conditions),
            "ExpressionAttributeNames": names,
            "ReturnValues": "ALL_NEW",
        }
        if values:
            kwargs["ExpressionAttributeValues"] = values

        try:
            response = self._call(self._table(spec).update_item, **kwargs)
        except ClientError as e:
            if is_conditional_check_failure(e):
                return None
            raise
        return from_dynamo(response.get("Attributes", {}))

    def query(
        self,
        entity: str,
        attribute: str,
        value: str,
        limit: Optional[int] = None,
    ) -> list[dict]:
        """
        Range scan over a secondary index, oldest record first.

        Args:
            entity: Entity type
            attribute: Indexed attribute (stripe_customer_id, org_id, user_id)
            value: Attribute value to match
            limit: Maximum number of records

        Returns:
            Matching records ordered by local creation time
        """
        spec = get_entity(entity)
        table = self._table(spec)
        query_kwargs = {
            "IndexName": spec.index_for(attribute),
            "KeyConditionExpression": Key(attribute).eq(value),
            "ScanIndexForward": True,
        }
        if limit:
            query_kwargs["Limit"] = limit

        items = []
        response = self._call(table.query, **query_kwargs)
        items.extend(response.get("Items", []))

        # Handle pagination
        while "LastEvaluatedKey" in response and (not limit or len(items) < limit):
            response = self._call(
                table.query,
                ExclusiveStartKey=response["LastEvaluatedKey"],
                **query_kwargs,
            )
            items.extend(response.get("Items", []))

        if limit:
            items = items[:limit]
        return [from_dynamo(item) for item in items]

    def scan(self, entity: str) -> list[dict]:
        """Read every record of an entity type (debug snapshots only)."""
        table = self._table(get_entity(entity))
        items = []
        response = self._call(table.scan)
        items.extend(response.get("Items", []))

        while "LastEvaluatedKey" in response:
            response = self._call(table.scan, ExclusiveStartKey=response["LastEvaluatedKey"])
            items.extend(response.get("Items", []))

        return [from_dynamo(item) for item in items]
