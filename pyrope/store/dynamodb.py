"""
AWS DynamoDB store implementation.

This module provides the production StoreAdapter backend. It uses
aiobotocore for async calls and boto3's type (de)serializers to translate
plain Python values to and from DynamoDB attribute values.

Invariants:
    - Every request is bounded by DynamoDBConfig.timeout_seconds
    - Nothing is retried here beyond botocore's own transport retries
    - Numbers come back as int when integral, float otherwise
    - Failures surface as AdapterError("DynamoDB[<method>]: <code>: ...")

How to change safely:
    - Test against DynamoDB Local or dynalite before deploying
    - Keep request shapes identical to InMemoryStore semantics
"""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from aiobotocore.session import get_session
from boto3.dynamodb.types import TypeDeserializer, TypeSerializer
from botocore.exceptions import ClientError, EndpointConnectionError

from ..config import DynamoDBConfig
from ..errors import AdapterError, StoreTimeoutError
from .base import BatchWriteResult, Item, QueryResult, TableDef, UpdateExpression

logger = logging.getLogger(__name__)

_serializer = TypeSerializer()
_deserializer = TypeDeserializer()


def to_python(value: Any) -> Any:
    """Normalize a deserialized value (Decimal -> int/float, recursively)."""
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: to_python(v) for k, v in value.items()}
    if isinstance(value, list):
        return [to_python(v) for v in value]
    if isinstance(value, set):
        return {to_python(v) for v in value}
    return value


def _to_dynamo_number(value: Any) -> Any:
    # TypeSerializer rejects floats
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: _to_dynamo_number(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_dynamo_number(v) for v in value]
    return value


def serialize_item(item: Mapping[str, Any]) -> Dict[str, Any]:
    """Convert a plain item to DynamoDB attribute values."""
    return {k: _serializer.serialize(_to_dynamo_number(v)) for k, v in item.items()}


def deserialize_item(item: Mapping[str, Any]) -> Item:
    """Convert DynamoDB attribute values to a plain item."""
    return {k: to_python(_deserializer.deserialize(v)) for k, v in item.items()}


class DynamoDBStore:
    """DynamoDB implementation of StoreAdapter protocol.

    Uses aiobotocore for async operations with AWS DynamoDB.

    Attributes:
        config: DynamoDB configuration
        client: DynamoDB client (created on connect)

    Example:
        >>> store = DynamoDBStore(DynamoDBConfig(endpoint_url="http://localhost:8000"))
        >>> await store.connect()
        >>> await store.put_item("users", {"uuid": "u1", "createdAt": 1})
    """

    def __init__(self, config: DynamoDBConfig) -> None:
        """Initialize DynamoDB store.

        Args:
            config: DynamoDB configuration
        """
        self.config = config
        self._session = None
        self._client_ctx = None
        self._client = None
        self._connected = False

    async def connect(self) -> None:
        """Connect to DynamoDB.

        Creates the botocore session and client.

        Raises:
            AdapterError: If the client cannot be created
        """
        if self._connected:
            return

        try:
            self._session = get_session()

            # Build client configuration
            client_config: Dict[str, Any] = {
                "region_name": self.config.region,
            }

            if self.config.endpoint_url:
                client_config["endpoint_url"] = self.config.endpoint_url
            if self.config.access_key_id:
                client_config["aws_access_key_id"] = self.config.access_key_id
                client_config["aws_secret_access_key"] = self.config.secret_access_key
            if self.config.session_token:
                client_config["aws_session_token"] = self.config.session_token

            # Create context manager for client
            self._client_ctx = self._session.create_client("dynamodb", **client_config)
            self._client = await self._client_ctx.__aenter__()

            self._connected = True
            logger.info(
                "Connected to DynamoDB",
                extra={
                    "region": self.config.region,
                    "endpoint": self.config.endpoint_url or "AWS",
                },
            )

        except EndpointConnectionError as e:
            raise AdapterError(
                f"DynamoDB[connect]: Failed to connect to endpoint: {e}",
                operation="DynamoDB[connect]",
            ) from e
        except Exception as e:
            raise AdapterError(
                f"DynamoDB[connect]: Failed to create client: {e}",
                operation="DynamoDB[connect]",
            ) from e

    async def close(self) -> None:
        """Close DynamoDB connection."""
        if self._client:
            try:
                await self._client_ctx.__aexit__(None, None, None)
            except Exception as e:
                logger.warning(f"Error closing DynamoDB client: {e}")

        self._client = None
        self._client_ctx = None
        self._session = None
        self._connected = False
        logger.info("Disconnected from DynamoDB")

    async def __aenter__(self) -> DynamoDBStore:
        await self.connect()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def create_table(self, table: TableDef) -> None:
        """Create a table on-demand billed; existing tables are left alone."""
        attributes = list(table.key_attributes())
        for index in table.indexes:
            attributes.extend(a for a in index.key_attributes() if a not in attributes)

        params: Dict[str, Any] = {
            "TableName": table.name,
            "AttributeDefinitions": [
                {
                    "AttributeName": attr,
                    "AttributeType": "N" if attr in table.numeric_attributes else "S",
                }
                for attr in attributes
            ],
            "KeySchema": self._key_schema(table.hash_key, table.range_key),
            "BillingMode": "PAY_PER_REQUEST",
        }
        if table.indexes:
            params["GlobalSecondaryIndexes"] = [
                {
                    "IndexName": index.name,
                    "KeySchema": self._key_schema(index.hash_key, index.range_key),
                    "Projection": {"ProjectionType": "ALL"},
                }
                for index in table.indexes
            ]

        try:
            await self._call("create_table", **params)
        except AdapterError as e:
            if e.details.get("aws_code") == "ResourceInUseException":
                logger.info("Table already exists", extra={"table": table.name})
                return
            raise

        waiter = self._client.get_waiter("table_exists")
        await waiter.wait(TableName=table.name)
        logger.info(
            "Created table",
            extra={"table": table.name, "indexes": [i.name for i in table.indexes]},
        )

    async def delete_table(self, name: str) -> None:
        """Delete a table; a missing table is not an error."""
        try:
            await self._call("delete_table", TableName=name)
        except AdapterError as e:
            if e.details.get("aws_code") == "ResourceNotFoundException":
                return
            raise
        logger.info("Deleted table", extra={"table": name})

    async def put_item(self, table: str, item: Mapping[str, Any]) -> None:
        await self._call("put_item", TableName=table, Item=serialize_item(item))

    async def get_item(
        self,
        table: str,
        key: Mapping[str, Any],
        consistent_read: bool = False,
    ) -> Optional[Item]:
        response = await self._call(
            "get_item",
            TableName=table,
            Key=serialize_item(key),
            ConsistentRead=consistent_read,
        )
        item = response.get("Item")
        return deserialize_item(item) if item else None

    async def query(
        self,
        table: str,
        index_name: Optional[str],
        key_condition: Mapping[str, Any],
        scan_forward: bool = True,
        limit: Optional[int] = None,
        exclusive_start_key: Optional[Mapping[str, Any]] = None,
    ) -> QueryResult:
        names: Dict[str, str] = {}
        values: Dict[str, Any] = {}
        conditions: List[str] = []
        for n, (attr, value) in enumerate(key_condition.items()):
            names[f"#k{n}"] = attr
            values[f":k{n}"] = value
            conditions.append(f"#k{n} = :k{n}")

        params: Dict[str, Any] = {
            "TableName": table,
            "KeyConditionExpression": " AND ".join(conditions),
            "ExpressionAttributeNames": names,
            "ExpressionAttributeValues": serialize_item(values),
            "ScanIndexForward": scan_forward,
        }
        if index_name:
            params["IndexName"] = index_name
        if limit:
            params["Limit"] = limit
        if exclusive_start_key:
            params["ExclusiveStartKey"] = serialize_item(exclusive_start_key)

        response = await self._call("query", **params)
        last_key = response.get("LastEvaluatedKey")
        return QueryResult(
            items=[deserialize_item(item) for item in response.get("Items", [])],
            last_evaluated_key=deserialize_item(last_key) if last_key else None,
        )

    async def update_item(
        self,
        table: str,
        key: Mapping[str, Any],
        expression: UpdateExpression,
    ) -> Item:
        rendered = expression.render()
        response = await self._call(
            "update_item",
            TableName=table,
            Key=serialize_item(key),
            UpdateExpression=rendered["UpdateExpression"],
            ExpressionAttributeNames=rendered["ExpressionAttributeNames"],
            ExpressionAttributeValues=serialize_item(rendered["ExpressionAttributeValues"]),
            ReturnValues="ALL_NEW",
        )
        return deserialize_item(response.get("Attributes", {}))

    async def batch_write(self, table: str, requests: List[Item]) -> BatchWriteResult:
        wire_requests = []
        for request in requests:
            if "PutRequest" in request:
                wire_requests.append(
                    {"PutRequest": {"Item": serialize_item(request["PutRequest"]["Item"])}}
                )
            else:
                wire_requests.append(
                    {"DeleteRequest": {"Key": serialize_item(request["DeleteRequest"]["Key"])}}
                )

        response = await self._call("batch_write_item", RequestItems={table: wire_requests})

        unprocessed = []
        for request in response.get("UnprocessedItems", {}).get(table, []):
            if "PutRequest" in request:
                unprocessed.append(
                    {"PutRequest": {"Item": deserialize_item(request["PutRequest"]["Item"])}}
                )
            else:
                unprocessed.append(
                    {"DeleteRequest": {"Key": deserialize_item(request["DeleteRequest"]["Key"])}}
                )
        return BatchWriteResult(unprocessed=unprocessed)

    @staticmethod
    def _key_schema(hash_key: str, range_key: Optional[str]) -> List[Dict[str, str]]:
        schema = [{"AttributeName": hash_key, "KeyType": "HASH"}]
        if range_key:
            schema.append({"AttributeName": range_key, "KeyType": "RANGE"})
        return schema

    async def _call(self, method: str, **params: Any) -> Dict[str, Any]:
        """Invoke a client method with timeout and error mapping."""
        operation = f"DynamoDB[{method}]"
        if self._client is None:
            raise AdapterError(f"{operation}: Not connected", operation=operation)

        try:
            return await asyncio.wait_for(
                getattr(self._client, method)(**params),
                timeout=self.config.timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise StoreTimeoutError(
                f"{operation}: Timed out after {self.config.timeout_seconds}s",
                operation=operation,
            ) from e
        except EndpointConnectionError as e:
            raise AdapterError(f"{operation}: {e}", operation=operation) from e
        except ClientError as e:
            error = e.response.get("Error", {})
            error_code = error.get("Code", "")
            logger.warning(
                "DynamoDB request failed",
                extra={"operation": method, "code": error_code, "table": params.get("TableName")},
            )
            err = AdapterError(
                f"{operation}: {error_code}: {error.get('Message', str(e))}",
                operation=operation,
            )
            err.details["aws_code"] = error_code
            raise err from e
