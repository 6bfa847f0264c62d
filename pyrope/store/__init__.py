"""
Key-value store abstraction for Pyrope.

This module provides a pluggable store backend interface supporting:
- AWS DynamoDB (production)
- In-memory (for testing)

Everything above this layer talks to a StoreAdapter and never to a
concrete client, so relational semantics can be exercised in tests
without a running database.

Invariants:
    - Only single-item operations are atomic
    - Queries return possibly-partial pages
    - Batch writes report unprocessed requests instead of retrying

How to change safely:
    - New backends must implement StoreAdapter protocol
    - Verify new backends against the integration tests
"""

from .base import (
    BatchWriteResult,
    IndexDef,
    QueryResult,
    StoreAdapter,
    TableDef,
    UpdateExpression,
    collection_table,
    counters_table,
    create_store,
    delete_request,
    put_request,
)
from .dynamodb import DynamoDBStore
from .memory import InMemoryStore

__all__ = [
    # Protocol and types
    "StoreAdapter",
    "TableDef",
    "IndexDef",
    "QueryResult",
    "BatchWriteResult",
    "UpdateExpression",
    # Layout and requests
    "collection_table",
    "counters_table",
    "put_request",
    "delete_request",
    # Factory
    "create_store",
    # Implementations
    "DynamoDBStore",
    "InMemoryStore",
]
