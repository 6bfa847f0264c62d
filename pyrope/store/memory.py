"""
In-memory store implementation for testing.

This module provides an in-memory StoreAdapter backend for:
- Unit tests
- Integration tests
- Local development without DynamoDB

It reproduces the DynamoDB behaviors the upper layers depend on: declared
tables and indexes, sparse secondary indexes, range-key ordering, page
limits with LastEvaluatedKey, exclusive start keys, atomic ADD and
partially unprocessed batch writes.

Invariants:
    - All data is lost on process exit
    - Items sharing a range-key value keep their insertion order
    - A page that reaches its limit always carries a LastEvaluatedKey,
      even if no further items exist (DynamoDB does the same)
    - Returned items are copies; mutating them never changes stored data

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep interface compatible with StoreAdapter protocol
    - Add features to help with testing scenarios
"""

from __future__ import annotations

import asyncio
import copy
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from numbers import Number
from typing import Any, Dict, List, Mapping, Optional, Tuple

from ..config import MAX_BATCH_SIZE
from ..errors import AdapterError
from .base import (
    BatchWriteResult,
    IndexDef,
    Item,
    QueryResult,
    TableDef,
    UpdateExpression,
)

logger = logging.getLogger(__name__)


@dataclass
class InMemoryTable:
    """In-memory table storage."""
    definition: TableDef
    items: Dict[Tuple[Any, ...], Tuple[int, Item]] = field(default_factory=dict)


class InMemoryStore:
    """In-memory implementation of StoreAdapter for testing.

    Attributes:
        tables: Storage for table data, keyed by physical table name

    Thread safety:
        Uses an asyncio lock for mutations. Safe to use from multiple
        coroutines.

    Example:
        >>> store = InMemoryStore()
        >>> await store.create_table(collection_table("users", ("username",)))
        >>> await store.put_item("users", {"uuid": "u1", "createdAt": 1})
        >>> await store.query("users", None, {"uuid": "u1"})
    """

    def __init__(self) -> None:
        self._tables: Dict[str, InMemoryTable] = {}
        self._lock = asyncio.Lock()
        self._connected = False
        self._sequence = 0
        self._failures: Dict[str, List[str]] = defaultdict(list)
        self._unprocessed_next = 0

    async def connect(self) -> None:
        """Connect (no-op for in-memory)."""
        self._connected = True
        logger.debug("InMemoryStore connected")

    async def close(self) -> None:
        """Close (no-op for in-memory)."""
        self._connected = False
        logger.debug("InMemoryStore closed")

    async def __aenter__(self) -> InMemoryStore:
        await self.connect()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def create_table(self, table: TableDef) -> None:
        """Create a table; existing tables are left alone."""
        self._check_failure("create_table")
        async with self._lock:
            if table.name not in self._tables:
                self._tables[table.name] = InMemoryTable(definition=table)
                logger.debug("Created table", extra={"table": table.name})

    async def delete_table(self, name: str) -> None:
        """Delete a table; a missing table is not an error."""
        self._check_failure("delete_table")
        async with self._lock:
            self._tables.pop(name, None)

    async def put_item(self, table: str, item: Mapping[str, Any]) -> None:
        """Write an item, replacing any item with the same primary key."""
        self._check_failure("put_item")
        async with self._lock:
            self._put(self._table("put_item", table), item)

    async def get_item(
        self,
        table: str,
        key: Mapping[str, Any],
        consistent_read: bool = False,
    ) -> Optional[Item]:
        """Read one item by primary key."""
        self._check_failure("get_item")
        mem_table = self._table("get_item", table)
        entry = mem_table.items.get(self._key_tuple("get_item", mem_table.definition, key))
        return copy.deepcopy(entry[1]) if entry else None

    async def query(
        self,
        table: str,
        index_name: Optional[str],
        key_condition: Mapping[str, Any],
        scan_forward: bool = True,
        limit: Optional[int] = None,
        exclusive_start_key: Optional[Mapping[str, Any]] = None,
    ) -> QueryResult:
        """Query one page by equality on index key attributes."""
        self._check_failure("query")
        mem_table = self._table("query", table)
        definition = mem_table.definition
        index = self._resolve_index(definition, index_name)

        if index.hash_key not in key_condition:
            raise AdapterError(
                f"MemoryStore[query]: ValidationException: "
                f"Query condition missed key schema element: {index.hash_key}",
                operation="MemoryStore[query]",
            )
        for attr in key_condition:
            if attr not in index.key_attributes():
                raise AdapterError(
                    f"MemoryStore[query]: ValidationException: "
                    f"Query key condition not supported on attribute {attr}",
                    operation="MemoryStore[query]",
                )

        matches = [
            (seq, item)
            for seq, item in mem_table.items.values()
            if all(attr in item and item[attr] == value for attr, value in key_condition.items())
        ]
        range_key = index.range_key
        matches.sort(
            key=lambda entry: (entry[1].get(range_key, 0) if range_key else 0, entry[0]),
            reverse=not scan_forward,
        )

        start = 0
        if exclusive_start_key:
            start = self._start_position(definition, index, matches, exclusive_start_key, scan_forward)

        remaining = matches[start:]
        page = remaining[:limit] if limit else remaining

        last_evaluated_key = None
        if limit and len(page) == limit:
            last = page[-1][1]
            last_evaluated_key = {
                attr: last[attr]
                for attr in (*definition.key_attributes(), *index.key_attributes())
            }

        logger.debug(
            "Queried table",
            extra={"table": table, "index": index.name, "returned": len(page)},
        )
        return QueryResult(
            items=[copy.deepcopy(item) for _, item in page],
            last_evaluated_key=last_evaluated_key,
        )

    async def update_item(
        self,
        table: str,
        key: Mapping[str, Any],
        expression: UpdateExpression,
    ) -> Item:
        """Apply an update expression and return all new attributes."""
        self._check_failure("update_item")
        async with self._lock:
            mem_table = self._table("update_item", table)
            definition = mem_table.definition
            key_tuple = self._key_tuple("update_item", definition, key)

            for attr in (*expression.set_values, *expression.add_values):
                if attr in definition.key_attributes():
                    raise AdapterError(
                        "MemoryStore[update_item]: ValidationException: "
                        f"Cannot update attribute {attr}. This attribute is part of the key",
                        operation="MemoryStore[update_item]",
                    )

            seq, item = mem_table.items.get(key_tuple, (self._next_sequence(), dict(key)))
            item = copy.deepcopy(item)

            for attr, value in expression.set_values.items():
                item[attr] = copy.deepcopy(value)

            for attr, step in expression.add_values.items():
                current = item.get(attr, 0)
                if not isinstance(current, Number) or not isinstance(step, Number):
                    raise AdapterError(
                        "MemoryStore[update_item]: ValidationException: "
                        "An operand in the update expression has an incorrect data type",
                        operation="MemoryStore[update_item]",
                    )
                item[attr] = current + step

            mem_table.items[key_tuple] = (seq, item)
            return copy.deepcopy(item)

    async def batch_write(self, table: str, requests: List[Item]) -> BatchWriteResult:
        """Apply put/delete requests; honors leave_unprocessed()."""
        self._check_failure("batch_write")
        if len(requests) > MAX_BATCH_SIZE:
            raise AdapterError(
                "MemoryStore[batch_write]: ValidationException: "
                "Too many items requested for the BatchWriteItem call",
                operation="MemoryStore[batch_write]",
            )

        async with self._lock:
            mem_table = self._table("batch_write", table)

            cut = len(requests) - min(self._unprocessed_next, len(requests))
            self._unprocessed_next = 0
            applied, unprocessed = requests[:cut], requests[cut:]

            for request in applied:
                if "PutRequest" in request:
                    self._put(mem_table, request["PutRequest"]["Item"])
                elif "DeleteRequest" in request:
                    key = request["DeleteRequest"]["Key"]
                    mem_table.items.pop(
                        self._key_tuple("batch_write", mem_table.definition, key), None
                    )
                else:
                    raise AdapterError(
                        "MemoryStore[batch_write]: ValidationException: "
                        f"Unknown request {sorted(request)}",
                        operation="MemoryStore[batch_write]",
                    )

        return BatchWriteResult(unprocessed=copy.deepcopy(unprocessed))

    # Testing helpers

    def fail_next(self, method: str, message: str = "InternalServerError", times: int = 1) -> None:
        """Make the next ``times`` calls of ``method`` raise AdapterError."""
        self._failures[method].extend([message] * times)

    def leave_unprocessed(self, count: int) -> None:
        """Leave the last ``count`` requests of the next batch unprocessed."""
        self._unprocessed_next = count

    def get_all_items(self, table: str) -> List[Item]:
        """Get all items of a table in insertion order."""
        mem_table = self._tables.get(table)
        if mem_table is None:
            return []
        entries = sorted(mem_table.items.values(), key=lambda entry: entry[0])
        return [copy.deepcopy(item) for _, item in entries]

    def get_item_count(self, table: str) -> int:
        """Get number of items in a table."""
        mem_table = self._tables.get(table)
        return len(mem_table.items) if mem_table else 0

    def get_table_names(self) -> List[str]:
        return sorted(self._tables)

    def clear(self) -> None:
        """Remove all items but keep table definitions."""
        for mem_table in self._tables.values():
            mem_table.items.clear()
        self._failures.clear()
        self._unprocessed_next = 0

    # Internals

    def _check_failure(self, method: str) -> None:
        pending = self._failures.get(method)
        if pending:
            message = pending.pop(0)
            raise AdapterError(
                f"MemoryStore[{method}]: {message}",
                operation=f"MemoryStore[{method}]",
            )

    def _table(self, method: str, name: str) -> InMemoryTable:
        mem_table = self._tables.get(name)
        if mem_table is None:
            raise AdapterError(
                f"MemoryStore[{method}]: ResourceNotFoundException: "
                f"Requested resource not found: Table: {name} not found",
                operation=f"MemoryStore[{method}]",
            )
        return mem_table

    def _next_sequence(self) -> int:
        self._sequence += 1
        return self._sequence

    def _key_tuple(
        self, method: str, definition: TableDef, key: Mapping[str, Any]
    ) -> Tuple[Any, ...]:
        try:
            return tuple(key[attr] for attr in definition.key_attributes())
        except KeyError as e:
            raise AdapterError(
                f"MemoryStore[{method}]: ValidationException: "
                f"Missing the key {e.args[0]} in the item",
                operation=f"MemoryStore[{method}]",
            ) from e

    def _put(self, mem_table: InMemoryTable, item: Mapping[str, Any]) -> None:
        key_tuple = self._key_tuple("put_item", mem_table.definition, item)
        existing = mem_table.items.get(key_tuple)
        seq = existing[0] if existing else self._next_sequence()
        mem_table.items[key_tuple] = (seq, copy.deepcopy(dict(item)))

    @staticmethod
    def _resolve_index(definition: TableDef, name: Optional[str]) -> IndexDef:
        if name is None:
            return IndexDef("", definition.hash_key, definition.range_key)
        index = definition.get_index(name)
        if index is None:
            raise AdapterError(
                f"MemoryStore[query]: ValidationException: "
                f"The table does not have the specified index: {name}",
                operation="MemoryStore[query]",
            )
        return index

    @staticmethod
    def _start_position(
        definition: TableDef,
        index: IndexDef,
        matches: List[Tuple[int, Item]],
        start_key: Mapping[str, Any],
        scan_forward: bool,
    ) -> int:
        table_keys = definition.key_attributes()
        for position, (_, item) in enumerate(matches):
            if all(item.get(attr) == start_key.get(attr) for attr in table_keys):
                return position + 1

        # The start item is gone, resume after its range-key position.
        range_key = index.range_key
        if range_key is None or range_key not in start_key:
            return len(matches)
        boundary = start_key[range_key]
        for position, (_, item) in enumerate(matches):
            value = item.get(range_key, 0)
            if (scan_forward and value > boundary) or (not scan_forward and value < boundary):
                return position
        return len(matches)
