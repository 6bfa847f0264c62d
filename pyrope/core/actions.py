"""
Base actions for one logical collection.

TableActions is the only place records are created and destroyed: every
create increments the collection counter and every destroy decrements it
by the number of records removed.

Records are plain dicts. Besides the caller's attributes each record
carries:
    - uuid: random identifier (uuid4 string)
    - createdAt / updatedAt: epoch milliseconds
    - _table: full collection name, key of the ``_tableIndex`` scan index

Invariants:
    - (uuid, createdAt) is the primary key and is never rewritten
    - createdAt strictly increases across records created by one process
    - Lookups by index return every match (all pages are followed)
    - "Nothing found" is an empty list or None, never an exception
    - Write and counter update are two separate, non-atomic steps

How to change safely:
    - Keep reserved attribute names stable, they are part of the cursor
      format and of every provisioned index
    - Never add retries here; surface store failures to the caller
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from ..config import TableConfig
from ..errors import (
    MultiplicityError,
    UnprocessedItemsError,
    ValidationError,
    breadcrumb,
)
from ..store.base import (
    CREATED_AT,
    TABLE_INDEX,
    TABLE_TAG,
    UPDATED_AT,
    UUID,
    StoreAdapter,
    UpdateExpression,
    delete_request,
    index_name,
)
from .counters import Counters
from .cursor import decode_cursor, encode_cursor

logger = logging.getLogger(__name__)

Record = dict[str, Any]

# Attributes an update may never touch.
PROTECTED_ATTRIBUTES = frozenset({UUID, CREATED_AT, TABLE_TAG})


def now_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


_clock_lock = threading.Lock()
_last_created_at = 0


def next_created_at() -> int:
    """Epoch milliseconds, strictly increasing within the process.

    Index range keys order records; equal ``createdAt`` values would leave
    the order of records created in the same millisecond to the store.
    """
    global _last_created_at
    with _clock_lock:
        _last_created_at = max(now_ms(), _last_created_at + 1)
        return _last_created_at


@dataclass
class Page:
    """One page of an ordered scan.

    Attributes:
        items: Records in scan order
        cursor: Token resuming after the last item, None when exhausted
    """

    items: list[Record] = field(default_factory=list)
    cursor: str | None = None

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)


def build_update_expression(fields: Mapping[str, Any], now: int) -> UpdateExpression:
    """SET expression for the supplied attributes plus a fresh updatedAt.

    Primary key attributes and the collection tag are dropped.
    """
    values = {k: v for k, v in fields.items() if k not in PROTECTED_ATTRIBUTES}
    if UPDATED_AT not in values:
        values[UPDATED_AT] = now
    return UpdateExpression(set_values=values)


def validate_index(index: Any) -> None:
    """Check an index: a mapping of one hash and an optional range attribute."""
    if not isinstance(index, Mapping) or not 1 <= len(index) <= 2:
        raise ValidationError(
            "Index must be a mapping with one or two attributes",
            field_name="index",
        )
    for attr, value in index.items():
        if not isinstance(attr, str) or not attr:
            raise ValidationError("Index attribute names must be strings", field_name="index")
        if value is None:
            raise ValidationError(f"Index value for '{attr}' is missing", field_name=attr)


def _validate_scan(ascending: Any, limit: Any, cursor: Any) -> None:
    if not isinstance(ascending, bool):
        raise ValidationError("ascending must be a boolean", field_name="ascending")
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 0:
        raise ValidationError("limit must be a non-negative integer", field_name="limit")
    if cursor is not None and not isinstance(cursor, str):
        raise ValidationError("cursor must be a string", field_name="cursor")


class TableActions:
    """CRUD, indexed lookup and ordered scans over one collection.

    Attributes:
        name: Logical collection name (e.g. ``users``)
        full_name: Physical table name, also the collection tag

    Example:
        >>> users = TableActions(store, "users", TableConfig(prefix="_test_"))
        >>> user = await users.create({"username": "ada"})
        >>> await users.find_by_index({"username": "ada"})
        [{'username': 'ada', 'uuid': '...', ...}]
    """

    def __init__(
        self,
        store: StoreAdapter,
        name: str,
        tables: TableConfig,
        counters: Counters | None = None,
    ) -> None:
        self.store = store
        self.name = name
        self.tables = tables
        self.full_name = tables.full_name(name)
        self.counters = counters or Counters(store, tables)

    async def count(self) -> int:
        """Number of live records in the collection."""
        return await self.counters.count(self.full_name)

    async def create(self, fields: Mapping[str, Any]) -> Record:
        """Write a new record and increment the collection counter.

        Args:
            fields: Domain attributes; reserved attributes are overwritten

        Returns:
            The stored record including uuid, timestamps and collection tag
        """
        if not isinstance(fields, Mapping):
            raise ValidationError("Fields must be a mapping", field_name="fields")

        timestamp = next_created_at()
        record: Record = dict(fields)
        record[UUID] = str(uuid.uuid4())
        record[CREATED_AT] = timestamp
        record[UPDATED_AT] = timestamp
        record[TABLE_TAG] = self.full_name

        with breadcrumb("create()"):
            await self.store.put_item(self.full_name, record)
            await self.counters.increase_counter(self.full_name)

        logger.debug("Created record", extra={"table": self.full_name, "uuid": record[UUID]})
        return record

    async def find_by_index(self, index: Mapping[str, Any], ascending: bool = True) -> list[Record]:
        """All records matching an index, in creation order.

        The first attribute selects the index (``<attr>Index``, or the
        primary key for ``uuid``); an optional second attribute is matched
        against the index range key.

        Returns:
            Matching records, empty when nothing matches
        """
        validate_index(index)
        hash_attr = next(iter(index))
        target_index = None if hash_attr == UUID else index_name(hash_attr)

        records: list[Record] = []
        start_key = None
        with breadcrumb("find_by_index()"):
            while True:
                result = await self.store.query(
                    self.full_name,
                    target_index,
                    dict(index),
                    scan_forward=ascending,
                    exclusive_start_key=start_key,
                )
                records.extend(result.items)
                start_key = result.last_evaluated_key
                if not start_key:
                    break

        return records

    async def all(
        self,
        ascending: bool = True,
        limit: int = 0,
        cursor: str | None = None,
    ) -> Page:
        """Ordered scan over the collection tag index.

        Args:
            ascending: Oldest first when True
            limit: Maximum records in the page, 0 for no limit
            cursor: Token from a previous page

        Returns:
            Page with the records and, when truncated, the next cursor
        """
        _validate_scan(ascending, limit, cursor)
        start_key = decode_cursor(cursor) if cursor is not None else None

        with breadcrumb("all()"):
            result = await self.store.query(
                self.full_name,
                TABLE_INDEX,
                {TABLE_TAG: self.full_name},
                scan_forward=ascending,
                limit=limit or None,
                exclusive_start_key=start_key,
            )

        next_cursor = None
        if result.last_evaluated_key:
            next_cursor = encode_cursor(result.last_evaluated_key)
        return Page(items=result.items, cursor=next_cursor)

    async def take(
        self,
        limit: int = 1,
        cursor: str | None = None,
        ascending: bool = True,
    ) -> Page:
        return await self.all(ascending=ascending, limit=limit, cursor=cursor)

    async def first(self, limit: int = 1, cursor: str | None = None) -> Page:
        return await self.take(limit=limit, cursor=cursor, ascending=True)

    async def last(self, limit: int = 1, cursor: str | None = None) -> Page:
        return await self.take(limit=limit, cursor=cursor, ascending=False)

    async def update(self, index: Mapping[str, Any], fields: Mapping[str, Any]) -> Record | None:
        """Rewrite the supplied attributes of the single record matching index.

        Returns:
            The updated record, None if nothing matches

        Raises:
            MultiplicityError: If the index matches more than one record
        """
        if not isinstance(fields, Mapping):
            raise ValidationError("Fields must be a mapping", field_name="fields")

        with breadcrumb("update()"):
            records = await self.find_by_index(index)
            if not records:
                return None
            if len(records) > 1:
                raise MultiplicityError(
                    "Cannot update an array of items.",
                    index=dict(index),
                    matched=len(records),
                )

            record = records[0]
            updated = await self.store.update_item(
                self.full_name,
                {UUID: record[UUID], CREATED_AT: record[CREATED_AT]},
                build_update_expression(fields, now_ms()),
            )

        logger.debug("Updated record", extra={"table": self.full_name, "uuid": record[UUID]})
        return updated

    async def destroy(self, index: Mapping[str, Any]) -> Record | None:
        """Delete every record matching index.

        Returns:
            The first removed record, None if nothing matched
        """
        with breadcrumb("destroy()"):
            records = await self.find_by_index(index)
            if not records:
                return None
            await self.destroy_records(records)
        return records[0]

    async def destroy_records(self, records: list[Record]) -> int:
        """Batch-delete already loaded records and decrement the counter.

        Deletes run in chunks of TableConfig.batch_size. The counter is
        decremented by what each chunk actually removed before any
        unprocessed requests are reported.

        Returns:
            Number of records removed

        Raises:
            UnprocessedItemsError: If the store left requests unprocessed
        """
        keys = [{UUID: r[UUID], CREATED_AT: r[CREATED_AT]} for r in records]
        size = self.tables.batch_size
        removed = 0

        with breadcrumb("destroy_records()"):
            for offset in range(0, len(keys), size):
                chunk = keys[offset:offset + size]
                result = await self.store.batch_write(
                    self.full_name, [delete_request(key) for key in chunk]
                )
                done = len(chunk) - len(result.unprocessed)
                if done:
                    await self.counters.decrease_counter(self.full_name, done)
                    removed += done
                if result.unprocessed:
                    raise UnprocessedItemsError(
                        f"Batch delete on {self.full_name} left "
                        f"{len(result.unprocessed)} request(s) unprocessed",
                        unprocessed=result.unprocessed,
                        operation="batch_write",
                    )

        logger.debug("Destroyed records", extra={"table": self.full_name, "removed": removed})
        return removed
