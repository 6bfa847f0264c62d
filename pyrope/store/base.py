"""
Base protocol and types for the store abstraction.

This module defines the StoreAdapter protocol that all backends must
implement, the physical table layout every collection uses, and the
request/response types exchanged with the store.

Physical layout:
    - Collection table: primary key (uuid HASH, createdAt RANGE), one
      global secondary index ``_tableIndex`` on (_table, createdAt) and one
      ``<attr>Index`` on (attr, createdAt) per indexable attribute.
    - Counters table: primary key (tableDigest HASH), one numeric ``count``.

Invariants:
    - Items are plain dicts of Python values; backends translate to and
      from their wire representation
    - Queries return at most one page; ``last_evaluated_key`` is set when
      the page was cut short and more items may follow
    - Batch writes report unprocessed requests instead of retrying them

How to change safely:
    - Protocol changes require updating all implementations
    - Keep the layout helpers in sync with existing provisioned tables
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass, field
from typing import (
    TYPE_CHECKING,
    Any,
    Dict,
    List,
    Mapping,
    Optional,
    Protocol,
    Tuple,
    runtime_checkable,
)
import logging

if TYPE_CHECKING:
    from ..config import PyropeConfig

logger = logging.getLogger(__name__)

# Reserved attributes carried by every record.
UUID = "uuid"
CREATED_AT = "createdAt"
UPDATED_AT = "updatedAt"
TABLE_TAG = "_table"

INDEX_SUFFIX = "Index"
TABLE_INDEX = TABLE_TAG + INDEX_SUFFIX

DIGEST_KEY = "tableDigest"
COUNT_ATTR = "count"

Item = Dict[str, Any]


def index_name(attribute: str) -> str:
    """Name of the secondary index keyed on ``attribute``."""
    return f"{attribute}{INDEX_SUFFIX}"


@dataclass(frozen=True)
class IndexDef:
    """Global secondary index definition (projection is always ALL)."""
    name: str
    hash_key: str
    range_key: Optional[str] = None

    def key_attributes(self) -> Tuple[str, ...]:
        return (self.hash_key,) if self.range_key is None else (self.hash_key, self.range_key)

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "hash_key": self.hash_key, "range_key": self.range_key}


@dataclass(frozen=True)
class TableDef:
    """Physical table definition.

    Attributes:
        name: Full physical table name
        hash_key: Partition key attribute
        range_key: Sort key attribute, if any
        indexes: Global secondary indexes
        numeric_attributes: Key attributes stored as numbers
    """
    name: str
    hash_key: str
    range_key: Optional[str] = None
    indexes: Tuple[IndexDef, ...] = ()
    numeric_attributes: Tuple[str, ...] = (CREATED_AT,)

    def key_attributes(self) -> Tuple[str, ...]:
        return (self.hash_key,) if self.range_key is None else (self.hash_key, self.range_key)

    def get_index(self, name: str) -> Optional[IndexDef]:
        for index in self.indexes:
            if index.name == name:
                return index
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "hash_key": self.hash_key,
            "range_key": self.range_key,
            "indexes": [index.to_dict() for index in self.indexes],
        }


def collection_table(name: str, indexed_attributes: Tuple[str, ...] = ()) -> TableDef:
    """Layout of a collection (or association) table.

    Args:
        name: Full physical table name
        indexed_attributes: Attributes that get their own ``<attr>Index``
    """
    indexes = [IndexDef(TABLE_INDEX, TABLE_TAG, CREATED_AT)]
    for attribute in indexed_attributes:
        if attribute in (UUID, TABLE_TAG):
            continue
        indexes.append(IndexDef(index_name(attribute), attribute, CREATED_AT))
    return TableDef(name=name, hash_key=UUID, range_key=CREATED_AT, indexes=tuple(indexes))


def counters_table(name: str) -> TableDef:
    """Layout of the counters table."""
    return TableDef(name=name, hash_key=DIGEST_KEY, numeric_attributes=())


@dataclass(frozen=True)
class UpdateExpression:
    """Structured update applied to a single item.

    Attributes:
        set_values: Attributes overwritten with the given values
        add_values: Numeric attributes atomically incremented by the given
            step (the attribute starts at 0 when absent)
    """
    set_values: Mapping[str, Any] = field(default_factory=dict)
    add_values: Mapping[str, Any] = field(default_factory=dict)

    def render(self) -> Dict[str, Any]:
        """Render as DynamoDB ``UpdateExpression`` parameters.

        Attribute names and values are always passed through placeholders
        so reserved words (``count``) and names starting with ``_`` are safe.

        Returns:
            Dict with UpdateExpression, ExpressionAttributeNames and
            ExpressionAttributeValues (values are plain Python values)
        """
        names: Dict[str, str] = {}
        values: Dict[str, Any] = {}
        clauses: List[str] = []

        set_parts = []
        for attr, value in self.set_values.items():
            n = len(names)
            names[f"#a{n}"] = attr
            values[f":v{n}"] = value
            set_parts.append(f"#a{n} = :v{n}")
        if set_parts:
            clauses.append("SET " + ", ".join(set_parts))

        add_parts = []
        for attr, value in self.add_values.items():
            n = len(names)
            names[f"#a{n}"] = attr
            values[f":v{n}"] = value
            add_parts.append(f"#a{n} :v{n}")
        if add_parts:
            clauses.append("ADD " + ", ".join(add_parts))

        if not clauses:
            raise ValueError("UpdateExpression has nothing to update")

        return {
            "UpdateExpression": " ".join(clauses),
            "ExpressionAttributeNames": names,
            "ExpressionAttributeValues": values,
        }


@dataclass
class QueryResult:
    """One page of query results.

    Attributes:
        items: Matching items in index order
        last_evaluated_key: Key to resume from, None when the scan is done
    """
    items: List[Item] = field(default_factory=list)
    last_evaluated_key: Optional[Item] = None


@dataclass
class BatchWriteResult:
    """Outcome of a batch write.

    Attributes:
        unprocessed: Requests the store did not apply, in request format
    """
    unprocessed: List[Item] = field(default_factory=list)


def put_request(item: Mapping[str, Any]) -> Item:
    return {"PutRequest": {"Item": dict(item)}}


def delete_request(key: Mapping[str, Any]) -> Item:
    return {"DeleteRequest": {"Key": dict(key)}}


@runtime_checkable
class StoreAdapter(Protocol):
    """Protocol for key-value store backends.

    All methods are async and bound their own execution time; the layers
    above never apply timeouts or retries.

    Implementations:
        - DynamoDBStore: AWS DynamoDB through aiobotocore
        - InMemoryStore: Behavioral double for tests and local development
    """

    @abstractmethod
    async def connect(self) -> None:
        """Open the connection to the backend."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release the connection."""
        ...

    @abstractmethod
    async def create_table(self, table: TableDef) -> None:
        """Create a table with its indexes; existing tables are left alone."""
        ...

    @abstractmethod
    async def delete_table(self, name: str) -> None:
        """Delete a table; a missing table is not an error."""
        ...

    @abstractmethod
    async def put_item(self, table: str, item: Mapping[str, Any]) -> None:
        """Write ``item``, replacing any item with the same primary key."""
        ...

    @abstractmethod
    async def get_item(
        self,
        table: str,
        key: Mapping[str, Any],
        consistent_read: bool = False,
    ) -> Optional[Item]:
        """Read one item by primary key, None if absent."""
        ...

    @abstractmethod
    async def query(
        self,
        table: str,
        index_name: Optional[str],
        key_condition: Mapping[str, Any],
        scan_forward: bool = True,
        limit: Optional[int] = None,
        exclusive_start_key: Optional[Mapping[str, Any]] = None,
    ) -> QueryResult:
        """Query one page by equality on index key attributes.

        Args:
            table: Physical table name
            index_name: Secondary index, None for the table's primary key
            key_condition: Equality conditions on the hash (and optionally
                range) key of the index
            scan_forward: Ascending range-key order when True
            limit: Maximum items in the page
            exclusive_start_key: Resume after this key

        Returns:
            QueryResult with the page and, if cut short, the resume key
        """
        ...

    @abstractmethod
    async def update_item(
        self,
        table: str,
        key: Mapping[str, Any],
        expression: UpdateExpression,
    ) -> Item:
        """Apply ``expression`` to one item and return all new attributes.

        Like DynamoDB, updating a missing key creates the item.
        """
        ...

    @abstractmethod
    async def batch_write(self, table: str, requests: List[Item]) -> BatchWriteResult:
        """Apply put/delete requests built with put_request/delete_request."""
        ...


def create_store(config: "PyropeConfig") -> StoreAdapter:
    """Factory function to create a store from configuration.

    Args:
        config: Complete configuration

    Returns:
        Appropriate StoreAdapter implementation

    Raises:
        ValueError: If backend is not supported
    """
    from ..config import StoreBackend
    from .dynamodb import DynamoDBStore
    from .memory import InMemoryStore

    if config.store_backend == StoreBackend.DYNAMODB:
        return DynamoDBStore(config.dynamodb)
    elif config.store_backend == StoreBackend.MEMORY:
        return InMemoryStore()
    else:
        raise ValueError(f"Unsupported store backend: {config.store_backend}")
