"""
Pyrope - Relational layer over DynamoDB.

This package adds relationships to a schemaless key-value store:
- One-to-one, one-to-many and many-to-many associations stored as edge
  records in per-relationship association tables
- Atomic per-collection record counters
- Ordered scans with opaque cursor pagination
- Models with hook pipelines and cascading destroy

Architecture:
    Model facade  ──▶  Association resolver  ──▶  Base actions  ──▶  Store
                                    │                   │
                                    └──▶  Counters ◀────┘

Example:
    >>> from pyrope import InMemoryStore, ModelSet, TableConfig
    >>>
    >>> models = ModelSet(registry, InMemoryStore(), TableConfig(prefix="_test_"))
    >>> user = await models["User"].create({"username": "ada"})
    >>> await models["User"].count()
    1

Invariants:
    - Only counter updates are atomic; multi-step operations are
      sequential and are not protected against concurrent callers
    - Nothing is retried; partial batch writes surface as errors

Version: 1.0.0
"""

__version__ = "1.0.0"

from .config import DynamoDBConfig, ObservabilityConfig, PyropeConfig, StoreBackend, TableConfig
from .core import (
    AssociationItem,
    AssociationResolver,
    Counters,
    Page,
    TableActions,
    decode_cursor,
    encode_cursor,
    table_digest,
)
from .errors import (
    AdapterError,
    AssociationConsistencyError,
    MultiplicityError,
    NotFoundError,
    PyropeError,
    SchemaError,
    StoreTimeoutError,
    UnprocessedItemsError,
    ValidationError,
)
from .models import Hooks, Model, ModelSet
from .schema import Dependent, ModelDef, RelationshipDef, SchemaRegistry, relationship
from .store import DynamoDBStore, InMemoryStore, StoreAdapter, create_store

__all__ = [
    "__version__",
    # Configuration
    "PyropeConfig",
    "DynamoDBConfig",
    "TableConfig",
    "ObservabilityConfig",
    "StoreBackend",
    # Store
    "StoreAdapter",
    "DynamoDBStore",
    "InMemoryStore",
    "create_store",
    # Core
    "TableActions",
    "Page",
    "Counters",
    "table_digest",
    "encode_cursor",
    "decode_cursor",
    "AssociationResolver",
    "AssociationItem",
    # Schema
    "ModelDef",
    "RelationshipDef",
    "Dependent",
    "relationship",
    "SchemaRegistry",
    # Models
    "Model",
    "ModelSet",
    "Hooks",
    # Errors
    "PyropeError",
    "ValidationError",
    "NotFoundError",
    "MultiplicityError",
    "AssociationConsistencyError",
    "SchemaError",
    "AdapterError",
    "StoreTimeoutError",
    "UnprocessedItemsError",
]
