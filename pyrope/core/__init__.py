"""
Core relational operations for Pyrope.

This module provides:
- Base actions: CRUD, indexed lookup and ordered, cursor-paginated scans
- Atomic counters: live record count per collection
- Association resolver: associate / dissociate / get_associations

Invariants:
    - Records and edges are created only by TableActions.create and
      removed only by TableActions.destroy / destroy_records
    - Multi-step sequences are sequential and best-effort; only the
      counter update is atomic

How to change safely:
    - Run the integration tests after touching reconciliation order
"""

from .actions import (
    Page,
    Record,
    TableActions,
    build_update_expression,
    next_created_at,
    now_ms,
)
from .associations import AssociationItem, AssociationResolver, Decision
from .counters import Counters, table_digest
from .cursor import decode_cursor, encode_cursor

__all__ = [
    # Base actions
    "TableActions",
    "Page",
    "Record",
    "build_update_expression",
    "now_ms",
    "next_created_at",
    # Counters
    "Counters",
    "table_digest",
    # Cursors
    "encode_cursor",
    "decode_cursor",
    # Associations
    "AssociationResolver",
    "AssociationItem",
    "Decision",
]
