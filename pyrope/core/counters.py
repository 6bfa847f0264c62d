"""
Atomic per-collection record counters.

Each logical collection owns one row in the counters table, keyed by a
digest of its full (prefixed and suffixed) name. The row is only ever
changed through the store's atomic ADD, so concurrent creates and
destroys never lose an update the way a read-modify-write would.

Invariants:
    - The counter equals the number of live records of the collection,
      absent concurrent writers and failed create/destroy steps
    - A missing row means zero

How to change safely:
    - Changing table_digest orphans every existing counter
"""

from __future__ import annotations

import hashlib
import logging

from ..config import TableConfig
from ..errors import AdapterError, ValidationError, breadcrumb
from ..store.base import COUNT_ATTR, DIGEST_KEY, StoreAdapter, UpdateExpression

logger = logging.getLogger(__name__)


def table_digest(full_table_name: str) -> str:
    """Counter key of a collection: sha256 hex of its name, a dot, the name."""
    if not isinstance(full_table_name, str) or not full_table_name:
        raise ValidationError("Table name must be a non-empty string", field_name="table_name")
    digest = hashlib.sha256(full_table_name.encode("utf-8")).hexdigest()
    return f"{digest}.{full_table_name}"


class Counters:
    """Counter operations against the configured counters table.

    Example:
        >>> counters = Counters(store, TableConfig(prefix="_test_"))
        >>> await counters.increase_counter("_test_users")
        1
        >>> await counters.count("_test_users")
        1
    """

    def __init__(self, store: StoreAdapter, tables: TableConfig) -> None:
        self.store = store
        self.tables = tables

    @property
    def table_name(self) -> str:
        return self.tables.counters_table_name

    async def update_counter(self, full_table_name: str, step: int) -> int:
        """Atomically add ``step`` to a collection counter.

        Returns:
            The counter value after the update

        Raises:
            ValidationError: If step is not an integer
            AdapterError: If the store rejects the update or returns no count
        """
        if isinstance(step, bool) or not isinstance(step, int):
            raise ValidationError("Counter step must be an integer", field_name="step")

        with breadcrumb("update_counter()"):
            attributes = await self.store.update_item(
                self.table_name,
                {DIGEST_KEY: table_digest(full_table_name)},
                UpdateExpression(add_values={COUNT_ATTR: step}),
            )
            if COUNT_ATTR not in attributes:
                raise AdapterError(
                    f"Counter for {full_table_name} came back without a count",
                    operation="update_item",
                )

        logger.debug(
            "Updated counter",
            extra={"table": full_table_name, "step": step, "count": attributes[COUNT_ATTR]},
        )
        return attributes[COUNT_ATTR]

    async def increase_counter(self, full_table_name: str, step: int = 1) -> int:
        return await self.update_counter(full_table_name, step)

    async def decrease_counter(self, full_table_name: str, step: int = 1) -> int:
        return await self.update_counter(full_table_name, -step)

    async def count(self, full_table_name: str) -> int:
        """Current counter value, 0 if the collection was never counted."""
        with breadcrumb("count()"):
            row = await self.store.get_item(
                self.table_name,
                {DIGEST_KEY: table_digest(full_table_name)},
                consistent_read=True,
            )
        if row is None:
            return 0
        return row.get(COUNT_ATTR, 0)
