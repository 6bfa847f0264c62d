"""
Association reconciliation engine.

An association table stores one record per edge; each edge carries two
role attributes (e.g. ``user`` and ``contact``) holding the uuids of the
linked records. The resolver keeps those edges consistent with the
declared cardinality of each role without any transactional support
from the store.

associate() walks both roles, and each value inside a role, strictly in
the order given. Later decisions must observe the destroys triggered by
earlier ones, so nothing here runs concurrently:

    no edge for the value             -> WRITE
    has_many role, all partner values
    already linked                     -> SKIP
    has_many role, otherwise           -> WRITE
    singular role                      -> destroy its edges, WRITE

Edges are then created for role0.WRITE x role1.WRITE (role0 outer), which
fixes their creation order and therefore the order get_associations()
returns them in.

Invariants:
    - A singular role value never holds more than one edge afterwards
    - Re-associating already linked has_many values creates no edge
    - Nothing is rolled back: edges written before a failure remain

How to change safely:
    - Keep reconciliation sequential
    - Concurrent callers on the same role values can still interleave;
      that gap is known and not handled here
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..config import TableConfig
from ..errors import AssociationConsistencyError, ValidationError, breadcrumb
from ..store.base import StoreAdapter
from .actions import TableActions

logger = logging.getLogger(__name__)


class Decision(Enum):
    """Per-value reconciliation outcome."""

    WRITE = "write"
    SKIP = "skip"


@dataclass(frozen=True)
class AssociationItem:
    """One side of an association call.

    Attributes:
        index: ``{role_attribute: value}`` where value is a scalar or a list
            (dissociate also accepts None for the second item)
        has_many: Whether this role may hold several edges at once
    """

    index: Mapping[str, Any]
    has_many: bool = False


@dataclass(frozen=True)
class Role:
    """Normalized association item."""

    attribute: str
    values: tuple[Any, ...]
    has_many: bool


def _role_attribute(item: Any, position: int) -> tuple[str, Any]:
    if not isinstance(item, AssociationItem):
        raise ValidationError(
            f"Association item {position} must be an AssociationItem",
            field_name="items",
        )
    if not isinstance(item.has_many, bool):
        raise ValidationError(
            f"Association item {position} has_many must be a boolean",
            field_name="has_many",
        )
    if not isinstance(item.index, Mapping) or len(item.index) != 1:
        raise ValidationError(
            f"Association item {position} index must have exactly one attribute",
            field_name="index",
        )
    attribute, value = next(iter(item.index.items()))
    if not isinstance(attribute, str) or not attribute:
        raise ValidationError(
            f"Association item {position} attribute must be a non-empty string",
            field_name="index",
        )
    return attribute, value


def _as_values(value: Any, attribute: str) -> tuple[Any, ...]:
    values = tuple(value) if isinstance(value, (list, tuple)) else (value,)
    # each value is reconciled once, in first-seen order
    values = tuple(dict.fromkeys(values))
    if not values or any(v is None for v in values):
        raise ValidationError(f"Missing values for role '{attribute}'", field_name=attribute)
    return values


def _pair(items: Sequence[AssociationItem]) -> None:
    if isinstance(items, (str, bytes)) or not isinstance(items, Sequence) or len(items) != 2:
        raise ValidationError("Exactly two association items are required", field_name="items")


class AssociationResolver:
    """associate / dissociate / get_associations over one association table.

    Example:
        >>> resolver = AssociationResolver(store, "contacts_users", tables)
        >>> await resolver.associate([
        ...     AssociationItem({"user": user_id}, has_many=False),
        ...     AssociationItem({"contact": contact_id}, has_many=False),
        ... ])
        True
    """

    def __init__(
        self,
        store: StoreAdapter,
        table_name: str,
        tables: TableConfig,
        actions: TableActions | None = None,
    ) -> None:
        self.actions = actions or TableActions(store, table_name, tables)

    @property
    def full_name(self) -> str:
        return self.actions.full_name

    async def associate(self, items: Sequence[AssociationItem]) -> bool:
        """Link the values of two roles according to their cardinality.

        Returns:
            True if edges were created, False if nothing had to be written
            (this includes calls where enforcing a singular role destroyed
            edges but left the other role with nothing to write)

        Raises:
            ValidationError: Malformed items, raised before any I/O
            UnprocessedItemsError: A singular-role destroy was only partly applied
            AdapterError: The store rejected a request
        """
        roles = self._roles(items)

        with breadcrumb("associate()"):
            writes: list[list[Any]] = [[], []]
            destroyed = 0
            for i, role in enumerate(roles):
                partner = roles[1 - i]
                for value in role.values:
                    decision, removed = await self._reconcile(role, partner, value)
                    destroyed += removed
                    if decision is Decision.WRITE:
                        writes[i].append(value)

            if not (writes[0] and writes[1]):
                if destroyed:
                    logger.info(
                        "Association destroyed edges without writing new ones",
                        extra={"table": self.full_name, "destroyed": destroyed},
                    )
                return False

            for left in writes[0]:
                for right in writes[1]:
                    await self.actions.create({roles[0].attribute: left, roles[1].attribute: right})

        logger.debug(
            "Associated",
            extra={
                "table": self.full_name,
                "created": len(writes[0]) * len(writes[1]),
                "destroyed": destroyed,
            },
        )
        return True

    async def dissociate(self, items: Sequence[AssociationItem]) -> bool:
        """Remove edges of a single role-A value.

        The second item's value may be None (remove every edge of role A),
        a scalar or a list (remove only edges to those values). Every
        requested value must be linked, otherwise nothing is removed.

        Returns:
            True if role A had edges, False if it had none at all

        Raises:
            ValidationError: Malformed items or a non-scalar role-A value
            AssociationConsistencyError: A requested value is not linked
            UnprocessedItemsError: The batch delete was only partly applied
        """
        _pair(items)
        attr_a, value_a = _role_attribute(items[0], 0)
        attr_b, value_b = _role_attribute(items[1], 1)
        if value_a is None or isinstance(value_a, (list, tuple, set)):
            raise ValidationError(
                f"Role '{attr_a}' must be a single value to dissociate",
                field_name=attr_a,
            )
        requested = None if value_b is None else _as_values(value_b, attr_b)

        with breadcrumb("dissociate()"):
            edges = await self.actions.find_by_index({attr_a: value_a})
            if not edges:
                return False

            if requested is not None:
                linked = {edge.get(attr_b) for edge in edges}
                missing = [v for v in requested if v not in linked]
                if missing:
                    raise AssociationConsistencyError(
                        f"{attr_a} {value_a} is not associated with {attr_b} {missing}",
                        missing=missing,
                    )
                wanted = set(requested)
                edges = [edge for edge in edges if edge.get(attr_b) in wanted]

            removed = await self.actions.destroy_records(edges)

        logger.debug(
            "Dissociated",
            extra={"table": self.full_name, "role": attr_a, "removed": removed},
        )
        return True

    async def get_associations(self, index: Mapping[str, Any], attribute: str) -> list[Any]:
        """Values of ``attribute`` across the edges matching index, oldest first."""
        if not isinstance(attribute, str) or not attribute:
            raise ValidationError("Attribute must be a non-empty string", field_name="attribute")

        with breadcrumb("get_associations()"):
            edges = await self.actions.find_by_index(index)
        return [edge[attribute] for edge in edges if attribute in edge]

    async def _reconcile(self, role: Role, partner: Role, value: Any) -> tuple[Decision, int]:
        edges = await self.actions.find_by_index({role.attribute: value})

        if not edges:
            decision, removed = Decision.WRITE, 0
        elif role.has_many:
            linked = {edge.get(partner.attribute) for edge in edges}
            if all(v in linked for v in partner.values):
                decision = Decision.SKIP
            else:
                decision = Decision.WRITE
            removed = 0
        else:
            removed = await self.actions.destroy_records(edges)
            decision = Decision.WRITE

        logger.debug(
            "Association decision",
            extra={
                "table": self.full_name,
                "role": role.attribute,
                "value": value,
                "decision": decision.value,
                "destroyed": removed,
            },
        )
        return decision, removed

    @staticmethod
    def _roles(items: Sequence[AssociationItem]) -> tuple[Role, Role]:
        _pair(items)
        roles = []
        for position, item in enumerate(items):
            attribute, value = _role_attribute(item, position)
            roles.append(Role(attribute, _as_values(value, attribute), item.has_many))
        if roles[0].attribute == roles[1].attribute:
            raise ValidationError("Association roles must differ", field_name="items")
        return roles[0], roles[1]
