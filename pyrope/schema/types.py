"""
Core type definitions for the Pyrope schema system.

This module declares models and the relationships between them:
- Dependent: What happens to linked records when a parent is destroyed
- RelationshipDef: One named side of a relationship
- ModelDef: A collection with its indexes and relationships

Relationships are declared on both models. The cardinality of a role is
read from the side that owns it: ``User.contact`` with ``has_many=False``
means a user holds at most one contact edge.

Invariants:
    - Relationship names are unique within a model
    - Reserved record attributes cannot be used as relationship names
    - Definitions are immutable once created

How to change safely:
    - Renaming a model renames its table; migrate data first
    - Changing has_many does not rewrite existing edges

Example:
    >>> from pyrope.schema import ModelDef, relationship
    >>> User = ModelDef(
    ...     name="User",
    ...     indexes=("username",),
    ...     relationships=(relationship("contact", "Contact", dependent="destroy"),),
    ... )
"""

from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field as dataclass_field
from enum import Enum
from typing import Any

from ..store.base import CREATED_AT, TABLE_TAG, UPDATED_AT, UUID
from .naming import collection_name, role_candidates, role_key

RESERVED_ATTRIBUTES = frozenset({UUID, CREATED_AT, UPDATED_AT, TABLE_TAG})


class Dependent(Enum):
    """Cleanup applied to linked records when a parent is destroyed.

    NULLIFY removes only the edges; DESTROY also destroys each linked
    record through its own model, applying that model's rules in turn.
    """

    NULLIFY = "nullify"
    DESTROY = "destroy"

    @classmethod
    def from_str(cls, value: str) -> Dependent:
        """Parse dependent policy from string."""
        try:
            return cls(value.lower())
        except ValueError:
            raise ValueError(
                f"Invalid dependent policy '{value}'. Must be one of: nullify, destroy"
            )


@dataclass(frozen=True)
class RelationshipDef:
    """One side of a relationship between two models.

    Attributes:
        name: Role name used by callers (``contact``, ``organizations``)
        target: Name of the related model
        has_many: Whether this side may link several records at once
        dependent: Cleanup policy when the owning record is destroyed
        inverse: Name of the relationship on the target pointing back;
            derived from the target's relationships when omitted
        table: Logical association table, shared with the inverse; defaults
            to the sorted collection names joined by ``_``
    """

    name: str
    target: str
    has_many: bool = False
    dependent: Dependent | None = None
    inverse: str | None = None
    table: str | None = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Relationship name cannot be empty")
        if not self.target:
            raise ValueError(f"Relationship '{self.name}' must name a target model")
        if self.name in RESERVED_ATTRIBUTES:
            raise ValueError(f"Relationship name '{self.name}' is a reserved attribute")
        if not isinstance(self.has_many, bool):
            raise ValueError(f"Relationship '{self.name}' has_many must be a boolean")

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "target": self.target,
            "has_many": self.has_many,
            "dependent": self.dependent.value if self.dependent else None,
            "inverse": self.inverse,
            "table": self.table,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RelationshipDef:
        dependent = data.get("dependent")
        return cls(
            name=data["name"],
            target=data["target"],
            has_many=data.get("has_many", False),
            dependent=Dependent.from_str(dependent) if dependent else None,
            inverse=data.get("inverse"),
            table=data.get("table"),
        )


def relationship(
    name: str,
    target: str,
    *,
    has_many: bool = False,
    dependent: str | Dependent | None = None,
    inverse: str | None = None,
    table: str | None = None,
) -> RelationshipDef:
    """Convenience function to create a RelationshipDef.

    Example:
        >>> contact = relationship("contact", "Contact", dependent="destroy")
        >>> orgs = relationship("organizations", "Organization", has_many=True)
    """
    if isinstance(dependent, str):
        dependent = Dependent.from_str(dependent)
    return RelationshipDef(
        name=name,
        target=target,
        has_many=has_many,
        dependent=dependent,
        inverse=inverse,
        table=table,
    )


@dataclass(frozen=True)
class ModelDef:
    """Definition of a model (one collection).

    Attributes:
        name: Model name (``User``)
        relationships: Declared relationships
        indexes: Attributes with a secondary index, usable in lookups
        table: Logical table name, defaults to the tableized model name
        human_name: Display name
    """

    name: str
    relationships: tuple[RelationshipDef, ...] = dataclass_field(default_factory=tuple)
    indexes: tuple[str, ...] = dataclass_field(default_factory=tuple)
    table: str | None = None
    human_name: str | None = None

    def __post_init__(self) -> None:
        """Validate model definition."""
        if not self.name:
            raise ValueError("Model name cannot be empty")

        names = [r.name for r in self.relationships]
        if len(names) != len(set(names)):
            raise ValueError(f"Duplicate relationship name in model '{self.name}'")

    @property
    def table_name(self) -> str:
        return self.table or collection_name(self.name)

    @property
    def role_key(self) -> str:
        """Attribute holding this model's uuid in association tables."""
        return role_key(self.name)

    @property
    def display_name(self) -> str:
        return self.human_name or self.name

    def get_relationship(self, name: str) -> RelationshipDef | None:
        for rel in self.relationships:
            if rel.name == name:
                return rel
        return None

    def find_relationship(self, role: str) -> RelationshipDef | None:
        """Resolve a role name: as given, then pluralized, then singularized."""
        for candidate in role_candidates(role):
            rel = self.get_relationship(candidate)
            if rel is not None:
                return rel
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "table": self.table_name,
            "indexes": list(self.indexes),
            "relationships": [r.to_dict() for r in self.relationships],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ModelDef:
        return cls(
            name=data["name"],
            table=data.get("table"),
            indexes=tuple(data.get("indexes", ())),
            relationships=tuple(
                RelationshipDef.from_dict(r) for r in data.get("relationships", [])
            ),
        )
