"""
Schema Registry for Pyrope.

The SchemaRegistry is the central authority for model definitions.
It provides:
- Registration of models
- Lookup by model name
- Resolution of a relationship's inverse and association table
- Freeze mechanism to prevent runtime modifications

Invariants:
    - Registry is mutable during startup, frozen before serving
    - Once frozen, no new models can be registered
    - Model names and table names are unique
    - Both directions of a relationship resolve to the same table

How to change safely:
    - Register all models before calling freeze()
    - Run validate() (or ``pyrope-provision plan``) after schema changes

Example:
    >>> registry = SchemaRegistry()
    >>> registry.register_model(User)
    >>> registry.register_model(Contact)
    >>> registry.freeze()
    >>> registry.association_table(User, User.get_relationship("contact"))
    'contacts_users'
"""

from __future__ import annotations

import threading
from typing import Dict, Iterator, List, Optional, Tuple
import logging

from ..errors import SchemaError
from .naming import association_table_name
from .types import ModelDef, RelationshipDef

logger = logging.getLogger(__name__)


class RegistryFrozenError(SchemaError):
    """Raised when attempting to modify a frozen registry."""
    pass


class DuplicateRegistrationError(SchemaError):
    """Raised when attempting to register a duplicate model or table."""
    pass


class SchemaRegistry:
    """Central registry for all model definitions.

    Thread-safety:
        - Registration is thread-safe (uses internal lock)
        - Lookups after freeze are lock-free
        - Freeze is atomic and irreversible

    Attributes:
        frozen: Whether the registry is frozen (immutable)
    """

    def __init__(self) -> None:
        """Initialize an empty, mutable registry."""
        self._models: Dict[str, ModelDef] = {}
        self._models_by_table: Dict[str, ModelDef] = {}
        self._frozen = False
        self._lock = threading.Lock()

    @property
    def frozen(self) -> bool:
        """Whether the registry is frozen."""
        return self._frozen

    def register_model(self, model: ModelDef) -> None:
        """Register a model definition.

        Raises:
            RegistryFrozenError: If registry is frozen
            DuplicateRegistrationError: If the name or table is taken
        """
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError(
                    f"Cannot register model '{model.name}': registry is frozen",
                    model=model.name,
                )

            if model.name in self._models:
                raise DuplicateRegistrationError(
                    f"Model '{model.name}' already registered", model=model.name
                )

            if model.table_name in self._models_by_table:
                existing = self._models_by_table[model.table_name]
                raise DuplicateRegistrationError(
                    f"Table '{model.table_name}' already registered by model '{existing.name}'",
                    model=model.name,
                )

            self._models[model.name] = model
            self._models_by_table[model.table_name] = model
            logger.debug(f"Registered model: {model.name} (table={model.table_name})")

    def get_model(self, name_or_table: str) -> Optional[ModelDef]:
        """Get a model by name (``User``) or table name (``users``)."""
        model = self._models.get(name_or_table)
        if model is None:
            model = self._models_by_table.get(name_or_table)
        return model

    def require_model(self, name_or_table: str) -> ModelDef:
        model = self.get_model(name_or_table)
        if model is None:
            raise SchemaError(f"Unknown model '{name_or_table}'", model=name_or_table)
        return model

    def models(self) -> Iterator[ModelDef]:
        """Iterate over all registered models in registration order."""
        yield from self._models.values()

    def freeze(self) -> None:
        """Freeze the registry after checking it is consistent.

        Raises:
            RegistryFrozenError: If already frozen
            SchemaError: If validate() reports problems
        """
        errors = self.validate()
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError("Registry is already frozen")
            if errors:
                raise SchemaError("Invalid schema: " + "; ".join(errors))
            self._frozen = True
        logger.info(f"Schema registry frozen with {len(self._models)} models")

    def inverse_of(self, model: ModelDef, rel: RelationshipDef) -> Tuple[ModelDef, RelationshipDef]:
        """Target model and the relationship on it pointing back to ``model``.

        Raises:
            SchemaError: If the target or a unique inverse cannot be found
        """
        target = self.get_model(rel.target)
        if target is None:
            raise SchemaError(
                f"Relationship '{model.name}.{rel.name}' targets unknown model '{rel.target}'",
                model=model.name,
            )

        if rel.inverse is not None:
            inverse = target.find_relationship(rel.inverse)
            if inverse is None:
                raise SchemaError(
                    f"Relationship '{model.name}.{rel.name}' names missing inverse "
                    f"'{target.name}.{rel.inverse}'",
                    model=model.name,
                )
        else:
            candidates = [r for r in target.relationships if r.target == model.name]
            if len(candidates) != 1:
                raise SchemaError(
                    f"Relationship '{model.name}.{rel.name}' needs an explicit inverse: "
                    f"'{target.name}' has {len(candidates)} relationship(s) to '{model.name}'",
                    model=model.name,
                )
            inverse = candidates[0]

        if inverse.target != model.name:
            raise SchemaError(
                f"Inverse '{target.name}.{inverse.name}' of '{model.name}.{rel.name}' "
                f"targets '{inverse.target}'",
                model=model.name,
            )
        return target, inverse

    def association_table(self, model: ModelDef, rel: RelationshipDef) -> str:
        """Logical association table of a relationship (``contacts_users``).

        A table named on either side of the relationship wins over the
        derived name.
        """
        target, inverse = self.inverse_of(model, rel)
        if rel.table or inverse.table:
            return rel.table or inverse.table
        return association_table_name(model.table_name, target.table_name)

    def association_tables(self) -> Dict[str, Tuple[str, str]]:
        """Every association table with its two role attributes."""
        tables: Dict[str, Tuple[str, str]] = {}
        for model in self.models():
            for rel in model.relationships:
                try:
                    target, _ = self.inverse_of(model, rel)
                except SchemaError:
                    continue
                name = self.association_table(model, rel)
                tables.setdefault(name, tuple(sorted((model.role_key, target.role_key))))
        return tables

    def validate(self) -> List[str]:
        """Check every relationship resolves in both directions.

        Returns:
            List of problems, empty when the schema is consistent
        """
        errors: List[str] = []
        for model in self.models():
            for rel in model.relationships:
                if rel.target == model.name:
                    errors.append(
                        f"'{model.name}.{rel.name}': self-referential relationships "
                        f"are not supported"
                    )
                    continue
                try:
                    _, inverse = self.inverse_of(model, rel)
                except SchemaError as e:
                    errors.append(e.message)
                    continue
                if rel.table and inverse.table and rel.table != inverse.table:
                    errors.append(
                        f"'{model.name}.{rel.name}' uses table '{rel.table}' but its inverse "
                        f"'{inverse.name}' uses '{inverse.table}'"
                    )
                    continue
                target = self.require_model(rel.target)
                if target.role_key == model.role_key:
                    errors.append(
                        f"'{model.name}.{rel.name}': role attribute '{model.role_key}' "
                        f"is shared by both models"
                    )
        return errors

    def to_dict(self) -> dict:
        """Convert registry to dictionary representation, sorted by name."""
        return {"models": [self._models[name].to_dict() for name in sorted(self._models)]}

    @classmethod
    def from_dict(cls, data: dict) -> SchemaRegistry:
        """Create registry from dictionary representation (not frozen)."""
        registry = cls()
        for model_data in data.get("models", []):
            registry.register_model(ModelDef.from_dict(model_data))
        return registry

    def __len__(self) -> int:
        return len(self._models)

    def __contains__(self, name: str) -> bool:
        return self.get_model(name) is not None
