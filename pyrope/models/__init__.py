"""
Model facade for Pyrope.

This module provides:
- Model: records, hook pipelines, child relationships and cascades
- ModelSet: one Model per registered definition, so cascades and child
  lookups reach sibling models with their own validations
- Hooks: optional pipeline stages for create, update and destroy

Example:
    >>> models = ModelSet(registry, store, TableConfig(prefix="_test_"))
    >>> users, contacts = models["User"], models["Contact"]
    >>> user = await users.create({"username": "ada"})
    >>> contact = await contacts.create({"email": "ada@example.com"})
    >>> await users.set_child(user["uuid"], "contact", contact["uuid"])
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping

from ..config import TableConfig
from ..errors import SchemaError
from ..schema.registry import SchemaRegistry
from ..store.base import StoreAdapter
from .hooks import STAGES, Hooks, Stage, run_pipeline
from .model import Model


class ModelSet(Mapping):
    """Models for every definition in a registry, looked up by model or table name."""

    def __init__(
        self,
        registry: SchemaRegistry,
        store: StoreAdapter,
        tables: TableConfig,
        validations: Mapping[str, Stage] | None = None,
    ) -> None:
        validations = validations or {}
        unknown = set(validations) - {m.name for m in registry.models()}
        if unknown:
            raise SchemaError(f"Validations given for unknown models: {sorted(unknown)}")

        self.registry = registry
        self._models = {
            definition.name: Model(
                definition,
                registry,
                store,
                tables,
                validations=validations.get(definition.name),
                models=self,
            )
            for definition in registry.models()
        }

    def __getitem__(self, name: str) -> Model:
        definition = self.registry.get_model(name)
        if definition is None or definition.name not in self._models:
            raise KeyError(name)
        return self._models[definition.name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._models)

    def __len__(self) -> int:
        return len(self._models)


__all__ = [
    "Model",
    "ModelSet",
    "Hooks",
    "Stage",
    "STAGES",
    "run_pipeline",
]
